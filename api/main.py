"""
Home Energy Lead Marketplace API - Main Application.

FastAPI application with CORS enabled for frontend communication.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__

# Create FastAPI application
app = FastAPI(
    title="Home Energy Lead Marketplace API",
    description="REST API for the lead lifecycle, contractor refunds and broker health audits",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins to the admin and contractor frontends once their hosts are fixed
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "home-energy-lead-marketplace-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Home Energy Lead Marketplace API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import brokers, leads, refunds

app.include_router(leads.router, prefix="/api/v1", tags=["Leads"])
app.include_router(refunds.router, prefix="/api/v1", tags=["Refunds"])
app.include_router(brokers.router, prefix="/api/v1", tags=["Broker Health"])
