#!/usr/bin/env python3
"""
Lead Expiry Script

Moves every draft or active lead whose expires_at has passed to "expired".
Intended to run from cron; safe to run repeatedly.

Usage:
    python expire_leads.py
    python expire_leads.py --as-of 2025-03-01T00:00:00Z
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.errors import ServiceError
from services.lead_service import expire_leads


def _parse_as_of(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        raise argparse.ArgumentTypeError("--as-of must include a timezone (e.g. 2025-03-01T00:00:00Z)")
    return parsed.astimezone(timezone.utc)


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Expire leads whose expires_at has passed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Expire everything stale as of now
  python expire_leads.py

  # Expire as of a fixed instant (backfills, testing)
  python expire_leads.py --as-of 2025-03-01T00:00:00Z
        """
    )

    parser.add_argument(
        "--as-of",
        help="UTC instant to evaluate expiry against (default: now)"
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        as_of = _parse_as_of(args.as_of)
    except (ValueError, argparse.ArgumentTypeError) as e:
        parser.error(str(e))

    try:
        expired = expire_leads(now=as_of)
        print(f"Expired {expired} lead(s)")
        return 0

    except KeyboardInterrupt:
        print("\n\nExpiry interrupted by user")
        return 130

    except ServiceError as e:
        print(f"\nERROR: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
