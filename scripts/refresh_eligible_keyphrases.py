"""Refresh Google Ads search volume for every cooldown-expired keyphrase of one category/location."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from localseo.core.database import close_db
from localseo.core.exceptions import LocalSeoError
from localseo.core.logging import setup_logging
from localseo.services.keyphrases.policy import RefreshPolicy
from localseo.services.keyphrases.service import CategoryLocationKeywordService

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--location-id", type=int, required=True, help="Town id of the scope")
    parser.add_argument("--category-id", required=True, help="Business category id of the scope")
    parser.add_argument(
        "--cooldown-days",
        type=int,
        default=None,
        help="Override the admin cooldown for this run (clamped to 0-3650)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: LOG_LEVEL setting)",
    )
    return parser.parse_args(argv)


def build_service(cooldown_days: int | None) -> CategoryLocationKeywordService:
    policy = RefreshPolicy.from_days(cooldown_days) if cooldown_days is not None else None
    return CategoryLocationKeywordService(policy=policy)


async def async_main(argv: list[str] | None = None) -> int:
    """Run one bulk refresh and print its summary as JSON."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    service = build_service(args.cooldown_days)
    try:
        summary = await service.refresh_eligible_keywords(args.location_id, args.category_id)
    except LocalSeoError as exc:
        print(f"Refresh failed: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await close_db()

    print(json.dumps(summary.to_dict(), sort_keys=True))
    return 0


def main() -> int:
    """Sync wrapper."""
    return asyncio.run(async_main())


if __name__ == "__main__":
    raise SystemExit(main())
