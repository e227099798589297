#!/usr/bin/env python3
"""
Print the dates a recurring schedule would produce, without touching a database.

Preview limits and the open-ended horizon come from the engine settings
(``recurrence_config``).

Usage:
    python3 scripts/preview_rule.py monthly 2026-01-31
    python3 scripts/preview_rule.py weekly 2026-01-05 --interval 2 --limit 20
    python3 scripts/preview_rule.py monthly 2026-01-01 --count 6 --config my.yaml
"""

import argparse
import sys
from datetime import date

from recurrence_config import get_active_settings
from recurrence_kernel.domain.clock import SystemClock
from recurrence_kernel.domain.occurrences import coerce_frequency, preview_occurrences
from recurrence_kernel.domain.types import Frequency, Schedule
from recurrence_kernel.exceptions import ValidationError
from recurrence_kernel.logging_config import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Preview recurring occurrence dates")
    parser.add_argument(
        "frequency",
        choices=[f.value for f in Frequency],
        help="Cadence of the rule",
    )
    parser.add_argument("start_date", type=date.fromisoformat, help="First occurrence (YYYY-MM-DD)")
    parser.add_argument("--interval", type=int, default=1, help="Step multiplier (default 1)")
    parser.add_argument("--end", type=date.fromisoformat, default=None, help="Inclusive end date")
    parser.add_argument("--count", type=int, default=None, help="Number of occurrences")
    parser.add_argument("--limit", type=int, default=None, help="Dates to print (capped by settings)")
    parser.add_argument(
        "--today",
        type=date.fromisoformat,
        default=None,
        help="Reference date for open-ended schedules (default: system date)",
    )
    parser.add_argument("--config", default=None, help="Settings YAML (default: packaged defaults)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_active_settings(args.config)
    configure_logging(level=settings.log_level)

    schedule = Schedule(
        frequency=coerce_frequency(args.frequency),
        interval=args.interval,
        start_date=args.start_date,
        end_date=args.end,
        occurrence_count=args.count,
    )
    try:
        dates = preview_occurrences(
            schedule,
            today=args.today or SystemClock().today(),
            limit=args.limit if args.limit is not None else settings.preview_default_limit,
            max_limit=settings.preview_max_limit,
            horizon_months=settings.default_horizon_months,
        )
    except ValidationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    for occurrence in dates:
        print(occurrence.isoformat())
    return 0


if __name__ == "__main__":
    sys.exit(main())
