#!/usr/bin/env python3
"""CLI entry point for pre/post comparison reports.

Usage:
    # Print report JSON to stdout
    PYTHONPATH=. python scripts/run_comparison_report.py --event purchase \
        --pre 2024-11-01 2024-11-30 --post 2024-12-01 2024-12-31

    # Write report JSON to a file
    PYTHONPATH=. python scripts/run_comparison_report.py --event lead \
        --pre 2024-11-01 2024-11-14 --post 2024-11-15 2024-11-28 \
        --output data/reports/lead_lift.json

Credentials come from META_ACCESS_TOKEN and META_AD_ACCOUNT_ID unless
--account is given.
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

import aiofiles

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.lift_core.insights.date_ranges import DateRange
from src.lift_core.insights.exceptions import MetaInsightsError
from src.lift_core.insights.report import generate_report


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def write_report(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, mode="w", encoding="utf-8") as handle:
        await handle.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


async def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="LIFT pre/post comparison report")
    parser.add_argument(
        "--event",
        required=True,
        help="Conversion event to attribute (e.g. purchase, lead)",
    )
    parser.add_argument(
        "--pre",
        nargs=2,
        required=True,
        metavar=("START", "END"),
        help="Pre period dates (YYYY-MM-DD YYYY-MM-DD)",
    )
    parser.add_argument(
        "--post",
        nargs=2,
        required=True,
        metavar=("START", "END"),
        help="Post period dates (YYYY-MM-DD YYYY-MM-DD)",
    )
    parser.add_argument(
        "--account",
        type=str,
        help="Ad account ID. Defaults to META_AD_ACCOUNT_ID.",
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Write report JSON to this path instead of stdout",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)
    logger = logging.getLogger("run_comparison_report")

    access_token = os.getenv("META_ACCESS_TOKEN")
    account_id = args.account or os.getenv("META_AD_ACCOUNT_ID")

    if not access_token or not account_id:
        logger.error("META_ACCESS_TOKEN and META_AD_ACCOUNT_ID (or --account) must be set")
        return 2

    try:
        pre_range = DateRange.parse(*args.pre)
        post_range = DateRange.parse(*args.post)
    except ValueError as exc:
        logger.error("Invalid date range: %s", exc)
        return 2

    try:
        report = await generate_report(
            access_token,
            account_id,
            args.event,
            pre_range,
            post_range,
        )
    except MetaInsightsError as exc:
        logger.error("Report generation failed: %s", exc)
        return 1

    payload = {"report": report.to_wire()}

    if args.output:
        output_path = Path(args.output)
        await write_report(output_path, payload)
        logger.info("Wrote report to %s", output_path)
    else:
        print(json.dumps(payload, indent=2, ensure_ascii=False))

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
