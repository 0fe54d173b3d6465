# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

"""
History PROCESS command: generate one markdown digest per stored day.

Reads raw-dumps/<source>-history/*.json and writes
connector_data/<source>/<source>-<day>.md, leaving unchanged days untouched.
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from collector_library.config import CollectorSettings
from collector_library.config.defaults import DEFAULT_DAYS_TO_SYNC
from collector_library.day_store import DayBucketStore
from collector_library.errors import InvalidPayloadError
from collector_library.history_digest import build_digest
from collector_library.run_log import run_logged
from receiver_app.logging_setup import configure_logging
from receiver_app.payloads import validate_source


async def process_history(settings: CollectorSettings, source: str, days=None):
    store = DayBucketStore(settings.history_dir(source))
    output_dir = settings.connector_data_dir / source
    logging.info(f"Processing {source} history from {store.directory}")
    stats = await build_digest(store, output_dir, source, days=days)
    logging.info(
        f"Summary: {stats.days_written} days written, {stats.days_skipped} unchanged, "
        f"{stats.total_records} records"
    )
    logging.info(f"Files saved to: {output_dir}")
    return stats


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Generate daily history digests")
    parser.add_argument("--source", default="chrome", help="History source name.")
    parser.add_argument(
        "--days",
        type=int,
        default=DEFAULT_DAYS_TO_SYNC,
        help=f"Most recent N stored days (default: {DEFAULT_DAYS_TO_SYNC}; 0 for all).",
    )
    parser.add_argument("--root", type=Path, default=None, help="Data root directory.")
    args = parser.parse_args(argv)

    load_dotenv(Path.cwd() / ".env")
    settings = CollectorSettings.from_env(root=args.root)
    try:
        validate_source(args.source)
    except InvalidPayloadError as e:
        parser.error(str(e))
    configure_logging()

    return run_logged(
        f"{args.source}-process",
        settings.logs_dir,
        lambda: process_history(settings, args.source, days=args.days or None),
    )


if __name__ == "__main__":
    sys.exit(main())
