# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/collector_library/history_digest.py

"""
Render stored browsing history into one markdown document per day.

Re-running the digest over unchanged dumps leaves the output files untouched,
since only the Export Date line differs.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from .config.defaults import VOLATILE_LINE_MARKER
from .day_store import DayBucketStore, Record, parse_timestamp
from .errors import StoreCorruptedError
from .utils.resilient_io import write_if_changed

lib_logger = logging.getLogger("collector_library")


@dataclass
class DigestStats:
    days_written: int = 0
    days_skipped: int = 0
    total_records: int = 0


def record_domain(record: Record) -> str:
    try:
        host = urlsplit(str(record.get("url", ""))).hostname
    except ValueError:
        host = None
    return host or "unknown"


def domain_tag(domain: str) -> str:
    tag = re.sub(r"^www\.", "", domain)
    tag = re.sub(r"\.[^.]+$", "", tag).lower()
    tag = re.sub(r"[^a-z0-9]+", "-", tag)
    return tag.strip("-")


def group_by_domain(records: List[Record]) -> "OrderedDict[str, List[Record]]":
    """Group records by host, busiest host first (ties keep first-seen order)."""
    grouped: Dict[str, List[Record]] = {}
    for record in records:
        grouped.setdefault(record_domain(record), []).append(record)
    ordered = sorted(grouped.items(), key=lambda item: len(item[1]), reverse=True)
    return OrderedDict(ordered)


def _escape_title(title: str) -> str:
    return re.sub(r"([\[\]])", r"\\\1", title)


def _time_label(record: Record) -> str:
    parsed = parse_timestamp(record.get("timestamp"))
    return parsed.strftime("%H:%M") if parsed else "--:--"


def render_day(
    source: str, day: str, records: List[Record], exported_at: Optional[datetime] = None
) -> str:
    exported_at = exported_at or datetime.now(timezone.utc)
    lines = [
        f"# {source} history - {day}",
        "",
        f"{VOLATILE_LINE_MARKER} {exported_at.isoformat()}",
        "",
    ]
    for domain, domain_records in group_by_domain(records).items():
        domain_records = sorted(
            domain_records,
            key=lambda r: parse_timestamp(r.get("timestamp"))
            or datetime.min.replace(tzinfo=timezone.utc),
        )
        lines.append(f"## {domain}")
        lines.append(f"Tags: {source}, history, {day}, {domain_tag(domain)}")
        lines.append("")
        for record in domain_records:
            title = _escape_title(str(record.get("title") or "Untitled"))
            lines.append(f"*{_time_label(record)}* [{title}]({record.get('url', '')})")
        lines.append("")
    return "\n".join(lines)


async def build_digest(
    store: DayBucketStore,
    output_dir: Path | str,
    source: str,
    days: Optional[int] = None,
) -> DigestStats:
    """
    Write <output_dir>/<source>-<day>.md for each stored day.

    Args:
        days: Only the most recent N stored days, or all when None.
    """
    output_dir = Path(output_dir)
    stats = DigestStats()
    day_names = store.list_days()
    if days is not None:
        day_names = day_names[-days:] if days > 0 else []

    if not day_names:
        lib_logger.warning(f"No stored history found in {store.directory}")
        return stats

    for day in day_names:
        try:
            records = await store.load_day(day)
        except StoreCorruptedError as e:
            lib_logger.error(f"Skipping {day}: {e}")
            continue
        if not records:
            continue

        target = output_dir / f"{source}-{day}.md"
        written = await write_if_changed(target, render_day(source, day, records))
        stats.total_records += len(records)
        if written:
            stats.days_written += 1
            lib_logger.info(f"  {day}: {len(records)} records")
        else:
            stats.days_skipped += 1
            lib_logger.info(f"  Skipped {target.name} (no changes)")

    return stats
