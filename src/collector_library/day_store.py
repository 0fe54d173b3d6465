# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/collector_library/day_store.py

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import aiofiles

from .errors import InvalidPayloadError, StoreCorruptedError
from .utils.resilient_io import atomic_write_json

lib_logger = logging.getLogger("collector_library")

DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

Record = Dict[str, Any]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware UTC datetime, or None."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def validate_day(day: Any) -> str:
    if not isinstance(day, str) or not DAY_PATTERN.match(day):
        raise InvalidPayloadError(f"Invalid day bucket: {day!r}")
    try:
        datetime.strptime(day, "%Y-%m-%d")
    except ValueError:
        raise InvalidPayloadError(f"Invalid day bucket: {day!r}") from None
    return day


def validate_record(record: Any, content_key: str) -> Record:
    if not isinstance(record, dict):
        raise InvalidPayloadError("Each record must be a JSON object")
    content = record.get(content_key)
    if not isinstance(content, str) or not content:
        raise InvalidPayloadError(f"Record is missing '{content_key}'")
    if parse_timestamp(record.get("timestamp")) is None:
        raise InvalidPayloadError(
            f"Record has an invalid timestamp: {record.get('timestamp')!r}"
        )
    return record


class DayBucketStore:
    """
    Per-day JSON array files holding deduplicated, time-ordered records.

    A record's identity is its (timestamp, content key) pair. Every merge is a
    full read-modify-write of one day's file, serialized per day by an
    asyncio.Lock, and written with temp file + rename.
    """

    def __init__(self, directory: Path | str, content_key: str = "url"):
        self.directory = Path(directory)
        self.content_key = content_key
        self._day_locks: Dict[str, asyncio.Lock] = {}

    def day_path(self, day: str) -> Path:
        return self.directory / f"{validate_day(day)}.json"

    def _lock_for(self, day: str) -> asyncio.Lock:
        lock = self._day_locks.get(day)
        if lock is None:
            lock = asyncio.Lock()
            self._day_locks[day] = lock
        return lock

    def _identity(self, record: Record) -> str:
        return f"{record.get('timestamp')}|{record.get(self.content_key)}"

    async def load_day(self, day: str) -> List[Record]:
        """
        Load the records stored for day.

        A missing file is an empty day. A file that is present but does not
        hold a JSON array of objects raises StoreCorruptedError.
        """
        path = self.day_path(day)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as handle:
                content = await handle.read()
        except FileNotFoundError:
            return []

        if not content.strip():
            return []
        try:
            records = json.loads(content)
        except json.JSONDecodeError as e:
            raise StoreCorruptedError(path, str(e)) from e
        if not isinstance(records, list):
            raise StoreCorruptedError(path, "expected a JSON array")
        if not all(isinstance(record, dict) for record in records):
            raise StoreCorruptedError(path, "expected an array of objects")
        return records

    async def merge_day(self, day: str, incoming: Iterable[Record]) -> int:
        """
        Merge incoming records into day's file.

        Returns:
            Number of records actually added. Zero means the file was not
            touched.
        """
        path = self.day_path(day)
        async with self._lock_for(day):
            existing = await self.load_day(day)
            seen = {self._identity(record) for record in existing}

            new_records: List[Record] = []
            for record in incoming:
                identity = self._identity(record)
                if identity in seen:
                    continue
                seen.add(identity)
                new_records.append(record)

            if not new_records:
                lib_logger.info(f"  {day}: No new records")
                return 0

            merged = existing + new_records
            # Stable sort: equal instants keep existing-before-incoming order
            merged.sort(key=self._sort_key)

            self.directory.mkdir(parents=True, exist_ok=True)
            await atomic_write_json(path, merged)
            lib_logger.info(
                f"  {day}: Added {len(new_records)} new records (total: {len(merged)})"
            )
            return len(new_records)

    @staticmethod
    def _sort_key(record: Record) -> datetime:
        parsed = parse_timestamp(record.get("timestamp"))
        return parsed or datetime.min.replace(tzinfo=timezone.utc)

    def list_days(self) -> List[str]:
        """Days with a stored file, oldest first."""
        if not self.directory.is_dir():
            return []
        return sorted(
            path.stem
            for path in self.directory.glob("*.json")
            if DAY_PATTERN.match(path.stem)
        )
