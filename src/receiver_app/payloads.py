# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, ValidationError

from collector_library.day_store import validate_day, validate_record
from collector_library.errors import InvalidPayloadError

SOURCE_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
BUCKET_SUFFIX = "ByDate"


class HistoryUpload(BaseModel):
    """Envelope of a history batch; the <name>ByDate field arrives as an extra."""

    model_config = ConfigDict(extra="allow")

    # Informational only; any JSON value is accepted
    timestamp: Any = None
    totalCount: Any = None


@dataclass
class ParsedUpload:
    content_key: str
    days: Dict[str, List[Dict[str, Any]]]
    declared_total: Any

    @property
    def record_count(self) -> int:
        return sum(len(records) for records in self.days.values())


def validate_source(source: str) -> str:
    if not SOURCE_PATTERN.match(source or ""):
        raise InvalidPayloadError(f"Invalid source name: {source!r}")
    return source


def content_key_for(bucket_field: str) -> str:
    """urlsByDate -> url"""
    prefix = bucket_field[: -len(BUCKET_SUFFIX)]
    if prefix.endswith("s") and len(prefix) > 1:
        prefix = prefix[:-1]
    return prefix


def parse_history_upload(body: bytes) -> ParsedUpload:
    """
    Parse and validate a whole batch before anything is written.

    Raises:
        InvalidPayloadError: Body is not JSON, has no single <name>ByDate
            mapping, or holds an invalid day or record.
    """
    try:
        raw = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidPayloadError(f"Invalid JSON in request body: {e}") from e
    if not isinstance(raw, dict):
        raise InvalidPayloadError("Request body must be a JSON object")

    try:
        upload = HistoryUpload.model_validate(raw)
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid request body: {e}") from e

    extras = upload.model_extra or {}
    bucket_fields = [
        name for name in extras if name.endswith(BUCKET_SUFFIX) and name != BUCKET_SUFFIX
    ]
    if len(bucket_fields) != 1:
        raise InvalidPayloadError(
            f"Expected exactly one '*{BUCKET_SUFFIX}' field, found {len(bucket_fields)}"
        )
    bucket_field = bucket_fields[0]
    buckets = extras[bucket_field]
    if not isinstance(buckets, dict):
        raise InvalidPayloadError(f"'{bucket_field}' must be an object")

    content_key = content_key_for(bucket_field)
    days: Dict[str, List[Dict[str, Any]]] = {}
    for day, records in buckets.items():
        validate_day(day)
        if not isinstance(records, list):
            raise InvalidPayloadError(f"Records for {day} must be a list")
        days[day] = [validate_record(record, content_key) for record in records]

    return ParsedUpload(
        content_key=content_key, days=days, declared_total=upload.totalCount
    )
