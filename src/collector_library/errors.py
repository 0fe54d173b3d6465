# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel


class CollectorError(Exception):
    """Base class for collector library errors."""


class InvalidPayloadError(CollectorError, ValueError):
    """Raised when an ingestion payload cannot be parsed or validated."""


class StoreCorruptedError(CollectorError):
    """Raised when a day-bucket file exists but does not hold a JSON array."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Corrupted day file {path}: {reason}")
