# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/collector_library/utils/__init__.py

from .resilient_io import (
    DEFAULT_FILE_MODE,
    PRIVATE_FILE_MODE,
    atomic_write_json,
    atomic_write_text,
    normalize_volatile,
    write_if_changed,
)

__all__ = [
    "DEFAULT_FILE_MODE",
    "PRIVATE_FILE_MODE",
    "atomic_write_json",
    "atomic_write_text",
    "normalize_volatile",
    "write_if_changed",
]
