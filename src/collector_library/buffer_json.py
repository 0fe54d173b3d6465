# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Reversible JSON encoding for binary values.

bytes are stored as {"type": "Buffer", "data": "<base64>"}. Decoding also
accepts a list of byte values in "data", which older session files use.
"""

from __future__ import annotations

import base64
import json
from typing import Any

BUFFER_TAG = "Buffer"


def buffer_default(value: Any) -> Any:
    """json.dumps default= hook."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {
            "type": BUFFER_TAG,
            "data": base64.b64encode(bytes(value)).decode("ascii"),
        }
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def buffer_object_hook(obj: dict) -> Any:
    """json.loads object_hook= hook."""
    if obj.get("type") != BUFFER_TAG or "data" not in obj or len(obj) != 2:
        return obj
    data = obj["data"]
    if isinstance(data, str):
        return base64.b64decode(data)
    if isinstance(data, list) and all(isinstance(b, int) for b in data):
        return bytes(data)
    return obj


def dumps(value: Any, indent: int | None = 2) -> str:
    return json.dumps(value, default=buffer_default, indent=indent)


def loads(text: str) -> Any:
    return json.loads(text, object_hook=buffer_object_hook)
