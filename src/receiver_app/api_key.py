# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

from __future__ import annotations

import logging
import secrets
from pathlib import Path

from collector_library.config.defaults import API_KEY_BYTES


def mask_api_key(api_key: str) -> str:
    value = api_key.strip()
    if len(value) <= 12:
        return "****"
    return f"{value[:8]}...{value[-4:]}"


def load_or_create_api_key(path: Path) -> str:
    """Return the persisted API key, generating and saving one on first run."""
    if path.is_file():
        existing = path.read_text(encoding="utf-8").strip()
        if existing:
            return existing
        logging.warning(f"API key file {path} is empty; generating a new key.")

    api_key = secrets.token_hex(API_KEY_BYTES)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(api_key, encoding="utf-8")
    logging.info(f"Generated new API key: {mask_api_key(api_key)} (saved to {path})")
    return api_key


def keys_match(provided: str | None, expected: str) -> bool:
    if not provided:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
