# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/collector_library/utils/resilient_io.py

"""
File writing helpers shared by the store, the credential state and the digest.

- atomic_write_text / atomic_write_json: write to a unique temp file in the
  target directory, then rename over the target. Readers see either the old
  file or the new one, never a truncated file.
- write_if_changed: skip the write when only the volatile export line differs.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

import aiofiles
import aiofiles.os

from ..config.defaults import VOLATILE_LINE_MARKER

lib_logger = logging.getLogger("collector_library")

DEFAULT_FILE_MODE = 0o644
PRIVATE_FILE_MODE = 0o600


async def atomic_write_text(
    path: Path | str, content: str, mode: int = DEFAULT_FILE_MODE
) -> None:
    """Write text to path via temp file + rename; the result gets the given mode."""
    target = Path(path)
    await aiofiles.os.makedirs(target.parent, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    os.close(fd)
    try:
        # mkstemp always creates 0600
        os.chmod(tmp_name, mode)
        async with aiofiles.open(tmp_name, "w", encoding="utf-8") as handle:
            await handle.write(content)
        await aiofiles.os.replace(tmp_name, target)
    except BaseException:
        try:
            await aiofiles.os.remove(tmp_name)
        except OSError:
            pass
        raise


async def atomic_write_json(
    path: Path | str,
    data: Any,
    default: Optional[Callable[[Any], Any]] = None,
    mode: int = DEFAULT_FILE_MODE,
) -> None:
    """Pretty-print data as JSON and write it atomically."""
    content = json.dumps(data, indent=2, ensure_ascii=False, default=default)
    await atomic_write_text(path, content, mode=mode)


def normalize_volatile(content: str, marker: str = VOLATILE_LINE_MARKER) -> str:
    return "\n".join(
        line for line in content.split("\n") if not line.strip().startswith(marker)
    )


async def write_if_changed(
    path: Path | str,
    new_content: str,
    marker: str = VOLATILE_LINE_MARKER,
) -> bool:
    """
    Write new_content to path unless it matches the file already there.

    Lines starting with the volatile marker (after trimming) are ignored for
    the comparison. The new content is written verbatim.

    Returns:
        True if the file was written, False if the write was skipped.
    """
    target = Path(path)
    try:
        async with aiofiles.open(target, "r", encoding="utf-8") as handle:
            existing = await handle.read()
    except (OSError, UnicodeDecodeError):
        existing = None

    if existing is not None and normalize_volatile(
        existing, marker
    ) == normalize_volatile(new_content, marker):
        return False

    await aiofiles.os.makedirs(target.parent, exist_ok=True)
    async with aiofiles.open(target, "w", encoding="utf-8") as handle:
        await handle.write(new_content)
    lib_logger.debug(f"Wrote {target}")
    return True
