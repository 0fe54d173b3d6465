# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/collector_library/run_log.py

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

lib_logger = logging.getLogger("collector_library")

RUN_LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


class IsoTimeFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()


def run_log_path(logs_dir: Path, name: str, started: Optional[datetime] = None) -> Path:
    started = started or datetime.now(timezone.utc)
    stamp = started.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return logs_dir / f"{name}-{stamp}.log"


def run_logged(
    name: str,
    logs_dir: Path | str,
    job: Callable[[], Awaitable[Any]],
) -> int:
    """
    Run an async job with everything it logs captured in a per-run log file.

    Returns:
        Process exit code: 0 when the job completed, 1 when it raised.
    """
    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    path = run_log_path(logs_dir, name)

    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(IsoTimeFormatter(RUN_LOG_FORMAT))
    root_logger = logging.getLogger()
    previous_level = root_logger.level
    if root_logger.level > logging.INFO or root_logger.level == logging.NOTSET:
        root_logger.setLevel(logging.INFO)
    root_logger.addHandler(handler)

    started = time.monotonic()
    lib_logger.info(f"Starting {name}")
    try:
        asyncio.run(job())
    except Exception as e:
        lib_logger.error(f"{name} failed: {e}", exc_info=True)
        return 1
    else:
        lib_logger.info(f"Completed in {time.monotonic() - started:.1f}s")
        return 0
    finally:
        root_logger.removeHandler(handler)
        root_logger.setLevel(previous_level)
        handler.close()
