# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import colorlog

FILE_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_console_handler() -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stdout)
    handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(message)s",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )
    handler.setLevel(logging.INFO)
    return handler


def configure_logging(log_dir: Optional[Path] = None, log_name: str = "receiver.log") -> None:
    """Console (colored, INFO+) and optional file (INFO+) logging on the root logger."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(build_console_handler())

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / log_name, encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        root_logger.addHandler(file_handler)

    # Silence noisy loggers by setting their level higher than root
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
