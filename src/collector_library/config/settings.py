# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from .defaults import (
    AUTH_DIRNAME,
    CONNECTOR_DATA_DIRNAME,
    DEFAULT_API_KEY_RELPATH,
    DEFAULT_AUTH_SAVE_DEBOUNCE,
    DEFAULT_AUTH_STATE_RELPATH,
    DEFAULT_PUSH_COMMAND,
    DEFAULT_PUSH_RETRY_DELAY,
    DEFAULT_PUSH_TIMEOUT,
    DEFAULT_RECEIVER_HOST,
    DEFAULT_RECEIVER_PORT,
    LOGS_DIRNAME,
    RAW_DUMPS_DIRNAME,
)

lib_logger = logging.getLogger("collector_library")


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        lib_logger.warning(f"Invalid {name} '{raw}'. Falling back to {default}.")
        return default
    if value < 0:
        lib_logger.warning(f"Invalid {name} '{raw}'. Must be >= 0. Using {default}.")
        return default
    return value


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        lib_logger.warning(f"Invalid {name} '{raw}'. Falling back to {default}.")
        return default


@dataclass
class CollectorSettings:
    """Resolved paths and tunables for one collector installation."""

    root: Path
    host: str = DEFAULT_RECEIVER_HOST
    port: int = DEFAULT_RECEIVER_PORT
    api_key_file: Optional[Path] = None
    auth_state_file: Optional[Path] = None
    push_command: List[str] = field(
        default_factory=lambda: shlex.split(DEFAULT_PUSH_COMMAND)
    )
    push_retry_delay: float = DEFAULT_PUSH_RETRY_DELAY
    push_timeout: Optional[float] = DEFAULT_PUSH_TIMEOUT
    auth_save_debounce: float = DEFAULT_AUTH_SAVE_DEBOUNCE

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        if self.api_key_file is None:
            self.api_key_file = self.root / DEFAULT_API_KEY_RELPATH
        if self.auth_state_file is None:
            self.auth_state_file = self.root / DEFAULT_AUTH_STATE_RELPATH

    @property
    def raw_dumps_dir(self) -> Path:
        return self.root / RAW_DUMPS_DIRNAME

    @property
    def connector_data_dir(self) -> Path:
        return self.root / CONNECTOR_DATA_DIRNAME

    @property
    def logs_dir(self) -> Path:
        return self.root / LOGS_DIRNAME

    @property
    def auth_dir(self) -> Path:
        return self.root / AUTH_DIRNAME

    def history_dir(self, source: str) -> Path:
        return self.raw_dumps_dir / f"{source}-history"

    def ensure_dirs(self) -> None:
        """Create the directories the receiver writes into. Failures propagate."""
        self.raw_dumps_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.auth_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(
        cls, env: Optional[Mapping[str, str]] = None, root: Optional[Path] = None
    ) -> "CollectorSettings":
        env = os.environ if env is None else env
        resolved_root = Path(root or env.get("COLLECTOR_ROOT") or Path.cwd())

        api_key_file = env.get("RECEIVER_API_KEY_FILE")
        push_command = env.get("PUSH_COMMAND") or DEFAULT_PUSH_COMMAND
        push_timeout = _env_float(env, "PUSH_TIMEOUT", DEFAULT_PUSH_TIMEOUT)

        return cls(
            root=resolved_root,
            host=env.get("RECEIVER_HOST") or DEFAULT_RECEIVER_HOST,
            port=_env_int(env, "RECEIVER_PORT", DEFAULT_RECEIVER_PORT),
            api_key_file=Path(api_key_file) if api_key_file else None,
            push_command=shlex.split(push_command),
            push_retry_delay=_env_float(
                env, "PUSH_RETRY_DELAY", DEFAULT_PUSH_RETRY_DELAY
            ),
            push_timeout=push_timeout or None,
            auth_save_debounce=_env_float(
                env, "AUTH_SAVE_DEBOUNCE", DEFAULT_AUTH_SAVE_DEBOUNCE
            ),
        )
