# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

# src/collector_library/auth_state.py

"""
Single-file session credential state for the messaging collector.

All credentials and signal keys live in one JSON document instead of one file
per key. Key updates arrive in bursts, so they are only applied in memory and
flushed after a short quiet period; explicit checkpoints call save_now().
"""

from __future__ import annotations

import asyncio
import base64
import logging
import secrets
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set, Tuple

import aiofiles

from . import buffer_json
from .config.defaults import DEFAULT_AUTH_SAVE_DEBOUNCE
from .config.settings import CollectorSettings
from .utils.resilient_io import PRIVATE_FILE_MODE, atomic_write_text

lib_logger = logging.getLogger("collector_library")


def _key_pair() -> Dict[str, bytes]:
    return {"private": secrets.token_bytes(32), "public": secrets.token_bytes(32)}


def init_auth_creds() -> Dict[str, Any]:
    """Fresh, unregistered credential bundle."""
    return {
        "noiseKey": _key_pair(),
        "pairingEphemeralKeyPair": _key_pair(),
        "signedIdentityKey": _key_pair(),
        "signedPreKey": {"keyPair": _key_pair(), "keyId": 1},
        "registrationId": secrets.randbelow(16380) + 1,
        "advSecretKey": base64.b64encode(secrets.token_bytes(32)).decode("ascii"),
        "nextPreKeyId": 1,
        "firstUnuploadedPreKeyId": 1,
        "accountSyncCounter": 0,
        "accountSettings": {"unarchiveChats": False},
        "registered": False,
        "me": None,
    }


class SingleFileAuthState:
    """
    Credentials plus a key map addressed by "<category>-<id>".

    Flushes never overlap: each one holds _save_lock across serialize,
    temp-file write and rename, so a flush requested during another one waits
    and then writes the latest in-memory state.
    """

    def __init__(
        self,
        path: Path | str,
        debounce_seconds: float = DEFAULT_AUTH_SAVE_DEBOUNCE,
        creds_factory: Callable[[], Dict[str, Any]] = init_auth_creds,
    ):
        self.path = Path(path)
        self.debounce_seconds = debounce_seconds
        self._creds_factory = creds_factory
        self.creds: Dict[str, Any] = {}
        self.keys: Dict[str, Any] = {}
        self._save_lock = asyncio.Lock()
        self._save_handle: Optional[asyncio.TimerHandle] = None
        self._save_tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings: CollectorSettings,
        creds_factory: Callable[[], Dict[str, Any]] = init_auth_creds,
    ) -> "SingleFileAuthState":
        return cls(
            settings.auth_state_file,
            debounce_seconds=settings.auth_save_debounce,
            creds_factory=creds_factory,
        )

    async def load(self) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Load state from disk, or start fresh if the file is missing or unreadable."""
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                parsed = buffer_json.loads(await f.read())
            creds = parsed["creds"]
            keys = parsed.get("keys") or {}
            if not isinstance(creds, dict) or not isinstance(keys, dict):
                raise ValueError("unexpected document shape")
        except FileNotFoundError:
            lib_logger.info(f"No auth state at {self.path}; starting fresh.")
            creds, keys = self._creds_factory(), {}
        except (OSError, ValueError, KeyError, TypeError) as e:
            lib_logger.warning(
                f"Cannot read auth state {self.path}: {e}. Starting fresh."
            )
            creds, keys = self._creds_factory(), {}

        self.creds = creds
        self.keys = keys
        return self.creds, self.keys

    async def get_keys(self, category: str, ids: Iterable[str]) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for key_id in ids:
            value = self.keys.get(f"{category}-{key_id}")
            if value:
                data[key_id] = value
        return data

    async def set_keys(self, data: Mapping[str, Mapping[str, Any]]) -> None:
        """Apply a batch of key updates; a falsy value deletes the key."""
        for category, entries in data.items():
            for key_id, value in entries.items():
                key = f"{category}-{key_id}"
                if value:
                    self.keys[key] = value
                else:
                    self.keys.pop(key, None)
        self._schedule_save()

    def _schedule_save(self) -> None:
        if self._save_handle is not None:
            self._save_handle.cancel()
        loop = asyncio.get_running_loop()
        self._save_handle = loop.call_later(self.debounce_seconds, self._on_save_timer)

    def _on_save_timer(self) -> None:
        self._save_handle = None
        task = asyncio.create_task(self._debounced_save())
        self._save_tasks.add(task)
        task.add_done_callback(self._save_tasks.discard)

    async def _debounced_save(self) -> None:
        try:
            await self.save_now()
        except Exception as e:
            lib_logger.error(f"Failed to save auth state: {e}")

    async def save_now(self) -> None:
        """Flush the current state to disk, waiting for any flush in progress."""
        async with self._save_lock:
            document = buffer_json.dumps({"creds": self.creds, "keys": self.keys})
            await atomic_write_text(self.path, document, mode=PRIVATE_FILE_MODE)
            lib_logger.debug(f"Saved auth state to {self.path}")

    async def close(self) -> None:
        """Cancel the pending timer and flush; call before process exit."""
        if self._save_handle is not None:
            self._save_handle.cancel()
            self._save_handle = None
        if self._save_tasks:
            await asyncio.gather(*list(self._save_tasks), return_exceptions=True)
        await self.save_now()


async def use_single_file_auth_state(
    path: Path | str | CollectorSettings,
    debounce_seconds: float = DEFAULT_AUTH_SAVE_DEBOUNCE,
) -> SingleFileAuthState:
    """Open and load the state file; settings supply both path and debounce."""
    if isinstance(path, CollectorSettings):
        state = SingleFileAuthState.from_settings(path)
    else:
        state = SingleFileAuthState(path, debounce_seconds=debounce_seconds)
    await state.load()
    return state
