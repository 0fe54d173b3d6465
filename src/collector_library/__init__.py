# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .auth_state import SingleFileAuthState, init_auth_creds, use_single_file_auth_state
from .config import CollectorSettings
from .day_store import DayBucketStore
from .errors import CollectorError, InvalidPayloadError, StoreCorruptedError
from .push_coordinator import PushCoordinator, PushResult
from .utils.resilient_io import write_if_changed

__all__ = [
    "CollectorError",
    "CollectorSettings",
    "DayBucketStore",
    "InvalidPayloadError",
    "PushCoordinator",
    "PushResult",
    "SingleFileAuthState",
    "StoreCorruptedError",
    "init_auth_creds",
    "use_single_file_auth_state",
    "write_if_changed",
]
