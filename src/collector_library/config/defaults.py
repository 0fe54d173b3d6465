# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Centralized defaults for the collector library.

This file contains all tunable default values for:
- The history receiver service
- Push coordination (external sync command)
- Credential state persistence
- History digest generation

Environment variables can override most of these at runtime
(see collector_library.config.settings).
"""

# =============================================================================
# RECEIVER DEFAULTS
# =============================================================================

# Port the history receiver listens on
# Override: RECEIVER_PORT=<port>
DEFAULT_RECEIVER_PORT: int = 3457

# Override: RECEIVER_HOST=<host>
DEFAULT_RECEIVER_HOST: str = "127.0.0.1"

# Header carrying the static API key
API_KEY_HEADER_NAME: str = "X-API-Key"

# Location of the persisted API key, relative to the data root
# Override: RECEIVER_API_KEY_FILE=<path>
DEFAULT_API_KEY_RELPATH: str = "auth/chrome-api-key.txt"

# Number of random bytes in a freshly generated API key (hex encoded)
API_KEY_BYTES: int = 32

# =============================================================================
# DIRECTORY LAYOUT
# =============================================================================

RAW_DUMPS_DIRNAME: str = "raw-dumps"
CONNECTOR_DATA_DIRNAME: str = "connector_data"
LOGS_DIRNAME: str = "logs"
AUTH_DIRNAME: str = "auth"

# =============================================================================
# PUSH COORDINATION DEFAULTS
# =============================================================================

# Command used to sync dumps to the remote repository
# Override: PUSH_COMMAND="<command line>"
DEFAULT_PUSH_COMMAND: str = "npm run chrome:push"

# Delay before the trailing re-run of a coalesced push
# Override: PUSH_RETRY_DELAY=<seconds>
DEFAULT_PUSH_RETRY_DELAY: float = 1.0

# Upper bound on a single push run before it is killed and reported failed
# Override: PUSH_TIMEOUT=<seconds>
DEFAULT_PUSH_TIMEOUT: float = 600.0

# =============================================================================
# CREDENTIAL STATE DEFAULTS
# =============================================================================

# Quiet period after the last key update before the state file is flushed
# Override: AUTH_SAVE_DEBOUNCE=<seconds>
DEFAULT_AUTH_SAVE_DEBOUNCE: float = 0.1

DEFAULT_AUTH_STATE_RELPATH: str = "auth/whatsapp-session.json"

# =============================================================================
# DIGEST DEFAULTS
# =============================================================================

# Lines starting with this marker are ignored when deciding whether a
# generated file changed
VOLATILE_LINE_MARKER: str = "Export Date:"

# Number of most recent days included by default in a digest run
DEFAULT_DAYS_TO_SYNC: int = 30
