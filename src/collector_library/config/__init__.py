# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .settings import CollectorSettings

__all__ = ["CollectorSettings"]
