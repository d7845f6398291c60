# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Document and settings cache."""

from __future__ import annotations

from .documents import DocumentCache, DocumentState

__all__ = ["DocumentCache", "DocumentState"]
