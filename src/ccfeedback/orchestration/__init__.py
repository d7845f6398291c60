# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Per-document analysis orchestration."""

from __future__ import annotations

from .coordinator import (
    AnalysisContext,
    AnalysisCoordinator,
    DiagnosticSink,
    DocumentPhase,
    PassOutcome,
    SkipReason,
    Trigger,
)
from .debounce import Debouncer
from .tracker import ErrorReporter, ErrorTracker

__all__ = [
    "AnalysisContext",
    "AnalysisCoordinator",
    "Debouncer",
    "DiagnosticSink",
    "DocumentPhase",
    "ErrorReporter",
    "ErrorTracker",
    "PassOutcome",
    "SkipReason",
    "Trigger",
]
