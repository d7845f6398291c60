# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Core models and helpers shared across the ccfeedback package."""

from __future__ import annotations

from .models import (
    DiagnosticRecord,
    FactKind,
    OutputPhase,
    RawAnalyzerOutput,
    RelatedLocation,
    StructuredFact,
    TextDocument,
)
from .severity import DEFAULT_SEVERITY_MAP, Severity, map_severity

__all__ = [
    "DEFAULT_SEVERITY_MAP",
    "DiagnosticRecord",
    "FactKind",
    "OutputPhase",
    "RawAnalyzerOutput",
    "RelatedLocation",
    "Severity",
    "StructuredFact",
    "TextDocument",
    "map_severity",
]
