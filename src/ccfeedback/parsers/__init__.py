# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Parsers turning raw compiler and sanitizer output into structured facts."""

from __future__ import annotations

from .compiler import LineClassifier, compile_exclusions, parse_compiler_output
from .sanitizer import DEFECT_CLASSES, SanitizerExtractor, parse_sanitizer_output

__all__ = (
    "DEFECT_CLASSES",
    "LineClassifier",
    "SanitizerExtractor",
    "compile_exclusions",
    "parse_compiler_output",
    "parse_sanitizer_output",
)
