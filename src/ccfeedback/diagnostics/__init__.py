# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Diagnostics package exposing normalisation, merge and signature helpers."""

from __future__ import annotations

from .core import DiagnosticNormalizer, MergedFileDiagnostics, dedupe_records, source_tag
from .signatures import ErrorSignature, SignatureLibrary, default_signature_library, load_signature_library

__all__ = (
    "DiagnosticNormalizer",
    "ErrorSignature",
    "MergedFileDiagnostics",
    "SignatureLibrary",
    "dedupe_records",
    "default_signature_library",
    "load_signature_library",
    "source_tag",
)
