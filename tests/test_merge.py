# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for per-file diagnostic buckets."""

from __future__ import annotations

from pathlib import Path

from ccfeedback.core.models import DiagnosticRecord
from ccfeedback.core.severity import Severity
from ccfeedback.diagnostics.core import MergedFileDiagnostics


def _record(file: str, line: int, message: str, *, source: str = "[Clang] ccfeedback") -> DiagnosticRecord:
    return DiagnosticRecord(
        file=file,
        line=line,
        start_column=0,
        end_column=1,
        severity=Severity.ERROR,
        message=message,
        source=source,
    )


def test_records_are_partitioned_by_file() -> None:
    merged = MergedFileDiagnostics()
    merged.add(
        [
            _record("/work/main.c", 3, "[D] a"),
            _record("/work/util.h", 1, "[D] b"),
            _record("/work/main.c", 5, "[D] c"),
        ],
    )

    assert list(merged) == ["/work/main.c", "/work/util.h"]
    assert [record.line for record in merged.records_for("/work/main.c")] == [3, 5]
    assert len(merged) == 2


def test_analyzers_contributing_to_the_same_file_are_unioned_without_duplicates() -> None:
    merged = MergedFileDiagnostics()
    merged.add([_record("/work/main.c", 3, "[D] a")])
    merged.add(
        [
            _record("/work/main.c", 3, "[D] a", source="[AddressSanitizer] ccfeedback"),
            _record("/work/main.c", 4, "[S] b", source="[AddressSanitizer] ccfeedback"),
        ],
    )

    records = merged.records_for("/work/main.c")

    assert [(record.line, record.source) for record in records] == [
        (3, "[Clang] ccfeedback"),
        (4, "[AddressSanitizer] ccfeedback"),
    ]


def test_touched_file_has_an_empty_bucket() -> None:
    merged = MergedFileDiagnostics()
    merged.touch("/work/main.c")

    assert "/work/main.c" in merged
    assert dict(merged.items()) == {"/work/main.c": []}
    assert merged.records_for("/work/other.c") == []


def test_resolver_maps_relative_names_to_bucket_keys(tmp_path: Path) -> None:
    merged = MergedFileDiagnostics(resolve=lambda name: str(tmp_path / name))
    merged.add([_record("include/util.h", 2, "[D] b")])

    assert list(merged) == [str(tmp_path / "include/util.h")]
