# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Diagnostic normalization, deduplication and per-file merge helpers."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Final

from ..core.models import DiagnosticRecord, FactKind, RelatedLocation, StructuredFact
from ..core.severity import Severity
from ..parsers.sanitizer import FileMatcher
from .signatures import ErrorSignature, SignatureLibrary, default_signature_library

DIAGNOSTIC_TAG: Final[str] = "[D]"
SANITIZER_TAG: Final[str] = "[S]"
LINK_PHASE: Final[str] = "[Linking phase]"
TIMEOUT_PHASE: Final[str] = "[Timeout]"
SOURCE_SUFFIX: Final[str] = "ccfeedback"

_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"\w+|\S")

# Facts whose severity is fixed regardless of what the parser suggested.
_FORCED_SEVERITY: Final[dict[FactKind, Severity]] = {
    FactKind.LINK_ERROR: Severity.ERROR,
    FactKind.RUNTIME_ERROR: Severity.ERROR,
    FactKind.TIMEOUT: Severity.ERROR,
    FactKind.UNPARSEABLE: Severity.HINT,
}

type DedupeKey = tuple[int, str | None, str]


def source_tag(analyzer: str) -> str:
    """Return the source string attached to records of ``analyzer``."""

    return f"[{analyzer}] {SOURCE_SUFFIX}"


@dataclass(slots=True)
class DiagnosticNormalizer:
    """Convert :class:`StructuredFact` objects into :class:`DiagnosticRecord` objects.

    Attributes:
        document_path: Real path of the analyzed document.
        analyzer: Name of the analyzer that produced the facts.
        document_lines: Buffer lines of the document, used for column
            defaulting and line clamping. ``None`` when unavailable.
        signatures: Known error signatures consulted for explanations.
        report_unparsed: When ``False`` unparseable lines are dropped instead
            of surfacing as hints.
    """

    document_path: str
    analyzer: str
    document_lines: Sequence[str] | None = None
    signatures: SignatureLibrary = field(default_factory=default_signature_library)
    report_unparsed: bool = True
    _matcher: FileMatcher = field(init=False)

    def __post_init__(self) -> None:
        self._matcher = FileMatcher(targets=(self.document_path,))

    @property
    def source(self) -> str:
        """Return the source tag for records created by this normalizer."""

        return source_tag(self.analyzer)

    def normalize(self, fact: StructuredFact) -> DiagnosticRecord | None:
        """Return the canonical record for ``fact``.

        Args:
            fact: Fact produced by the classifier or the sanitizer extractor.

        Returns:
            DiagnosticRecord | None: Canonical record, or ``None`` when the fact
            is an unparseable line and unparsed reporting is disabled.
        """

        if fact.kind is FactKind.UNPARSEABLE and not self.report_unparsed:
            return None

        signature = self._signature_for(fact)
        message = self._message(fact, signature)
        line, start, end = self._range(fact.file, fact.line, fact.column, 0)
        related = [self._related(location) for location in fact.related]
        if signature is not None:
            related.append(
                RelatedLocation(
                    file=fact.file,
                    line=line,
                    start_column=start,
                    end_column=end,
                    message=signature.message,
                ),
            )
        return DiagnosticRecord(
            file=fact.file,
            line=line,
            start_column=start,
            end_column=end,
            severity=self._severity(fact),
            message=message,
            code=self._code(fact),
            source=self.source,
            related=tuple(related),
        )

    def normalize_all(self, facts: Iterable[StructuredFact]) -> list[DiagnosticRecord]:
        """Normalize ``facts`` preserving their order.

        Args:
            facts: Facts extracted from one analyzer capture.

        Returns:
            list[DiagnosticRecord]: Records for every retained fact.
        """

        records: list[DiagnosticRecord] = []
        for fact in facts:
            record = self.normalize(fact)
            if record is not None:
                records.append(record)
        return records

    def _signature_for(self, fact: StructuredFact) -> ErrorSignature | None:
        if fact.kind in (FactKind.COMPILER_DIAGNOSTIC, FactKind.LINK_ERROR):
            return self.signatures.match(fact.message)
        return None

    def _message(self, fact: StructuredFact, signature: ErrorSignature | None) -> str:
        kind = fact.kind
        if kind.is_sanitizer:
            sanitizer = fact.details.get("sanitizer") or "AddressSanitizer"
            return f"{SANITIZER_TAG}[{sanitizer}]: {fact.message}"
        if kind is FactKind.LINK_ERROR:
            return f"{SANITIZER_TAG}{LINK_PHASE} {fact.message}"
        if kind is FactKind.TIMEOUT:
            return f"{SANITIZER_TAG}{TIMEOUT_PHASE} {fact.message}"
        if kind is FactKind.RUNTIME_ERROR:
            return f"{SANITIZER_TAG} {fact.message}"
        if kind is FactKind.UNPARSEABLE:
            return fact.message
        if signature is not None:
            return f"{DIAGNOSTIC_TAG}{signature.phase} {fact.message}"
        return f"{DIAGNOSTIC_TAG} {fact.message}"

    def _severity(self, fact: StructuredFact) -> Severity:
        if fact.kind.is_sanitizer:
            return Severity.ERROR
        return _FORCED_SEVERITY.get(fact.kind, fact.severity)

    def _code(self, fact: StructuredFact) -> str | None:
        if fact.code:
            return fact.code
        if fact.kind.is_sanitizer or fact.kind is FactKind.TIMEOUT:
            return fact.kind.value
        return None

    def _related(self, location: RelatedLocation) -> RelatedLocation:
        line, start, end = self._range(location.file, location.line, location.start_column, location.end_column)
        return RelatedLocation(
            file=location.file,
            line=line,
            end_line=location.end_line if location.end_line is not None else line,
            start_column=start,
            end_column=end,
            message=location.message,
        )

    def _range(self, file_name: str, line: int, column: int, end_column: int) -> tuple[int, int, int]:
        """Return the clamped ``(line, start, end)`` range for a location."""

        lines = self.document_lines if self._matcher.matches(file_name) else None
        if not lines:
            return line, column, end_column if end_column > column else column + 1
        line = min(line, len(lines) - 1)
        text = lines[line]
        if column == 0:
            stripped = len(text) - len(text.lstrip())
            start = stripped if stripped < len(text) else 0
            end = len(text) if len(text) > start else start + 1
            return line, start, max(end, end_column)
        if end_column > column:
            return line, column, end_column
        token = _TOKEN_PATTERN.match(text, column) if column < len(text) else None
        return line, column, token.end() if token else column + 1


def dedupe_records(records: Iterable[DiagnosticRecord]) -> list[DiagnosticRecord]:
    """Collapse records sharing ``(line, code, message)`` keeping the first.

    Args:
        records: Records in publication order.

    Returns:
        list[DiagnosticRecord]: Unique records in first-seen order.
    """

    unique: dict[DedupeKey, DiagnosticRecord] = {}
    for record in records:
        unique.setdefault(record.dedupe_key, record)
    return list(unique.values())


class MergedFileDiagnostics:
    """Per-file, deduplicated record buckets built during one analysis pass.

    A bucket may exist and be empty; that is how a pass expresses "this file
    was analyzed and currently has no diagnostics".
    """

    def __init__(self, resolve: Callable[[str], str] | None = None) -> None:
        """Initialise empty buckets.

        Args:
            resolve: Maps a record file name to the bucket key, e.g. resolving
                relative names against the workspace root. Identity by default.
        """

        self._resolve = resolve or (lambda name: name)
        self._buckets: dict[str, dict[DedupeKey, DiagnosticRecord]] = {}

    def __contains__(self, path: object) -> bool:
        return path in self._buckets

    def __iter__(self) -> Iterator[str]:
        return iter(self._buckets)

    def __len__(self) -> int:
        return len(self._buckets)

    def touch(self, path: str) -> None:
        """Ensure a (possibly empty) bucket exists for ``path``."""

        self._buckets.setdefault(path, {})

    def add(self, records: Iterable[DiagnosticRecord]) -> None:
        """Union ``records`` into their file buckets, dropping duplicates."""

        for record in records:
            bucket = self._buckets.setdefault(self._resolve(record.file), {})
            bucket.setdefault(record.dedupe_key, record)

    def records_for(self, path: str) -> list[DiagnosticRecord]:
        """Return the records of ``path`` in insertion order."""

        return list(self._buckets.get(path, {}).values())

    def items(self) -> Iterator[tuple[str, list[DiagnosticRecord]]]:
        """Yield ``(path, records)`` pairs in bucket creation order."""

        for path, bucket in self._buckets.items():
            yield path, list(bucket.values())


__all__ = [
    "DiagnosticNormalizer",
    "MergedFileDiagnostics",
    "dedupe_records",
    "source_tag",
]
