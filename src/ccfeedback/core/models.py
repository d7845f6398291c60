# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Core data models shared across the ccfeedback package."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .severity import Severity

type JsonScalar = str | int | float | bool | None
type JsonValue = JsonScalar | list[JsonValue] | dict[str, JsonValue]


def coerce_output_sequence(value: str | Sequence[str] | None) -> list[str]:
    """Normalise stdout/stderr payloads into a list of strings.

    Args:
        value: Output payload captured from an analyzer.

    Returns:
        list[str]: Sequence of output lines represented as strings.
    """

    if value is None:
        return []
    if isinstance(value, str):
        return value.splitlines()
    return [str(item) for item in value]


class FactKind(str, Enum):
    """Enumerate the structured facts produced by the parsers."""

    COMPILER_DIAGNOSTIC = "compiler-diagnostic"
    INCLUDED_FROM = "included-from"
    MEMORY_LEAK = "memory-leak"
    DOUBLE_FREE = "double-free"
    USE_AFTER_FREE = "use-after-free"
    STACK_USE_AFTER_SCOPE = "stack-use-after-scope"
    NULL_DEREF = "null-deref"
    STACK_BUFFER_OVERFLOW = "stack-buffer-overflow"
    LINK_ERROR = "link-error"
    RUNTIME_ERROR = "runtime-error"
    TIMEOUT = "timeout"
    UNPARSEABLE = "unparseable"

    @property
    def is_sanitizer(self) -> bool:
        """Return ``True`` for facts extracted from runtime sanitizer output."""

        return self in _SANITIZER_KINDS


_SANITIZER_KINDS = frozenset(
    {
        FactKind.MEMORY_LEAK,
        FactKind.DOUBLE_FREE,
        FactKind.USE_AFTER_FREE,
        FactKind.STACK_USE_AFTER_SCOPE,
        FactKind.NULL_DEREF,
        FactKind.STACK_BUFFER_OVERFLOW,
    },
)


class RelatedLocation(BaseModel):
    """Secondary location attached to a fact or diagnostic record.

    Positions are 0-based. ``end_line`` defaults to ``line`` and a zero
    ``end_column`` means "unknown", letting the normaliser widen the range.
    """

    model_config = ConfigDict(frozen=True)

    file: str
    line: int = Field(default=0, ge=0)
    end_line: int | None = None
    start_column: int = Field(default=0, ge=0)
    end_column: int = Field(default=0, ge=0)
    message: str


class StructuredFact(BaseModel):
    """Tagged fact recognised in raw analyzer output.

    Every fact carries a primary anchor (``file``, ``line``, ``column``; all
    0-based, 0 when unknown) plus zero or more related locations explaining
    the defect. ``details`` holds the class-specific values that were
    extracted, e.g. the leaked object count or the out-of-scope variable.
    """

    model_config = ConfigDict(validate_assignment=True)

    kind: FactKind
    file: str
    line: int = Field(default=0, ge=0)
    column: int = Field(default=0, ge=0)
    severity: Severity = Severity.ERROR
    message: str
    code: str | None = None
    related: tuple[RelatedLocation, ...] = Field(default_factory=tuple)
    details: dict[str, JsonValue] = Field(default_factory=dict)
    raw: str | None = None


class DiagnosticRecord(BaseModel):
    """Canonical diagnostic published to a sink.

    ``file`` always names the real document path (never a scratch copy) and
    every position is 0-based.
    """

    model_config = ConfigDict(frozen=True)

    file: str
    line: int = Field(ge=0)
    start_column: int = Field(ge=0)
    end_column: int = Field(ge=0)
    severity: Severity
    message: str
    code: str | None = None
    source: str
    related: tuple[RelatedLocation, ...] = Field(default_factory=tuple)

    @property
    def dedupe_key(self) -> tuple[int, str | None, str]:
        """Return the identity used when collapsing duplicate records."""

        return self.line, self.code, self.message


class OutputPhase(str, Enum):
    """Identify which step of an analyzer produced a capture."""

    COMPILE = "compile"
    RUNTIME = "runtime"


class RawAnalyzerOutput(BaseModel):
    """Text captured from one analyzer invocation."""

    model_config = ConfigDict(validate_assignment=True)

    analyzer: str
    phase: OutputPhase = OutputPhase.COMPILE
    real_path: Path
    scratch_path: Path | None = None
    returncode: int = 0
    stdout: list[str] = Field(default_factory=list)
    stderr: list[str] = Field(default_factory=list)

    @field_validator("stdout", "stderr", mode="before")
    @classmethod
    def _coerce_output(cls, value: str | Sequence[str] | None) -> list[str]:
        """Normalise stdout/stderr payloads prior to model validation.

        Args:
            value: Raw output payload provided by the analyzer.

        Returns:
            list[str]: Sequence of output lines represented as strings.
        """

        return coerce_output_sequence(value)

    @property
    def text(self) -> str:
        """Return stderr followed by stdout as a single capture."""

        return "\n".join([*self.stderr, *self.stdout])


class TextDocument(BaseModel):
    """Snapshot of an open document as seen by the coordinator."""

    model_config = ConfigDict(frozen=True)

    uri: str
    path: Path | None
    version: int = 0
    text: str = ""
    scheme: str = "file"

    @classmethod
    def from_path(cls, path: Path, *, version: int = 0, text: str | None = None) -> TextDocument:
        """Build a document snapshot for a local file.

        Args:
            path: Filesystem path of the document.
            version: Editor version counter for the snapshot.
            text: Buffer contents. Read from ``path`` when omitted.

        Returns:
            TextDocument: Snapshot describing the file.
        """

        resolved = path.resolve()
        content = text if text is not None else resolved.read_text(encoding="utf-8", errors="replace")
        return cls(uri=resolved.as_uri(), path=resolved, version=version, text=content)

    @property
    def is_local(self) -> bool:
        """Return ``True`` when the document is backed by a local file."""

        return self.scheme == "file" and self.path is not None

    def lines(self) -> list[str]:
        """Return the buffer split into lines with carriage returns removed."""

        return self.text.replace("\r", "").split("\n")


__all__ = [
    "DiagnosticRecord",
    "FactKind",
    "JsonScalar",
    "JsonValue",
    "OutputPhase",
    "RawAnalyzerOutput",
    "RelatedLocation",
    "StructuredFact",
    "TextDocument",
    "coerce_output_sequence",
]
