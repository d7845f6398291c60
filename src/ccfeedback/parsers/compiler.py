# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Classifier for clang/gcc diagnostic lines."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from ..core.models import FactKind, StructuredFact
from ..core.severity import DEFAULT_SEVERITY_MAP, Severity, map_severity
from ..errors import ParseError

COMPILER_LINE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(?P<file>.+?):(?P<line>[0-9]+):(?P<column>[0-9]+):\s"
    r"(?P<severity>fatal|error|warning|note)(?: error)?:\s(?P<message>.*)$",
)
INCLUDED_FROM_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^In file included from (?P<file>.+?):(?P<line>[0-9]+):$",
)
OPTION_SUFFIX_PATTERN: Final[re.Pattern[str]] = re.compile(r"\s\[(?P<option>-W[\w\-=+#]+)\]$")

# Known-noisy compiler notices that never become diagnostics.
EXCLUDED_LINE_PATTERNS: Final[tuple[str, ...]] = (
    r"WX.*",
    r"_WX.*",
    r"__WX.*",
    r"Q_.*",
    r"warning: .* incompatible with .*",
    r"warning: .* input unused",
    r"warning: include location .* is unsafe for cross-compilation.*",
    r"[0-9]+ (?:warning|error)s? generated\.",
    r"[0-9]+ warnings? and [0-9]+ errors? generated\.",
)

LINKER_LINE_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"^\S*\bld(?:\.\w+)?: "),
    re.compile(r"^collect2(?:\.exe)?: "),
    re.compile(r"linker command failed"),
    re.compile(r": undefined reference to "),
)

INCLUDED_FROM_MESSAGE: Final[str] = "Issues in file included from here"


def compile_exclusions(extra: Iterable[str] = ()) -> re.Pattern[str]:
    """Return the anchored denylist regex extended with ``extra`` patterns.

    Args:
        extra: Additional patterns configured by the user.

    Returns:
        re.Pattern[str]: Regex matching every line that should be dropped.
    """

    alternatives = [*EXCLUDED_LINE_PATTERNS, *extra]
    return re.compile(r"^(?:" + "|".join(f"(?:{pattern})" for pattern in alternatives) + r")$")


_DEFAULT_EXCLUSIONS: Final[re.Pattern[str]] = compile_exclusions()


@dataclass(slots=True)
class LineClassifier:
    """Turn one line of compiler output into a :class:`StructuredFact`.

    Attributes:
        real_path: Path of the document under analysis.
        scratch_path: Temporary copy analyzed in place of ``real_path``; file
            names equal to it are rewritten to ``real_path``.
        severity_map: Table from compiler severity word to severity.
        exclusions: Compiled denylist; matching lines are dropped.
    """

    real_path: str
    scratch_path: str | None = None
    severity_map: Mapping[str, Severity | str] = field(default_factory=lambda: dict(DEFAULT_SEVERITY_MAP))
    exclusions: re.Pattern[str] = _DEFAULT_EXCLUSIONS

    def classify(self, line: str) -> StructuredFact | None:
        """Classify ``line``.

        Args:
            line: Single line of analyzer output.

        Returns:
            StructuredFact | None: ``None`` for blank or excluded lines, an
            ``UNPARSEABLE`` fact for lines outside the grammar, otherwise the
            compiler, inclusion or link fact (positions 0-based).
        """

        text = line.rstrip("\r\n")
        if not text.strip():
            return None
        if self.exclusions.match(text):
            return None

        included = INCLUDED_FROM_PATTERN.match(text)
        if included:
            return StructuredFact(
                kind=FactKind.INCLUDED_FROM,
                file=self._rewrite(included.group("file")),
                line=_zero_based(included.group("line")),
                column=0,
                severity=Severity.WARNING,
                message=INCLUDED_FROM_MESSAGE,
            )

        match = COMPILER_LINE_PATTERN.match(text)
        if match:
            return self._compiler_fact(match)

        if any(pattern.search(text) for pattern in LINKER_LINE_PATTERNS):
            return StructuredFact(
                kind=FactKind.LINK_ERROR,
                file=self.real_path,
                severity=Severity.ERROR,
                message=text.strip(),
            )

        error = ParseError(text)
        return StructuredFact(
            kind=FactKind.UNPARSEABLE,
            file=self.real_path,
            severity=Severity.HINT,
            message=str(error),
            raw=text,
        )

    def classify_lines(self, lines: Iterable[str]) -> list[StructuredFact]:
        """Classify every line, dropping ignored ones.

        Args:
            lines: Lines of analyzer output.

        Returns:
            list[StructuredFact]: Facts in input order.
        """

        facts: list[StructuredFact] = []
        for line in lines:
            fact = self.classify(line)
            if fact is not None:
                facts.append(fact)
        return facts

    def _compiler_fact(self, match: re.Match[str]) -> StructuredFact:
        message = match.group("message")
        code: str | None = None
        option = OPTION_SUFFIX_PATTERN.search(message)
        if option:
            code = option.group("option")
            message = message[: option.start()]
        word = match.group("severity")
        return StructuredFact(
            kind=FactKind.COMPILER_DIAGNOSTIC,
            file=self._rewrite(match.group("file")),
            line=_zero_based(match.group("line")),
            column=_zero_based(match.group("column")),
            severity=map_severity(word, self.severity_map),
            message=message,
            code=code,
            details={"severity_word": word},
        )

    def _rewrite(self, file_name: str) -> str:
        if self.scratch_path and _same_path(file_name, self.scratch_path):
            return self.real_path
        return file_name


def _zero_based(value: str) -> int:
    return max(int(value) - 1, 0)


def _same_path(left: str, right: str) -> bool:
    return left == right or Path(left) == Path(right)


def parse_compiler_output(
    lines: Sequence[str],
    *,
    real_path: str,
    scratch_path: str | None = None,
    severity_map: Mapping[str, Severity | str] | None = None,
    extra_exclusions: Iterable[str] = (),
) -> list[StructuredFact]:
    """Classify compiler output lines into structured facts.

    Args:
        lines: Captured compiler output.
        real_path: Path of the document under analysis.
        scratch_path: Scratch copy compiled instead of ``real_path``.
        severity_map: Optional override of the severity table.
        extra_exclusions: User denylist entries appended to the fixed set.

    Returns:
        list[StructuredFact]: Facts extracted from ``lines``.
    """

    extra = tuple(extra_exclusions)
    classifier = LineClassifier(
        real_path=real_path,
        scratch_path=scratch_path,
        severity_map=dict(severity_map) if severity_map is not None else dict(DEFAULT_SEVERITY_MAP),
        exclusions=compile_exclusions(extra) if extra else _DEFAULT_EXCLUSIONS,
    )
    return classifier.classify_lines(lines)


__all__ = [
    "COMPILER_LINE_PATTERN",
    "EXCLUDED_LINE_PATTERNS",
    "INCLUDED_FROM_MESSAGE",
    "INCLUDED_FROM_PATTERN",
    "LineClassifier",
    "compile_exclusions",
    "parse_compiler_output",
]
