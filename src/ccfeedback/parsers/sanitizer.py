# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Extract structured facts from AddressSanitizer/LeakSanitizer reports.

Each recognised defect class is one :class:`DefectClass` entry in
:data:`DEFECT_CLASSES`: the pattern that opens a report, how far the report
extends, and the strategy that turns the report into a fact. Classes are tried
in table order and every report found is emitted.

The anchor of a report is the *first backtrace frame whose file is the
analyzed document*, not frame ``#0``: frame ``#0`` usually points into the
sanitizer runtime (``malloc``, ``free``...).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePath
from typing import Final

from ..core.models import FactKind, JsonValue, RelatedLocation, StructuredFact
from ..core.process import TIMEOUT_EXIT_CODE
from ..core.severity import Severity
from ..errors import ParseError

LOGGER = logging.getLogger(__name__)

FRAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\s*#(?P<index>[0-9]+)\s+(?P<detail>.*?)\s*$", re.MULTILINE)
FRAME_FUNCTION_PATTERN: Final[re.Pattern[str]] = re.compile(r"\bin (?P<function>\S+)")
FRAME_LOCATION_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?P<file>[^\s()]+?):(?P<line>[0-9]+)(?::(?P<column>[0-9]+))?\)?$",
)
BLANK_LINE_PATTERN: Final[re.Pattern[str]] = re.compile(r"\n[ \t]*(?:\n|$)")
REPORT_PREFIX_PATTERN: Final[re.Pattern[str]] = re.compile(r"^=+[0-9]+=+(?:ERROR|WARNING):\s*")
EXIT_MARKER_PATTERN: Final[re.Pattern[str]] = re.compile(r"-?[0-9]+")
LEAK_OBJECTS_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?P<count>[0-9]+) object\(s\)")
SCOPE_FRAME_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"This frame[\s\S]*?'(?P<variable>[^'\n]+)'[^\n]*?\(line (?P<line>[0-9]+)\)",
)
FREED_BY_PATTERN: Final[re.Pattern[str]] = re.compile(r"freed by thread")
ALLOCATED_BY_PATTERN: Final[re.Pattern[str]] = re.compile(r"previously allocated")
ACCESS_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?:READ|WRITE) of size")

LEAK_SANITIZER: Final[str] = "LeakSanitizer"
ADDRESS_SANITIZER: Final[str] = "AddressSanitizer"


class BlockExtent(str, Enum):
    """Describe where a report block ends."""

    PARAGRAPH = "paragraph"
    REPORT = "report"


@dataclass(slots=True, frozen=True)
class Frame:
    """One ``#N`` backtrace frame that carries a source location."""

    index: int
    file: str
    line: int
    column: int | None
    function: str | None
    text: str


def iter_frames(text: str) -> Iterator[Frame]:
    """Yield backtrace frames of ``text`` that name a ``file:line`` location.

    Args:
        text: Report section to scan.

    Yields:
        Frame: Frames in the order they appear.
    """

    for match in FRAME_PATTERN.finditer(text):
        detail = match.group("detail")
        location = FRAME_LOCATION_PATTERN.search(detail)
        if location is None:
            continue
        function = FRAME_FUNCTION_PATTERN.search(detail)
        column = location.group("column")
        yield Frame(
            index=int(match.group("index")),
            file=location.group("file"),
            line=int(location.group("line")),
            column=int(column) if column else None,
            function=function.group("function") if function else None,
            text=match.group(0).strip(),
        )


@dataclass(slots=True, frozen=True)
class FileMatcher:
    """Decide whether a frame file refers to the analyzed document."""

    targets: tuple[str, ...]

    def matches(self, candidate: str) -> bool:
        """Return ``True`` when ``candidate`` names one of the targets.

        Relative frame paths match when they form a trailing component
        sequence of an absolute target (and vice versa).
        """

        candidate_parts = PurePath(candidate).parts
        for target in self.targets:
            if candidate == target:
                return True
            target_parts = PurePath(target).parts
            shorter, longer = sorted((candidate_parts, target_parts), key=len)
            if shorter and tuple(longer[-len(shorter) :]) == tuple(shorter):
                if not PurePath(*shorter).is_absolute():
                    return True
        return False

    def first_frame(self, text: str) -> Frame | None:
        """Return the first frame in ``text`` that references a target file."""

        for frame in iter_frames(text):
            if self.matches(frame.file):
                return frame
        return None


@dataclass(slots=True)
class Report:
    """One report block located inside a sanitizer capture."""

    defect: DefectClass
    block: str
    header: str
    real_path: str
    matcher: FileMatcher

    def section(self, pattern: re.Pattern[str]) -> str:
        """Return the paragraph of the block opened by ``pattern``.

        Raises:
            ParseError: If the block has no such section.
        """

        found = paragraph_at(self.block, pattern)
        if found is None:
            raise ParseError(self.block, f"{self.defect.kind.value} report lacks '{pattern.pattern}' section")
        return found


ExtractStrategy = Callable[[Report], StructuredFact]


@dataclass(slots=True, frozen=True)
class DefectClass:
    """Table entry describing one recognised sanitizer defect class."""

    kind: FactKind
    sanitizer: str
    start: re.Pattern[str]
    extent: BlockExtent
    extract: ExtractStrategy


def paragraph_at(text: str, pattern: re.Pattern[str], start: int = 0) -> str | None:
    """Return the blank-line delimited paragraph of ``text`` starting at ``pattern``.

    Args:
        text: Text to search.
        pattern: Pattern marking the paragraph start.
        start: Offset where the search begins.

    Returns:
        str | None: Paragraph text from the start of the matching line, or
        ``None`` when ``pattern`` does not occur.
    """

    match = pattern.search(text, start)
    if match is None:
        return None
    line_start = text.rfind("\n", 0, match.start()) + 1
    end = BLANK_LINE_PATTERN.search(text, match.end())
    return text[line_start : end.start() if end else len(text)]


def iter_report_blocks(defect: DefectClass, text: str) -> Iterator[tuple[str, str]]:
    """Yield ``(block, header)`` pairs for every report of ``defect`` in ``text``."""

    starts = [match.start() for match in defect.start.finditer(text)]
    line_starts = [text.rfind("\n", 0, offset) + 1 for offset in starts]
    for position, line_start in enumerate(line_starts):
        header_end = text.find("\n", line_start)
        header = text[line_start : header_end if header_end != -1 else len(text)]
        if defect.extent is BlockExtent.PARAGRAPH:
            end_match = BLANK_LINE_PATTERN.search(text, starts[position])
            end = end_match.start() if end_match else len(text)
        else:
            end = line_starts[position + 1] if position + 1 < len(line_starts) else len(text)
        yield text[line_start:end].rstrip(), REPORT_PREFIX_PATTERN.sub("", header.strip())


def _base_name(real_path: str) -> str:
    return Path(real_path).name


def _anchor(report: Report, section: str) -> tuple[Frame | None, int, int]:
    frame = report.matcher.first_frame(section)
    if frame is None:
        LOGGER.debug("no frame of %s references %s", report.defect.kind.value, report.real_path)
        return None, 0, 0
    column = frame.column - 1 if frame.column else 0
    return frame, frame.line - 1, column


def _fact(
    report: Report,
    *,
    line: int,
    column: int,
    related: Sequence[RelatedLocation],
    details: dict[str, JsonValue],
) -> StructuredFact:
    return StructuredFact(
        kind=report.defect.kind,
        file=report.real_path,
        line=line,
        column=column,
        severity=Severity.ERROR,
        message=report.header,
        related=tuple(related),
        details={"sanitizer": report.defect.sanitizer, **details},
        raw=report.block,
    )


def _explained_at_anchor(
    report: Report,
    section: str,
    explanation: str,
    details: dict[str, JsonValue],
) -> StructuredFact:
    frame, line, column = _anchor(report, section)
    related = [RelatedLocation(file=report.real_path, line=line, start_column=column, message=explanation)]
    if frame is not None:
        details = {**details, "frame": frame.index, "function": frame.function}
    return _fact(report, line=line, column=column, related=related, details=details)


def extract_memory_leak(report: Report) -> StructuredFact:
    """Build the fact for a ``Direct leak of ...`` report."""

    objects = LEAK_OBJECTS_PATTERN.search(report.block)
    if objects is None:
        raise ParseError(report.block, "leak report lacks an 'N object(s)' count")
    count = int(objects.group("count"))
    explanation = (
        "You have allocated memory, but this memory is not being freed after usage. "
        f"{count} memory allocation(s) are not being freed, which result in a memory leak."
    )
    return _explained_at_anchor(report, report.block, explanation, {"objects": count})


def extract_double_free(report: Report) -> StructuredFact:
    """Build the fact for an ``attempting double-free`` report."""

    section = report.section(report.defect.start)
    explanation = "You are trying to free a block, which already has been freed."
    return _explained_at_anchor(report, section, explanation, {})


def extract_use_after_free(report: Report) -> StructuredFact:
    """Build the fact for a ``heap-use-after-free`` report.

    Both the ``freed by thread`` and ``previously allocated`` backtraces are
    required; each contributes one related location.
    """

    use_section = report.section(report.defect.start)
    freed_section = report.section(FREED_BY_PATTERN)
    allocated_section = report.section(ALLOCATED_BY_PATTERN)

    frame, line, column = _anchor(report, use_section)
    freed = report.matcher.first_frame(freed_section)
    allocated = report.matcher.first_frame(allocated_section)
    name = _base_name(report.real_path)
    alloc_label = f"{name} [Ln {allocated.line}]" if allocated else "an unknown line"
    free_label = f"{name} [Ln {freed.line}]" if freed else "an unknown line"

    related: list[RelatedLocation] = []
    if allocated is not None:
        related.append(
            RelatedLocation(
                file=report.real_path,
                line=allocated.line - 1,
                message=f"You are trying to use memory that you allocated at {alloc_label}.",
            ),
        )
    if freed is not None:
        related.append(
            RelatedLocation(
                file=report.real_path,
                line=freed.line - 1,
                message=(
                    f"You have already freed this memory at {free_label}, "
                    "so you cannot access it any longer."
                ),
            ),
        )
    details: dict[str, JsonValue] = {
        "allocated_line": allocated.line if allocated else None,
        "freed_line": freed.line if freed else None,
        "explanation": (
            f"You are trying to use memory that you allocated at {alloc_label}. "
            f"You have already freed this memory at {free_label}, so you cannot access it any longer."
        ),
    }
    if frame is not None:
        details["frame"] = frame.index
    return _fact(report, line=line, column=column, related=related, details=details)


def extract_stack_use_after_scope(report: Report) -> StructuredFact:
    """Build the fact for a ``stack-use-after-scope`` report."""

    declaration = SCOPE_FRAME_PATTERN.search(report.block)
    if declaration is None:
        raise ParseError(report.block, "stack-use-after-scope report lacks the 'This frame' variable listing")
    access_section = report.section(ACCESS_PATTERN)
    variable = declaration.group("variable")
    declared_line = int(declaration.group("line"))
    explanation = (
        f"You use stack variable '{variable}' from [Ln {declared_line}] outside of its scope. "
        "This means the stack variable has exceeded its lifetime, so it cannot be used any longer."
    )
    frame, line, column = _anchor(report, access_section)
    related = [
        RelatedLocation(file=report.real_path, line=line, start_column=column, message=explanation),
        RelatedLocation(
            file=report.real_path,
            line=max(declared_line - 1, 0),
            message=f"Stack variable '{variable}' is declared here.",
        ),
    ]
    details: dict[str, JsonValue] = {"variable": variable, "declared_line": declared_line}
    if frame is not None:
        details["frame"] = frame.index
    return _fact(report, line=line, column=column, related=related, details=details)


def extract_null_deref(report: Report) -> StructuredFact:
    """Build the fact for a SEGV on address zero."""

    explanation = (
        "You are trying to dereference a pointer, which points to NULL. This will lead to unpredicted behaviour."
    )
    return _explained_at_anchor(report, report.block, explanation, {})


def extract_stack_buffer_overflow(report: Report) -> StructuredFact:
    """Build the fact for a ``stack-buffer-overflow`` report."""

    section = report.section(report.defect.start)
    explanation = "You are trying to store an object that is larger than the size of the destination buffer."
    return _explained_at_anchor(report, section, explanation, {})


DEFECT_CLASSES: Final[tuple[DefectClass, ...]] = (
    DefectClass(
        kind=FactKind.MEMORY_LEAK,
        sanitizer=LEAK_SANITIZER,
        start=re.compile(r"Direct leak of"),
        extent=BlockExtent.PARAGRAPH,
        extract=extract_memory_leak,
    ),
    DefectClass(
        kind=FactKind.DOUBLE_FREE,
        sanitizer=ADDRESS_SANITIZER,
        start=re.compile(r"attempting double-free"),
        extent=BlockExtent.REPORT,
        extract=extract_double_free,
    ),
    DefectClass(
        kind=FactKind.USE_AFTER_FREE,
        sanitizer=ADDRESS_SANITIZER,
        start=re.compile(r"heap-use-after-free on address"),
        extent=BlockExtent.REPORT,
        extract=extract_use_after_free,
    ),
    DefectClass(
        kind=FactKind.STACK_USE_AFTER_SCOPE,
        sanitizer=ADDRESS_SANITIZER,
        start=re.compile(r"stack-use-after-scope on address"),
        extent=BlockExtent.REPORT,
        extract=extract_stack_use_after_scope,
    ),
    DefectClass(
        kind=FactKind.NULL_DEREF,
        sanitizer=ADDRESS_SANITIZER,
        start=re.compile(r"SEGV on unknown address (?:0x0+|\(nil\))(?![0-9a-fA-F])"),
        extent=BlockExtent.REPORT,
        extract=extract_null_deref,
    ),
    DefectClass(
        kind=FactKind.STACK_BUFFER_OVERFLOW,
        sanitizer=ADDRESS_SANITIZER,
        start=re.compile(r"stack-buffer-overflow on address"),
        extent=BlockExtent.REPORT,
        extract=extract_stack_buffer_overflow,
    ),
)


def split_exit_marker(capture: str) -> tuple[str, int | None]:
    """Split the trailing exit-status line from ``capture``.

    Args:
        capture: Raw stderr capture, possibly ending in an exit-code line.

    Returns:
        tuple[str, int | None]: Capture without the marker and the exit code,
        or the stripped capture and ``None`` when no marker is present.
    """

    trimmed = capture.strip()
    head, _, last = trimmed.rpartition("\n")
    if EXIT_MARKER_PATTERN.fullmatch(last.strip()):
        return head.rstrip(), int(last.strip())
    return trimmed, None


@dataclass(slots=True)
class SanitizerExtractor:
    """Extract sanitizer facts from a runtime stderr capture.

    Attributes:
        real_path: Path of the analyzed document.
        scratch_path: Optional scratch copy that frames may reference instead.
        timeout_exit_code: Exit status marking a supervisory kill.
        timeout_seconds: Time budget quoted in the timeout message.
        defect_classes: Dispatch table tried in order.
    """

    real_path: str
    scratch_path: str | None = None
    timeout_exit_code: int = TIMEOUT_EXIT_CODE
    timeout_seconds: float | None = None
    defect_classes: Sequence[DefectClass] = field(default=DEFECT_CLASSES)

    def extract(self, capture: str) -> list[StructuredFact]:
        """Return the facts found in ``capture``.

        A trailing timeout marker short-circuits to a single ``TIMEOUT`` fact.
        Text that matches no defect class becomes one ``RUNTIME_ERROR`` fact.

        Args:
            capture: Raw stderr text of the sanitized program run.

        Returns:
            list[StructuredFact]: Facts in defect-class order.
        """

        body, exit_code = split_exit_marker(capture)
        if exit_code is not None and exit_code == self.timeout_exit_code:
            return [self._timeout_fact()]
        if not body:
            return []

        text = body.replace("\r", "") + "\n"
        targets = tuple(dict.fromkeys(path for path in (self.real_path, self.scratch_path) if path))
        matcher = FileMatcher(targets=targets)
        facts: list[StructuredFact] = []
        for defect in self.defect_classes:
            for block, header in iter_report_blocks(defect, text):
                report = Report(defect=defect, block=block, header=header, real_path=self.real_path, matcher=matcher)
                facts.append(self._extract_report(report))
        if not facts:
            facts.append(self._runtime_fact(body, reason="no recognised sanitizer report"))
        return facts

    def _extract_report(self, report: Report) -> StructuredFact:
        try:
            return report.defect.extract(report)
        except ParseError as exc:
            LOGGER.debug("falling back to a runtime error fact: %s", exc)
            return self._runtime_fact(report.block, reason=str(exc), defect=report.defect.kind)

    def _runtime_fact(self, text: str, *, reason: str, defect: FactKind | None = None) -> StructuredFact:
        details: dict[str, JsonValue] = {"reason": reason}
        if defect is not None:
            details["defect_class"] = defect.value
        return StructuredFact(
            kind=FactKind.RUNTIME_ERROR,
            file=self.real_path,
            severity=Severity.ERROR,
            message=text,
            details=details,
            raw=text,
        )

    def _timeout_fact(self) -> StructuredFact:
        budget = f" of {self.timeout_seconds:g}s" if self.timeout_seconds is not None else ""
        return StructuredFact(
            kind=FactKind.TIMEOUT,
            file=self.real_path,
            severity=Severity.ERROR,
            message=(
                f"Execution ended prematurely because it exceeded its time budget{budget}. "
                "An infinite loop may be present."
            ),
            details={"exit_code": self.timeout_exit_code},
        )


def parse_sanitizer_output(
    capture: str,
    *,
    real_path: str,
    scratch_path: str | None = None,
    timeout_exit_code: int = TIMEOUT_EXIT_CODE,
    timeout_seconds: float | None = None,
) -> list[StructuredFact]:
    """Extract sanitizer facts from ``capture``.

    Args:
        capture: Raw stderr of the sanitized program run.
        real_path: Path of the analyzed document.
        scratch_path: Optional scratch copy path.
        timeout_exit_code: Exit status marking a supervisory kill.
        timeout_seconds: Time budget quoted in the timeout message.

    Returns:
        list[StructuredFact]: Extracted facts.
    """

    extractor = SanitizerExtractor(
        real_path=real_path,
        scratch_path=scratch_path,
        timeout_exit_code=timeout_exit_code,
        timeout_seconds=timeout_seconds,
    )
    return extractor.extract(capture)


__all__ = [
    "DEFECT_CLASSES",
    "BlockExtent",
    "DefectClass",
    "FileMatcher",
    "Frame",
    "Report",
    "SanitizerExtractor",
    "iter_frames",
    "iter_report_blocks",
    "paragraph_at",
    "parse_sanitizer_output",
    "split_exit_marker",
]
