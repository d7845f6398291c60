# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for turning structured facts into diagnostic records."""

from __future__ import annotations

from ccfeedback.core.models import DiagnosticRecord, FactKind, RelatedLocation, StructuredFact
from ccfeedback.core.severity import Severity
from ccfeedback.diagnostics.core import DiagnosticNormalizer, dedupe_records, source_tag
from ccfeedback.diagnostics.signatures import ErrorSignature, SignatureLibrary

DOCUMENT = "/work/main.c"
LINES = [
    "int main(void) {",
    "    total = 1;",
    "",
    "    return 0;",
    "}",
]


def _normalizer(**kwargs: object) -> DiagnosticNormalizer:
    options: dict[str, object] = {"document_path": DOCUMENT, "analyzer": "Clang", "document_lines": LINES}
    options.update(kwargs)
    return DiagnosticNormalizer(**options)  # type: ignore[arg-type]


def _compiler_fact(message: str, *, line: int = 1, column: int = 4, **kwargs: object) -> StructuredFact:
    return StructuredFact(
        kind=FactKind.COMPILER_DIAGNOSTIC,
        file=DOCUMENT,
        line=line,
        column=column,
        severity=Severity.ERROR,
        message=message,
        **kwargs,  # type: ignore[arg-type]
    )


def test_known_signature_adds_phase_and_explanation() -> None:
    record = _normalizer().normalize(_compiler_fact("use of undeclared identifier 'total'"))

    assert record is not None
    assert record.message == "[D][Semantic error] use of undeclared identifier 'total'"
    assert record.source == "[Clang] ccfeedback"
    assert (record.line, record.start_column, record.end_column) == (1, 4, 9)
    explanation = record.related[-1]
    assert explanation.line == 1
    assert "declaration" in explanation.message


def test_unknown_message_gets_generic_prefix() -> None:
    record = _normalizer(signatures=SignatureLibrary()).normalize(_compiler_fact("something unusual"))

    assert record is not None
    assert record.message == "[D] something unusual"
    assert record.related == ()


def test_first_registered_signature_wins() -> None:
    library = SignatureLibrary(
        [
            ErrorSignature(regex="unusual", phase="[First]", message="first"),
            ErrorSignature(regex="something", phase="[Second]", message="second"),
        ],
    )

    record = _normalizer(signatures=library).normalize(_compiler_fact("something unusual"))

    assert record is not None
    assert record.message == "[D][First] something unusual"
    assert [item.message for item in record.related] == ["first"]


def test_missing_column_spans_first_token_to_end_of_line() -> None:
    record = _normalizer().normalize(_compiler_fact("expected expression", line=3, column=0))

    assert record is not None
    assert (record.line, record.start_column, record.end_column) == (3, 4, len(LINES[3]))


def test_missing_column_on_empty_line_and_clamped_line() -> None:
    empty = _normalizer().normalize(_compiler_fact("expected expression", line=2, column=0))
    beyond = _normalizer().normalize(_compiler_fact("expected '}'", line=40, column=0))

    assert empty is not None and (empty.start_column, empty.end_column) == (0, 1)
    assert beyond is not None and (beyond.line, beyond.start_column, beyond.end_column) == (4, 0, 1)


def test_positions_without_document_text() -> None:
    unknown = _normalizer(document_lines=None).normalize(_compiler_fact("expected expression", column=0))
    header = _normalizer().normalize(
        _compiler_fact("unused variable 'x'", column=3).model_copy(update={"file": "/work/util.h"}),
    )

    assert unknown is not None and (unknown.start_column, unknown.end_column) == (0, 1)
    assert header is not None and (header.file, header.start_column, header.end_column) == ("/work/util.h", 3, 4)


def test_sanitizer_facts_are_errors_with_sanitizer_prefix() -> None:
    leak = StructuredFact(
        kind=FactKind.MEMORY_LEAK,
        file=DOCUMENT,
        line=1,
        column=4,
        severity=Severity.WARNING,
        message="Direct leak of 4 byte(s) in 1 object(s) allocated from:",
        details={"sanitizer": "LeakSanitizer"},
        related=(RelatedLocation(file=DOCUMENT, line=1, start_column=4, message="not freed"),),
    )
    use = leak.model_copy(update={"kind": FactKind.USE_AFTER_FREE, "details": {}, "message": "heap-use-after-free"})

    leak_record = _normalizer(analyzer="AddressSanitizer").normalize(leak)
    use_record = _normalizer(analyzer="AddressSanitizer").normalize(use)

    assert leak_record is not None and use_record is not None
    assert leak_record.message.startswith("[S][LeakSanitizer]: Direct leak")
    assert use_record.message == "[S][AddressSanitizer]: heap-use-after-free"
    assert leak_record.severity is Severity.ERROR
    assert leak_record.code == "memory-leak"
    related = leak_record.related[0]
    assert (related.line, related.end_line, related.start_column, related.end_column) == (1, 1, 4, 9)


def test_link_timeout_and_runtime_prefixes() -> None:
    normalizer = _normalizer()
    link = normalizer.normalize(
        StructuredFact(
            kind=FactKind.LINK_ERROR,
            file=DOCUMENT,
            message="main.c:(.text+0x5): undefined reference to `f'",
        ),
    )
    timeout = normalizer.normalize(StructuredFact(kind=FactKind.TIMEOUT, file=DOCUMENT, message="too slow"))
    runtime = normalizer.normalize(
        StructuredFact(kind=FactKind.RUNTIME_ERROR, file=DOCUMENT, severity=Severity.HINT, message="crashed"),
    )

    assert link is not None and link.message.startswith("[S][Linking phase] main.c:(.text+0x5)")
    assert "definition was not found while linking" in link.related[-1].message
    assert timeout is not None and timeout.message == "[S][Timeout] too slow"
    assert timeout.code == "timeout"
    assert runtime is not None and runtime.message == "[S] crashed"
    assert runtime.severity is Severity.ERROR
    assert runtime.line == 0


def test_unparseable_lines_are_hints_or_dropped() -> None:
    fact = StructuredFact(
        kind=FactKind.UNPARSEABLE,
        file=DOCUMENT,
        severity=Severity.ERROR,
        message="Line could not be parsed: ???",
    )

    shown = _normalizer().normalize(fact)
    hidden = _normalizer(report_unparsed=False).normalize(fact)

    assert shown is not None
    assert shown.message == "Line could not be parsed: ???"
    assert shown.severity is Severity.HINT
    assert hidden is None


def test_compiler_option_is_kept_as_code() -> None:
    record = _normalizer().normalize(_compiler_fact("unused variable 'total'", code="-Wunused-variable"))

    assert record is not None
    assert record.code == "-Wunused-variable"


def test_dedupe_records_keeps_first_of_each_key() -> None:
    base = DiagnosticRecord(
        file=DOCUMENT,
        line=2,
        start_column=0,
        end_column=4,
        severity=Severity.WARNING,
        message="[D] unused variable",
        code="-Wunused-variable",
        source=source_tag("Clang"),
    )
    shifted = base.model_copy(update={"start_column": 3})
    other_code = base.model_copy(update={"code": None})

    unique = dedupe_records([base, shifted, other_code])

    assert unique == [base, other_code]
