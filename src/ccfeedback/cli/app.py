# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Command line interface for running analyses and parsing captured tool output."""

from __future__ import annotations

import json
from collections.abc import Sequence
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Annotated

import typer
from rich import box
from rich.table import Table

from ..config.loader import SettingsResolver, load_settings
from ..core.models import DiagnosticRecord, TextDocument
from ..core.severity import Severity, severity_rank
from ..diagnostics.core import DiagnosticNormalizer, dedupe_records
from ..diagnostics.signatures import load_signature_library
from ..errors import ConfigurationError
from ..logging import configure_logging, detect_tty, fail, get_console_manager, info, ok, section, warn
from ..orchestration.coordinator import AnalysisContext, AnalysisCoordinator, Trigger
from ..parsers.compiler import parse_compiler_output
from ..parsers.sanitizer import parse_sanitizer_output

app = typer.Typer(
    help="Readable compiler and sanitizer feedback for C/C++ sources.",
    no_args_is_help=True,
    add_completion=False,
)


class LogKind(str, Enum):
    """Kinds of captured output accepted by ``parse-log``."""

    COMPILER = "compiler"
    SANITIZER = "sanitizer"


FILE_ARGUMENT = Annotated[
    Path,
    typer.Argument(exists=True, dir_okay=False, resolve_path=True, help="C or C++ source file."),
]
LOG_ARGUMENT = Annotated[
    Path,
    typer.Argument(exists=True, dir_okay=False, resolve_path=True, help="Captured compiler or sanitizer output."),
]
ROOT_OPTION = Annotated[
    Path | None,
    typer.Option("--root", "-r", file_okay=False, help="Workspace root (defaults to the file's directory)."),
]
SOURCE_OPTION = Annotated[
    Path,
    typer.Option("--file", "-f", dir_okay=False, help="Source file the captured output refers to."),
]
KIND_OPTION = Annotated[
    LogKind,
    typer.Option("--kind", "-k", case_sensitive=False, help="Kind of captured output."),
]
FEEDBACK_OPTION = Annotated[
    bool,
    typer.Option("--feedback/--no-feedback", help="Publish diagnostics (disable to only clear them)."),
]
JSON_OPTION = Annotated[
    bool,
    typer.Option("--json", help="Emit records as JSON instead of a table."),
]
DEBUG_OPTION = Annotated[
    bool,
    typer.Option("--debug", help="Enable debug logging."),
]
EMOJI_OPTION = Annotated[
    bool,
    typer.Option("--emoji/--no-emoji", help="Toggle emoji output."),
]

_SEVERITY_STYLES = {
    Severity.ERROR: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFORMATION: "cyan",
    Severity.HINT: "dim",
}


class ConsoleSink:
    """Diagnostic sink keeping the last published set of every file."""

    def __init__(self) -> None:
        self._files: dict[str, list[DiagnosticRecord]] = {}
        self._lock = Lock()

    def publish(self, file_uri: str, records: Sequence[DiagnosticRecord]) -> None:
        with self._lock:
            self._files[file_uri] = list(records)

    @property
    def records(self) -> list[DiagnosticRecord]:
        """Return every currently published record."""

        with self._lock:
            return [record for bucket in self._files.values() for record in bucket]


def render_records(records: Sequence[DiagnosticRecord], *, as_json: bool, use_emoji: bool) -> None:
    """Print ``records`` as a table (or JSON) on the shared console."""

    console = get_console_manager().get(color=detect_tty(), emoji=use_emoji)
    if as_json:
        payload = [record.model_dump(mode="json") for record in records]
        console.print_json(json.dumps(payload))
        return
    if not records:
        ok("No diagnostics.", use_emoji=use_emoji)
        return
    table = Table(box=box.SIMPLE, expand=True, show_lines=False)
    table.add_column("Location", style="bold", no_wrap=True)
    table.add_column("Severity")
    table.add_column("Code")
    table.add_column("Message", overflow="fold")
    ordered = sorted(records, key=lambda item: (item.file, item.line, -severity_rank(item.severity)))
    for record in ordered:
        location = f"{Path(record.file).name}:{record.line + 1}:{record.start_column + 1}"
        table.add_row(
            location,
            f"[{_SEVERITY_STYLES[record.severity]}]{record.severity.value}[/]",
            record.code or "",
            record.message,
        )
        for related in record.related:
            table.add_row(f"  {Path(related.file).name}:{related.line + 1}", "", "", f"[dim]{related.message}[/]")
    console.print(table)


def _exit_code(records: Sequence[DiagnosticRecord]) -> int:
    return 1 if any(record.severity is Severity.ERROR for record in records) else 0


@app.command("check")
def check_command(
    file: FILE_ARGUMENT,
    root: ROOT_OPTION = None,
    feedback: FEEDBACK_OPTION = True,
    as_json: JSON_OPTION = False,
    debug: DEBUG_OPTION = False,
    use_emoji: EMOJI_OPTION = True,
) -> None:
    """Analyze FILE once with every enabled analyzer and print its diagnostics."""

    workspace = (root or file.parent).resolve()
    configure_logging(debug=debug)
    try:
        settings = load_settings(workspace)
    except ConfigurationError as exc:
        fail(str(exc), use_emoji=use_emoji)
        raise typer.Exit(code=2) from exc
    configure_logging(debug=debug or settings.debug)

    sink = ConsoleSink()
    errors: list[str] = []
    context = AnalysisContext(
        sink=sink,
        workspace_roots=(workspace,),
        feedback_enabled=feedback,
        settings_resolver=SettingsResolver(settings),
        error_reporter=errors.append,
        jobs=settings.jobs,
    )
    coordinator = AnalysisCoordinator(context)
    outcome = coordinator.analyze(TextDocument.from_path(file), Trigger.COMMAND)
    if outcome.skipped is not None:
        warn(f"{file.name} was not analyzed ({outcome.skipped.value})", use_emoji=use_emoji)
    if not as_json:
        section(f"ccfeedback: {file.name}", use_color=detect_tty())
    render_records(sink.records, as_json=as_json, use_emoji=use_emoji)
    for message in errors:
        warn(message, use_emoji=use_emoji)
    raise typer.Exit(code=_exit_code(sink.records))


@app.command("parse-log")
def parse_log_command(
    log: LOG_ARGUMENT,
    source: SOURCE_OPTION,
    kind: KIND_OPTION = LogKind.COMPILER,
    as_json: JSON_OPTION = False,
    use_emoji: EMOJI_OPTION = True,
) -> None:
    """Parse captured tool output in LOG and print the normalized diagnostics."""

    text = log.read_text(encoding="utf-8", errors="replace")
    real_path = str(source)
    if kind is LogKind.SANITIZER:
        facts = parse_sanitizer_output(text, real_path=real_path)
        analyzer = "AddressSanitizer"
    else:
        facts = parse_compiler_output(text.splitlines(), real_path=real_path)
        analyzer = "Clang"
    lines = None
    if source.is_file():
        lines = TextDocument.from_path(source).lines()
    else:
        info(f"{source} not found; columns are not widened", use_emoji=use_emoji)
    normalizer = DiagnosticNormalizer(
        document_path=real_path,
        analyzer=analyzer,
        document_lines=lines,
        signatures=load_signature_library(),
    )
    records = dedupe_records(normalizer.normalize_all(facts))
    render_records(records, as_json=as_json, use_emoji=use_emoji)
    raise typer.Exit(code=_exit_code(records))


def main() -> None:
    """Run the CLI application."""

    app()


__all__ = ["ConsoleSink", "app", "main", "render_records"]
