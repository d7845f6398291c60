# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Compile-only clang/gcc analyzer."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Final

from ..config.models import RunTrigger, Settings
from ..core.models import OutputPhase, RawAnalyzerOutput, StructuredFact
from ..core.process import CommandOptions, CommandRunner, run_command
from ..errors import AnalysisTimeoutError, AnalyzerDisabledError
from ..parsers.compiler import parse_compiler_output
from .base import AnalyzerRequest

LOGGER = logging.getLogger(__name__)

CLANG_ANALYZER_NAME: Final[str] = "Clang"

# Output shape the line classifier expects from every compiler invocation.
DIAGNOSTIC_FORMAT_FLAGS: Final[tuple[str, ...]] = (
    "-fno-color-diagnostics",
    "-fno-caret-diagnostics",
    "-fno-diagnostics-show-option",
    "-fdiagnostics-show-category=name",
    "-ferror-limit=200",
)
SYNTAX_ONLY_FLAGS: Final[tuple[str, ...]] = ("-fsyntax-only", *DIAGNOSTIC_FORMAT_FLAGS)

CXX_SUFFIXES: Final[frozenset[str]] = frozenset({".cc", ".cp", ".cpp", ".cxx", ".c++", ".hh", ".hpp", ".hxx", ".h++"})
DEFAULT_C_STANDARD: Final[str] = "c11"
DEFAULT_CXX_STANDARD: Final[str] = "c++11"


def expanded_args(prefix: str, values: Iterable[str], *, joined: bool) -> list[str]:
    """Return ``prefix`` applied to every value.

    Args:
        prefix: Flag such as ``-D`` or ``-iquote``.
        values: Values to expand.
        joined: Emit ``-DVALUE`` when ``True``, ``-iquote VALUE`` otherwise.

    Returns:
        list[str]: Expanded arguments.
    """

    args: list[str] = []
    for value in values:
        if joined:
            args.append(f"{prefix}{value}")
        else:
            args.extend((prefix, value))
    return args


def is_cxx_document(document_path: Path, language: str | None = None) -> bool:
    """Return ``True`` when the document should be compiled as C++."""

    if language:
        return language.startswith("c++")
    return document_path.suffix in CXX_SUFFIXES or document_path.suffix == ".C"


def quote_args(settings: Settings, document_path: Path) -> list[str]:
    """Return the ``-iquote`` search paths for a scratch copy compiled in on-type mode."""

    if settings.run is not RunTrigger.ON_TYPE:
        return []
    return expanded_args("-iquote", [str(document_path.parent), *settings.include_paths], joined=False)


def language_args(settings: Settings, document_path: Path) -> list[str]:
    """Return the ``-std``, ``-D``, ``-U``, ``-I`` and ``-x`` arguments shared by both analyzers."""

    cxx = is_cxx_document(document_path, settings.language)
    standards = settings.standard or [DEFAULT_CXX_STANDARD if cxx else DEFAULT_C_STANDARD]
    language = settings.language or ("c++" if cxx else "c")
    return [
        *expanded_args("--std=", standards, joined=True),
        *expanded_args("-D", settings.defines, joined=True),
        *expanded_args("-U", settings.undefines, joined=True),
        *expanded_args("-I", settings.include_paths, joined=True),
        "-x",
        language,
    ]


class ClangAnalyzer:
    """Run the compiler in syntax-only mode and classify its diagnostics."""

    def __init__(self, settings: Settings, workspace_root: Path, *, runner: CommandRunner = run_command) -> None:
        """Initialise the analyzer.

        Args:
            settings: Settings snapshot used to build the command line.
            workspace_root: Workspace root; the compiler runs from here.
            runner: Command runner used to execute the compiler.
        """

        self._settings = settings
        self._workspace_root = workspace_root
        self._runner = runner

    @property
    def name(self) -> str:
        return CLANG_ANALYZER_NAME

    @property
    def enabled(self) -> bool:
        return self._settings.clang.enable

    @property
    def triggers(self) -> frozenset[RunTrigger]:
        return frozenset({RunTrigger.ON_SAVE, RunTrigger.ON_TYPE, RunTrigger.ON_BUILD})

    def build_command(self, request: AnalyzerRequest) -> list[str]:
        """Return the compiler command line for ``request``.

        Args:
            request: Document, workspace and settings for this pass.

        Returns:
            list[str]: Command and arguments.
        """

        settings = request.settings
        clang = settings.clang
        pedantic = ["-pedantic"] if clang.pedantic else []
        if clang.pedantic_errors:
            pedantic.append("-pedantic-errors")
        switches = [
            flag
            for enabled, flag in (
                (clang.ms_extensions, "-fms-extensions"),
                (clang.no_exceptions, "-fno-exceptions"),
                (clang.no_rtti, "-fno-rtti"),
                (clang.blocks, "-fblocks"),
            )
            if enabled
        ]
        return [
            clang.executable,
            *SYNTAX_ONLY_FLAGS,
            *quote_args(settings, request.document_path),
            *pedantic,
            *expanded_args("--stdlib=", clang.standard_libs, joined=True),
            *switches,
            *expanded_args("-include", clang.includes, joined=False),
            *expanded_args("-W", clang.warnings, joined=True),
            *language_args(settings, request.document_path),
            *clang.extra_args,
            str(request.target),
        ]

    def run(self, request: AnalyzerRequest) -> RawAnalyzerOutput:
        """Compile the document in syntax-only mode.

        Raises:
            AnalyzerDisabledError: If the analyzer is disabled.
            AnalyzerNotFoundError: If the compiler cannot be resolved.
            AnalysisTimeoutError: If the compiler exceeded its time budget.
        """

        if not self.enabled:
            raise AnalyzerDisabledError(self.name, "analyzer is disabled in settings")
        command = self.build_command(request)
        LOGGER.debug("running %s", " ".join(command))
        options = CommandOptions(cwd=self._workspace_root, timeout=request.settings.clang.timeout_seconds)
        result = self._runner(command, options)
        if result.timed_out:
            raise AnalysisTimeoutError(
                f"compiling {request.document_path.name} exceeded "
                f"{request.settings.clang.timeout_seconds:g}s",
            )
        return RawAnalyzerOutput(
            analyzer=self.name,
            phase=OutputPhase.COMPILE,
            real_path=request.document_path,
            scratch_path=request.scratch_path,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    def parse(self, output: RawAnalyzerOutput) -> list[StructuredFact]:
        return parse_compiler_output(
            [*output.stderr, *output.stdout],
            real_path=str(output.real_path),
            scratch_path=str(output.scratch_path) if output.scratch_path else None,
            severity_map=self._settings.clang.severity_levels,
            extra_exclusions=self._settings.excluded_line_patterns,
        )


__all__ = [
    "CLANG_ANALYZER_NAME",
    "DIAGNOSTIC_FORMAT_FLAGS",
    "SYNTAX_ONLY_FLAGS",
    "ClangAnalyzer",
    "expanded_args",
    "is_cxx_document",
    "language_args",
    "quote_args",
]
