# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""AddressSanitizer analyzer: build the document instrumented and run it."""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Final

from ..config.models import RunTrigger, Settings
from ..core.models import OutputPhase, RawAnalyzerOutput, StructuredFact
from ..core.process import CommandOptions, CommandRunner, run_command
from ..errors import AnalyzerDisabledError
from ..parsers.compiler import parse_compiler_output
from ..parsers.sanitizer import parse_sanitizer_output
from .base import AnalyzerRequest
from .clang import DIAGNOSTIC_FORMAT_FLAGS, is_cxx_document, language_args, quote_args

LOGGER = logging.getLogger(__name__)

SANITIZER_ANALYZER_NAME: Final[str] = "AddressSanitizer"
SANITIZE_FLAGS: Final[tuple[str, ...]] = ("-fsanitize=address", "-fno-omit-frame-pointer", "-g")
C_SOURCE_SUFFIXES: Final[frozenset[str]] = frozenset({".c"})
CXX_SOURCE_SUFFIXES: Final[frozenset[str]] = frozenset({".C", ".cc", ".cp", ".cpp", ".cxx", ".c++"})
DEFAULT_C_DRIVER: Final[str] = "clang"
DEFAULT_CXX_DRIVER: Final[str] = "clang++"
_LEAK_OPTIONS: Final[str] = "detect_leaks=1"


def compiler_driver(settings: Settings, document_path: Path) -> str:
    """Return the configured sanitizer compiler, or the C/C++ driver matching the document."""

    if settings.sanitizer.compiler:
        return settings.sanitizer.compiler
    return DEFAULT_CXX_DRIVER if is_cxx_document(document_path, settings.language) else DEFAULT_C_DRIVER


def sibling_sources(settings: Settings, document_path: Path) -> list[str]:
    """Return the other translation units in the document directory, sorted by name.

    Every source of the document's language next to it is linked into the program.

    Args:
        settings: Settings snapshot; ``sanitizer.link_directory_sources`` disables the scan.
        document_path: Real path of the analyzed document.

    Returns:
        list[str]: Paths of the sibling sources, excluding the document itself.
    """

    directory = document_path.parent
    if not settings.sanitizer.link_directory_sources or not directory.is_dir():
        return []
    suffixes = CXX_SOURCE_SUFFIXES if is_cxx_document(document_path, settings.language) else C_SOURCE_SUFFIXES
    return sorted(
        str(path)
        for path in directory.iterdir()
        if path.suffix in suffixes and path.name != document_path.name and path.is_file()
    )


def _runtime_env() -> dict[str, str]:
    env = dict(os.environ)
    if sys.platform.startswith("linux"):
        env.setdefault("ASAN_OPTIONS", _LEAK_OPTIONS)
    return env


class SanitizerAnalyzer:
    """Compile the document with AddressSanitizer and collect its runtime reports."""

    def __init__(self, settings: Settings, workspace_root: Path, *, runner: CommandRunner = run_command) -> None:
        self._settings = settings
        self._workspace_root = workspace_root
        self._runner = runner

    @property
    def name(self) -> str:
        return SANITIZER_ANALYZER_NAME

    @property
    def enabled(self) -> bool:
        return self._settings.sanitizer.enable

    @property
    def triggers(self) -> frozenset[RunTrigger]:
        # Running the program on every keystroke is too expensive.
        return frozenset({RunTrigger.ON_SAVE, RunTrigger.ON_BUILD})

    def build_compile_command(self, request: AnalyzerRequest, executable: Path) -> list[str]:
        """Return the instrumented build command writing ``executable``."""

        settings = request.settings
        return [
            compiler_driver(settings, request.document_path),
            *SANITIZE_FLAGS,
            *DIAGNOSTIC_FORMAT_FLAGS,
            *quote_args(settings, request.document_path),
            *language_args(settings, request.document_path),
            *settings.sanitizer.compile_args,
            *sibling_sources(settings, request.document_path),
            str(request.target),
            "-o",
            str(executable),
        ]

    def run(self, request: AnalyzerRequest) -> RawAnalyzerOutput:
        """Build and execute the document.

        A failed build returns the compiler output with the ``COMPILE`` phase.
        Otherwise the program output is returned with the ``RUNTIME`` phase;
        when the program fails its exit status is appended to stderr as the
        trailing marker line.

        Raises:
            AnalyzerDisabledError: If the analyzer is disabled.
            AnalyzerNotFoundError: If the compiler cannot be resolved.
        """

        if not self.enabled:
            raise AnalyzerDisabledError(self.name, "analyzer is disabled in settings")
        sanitizer = request.settings.sanitizer
        with tempfile.TemporaryDirectory(prefix="ccfeedback-") as workdir:
            executable = Path(workdir) / f"{request.document_path.stem or 'program'}.out"
            command = self.build_compile_command(request, executable)
            LOGGER.debug("building %s", " ".join(command))
            built = self._runner(
                command,
                CommandOptions(cwd=self._workspace_root, timeout=request.settings.clang.timeout_seconds),
            )
            if built.returncode != 0:
                LOGGER.debug("sanitizer build of %s failed with %d", request.document_path, built.returncode)
                return self._output(request, OutputPhase.COMPILE, built.returncode, built.stdout, built.stderr)

            options = CommandOptions(
                cwd=request.document_path.parent,
                env=_runtime_env(),
                timeout=sanitizer.timeout_seconds,
                timeout_exit_code=sanitizer.timeout_exit_code,
            )
            result = self._runner([str(executable), *sanitizer.program_args], options)

        stderr = result.stderr
        if result.returncode != 0 and not result.timed_out:
            stderr = f"{stderr.rstrip()}\n{result.returncode}" if stderr.strip() else str(result.returncode)
        return self._output(request, OutputPhase.RUNTIME, result.returncode, result.stdout, stderr)

    def _output(
        self,
        request: AnalyzerRequest,
        phase: OutputPhase,
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> RawAnalyzerOutput:
        return RawAnalyzerOutput(
            analyzer=self.name,
            phase=phase,
            real_path=request.document_path,
            scratch_path=request.scratch_path,
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
        )

    def parse(self, output: RawAnalyzerOutput) -> list[StructuredFact]:
        """Return facts from a build failure or from the program's sanitizer reports.

        A program that exited cleanly produces no facts; its stdout is the
        program's own output and is never scanned.
        """

        scratch = str(output.scratch_path) if output.scratch_path else None
        if output.phase is OutputPhase.COMPILE:
            return parse_compiler_output(
                [*output.stderr, *output.stdout],
                real_path=str(output.real_path),
                scratch_path=scratch,
                severity_map=self._settings.clang.severity_levels,
                extra_exclusions=self._settings.excluded_line_patterns,
            )
        if output.returncode == 0:
            return []
        return parse_sanitizer_output(
            "\n".join(output.stderr),
            real_path=str(output.real_path),
            scratch_path=scratch,
            timeout_exit_code=self._settings.sanitizer.timeout_exit_code,
            timeout_seconds=self._settings.sanitizer.timeout_seconds,
        )


__all__ = [
    "SANITIZER_ANALYZER_NAME",
    "SANITIZE_FLAGS",
    "SanitizerAnalyzer",
    "compiler_driver",
    "sibling_sources",
]
