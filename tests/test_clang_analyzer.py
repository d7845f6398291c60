# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for the compile-only clang analyzer."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from ccfeedback.analyzers import build_analyzers
from ccfeedback.analyzers.base import Analyzer, AnalyzerRequest
from ccfeedback.analyzers.clang import ClangAnalyzer, SYNTAX_ONLY_FLAGS, language_args
from ccfeedback.config.models import ClangSettings, RunTrigger, SanitizerSettings, Settings
from ccfeedback.core.models import FactKind
from ccfeedback.core.process import CommandResult
from ccfeedback.errors import AnalysisTimeoutError, AnalyzerDisabledError


def _request(tmp_path: Path, settings: Settings, name: str = "main.c") -> AnalyzerRequest:
    return AnalyzerRequest(
        document_path=tmp_path / name,
        workspace_root=tmp_path,
        scratch_path=tmp_path / "scratch.c",
        settings=settings,
    )


def test_command_line_order(tmp_path: Path) -> None:
    settings = Settings(
        include_paths=["/opt/include"],
        defines=["DEBUG"],
        undefines=["NDEBUG"],
        clang=ClangSettings(
            pedantic=True,
            blocks=True,
            includes=["config.h"],
            warnings=["all", "extra"],
            standard_libs=["libc++"],
            extra_args=["-fno-builtin"],
        ),
    )
    analyzer = ClangAnalyzer(settings, tmp_path)

    command = analyzer.build_command(_request(tmp_path, settings))

    assert command == [
        "clang",
        *SYNTAX_ONLY_FLAGS,
        "-pedantic",
        "--stdlib=libc++",
        "-fblocks",
        "-include",
        "config.h",
        "-Wall",
        "-Wextra",
        "--std=c11",
        "-DDEBUG",
        "-UNDEBUG",
        "-I/opt/include",
        "-x",
        "c",
        "-fno-builtin",
        str(tmp_path / "main.c"),
    ]


def test_on_type_analyzes_scratch_copy_with_quoted_includes(tmp_path: Path) -> None:
    settings = Settings(run=RunTrigger.ON_TYPE, include_paths=["/opt/include"])
    analyzer = ClangAnalyzer(settings, tmp_path)

    command = analyzer.build_command(_request(tmp_path, settings))

    assert command[-1] == str(tmp_path / "scratch.c")
    index = command.index("-iquote")
    assert command[index : index + 4] == ["-iquote", str(tmp_path), "-iquote", "/opt/include"]


def test_language_args_detect_cxx_and_honour_configuration(tmp_path: Path) -> None:
    assert language_args(Settings(), tmp_path / "main.cpp")[-3:] == ["--std=c++11", "-x", "c++"]
    assert language_args(Settings(standard=["c99"], language="C"), tmp_path / "main.cpp") == [
        "--std=c99",
        "-x",
        "c",
    ]


def test_run_and_parse_rewrite_scratch_paths(tmp_path: Path, fake_runner: Any) -> None:
    settings = Settings(run=RunTrigger.ON_TYPE)
    scratch = tmp_path / "scratch.c"
    runner = fake_runner(
        CommandResult(
            args=("clang",),
            returncode=1,
            stdout="",
            stderr=f"{scratch}:4:5: error: use of undeclared identifier 'x'\n1 error generated.\n",
        ),
    )
    analyzer = ClangAnalyzer(settings, tmp_path, runner=runner)

    output = analyzer.run(_request(tmp_path, settings))
    facts = analyzer.parse(output)

    assert runner.calls[0][1].cwd == tmp_path
    assert runner.calls[0][1].timeout == settings.clang.timeout_seconds
    assert output.returncode == 1
    assert [(fact.kind, fact.file, fact.line, fact.column) for fact in facts] == [
        (FactKind.COMPILER_DIAGNOSTIC, str(tmp_path / "main.c"), 3, 4),
    ]


def test_timed_out_compile_raises(tmp_path: Path, fake_runner: Any) -> None:
    settings = Settings(clang=ClangSettings(timeout_seconds=2))
    runner = fake_runner(CommandResult(args=("clang",), returncode=124, stdout="", stderr="124", timed_out=True))
    analyzer = ClangAnalyzer(settings, tmp_path, runner=runner)

    with pytest.raises(AnalysisTimeoutError, match="exceeded 2s"):
        analyzer.run(_request(tmp_path, settings))


def test_disabled_analyzer_refuses_to_run(tmp_path: Path, fake_runner: Any) -> None:
    settings = Settings(clang=ClangSettings(enable=False))
    runner = fake_runner()
    analyzer = ClangAnalyzer(settings, tmp_path, runner=runner)

    with pytest.raises(AnalyzerDisabledError):
        analyzer.run(_request(tmp_path, settings))
    assert runner.calls == []


def test_build_analyzers_returns_enabled_analyzers(tmp_path: Path) -> None:
    both = build_analyzers(Settings(), tmp_path)
    clang_only = build_analyzers(Settings(sanitizer=SanitizerSettings(enable=False)), tmp_path)

    assert [analyzer.name for analyzer in both] == ["Clang", "AddressSanitizer"]
    assert [analyzer.name for analyzer in clang_only] == ["Clang"]
    assert all(isinstance(analyzer, Analyzer) for analyzer in both)
