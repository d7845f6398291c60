# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for settings loading and compiler-configuration merging."""

from __future__ import annotations

import json
from pathlib import Path
from textwrap import dedent

import pytest

from ccfeedback.config.loader import (
    SettingsResolver,
    expand_variables,
    fetch_active_config_name,
    is_excluded,
    load_settings,
    platform_config_name,
    resolve_compiler_configuration,
)
from ccfeedback.config.models import RunTrigger, Settings
from ccfeedback.core.severity import Severity
from ccfeedback.errors import AnalyzerInvocationError, ConfigurationError


def _write_properties(root: Path, configurations: list[dict[str, object]]) -> None:
    target = root / ".vscode" / "c_cpp_properties.json"
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps({"configurations": configurations, "version": 4}), encoding="utf-8")


def test_load_settings_merges_pyproject_and_project_file(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        dedent(
            """
            [tool.ccfeedback]
            run = "onType"
            debounce-seconds = 0.5
            include-paths = ["vendor/include"]

            [tool.ccfeedback.clang]
            pedantic = true
            """,
        ),
        encoding="utf-8",
    )
    (tmp_path / ".ccfeedback.toml").write_text(
        dedent(
            """
            debounce-seconds = 2.0
            signature-paths = ["course/signatures.json"]

            [clang.severity-levels]
            warning = "error"

            [sanitizer]
            enable = false
            """,
        ),
        encoding="utf-8",
    )

    settings = load_settings(tmp_path)

    assert settings.run is RunTrigger.ON_TYPE
    assert settings.debounce_seconds == 2.0
    assert settings.include_paths == ["vendor/include"]
    assert settings.clang.pedantic is True
    assert settings.clang.severity_levels["warning"] is Severity.ERROR
    assert settings.clang.severity_levels["note"] is Severity.INFORMATION
    assert settings.sanitizer.enable is False
    assert settings.signature_paths == [tmp_path / "course" / "signatures.json"]


def test_load_settings_defaults_and_overrides(tmp_path: Path) -> None:
    settings = load_settings(tmp_path, overrides={"run": "on-build", "clang": {"executable": "gcc"}})

    assert settings.run is RunTrigger.ON_BUILD
    assert settings.clang.executable == "gcc"
    assert settings.clang.enable is True


def test_invalid_settings_raise_configuration_error(tmp_path: Path) -> None:
    (tmp_path / ".ccfeedback.toml").write_text('run = "sometimes"\n', encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_settings(tmp_path)

    (tmp_path / ".ccfeedback.toml").write_text("run = [\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_settings(tmp_path)


def test_expand_variables() -> None:
    env = {"SDK": "/opt/sdk"}
    root = Path("/work")

    assert expand_variables("${workspaceFolder}/include", root, env) == "/work/include"
    assert expand_variables("${workspaceRoot}/lib", root, env) == "/work/lib"
    assert expand_variables("${env:SDK}/include", root, env) == "/opt/sdk/include"
    assert expand_variables("${SDK}/lib", root, env) == "/opt/sdk/lib"
    assert expand_variables("${unknown}/x", root, env) == "${unknown}/x"


def test_compiler_configuration_globs_excludes_and_dedupes(tmp_path: Path) -> None:
    root = tmp_path.resolve()
    for directory in ("include", "src/detail", "third_party/zlib"):
        (root / directory).mkdir(parents=True)
    _write_properties(
        root,
        [
            {"name": "Mac", "includePath": ["/mac/only"], "defines": ["MAC"]},
            {
                "name": "Linux",
                "includePath": ["${workspaceFolder}/**", "/does/not/exist", "${workspaceFolder}/include"],
                "defines": ["DEBUG", "DEBUG", "LEVEL=2"],
                "cStandard": "c99",
            },
        ],
    )
    base = Settings(defines=["DEBUG"], exclude_from_workspace_paths=["third_party"])

    resolved = resolve_compiler_configuration(base, root, "Linux")

    assert (root / "include").as_posix() in resolved.include_paths
    assert (root / "src" / "detail").as_posix() in resolved.include_paths
    assert not any("third_party" in path for path in resolved.include_paths)
    assert not any(path == "/does/not/exist" for path in resolved.include_paths)
    assert len(resolved.include_paths) == len(set(resolved.include_paths))
    assert resolved.defines == ["DEBUG", "LEVEL=2"]
    assert resolved.standard == ["c99"]
    assert base.include_paths == []
    assert "MAC" not in resolved.defines


def test_external_include_paths_are_never_excluded(tmp_path: Path) -> None:
    root = (tmp_path / "ws").resolve()
    external = (tmp_path / "sdk" / "include").resolve()
    root.mkdir()
    external.mkdir(parents=True)
    _write_properties(root, [{"name": "Linux", "includePath": [str(external)]}])
    base = Settings(exclude_from_workspace_paths=[str(tmp_path / "sdk")])

    resolved = resolve_compiler_configuration(base, root, "Linux")

    assert resolved.include_paths == [external.as_posix()]


def test_malformed_compiler_configuration_is_ignored(tmp_path: Path) -> None:
    target = tmp_path / ".vscode" / "c_cpp_properties.json"
    target.parent.mkdir()
    target.write_text("{ broken", encoding="utf-8")
    base = Settings(include_paths=["/opt/include"])

    resolved = resolve_compiler_configuration(base, tmp_path, "Linux")

    assert resolved.include_paths == ["/opt/include"]
    assert resolved is not base


def test_is_excluded(tmp_path: Path) -> None:
    settings = Settings(exclude_from_workspace_paths=["${workspaceFolder}/build", "vendor"])

    assert is_excluded(tmp_path / "build" / "gen.h", settings, tmp_path)
    assert is_excluded(tmp_path / "vendor" / "lib.h", settings, tmp_path)
    assert not is_excluded(tmp_path / "src" / "main.c", settings, tmp_path)


def test_fetch_active_config_name_retries_until_answer() -> None:
    answers: list[object] = [TimeoutError("not ready"), AnalyzerInvocationError("cpptools", "busy"), "Custom"]
    sleeps: list[float] = []

    def provider() -> str | None:
        answer = answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return str(answer)

    name = fetch_active_config_name(provider, attempts=5, delay=0.25, sleep=sleeps.append)

    assert name == "Custom"
    assert sleeps == [0.25, 0.25]


def test_fetch_active_config_name_falls_back_to_platform() -> None:
    sleeps: list[float] = []

    def failing() -> str | None:
        raise OSError("no provider")

    assert fetch_active_config_name(failing, attempts=3, delay=0.1, sleep=sleeps.append) == platform_config_name()
    assert sleeps == [0.1, 0.1]
    assert fetch_active_config_name(None, attempts=3, delay=0.1) == platform_config_name()
    assert fetch_active_config_name(lambda: None, attempts=3, delay=0.1) == platform_config_name()


def test_settings_resolver_uses_active_configuration(tmp_path: Path) -> None:
    root = tmp_path.resolve()
    (root / "inc").mkdir()
    _write_properties(root, [{"name": "Course", "includePath": ["${workspaceFolder}/inc"], "defines": ["COURSE"]}])
    base = Settings()
    resolver = SettingsResolver(base, config_name_provider=lambda: "Course")

    resolved = resolver(root)

    assert resolved.include_paths == [(root / "inc").as_posix()]
    assert resolved.defines == ["COURSE"]
    assert base.defines == []


def test_settings_resolver_falls_back_to_defaults_on_bad_config(tmp_path: Path) -> None:
    (tmp_path / ".ccfeedback.toml").write_text("jobs = 0\n", encoding="utf-8")

    resolved = SettingsResolver(sleep=lambda _delay: None).resolve(tmp_path)

    assert resolved == Settings(jobs=resolved.jobs)
