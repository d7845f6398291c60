# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for the ccfeedback command line interface."""

from __future__ import annotations

import json
from pathlib import Path
from textwrap import dedent

from typer.testing import CliRunner

from ccfeedback.cli.app import app

LEAK_LOG = dedent(
    """\
    ==4242==ERROR: LeakSanitizer: detected memory leaks

    Direct leak of 16 byte(s) in 1 object(s) allocated from:
        #0 0x4c6d90 in malloc (/tmp/main.out+0x4c6d90)
        #1 0x4f59f1 in main {path}:2:17

    SUMMARY: AddressSanitizer: 16 byte(s) leaked in 1 allocation(s).
    """,
)


def _source(tmp_path: Path) -> Path:
    source = tmp_path / "main.c"
    source.write_text("int main(void) {\n    char *p = malloc(16);\n    return 0;\n}\n", encoding="utf-8")
    return source


def test_parse_log_reports_sanitizer_records_as_json(tmp_path: Path) -> None:
    source = _source(tmp_path)
    log = tmp_path / "run.log"
    log.write_text(LEAK_LOG.format(path=source.resolve()), encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(
        app,
        ["parse-log", str(log), "--file", str(source), "--kind", "sanitizer", "--json", "--no-emoji"],
    )

    assert result.exit_code == 1, result.output
    payload = json.loads(result.stdout)
    assert len(payload) == 1
    assert payload[0]["message"].startswith("[S][LeakSanitizer]")
    assert payload[0]["line"] == 1
    assert payload[0]["source"] == "[AddressSanitizer] ccfeedback"


def test_parse_log_without_findings(tmp_path: Path) -> None:
    source = _source(tmp_path)
    log = tmp_path / "build.log"
    log.write_text("", encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(app, ["parse-log", str(log), "--file", str(source), "--no-emoji"])

    assert result.exit_code == 0, result.output
    assert "No diagnostics." in result.stdout


def test_check_rejects_invalid_configuration(tmp_path: Path) -> None:
    source = _source(tmp_path)
    (tmp_path / ".ccfeedback.toml").write_text('run = "sometimes"\n', encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(app, ["check", str(source), "--no-emoji"])

    assert result.exit_code == 2
