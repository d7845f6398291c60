# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from ccfeedback.analyzers.base import AnalyzerRequest
from ccfeedback.config.loader import SettingsResolver
from ccfeedback.config.models import RunTrigger, Settings
from ccfeedback.core.models import DiagnosticRecord, RawAnalyzerOutput, StructuredFact
from ccfeedback.core.process import CommandOptions, CommandResult
from ccfeedback.orchestration.coordinator import AnalysisContext, AnalysisCoordinator

MAIN_SOURCE = """#include <stdio.h>

int main(void) {
    int total = 0;
    printf("%d\\n", total);
    return 0;
}
"""


class RecordingSink:
    """Diagnostic sink remembering every publish call in order."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[DiagnosticRecord]]] = []

    def publish(self, file_uri: str, records: Sequence[DiagnosticRecord]) -> None:
        self.calls.append((file_uri, list(records)))

    def latest(self, file_uri: str) -> list[DiagnosticRecord] | None:
        for uri, records in reversed(self.calls):
            if uri == file_uri:
                return records
        return None

    def uris(self) -> set[str]:
        return {uri for uri, _ in self.calls}


class FakeRunner:
    """Command runner returning queued results and recording invocations."""

    def __init__(self, *results: CommandResult) -> None:
        self.results = list(results)
        self.calls: list[tuple[list[str], CommandOptions]] = []

    def __call__(self, args: Sequence[str], options: CommandOptions) -> CommandResult:
        self.calls.append((list(args), options))
        if self.results:
            return self.results.pop(0)
        return CommandResult(args=tuple(args), returncode=0, stdout="", stderr="")


@dataclass
class StubAnalyzer:
    """Analyzer returning preconfigured facts without running anything."""

    name: str = "Stub"
    facts: list[StructuredFact] = field(default_factory=list)
    error: Exception | None = None
    enabled: bool = True
    triggers: frozenset[RunTrigger] = frozenset(RunTrigger)
    on_run: Callable[[AnalyzerRequest], None] | None = None
    requests: list[AnalyzerRequest] = field(default_factory=list)

    def run(self, request: AnalyzerRequest) -> RawAnalyzerOutput:
        self.requests.append(request)
        if self.on_run is not None:
            self.on_run(request)
        if self.error is not None:
            raise self.error
        return RawAnalyzerOutput(
            analyzer=self.name,
            real_path=request.document_path,
            scratch_path=request.scratch_path,
        )

    def parse(self, output: RawAnalyzerOutput) -> list[StructuredFact]:
        return list(self.facts)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Return a workspace root holding ``main.c``."""

    root = tmp_path / "ws"
    root.mkdir()
    (root / "main.c").write_text(MAIN_SOURCE, encoding="utf-8")
    return root.resolve()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_coordinator(
    workspace: Path,
    sink: RecordingSink,
) -> Callable[..., AnalysisCoordinator]:
    """Return a factory building coordinators around stub analyzers."""

    def _make(
        analyzers: Iterable[Any],
        *,
        settings: Settings | None = None,
        errors: list[str] | None = None,
        **overrides: Any,
    ) -> AnalysisCoordinator:
        configured = list(analyzers)
        reported = errors if errors is not None else []
        context = AnalysisContext(
            sink=sink,
            workspace_roots=(workspace,),
            settings_resolver=SettingsResolver(settings or Settings(jobs=1)),
            analyzer_factory=lambda _settings, _root: list(configured),
            error_reporter=reported.append,
            jobs=1,
        )
        for key, value in overrides.items():
            setattr(context, key, value)
        return AnalysisCoordinator(context)

    return _make


@pytest.fixture
def stub_analyzer() -> type[StubAnalyzer]:
    return StubAnalyzer


@pytest.fixture
def fake_runner() -> type[FakeRunner]:
    return FakeRunner
