# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Built-in analyzers and the factory that selects the enabled ones."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from ..config.models import Settings
from ..core.process import CommandRunner, run_command
from .base import Analyzer, AnalyzerRequest
from .clang import ClangAnalyzer
from .sanitizer import SanitizerAnalyzer


def build_analyzers(
    settings: Settings,
    workspace_root: Path,
    *,
    runner: CommandRunner = run_command,
) -> list[Analyzer]:
    """Return the enabled built-in analyzers for ``settings``.

    Args:
        settings: Resolved settings of the workspace.
        workspace_root: Workspace root directory.
        runner: Command runner handed to every analyzer.

    Returns:
        list[Analyzer]: Analyzers in execution order.
    """

    candidates: Sequence[Analyzer] = (
        ClangAnalyzer(settings, workspace_root, runner=runner),
        SanitizerAnalyzer(settings, workspace_root, runner=runner),
    )
    return [analyzer for analyzer in candidates if analyzer.enabled]


__all__ = [
    "Analyzer",
    "AnalyzerRequest",
    "ClangAnalyzer",
    "SanitizerAnalyzer",
    "build_analyzers",
]
