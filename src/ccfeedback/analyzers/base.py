# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Analyzer contracts shared by the compiler and sanitizer integrations."""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..config.models import RunTrigger, Settings
from ..core.models import RawAnalyzerOutput, StructuredFact


@dataclass(slots=True, frozen=True)
class AnalyzerRequest:
    """Inputs handed to an analyzer for one pass.

    Attributes:
        document_path: Real path of the document under analysis.
        workspace_root: Root of the enclosing workspace.
        scratch_path: Temporary copy of the buffer contents, analyzed instead
            of ``document_path`` for on-type triggers.
        settings: Settings snapshot in effect for the whole pass.
    """

    document_path: Path
    workspace_root: Path
    scratch_path: Path | None
    settings: Settings

    @property
    def target(self) -> Path:
        """Return the file the analyzer should read."""

        if self.settings.run is RunTrigger.ON_TYPE and self.scratch_path is not None:
            return self.scratch_path
        return self.document_path


@runtime_checkable
class Analyzer(Protocol):
    """Define the contract implemented by analyzers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the analyzer name used in source tags and error messages."""
        raise NotImplementedError

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Return whether the analyzer is configured to run."""
        raise NotImplementedError

    @property
    @abstractmethod
    def triggers(self) -> frozenset[RunTrigger]:
        """Return the run modes under which the analyzer participates."""
        raise NotImplementedError

    @abstractmethod
    def run(self, request: AnalyzerRequest) -> RawAnalyzerOutput:
        """Invoke the external tool and capture its output.

        Args:
            request: Document, workspace and settings for this pass.

        Returns:
            RawAnalyzerOutput: Captured text.

        Raises:
            AnalyzerNotFoundError: If the executable cannot be resolved.
            AnalyzerDisabledError: If the analyzer is disabled.
            AnalyzerInvocationError: If the tool could not be executed.
        """
        raise NotImplementedError

    @abstractmethod
    def parse(self, output: RawAnalyzerOutput) -> list[StructuredFact]:
        """Return the structured facts found in ``output``."""
        raise NotImplementedError


__all__ = ["Analyzer", "AnalyzerRequest"]
