# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Exceptions raised while collecting compiler and sanitizer feedback."""

from __future__ import annotations


class FeedbackError(RuntimeError):
    """Base class for recoverable failures inside the analysis pipeline."""


class ParseError(FeedbackError):
    """Raised when a line or report block does not match any known grammar."""

    def __init__(self, text: str, reason: str | None = None) -> None:
        """Initialise the error with the offending text.

        Args:
            text: Raw text that failed to parse.
            reason: Optional explanation of the mismatch.
        """

        super().__init__(reason or f"Line could not be parsed: {text}")
        self.text = text


class AnalyzerInvocationError(FeedbackError):
    """Raised when an external analyzer cannot be executed."""

    def __init__(self, analyzer: str, message: str) -> None:
        """Initialise the error with the failing analyzer name.

        Args:
            analyzer: Name of the analyzer that failed.
            message: Human-readable failure description.
        """

        super().__init__(f"{analyzer}: {message}")
        self.analyzer = analyzer


class AnalyzerNotFoundError(AnalyzerInvocationError):
    """Raised when the analyzer executable cannot be resolved."""


class AnalyzerDisabledError(AnalyzerInvocationError):
    """Raised when a disabled analyzer is asked to run."""


class AnalysisTimeoutError(FeedbackError):
    """Raised when a supervised process was killed for exceeding its time budget."""


class ConfigurationError(FeedbackError):
    """Raised when configuration input is invalid."""


__all__ = [
    "AnalysisTimeoutError",
    "AnalyzerDisabledError",
    "AnalyzerInvocationError",
    "AnalyzerNotFoundError",
    "ConfigurationError",
    "FeedbackError",
    "ParseError",
]
