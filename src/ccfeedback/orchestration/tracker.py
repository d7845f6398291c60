# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Collect per-pass failure messages and surface them together."""

from __future__ import annotations

from collections.abc import Callable
from threading import Lock

type ErrorReporter = Callable[[str], None]


class ErrorTracker:
    """Ordered, de-duplicated buffer of failure messages."""

    def __init__(self) -> None:
        self._messages: dict[str, None] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def add(self, message: str) -> None:
        """Record ``message`` unless an identical one is already pending."""

        with self._lock:
            self._messages.setdefault(message, None)

    def add_exception(self, context: str, exc: BaseException) -> None:
        """Record ``exc`` prefixed with ``context``."""

        detail = str(exc) or exc.__class__.__name__
        self.add(f"{context}: {detail}")

    @property
    def messages(self) -> list[str]:
        """Return the pending messages in the order they were recorded."""

        with self._lock:
            return list(self._messages)

    def flush(self, reporter: ErrorReporter) -> list[str]:
        """Send every pending message to ``reporter`` and clear the buffer.

        Args:
            reporter: Callable receiving one message at a time.

        Returns:
            list[str]: Messages that were reported.
        """

        with self._lock:
            pending = list(self._messages)
            self._messages.clear()
        for message in pending:
            reporter(message)
        return pending


__all__ = ["ErrorReporter", "ErrorTracker"]
