# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Per-key debouncing of content-change triggers."""

from __future__ import annotations

from collections.abc import Callable
from threading import Lock, Timer, current_thread


class Debouncer:
    """Delay a callback until no new call for the same key arrived for ``delay`` seconds."""

    def __init__(self, delay: float) -> None:
        self._delay = delay
        self._timers: dict[str, Timer] = {}
        self._lock = Lock()

    @property
    def delay(self) -> float:
        return self._delay

    def call(self, key: str, callback: Callable[[], None], *, delay: float | None = None) -> None:
        """Schedule ``callback`` for ``key``, replacing any pending call.

        Args:
            key: Identity whose calls collapse into one.
            callback: Function run once the idle window elapses.
            delay: Window override in seconds.
        """

        window = self._delay if delay is None else delay
        timer = Timer(window, self._fire, args=(key, callback))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(key, None)
            if previous is not None:
                previous.cancel()
            self._timers[key] = timer
        timer.start()

    def _fire(self, key: str, callback: Callable[[], None]) -> None:
        with self._lock:
            if self._timers.get(key) is not current_thread():
                return
            del self._timers[key]
        callback()

    def pending(self, key: str) -> bool:
        """Return ``True`` when a call for ``key`` is waiting."""

        with self._lock:
            return key in self._timers

    def cancel(self, key: str) -> None:
        """Drop the pending call of ``key``, if any."""

        with self._lock:
            timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        """Drop every pending call."""

        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()


__all__ = ["Debouncer"]
