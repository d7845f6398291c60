# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Severity related types and helpers."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Final


class Severity(str, Enum):
    """Severity levels understood by diagnostic sinks."""

    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"
    HINT = "hint"

    @classmethod
    def coerce(cls, value: Severity | str | None, default: Severity | None = None) -> Severity:
        """Return ``value`` as a :class:`Severity`, falling back to ``default``.

        Args:
            value: Enum member, label (case-insensitive) or ``None``.
            default: Severity used when ``value`` is unknown. Defaults to
                :attr:`Severity.WARNING`.

        Returns:
            Severity: Coerced severity value.
        """

        fallback = default if default is not None else cls.WARNING
        if isinstance(value, Severity):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return fallback
        return fallback


# Compiler severity words mapped onto sink severities.
DEFAULT_SEVERITY_MAP: Final[dict[str, Severity]] = {
    "fatal": Severity.ERROR,
    "error": Severity.ERROR,
    "warning": Severity.WARNING,
    "note": Severity.INFORMATION,
}

_SEVERITY_RANK: Final[dict[Severity, int]] = {
    Severity.ERROR: 3,
    Severity.WARNING: 2,
    Severity.INFORMATION: 1,
    Severity.HINT: 0,
}


def map_severity(
    label: str | None,
    mapping: Mapping[str, Severity | str] | None = None,
    default: Severity = Severity.WARNING,
) -> Severity:
    """Return the :class:`Severity` configured for a compiler severity word.

    Args:
        label: Severity word parsed from the compiler output (``error``, ``note``...).
        mapping: Table from severity word to severity. Defaults to
            :data:`DEFAULT_SEVERITY_MAP`.
        default: Severity returned for unmapped words.

    Returns:
        Severity: Mapped severity, or ``default`` when ``label`` is unmapped.
    """

    table = DEFAULT_SEVERITY_MAP if mapping is None else mapping
    if not label:
        return default
    configured = table.get(label.lower())
    if configured is None:
        return default
    return Severity.coerce(configured, default)


def severity_rank(severity: Severity) -> int:
    """Return a sortable rank for ``severity`` where errors rank highest."""

    return _SEVERITY_RANK.get(severity, 0)


__all__ = ["DEFAULT_SEVERITY_MAP", "Severity", "map_severity", "severity_rank"]
