# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Safe wrappers around ``subprocess`` execution for analyzer invocations."""

from __future__ import annotations

import shutil

# Bandit: subprocess usage is intentional; analyzers run vetted compiler
# command lines without ``shell=True``.
import subprocess  # nosec B404
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from ..errors import AnalyzerNotFoundError

TIMEOUT_EXIT_CODE: Final[int] = 124


@dataclass(slots=True, frozen=True)
class CommandOptions:
    """Immutable command execution options."""

    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    timeout: float | None = None
    timeout_exit_code: int = TIMEOUT_EXIT_CODE


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Captured outcome of a finished (or supervisor-killed) command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False


CommandRunner = Callable[[Sequence[str], CommandOptions], CommandResult]


def _ensure_text(value: str | bytes | None) -> str:
    """Return ``value`` decoded to text when supplied as ``bytes``.

    Args:
        value: Stream output captured from subprocess execution.

    Returns:
        str: Text output, empty when no data was captured.
    """

    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return value.decode(errors="ignore")


def _normalize_args(args: Sequence[str]) -> list[str]:
    """Normalise the subprocess argument sequence.

    Args:
        args: Raw command arguments supplied by the caller.

    Returns:
        list[str]: Validated argument list suitable for subprocess execution.

    Raises:
        ValueError: If no arguments are provided.
        AnalyzerNotFoundError: If the executable cannot be resolved on ``PATH``.
    """

    if not args:
        raise ValueError("subprocess command requires at least one argument")

    head, *rest = args
    head_path = Path(head)
    if head_path.is_absolute():
        if not head_path.exists():
            raise AnalyzerNotFoundError(head_path.name, f"executable '{head}' does not exist")
        return [str(head_path), *rest]

    resolved = shutil.which(head)
    if resolved is None:
        raise AnalyzerNotFoundError(head, f"executable '{head}' was not found on PATH")
    return [resolved, *rest]


def run_command(args: Sequence[str], options: CommandOptions | None = None) -> CommandResult:
    """Execute ``args`` and capture its output without raising on failure.

    A supervisory timeout kills the process; the result then reports the
    timeout exit code and carries that code as the final stderr line, the
    same marker a ``timeout ... || echo $?`` wrapper would append.

    Args:
        args: Command and argument sequence to execute.
        options: Execution options; defaults to :class:`CommandOptions`.

    Returns:
        CommandResult: Captured output and exit status.

    Raises:
        AnalyzerNotFoundError: If the executable cannot be resolved.
    """

    normalized = _normalize_args(args)
    resolved_options = options or CommandOptions()

    try:
        completed = subprocess.run(  # nosec B603 - controlled arguments, no shell
            normalized,
            cwd=str(resolved_options.cwd) if resolved_options.cwd is not None else None,
            env=dict(resolved_options.env) if resolved_options.env is not None else None,
            check=False,
            capture_output=True,
            text=True,
            timeout=resolved_options.timeout,
            stdin=subprocess.DEVNULL,
        )
    except subprocess.TimeoutExpired as exc:
        stderr = _ensure_text(exc.stderr).rstrip("\n")
        marker = str(resolved_options.timeout_exit_code)
        return CommandResult(
            args=tuple(normalized),
            returncode=resolved_options.timeout_exit_code,
            stdout=_ensure_text(exc.stdout),
            stderr=f"{stderr}\n{marker}" if stderr else marker,
            timed_out=True,
        )

    return CommandResult(
        args=tuple(normalized),
        returncode=completed.returncode,
        stdout=_ensure_text(completed.stdout),
        stderr=_ensure_text(completed.stderr),
    )


__all__ = [
    "TIMEOUT_EXIT_CODE",
    "CommandOptions",
    "CommandResult",
    "CommandRunner",
    "run_command",
]
