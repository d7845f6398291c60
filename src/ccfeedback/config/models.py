# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration models for the ccfeedback analysis engine."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.process import TIMEOUT_EXIT_CODE
from ..core.severity import DEFAULT_SEVERITY_MAP, Severity

DEFAULT_DEBOUNCE_SECONDS: Final[float] = 1.5
DEFAULT_CONFIG_NAME_RETRIES: Final[int] = 40
DEFAULT_CONFIG_NAME_RETRY_DELAY: Final[float] = 0.25
DEFAULT_SANITIZER_TIMEOUT: Final[float] = 30.0
DEFAULT_COMPILE_TIMEOUT: Final[float] = 60.0


def default_parallel_jobs() -> int:
    """Return the default number of documents analyzed concurrently."""

    cores = os.cpu_count() or 1
    return max(1, cores // 2)


class RunTrigger(str, Enum):
    """Enumerate the editor events that start an analysis pass."""

    ON_SAVE = "on-save"
    ON_TYPE = "on-type"
    ON_BUILD = "on-build"

    @classmethod
    def _missing_(cls, value: object) -> RunTrigger | None:
        if isinstance(value, str):
            token = value.strip().lower().replace("_", "-")
            aliases = {"onsave": cls.ON_SAVE, "ontype": cls.ON_TYPE, "onbuild": cls.ON_BUILD}
            for member in cls:
                if member.value == token:
                    return member
            return aliases.get(token.replace("-", ""))
        return None


class ClangSettings(BaseModel):
    """Options for the compile-only clang/gcc analyzer."""

    model_config = ConfigDict(validate_assignment=True)

    enable: bool = True
    executable: str = "clang"
    timeout_seconds: float = Field(default=DEFAULT_COMPILE_TIMEOUT, gt=0)
    severity_levels: dict[str, Severity] = Field(default_factory=lambda: dict(DEFAULT_SEVERITY_MAP))
    pedantic: bool = False
    pedantic_errors: bool = False
    ms_extensions: bool = False
    no_exceptions: bool = False
    no_rtti: bool = False
    blocks: bool = False
    includes: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    standard_libs: list[str] = Field(default_factory=list)
    extra_args: list[str] = Field(default_factory=list)

    @field_validator("severity_levels", mode="before")
    @classmethod
    def _merge_severity_levels(cls, value: object) -> object:
        """Overlay configured severity words on the default table.

        Args:
            value: Raw mapping supplied by configuration.

        Returns:
            object: Complete severity table.
        """

        if isinstance(value, dict):
            return {**DEFAULT_SEVERITY_MAP, **{str(key).lower(): item for key, item in value.items()}}
        return value


class SanitizerSettings(BaseModel):
    """Options for the AddressSanitizer runtime analyzer."""

    model_config = ConfigDict(validate_assignment=True)

    enable: bool = True
    # None picks clang or clang++ from the document language.
    compiler: str | None = None
    link_directory_sources: bool = True
    timeout_seconds: float = Field(default=DEFAULT_SANITIZER_TIMEOUT, gt=0)
    timeout_exit_code: int = TIMEOUT_EXIT_CODE
    compile_args: list[str] = Field(default_factory=list)
    program_args: list[str] = Field(default_factory=list)


class Settings(BaseModel):
    """Merged configuration for one workspace."""

    model_config = ConfigDict(validate_assignment=True)

    run: RunTrigger = RunTrigger.ON_SAVE
    debounce_seconds: float = Field(default=DEFAULT_DEBOUNCE_SECONDS, ge=0)
    config_name_retries: int = Field(default=DEFAULT_CONFIG_NAME_RETRIES, ge=1)
    config_name_retry_delay: float = Field(default=DEFAULT_CONFIG_NAME_RETRY_DELAY, ge=0)
    include_paths: list[str] = Field(default_factory=list)
    defines: list[str] = Field(default_factory=list)
    undefines: list[str] = Field(default_factory=list)
    standard: list[str] = Field(default_factory=list)
    language: str | None = None
    exclude_from_workspace_paths: list[str] = Field(default_factory=list)
    excluded_line_patterns: list[str] = Field(default_factory=list)
    signature_paths: list[Path] = Field(default_factory=list)
    report_unparsed: bool = True
    debug: bool = False
    jobs: int = Field(default_factory=default_parallel_jobs, ge=1)
    clang: ClangSettings = Field(default_factory=ClangSettings)
    sanitizer: SanitizerSettings = Field(default_factory=SanitizerSettings)

    @field_validator("language")
    @classmethod
    def _normalise_language(cls, value: str | None) -> str | None:
        """Lower-case the ``-x`` language name; blank means auto-detect."""

        if value is None:
            return None
        token = value.strip().lower()
        return token or None

    def snapshot(self) -> Settings:
        """Return an independent deep copy of these settings."""

        return self.model_copy(deep=True)


__all__ = [
    "ClangSettings",
    "RunTrigger",
    "SanitizerSettings",
    "Settings",
    "default_parallel_jobs",
]
