# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration models and loaders."""

from __future__ import annotations

from .loader import (
    SettingsResolver,
    compiler_configuration_path,
    expand_variables,
    fetch_active_config_name,
    is_excluded,
    load_settings,
    platform_config_name,
    resolve_compiler_configuration,
)
from .models import ClangSettings, RunTrigger, SanitizerSettings, Settings

__all__ = [
    "ClangSettings",
    "RunTrigger",
    "SanitizerSettings",
    "Settings",
    "SettingsResolver",
    "compiler_configuration_path",
    "expand_variables",
    "fetch_active_config_name",
    "is_excluded",
    "load_settings",
    "platform_config_name",
    "resolve_compiler_configuration",
]
