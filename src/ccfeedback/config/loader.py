# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Load settings from TOML and merge the project's compiler configuration."""

from __future__ import annotations

import glob
import json
import logging
import os
import re
import sys
import time
import tomllib
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any, Final

from pydantic import ValidationError

from ..errors import ConfigurationError, FeedbackError
from .models import Settings

LOGGER = logging.getLogger(__name__)

PYPROJECT_FILENAME: Final[str] = "pyproject.toml"
PYPROJECT_TOOL_KEY: Final[str] = "tool"
PYPROJECT_SECTION_KEY: Final[str] = "ccfeedback"
PROJECT_CONFIG_FILENAME: Final[str] = ".ccfeedback.toml"
COMPILER_CONFIG_RELATIVE: Final[Path] = Path(".vscode") / "c_cpp_properties.json"

_VARIABLE_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{(?:env:)?([^}]+)\}")

type ConfigNameProvider = Callable[[], str | None]


def platform_config_name() -> str:
    """Return the compiler-configuration name used for the running platform."""

    if sys.platform.startswith("win"):
        return "Win32"
    if sys.platform == "darwin":
        return "Mac"
    return "Linux"


def compiler_configuration_path(workspace_root: Path) -> Path:
    """Return the location of the project's ``c_cpp_properties.json``."""

    return workspace_root / COMPILER_CONFIG_RELATIVE


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _normalise_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    normalised: dict[str, Any] = {}
    for key, value in data.items():
        name = str(key).replace("-", "_")
        normalised[name] = _normalise_keys(value) if isinstance(value, Mapping) and name != "severity_levels" else value
    return normalised


def _read_toml(path: Path) -> dict[str, Any]:
    """Return the TOML document at ``path`` or an empty mapping when absent.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """

    if not path.is_file():
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"unable to load {path}: {exc}") from exc


def load_settings(root: Path, overrides: Mapping[str, Any] | None = None) -> Settings:
    """Load settings for the workspace rooted at ``root``.

    ``[tool.ccfeedback]`` in ``pyproject.toml`` is read first, then
    ``.ccfeedback.toml``; later sources win and tables are deep merged.

    Args:
        root: Workspace root directory.
        overrides: Optional fragment applied last (e.g. CLI flags).

    Returns:
        Settings: Validated settings.

    Raises:
        ConfigurationError: If a source is malformed or fails validation.
    """

    merged: dict[str, Any] = {}
    pyproject = _read_toml(root / PYPROJECT_FILENAME)
    tool_section = pyproject.get(PYPROJECT_TOOL_KEY)
    if isinstance(tool_section, Mapping):
        section = tool_section.get(PYPROJECT_SECTION_KEY)
        if isinstance(section, Mapping):
            merged = _deep_merge(merged, _normalise_keys(section))
    merged = _deep_merge(merged, _normalise_keys(_read_toml(root / PROJECT_CONFIG_FILENAME)))
    if overrides:
        merged = _deep_merge(merged, _normalise_keys(overrides))
    try:
        settings = Settings.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid ccfeedback settings under {root}: {exc}") from exc
    settings.signature_paths = [path if path.is_absolute() else root / path for path in settings.signature_paths]
    return settings


def expand_variables(value: str, workspace_root: Path, env: Mapping[str, str] | None = None) -> str:
    """Expand ``${workspaceFolder}``, ``${workspaceRoot}`` and environment variables.

    Unknown variables are left untouched.

    Args:
        value: Path template from the compiler configuration.
        workspace_root: Workspace root substituted for the workspace variables.
        env: Environment used for ``${env:NAME}`` and ``${NAME}``.

    Returns:
        str: Expanded value.
    """

    variables = dict(env if env is not None else os.environ)
    variables["workspaceFolder"] = str(workspace_root)
    variables["workspaceRoot"] = str(workspace_root)

    def _replace(match: re.Match[str]) -> str:
        return variables.get(match.group(1), match.group(0))

    return _VARIABLE_PATTERN.sub(_replace, value)


def _glob_directories(pattern: str, workspace_root: Path) -> list[Path]:
    candidate = Path(pattern)
    absolute = candidate if candidate.is_absolute() else workspace_root / candidate
    matches = sorted(glob.glob(str(absolute), recursive=True))
    return [Path(match).resolve() for match in matches if Path(match).is_dir()]


def _excluded_roots(settings: Settings, workspace_root: Path, env: Mapping[str, str] | None) -> list[Path]:
    roots: list[Path] = []
    for entry in settings.exclude_from_workspace_paths:
        expanded = Path(expand_variables(entry, workspace_root, env))
        roots.append((expanded if expanded.is_absolute() else workspace_root / expanded).resolve())
    return roots


def is_excluded(path: Path, settings: Settings, workspace_root: Path, env: Mapping[str, str] | None = None) -> bool:
    """Return ``True`` when ``path`` lies under an excluded workspace path."""

    resolved = path.resolve()
    return any(resolved.is_relative_to(root) for root in _excluded_roots(settings, workspace_root, env))


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


def resolve_compiler_configuration(
    settings: Settings,
    workspace_root: Path,
    config_name: str | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Merge the project's ``c_cpp_properties.json`` into a copy of ``settings``.

    Include paths of the selected configuration are variable-expanded and
    glob-expanded to existing directories. Directories inside the workspace
    that fall under an excluded path are skipped; the remaining paths are
    appended and deduplicated. Defines are appended and deduplicated.

    Args:
        settings: Settings to extend; left unmodified.
        workspace_root: Workspace root directory.
        config_name: Name of the configuration to use. Defaults to the
            platform name.
        env: Environment used for variable expansion.

    Returns:
        Settings: Extended copy, or an unchanged copy when the file is
        missing, malformed or has no matching configuration.
    """

    resolved = settings.snapshot()
    path = compiler_configuration_path(workspace_root)
    if not path.is_file():
        return resolved
    name = config_name or platform_config_name()
    try:
        configuration = _select_configuration(path, name)
    except ConfigurationError as exc:
        LOGGER.warning("%s; continuing with the resolved settings", exc)
        return resolved
    if configuration is None:
        LOGGER.debug("no configuration named %s in %s", name, path)
        return resolved

    root = workspace_root.resolve()
    excluded = _excluded_roots(settings, root, env)
    include_paths = list(resolved.include_paths)
    for template in configuration.get("includePath") or []:
        value = expand_variables(str(template), root, env)
        for directory in _glob_directories(value, root):
            if directory.is_relative_to(root) and any(directory.is_relative_to(item) for item in excluded):
                LOGGER.debug("skipping excluded include path %s", directory)
                continue
            include_paths.append(directory.as_posix())
    resolved.include_paths = _unique(include_paths)
    resolved.defines = _unique([*resolved.defines, *(str(item) for item in configuration.get("defines") or [])])
    standard = configuration.get("cStandard") or configuration.get("cppStandard")
    if standard and not resolved.standard:
        resolved.standard = [str(standard)]
    return resolved


def _select_configuration(path: Path, name: str) -> Mapping[str, Any] | None:
    """Return the configuration named ``name`` from ``path``.

    Raises:
        ConfigurationError: If the file cannot be read or is malformed.
    """

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"could not read or parse {path}: {exc}") from exc
    configurations = payload.get("configurations") if isinstance(payload, Mapping) else None
    if not isinstance(configurations, list):
        raise ConfigurationError(f"{path} has no 'configurations' list")
    for entry in configurations:
        if isinstance(entry, Mapping) and entry.get("name") == name:
            return entry
    return None


def fetch_active_config_name(
    provider: ConfigNameProvider | None,
    *,
    attempts: int,
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Ask ``provider`` for the active configuration name, retrying on failure.

    Args:
        provider: Auxiliary query returning the active configuration name.
        attempts: Maximum number of calls.
        delay: Seconds to wait between failed calls.
        sleep: Sleep function, injectable for tests.

    Returns:
        str: Reported name, or the platform name when the provider is absent,
        keeps failing or reports nothing.
    """

    if provider is None:
        return platform_config_name()
    for attempt in range(1, attempts + 1):
        try:
            name = provider()
        except (FeedbackError, OSError, TimeoutError) as exc:
            LOGGER.debug("active configuration query failed (attempt %d/%d): %s", attempt, attempts, exc)
            if attempt < attempts:
                sleep(delay)
            continue
        return name or platform_config_name()
    return platform_config_name()


class SettingsResolver:
    """Resolve the effective settings of a workspace."""

    def __init__(
        self,
        base: Settings | None = None,
        *,
        config_name_provider: ConfigNameProvider | None = None,
        env: Mapping[str, str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialise the resolver.

        Args:
            base: Settings used for every workspace. When ``None`` they are
                loaded from the workspace's TOML files.
            config_name_provider: Query for the active compiler configuration.
            env: Environment used for variable expansion.
            sleep: Sleep function used between provider retries.
        """

        self._base = base
        self._provider = config_name_provider
        self._env = env
        self._sleep = sleep

    def resolve(self, workspace_root: Path) -> Settings:
        """Return the merged settings for ``workspace_root``."""

        if self._base is not None:
            settings = self._base.snapshot()
        else:
            try:
                settings = load_settings(workspace_root)
            except ConfigurationError as exc:
                LOGGER.warning("%s; using default settings", exc)
                settings = Settings()
        name = fetch_active_config_name(
            self._provider,
            attempts=settings.config_name_retries,
            delay=settings.config_name_retry_delay,
            sleep=self._sleep,
        )
        return resolve_compiler_configuration(settings, workspace_root, name, env=self._env)

    __call__ = resolve


__all__ = [
    "COMPILER_CONFIG_RELATIVE",
    "SettingsResolver",
    "compiler_configuration_path",
    "expand_variables",
    "fetch_active_config_name",
    "is_excluded",
    "load_settings",
    "platform_config_name",
    "resolve_compiler_configuration",
]
