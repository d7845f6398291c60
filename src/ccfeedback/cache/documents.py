# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Process-wide cache of per-document settings, analyzers and analyzed versions."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from threading import Lock

from ..analyzers.base import Analyzer
from ..config.models import Settings
from ..diagnostics.signatures import SignatureLibrary, load_signature_library

LOGGER = logging.getLogger(__name__)

type SettingsFactory = Callable[[Path], Settings]
type AnalyzerFactory = Callable[[Settings, Path], Sequence[Analyzer]]


@dataclass(slots=True, frozen=True)
class DocumentState:
    """Resolved configuration of one open document.

    Attributes:
        uri: Document identity.
        workspace_root: Root of the workspace containing the document.
        settings: Settings snapshot; never mutated after creation.
        analyzers: Analyzers configured for the document, in execution order.
        signatures: Error signature library built from the settings, loaded once per workspace.
        generation: Cache generation the entry was built in.
    """

    uri: str
    workspace_root: Path
    settings: Settings
    analyzers: tuple[Analyzer, ...]
    signatures: SignatureLibrary
    generation: int


class DocumentCache:
    """Map document identity to its resolved settings and analyzer list.

    Entries are built lazily. :meth:`invalidate` swaps in an empty map in one
    step, so a pass that already holds a :class:`DocumentState` keeps using it
    while new passes see freshly resolved configuration. Last analyzed
    versions survive invalidation and are dropped only when a document closes.
    """

    def __init__(self, settings_factory: SettingsFactory, analyzer_factory: AnalyzerFactory) -> None:
        """Initialise the cache.

        Args:
            settings_factory: Resolves the settings of a workspace root.
            analyzer_factory: Builds the analyzers for resolved settings.
        """

        self._settings_factory = settings_factory
        self._analyzer_factory = analyzer_factory
        self._lock = Lock()
        self._generation = 0
        self._entries: dict[str, DocumentState] = {}
        self._workspace_settings: dict[Path, Settings] = {}
        self._workspace_signatures: dict[Path, SignatureLibrary] = {}
        self._versions: dict[str, int] = {}

    @property
    def generation(self) -> int:
        """Return the number of invalidations performed so far."""

        return self._generation

    def __contains__(self, uri: object) -> bool:
        with self._lock:
            return uri in self._entries

    def uris(self) -> list[str]:
        """Return the identities of every cached document."""

        with self._lock:
            return list(self._entries)

    def peek(self, uri: str) -> DocumentState | None:
        """Return the cached state of ``uri`` without building it."""

        with self._lock:
            return self._entries.get(uri)

    def get(self, uri: str, workspace_root: Path) -> DocumentState:
        """Return the state of ``uri``, building it on first access.

        Args:
            uri: Document identity.
            workspace_root: Root of the workspace containing the document.

        Returns:
            DocumentState: Cached or newly built state.
        """

        with self._lock:
            cached = self._entries.get(uri)
            generation = self._generation
            settings = self._workspace_settings.get(workspace_root)
            signatures = self._workspace_signatures.get(workspace_root)
        if cached is not None:
            return cached

        if settings is None:
            settings = self._settings_factory(workspace_root)
        if signatures is None:
            signatures = load_signature_library(settings.signature_paths)
        state = DocumentState(
            uri=uri,
            workspace_root=workspace_root,
            settings=settings,
            analyzers=tuple(self._analyzer_factory(settings, workspace_root)),
            signatures=signatures,
            generation=generation,
        )
        with self._lock:
            if generation != self._generation:
                # Invalidated while resolving; hand out the state without caching it.
                return state
            self._workspace_settings.setdefault(workspace_root, settings)
            self._workspace_signatures.setdefault(workspace_root, signatures)
            return self._entries.setdefault(uri, state)

    def last_version(self, uri: str) -> int | None:
        """Return the last successfully analyzed version of ``uri``."""

        with self._lock:
            return self._versions.get(uri)

    def record_version(self, uri: str, version: int) -> None:
        """Remember ``version`` as the last successfully analyzed version."""

        with self._lock:
            self._versions[uri] = version

    def remove(self, uri: str) -> None:
        """Drop everything cached for ``uri`` (document closed)."""

        with self._lock:
            self._entries.pop(uri, None)
            self._versions.pop(uri, None)

    def invalidate(self) -> None:
        """Discard every resolved configuration."""

        with self._lock:
            self._generation += 1
            self._entries = {}
            self._workspace_settings = {}
            self._workspace_signatures = {}
        LOGGER.debug("document cache invalidated (generation %d)", self._generation)


__all__ = ["AnalyzerFactory", "DocumentCache", "DocumentState", "SettingsFactory"]
