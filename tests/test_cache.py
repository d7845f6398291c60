# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for the document/settings cache."""

from __future__ import annotations

from pathlib import Path

from ccfeedback.cache.documents import DocumentCache
from ccfeedback.config.models import Settings


class CountingFactories:
    def __init__(self) -> None:
        self.settings_calls: list[Path] = []
        self.analyzer_calls = 0
        self.cache: DocumentCache | None = None
        self.invalidate_during_resolution = False

    def settings(self, root: Path) -> Settings:
        self.settings_calls.append(root)
        if self.invalidate_during_resolution and self.cache is not None:
            self.invalidate_during_resolution = False
            self.cache.invalidate()
        return Settings(include_paths=[f"{root}/include"], jobs=1)

    def analyzers(self, settings: Settings, root: Path) -> list[object]:
        self.analyzer_calls += 1
        return [object()]


def _cache() -> tuple[DocumentCache, CountingFactories]:
    factories = CountingFactories()
    cache = DocumentCache(factories.settings, factories.analyzers)  # type: ignore[arg-type]
    factories.cache = cache
    return cache, factories


def test_entries_are_built_lazily_once(tmp_path: Path) -> None:
    cache, factories = _cache()

    assert "file:///a.c" not in cache
    first = cache.get("file:///a.c", tmp_path)
    second = cache.get("file:///a.c", tmp_path)

    assert first is second
    assert factories.analyzer_calls == 1
    assert "file:///a.c" in cache
    assert cache.peek("file:///b.c") is None


def test_documents_in_one_workspace_share_resolved_settings(tmp_path: Path) -> None:
    cache, factories = _cache()

    first = cache.get("file:///a.c", tmp_path)
    second = cache.get("file:///b.c", tmp_path)

    assert factories.settings_calls == [tmp_path]
    assert first.settings is second.settings
    assert sorted(cache.uris()) == ["file:///a.c", "file:///b.c"]


def test_invalidate_rebuilds_but_keeps_held_snapshots(tmp_path: Path) -> None:
    cache, factories = _cache()
    held = cache.get("file:///a.c", tmp_path)

    cache.invalidate()
    rebuilt = cache.get("file:///a.c", tmp_path)

    assert cache.generation == 1
    assert rebuilt is not held
    assert rebuilt.generation == 1
    assert held.settings.include_paths == [f"{tmp_path}/include"]
    assert len(factories.settings_calls) == 2


def test_versions_survive_invalidation_but_not_close(tmp_path: Path) -> None:
    cache, _ = _cache()
    cache.get("file:///a.c", tmp_path)
    cache.record_version("file:///a.c", 7)

    cache.invalidate()
    assert cache.last_version("file:///a.c") == 7

    cache.remove("file:///a.c")
    assert cache.last_version("file:///a.c") is None
    assert "file:///a.c" not in cache


def test_entry_resolved_across_an_invalidation_is_not_cached(tmp_path: Path) -> None:
    cache, factories = _cache()
    factories.invalidate_during_resolution = True

    state = cache.get("file:///a.c", tmp_path)

    assert state.generation == 0
    assert "file:///a.c" not in cache
    assert cache.get("file:///a.c", tmp_path).generation == 1


def test_signature_library_is_shared_per_workspace(tmp_path: Path) -> None:
    cache, _ = _cache()

    first = cache.get("file:///a.c", tmp_path)
    second = cache.get("file:///b.c", tmp_path)
    assert first.signatures is second.signatures
    assert first.signatures.match("expected ';' after expression") is not None
