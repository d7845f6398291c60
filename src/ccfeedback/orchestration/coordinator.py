# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Per-document analysis coordinator.

The coordinator decides whether a document needs analysis, runs the
configured analyzers against it, merges their records per source file and
publishes (or retracts) the result through a :class:`DiagnosticSink`.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path
from threading import Lock
from typing import Protocol, runtime_checkable

from ..analyzers import build_analyzers
from ..analyzers.base import Analyzer, AnalyzerRequest
from ..cache.documents import AnalyzerFactory, DocumentCache, DocumentState, SettingsFactory
from ..config.loader import SettingsResolver, is_excluded
from ..config.models import DEFAULT_DEBOUNCE_SECONDS, RunTrigger, Settings, default_parallel_jobs
from ..core.models import DiagnosticRecord, TextDocument
from ..core.process import CommandRunner, run_command
from ..diagnostics.core import DiagnosticNormalizer, MergedFileDiagnostics
from ..errors import AnalyzerInvocationError, FeedbackError
from ..logging import warn
from .debounce import Debouncer
from .tracker import ErrorReporter, ErrorTracker

LOGGER = logging.getLogger(__name__)


class Trigger(str, Enum):
    """Events that may start an analysis pass."""

    OPEN = "open"
    SAVE = "save"
    CHANGE = "change"
    COMMAND = "command"
    BUILD = "build"
    CONFIGURATION = "configuration"
    COMPILER_CONFIG_CHANGED = "compiler-config-changed"
    FEEDBACK_TOGGLED = "feedback-toggled"

    @property
    def forced(self) -> bool:
        """Return ``True`` when the trigger bypasses the staleness check."""

        return self in _FORCED_TRIGGERS

    @property
    def mode(self) -> RunTrigger | None:
        """Return the run mode this event corresponds to, if any."""

        return _TRIGGER_MODES.get(self)


_FORCED_TRIGGERS = frozenset(
    {Trigger.COMMAND, Trigger.CONFIGURATION, Trigger.COMPILER_CONFIG_CHANGED, Trigger.FEEDBACK_TOGGLED},
)
_TRIGGER_MODES = {
    Trigger.SAVE: RunTrigger.ON_SAVE,
    Trigger.CHANGE: RunTrigger.ON_TYPE,
    Trigger.BUILD: RunTrigger.ON_BUILD,
}
# Configured run mode -> event modes that start a pass under it.
_ACCEPTED_MODES = {
    RunTrigger.ON_SAVE: frozenset({RunTrigger.ON_SAVE}),
    RunTrigger.ON_TYPE: frozenset({RunTrigger.ON_SAVE, RunTrigger.ON_TYPE}),
    RunTrigger.ON_BUILD: frozenset({RunTrigger.ON_BUILD}),
}


class DocumentPhase(str, Enum):
    """Analysis phase of one document."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    SUPPRESSED = "suppressed"


class SkipReason(str, Enum):
    """Why a trigger did not start a pass."""

    UNTRUSTED = "untrusted"
    NOT_LOCAL = "not-local"
    NO_WORKSPACE = "no-workspace"
    TRIGGER_MODE = "trigger-mode"
    STALE = "stale"
    COALESCED = "coalesced"


@runtime_checkable
class DiagnosticSink(Protocol):
    """Receive the complete diagnostic set of a file; last write wins."""

    def publish(self, file_uri: str, records: Sequence[DiagnosticRecord]) -> None:
        """Replace the diagnostics shown for ``file_uri`` with ``records``."""
        raise NotImplementedError


def _report_to_console(message: str) -> None:
    warn(message, use_emoji=False)


def _always_trusted() -> bool:
    return True


@dataclass(slots=True)
class AnalysisContext:
    """Collaborators and global flags the coordinator works with.

    Attributes:
        sink: Receiver of published diagnostic sets.
        workspace_roots: Roots of the open workspaces.
        is_trusted: Workspace trust query; analysis is suppressed when it
            returns ``False``.
        feedback_enabled: When ``False`` only retractions are published,
            deferring to another diagnostics provider.
        settings_resolver: Resolves the settings of a workspace root.
        analyzer_factory: Builds analyzers from settings. Defaults to the
            built-in analyzers using ``runner``.
        runner: Command runner handed to the default analyzers.
        error_reporter: Receives the failure messages collected in a pass.
        jobs: Maximum number of documents analyzed concurrently.
    """

    sink: DiagnosticSink
    workspace_roots: tuple[Path, ...] = ()
    is_trusted: Callable[[], bool] = _always_trusted
    feedback_enabled: bool = True
    settings_resolver: SettingsFactory = field(default_factory=SettingsResolver)
    analyzer_factory: AnalyzerFactory | None = None
    runner: CommandRunner = run_command
    error_reporter: ErrorReporter = _report_to_console
    jobs: int = field(default_factory=default_parallel_jobs)

    def build_analyzers(self, settings: Settings, workspace_root: Path) -> Sequence[Analyzer]:
        """Return the analyzers configured for ``settings``."""

        if self.analyzer_factory is not None:
            return self.analyzer_factory(settings, workspace_root)
        return build_analyzers(settings, workspace_root, runner=self.runner)

    def workspace_root_for(self, path: Path) -> Path | None:
        """Return the innermost workspace root containing ``path``."""

        resolved = path.resolve()
        candidates = [root.resolve() for root in self.workspace_roots]
        matching = [root for root in candidates if resolved.is_relative_to(root)]
        return max(matching, key=lambda root: len(root.parts)) if matching else None


@dataclass(slots=True)
class PassOutcome:
    """Summary of one trigger handled by the coordinator.

    Attributes:
        uri: Document identity.
        version: Document version the trigger carried.
        trigger: Event that was handled.
        skipped: Reason no pass ran, ``None`` when a pass ran.
        succeeded: ``True`` when every analyzer completed without failure.
        files: Records of every file bucket built by the pass, keyed by path.
        published: File URIs that received a non-empty diagnostic set.
        retracted: File URIs that received only an empty set.
        errors: Failure messages collected during the pass.
    """

    uri: str
    version: int
    trigger: Trigger
    skipped: SkipReason | None = None
    succeeded: bool = False
    files: dict[str, list[DiagnosticRecord]] = field(default_factory=dict)
    published: list[str] = field(default_factory=list)
    retracted: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def analyzed(self) -> bool:
        return self.skipped is None

    @property
    def records(self) -> list[DiagnosticRecord]:
        """Return every record of the pass in bucket order."""

        return [record for bucket in self.files.values() for record in bucket]


@dataclass(slots=True)
class _FollowUp:
    document: TextDocument
    trigger: Trigger
    force: bool


class AnalysisCoordinator:
    """Run analysis passes per document and publish their diagnostics."""

    def __init__(self, context: AnalysisContext, cache: DocumentCache | None = None) -> None:
        """Initialise the coordinator.

        Args:
            context: Collaborators and global flags.
            cache: Document/settings cache; built from ``context`` when omitted.
        """

        self._context = context
        self._cache = cache or DocumentCache(context.settings_resolver, context.build_analyzers)
        self._lock = Lock()
        self._documents: dict[str, TextDocument] = {}
        self._phases: dict[str, DocumentPhase] = {}
        self._in_flight: set[str] = set()
        self._follow_ups: dict[str, _FollowUp] = {}
        self._published_files: dict[str, set[str]] = {}
        self._debouncer = Debouncer(DEFAULT_DEBOUNCE_SECONDS)

    @property
    def context(self) -> AnalysisContext:
        return self._context

    @property
    def cache(self) -> DocumentCache:
        return self._cache

    def phase(self, uri: str) -> DocumentPhase:
        """Return the current phase of ``uri``."""

        with self._lock:
            return self._phases.get(uri, DocumentPhase.IDLE)

    def documents(self) -> list[TextDocument]:
        """Return the latest snapshot of every open document."""

        with self._lock:
            return list(self._documents.values())

    # Event entry points -------------------------------------------------

    def open(self, document: TextDocument) -> PassOutcome:
        """Handle a document being opened."""

        return self.analyze(document, Trigger.OPEN)

    def save(self, document: TextDocument) -> PassOutcome:
        """Handle a document being saved."""

        return self.analyze(document, Trigger.SAVE)

    def build_finished(self, document: TextDocument) -> PassOutcome:
        """Handle a build-completion notification for ``document``."""

        return self.analyze(document, Trigger.BUILD)

    def command(self, document: TextDocument) -> PassOutcome:
        """Handle an explicit "analyze now" request."""

        return self.analyze(document, Trigger.COMMAND)

    def change(self, document: TextDocument) -> bool:
        """Handle a content change by scheduling a debounced pass.

        Returns:
            bool: ``True`` when a pass was scheduled.
        """

        self._remember(document)
        state = self._state_for(document)
        if state is None or state.settings.run is not RunTrigger.ON_TYPE:
            return False
        self._debouncer.call(
            document.uri,
            partial(self._run_debounced, document.uri),
            delay=state.settings.debounce_seconds,
        )
        return True

    def close(self, uri: str) -> None:
        """Forget ``uri`` and retract the diagnostics it published."""

        self._debouncer.cancel(uri)
        with self._lock:
            self._documents.pop(uri, None)
            self._phases.pop(uri, None)
            self._follow_ups.pop(uri, None)
            previous = self._published_files.pop(uri, set())
        self._cache.remove(uri)
        for file_uri in sorted(previous | {uri}):
            self._context.sink.publish(file_uri, [])

    def configuration_changed(self) -> list[PassOutcome]:
        """Flush resolved settings and re-analyze every open document."""

        self._cache.invalidate()
        return self.analyze_all(Trigger.CONFIGURATION)

    def compiler_configuration_changed(self) -> list[PassOutcome]:
        """Handle a change to the project's compiler-configuration file."""

        self._cache.invalidate()
        return self.analyze_all(Trigger.COMPILER_CONFIG_CHANGED)

    def set_feedback(self, enabled: bool) -> list[PassOutcome]:
        """Toggle publishing and re-analyze every open document."""

        self._context.feedback_enabled = enabled
        return self.analyze_all(Trigger.FEEDBACK_TOGGLED)

    def handle(self, trigger: Trigger, document: TextDocument) -> PassOutcome | bool:
        """Dispatch ``trigger`` for ``document`` to the matching entry point."""

        if trigger is Trigger.CHANGE:
            return self.change(document)
        return self.analyze(document, trigger)

    # Analysis -----------------------------------------------------------

    def analyze_all(self, trigger: Trigger = Trigger.COMMAND, *, force: bool = True) -> list[PassOutcome]:
        """Analyze every open document concurrently.

        Args:
            trigger: Event recorded on every outcome.
            force: Bypass the staleness check.

        Returns:
            list[PassOutcome]: Outcomes in document-open order.
        """

        documents = self.documents()
        if not documents:
            return []
        analyze = partial(self.analyze, trigger=trigger, force=force)
        outcomes: dict[str, PassOutcome] = {}
        with ThreadPoolExecutor(max_workers=max(1, self._context.jobs)) as executor:
            future_map = {executor.submit(analyze, document): document.uri for document in documents}
            for future in as_completed(future_map):
                outcomes[future_map[future]] = future.result()
        return [outcomes[document.uri] for document in documents]

    def analyze(self, document: TextDocument, trigger: Trigger, *, force: bool | None = None) -> PassOutcome:
        """Run one pass for ``document`` unless the trigger is skipped.

        Args:
            document: Snapshot to analyze.
            trigger: Event that requested the pass.
            force: Bypass the staleness check. Defaults to ``trigger.forced``.

        Returns:
            PassOutcome: What happened.
        """

        forced = trigger.forced if force is None else force
        outcome = PassOutcome(uri=document.uri, version=document.version, trigger=trigger)
        self._remember(document)

        located = self._locate(document)
        if isinstance(located, SkipReason):
            LOGGER.debug("analysis of %s suppressed: %s", document.uri, located.value)
            with self._lock:
                self._phases[document.uri] = DocumentPhase.SUPPRESSED
            outcome.skipped = located
            return outcome

        document_path, root = located
        state = self._cache.get(document.uri, root)
        mode = trigger.mode
        if mode is not None and mode not in _ACCEPTED_MODES[state.settings.run]:
            LOGGER.debug("%s ignored for %s in %s mode", trigger.value, document.uri, state.settings.run.value)
            outcome.skipped = SkipReason.TRIGGER_MODE
            return outcome

        last = self._cache.last_version(document.uri)
        if not forced and last is not None and document.version <= last:
            LOGGER.debug("%s v%d is not newer than v%d; skipping", document.uri, document.version, last)
            outcome.skipped = SkipReason.STALE
            return outcome

        with self._lock:
            if document.uri in self._in_flight:
                pending = self._follow_ups.get(document.uri)
                self._follow_ups[document.uri] = _FollowUp(
                    document=document,
                    trigger=trigger,
                    force=forced or (pending.force if pending else False),
                )
                outcome.skipped = SkipReason.COALESCED
                return outcome
            self._in_flight.add(document.uri)
            self._phases[document.uri] = DocumentPhase.ANALYZING

        try:
            self._run_pass(document, document_path, state, trigger, outcome)
        finally:
            with self._lock:
                self._in_flight.discard(document.uri)
                if self._phases.get(document.uri) is DocumentPhase.ANALYZING:
                    self._phases[document.uri] = DocumentPhase.IDLE
                follow_up = self._follow_ups.pop(document.uri, None)
        if follow_up is not None:
            self.analyze(follow_up.document, follow_up.trigger, force=follow_up.force)
        return outcome

    def _run_pass(
        self,
        document: TextDocument,
        document_path: Path,
        state: DocumentState,
        trigger: Trigger,
        outcome: PassOutcome,
    ) -> None:
        settings = state.settings
        analyzers = [
            analyzer for analyzer in list(state.analyzers) if trigger.mode is None or trigger.mode in analyzer.triggers
        ]
        root = state.workspace_root.resolve()
        tracker = ErrorTracker()
        merged = MergedFileDiagnostics(resolve=partial(_resolve_file, root=root))
        signatures = state.signatures
        lines = document.lines()
        failed = False

        LOGGER.debug(
            "analyzing %s v%d (%s) with %d analyzer(s)",
            document.uri,
            document.version,
            trigger.value,
            len(analyzers),
        )
        with _scratch_copy(document, document_path) as scratch_path:
            for analyzer in analyzers:
                request = AnalyzerRequest(
                    document_path=document_path,
                    workspace_root=root,
                    scratch_path=scratch_path,
                    settings=settings,
                )
                try:
                    output = analyzer.run(request)
                    facts = analyzer.parse(output)
                except AnalyzerInvocationError as exc:
                    failed = True
                    tracker.add(str(exc))
                    continue
                except (FeedbackError, OSError) as exc:
                    failed = True
                    tracker.add_exception(analyzer.name, exc)
                    continue
                except Exception as exc:  # pragma: no cover - third-party analyzers may raise anything
                    failed = True
                    tracker.add(f"{analyzer.name}: unexpected {exc.__class__.__name__}: {exc}")
                    LOGGER.exception("analyzer %s crashed", analyzer.name)
                    continue
                normalizer = DiagnosticNormalizer(
                    document_path=str(document_path),
                    analyzer=analyzer.name,
                    document_lines=lines,
                    signatures=signatures,
                    report_unparsed=settings.report_unparsed,
                )
                merged.add(normalizer.normalize_all(facts))

        outcome.files = dict(merged.items())
        self._publish(document, document_path, root, settings, merged, outcome)
        outcome.errors = tracker.flush(self._context.error_reporter)
        outcome.succeeded = not failed
        if failed:
            LOGGER.debug("%s v%d had analyzer failures; version not recorded", document.uri, document.version)
        else:
            self._cache.record_version(document.uri, document.version)

    def _publish(
        self,
        document: TextDocument,
        document_path: Path,
        root: Path,
        settings: Settings,
        merged: MergedFileDiagnostics,
        outcome: PassOutcome,
    ) -> None:
        sink = self._context.sink
        with self._lock:
            if document.uri not in self._documents:
                LOGGER.debug("%s closed during analysis; not publishing", document.uri)
                return
            previous = self._published_files.get(document.uri, set())
        feedback = self._context.feedback_enabled
        own_key = str(document_path)
        current: set[str] = set()

        for key, records in merged.items():
            path = Path(key)
            if not path.is_relative_to(root) or is_excluded(path, settings, root):
                LOGGER.debug("not publishing diagnostics for %s", key)
                continue
            file_uri = document.uri if key == own_key else path.as_uri()
            sink.publish(file_uri, [])
            if feedback and records:
                sink.publish(file_uri, records)
                outcome.published.append(file_uri)
                current.add(file_uri)
            else:
                outcome.retracted.append(file_uri)

        stale = previous - current - set(outcome.retracted)
        if own_key not in merged and document.uri not in outcome.retracted:
            stale.add(document.uri)
        for file_uri in sorted(stale):
            sink.publish(file_uri, [])
            outcome.retracted.append(file_uri)

        with self._lock:
            self._published_files[document.uri] = current

    # Helpers ------------------------------------------------------------

    def _remember(self, document: TextDocument) -> None:
        with self._lock:
            self._documents[document.uri] = document

    def _locate(self, document: TextDocument) -> tuple[Path, Path] | SkipReason:
        """Return ``(document_path, workspace_root)`` or why the document is suppressed."""

        if not self._context.is_trusted():
            return SkipReason.UNTRUSTED
        if not document.is_local or document.path is None:
            return SkipReason.NOT_LOCAL
        root = self._context.workspace_root_for(document.path)
        if root is None:
            return SkipReason.NO_WORKSPACE
        return document.path.resolve(), root

    def _state_for(self, document: TextDocument) -> DocumentState | None:
        located = self._locate(document)
        if isinstance(located, SkipReason):
            return None
        return self._cache.get(document.uri, located[1])

    def _run_debounced(self, uri: str) -> None:
        with self._lock:
            document = self._documents.get(uri)
        if document is not None:
            self.analyze(document, Trigger.CHANGE)


def _resolve_file(name: str, root: Path) -> str:
    path = Path(name)
    if not path.is_absolute():
        path = root / path
    return str(path.resolve())


@contextmanager
def _scratch_copy(document: TextDocument, document_path: Path) -> Iterator[Path]:
    """Write the buffer contents to a temporary file removed afterwards."""

    handle, name = tempfile.mkstemp(prefix="ccfeedback-", suffix=document_path.suffix)
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as stream:
            stream.write(document.text)
        yield Path(name)
    finally:
        Path(name).unlink(missing_ok=True)


__all__ = [
    "AnalysisContext",
    "AnalysisCoordinator",
    "DiagnosticSink",
    "DocumentPhase",
    "PassOutcome",
    "SkipReason",
    "Trigger",
]
