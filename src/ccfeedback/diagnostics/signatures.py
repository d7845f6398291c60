# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Library of known compiler error signatures with plain-language explanations."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Sequence
from functools import lru_cache
from importlib import resources
from pathlib import Path
from re import Pattern
from typing import Final

from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError, model_validator

from ..errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

_DATA_PACKAGE: Final[str] = "ccfeedback.diagnostics.data"
_DEFAULT_RESOURCE: Final[str] = "signatures.json"
_ENTRIES_KEY: Final[str] = "errors"


class ErrorSignature(BaseModel):
    """Regex describing a known error plus the phase and explanation shown to users."""

    model_config = ConfigDict(frozen=True)

    regex: str
    phase: str
    message: str
    _compiled: Pattern[str] | None = PrivateAttr(default=None)

    @model_validator(mode="after")
    def _compile_regex(self) -> ErrorSignature:
        """Compile the configured regex once for reuse.

        Returns:
            ErrorSignature: Signature with its compiled pattern cached.
        """

        self._compiled = re.compile(self.regex)
        return self

    def matches(self, text: str) -> bool:
        """Return ``True`` when the signature regex is found in ``text``."""

        pattern = self._compiled if self._compiled is not None else re.compile(self.regex)
        return pattern.search(text) is not None


class SignatureLibrary:
    """Ordered collection of :class:`ErrorSignature` entries; first match wins."""

    def __init__(self, signatures: Iterable[ErrorSignature] = ()) -> None:
        self._signatures: tuple[ErrorSignature, ...] = tuple(signatures)

    def __len__(self) -> int:
        return len(self._signatures)

    @property
    def signatures(self) -> tuple[ErrorSignature, ...]:
        """Return the registered signatures in lookup order."""

        return self._signatures

    def match(self, message: str) -> ErrorSignature | None:
        """Return the first signature whose regex is found in ``message``.

        Args:
            message: Raw diagnostic message emitted by the analyzer.

        Returns:
            ErrorSignature | None: Matching signature, or ``None``.
        """

        for signature in self._signatures:
            if signature.matches(message):
                return signature
        return None

    def extended(self, signatures: Sequence[ErrorSignature]) -> SignatureLibrary:
        """Return a library consulting ``signatures`` before the current entries."""

        return SignatureLibrary((*signatures, *self._signatures))

    @classmethod
    def from_json_text(cls, text: str, *, origin: str) -> SignatureLibrary:
        """Build a library from a JSON document ``{"errors": [...]}``.

        Args:
            text: JSON payload.
            origin: Description of the payload source used in error messages.

        Returns:
            SignatureLibrary: Parsed signature library.

        Raises:
            ConfigurationError: If the payload is malformed or a regex is invalid.
        """

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"{origin}: invalid JSON ({exc})") from exc
        entries = payload.get(_ENTRIES_KEY) if isinstance(payload, dict) else None
        if not isinstance(entries, list):
            raise ConfigurationError(f"{origin}: expected an object with an '{_ENTRIES_KEY}' list")
        signatures: list[ErrorSignature] = []
        for index, entry in enumerate(entries):
            try:
                signatures.append(ErrorSignature.model_validate(entry))
            except (ValidationError, re.error) as exc:
                raise ConfigurationError(f"{origin}: invalid signature #{index}: {exc}") from exc
        return cls(signatures)

    @classmethod
    def from_path(cls, path: Path) -> SignatureLibrary:
        """Load a signature library from ``path``.

        Raises:
            ConfigurationError: If the file cannot be read or parsed.
        """

        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"unable to read signature library {path}: {exc}") from exc
        return cls.from_json_text(text, origin=str(path))


@lru_cache(maxsize=1)
def default_signature_library() -> SignatureLibrary:
    """Return the built-in signature library, loaded once per process."""

    text = resources.files(_DATA_PACKAGE).joinpath(_DEFAULT_RESOURCE).read_text(encoding="utf-8")
    library = SignatureLibrary.from_json_text(text, origin=_DEFAULT_RESOURCE)
    LOGGER.debug("loaded %d built-in error signatures", len(library))
    return library


def load_signature_library(extra_paths: Iterable[Path] = ()) -> SignatureLibrary:
    """Return the built-in library extended with user signature files.

    User files are consulted before the built-in entries, in the given order.
    A malformed user file is logged and skipped.

    Args:
        extra_paths: JSON signature files supplied by configuration.

    Returns:
        SignatureLibrary: Combined library.
    """

    library = default_signature_library()
    user_signatures: list[ErrorSignature] = []
    for path in extra_paths:
        try:
            user_signatures.extend(SignatureLibrary.from_path(path).signatures)
        except ConfigurationError as exc:
            LOGGER.warning("ignoring signature library: %s", exc)
    if not user_signatures:
        return library
    return library.extended(user_signatures)


__all__ = [
    "ErrorSignature",
    "SignatureLibrary",
    "default_signature_library",
    "load_signature_library",
]
