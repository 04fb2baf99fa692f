"""
statminer/errors.py
===================
Exception taxonomy shared by source adapters, the validator and provider
adapters.

Per-item failures (one source, one provider) are contained by the router and
the dispatcher and reported as structured outcomes; these exceptions only
escape when a caller talks to a single adapter directly.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from statminer.validation import ValidationOutcome


class StatMinerError(Exception):
    """Base class for every error raised by statminer."""


class SourceUnavailable(StatMinerError):
    """A remote catalog or search endpoint could not be reached."""


class FetchFailed(StatMinerError):
    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(message if status is None else f"{status}: {message}")
        self.status = status
        self.message = message


class UnsupportedRequest(FetchFailed):
    """The adapter cannot serve this parameter combination."""

    def __init__(self, message: str) -> None:
        super().__init__(None, message)


class UnknownSource(StatMinerError):
    def __init__(self, source_id: str) -> None:
        super().__init__(f"Unknown data source: {source_id!r}")
        self.source_id = source_id


class ValidationFailed(StatMinerError):
    def __init__(self, outcome: "ValidationOutcome") -> None:
        details = "; ".join(f"{e.path}: {e.message}" for e in outcome.errors)
        super().__init__(f"Structural validation failed: {details}")
        self.outcome = outcome


class ProviderError(StatMinerError):
    def __init__(self, status: int | None, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


class ProviderTimeout(ProviderError):
    def __init__(self, message: str) -> None:
        super().__init__(None, message)


class Cancelled(StatMinerError):
    """The caller aborted an in-flight provider call."""
