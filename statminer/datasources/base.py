"""
statminer/datasources/base.py
=============================
Data structures and pure helpers shared by every source adapter.

Adapters do not inherit from a common base class: each one is a
self-contained translation (request builder + response parser) that
satisfies the ``SourceAdapter`` protocol and borrows the helpers below.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Literal, Optional, Protocol, Sequence, Union, runtime_checkable

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt, field_validator

from statminer.config import settings
from statminer.errors import FetchFailed

Category = Literal["government", "academic", "financial", "health", "international"]
Freshness = Literal["realtime", "daily", "weekly", "monthly", "annual", "unknown"]
Scalar = Union[int, float, str, None]

REDACTED = "[API_KEY]"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatasetDescriptor:
    """One discoverable dataset (table, series or indicator) of a source."""
    id: str
    name: str
    description: str
    source: str                              # owning source id
    category: Category
    variables: tuple[str, ...] = ()
    geography: tuple[str, ...] = ()
    years: tuple[int, ...] = ()
    last_updated: Optional[datetime] = None


class FetchRequest(BaseModel):
    """Caller-built fetch parameters.

    Only the type shape is checked here; whether a source supports a given
    combination is decided by the adapter.
    """
    model_config = ConfigDict(frozen=True)

    variables: tuple[str, ...] = ()
    geography: Optional[str] = None
    # single year (2022 / "2022") or inclusive range (2010, 2020)
    year: Union[int, str, tuple[int, int], None] = None
    limit: Optional[PositiveInt] = None
    offset: Optional[NonNegativeInt] = None
    filters: dict[str, Union[str, int]] = Field(default_factory=dict)

    @field_validator("year")
    @classmethod
    def _check_year(cls, value):
        if isinstance(value, str) and not value.strip().isdigit():
            raise ValueError("year string must contain digits only")
        if isinstance(value, tuple) and value[0] > value[1]:
            raise ValueError("year range start must not exceed its end")
        return value

    def year_bounds(self) -> Optional[tuple[int, int]]:
        """Return ``(start, end)`` for any year form, or None when unset."""
        if self.year is None:
            return None
        if isinstance(self.year, tuple):
            return self.year
        year = int(self.year)
        return year, year

    @property
    def is_year_range(self) -> bool:
        return isinstance(self.year, tuple) and self.year[0] != self.year[1]


@dataclass(frozen=True)
class ResultMetadata:
    fetched_at: datetime
    row_count: int
    columns: list[str]
    freshness: Freshness = "unknown"
    source_url: Optional[str] = None         # credentials redacted
    request: Optional[FetchRequest] = None   # parameters that produced the rows
    extra: dict = field(default_factory=dict)  # source paging info etc.


@dataclass(frozen=True)
class NormalizedResult:
    """Shape-independent tabular reply every adapter converges on."""
    source: str
    dataset: str
    rows: list[dict[str, Scalar]]
    metadata: ResultMetadata


@dataclass(frozen=True)
class RateLimits:
    requests_per_minute: int
    requests_per_day: int


@runtime_checkable
class SourceAdapter(Protocol):
    id: str
    name: str
    category: Category
    description: str
    base_url: str
    requires_api_key: bool

    async def list_datasets(self) -> list[DatasetDescriptor]: ...

    async def search(self, query: str) -> list[DatasetDescriptor]: ...

    async def fetch(self, dataset_id: str, params: FetchRequest, timeout: Optional[float] = None) -> NormalizedResult: ...

    def get_rate_limits(self) -> RateLimits: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_NUMERIC = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_INTEGER = re.compile(r"^[+-]?\d+$")


def coerce_scalar(value: Any) -> Scalar:
    """Turn numeric-looking strings into numbers; leave everything else alone.

    Applied to every cell of a column alike. Identifier columns (FIPS codes
    and the like) must be kept out of it by the adapter, not special-cased here.
    """
    if value is None or isinstance(value, (int, float)):
        return value
    if not isinstance(value, str):
        return str(value)
    text = value.strip()
    if not _NUMERIC.match(text):
        return value
    if _INTEGER.match(text):
        return int(text)
    return float(text)


def redact_url(url: Union[str, httpx.URL], secret_params: Iterable[str] = ("key", "api_key")) -> str:
    url = httpx.URL(str(url))
    for name in secret_params:
        if name in url.params:
            url = url.copy_set_param(name, REDACTED)
    return str(url)


def _error_message(resp: httpx.Response, error_field: Optional[str]) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if error_field and isinstance(body, dict) and body.get(error_field):
        return str(body[error_field])
    text = resp.text.strip()
    return text[:300] if text else resp.reason_phrase


async def get_json(
    url: str,
    params: Optional[dict] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
    tag: str = "Source",
    error_field: Optional[str] = None,
) -> tuple[Any, httpx.URL]:
    """Issue one GET and return ``(payload, final_url)``.

    HTTP 204 yields a ``None`` payload. Transport errors, non-2xx statuses
    and unparseable bodies raise ``FetchFailed``.
    """
    timeout = timeout or settings.source_timeout
    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as owned:
                resp = await owned.get(url, params=params)
        else:
            resp = await client.get(url, params=params, timeout=timeout)
    except httpx.HTTPError as exc:
        raise FetchFailed(None, f"{tag} request failed: {exc}") from exc

    if resp.status_code == 204:
        return None, resp.url
    if not resp.is_success:
        raise FetchFailed(resp.status_code, _error_message(resp, error_field))
    try:
        return resp.json(), resp.url
    except ValueError as exc:
        raise FetchFailed(resp.status_code, f"{tag} returned malformed JSON: {exc}") from exc


def match_descriptors(query: str, descriptors: Iterable[DatasetDescriptor]) -> list[DatasetDescriptor]:
    """Case-insensitive substring match on id, name, description and variables."""
    needle = query.lower().strip()
    if not needle:
        return []
    hits = []
    for d in descriptors:
        haystack = [d.id, d.name, d.description, *d.variables]
        if any(needle in text.lower() for text in haystack):
            hits.append(d)
    return hits


SearchStrategy = tuple[str, Callable[[], Awaitable[list[DatasetDescriptor]]]]


async def first_successful(strategies: Sequence[SearchStrategy], *, tag: str) -> list[DatasetDescriptor]:
    """Try search strategies in order; the first one that returns wins.

    Failures are logged and never raised, so one slow or broken remote search
    cannot block discovery.
    """
    for name, strategy in strategies:
        try:
            return await strategy()
        except Exception as exc:
            logger.warning(f"[{tag}] {name} search failed, trying next strategy: {exc}")
    return []
