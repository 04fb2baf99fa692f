"""Shared fixtures: canned API payloads, mock HTTP clients and in-memory adapters."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
import pytest

from statminer.datasources.base import (
    DatasetDescriptor,
    FetchRequest,
    NormalizedResult,
    RateLimits,
    ResultMetadata,
)
from statminer.llm.base import Completion, ProviderSpec, run_cancellable


def mock_client(handler: Callable[[httpx.Request], httpx.Response], calls: Optional[list] = None) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``; requests are appended to ``calls``."""

    def record(request: httpx.Request):
        if calls is not None:
            calls.append(request)
        return handler(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(record))


def json_handler(payload, status_code: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=payload)
    return handler


def make_result(rows=None, *, source="mock", dataset="ds", columns=None, fetched_at=None, **meta) -> NormalizedResult:
    rows = [{"a": 1, "b": 2}] if rows is None else rows
    return NormalizedResult(
        source=source,
        dataset=dataset,
        rows=rows,
        metadata=ResultMetadata(
            fetched_at=fetched_at or datetime.now(timezone.utc),
            row_count=meta.pop("row_count", len(rows)),
            columns=columns if columns is not None else (list(rows[0]) if rows else []),
            **meta,
        ),
    )


class MockSource:
    """In-memory SourceAdapter; ``error`` makes every call raise it."""

    category = "government"
    description = "mock source"
    base_url = "https://example.test"
    requires_api_key = False

    def __init__(self, source_id: str, descriptors=(), result=None, error: Optional[Exception] = None, delay: float = 0.0):
        self.id = source_id
        self.name = source_id.title()
        self._descriptors = [
            DatasetDescriptor(id=d, name=d, description=f"{d} dataset", source=source_id, category="government")
            for d in descriptors
        ]
        self._result = result
        self._error = error
        self._delay = delay
        self.fetch_calls: list[tuple[str, FetchRequest]] = []
        self.timeouts: list[Optional[float]] = []

    async def _maybe_fail(self):
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error

    async def list_datasets(self):
        await self._maybe_fail()
        return list(self._descriptors)

    async def search(self, query):
        await self._maybe_fail()
        return [d for d in self._descriptors if query.lower() in d.id.lower()]

    async def fetch(self, dataset_id, params, timeout=None):
        self.fetch_calls.append((dataset_id, params))
        self.timeouts.append(timeout)
        await self._maybe_fail()
        if self._result is not None:
            return self._result
        return make_result(source=self.id, dataset=dataset_id, request=params)

    def get_rate_limits(self):
        return RateLimits(requests_per_minute=1, requests_per_day=10)


class FakeProvider:
    """ProviderAdapter stub with a scripted reply, error or delay."""

    def __init__(self, provider_id: str, reply: str = "ok", tokens: Optional[int] = 10,
                 cost_per_1k: float = 0.1, error: Optional[Exception] = None, delay: float = 0.0):
        self.spec = ProviderSpec(
            id=provider_id,
            name=provider_id.upper(),
            endpoint=f"https://{provider_id}.test/v1/chat/completions",
            model=f"{provider_id}-model",
            max_tokens=256,
            cost_per_1k_tokens=cost_per_1k,
        )
        self._reply = reply
        self._tokens = tokens
        self._error = error
        self._delay = delay
        self.prompts: list[str] = []

    async def _answer(self) -> Completion:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return Completion(content=self._reply, tokens_used=self._tokens)

    async def complete(self, prompt, credential, cancel_event=None, timeout=None):
        self.prompts.append(prompt)
        return await run_cancellable(self._answer, cancel_event, timeout or 5, label=self.spec.id)


# ---------------------------------------------------------------------------
# Canned payloads
# ---------------------------------------------------------------------------


@pytest.fixture
def census_payload():
    return [
        ["NAME", "B01001_001E", "B19013_001E", "state"],
        ["California", "39029342", "91551", "06"],
        ["Texas", "30029572", "73035", "48"],
        ["Wyoming", "581381", None, "56"],
    ]


@pytest.fixture
def fred_payload():
    return {
        "realtime_start": "2024-02-01",
        "realtime_end": "2024-02-01",
        "count": 4,
        "offset": 0,
        "limit": 100000,
        "observations": [
            {"realtime_start": "2024-02-01", "realtime_end": "2024-02-01", "date": "2023-09-01", "value": "3.8"},
            {"realtime_start": "2024-02-01", "realtime_end": "2024-02-01", "date": "2023-10-01", "value": "3.8"},
            {"realtime_start": "2024-02-01", "realtime_end": "2024-02-01", "date": "2023-11-01", "value": "."},
            {"realtime_start": "2024-02-01", "realtime_end": "2024-02-01", "date": "2023-12-01", "value": "3.7"},
        ],
    }


@pytest.fixture
def fred_search_payload():
    return {
        "count": 1,
        "seriess": [
            {
                "id": "UNRATE",
                "title": "Unemployment Rate",
                "notes": "The unemployment rate represents ...",
                "last_updated": "2024-01-05 07:44:02-06",
            }
        ],
    }


@pytest.fixture
def worldbank_payload():
    return [
        {"page": 1, "pages": 1, "per_page": 50, "total": 3, "lastupdated": "2024-01-25"},
        [
            {
                "indicator": {"id": "SP.POP.TOTL", "value": "Population, total"},
                "country": {"id": "US", "value": "United States"},
                "countryiso3code": "USA",
                "date": "2022",
                "value": 333287557,
            },
            {
                "indicator": {"id": "SP.POP.TOTL", "value": "Population, total"},
                "country": {"id": "US", "value": "United States"},
                "countryiso3code": "USA",
                "date": "2021",
                "value": 332031554,
            },
            {
                "indicator": {"id": "SP.POP.TOTL", "value": "Population, total"},
                "country": {"id": "US", "value": "United States"},
                "countryiso3code": "USA",
                "date": "2023",
                "value": None,
            },
        ],
    ]


def request_json(request: httpx.Request) -> dict:
    return json.loads(request.content.decode())
