"""Caller-facing service over mock sources and providers."""

import asyncio

import pytest

from conftest import FakeProvider, MockSource, make_result
from statminer import StatMinerService
from statminer.datasources.base import FetchRequest
from statminer.datasources.registry import SourceEntry, SourceRegistry
from statminer.errors import FetchFailed, UnknownSource, ValidationFailed


def _service(*sources, providers=None, source_credentials=None) -> StatMinerService:
    registry = SourceRegistry([
        SourceEntry(id=s.id, name=s.name, description="", category="government",
                    requires_api_key=False, factory=lambda key, s=s: s)
        for s in sources
    ])
    return StatMinerService(
        registry=registry,
        providers={p.spec.id: p for p in providers or ()},
        source_credentials=source_credentials,
    )


def test_search_and_list():
    service = _service(MockSource("a", descriptors=["gdp", "cpi"]), MockSource("b", descriptors=["gdp-b"]))
    assert [d.id for d in asyncio.run(service.search_datasets("gdp"))] == ["gdp", "gdp-b"]
    assert len(asyncio.run(service.list_datasets())) == 3
    assert [e.id for e in service.sources()] == ["a", "b"]


def test_fetch_dataset_accepts_mapping_params():
    source = MockSource("census")
    service = _service(source)
    result = asyncio.run(service.fetch_dataset("census", "acs/acs5", {"year": 2021, "geography": "state:*"}))
    assert result.dataset == "acs/acs5"
    assert source.fetch_calls[0][1] == FetchRequest(year=2021, geography="state:*")


def test_fetch_dataset_unknown_source():
    with pytest.raises(UnknownSource):
        asyncio.run(_service().fetch_dataset("bls", "CES0000000001"))


def test_fetch_dataset_propagates_fetch_failures():
    service = _service(MockSource("fred", error=FetchFailed(400, "Bad Request")))
    with pytest.raises(FetchFailed):
        asyncio.run(service.fetch_dataset("fred", "NOPE"))


def test_fetch_dataset_rejects_structurally_invalid_results():
    service = _service(MockSource("x", result=make_result(source="")))
    with pytest.raises(ValidationFailed):
        asyncio.run(service.fetch_dataset("x", "ds"))


def test_fetch_dataset_keeps_results_with_warnings():
    service = _service(MockSource("x", result=make_result([], columns=["a"])))
    assert asyncio.run(service.fetch_dataset("x", "ds")).rows == []


def test_fetch_datasets_is_best_effort():
    service = _service(MockSource("ok"), MockSource("down", error=FetchFailed(None, "timeout")))
    results = asyncio.run(service.fetch_datasets([("ok", "a", None), ("down", "b", None), ("ok", "c", {"limit": 5})]))
    assert [r.dataset for r in results] == ["a", "c"]


def test_dispatch_prompt_with_context():
    a = FakeProvider("a")
    service = _service(MockSource("census"), providers=[a])
    context = asyncio.run(service.fetch_dataset("census", "acs/acs5"))
    result = asyncio.run(service.dispatch_prompt("Summarize", ["a", "b"], {"a": "k"}, context))
    assert [o.provider_id for o in result.successes] == ["a"]
    assert [f.provider_id for f in result.failures] == ["b"]
    assert a.prompts[0].startswith("Dataset context: census/acs/acs5")


def test_source_rate_limits():
    service = _service(MockSource("a"))
    assert service.source_rate_limits("a").requests_per_day == 10
    with pytest.raises(UnknownSource):
        service.source_rate_limits("zzz")


def test_default_wiring():
    service = StatMinerService()
    assert service.registry.ids() == ["census", "fred", "worldbank"]
    assert service.dispatcher.provider_ids == ["openai", "anthropic", "openrouter", "grok"]


def test_fetch_timeout_is_forwarded():
    source = MockSource("a")
    service = _service(source)
    asyncio.run(service.fetch_dataset("a", "x", timeout=1.5))
    asyncio.run(service.fetch_datasets([("a", "y", None)], timeout=4.0))
    assert source.timeouts == [1.5, 4.0]
