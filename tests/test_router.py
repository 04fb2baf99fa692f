"""Router fan-out: fault isolation, deterministic ordering, parameter echo."""

import asyncio

from conftest import MockSource, make_result
from statminer.datasources.base import FetchRequest
from statminer.datasources.registry import SourceEntry, SourceRegistry
from statminer.datasources.router import fetch_all, list_all, search_all
from statminer.errors import FetchFailed


def _registry(*sources) -> SourceRegistry:
    return SourceRegistry([
        SourceEntry(
            id=s.id,
            name=s.name,
            description="",
            category="government",
            requires_api_key=False,
            factory=lambda key, s=s: s,
        )
        for s in sources
    ])


def _broken_factory_entry(source_id: str) -> SourceEntry:
    def factory(key):
        raise RuntimeError("cannot build adapter")

    return SourceEntry(id=source_id, name=source_id, description="", category="government",
                       requires_api_key=False, factory=factory)


def test_search_merges_in_registry_order_not_completion_order():
    slow = MockSource("slow", descriptors=["pop-slow"], delay=0.05)
    fast = MockSource("fast", descriptors=["pop-fast"])
    hits = asyncio.run(search_all("pop", _registry(slow, fast)))
    assert [d.id for d in hits] == ["pop-slow", "pop-fast"]


def test_one_failing_source_does_not_hide_the_others():
    ok = MockSource("ok", descriptors=["gdp"])
    broken = MockSource("broken", descriptors=["gdp-too"], error=RuntimeError("HTTP 500"))
    registry = _registry(broken, ok)
    registry.register(_broken_factory_entry("unbuildable"))

    hits = asyncio.run(search_all("gdp", registry))
    assert [d.id for d in hits] == ["gdp"]

    listed = asyncio.run(list_all(registry))
    assert [d.id for d in listed] == ["gdp"]


def test_fetch_all_keeps_request_order_and_drops_failures():
    a = MockSource("a")
    b = MockSource("b", error=FetchFailed(500, "boom"))
    c = MockSource("c", delay=0.05)
    requests = [
        ("c", "first", FetchRequest()),
        ("b", "second", FetchRequest()),
        ("nope", "third", FetchRequest()),
        ("a", "fourth", FetchRequest()),
    ]
    results = asyncio.run(fetch_all(requests, _registry(a, b, c)))
    assert [(r.source, r.dataset) for r in results] == [("c", "first"), ("a", "fourth")]


def test_fetch_all_drops_structurally_invalid_results():
    bad = MockSource("bad", result=make_result(source=""))
    good = MockSource("good")
    results = asyncio.run(fetch_all([("bad", "x", FetchRequest()), ("good", "y", FetchRequest())],
                                    _registry(bad, good)))
    assert [r.source for r in results] == ["good"]


def test_fetch_parameters_are_echoed_in_metadata():
    source = MockSource("census")
    req = FetchRequest(variables=("B01001_001E",), geography="state:06", year=2021, limit=5)
    results = asyncio.run(fetch_all([("census", "acs/acs5", req)], _registry(source)))
    assert results[0].metadata.request == req
    assert source.fetch_calls == [("acs/acs5", req)]


def test_fetch_all_passes_the_caller_timeout():
    a, b = MockSource("a"), MockSource("b")
    asyncio.run(fetch_all([("a", "x", FetchRequest()), ("b", "y", FetchRequest())], _registry(a, b), timeout=2.5))
    assert a.timeouts == [2.5]
    assert b.timeouts == [2.5]
