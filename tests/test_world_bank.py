"""World Bank adapter: [paging, data] pairs, null values, paging and error envelopes."""

import asyncio

import httpx
import pytest

from conftest import json_handler, mock_client
from statminer.datasources.base import FetchRequest
from statminer.datasources.world_bank import WorldBankSource
from statminer.errors import FetchFailed


def test_fetch_drops_null_observations(worldbank_payload):
    calls = []
    source = WorldBankSource(client=mock_client(json_handler(worldbank_payload), calls))
    result = asyncio.run(source.fetch("SP.POP.TOTL", FetchRequest(geography="USA", year=(2021, 2023))))

    assert result.metadata.row_count == 2
    assert result.rows[0] == {
        "country": "United States",
        "country_code": "USA",
        "year": 2022,
        "value": 333287557,
        "indicator": "SP.POP.TOTL",
        "indicator_name": "Population, total",
    }
    assert result.metadata.extra["total"] == 3
    assert result.metadata.freshness == "annual"

    sent = calls[0].url
    assert sent.path == "/v2/country/USA/indicator/SP.POP.TOTL"
    assert sent.params["date"] == "2021:2023"
    assert sent.params["format"] == "json"


def test_defaults_to_all_countries_and_date_window(worldbank_payload):
    calls = []
    source = WorldBankSource(client=mock_client(json_handler(worldbank_payload), calls))
    asyncio.run(source.fetch("SP.POP.TOTL", FetchRequest()))
    sent = calls[0].url
    assert sent.path == "/v2/country/all/indicator/SP.POP.TOTL"
    assert sent.params["date"] == "2010:2023"
    assert sent.params["per_page"] == "1000"
    assert sent.params["page"] == "1"


def _paged_upstream(total: int):
    """Serve ``total`` records (value i) honouring per_page / page, like the live API."""

    def handler(request):
        per_page = int(request.url.params["per_page"])
        page = int(request.url.params["page"])
        start = (page - 1) * per_page
        records = [
            {
                "indicator": {"id": "SP.POP.TOTL", "value": "Population, total"},
                "country": {"id": "US", "value": "United States"},
                "countryiso3code": "USA",
                "date": str(2000 + i),
                "value": i,
            }
            for i in range(start, min(start + per_page, total))
        ]
        meta = {"page": page, "pages": -(-total // per_page), "per_page": per_page, "total": total}
        return httpx.Response(200, json=[meta, records])

    return handler


def test_unaligned_offset_returns_a_full_window():
    calls = []
    source = WorldBankSource(client=mock_client(_paged_upstream(20), calls))
    result = asyncio.run(source.fetch("SP.POP.TOTL", FetchRequest(limit=4, offset=2)))
    assert [r["value"] for r in result.rows] == [2, 3, 4, 5]
    assert result.metadata.row_count == 4
    assert len(calls) == 1


def test_aligned_offset_requests_the_matching_page():
    calls = []
    source = WorldBankSource(client=mock_client(_paged_upstream(20), calls))
    result = asyncio.run(source.fetch("SP.POP.TOTL", FetchRequest(limit=4, offset=8)))
    assert [r["value"] for r in result.rows] == [8, 9, 10, 11]
    assert calls[0].url.params["page"] == "3"
    assert calls[0].url.params["per_page"] == "4"


def test_window_past_the_end_is_short():
    source = WorldBankSource(client=mock_client(_paged_upstream(5)))
    result = asyncio.run(source.fetch("SP.POP.TOTL", FetchRequest(limit=4, offset=3)))
    assert [r["value"] for r in result.rows] == [3, 4]


def test_timeout_reaches_the_request(worldbank_payload):
    calls = []
    source = WorldBankSource(client=mock_client(json_handler(worldbank_payload), calls))
    asyncio.run(source.fetch("SP.POP.TOTL", FetchRequest(), timeout=3.5))
    assert calls[0].extensions["timeout"]["read"] == 3.5


def test_message_envelope_raises_fetch_failed():
    envelope = [{"message": [{"id": "120", "key": "Invalid value", "value": "The provided parameter value is not valid"}]}]
    source = WorldBankSource(client=mock_client(json_handler(envelope)))
    with pytest.raises(FetchFailed) as exc_info:
        asyncio.run(source.fetch("NOT.AN.INDICATOR", FetchRequest()))
    assert "not valid" in exc_info.value.message


def test_empty_data_page_yields_empty_result():
    payload = [{"page": 0, "pages": 0, "per_page": 50, "total": 0}, None]
    source = WorldBankSource(client=mock_client(json_handler(payload)))
    result = asyncio.run(source.fetch("SP.POP.TOTL", FetchRequest(geography="USA", year=1900)))
    assert result.rows == []
    assert result.metadata.columns


def test_remote_search_and_local_fallback():
    payload = [
        {"page": 1, "pages": 1, "per_page": 20, "total": 1},
        [{"id": "SP.POP.TOTL", "name": "Population, total", "sourceNote": "Total population"}],
    ]
    source = WorldBankSource(client=mock_client(json_handler(payload)))
    assert [d.id for d in asyncio.run(source.search("population"))] == ["SP.POP.TOTL"]

    broken = WorldBankSource(client=mock_client(lambda request: httpx.Response(502)))
    hits = asyncio.run(broken.search("inflation"))
    assert [d.id for d in hits] == ["FP.CPI.TOTL.ZG"]


def test_country_profile_skips_failed_indicators(worldbank_payload):
    def handler(request):
        if "SP.DYN.LE00.IN" in request.url.path:
            return httpx.Response(500, text="boom")
        return httpx.Response(200, json=worldbank_payload)

    source = WorldBankSource(client=mock_client(handler))
    profile = asyncio.run(source.country_profile("USA"))
    assert len(profile) == 5


def test_api_key_is_ignored():
    assert WorldBankSource("whatever").get_rate_limits().requests_per_minute == 100
