"""
statminer/datasources/world_bank.py
===================================
World Bank Open Data API adapter (no API key)
Publisher: World Bank
Coverage: 200+ economies, 17,500+ indicators, back to 1960

Native shape: a two-element ``[paging_metadata, observations]`` tuple;
errors come back as ``[{"message": [{"id", "key", "value"}]}]`` with HTTP 200.

Popular indicator ids (geography uses ISO codes, ";"-separated, or "all"):
  NY.GDP.MKTP.CD      GDP (current US$)
  NY.GDP.MKTP.KD.ZG   GDP growth (annual %)
  SP.POP.TOTL         Population, total
  SL.UEM.TOTL.ZS      Unemployment (% of labor force)
  FP.CPI.TOTL.ZG      Inflation, consumer prices (annual %)
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

import httpx
from loguru import logger

from statminer.config import settings
from statminer.errors import FetchFailed, SourceUnavailable
from .base import (
    Category,
    DatasetDescriptor,
    FetchRequest,
    NormalizedResult,
    RateLimits,
    ResultMetadata,
    coerce_scalar,
    first_successful,
    get_json,
    match_descriptors,
    redact_url,
)

POPULAR_INDICATORS: dict[str, tuple[str, str]] = {
    "NY.GDP.MKTP.CD": ("GDP (current US$)", "Gross Domestic Product at market prices"),
    "NY.GDP.PCAP.CD": ("GDP per capita (current US$)", "GDP divided by midyear population"),
    "NY.GDP.MKTP.KD.ZG": ("GDP growth (annual %)", "Annual GDP growth rate"),
    "SP.POP.TOTL": ("Population, total", "Total population count"),
    "SP.POP.GROW": ("Population growth (annual %)", "Annual population growth rate"),
    "SL.UEM.TOTL.ZS": ("Unemployment (% of labor force)", "Unemployment as % of total labor force"),
    "FP.CPI.TOTL.ZG": ("Inflation (consumer prices)", "Annual inflation rate"),
    "SL.TLF.CACT.ZS": ("Labor force participation rate", "Labor force as % of population 15+"),
    "SE.ADT.LITR.ZS": ("Literacy rate (% adults)", "Adult literacy rate, ages 15+"),
    "SP.DYN.LE00.IN": ("Life expectancy at birth", "Total life expectancy in years"),
    "SH.XPD.CHEX.PC.CD": ("Health expenditure per capita", "Current health expenditure per capita in USD"),
    "SE.XPD.TOTL.GD.ZS": ("Education expenditure (% of GDP)", "Government expenditure on education"),
    "EG.USE.ELEC.KH.PC": ("Electric power consumption", "Electric power consumption per capita (kWh)"),
    "EN.ATM.CO2E.PC": ("CO2 emissions per capita", "CO2 emissions in metric tons per capita"),
    "SI.POV.DDAY": ("Poverty headcount ratio", "Population below $2.15/day (2017 PPP)"),
}

REGIONS: dict[str, str] = {
    "WLD": "World",
    "EAS": "East Asia & Pacific",
    "ECS": "Europe & Central Asia",
    "LCN": "Latin America & Caribbean",
    "MEA": "Middle East & North Africa",
    "NAC": "North America",
    "SAS": "South Asia",
    "SSF": "Sub-Saharan Africa",
}

MAJOR_COUNTRIES: dict[str, str] = {
    "USA": "United States",
    "CHN": "China",
    "JPN": "Japan",
    "DEU": "Germany",
    "GBR": "United Kingdom",
    "FRA": "France",
    "IND": "India",
    "ITA": "Italy",
    "BRA": "Brazil",
    "CAN": "Canada",
    "AUS": "Australia",
    "KOR": "South Korea",
    "MEX": "Mexico",
    "RUS": "Russia",
}

WORLDBANK_INDICATORS: tuple[DatasetDescriptor, ...] = tuple(
    DatasetDescriptor(
        id=iid,
        name=name,
        description=desc,
        source="worldbank",
        category="international",
        geography=tuple(REGIONS) + tuple(MAJOR_COUNTRIES),
    )
    for iid, (name, desc) in POPULAR_INDICATORS.items()
)

_PROFILE_INDICATORS = (
    "NY.GDP.MKTP.CD",
    "NY.GDP.PCAP.CD",
    "SP.POP.TOTL",
    "SL.UEM.TOTL.ZS",
    "FP.CPI.TOTL.ZG",
    "SP.DYN.LE00.IN",
)
_DEFAULT_DATE_RANGE = "2010:2023"
_DEFAULT_PER_PAGE = 1000
_COLUMNS = ["country", "country_code", "year", "value", "indicator", "indicator_name"]


class WorldBankSource:
    id = "worldbank"
    name = "World Bank Open Data"
    category: Category = "international"
    description = "Global development indicators for 200+ countries"
    base_url = "https://api.worldbank.org/v2"
    requires_api_key = False

    def __init__(self, api_key: Optional[str] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        # Open API; a credential is accepted for interface symmetry and ignored.
        self._client = client

    def __repr__(self) -> str:
        return "<WorldBankSource>"

    async def list_datasets(self) -> list[DatasetDescriptor]:
        return list(WORLDBANK_INDICATORS)

    async def search(self, query: str) -> list[DatasetDescriptor]:
        async def local() -> list[DatasetDescriptor]:
            return match_descriptors(query, WORLDBANK_INDICATORS)

        return await first_successful(
            [("remote", lambda: self._search_remote(query)), ("local", local)],
            tag="WorldBank",
        )

    async def _search_remote(self, query: str) -> list[DatasetDescriptor]:
        params = {"format": "json", "per_page": settings.search_limit, "search": query}
        try:
            payload, _ = await get_json(f"{self.base_url}/indicator", params, client=self._client, tag="WorldBank")
        except FetchFailed as exc:
            raise SourceUnavailable(str(exc)) from exc
        if not isinstance(payload, list) or len(payload) < 2 or not isinstance(payload[1], list):
            raise SourceUnavailable("World Bank indicator search returned no data page")

        return [
            DatasetDescriptor(
                id=ind["id"],
                name=ind.get("name") or ind["id"],
                description=ind.get("sourceNote") or "",
                source=self.id,
                category=self.category,
            )
            for ind in payload[1]
            if isinstance(ind, dict) and ind.get("id")
        ]

    async def fetch(self, dataset_id: str, params: FetchRequest, timeout: Optional[float] = None) -> NormalizedResult:
        """
        dataset_id         indicator id, e.g. "NY.GDP.MKTP.KD.ZG"
        params.geography   ISO code(s) joined by ";", default "all"
        params.year        year or (start, end); default 2010:2023
        params.limit       rows wanted (default 1000), starting at params.offset
        params.filters     passed through (mrv, gapfill, source, ...)
        """
        country = params.geography or "all"
        bounds = params.year_bounds()
        if bounds is None:
            date_range = _DEFAULT_DATE_RANGE
        elif bounds[0] == bounds[1]:
            date_range = str(bounds[0])
        else:
            date_range = f"{bounds[0]}:{bounds[1]}"
        limit = params.limit or _DEFAULT_PER_PAGE
        offset = params.offset or 0
        if offset % limit == 0:
            # window lines up with an upstream page
            per_page, page, skip = limit, offset // limit + 1, 0
        else:
            # one page from record 0 covering [offset, offset + limit)
            per_page, page, skip = offset + limit, 1, offset

        query: dict[str, str | int] = {
            "format": "json",
            "per_page": per_page,
            "page": page,
            "date": date_range,
        }
        query.update(params.filters)

        url = f"{self.base_url}/country/{country}/indicator/{dataset_id}"
        payload, final_url = await get_json(url, query, client=self._client, timeout=timeout, tag="WorldBank")

        paging, records = _split_payload(payload, dataset_id)
        rows = []
        for item in records[skip:skip + limit]:
            if not isinstance(item, dict):
                raise FetchFailed(None, f"World Bank observation is not an object ({dataset_id})")
            if item.get("value") is None:
                continue
            country_info = item.get("country") or {}
            indicator_info = item.get("indicator") or {}
            rows.append({
                "country": country_info.get("value"),
                "country_code": item.get("countryiso3code") or country_info.get("id"),
                "year": coerce_scalar(item.get("date")),
                "value": coerce_scalar(item["value"]),
                "indicator": indicator_info.get("id", dataset_id),
                "indicator_name": indicator_info.get("value"),
            })
        logger.debug(f"[WorldBank] {dataset_id} ({country}, {date_range}): {len(rows)} rows")

        return NormalizedResult(
            source=self.id,
            dataset=dataset_id,
            rows=rows,
            metadata=ResultMetadata(
                fetched_at=datetime.now(timezone.utc),
                row_count=len(rows),
                columns=list(_COLUMNS),
                freshness="annual",
                source_url=redact_url(final_url),
                request=params,
                extra={k: paging[k] for k in ("page", "pages", "per_page", "total", "lastupdated") if k in paging},
            ),
        )

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_minute=100, requests_per_day=50000)

    # ------------------------------------------------------------------
    # Common queries
    # ------------------------------------------------------------------

    async def major_economies(self, indicator_id: str, year: Optional[int] = None) -> NormalizedResult:
        return await self.fetch(indicator_id, FetchRequest(geography=";".join(MAJOR_COUNTRIES), year=year))

    async def regional_data(self, indicator_id: str, year: Optional[int] = None) -> NormalizedResult:
        return await self.fetch(indicator_id, FetchRequest(geography=";".join(REGIONS), year=year))

    async def country_profile(self, country_code: str, year: Optional[int] = None) -> list[NormalizedResult]:
        """Headline indicators for one economy; failed indicators are skipped."""
        params = FetchRequest(geography=country_code, year=year)
        results = await asyncio.gather(
            *(self.fetch(iid, params) for iid in _PROFILE_INDICATORS), return_exceptions=True
        )
        profile = []
        for iid, res in zip(_PROFILE_INDICATORS, results):
            if isinstance(res, Exception):
                logger.warning(f"[WorldBank] profile {country_code}/{iid} skipped: {res}")
                continue
            profile.append(res)
        return profile


def _split_payload(payload, dataset_id: str) -> tuple[dict, list]:
    if payload is None:
        return {}, []
    if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
        raise FetchFailed(None, f"World Bank payload is not a [metadata, data] pair ({dataset_id})")
    head = payload[0]
    if "message" in head:
        messages = head["message"] if isinstance(head["message"], list) else [head["message"]]
        text = "; ".join(
            str(m.get("value") or m.get("key")) if isinstance(m, dict) else str(m) for m in messages
        )
        raise FetchFailed(None, f"World Bank API error: {text}")
    if len(payload) < 2 or payload[1] is None:
        return head, []
    if not isinstance(payload[1], list):
        raise FetchFailed(None, f"World Bank data page is not a list ({dataset_id})")
    return head, payload[1]
