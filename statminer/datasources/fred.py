"""
statminer/datasources/fred.py
=============================
FRED (Federal Reserve Economic Data) adapter
Publisher: Federal Reserve Bank of St. Louis
API key: required, free registration https://fred.stlouisfed.org/docs/api/api_key.html

Native shape: a JSON object wrapping a paginated ``observations`` array;
missing observations are reported as ".".

Popular series:
  Output:     GDP, GDPC1, INDPRO
  Labor:      UNRATE, PAYEMS
  Prices:     CPIAUCSL, PPIACO
  Rates:      FEDFUNDS, DGS10, MORTGAGE30US
  Markets:    SP500, DEXUSEU
"""
from __future__ import annotations

import asyncio
import re
from datetime import date, datetime, timezone
from statistics import median
from typing import Optional

import httpx
from loguru import logger

from statminer.config import settings
from statminer.errors import FetchFailed, SourceUnavailable
from .base import (
    Category,
    DatasetDescriptor,
    FetchRequest,
    Freshness,
    NormalizedResult,
    RateLimits,
    ResultMetadata,
    coerce_scalar,
    first_successful,
    get_json,
    match_descriptors,
    redact_url,
)

POPULAR_SERIES: dict[str, tuple[str, str]] = {
    "GDP": ("Gross Domestic Product", "US GDP in billions of dollars"),
    "GDPC1": ("Real GDP", "Real Gross Domestic Product, seasonally adjusted"),
    "UNRATE": ("Unemployment Rate", "Civilian unemployment rate"),
    "CPIAUCSL": ("Consumer Price Index", "CPI for All Urban Consumers"),
    "FEDFUNDS": ("Federal Funds Rate", "Effective Federal Funds Rate"),
    "DGS10": ("10-Year Treasury", "10-Year Treasury Constant Maturity Rate"),
    "MORTGAGE30US": ("30-Year Mortgage Rate", "30-Year Fixed Rate Mortgage Average"),
    "DEXUSEU": ("USD/EUR Exchange Rate", "US Dollar to Euro exchange rate"),
    "SP500": ("S&P 500", "S&P 500 Index"),
    "PAYEMS": ("Nonfarm Payrolls", "All Employees, Total Nonfarm"),
    "HOUST": ("Housing Starts", "New privately-owned housing units started"),
    "RSXFS": ("Retail Sales", "Advance Retail Sales: Retail and Food Services"),
    "INDPRO": ("Industrial Production", "Industrial Production Index"),
    "M2SL": ("M2 Money Supply", "M2 Money Stock"),
    "PPIACO": ("Producer Price Index", "Producer Price Index: All Commodities"),
}

FRED_SERIES: tuple[DatasetDescriptor, ...] = tuple(
    DatasetDescriptor(id=sid, name=name, description=desc, source="fred", category="financial")
    for sid, (name, desc) in POPULAR_SERIES.items()
)

# FRED `frequency` request parameter → freshness
_FREQUENCY_FRESHNESS: dict[str, Freshness] = {
    "d": "daily",
    "w": "weekly",
    "bw": "weekly",
    "wef": "weekly",
    "weth": "weekly",
    "wew": "weekly",
    "wetu": "weekly",
    "wem": "weekly",
    "wesu": "weekly",
    "wesa": "weekly",
    "bwew": "weekly",
    "bwem": "weekly",
    "m": "monthly",
    "q": "monthly",
    "sa": "annual",
    "a": "annual",
}

_COLUMNS = ["date", "value", "series_id"]


class FredSource:
    id = "fred"
    name = "Federal Reserve Economic Data"
    category: Category = "financial"
    description = "Economic data from the Federal Reserve Bank of St. Louis"
    base_url = "https://api.stlouisfed.org/fred"
    requires_api_key = True

    def __init__(self, api_key: Optional[str] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self._api_key = api_key or None
        self._client = client

    def __repr__(self) -> str:
        return f"<FredSource authenticated={self._api_key is not None}>"

    async def list_datasets(self) -> list[DatasetDescriptor]:
        return list(FRED_SERIES)

    async def search(self, query: str) -> list[DatasetDescriptor]:
        async def local() -> list[DatasetDescriptor]:
            return match_descriptors(query, FRED_SERIES)

        return await first_successful(
            [("remote", lambda: self._search_remote(query)), ("local", local)],
            tag="FRED",
        )

    async def _search_remote(self, query: str) -> list[DatasetDescriptor]:
        if not self._api_key:
            raise SourceUnavailable("FRED series search requires an API key")
        params = {
            "api_key": self._api_key,
            "search_text": query,
            "file_type": "json",
            "limit": settings.search_limit,
        }
        try:
            payload, _ = await get_json(
                f"{self.base_url}/series/search", params,
                client=self._client, tag="FRED", error_field="error_message",
            )
        except FetchFailed as exc:
            raise SourceUnavailable(str(exc)) from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("seriess"), list):
            raise SourceUnavailable("FRED search payload has no 'seriess' list")

        return [
            DatasetDescriptor(
                id=s["id"],
                name=s.get("title", s["id"]),
                description=s.get("notes") or "",
                source=self.id,
                category=self.category,
                last_updated=_parse_timestamp(s.get("last_updated")),
            )
            for s in payload["seriess"]
            if isinstance(s, dict) and s.get("id")
        ]

    async def fetch(self, dataset_id: str, params: FetchRequest, timeout: Optional[float] = None) -> NormalizedResult:
        """
        dataset_id      FRED series id, e.g. "UNRATE"
        params.year     year or (start, end) → observation_start / observation_end
        params.limit    / params.offset map to FRED paging
        params.filters  passed through (frequency, units, aggregation_method, ...)
        """
        series_id = dataset_id.strip().upper()
        if not self._api_key:
            raise FetchFailed(None, f"FRED requires an API key (series {series_id})")

        query: dict[str, str | int] = {
            "api_key": self._api_key,
            "series_id": series_id,
            "file_type": "json",
        }
        bounds = params.year_bounds()
        if bounds:
            query["observation_start"] = f"{bounds[0]}-01-01"
            query["observation_end"] = f"{bounds[1]}-12-31"
        if params.limit:
            query["limit"] = params.limit
        if params.offset:
            query["offset"] = params.offset
        query.update(params.filters)

        payload, final_url = await get_json(
            f"{self.base_url}/series/observations", query,
            client=self._client, timeout=timeout, tag="FRED", error_field="error_message",
        )
        if not isinstance(payload, dict) or not isinstance(payload.get("observations"), list):
            raise FetchFailed(None, f"FRED payload for {series_id} has no 'observations' list")

        rows = []
        for obs in payload["observations"]:
            if not isinstance(obs, dict) or "date" not in obs:
                raise FetchFailed(None, f"FRED observation without a date in {series_id}")
            raw = obs.get("value")
            rows.append({
                "date": obs["date"],
                "value": None if raw in (".", "", None) else coerce_scalar(raw),
                "series_id": series_id,
            })

        frequency = str(params.filters.get("frequency", "")).lower()
        freshness = _FREQUENCY_FRESHNESS.get(frequency) or infer_freshness([r["date"] for r in rows])
        logger.debug(f"[FRED] {series_id}: {len(rows)} observations ({freshness})")

        return NormalizedResult(
            source=self.id,
            dataset=series_id,
            rows=rows,
            metadata=ResultMetadata(
                fetched_at=datetime.now(timezone.utc),
                row_count=len(rows),
                columns=list(_COLUMNS),
                freshness=freshness,
                source_url=redact_url(final_url),
                request=params,
                extra={k: payload[k] for k in ("count", "offset", "limit") if k in payload},
            ),
        )

    def get_rate_limits(self) -> RateLimits:
        return RateLimits(requests_per_minute=120, requests_per_day=10000)

    async def fetch_many(self, series_ids: list[str], params: Optional[FetchRequest] = None) -> list[NormalizedResult]:
        """Fetch several series at once; failed series are logged and skipped."""
        params = params or FetchRequest()
        results = await asyncio.gather(
            *(self.fetch(sid, params) for sid in series_ids), return_exceptions=True
        )
        fetched = []
        for sid, res in zip(series_ids, results):
            if isinstance(res, Exception):
                logger.warning(f"[FRED] {sid} skipped: {res}")
                continue
            fetched.append(res)
        return fetched


def infer_freshness(dates: list[str]) -> Freshness:
    """Classify update cadence from the median spacing of observation dates."""
    parsed = []
    for d in dates:
        try:
            parsed.append(date.fromisoformat(d))
        except (TypeError, ValueError):
            continue
    if len(parsed) < 2:
        return "unknown"
    parsed.sort()
    gap = median((b - a).days for a, b in zip(parsed, parsed[1:]))
    if gap <= 1:
        return "daily"
    if gap <= 7:
        return "weekly"
    # quarterly series are reported as monthly
    if gap <= 92:
        return "monthly"
    return "annual"


def _parse_timestamp(value) -> Optional[datetime]:
    # FRED emits "2024-01-26 07:51:02-06"
    if not isinstance(value, str) or not value:
        return None
    text = value.strip().replace(" ", "T", 1)
    if re.search(r"T[\d:]+[+-]\d{2}$", text):
        text += ":00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None
