"""
statminer/datasources/census.py
===============================
US Census Bureau Data API adapter
Docs: https://api.census.gov/data.html
API key: optional (free registration raises the rate-limit tier)
  https://api.census.gov/data/key_signup.html

Native shape: array of arrays, the first row is the header.

Common ACS variables:
  B01001_001E  Total population
  B01002_001E  Median age
  B19013_001E  Median household income
  B25077_001E  Median home value
  B17001_001E  Poverty status

Geography grammar (passed as FetchRequest.geography):
  "state:*"                 every state
  "state:06"                California
  "county:*&in=state:06"    every county in California
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import httpx
from loguru import logger

from statminer.errors import FetchFailed, UnsupportedRequest
from .base import (
    Category,
    DatasetDescriptor,
    FetchRequest,
    NormalizedResult,
    RateLimits,
    ResultMetadata,
    coerce_scalar,
    get_json,
    match_descriptors,
    redact_url,
)

ACS_VARIABLES: dict[str, str] = {
    "B01001_001E": "Total Population",
    "B01002_001E": "Median Age",
    "B19013_001E": "Median Household Income",
    "B19001_001E": "Household Income Distribution",
    "B25077_001E": "Median Home Value",
    "B25064_001E": "Median Gross Rent",
    "B23025_001E": "Employment Status",
    "B15003_001E": "Educational Attainment",
    "B02001_001E": "Race Total",
    "B03001_001E": "Hispanic Origin",
    "B25001_001E": "Total Housing Units",
    "B25002_001E": "Occupancy Status",
    "B08301_001E": "Means of Transportation to Work",
    "B17001_001E": "Poverty Status",
    "B27001_001E": "Health Insurance Coverage",
}

_GEOGRAPHIES = ("us", "state", "county", "place", "tract")

CENSUS_DATASETS: tuple[DatasetDescriptor, ...] = (
    DatasetDescriptor(
        id="acs/acs1",
        name="American Community Survey 1-Year",
        description="Annual demographic, social, economic, and housing data for areas with 65,000+ population",
        source="census",
        category="government",
        variables=tuple(ACS_VARIABLES),
        geography=_GEOGRAPHIES,
        years=(2022, 2021, 2020, 2019, 2018),
    ),
    DatasetDescriptor(
        id="acs/acs5",
        name="American Community Survey 5-Year",
        description="Five-year estimates for all geographic areas, including small populations",
        source="census",
        category="government",
        variables=tuple(ACS_VARIABLES),
        geography=_GEOGRAPHIES,
        years=(2022, 2021, 2020, 2019, 2018),
    ),
    DatasetDescriptor(
        id="dec/pl",
        name="Decennial Census Redistricting Data",
        description="Population counts for redistricting purposes",
        source="census",
        category="government",
        geography=_GEOGRAPHIES,
        years=(2020, 2010),
    ),
    DatasetDescriptor(
        id="pep/population",
        name="Population Estimates",
        description="Annual population estimates by age, sex, race, and Hispanic origin",
        source="census",
        category="government",
        geography=("us", "state", "county"),
        years=(2022, 2021, 2020, 2019),
    ),
)

_DEFAULT_YEAR = 2022
_DEFAULT_GEOGRAPHY = "state:*"
_DEFAULT_VARIABLES = ("B01001_001E",)


class CensusSource:
    id = "census"
    name = "US Census Bureau"
    category: Category = "government"
    description = "Official US government source for population, economic, and housing statistics"
    base_url = "https://api.census.gov/data"
    requires_api_key = False

    def __init__(self, api_key: Optional[str] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self._api_key = api_key or None
        self._client = client

    def __repr__(self) -> str:
        return f"<CensusSource authenticated={self._api_key is not None}>"

    async def list_datasets(self) -> list[DatasetDescriptor]:
        return list(CENSUS_DATASETS)

    async def search(self, query: str) -> list[DatasetDescriptor]:
        # No live search endpoint: the catalog and the variable table are local.
        datasets = match_descriptors(query, CENSUS_DATASETS)
        needle = query.lower().strip()
        if not needle:
            return datasets
        variables = [
            DatasetDescriptor(
                id=f"acs/acs5:{code}",
                name=label,
                description=f"ACS variable: {code}",
                source=self.id,
                category=self.category,
                variables=(code,),
            )
            for code, label in ACS_VARIABLES.items()
            if needle in label.lower() or needle in code.lower()
        ]
        return datasets + variables

    async def fetch(self, dataset_id: str, params: FetchRequest, timeout: Optional[float] = None) -> NormalizedResult:
        """
        dataset_id   "acs/acs1", "acs/acs5", ... or "acs/acs5:<VARIABLE>"
        params.year  single vintage only; ranges are rejected
        limit/offset are applied after download (the API has no paging)
        """
        dataset, _, pinned_variable = dataset_id.partition(":")
        if params.is_year_range:
            raise UnsupportedRequest("Census datasets are published per vintage; pass a single year")
        bounds = params.year_bounds()
        year = bounds[0] if bounds else _DEFAULT_YEAR

        variables = list(params.variables) or ([pinned_variable] if pinned_variable else list(_DEFAULT_VARIABLES))
        if "NAME" not in variables:
            variables = ["NAME", *variables]

        for_clause, _, in_clause = (params.geography or _DEFAULT_GEOGRAPHY).partition("&in=")
        query: dict[str, str] = {"get": ",".join(variables), "for": for_clause}
        if in_clause:
            query["in"] = in_clause
        for key, value in params.filters.items():
            query[key] = str(value)
        if self._api_key:
            query["key"] = self._api_key

        url = f"{self.base_url}/{year}/{dataset}"
        payload, final_url = await get_json(url, query, client=self._client, timeout=timeout, tag="Census")

        rows, columns = _parse_table(payload, variables)
        total = len(rows)
        start = params.offset or 0
        end = start + params.limit if params.limit else None
        rows = rows[start:end]
        if not columns:
            columns = variables
        logger.debug(f"[Census] {dataset} {year}: {len(rows)}/{total} rows")

        return NormalizedResult(
            source=self.id,
            dataset=dataset_id,
            rows=rows,
            metadata=ResultMetadata(
                fetched_at=datetime.now(timezone.utc),
                row_count=len(rows),
                columns=columns,
                freshness="annual",
                source_url=redact_url(final_url),
                request=params,
                extra={"total_rows": total, "year": year},
            ),
        )

    def get_rate_limits(self) -> RateLimits:
        if self._api_key:
            return RateLimits(requests_per_minute=120, requests_per_day=10000)
        return RateLimits(requests_per_minute=20, requests_per_day=500)

    # ------------------------------------------------------------------
    # Common queries
    # ------------------------------------------------------------------

    async def state_populations(self, year: int = _DEFAULT_YEAR) -> NormalizedResult:
        return await self.fetch("acs/acs1", FetchRequest(
            variables=("B01001_001E", "B01002_001E"), geography="state:*", year=year))

    async def state_incomes(self, year: int = _DEFAULT_YEAR) -> NormalizedResult:
        return await self.fetch("acs/acs1", FetchRequest(
            variables=("B19013_001E",), geography="state:*", year=year))

    async def state_demographics(self, state_code: str, year: int = _DEFAULT_YEAR) -> NormalizedResult:
        return await self.fetch("acs/acs1", FetchRequest(
            variables=("B01001_001E", "B01002_001E", "B19013_001E", "B25077_001E", "B15003_001E"),
            geography=f"state:{state_code}",
            year=year,
        ))

    async def county_data(self, state_code: str, variables: tuple[str, ...], year: int = _DEFAULT_YEAR) -> NormalizedResult:
        # county estimates only exist in the 5-year release
        return await self.fetch("acs/acs5", FetchRequest(
            variables=variables, geography=f"county:*&in=state:{state_code}", year=year))


def _parse_table(payload, variables: list[str]) -> tuple[list[dict], list[str]]:
    """Header-row table → (rows, columns).

    Requested variables are coerced to numbers. NAME and the geography
    columns the API appends (state, county, ...) are identifiers and stay
    strings in every row.
    """
    if payload is None or payload == []:
        return [], []
    if not isinstance(payload, list) or not all(isinstance(r, list) for r in payload):
        raise FetchFailed(None, "Census payload is not a header-row table")
    header, *body = payload
    if not all(isinstance(h, str) for h in header):
        raise FetchFailed(None, "Census header row contains non-string column names")
    numeric = {col for col in header if col in variables and col != "NAME"}
    rows = []
    for raw in body:
        if len(raw) > len(header):
            raise FetchFailed(None, f"Census row has {len(raw)} cells for {len(header)} columns")
        padded = list(raw) + [None] * (len(header) - len(raw))
        rows.append({
            col: coerce_scalar(val) if col in numeric else _as_identifier(val)
            for col, val in zip(header, padded)
        })
    return rows, list(header)


def _as_identifier(value) -> Optional[str]:
    return None if value is None else str(value)
