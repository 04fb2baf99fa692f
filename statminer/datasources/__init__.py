"""
statminer/datasources
=====================
Statistical source adapters behind one contract.

Sources:
  census     US Census Bureau Data API (key optional)
  fred       FRED, Federal Reserve Bank of St. Louis (key required)
  worldbank  World Bank Open Data (no key)
"""
from statminer.datasources.base import (
    DatasetDescriptor,
    FetchRequest,
    NormalizedResult,
    RateLimits,
    ResultMetadata,
    SourceAdapter,
)
from statminer.datasources.census import CensusSource
from statminer.datasources.fred import FredSource
from statminer.datasources.registry import SourceEntry, SourceRegistry, default_registry
from statminer.datasources.router import fetch_all, list_all, search_all
from statminer.datasources.world_bank import WorldBankSource

__all__ = [
    "DatasetDescriptor",
    "FetchRequest",
    "NormalizedResult",
    "RateLimits",
    "ResultMetadata",
    "SourceAdapter",
    "CensusSource",
    "FredSource",
    "WorldBankSource",
    "SourceEntry",
    "SourceRegistry",
    "default_registry",
    "fetch_all",
    "list_all",
    "search_all",
]
