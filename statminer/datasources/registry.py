"""
statminer/datasources/registry.py
=================================
Source registry: source id → adapter factory taking an optional credential.

The registry is an ordinary value built by the caller (``default_registry()``
for the stock table) and handed to the router, so tests can swap in mock
adapters without touching process-wide state.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, Mapping, Optional

import httpx
from loguru import logger

from .base import Category, SourceAdapter
from .census import CensusSource
from .fred import FredSource
from .world_bank import WorldBankSource

SourceFactory = Callable[[Optional[str]], SourceAdapter]


@dataclass(frozen=True)
class SourceEntry:
    id: str
    name: str
    description: str
    category: Category
    requires_api_key: bool
    factory: SourceFactory


class SourceRegistry:
    def __init__(self, entries: list[SourceEntry] | tuple[SourceEntry, ...] = ()) -> None:
        self._entries: dict[str, SourceEntry] = {}
        for entry in entries:
            self.register(entry)

    def register(self, entry: SourceEntry) -> None:
        if entry.id in self._entries:
            raise ValueError(f"source {entry.id!r} is already registered")
        self._entries[entry.id] = entry

    def __iter__(self) -> Iterator[SourceEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._entries

    def ids(self) -> list[str]:
        return list(self._entries)

    def entry(self, source_id: str) -> Optional[SourceEntry]:
        return self._entries.get(source_id)

    def resolve(self, source_id: str, credentials: Mapping[str, str] | None = None) -> Optional[SourceAdapter]:
        """Build the adapter for ``source_id``; unknown ids yield None."""
        entry = self._entries.get(source_id)
        if entry is None:
            logger.warning(f"[SourceRegistry] unknown source id: {source_id!r}")
            return None
        credential = (credentials or {}).get(source_id) or None
        return entry.factory(credential)


def default_registry(client: Optional[httpx.AsyncClient] = None) -> SourceRegistry:
    """Census, FRED and World Bank, optionally sharing one HTTP client."""
    return SourceRegistry([
        SourceEntry(
            id="census",
            name="US Census Bureau",
            description="Official US population, economic, and housing statistics",
            category="government",
            requires_api_key=False,
            factory=lambda key: CensusSource(key, client=client),
        ),
        SourceEntry(
            id="fred",
            name="Federal Reserve (FRED)",
            description="Economic data from the Federal Reserve Bank of St. Louis",
            category="financial",
            requires_api_key=True,
            factory=lambda key: FredSource(key, client=client),
        ),
        SourceEntry(
            id="worldbank",
            name="World Bank",
            description="Global development indicators for 200+ countries",
            category="international",
            requires_api_key=False,
            factory=lambda key: WorldBankSource(key, client=client),
        ),
    ])
