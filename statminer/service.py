"""
statminer/service.py
====================
Caller-facing surface used by the UI / session layer.

  search_datasets(query)                          → DatasetDescriptor list
  fetch_dataset(source_id, dataset_id, params)    → validated NormalizedResult
  dispatch_prompt(prompt, provider_ids, creds)    → DispatchResult

Source credentials are handed in once at construction; provider credentials
travel with every dispatch. Nothing here reads credentials from the
environment.
"""
from __future__ import annotations

import asyncio
from typing import Any, Mapping, Optional, Sequence, Union

import httpx
from loguru import logger

from statminer.datasources.base import DatasetDescriptor, FetchRequest, NormalizedResult, RateLimits
from statminer.datasources.registry import SourceEntry, SourceRegistry, default_registry
from statminer.datasources.router import FetchSpec, fetch_all, list_all, search_all
from statminer.errors import UnknownSource
from statminer.llm.base import DispatchResult, ProviderAdapter
from statminer.llm.dispatcher import Dispatcher, OutcomeCallback
from statminer.llm.providers import build_providers
from statminer.validation import ensure_valid

ParamsLike = Union[FetchRequest, Mapping[str, Any], None]


def _as_request(params: ParamsLike) -> FetchRequest:
    if params is None:
        return FetchRequest()
    if isinstance(params, FetchRequest):
        return params
    return FetchRequest.model_validate(dict(params))


class StatMinerService:
    def __init__(
        self,
        registry: Optional[SourceRegistry] = None,
        providers: Optional[Mapping[str, ProviderAdapter]] = None,
        source_credentials: Optional[Mapping[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.registry = registry if registry is not None else default_registry(http_client)
        self.dispatcher = Dispatcher(providers if providers is not None else build_providers(http_client=http_client))
        self._source_credentials = dict(source_credentials or {})

    def sources(self) -> list[SourceEntry]:
        return list(self.registry)

    def source_rate_limits(self, source_id: str) -> RateLimits:
        adapter = self.registry.resolve(source_id, self._source_credentials)
        if adapter is None:
            raise UnknownSource(source_id)
        return adapter.get_rate_limits()

    async def search_datasets(self, query: str) -> list[DatasetDescriptor]:
        return await search_all(query, self.registry, self._source_credentials)

    async def list_datasets(self) -> list[DatasetDescriptor]:
        return await list_all(self.registry, self._source_credentials)

    async def fetch_dataset(
        self,
        source_id: str,
        dataset_id: str,
        params: ParamsLike = None,
        *,
        timeout: Optional[float] = None,
    ) -> NormalizedResult:
        """Fetch from one source; raises FetchFailed / ValidationFailed / UnknownSource."""
        request = _as_request(params)
        adapter = self.registry.resolve(source_id, self._source_credentials)
        if adapter is None:
            raise UnknownSource(source_id)
        result = await adapter.fetch(dataset_id, request, timeout=timeout)
        outcome = ensure_valid(result)
        for warning in outcome.warnings:
            logger.warning(f"[Service] {source_id}/{dataset_id}: {warning}")
        return result

    async def fetch_datasets(
        self,
        requests: Sequence[tuple[str, str, ParamsLike]],
        *,
        timeout: Optional[float] = None,
    ) -> list[NormalizedResult]:
        """Best-effort multi-fetch; failed or invalid units are dropped."""
        specs: list[FetchSpec] = [(sid, did, _as_request(p)) for sid, did, p in requests]
        return await fetch_all(specs, self.registry, self._source_credentials, timeout=timeout)

    async def dispatch_prompt(
        self,
        prompt: str,
        provider_ids: Sequence[str],
        credentials: Mapping[str, str],
        context: Optional[NormalizedResult] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
        consensus: bool = True,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> DispatchResult:
        return await self.dispatcher.dispatch(
            prompt,
            provider_ids,
            credentials,
            context,
            cancel_event=cancel_event,
            timeout=timeout,
            consensus=consensus,
            on_outcome=on_outcome,
        )
