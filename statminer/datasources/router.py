"""
statminer/datasources/router.py
===============================
Multi-source query router.

Every call fans out one coroutine per source (or per fetch request), joins
them at a single ``gather`` barrier and merges the survivors. Failing,
unknown or structurally invalid units are logged and dropped; the caller
gets whatever the healthy sources returned, in registry / request order
rather than completion order.

Callers that need per-source failure details should use the adapter
directly.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Mapping, Optional, Sequence

from loguru import logger

from statminer.validation import validate
from .base import DatasetDescriptor, FetchRequest, NormalizedResult, SourceAdapter
from .registry import SourceRegistry

FetchSpec = tuple[str, str, FetchRequest]


async def _per_source(
    registry: SourceRegistry,
    credentials: Optional[Mapping[str, str]],
    call: Callable[[SourceAdapter], Awaitable[list[DatasetDescriptor]]],
    what: str,
) -> list[DatasetDescriptor]:
    async def run(source_id: str) -> list[DatasetDescriptor]:
        adapter = registry.resolve(source_id, credentials)
        return await call(adapter) if adapter is not None else []

    source_ids = registry.ids()
    results = await asyncio.gather(*(run(sid) for sid in source_ids), return_exceptions=True)
    merged: list[DatasetDescriptor] = []
    for sid, res in zip(source_ids, results):
        if isinstance(res, BaseException):
            logger.warning(f"[Router] {what} on {sid} failed: {res!r}")
            continue
        merged.extend(res)
    return merged


async def search_all(
    query: str,
    registry: SourceRegistry,
    credentials: Optional[Mapping[str, str]] = None,
) -> list[DatasetDescriptor]:
    merged = await _per_source(registry, credentials, lambda a: a.search(query), f"search {query!r}")
    logger.info(f"[Router] search {query!r}: {len(merged)} datasets from {len(registry)} sources")
    return merged


async def list_all(
    registry: SourceRegistry,
    credentials: Optional[Mapping[str, str]] = None,
) -> list[DatasetDescriptor]:
    return await _per_source(registry, credentials, lambda a: a.list_datasets(), "catalog listing")


async def _fetch_one(
    spec: FetchSpec,
    registry: SourceRegistry,
    credentials: Optional[Mapping[str, str]],
    timeout: Optional[float],
) -> Optional[NormalizedResult]:
    source_id, dataset_id, params = spec
    adapter = registry.resolve(source_id, credentials)
    if adapter is None:
        return None
    result = await adapter.fetch(dataset_id, params, timeout=timeout)
    outcome = validate(result)
    if not outcome.valid:
        logger.warning(
            f"[Router] {source_id}/{dataset_id} dropped, structural errors: "
            + "; ".join(f"{e.path}: {e.message}" for e in outcome.errors)
        )
        return None
    for warning in outcome.warnings:
        logger.info(f"[Router] {source_id}/{dataset_id}: {warning}")
    return result


async def fetch_all(
    requests: Sequence[FetchSpec],
    registry: SourceRegistry,
    credentials: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> list[NormalizedResult]:
    """Fetch ``(source_id, dataset_id, params)`` triples concurrently (best effort)."""
    results = await asyncio.gather(
        *(_fetch_one(spec, registry, credentials, timeout) for spec in requests), return_exceptions=True
    )
    fetched: list[NormalizedResult] = []
    for (source_id, dataset_id, _), res in zip(requests, results):
        if isinstance(res, BaseException):
            logger.warning(f"[Router] fetch {source_id}/{dataset_id} failed: {res!r}")
            continue
        if res is not None:
            fetched.append(res)
    return fetched
