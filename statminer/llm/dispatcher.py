"""
statminer/llm/dispatcher.py
===========================
Multi-provider dispatcher: one prompt → every selected backend, concurrently.

Each provider resolves independently to exactly one ProviderOutcome:
  unknown id            → unknown_provider   (no call)
  no / empty credential → missing_credential (no call)
  adapter raised        → provider_error / timeout / cancelled
  adapter returned      → success, with latency and cost

so ``len(successes) + len(failures) == len(provider_ids)`` always holds and
a slow or broken backend never hides the answers of the others.
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Callable, Mapping, Optional, Sequence

from loguru import logger

from statminer.config import settings
from statminer.datasources.base import NormalizedResult
from statminer.errors import Cancelled, ProviderError, ProviderTimeout
from .base import (
    DispatchFailure,
    DispatchResult,
    FailureKind,
    OutcomeMetadata,
    ProviderAdapter,
    ProviderOutcome,
)
from .consensus import compute_consensus

OutcomeCallback = Callable[[ProviderOutcome], None]


def with_dataset_context(prompt: str, context: NormalizedResult, max_rows: Optional[int] = None) -> str:
    """Prepend a bounded JSON preview of ``context`` to ``prompt``."""
    max_rows = settings.context_preview_rows if max_rows is None else max_rows
    preview = context.rows[:max_rows]
    header = (
        f"Dataset context: {context.source}/{context.dataset} "
        f"({len(preview)} of {len(context.rows)} rows; "
        f"columns: {', '.join(context.metadata.columns)})"
    )
    body = json.dumps(preview, default=str, ensure_ascii=False)
    return f"{header}\n{body}\n\nQuestion:\n{prompt}"


def _failure(provider_id: str, kind: FailureKind, message: str,
             status: Optional[int] = None, latency_ms: float = 0.0) -> ProviderOutcome:
    return ProviderOutcome(
        provider_id=provider_id,
        response="",
        metadata=OutcomeMetadata(latency_ms=latency_ms),
        error=DispatchFailure(provider_id=provider_id, kind=kind, message=message, status_code=status),
    )


class Dispatcher:
    def __init__(self, providers: Mapping[str, ProviderAdapter]) -> None:
        self._providers = dict(providers)

    @property
    def provider_ids(self) -> list[str]:
        return list(self._providers)

    async def dispatch(
        self,
        prompt: str,
        provider_ids: Sequence[str],
        credentials: Optional[Mapping[str, str]] = None,
        context: Optional[NormalizedResult] = None,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
        consensus: bool = True,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> DispatchResult:
        if not isinstance(prompt, str):
            raise TypeError("prompt must be a string")
        ids = list(dict.fromkeys(provider_ids))
        if not ids:
            raise ValueError("dispatch needs at least one provider id")
        credentials = dict(credentials or {})
        timeout = timeout or settings.provider_timeout

        # every provider sees the same augmented prompt
        full_prompt = with_dataset_context(prompt, context) if context is not None else prompt

        async def run(provider_id: str) -> ProviderOutcome:
            outcome = await self._run_one(provider_id, full_prompt, credentials, cancel_event, timeout)
            if on_outcome is not None:
                try:
                    on_outcome(outcome)
                except Exception as exc:
                    logger.warning(f"[Dispatcher] on_outcome callback failed for {provider_id}: {exc}")
            return outcome

        outcomes = tuple(await asyncio.gather(*(run(pid) for pid in ids)))
        successes = tuple(o for o in outcomes if o.ok)
        failures = tuple(o.error for o in outcomes if o.error is not None)

        agreement = None
        if consensus and len(successes) >= 2:
            try:
                agreement = compute_consensus(successes)
            except Exception as exc:
                logger.warning(f"[Consensus] unavailable: {exc}")

        logger.info(
            f"[Dispatcher] {len(successes)}/{len(ids)} providers answered"
            + (f", failures: {', '.join(f'{f.provider_id}={f.kind.value}' for f in failures)}" if failures else "")
        )
        return DispatchResult(
            prompt=prompt,
            successes=successes,
            failures=failures,
            outcomes=outcomes,
            consensus=agreement,
        )

    async def _run_one(
        self,
        provider_id: str,
        prompt: str,
        credentials: Mapping[str, str],
        cancel_event: Optional[asyncio.Event],
        timeout: float,
    ) -> ProviderOutcome:
        adapter = self._providers.get(provider_id)
        if adapter is None:
            return _failure(provider_id, FailureKind.UNKNOWN_PROVIDER, f"Unknown provider: {provider_id}")
        credential = credentials.get(provider_id)
        if not credential:
            return _failure(provider_id, FailureKind.MISSING_CREDENTIAL,
                            f"No API key configured for {provider_id}")

        started = time.perf_counter()

        def elapsed() -> float:
            return round((time.perf_counter() - started) * 1000, 2)

        try:
            completion = await adapter.complete(prompt, credential, cancel_event=cancel_event, timeout=timeout)
        except Cancelled as exc:
            return _failure(provider_id, FailureKind.CANCELLED, str(exc), latency_ms=elapsed())
        except ProviderTimeout as exc:
            return _failure(provider_id, FailureKind.TIMEOUT, str(exc), latency_ms=elapsed())
        except ProviderError as exc:
            return _failure(provider_id, FailureKind.PROVIDER_ERROR, exc.message,
                            status=exc.status, latency_ms=elapsed())
        except Exception as exc:
            logger.exception(f"[Dispatcher] {provider_id} adapter raised unexpectedly")
            return _failure(provider_id, FailureKind.PROVIDER_ERROR, str(exc) or repr(exc), latency_ms=elapsed())

        spec = adapter.spec
        if completion.tokens_used is None:
            tokens, cost, estimate = 0, 0.0, True
        else:
            tokens = completion.tokens_used
            cost = tokens * spec.cost_per_1k_tokens / 1000
            estimate = False
        return ProviderOutcome(
            provider_id=provider_id,
            response=completion.content,
            metadata=OutcomeMetadata(
                tokens_used=tokens,
                latency_ms=elapsed(),
                model=completion.model or spec.model,
                cost=cost,
                cost_is_estimate=estimate,
            ),
        )
