"""
statminer/llm/base.py
=====================
Types shared by provider adapters and the dispatcher, plus the
cancellation/timeout race every adapter wraps its network call in.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar, runtime_checkable

import httpx

from statminer.errors import Cancelled, ProviderTimeout

T = TypeVar("T")


@dataclass(frozen=True)
class ProviderSpec:
    """Static backend configuration."""
    id: str
    name: str
    endpoint: str
    model: str
    max_tokens: int
    cost_per_1k_tokens: float
    supports_streaming: bool = False


@dataclass(frozen=True)
class Completion:
    content: str
    tokens_used: Optional[int] = None
    model: Optional[str] = None


class FailureKind(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    PROVIDER_ERROR = "provider_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    UNKNOWN_PROVIDER = "unknown_provider"


@dataclass(frozen=True)
class DispatchFailure:
    provider_id: str
    kind: FailureKind
    message: str
    status_code: Optional[int] = None


@dataclass(frozen=True)
class OutcomeMetadata:
    tokens_used: int = 0
    latency_ms: float = 0.0
    model: str = ""
    cost: float = 0.0
    cost_is_estimate: bool = False


@dataclass(frozen=True)
class ProviderOutcome:
    provider_id: str
    response: str                              # empty on failure
    metadata: OutcomeMetadata
    error: Optional[DispatchFailure] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class Consensus:
    agreement: float                           # mean pairwise keyword overlap, 0..1
    level: str                                 # high / moderate / low
    shared_keywords: tuple[str, ...]
    providers: tuple[str, ...]


@dataclass(frozen=True)
class DispatchResult:
    prompt: str
    successes: tuple[ProviderOutcome, ...]
    failures: tuple[DispatchFailure, ...]
    outcomes: tuple[ProviderOutcome, ...]      # every requested provider, request order
    consensus: Optional[Consensus] = None


@runtime_checkable
class ProviderAdapter(Protocol):
    spec: ProviderSpec

    async def complete(
        self,
        prompt: str,
        credential: str,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
    ) -> Completion: ...


async def run_cancellable(
    call: Callable[[], Awaitable[T]],
    cancel_event: Optional[asyncio.Event],
    timeout: Optional[float],
    *,
    label: str = "call",
) -> T:
    """Run ``call()`` until it finishes, ``cancel_event`` fires, or ``timeout`` elapses.

    Raises ``Cancelled`` when the event wins and ``ProviderTimeout`` when the
    budget runs out; the in-flight call is cancelled in both cases. A call
    that has already finished keeps its result even if the event is set at
    the same moment.
    """
    if cancel_event is not None and cancel_event.is_set():
        raise Cancelled(f"{label} cancelled before it started")

    task = asyncio.ensure_future(call())
    watcher = asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None
    waiters = {task} if watcher is None else {task, watcher}
    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if watcher is not None:
            watcher.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    if watcher is not None and watcher in done:
        raise Cancelled(f"{label} cancelled by caller")
    raise ProviderTimeout(f"{label} timed out after {timeout}s")


def envelope_message(body: Any) -> Optional[str]:
    """Pull a human message out of a backend error envelope, if it has one.

    Handles ``{"message": ...}``, ``{"error": {"message": ...}}`` and
    ``{"error": "..."}``.
    """
    if not isinstance(body, dict):
        return None
    if isinstance(body.get("message"), str) and body["message"]:
        return body["message"]
    err = body.get("error")
    if isinstance(err, dict) and isinstance(err.get("message"), str) and err["message"]:
        return err["message"]
    if isinstance(err, str) and err:
        return err
    return None


async def with_http_client(
    client: Optional[httpx.AsyncClient],
    timeout: Optional[float],
    call: Callable[[httpx.AsyncClient], Awaitable[T]],
) -> T:
    """Run ``call(client)``; without an injected client one is opened and closed around the call.

    An injected client is shared and left open.
    """
    if client is not None:
        return await call(client)
    async with httpx.AsyncClient(timeout=timeout) as owned:
        return await call(owned)
