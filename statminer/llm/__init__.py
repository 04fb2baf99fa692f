"""
statminer/llm
=============
Fan one prompt out to several AI-model backends and collect every outcome.

Backends:
  openai      OpenAI Chat Completions
  anthropic   Anthropic Messages
  openrouter  OpenRouter (OpenAI-compatible)
  grok        xAI Grok (OpenAI-compatible)
"""
from statminer.llm.base import (
    Completion,
    Consensus,
    DispatchFailure,
    DispatchResult,
    FailureKind,
    OutcomeMetadata,
    ProviderAdapter,
    ProviderOutcome,
    ProviderSpec,
)
from statminer.llm.dispatcher import Dispatcher, with_dataset_context
from statminer.llm.providers import (
    DEFAULT_PROVIDERS,
    AnthropicProvider,
    OpenAICompatibleProvider,
    build_providers,
)

__all__ = [
    "Completion",
    "Consensus",
    "DispatchFailure",
    "DispatchResult",
    "FailureKind",
    "OutcomeMetadata",
    "ProviderAdapter",
    "ProviderOutcome",
    "ProviderSpec",
    "Dispatcher",
    "with_dataset_context",
    "DEFAULT_PROVIDERS",
    "AnthropicProvider",
    "OpenAICompatibleProvider",
    "build_providers",
]
