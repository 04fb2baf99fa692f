"""
StatMiner
=========
Normalized access to government / economic statistics APIs plus a
multi-provider AI dispatcher with partial-failure semantics.
"""
from statminer.datasources.base import DatasetDescriptor, FetchRequest, NormalizedResult
from statminer.llm.base import DispatchResult, ProviderOutcome
from statminer.service import StatMinerService
from statminer.validation import ValidationOutcome, validate

__version__ = "0.1.0"

__all__ = [
    "DatasetDescriptor",
    "FetchRequest",
    "NormalizedResult",
    "DispatchResult",
    "ProviderOutcome",
    "StatMinerService",
    "ValidationOutcome",
    "validate",
]
