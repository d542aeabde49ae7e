"""chatrelay Core - data model, accounting and credential primitives."""

from chatrelay.core.accounting import TokenAccountant, UsageStats
from chatrelay.core.cost_estimator import CostEstimator
from chatrelay.core.errors import ErrorCode, RelayError
from chatrelay.core.keystore import SecretBoxKeystore
from chatrelay.core.model_registry import ModelRegistry
from chatrelay.core.types import CompletionRequest, Message, StreamChunk, TokenUsage

__all__ = [
    "CompletionRequest",
    "CostEstimator",
    "ErrorCode",
    "Message",
    "ModelRegistry",
    "RelayError",
    "SecretBoxKeystore",
    "StreamChunk",
    "TokenAccountant",
    "TokenUsage",
    "UsageStats",
]
