"""Factory for LLM adapters."""
from enum import Enum
from typing import Dict, Type

from chatrelay.adapters.llm.anthropic import AnthropicAdapter
from chatrelay.adapters.llm.base import LLMAdapter
from chatrelay.adapters.llm.gemini import GeminiAdapter
from chatrelay.adapters.llm.openai import OpenAIAdapter
from chatrelay.config.schema import ProviderConfig


class ProviderKind(str, Enum):
    """Upstream wire formats. Each provider is tagged with exactly one."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


ADAPTER_CLASSES: Dict[ProviderKind, Type[LLMAdapter]] = {
    ProviderKind.OPENAI: OpenAIAdapter,
    ProviderKind.ANTHROPIC: AnthropicAdapter,
    ProviderKind.GEMINI: GeminiAdapter,
}


def create_adapter(provider: str, provider_config: ProviderConfig) -> LLMAdapter:
    """Create the adapter for a configured provider."""
    kind = ProviderKind(provider_config.wire_format)
    return ADAPTER_CLASSES[kind](
        provider=provider,
        base_url=provider_config.base_url,
        native_grounding=provider_config.supports_grounding,
    )


def build_adapters(providers: Dict[str, ProviderConfig]) -> Dict[str, LLMAdapter]:
    """Create one adapter per configured provider.

    Adapters keep no per-stream state, so one instance serves all requests.
    """
    return {name: create_adapter(name, cfg) for name, cfg in providers.items()}
