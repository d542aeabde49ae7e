"""Cost estimation for relayed LLM requests."""
from typing import Dict, Optional

from chatrelay.core.types import TokenUsage


class CostEstimator:
    """Simple cost estimator for completed streams.

    Note: Pricing data last updated: 2025-01-15
    These prices are approximate and should be updated periodically.
    For accurate pricing, refer to provider documentation:
    - OpenAI: https://openai.com/pricing
    - Anthropic: https://www.anthropic.com/pricing
    - Gemini: https://ai.google.dev/pricing
    - DeepSeek: https://api-docs.deepseek.com/quick_start/pricing
    """

    # Approximate pricing per 1K tokens (simplified, per-model)
    # Last updated: 2025-01-15
    PRICING_PER_1K = {
        "openai": {
            "gpt-4": {"prompt": 0.03, "completion": 0.06},
            "gpt-4-turbo": {"prompt": 0.01, "completion": 0.03},
            "gpt-4o": {"prompt": 0.005, "completion": 0.015},
            "gpt-4o-mini": {"prompt": 0.00015, "completion": 0.0006},
            "gpt-3.5-turbo": {"prompt": 0.0005, "completion": 0.0015},
        },
        "anthropic": {
            "claude-3-opus-20240229": {"prompt": 0.015, "completion": 0.075},
            "claude-3-haiku-20240307": {"prompt": 0.00025, "completion": 0.00125},
            "claude-3-5-sonnet-20241022": {"prompt": 0.003, "completion": 0.015},
            "claude-3-5-haiku-20241022": {"prompt": 0.0008, "completion": 0.004},
        },
        "gemini": {
            "gemini-1.5-pro": {"prompt": 0.00125, "completion": 0.005},
            "gemini-1.5-flash": {"prompt": 0.000075, "completion": 0.0003},
            "gemini-2.0-flash": {"prompt": 0.0001, "completion": 0.0004},
        },
        "deepseek": {
            "deepseek-chat": {"prompt": 0.00027, "completion": 0.0011},
            "deepseek-reasoner": {"prompt": 0.00055, "completion": 0.00219},
        },
    }

    @classmethod
    def get_pricing(cls, provider: str, model: str) -> Optional[Dict[str, float]]:
        """Find pricing for a model.

        Exact match first, then the longest priced name the model id starts
        with (dated snapshots such as ``gpt-4o-2024-08-06`` share pricing).
        """
        provider_pricing = cls.PRICING_PER_1K.get(provider, {})
        model = model.lower()
        if model in provider_pricing:
            return provider_pricing[model]

        candidates = [name for name in provider_pricing if model.startswith(name)]
        if not candidates:
            return None
        return provider_pricing[max(candidates, key=len)]

    @classmethod
    def cost_from_usage(
        cls,
        provider: str,
        model: str,
        usage: Optional[TokenUsage],
    ) -> Optional[float]:
        """
        Compute cost from the final usage snapshot of a stream.

        Args:
            provider: Provider name
            model: Model name
            usage: Final usage reported by the provider

        Returns:
            Cost in USD, or None if usage or pricing is unknown
        """
        if usage is None:
            return None

        pricing = cls.get_pricing(provider, model)
        if not pricing:
            return None

        prompt_cost = (usage.input_tokens / 1000.0) * pricing["prompt"]
        completion_cost = (usage.output_tokens / 1000.0) * pricing["completion"]
        return round(prompt_cost + completion_cost, 8)
