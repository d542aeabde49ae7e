"""Model-to-provider registry."""
from typing import Dict, List, Optional, Tuple

from chatrelay.config.schema import RegistryConfig


class ModelRegistry:
    """Maps model identifiers to provider names.

    Lookup order: explicit entry, first matching name family, default provider.
    Read-only once built, so it is safe to share across concurrent requests.
    """

    def __init__(
        self,
        default_provider: str = "openai",
        default_model: str = "gpt-4o",
        models: Optional[Dict[str, str]] = None,
        families: Optional[List[Tuple[List[str], str]]] = None,
    ):
        """
        Args:
            default_provider: Provider for unrecognized models
            default_model: Model used when a request names none
            models: Explicit model id -> provider entries
            families: Ordered (substring patterns, provider) pairs
        """
        self.default_provider = default_provider
        self.default_model = default_model
        self._models = {k.lower(): v for k, v in (models or {}).items()}
        self._families = [
            ([p.lower() for p in patterns], provider)
            for patterns, provider in (families or [])
        ]

    @classmethod
    def from_config(cls, config: RegistryConfig) -> "ModelRegistry":
        return cls(
            default_provider=config.default_provider,
            default_model=config.default_model,
            models=config.models,
            families=[(family.patterns, family.provider) for family in config.families],
        )

    def resolve_model(self, model_id: Optional[str]) -> str:
        """Return the model to use, applying the default for empty ids."""
        model_id = (model_id or "").strip()
        return model_id or self.default_model

    def lookup(self, model_id: Optional[str]) -> str:
        """Return the provider name for a model id."""
        model = self.resolve_model(model_id).lower()

        explicit = self._models.get(model)
        if explicit:
            return explicit

        for patterns, provider in self._families:
            if any(pattern in model for pattern in patterns):
                return provider

        return self.default_provider
