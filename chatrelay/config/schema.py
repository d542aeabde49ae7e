"""Pydantic schemas for chatrelay configuration validation."""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

WireFormat = Literal["openai", "anthropic", "gemini"]


class ProviderConfig(BaseModel):
    """Upstream provider endpoint configuration."""

    wire_format: WireFormat = Field(default="openai", description="Streaming wire format spoken by the provider")
    base_url: str = Field(..., description="Base URL for the provider API")
    supports_grounding: bool = Field(default=False, description="Provider performs web grounding natively")


def _default_providers() -> Dict[str, ProviderConfig]:
    openai_compatible = {
        "openai": "https://api.openai.com/v1",
        "deepseek": "https://api.deepseek.com/v1",
        "together": "https://api.together.xyz/v1",
        "fireworks": "https://api.fireworks.ai/inference/v1",
        "openrouter": "https://openrouter.ai/api/v1",
        "xai": "https://api.x.ai/v1",
        "alibaba": "https://dashscope-intl.aliyuncs.com/compatible-mode/v1",
        "meta": "https://api.llama.com/compat/v1",
    }
    providers = {
        name: ProviderConfig(wire_format="openai", base_url=url)
        for name, url in openai_compatible.items()
    }
    providers["anthropic"] = ProviderConfig(
        wire_format="anthropic", base_url="https://api.anthropic.com/v1"
    )
    providers["gemini"] = ProviderConfig(
        wire_format="gemini",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        supports_grounding=True,
    )
    return providers


class ModelFamilyConfig(BaseModel):
    """Maps model ids containing any of ``patterns`` to a provider."""

    patterns: List[str] = Field(..., min_length=1, description="Case-insensitive substrings")
    provider: str = Field(..., description="Provider name")


def _default_families() -> List[ModelFamilyConfig]:
    return [
        ModelFamilyConfig(patterns=["claude", "anthropic"], provider="anthropic"),
        ModelFamilyConfig(patterns=["gemini", "google"], provider="gemini"),
        ModelFamilyConfig(patterns=["deepseek"], provider="deepseek"),
        ModelFamilyConfig(patterns=["llama", "meta"], provider="meta"),
    ]


class RegistryConfig(BaseModel):
    """Model-to-provider registry configuration."""

    default_provider: str = Field(default="openai", description="Provider for unrecognized models")
    default_model: str = Field(default="gpt-4o", description="Model used when a request names none")
    models: Dict[str, str] = Field(default_factory=dict, description="Explicit model id -> provider entries")
    families: List[ModelFamilyConfig] = Field(default_factory=_default_families, description="Substring families, checked in order")


class RelayConfig(BaseModel):
    """Stream relay behaviour."""

    first_byte_timeout_s: float = Field(default=30.0, gt=0, description="Bound on time to first upstream chunk")
    connect_timeout_s: float = Field(default=5.0, gt=0, description="TCP/TLS connect timeout for the shared upstream client")
    max_tokens: Optional[int] = Field(default=None, gt=0, description="Completion token cap sent to every provider (Anthropic falls back to 4096 when unset)")


class KeystoreConfig(BaseModel):
    """Credential decryption configuration."""

    secret_env: str = Field(default="CHATRELAY_KEYSTORE_SECRET", description="Environment variable holding the keystore secret")


class CredentialStoreConfig(BaseModel):
    """Encrypted credential storage configuration."""

    redis_url: Optional[str] = Field(default=None, description="Redis URL (falls back to REDIS_URL)")
    key_prefix: str = Field(default="chatrelay", description="Prefix for credential keys")


class WebSearchConfig(BaseModel):
    """Web search grounding for providers without native grounding."""

    enabled: bool = Field(default=False, description="Enable web search grounding")
    base_url: str = Field(default="https://api.exa.ai", description="Search API base URL")
    api_key_env: str = Field(default="EXA_API_KEY", description="Environment variable holding the search API key")
    num_results: int = Field(default=5, gt=0, le=20, description="Results per search")
    timeout_s: float = Field(default=10.0, gt=0, description="Search request timeout in seconds")


class ChatRelayConfig(BaseModel):
    """Root configuration model."""

    providers: Dict[str, ProviderConfig] = Field(default_factory=_default_providers, description="Provider endpoints")
    registry: RegistryConfig = Field(default_factory=RegistryConfig, description="Model registry")
    relay: RelayConfig = Field(default_factory=RelayConfig, description="Relay settings")
    keystore: KeystoreConfig = Field(default_factory=KeystoreConfig, description="Keystore settings")
    credential_store: CredentialStoreConfig = Field(default_factory=CredentialStoreConfig, description="Credential store settings")
    web_search: WebSearchConfig = Field(default_factory=WebSearchConfig, description="Web search grounding")

    @model_validator(mode="after")
    def validate_provider_references(self) -> "ChatRelayConfig":
        """Ensure every provider named by the registry is configured."""
        referenced = {self.registry.default_provider}
        referenced.update(self.registry.models.values())
        referenced.update(family.provider for family in self.registry.families)
        unknown = sorted(p for p in referenced if p not in self.providers)
        if unknown:
            raise ValueError(f"Registry references unknown providers: {', '.join(unknown)}")
        return self
