"""Request resolution: model -> provider -> decrypted credential -> adapter."""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from chatrelay.adapters.llm.base import LLMAdapter
from chatrelay.core.errors import CredentialMissingError, DecryptionError
from chatrelay.core.keystore import CredentialStore, Keystore
from chatrelay.core.model_registry import ModelRegistry
from chatrelay.core.types import ProviderCredential

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedTarget:
    """Everything needed to dispatch one request upstream."""
    provider: str
    model: str
    credential: ProviderCredential = field(repr=False)
    adapter: LLMAdapter = field(repr=False)


class CredentialResolver:
    """Resolves a (user, model) pair to a provider, credential and adapter.

    Pure lookup plus decryption; performs no upstream network calls, so a
    missing credential is reported before anything is sent to a provider.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        store: CredentialStore,
        keystore: Keystore,
        adapters: Dict[str, LLMAdapter],
    ):
        """
        Args:
            registry: Model-to-provider registry
            store: Encrypted credential lookup
            keystore: Credential decryption
            adapters: Adapter per configured provider
        """
        self.registry = registry
        self.store = store
        self.keystore = keystore
        self.adapters = adapters

    async def resolve(self, user_id: str, model_id: Optional[str]) -> ResolvedTarget:
        """Resolve provider, credential and adapter for a request.

        Raises:
            CredentialMissingError: No usable credential for the provider
        """
        model = self.registry.resolve_model(model_id)
        provider = self.registry.lookup(model)

        adapter = self.adapters.get(provider)
        if adapter is None:
            # Config validation keeps registry and providers in sync
            raise CredentialMissingError(provider, f"provider '{provider}' is not configured")

        credential = ProviderCredential(provider=provider, secret=await self._decrypt(user_id, provider))
        return ResolvedTarget(provider=provider, model=model, credential=credential, adapter=adapter)

    async def _decrypt(self, user_id: str, provider: str) -> str:
        stored_blob = await self.store.get_encrypted_key(user_id, provider)
        if not stored_blob:
            raise CredentialMissingError(provider)

        try:
            secret = self.keystore.decrypt(stored_blob)
        except DecryptionError as e:
            logger.warning(f"Stored credential for provider {provider} is unusable: {e}")
            raise CredentialMissingError(provider, f"credential for '{provider}' could not be decrypted") from e

        if not secret.strip():
            raise CredentialMissingError(provider, f"credential for '{provider}' is empty")
        return secret.strip()
