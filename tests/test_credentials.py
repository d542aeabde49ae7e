"""Tests for model registry, keystore and credential resolution."""
import pytest
import redis
from unittest.mock import AsyncMock, patch

from chatrelay.adapters.llm.factory import build_adapters
from chatrelay.config.schema import RegistryConfig, _default_providers
from chatrelay.core.credentials import CredentialResolver
from chatrelay.core.errors import CredentialMissingError, DecryptionError
from chatrelay.core.keystore import InMemoryCredentialStore, RedisCredentialStore, SecretBoxKeystore
from chatrelay.core.model_registry import ModelRegistry

USER = "user-1"


@pytest.fixture
def registry():
    """Registry with the default families."""
    return ModelRegistry.from_config(RegistryConfig())


class TestModelRegistry:
    """Tests for model-to-provider lookup."""

    @pytest.mark.parametrize("model,provider", [
        ("gpt-4o", "openai"),
        ("claude-3-5-sonnet-20241022", "anthropic"),
        ("Gemini-2.0-Flash", "gemini"),
        ("deepseek-chat", "deepseek"),
        ("llama-3.3-70b", "meta"),
        ("o3-mini", "openai"),
    ])
    def test_family_lookup(self, registry, model, provider):
        """Test substring families and the default provider."""
        assert registry.lookup(model) == provider

    def test_explicit_entry_wins(self):
        """Test explicit entries take precedence over families."""
        registry = ModelRegistry.from_config(RegistryConfig(models={"meta-llama/llama-3-70b": "together"}))
        assert registry.lookup("meta-llama/llama-3-70b") == "together"
        assert registry.lookup("llama-3-8b") == "meta"

    def test_missing_model_uses_default(self, registry):
        """Test that an empty model id resolves to the default model."""
        assert registry.resolve_model(None) == "gpt-4o"
        assert registry.resolve_model("  ") == "gpt-4o"
        assert registry.lookup("") == "openai"


class TestKeystore:
    """Tests for SecretBoxKeystore."""

    def test_encrypt_decrypt(self, keystore):
        """Test that encrypted blobs decrypt to the original secret."""
        blob = keystore.encrypt("sk-live-123")
        assert "sk-live-123" not in blob
        assert keystore.decrypt(blob) == "sk-live-123"

    def test_wrong_secret_fails(self, keystore):
        """Test that a blob from another keystore cannot be decrypted."""
        blob = SecretBoxKeystore("other-secret").encrypt("sk-live-123")
        with pytest.raises(DecryptionError):
            keystore.decrypt(blob)

    def test_garbage_blob_fails(self, keystore):
        """Test that malformed blobs raise DecryptionError."""
        with pytest.raises(DecryptionError):
            keystore.decrypt("%%%not-base64%%%")

    def test_empty_secret_rejected(self):
        """Test that the keystore refuses an empty secret."""
        with pytest.raises(ValueError):
            SecretBoxKeystore("")


class TestRedisCredentialStore:
    """Tests for the Redis-backed credential store."""

    @pytest.mark.asyncio
    @patch("chatrelay.core.keystore.aioredis")
    async def test_lookup_key_format(self, mock_aioredis, mock_redis):
        """Test that blobs are read from the per-user, per-provider key."""
        mock_aioredis.from_url.return_value = mock_redis
        mock_redis.get.return_value = "blob"

        store = RedisCredentialStore("redis://localhost:6379/0", key_prefix="chatrelay", socket_timeout_s=1.5)

        assert await store.get_encrypted_key(USER, "openai") == "blob"
        mock_redis.get.assert_awaited_once_with("chatrelay:apikey:user-1:openai")
        mock_aioredis.from_url.assert_called_once_with(
            "redis://localhost:6379/0",
            decode_responses=True,
            socket_timeout=1.5,
            socket_connect_timeout=1.5,
        )

    @pytest.mark.asyncio
    @patch("chatrelay.core.keystore.aioredis")
    async def test_redis_error_degrades_to_missing(self, mock_aioredis, mock_redis):
        """Test that Redis failures and timeouts surface as no credential."""
        mock_aioredis.from_url.return_value = mock_redis
        mock_redis.get.side_effect = [redis.ConnectionError("down"), redis.TimeoutError("slow")]

        store = RedisCredentialStore("redis://localhost:6379/0")

        assert await store.get_encrypted_key(USER, "openai") is None
        assert await store.get_encrypted_key(USER, "openai") is None

    @pytest.mark.asyncio
    @patch("chatrelay.core.keystore.aioredis")
    async def test_unreachable_redis_ping(self, mock_aioredis, mock_redis):
        """Test that an unreachable Redis is reported by ping without raising."""
        mock_aioredis.from_url.return_value = mock_redis
        mock_redis.ping.side_effect = redis.ConnectionError("refused")

        store = RedisCredentialStore("redis://invalid:6379/0")

        assert await store.ping() is False
        await store.close()
        mock_redis.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    @patch("chatrelay.core.keystore.aioredis")
    async def test_invalid_url_disables_store(self, mock_aioredis):
        """Test graceful degradation when the client cannot be created."""
        mock_aioredis.from_url.side_effect = ValueError("bad scheme")

        store = RedisCredentialStore("nope://")

        assert store.enabled is False
        assert await store.get_encrypted_key(USER, "openai") is None


class TestCredentialResolver:
    """Tests for request resolution."""

    @pytest.fixture
    def resolver(self, registry, keystore):
        store = InMemoryCredentialStore()
        store.put(USER, "anthropic", keystore.encrypt("sk-ant-123"))
        store.put(USER, "deepseek", keystore.encrypt("   "))
        store.put(USER, "gemini", "corrupt-blob")
        return CredentialResolver(registry, store, keystore, build_adapters(_default_providers()))

    @pytest.mark.asyncio
    async def test_resolves_provider_credential_and_adapter(self, resolver):
        """Test full resolution for a stored credential."""
        target = await resolver.resolve(USER, "claude-3-5-sonnet-20241022")

        assert target.provider == "anthropic"
        assert target.model == "claude-3-5-sonnet-20241022"
        assert target.credential.secret == "sk-ant-123"
        assert target.adapter.provider == "anthropic"
        assert "sk-ant-123" not in repr(target)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("model,provider", [
        ("gpt-4o", "openai"),          # no blob
        ("deepseek-chat", "deepseek"),  # empty plaintext
        ("gemini-2.0-flash", "gemini"), # corrupt blob
    ])
    async def test_unusable_credentials_are_missing(self, resolver, model, provider):
        """Test every unusable-credential case raises CredentialMissingError."""
        with pytest.raises(CredentialMissingError) as exc_info:
            await resolver.resolve(USER, model)

        assert exc_info.value.provider == provider
        assert exc_info.value.client_message == (
            f"No API key found for {provider}. Please add one in Settings."
        )

    @pytest.mark.asyncio
    async def test_store_is_queried_for_resolved_provider(self, registry, keystore):
        """Test lookups are keyed by (user, provider)."""
        store = AsyncMock()
        store.get_encrypted_key.return_value = None
        resolver = CredentialResolver(registry, store, keystore, build_adapters(_default_providers()))

        with pytest.raises(CredentialMissingError):
            await resolver.resolve(USER, "llama-3.3-70b")

        store.get_encrypted_key.assert_awaited_once_with(USER, "meta")

    @pytest.mark.asyncio
    async def test_missing_model_resolves_to_default(self, registry, keystore, credential_store):
        """Test that a request without a model is resolved to the default model once."""
        resolver = CredentialResolver(registry, credential_store, keystore, build_adapters(_default_providers()))

        target = await resolver.resolve(USER, None)

        assert target.model == "gpt-4o"
        assert target.provider == "openai"
