"""Tests for config/loader.py and config/schema.py."""
import pytest

from chatrelay.config.loader import ConfigLoader
from chatrelay.config.schema import ChatRelayConfig


def test_missing_file_uses_defaults(tmp_path):
    """Test that a missing config file falls back to built-in defaults."""
    config = ConfigLoader(str(tmp_path / "absent.yaml")).load()

    assert config.registry.default_model == "gpt-4o"
    assert config.relay.first_byte_timeout_s == 30.0
    assert config.relay.connect_timeout_s == 5.0
    assert config.providers["anthropic"].wire_format == "anthropic"
    assert config.providers["gemini"].supports_grounding is True


def test_configured_providers_extend_defaults(tmp_path):
    """Test YAML providers are merged over the built-in set."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        "providers:\n"
        "  openai:\n"
        "    base_url: https://proxy.internal/v1\n"
        "  groq:\n"
        "    wire_format: openai\n"
        "    base_url: https://api.groq.com/openai/v1\n"
        "registry:\n"
        "  models:\n"
        "    llama-3.1-8b-instant: groq\n"
        "relay:\n"
        "  first_byte_timeout_s: 12\n"
        "  connect_timeout_s: 2.5\n"
    )

    loader = ConfigLoader(str(config_file))
    config = loader.load()

    assert loader.get_provider("openai").base_url == "https://proxy.internal/v1"
    assert loader.get_provider("groq").wire_format == "openai"
    assert "anthropic" in config.providers
    assert config.registry.models == {"llama-3.1-8b-instant": "groq"}
    assert config.relay.first_byte_timeout_s == 12
    assert config.relay.connect_timeout_s == 2.5


def test_unknown_provider_reference_rejected(tmp_path):
    """Test registry entries must name configured providers."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("registry:\n  models:\n    some-model: nowhere\n")

    with pytest.raises(ValueError, match="nowhere"):
        ConfigLoader(str(config_file)).load()


def test_invalid_yaml(tmp_path):
    """Test invalid YAML syntax raises ValueError."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("relay: [unclosed\n")

    with pytest.raises(ValueError, match="Invalid YAML"):
        ConfigLoader(str(config_file)).load()


def test_invalid_values(tmp_path):
    """Test schema validation errors are reported as ValueError."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("relay:\n  first_byte_timeout_s: -1\n")

    with pytest.raises(ValueError, match="validation failed"):
        ConfigLoader(str(config_file)).load()


def test_default_config_is_valid():
    """Test that the defaults pass provider reference validation."""
    config = ChatRelayConfig()
    assert set(config.providers) >= {"openai", "anthropic", "gemini", "deepseek", "meta"}
