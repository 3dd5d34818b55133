"""Tests for the provider registry."""

import httpx
import pytest

from guardrail_relay.errors import ConfigurationError, UnsupportedProvider
from guardrail_relay.providers import is_absolute_url, resolve, supported_providers

ENV = {"AZURE_OPENAI_ENDPOINT": "https://example.openai.azure.com/openai/deployments/gpt/chat/completions"}


@pytest.mark.parametrize("identifier", supported_providers())
def test_every_provider_resolves_to_absolute_url(identifier: str) -> None:
    """Each supported provider yields a well-formed absolute endpoint."""
    config = resolve(identifier, ENV)
    url = httpx.URL(config.endpoint)
    assert url.scheme == "https"
    assert url.host
    assert config.identifier == identifier


def test_resolve_is_case_insensitive() -> None:
    """Selectors match regardless of case and surrounding whitespace."""
    config = resolve("  GrOq ", ENV)
    assert config.identifier == "groq"
    assert config.endpoint == "https://api.groq.com/openai/v1/chat/completions"
    assert config.credential_env_name == "GROQ_API_KEY"


def test_unknown_provider_raises() -> None:
    """An unknown selector raises UnsupportedProvider listing the options."""
    with pytest.raises(UnsupportedProvider, match="expected one of: anthropic, azure, groq, openai"):
        resolve("mistral", ENV)


def test_unsupported_provider_is_configuration_error() -> None:
    """UnsupportedProvider is a startup configuration failure."""
    with pytest.raises(ConfigurationError):
        resolve("", ENV)


def test_azure_without_endpoint_raises() -> None:
    """Azure needs AZURE_OPENAI_ENDPOINT to produce an absolute URL."""
    with pytest.raises(UnsupportedProvider, match="not an absolute"):
        resolve("azure", {})


def test_azure_relative_endpoint_raises() -> None:
    """A relative Azure endpoint is rejected."""
    with pytest.raises(UnsupportedProvider):
        resolve("azure", {"AZURE_OPENAI_ENDPOINT": "/openai/deployments/gpt"})


def test_api_key_from_environment() -> None:
    """The credential is read from the provider's environment variable."""
    config = resolve("openai", ENV)
    assert config.api_key({"OPENAI_API_KEY": "sk-live"}) == "sk-live"
    assert config.api_key({"OPENAI_API_KEY": "   "}) is None
    assert config.api_key({}) is None


def test_provider_config_is_immutable() -> None:
    """ProviderConfig cannot be modified after resolution."""
    config = resolve("groq", ENV)
    with pytest.raises(AttributeError):
        config.endpoint = "https://evil.example.com"  # type: ignore[misc]


@pytest.mark.parametrize(
    "value,expected",
    [
        ("https://api.openai.com/v1", True),
        ("http://localhost:8080", True),
        ("ftp://example.com", False),
        ("api.openai.com/v1", False),
        ("", False),
    ],
)
def test_is_absolute_url(value: str, expected: bool) -> None:
    assert is_absolute_url(value) is expected
