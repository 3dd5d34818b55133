"""Shared test fixtures for the guardrail relay tests."""

from typing import Callable, Dict

import pytest

from guardrail_relay.config import RelayConfig, load_config
from guardrail_relay.mediation import MediationClient
from guardrail_relay.providers import ProviderConfig, resolve

from tests.stubs import StubUpstream

TEST_ENV: Dict[str, str] = {
    "APP_DOMAIN": "healthcare",
    "ETHICALZEN_GATEWAY_URL": "http://gateway.test:8080",
    "ETHICALZEN_CERTIFICATE_ID": "healthcare-test/healthcare/us/v1.0",
    "ETHICALZEN_TENANT_ID": "tenant-a",
    "ETHICALZEN_API_KEY": "sk-gateway-test",
    "LLM_PROVIDER": "groq",
    "LLM_MODEL": "llama-3.3-70b-versatile",
    "GROQ_API_KEY": "gsk-test-key",
    "MAX_REQUESTS_PER_MINUTE": "100",
}


@pytest.fixture()
def relay_env() -> Dict[str, str]:
    """Return a copy of the baseline test environment."""
    return dict(TEST_ENV)


@pytest.fixture()
def config_factory(relay_env: Dict[str, str]) -> Callable[..., RelayConfig]:
    """Return a function that loads a RelayConfig with variable overrides."""

    def _make(**overrides: str) -> RelayConfig:
        env = dict(relay_env)
        env.update(overrides)
        return load_config(env)

    return _make


@pytest.fixture()
def stub() -> StubUpstream:
    """Return a fresh stub upstream."""
    return StubUpstream()


@pytest.fixture()
def test_config(config_factory: Callable[..., RelayConfig]) -> RelayConfig:
    """Return the default test RelayConfig."""
    return config_factory()


@pytest.fixture()
def groq_provider(relay_env: Dict[str, str]) -> ProviderConfig:
    """Return the resolved groq provider."""
    return resolve("groq", relay_env)


@pytest.fixture()
def mediation_client(
    test_config: RelayConfig,
    groq_provider: ProviderConfig,
    relay_env: Dict[str, str],
    stub: StubUpstream,
) -> MediationClient:
    """Return a MediationClient wired to the stub upstream."""
    return MediationClient(
        test_config.gateway,
        groq_provider,
        relay_env["GROQ_API_KEY"],
        transport=stub.transport,
    )
