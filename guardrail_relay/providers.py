"""Provider registry: resolve an LLM provider selector to its endpoint.

The set of providers is fixed. Resolution runs once while the app is being
built, so an unknown selector stops the process before it accepts traffic.
"""

import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

import httpx

from guardrail_relay.errors import UnsupportedProvider


@dataclass(frozen=True)
class ProviderConfig:
    """Endpoint and credential lookup for a single LLM provider."""

    identifier: str
    endpoint: str
    credential_env_name: str

    def api_key(self, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
        """Resolve the provider credential from the environment."""
        env = os.environ if environ is None else environ
        value = env.get(self.credential_env_name, "").strip()
        return value or None


def _fixed(url: str) -> Callable[[Mapping[str, str]], str]:
    return lambda env: url


def _from_env(name: str) -> Callable[[Mapping[str, str]], str]:
    return lambda env: env.get(name, "").strip()


# identifier -> (endpoint lookup, credential env var)
_PROVIDERS: Dict[str, tuple] = {
    "openai": (
        _fixed("https://api.openai.com/v1/chat/completions"),
        "OPENAI_API_KEY",
    ),
    "anthropic": (
        _fixed("https://api.anthropic.com/v1/messages"),
        "ANTHROPIC_API_KEY",
    ),
    "groq": (
        _fixed("https://api.groq.com/openai/v1/chat/completions"),
        "GROQ_API_KEY",
    ),
    "azure": (
        _from_env("AZURE_OPENAI_ENDPOINT"),
        "AZURE_OPENAI_API_KEY",
    ),
}


def supported_providers() -> List[str]:
    """Return the sorted list of supported provider identifiers."""
    return sorted(_PROVIDERS)


def is_absolute_url(value: str) -> bool:
    """Return True if value is an absolute http(s) URL with a host."""
    if not value:
        return False
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL:
        return False
    return url.scheme in ("http", "https") and bool(url.host)


def resolve(
    identifier: str, environ: Optional[Mapping[str, str]] = None
) -> ProviderConfig:
    """Resolve a provider selector to its configuration.

    Args:
        identifier: Provider selector, matched case-insensitively.
        environ: Environment mapping for endpoints sourced from variables
            (defaults to os.environ).

    Returns:
        The immutable ProviderConfig for the provider.

    Raises:
        UnsupportedProvider: If the selector is unknown or the provider's
            endpoint is not an absolute URL.
    """
    env = os.environ if environ is None else environ
    key = (identifier or "").strip().lower()
    entry = _PROVIDERS.get(key)
    if entry is None:
        raise UnsupportedProvider(
            identifier,
            "expected one of: {}".format(", ".join(supported_providers())),
        )

    endpoint_lookup, credential_env_name = entry
    endpoint = endpoint_lookup(env)
    if not is_absolute_url(endpoint):
        raise UnsupportedProvider(
            identifier,
            "endpoint '{}' is not an absolute http(s) URL".format(endpoint),
        )

    return ProviderConfig(
        identifier=key,
        endpoint=endpoint,
        credential_env_name=credential_env_name,
    )
