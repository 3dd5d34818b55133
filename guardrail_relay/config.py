"""Configuration loader for the guardrail relay.

All settings come from environment variables. Provider credentials are not
copied into the config; they are looked up through the resolved provider.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from guardrail_relay.errors import ConfigurationError
from guardrail_relay.providers import is_absolute_url

DEMO_TENANT_ID = "demo"
DEMO_API_KEY = "sk-demo-public-playground-ethicalzen"

BLOCK_CODES = ("BLOCKED_BY_ETHICALZEN", "INPUT_BLOCKED")


class AddressingScheme(str, Enum):
    """How the gateway learns the certificate and target endpoint."""

    HEADERS = "headers"
    PATH = "path"


@dataclass
class GatewayConfig:
    """Connection settings for the mediation gateway."""

    url: str = "http://localhost:8080"
    certificate_id: str = "demo-healthcare"
    tenant_id: str = DEMO_TENANT_ID
    api_key: str = DEMO_API_KEY
    addressing: AddressingScheme = AddressingScheme.HEADERS
    block_code: str = "BLOCKED_BY_ETHICALZEN"

    @property
    def is_demo(self) -> bool:
        """Return True when running against the public demo tenant."""
        return self.tenant_id == DEMO_TENANT_ID


@dataclass
class LLMConfig:
    """Provider selector and model identifier."""

    provider: str = "groq"
    model: str = "llama-3.3-70b-versatile"


@dataclass
class ServerConfig:
    """Listener and request-handling settings."""

    host: str = "0.0.0.0"
    port: int = 3000
    requests_per_minute: int = 60
    expose_error_details: bool = False
    enable_unsafe_endpoint: bool = False
    log_file: Optional[str] = None


@dataclass
class RelayConfig:
    """Top-level relay configuration."""

    domain: str = "healthcare"
    persona_file: Optional[str] = None
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _get(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _get_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = _get(env, name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError("{} must be a boolean, got {!r}".format(name, raw))


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError("{} must be an integer, got {!r}".format(name, raw))
    if value < minimum:
        raise ConfigurationError("{} must be >= {}, got {}".format(name, minimum, value))
    return value


def load_config(environ: Optional[Mapping[str, str]] = None) -> RelayConfig:
    """Load relay configuration from environment variables.

    Args:
        environ: Environment mapping (defaults to os.environ).

    Returns:
        A fully resolved RelayConfig instance.

    Raises:
        ConfigurationError: If a variable holds an invalid value.
    """
    env = os.environ if environ is None else environ

    domain = (_get(env, "APP_DOMAIN", "healthcare") or "healthcare").lower()

    addressing_raw = (_get(env, "ETHICALZEN_ADDRESSING", "headers") or "headers").lower()
    try:
        addressing = AddressingScheme(addressing_raw)
    except ValueError:
        raise ConfigurationError(
            "ETHICALZEN_ADDRESSING must be 'headers' or 'path', got {!r}".format(
                addressing_raw
            )
        )

    block_code = (_get(env, "ETHICALZEN_BLOCK_CODE", BLOCK_CODES[0]) or "").upper()
    if block_code not in BLOCK_CODES:
        raise ConfigurationError(
            "ETHICALZEN_BLOCK_CODE must be one of {}, got {!r}".format(
                ", ".join(BLOCK_CODES), block_code
            )
        )

    gateway_url = _get(env, "ETHICALZEN_GATEWAY_URL", "http://localhost:8080").rstrip("/")
    if not is_absolute_url(gateway_url):
        raise ConfigurationError(
            "ETHICALZEN_GATEWAY_URL must be an absolute http(s) URL, got {!r}".format(
                gateway_url
            )
        )

    gateway = GatewayConfig(
        url=gateway_url,
        certificate_id=_get(env, "ETHICALZEN_CERTIFICATE_ID", "demo-{}".format(domain)),
        tenant_id=_get(env, "ETHICALZEN_TENANT_ID", DEMO_TENANT_ID),
        api_key=_get(env, "ETHICALZEN_API_KEY", DEMO_API_KEY),
        addressing=addressing,
        block_code=block_code,
    )

    llm = LLMConfig(
        provider=_get(env, "LLM_PROVIDER", "groq"),
        model=_get(env, "LLM_MODEL", "llama-3.3-70b-versatile"),
    )

    server = ServerConfig(
        host=_get(env, "HOST", "0.0.0.0"),
        port=_get_int(env, "PORT", 3000),
        requests_per_minute=_get_int(env, "MAX_REQUESTS_PER_MINUTE", 60),
        expose_error_details=_get_bool(env, "EXPOSE_ERROR_DETAILS", False),
        enable_unsafe_endpoint=_get_bool(env, "ENABLE_UNSAFE_ENDPOINT", False),
        log_file=_get(env, "LOG_FILE"),
    )

    return RelayConfig(
        domain=domain,
        persona_file=_get(env, "PERSONA_FILE"),
        gateway=gateway,
        llm=llm,
        server=server,
    )
