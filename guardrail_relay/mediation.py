"""Mediation client: send a chat envelope through the guardrail gateway.

Two modes:

- MEDIATED: the envelope goes to the gateway, which validates the input,
  forwards it to the provider with the caller's credential (BYOK), validates
  the output and answers with the provider body or a block decision.
- DIRECT: the envelope goes straight to the provider. Nothing is validated.
  Only the explicitly enabled unsafe endpoint uses this mode.

Every dispatch returns exactly one of Approved, Blocked or Failed. There are
no retries: a blocked call stays blocked and transient failures are left to
the caller.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

import httpx

from guardrail_relay.classifier import ErrorKind, classify
from guardrail_relay.config import AddressingScheme, GatewayConfig
from guardrail_relay.errors import MalformedResponse
from guardrail_relay.models import MediationEnvelope, UsageStats
from guardrail_relay.normalizer import normalize
from guardrail_relay.providers import ProviderConfig

_logger = logging.getLogger("guardrail_relay")

MEDIATION_TIMEOUT_SECONDS = 30.0
HEALTH_PROBE_TIMEOUT_SECONDS = 5.0

# Gateway fields copied into Approved.validation_meta when present.
VALIDATION_META_FIELDS = ("status", "guardrails_checked", "trace_id", "validation_time_ms")


class MediationMode(str, Enum):
    """Whether a call passes through the gateway or goes straight to the provider."""

    MEDIATED = "mediated"
    DIRECT = "direct"


@dataclass(frozen=True)
class Approved:
    """The gateway (or provider, in direct mode) returned a usable reply."""

    text: str
    model_used: str
    latency_ms: int
    usage: Optional[UsageStats] = None
    validation_meta: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class Blocked:
    """The gateway rejected the input or output per policy."""

    reason_code: str
    details: Any
    latency_ms: int = 0


@dataclass(frozen=True)
class Failed:
    """The call failed for a non-policy reason (or failed validation)."""

    error_kind: ErrorKind
    message: str
    latency_ms: int = 0
    status_code: Optional[int] = None
    details: Any = None


MediationResult = Union[Approved, Blocked, Failed]


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _decode_body(response: httpx.Response) -> Any:
    """Return the JSON body, or the raw text when it is not JSON."""
    try:
        return response.json()
    except ValueError:
        return response.text


def _reason_code(body: Any) -> str:
    if isinstance(body, dict):
        for key in ("violation", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return "policy_violation"


class MediationClient:
    """Dispatches chat envelopes in mediated or direct mode.

    Built once at startup and shared by all requests; holds no per-call
    state. An httpx client is opened per dispatch.
    """

    def __init__(
        self,
        gateway: GatewayConfig,
        provider: ProviderConfig,
        provider_api_key: str,
        timeout: float = MEDIATION_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._gateway = gateway
        self._provider = provider
        self._provider_api_key = provider_api_key
        self._timeout = timeout
        self._transport = transport

    @property
    def gateway(self) -> GatewayConfig:
        return self._gateway

    @property
    def provider(self) -> ProviderConfig:
        return self._provider

    def mediated_target(self) -> Tuple[str, Dict[str, str]]:
        """Return the gateway URL and headers for the configured addressing scheme."""
        gateway = self._gateway
        headers = {
            "Authorization": "Bearer {}".format(self._provider_api_key),
            "x-api-key": gateway.api_key,
            "x-tenant-id": gateway.tenant_id,
        }
        if gateway.addressing == AddressingScheme.PATH:
            url = "{}/proxy/{}/{}".format(
                gateway.url, gateway.certificate_id, self._provider.endpoint
            )
        else:
            url = "{}/api/proxy".format(gateway.url)
            headers["x-contract-id"] = gateway.certificate_id
            headers["x-target-endpoint"] = self._provider.endpoint
        return url, headers

    def direct_target(self) -> Tuple[str, Dict[str, str]]:
        """Return the provider URL and headers for an unprotected call."""
        return self._provider.endpoint, {
            "Authorization": "Bearer {}".format(self._provider_api_key),
        }

    async def dispatch(
        self, envelope: MediationEnvelope, mode: MediationMode = MediationMode.MEDIATED
    ) -> MediationResult:
        """Send an envelope and return the mediation result.

        The latency covers the whole call, gateway-side validation included.

        Args:
            envelope: The outbound chat payload.
            mode: MEDIATED (through the gateway) or DIRECT (unprotected).

        Returns:
            Approved, Blocked or Failed.
        """
        if mode == MediationMode.DIRECT:
            url, headers = self.direct_target()
        else:
            url, headers = self.mediated_target()

        started = time.perf_counter()
        try:
            # One budget for the whole call, body read included.
            response = await asyncio.wait_for(
                self._post(url, envelope, headers), timeout=self._timeout
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            return Failed(
                error_kind=ErrorKind.TIMEOUT,
                message="No response within {:g}s ({})".format(
                    self._timeout, exc.__class__.__name__
                ),
                latency_ms=_elapsed_ms(started),
            )
        except httpx.RequestError as exc:
            return Failed(
                error_kind=classify(None),
                message="{}: {}".format(exc.__class__.__name__, exc),
                latency_ms=_elapsed_ms(started),
            )

        body = _decode_body(response)

        if not response.is_success:
            return self._failure(mode, response.status_code, body, _elapsed_ms(started))

        try:
            normalized = normalize(body)
        except MalformedResponse as exc:
            return Failed(
                error_kind=ErrorKind.MALFORMED_RESPONSE,
                message=exc.detail,
                latency_ms=_elapsed_ms(started),
                status_code=response.status_code,
                details=exc.raw_body,
            )

        validation_meta = None
        if mode == MediationMode.MEDIATED and isinstance(body, dict):
            validation_meta = {
                key: body[key] for key in VALIDATION_META_FIELDS if key in body
            }

        return Approved(
            text=normalized.text,
            model_used=normalized.model or envelope.model,
            latency_ms=_elapsed_ms(started),
            usage=normalized.usage,
            validation_meta=validation_meta,
        )

    async def _post(
        self, url: str, envelope: MediationEnvelope, headers: Dict[str, str]
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            return await client.post(url, json=envelope.to_payload(), headers=headers)

    def _failure(
        self, mode: MediationMode, status: int, body: Any, latency_ms: int
    ) -> MediationResult:
        if mode == MediationMode.DIRECT:
            # No policy layer on this path; a provider 403 is an auth failure.
            return Failed(
                error_kind=ErrorKind.UPSTREAM_ERROR,
                message="Provider returned HTTP {}".format(status),
                latency_ms=latency_ms,
                status_code=status,
                details=body,
            )

        kind = classify(status, body)
        if kind == ErrorKind.BLOCKED_BY_POLICY:
            return Blocked(reason_code=_reason_code(body), details=body, latency_ms=latency_ms)
        return Failed(
            error_kind=kind,
            message="Gateway returned HTTP {}".format(status),
            latency_ms=latency_ms,
            status_code=status,
            details=body,
        )

    async def probe_gateway(self) -> bool:
        """Check that the gateway's health endpoint answers.

        Never raises; an unreachable gateway only produces a warning, since
        it may still be starting.
        """
        url = "{}/health".format(self._gateway.url)
        try:
            async with httpx.AsyncClient(
                timeout=HEALTH_PROBE_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            _logger.warning("Gateway health check failed at %s: %s", url, exc)
            return False
        _logger.info("Gateway reachable at %s", url)
        return True
