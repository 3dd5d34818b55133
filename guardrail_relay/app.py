"""FastAPI application for the guardrail relay.

Serves one domain persona. POST /chat sends the caller's message through the
guardrail gateway and relays the reply or the block decision. POST
/chat/unsafe calls the provider directly and is only registered when
ENABLE_UNSAFE_ENDPOINT is set. GET /health echoes the non-secret config.

Everything a request needs (persona, provider, mediation client, limiter) is
built once by create_app() into a RelayContext stored on app.state. Building
the context fails on an unsupported provider or missing credential, so a
misconfigured process never starts listening.
"""

import asyncio
import contextlib
import logging
import os
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Dict, Mapping, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from guardrail_relay import __version__
from guardrail_relay.classifier import HTTP_STATUS, OUTCOME, ErrorKind, describe
from guardrail_relay.config import RelayConfig, load_config
from guardrail_relay.errors import ConfigurationError
from guardrail_relay.limiter import RateLimitExceeded, RateLimiter
from guardrail_relay.mediation import (
    Approved,
    Blocked,
    MediationClient,
    MediationMode,
    MediationResult,
)
from guardrail_relay.models import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    ResponseMetadata,
)
from guardrail_relay.prompts import Persona, build_envelope, get_persona, load_personas
from guardrail_relay.providers import ProviderConfig, resolve
from guardrail_relay.telemetry import log_request, logger, setup_logging

DISCONNECT_POLL_SECONDS = 0.5
CLIENT_CLOSED_REQUEST = 499

UNSAFE_WARNING = "This endpoint has NO guardrails - for demo purposes only"


@dataclass(frozen=True)
class RelayContext:
    """Process-wide, read-only state shared by request handlers."""

    config: RelayConfig
    persona: Persona
    provider: ProviderConfig
    client: MediationClient
    limiter: RateLimiter


def build_context(
    config: RelayConfig,
    environ: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> RelayContext:
    """Resolve provider, credential and persona into a RelayContext.

    Raises:
        ConfigurationError: If the provider is unsupported (UnsupportedProvider),
            its credential is missing, or the persona cannot be resolved.
    """
    env = os.environ if environ is None else environ

    provider = resolve(config.llm.provider, env)
    api_key = provider.api_key(env)
    if not api_key:
        raise ConfigurationError(
            "LLM API key not configured for {}: set {}".format(
                provider.identifier, provider.credential_env_name
            )
        )

    extra = load_personas(config.persona_file) if config.persona_file else None
    persona = get_persona(config.domain, extra)

    return RelayContext(
        config=config,
        persona=persona,
        provider=provider,
        client=MediationClient(config.gateway, provider, api_key, transport=transport),
        limiter=RateLimiter(requests_per_minute=config.server.requests_per_minute),
    )


def get_context(request: Request) -> RelayContext:
    """Return the RelayContext attached to the running app."""
    return request.app.state.context


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_response(
    status: int,
    error: str,
    message: str,
    ethicalzen: Optional[Dict[str, Any]] = None,
    details: Any = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body = ErrorResponse(error=error, message=message, ethicalzen=ethicalzen, details=details)
    return JSONResponse(status_code=status, content=body.model_dump(exclude_none=True))


async def dispatch_until_disconnect(
    request: Request, call: Awaitable[MediationResult]
) -> Optional[MediationResult]:
    """Await a mediation call, cancelling it if the caller disconnects.

    Returns:
        The mediation result, or None if the caller went away first.
    """
    task = asyncio.ensure_future(call)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                return None
    finally:
        if not task.done():
            task.cancel()


def _approved_response(
    result: Approved, mode: MediationMode, context: RelayContext
) -> JSONResponse:
    if mode == MediationMode.DIRECT:
        ethicalzen: Dict[str, Any] = {"status": "BYPASSED", "warning": UNSAFE_WARNING}
    else:
        meta = result.validation_meta or {}
        ethicalzen = {
            "status": meta.get("status", "APPROVED"),
            "gateway_validated": True,
            "certificate": context.config.gateway.certificate_id,
            "validation_time_ms": meta.get("validation_time_ms", result.latency_ms),
        }
        for key in ("guardrails_checked", "trace_id"):
            if key in meta:
                ethicalzen[key] = meta[key]

    body = ChatResponse(
        response=result.text,
        ethicalzen=ethicalzen,
        metadata=ResponseMetadata(
            latency_ms=result.latency_ms,
            timestamp=_now(),
            model=result.model_used,
            usage=result.usage,
        ),
    )
    return JSONResponse(status_code=200, content=body.model_dump(exclude_none=True))


def _blocked_response(result: Blocked, context: RelayContext) -> JSONResponse:
    gateway = context.config.gateway
    ethicalzen: Dict[str, Any] = {
        "status": "BLOCKED",
        "violation": result.reason_code,
        "certificate": gateway.certificate_id,
    }
    if isinstance(result.details, dict):
        for key in ("feature", "bounds"):
            if key in result.details:
                ethicalzen[key] = result.details[key]

    return _error_response(
        HTTP_STATUS[ErrorKind.BLOCKED_BY_POLICY],
        gateway.block_code,
        describe(ErrorKind.BLOCKED_BY_POLICY),
        ethicalzen=ethicalzen,
        details=result.details,
    )


def _failed_response(kind: ErrorKind, message: str, details: Any, expose: bool) -> JSONResponse:
    # The gateway's validation verdict is meant for the caller; raw upstream
    # failures are only shown with EXPOSE_ERROR_DETAILS.
    if kind == ErrorKind.VALIDATION_FAILED:
        return _error_response(
            HTTP_STATUS[kind], kind.value, describe(kind), details=details
        )
    return _error_response(
        HTTP_STATUS[kind],
        kind.value,
        describe(kind, message, expose_details=expose),
        details=details if expose else None,
    )


async def _handle_chat(
    body: ChatRequest, request: Request, context: RelayContext, mode: MediationMode
) -> Response:
    """Run one chat request through the mediation client and render the result."""
    request_id = "req-{}".format(uuid.uuid4().hex[:12])
    provider = context.provider.identifier
    caller = request.client.host if request.client else "unknown"

    try:
        context.limiter.check(caller)
    except RateLimitExceeded as exc:
        log_request(
            request_id=request_id,
            mode=mode.value,
            provider=provider,
            outcome="rate_limited",
            user_id=body.user_id,
            session_id=body.session_id,
            error=exc.detail,
        )
        return _error_response(429, "RATE_LIMITED", exc.detail)

    logger.debug("[%s] input: %r", request_id, body.message[:100])
    envelope = build_envelope(context.persona, body.message, context.config.llm.model)

    result = await dispatch_until_disconnect(
        request, context.client.dispatch(envelope, mode)
    )

    if result is None:
        log_request(
            request_id=request_id,
            mode=mode.value,
            provider=provider,
            outcome="client_disconnected",
            user_id=body.user_id,
            session_id=body.session_id,
        )
        return Response(status_code=CLIENT_CLOSED_REQUEST)

    if isinstance(result, Approved):
        log_request(
            request_id=request_id,
            mode=mode.value,
            provider=provider,
            outcome="bypassed" if mode == MediationMode.DIRECT else "approved",
            user_id=body.user_id,
            session_id=body.session_id,
            latency_ms=result.latency_ms,
            usage=result.usage.model_dump(exclude_none=True) if result.usage else None,
        )
        return _approved_response(result, mode, context)

    if isinstance(result, Blocked):
        log_request(
            request_id=request_id,
            mode=mode.value,
            provider=provider,
            outcome=OUTCOME[ErrorKind.BLOCKED_BY_POLICY],
            user_id=body.user_id,
            session_id=body.session_id,
            latency_ms=result.latency_ms,
            error_kind=ErrorKind.BLOCKED_BY_POLICY.value,
            error=result.reason_code,
        )
        return _blocked_response(result, context)

    log_request(
        request_id=request_id,
        mode=mode.value,
        provider=provider,
        outcome=OUTCOME[result.error_kind],
        user_id=body.user_id,
        session_id=body.session_id,
        latency_ms=result.latency_ms,
        error_kind=result.error_kind.value,
        error=result.message,
    )
    return _failed_response(
        result.error_kind,
        result.message,
        result.details,
        context.config.server.expose_error_details,
    )


router = APIRouter()
unsafe_router = APIRouter()


@router.post("/chat", response_model=None)
async def chat(
    body: ChatRequest, request: Request, context: RelayContext = Depends(get_context)
) -> Response:
    """Secure chat: the message is validated by the gateway before and after the LLM."""
    return await _handle_chat(body, request, context, MediationMode.MEDIATED)


@unsafe_router.post("/chat/unsafe", response_model=None)
async def chat_unsafe(
    body: ChatRequest, request: Request, context: RelayContext = Depends(get_context)
) -> Response:
    """Unprotected chat straight to the provider. Not for production use."""
    logger.warning("UNSAFE chat request (NO GUARDRAILS)")
    return await _handle_chat(body, request, context, MediationMode.DIRECT)


@router.get("/health")
async def health(context: RelayContext = Depends(get_context)) -> Dict[str, Any]:
    """Report liveness and echo the non-secret configuration."""
    config = context.config
    gateway = config.gateway
    return {
        "status": "healthy",
        "timestamp": _now(),
        "version": __version__,
        "domain": context.persona.name,
        "llm": {"provider": context.provider.identifier, "model": config.llm.model},
        "ethicalzen": {
            "mode": "demo" if gateway.is_demo else "production",
            "addressing": gateway.addressing.value,
            "gateway": gateway.url,
            "certificate": gateway.certificate_id,
            "tenant": gateway.tenant_id,
        },
        "unsafe_endpoint": config.server.enable_unsafe_endpoint,
    }


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render malformed chat bodies as 400 BAD_REQUEST; nothing is dispatched."""
    context: RelayContext = request.app.state.context
    mode = MediationMode.DIRECT if request.url.path.endswith("/unsafe") else MediationMode.MEDIATED
    log_request(
        request_id="req-{}".format(uuid.uuid4().hex[:12]),
        mode=mode.value,
        provider=context.provider.identifier,
        outcome=OUTCOME[ErrorKind.BAD_REQUEST],
        error_kind=ErrorKind.BAD_REQUEST.value,
        error="; ".join(
            "{}: {}".format(".".join(str(p) for p in err.get("loc", ())), err.get("msg", ""))
            for err in exc.errors()
        ),
    )
    return _error_response(
        HTTP_STATUS[ErrorKind.BAD_REQUEST],
        ErrorKind.BAD_REQUEST.value,
        describe(ErrorKind.BAD_REQUEST),
    )


def create_app(
    config: Optional[RelayConfig] = None,
    environ: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the relay app.

    Args:
        config: Relay configuration (loaded from the environment if omitted).
        environ: Environment mapping for credentials (defaults to os.environ).
        transport: Optional httpx transport for outbound calls.

    Raises:
        ConfigurationError: If the configuration cannot serve traffic.
    """
    if config is None:
        config = load_config(environ)
    context = build_context(config, environ=environ, transport=transport)

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        """Set up logging, announce the configuration and probe the gateway."""
        setup_logging(config.server.log_file)
        gateway = config.gateway
        logger.info(
            "Guardrail relay starting: domain=%s provider=%s model=%s",
            context.persona.name,
            context.provider.identifier,
            config.llm.model,
        )
        logger.info(
            "Gateway %s (%s addressing), certificate %s, tenant %s%s",
            gateway.url,
            gateway.addressing.value,
            gateway.certificate_id,
            gateway.tenant_id,
            " [DEMO]" if gateway.is_demo else "",
        )
        if config.server.enable_unsafe_endpoint:
            logger.warning("POST /chat/unsafe is enabled: it bypasses all guardrails")
        await context.client.probe_gateway()
        yield

    application = FastAPI(
        title="Guardrail Relay", version=__version__, lifespan=lifespan
    )
    application.state.context = context
    application.include_router(router)
    if config.server.enable_unsafe_endpoint:
        application.include_router(unsafe_router)
    application.add_exception_handler(RequestValidationError, validation_exception_handler)
    return application
