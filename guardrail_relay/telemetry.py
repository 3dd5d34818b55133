"""Logging and telemetry for the guardrail relay.

Emits structured log records to stdout and, when configured, appends them to
a log file for local review.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("guardrail_relay")

_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S"

# Outcomes that mean the guardrail did its job; anything else not listed
# here (other than success) is a failure.
_POLICY_OUTCOMES = frozenset({"blocked", "validation_failed"})
_SUCCESS_OUTCOMES = frozenset({"approved", "bypassed"})
_CALLER_OUTCOMES = frozenset({"bad_request", "rate_limited", "client_disconnected"})


def setup_logging(log_file: Optional[str] = None, level: str = "INFO") -> None:
    """Configure the relay logger with a stdout handler and optional file handler.

    Args:
        log_file: Path to an append-only log file, or None for stdout only.
        level: Logging level name.
    """
    logger.setLevel(level)

    if not logger.handlers:
        formatter = logging.Formatter(_FORMAT, datefmt=_DATEFMT)

        stdout_handler = logging.StreamHandler()
        stdout_handler.setFormatter(formatter)
        logger.addHandler(stdout_handler)

        if log_file:
            log_path = Path(log_file)
            os.makedirs(log_path.parent, exist_ok=True)
            file_handler = logging.FileHandler(log_path, mode="a")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)


def _level_for(outcome: str) -> int:
    if outcome in _SUCCESS_OUTCOMES or outcome in _POLICY_OUTCOMES:
        return logging.INFO
    if outcome in _CALLER_OUTCOMES:
        return logging.WARNING
    return logging.ERROR


def log_request(
    *,
    request_id: str,
    mode: str,
    provider: Optional[str],
    outcome: str,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    latency_ms: Optional[int] = None,
    error_kind: Optional[str] = None,
    error: Optional[str] = None,
    usage: Optional[Dict[str, Any]] = None
) -> None:
    """Log a single request event as one JSON line.

    Policy outcomes (blocked, validation_failed) are logged at INFO next to
    successes; caller mistakes at WARNING; everything else at ERROR.

    Args:
        request_id: Relay-assigned request ID.
        mode: "mediated" or "direct".
        provider: The configured provider identifier.
        outcome: Short outcome label (e.g. "approved", "blocked", "timeout").
        user_id: The caller's user id, if given.
        session_id: The caller's session id, if given.
        latency_ms: Duration of the outbound call.
        error_kind: ErrorKind value for failed requests.
        error: Diagnostic message for failed requests.
        usage: Token usage dict if available.
    """
    record: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id,
        "user_id": user_id or "anonymous",
        "session_id": session_id,
        "mode": mode,
        "provider": provider,
        "outcome": outcome,
        "policy_outcome": outcome in _POLICY_OUTCOMES,
    }

    if latency_ms is not None:
        record["latency_ms"] = latency_ms

    if error_kind:
        record["error_kind"] = error_kind

    if error:
        record["error"] = error

    if usage:
        record["usage"] = usage

    logger.log(_level_for(outcome), json.dumps(record, default=str))
