"""Response normalizer: extract text, usage and model from upstream bodies.

Gateways and providers answer in one of three shapes, checked in this order:

1. chat completion  ``{"choices": [{"message": {"content": "..."}}]}``
2. flat response    ``{"response": "..."}``
3. flat content     ``{"content": "..."}``

Anything else is rejected with MalformedResponse. An unrecognized shape must
never turn into an empty reply.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from guardrail_relay.errors import MalformedResponse
from guardrail_relay.models import UsageStats


class ResponseShape(str, Enum):
    """The recognized upstream response shapes."""

    CHAT_COMPLETION = "chat_completion"
    FLAT_RESPONSE = "flat_response"
    FLAT_CONTENT = "flat_content"


@dataclass(frozen=True)
class NormalizedResponse:
    """Uniform view of an upstream response."""

    text: str
    shape: ResponseShape
    usage: Optional[UsageStats] = None
    model: Optional[str] = None


def _chat_completion_text(body: Dict[str, Any]) -> Optional[str]:
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


def detect_shape(body: Any) -> Tuple[ResponseShape, str]:
    """Identify the response shape and return it with the extracted text.

    Raises:
        MalformedResponse: If the body matches none of the known shapes.
    """
    if not isinstance(body, dict):
        raise MalformedResponse(
            body, "Expected a JSON object, got {}".format(type(body).__name__)
        )

    text = _chat_completion_text(body)
    if text is not None:
        return ResponseShape.CHAT_COMPLETION, text

    if isinstance(body.get("response"), str):
        return ResponseShape.FLAT_RESPONSE, body["response"]

    if isinstance(body.get("content"), str):
        return ResponseShape.FLAT_CONTENT, body["content"]

    raise MalformedResponse(
        body,
        "Response has none of choices[0].message.content, response, content "
        "(keys: {})".format(", ".join(sorted(str(k) for k in body)) or "none"),
    )


def _usage(body: Dict[str, Any]) -> Optional[UsageStats]:
    raw = body.get("usage")
    if not isinstance(raw, dict):
        return None
    try:
        return UsageStats.model_validate(raw)
    except ValueError:
        # usage is passthrough only
        return None


def normalize(body: Any) -> NormalizedResponse:
    """Normalize an upstream response body.

    Args:
        body: The decoded JSON body.

    Returns:
        A NormalizedResponse with the reply text and passthrough fields.

    Raises:
        MalformedResponse: If the body is not a recognized shape.
    """
    shape, text = detect_shape(body)
    model = body.get("model")
    return NormalizedResponse(
        text=text,
        shape=shape,
        usage=_usage(body),
        model=model if isinstance(model, str) else None,
    )
