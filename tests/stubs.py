"""Stub upstream used in place of the gateway and provider."""

import json
from typing import Any, Dict, List, Optional

import httpx


class StubUpstream:
    """Stands in for the gateway and the provider behind an httpx.MockTransport.

    Records every outbound request and answers with the configured status and
    body, or raises the configured exception.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.status = 200
        self.body: Any = {
            "choices": [{"message": {"role": "assistant", "content": "Rest and fluids."}}],
            "model": "llama-3.3-70b-versatile",
            "usage": {"prompt_tokens": 20, "completion_tokens": 4, "total_tokens": 24},
        }
        self.raw: Optional[bytes] = None
        self.exc: Optional[Exception] = None

    def respond(self, status: int, body: Any) -> None:
        self.status = status
        self.body = body

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        if self.raw is not None:
            return httpx.Response(self.status, content=self.raw)
        return httpx.Response(self.status, json=self.body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)
