"""Request, envelope and response models for the guardrail relay."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    model_config = ConfigDict(frozen=True)

    role: str
    content: str


class ChatRequest(BaseModel):
    """Incoming chat request from the caller."""

    message: str = Field(..., min_length=1, description="User message to forward")
    user_id: Optional[str] = Field(default=None, description="Caller identifier")
    session_id: Optional[str] = Field(default=None, description="Conversation id")


class MediationEnvelope(BaseModel):
    """Outbound chat-completion payload sent to the gateway or provider."""

    model_config = ConfigDict(frozen=True)

    messages: List[ChatMessage] = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    max_tokens: Optional[int] = Field(default=None, gt=0)

    def to_payload(self) -> Dict[str, Any]:
        """Return the JSON body, omitting unset optional fields."""
        return self.model_dump(exclude_none=True)


class UsageStats(BaseModel):
    """Token usage passed through from the provider."""

    model_config = ConfigDict(extra="allow")

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ResponseMetadata(BaseModel):
    """Timing and model metadata attached to a chat response."""

    latency_ms: int
    timestamp: str
    model: str
    usage: Optional[UsageStats] = None


class ChatResponse(BaseModel):
    """Successful chat response envelope."""

    response: str
    ethicalzen: Dict[str, Any]
    metadata: ResponseMetadata


class ErrorResponse(BaseModel):
    """Error response envelope."""

    error: str
    message: str
    ethicalzen: Optional[Dict[str, Any]] = None
    details: Optional[Any] = None
