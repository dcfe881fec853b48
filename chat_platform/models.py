"""Chat Platform — request/response models."""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class CreateSessionRequest(BaseModel):
    provider: Optional[str] = None
    model: Optional[str] = None


class CreateSessionResponse(BaseModel):
    session_id: str


class SendMessageRequest(BaseModel):
    session_id: str = Field(..., description="Session the message belongs to.")
    message: str = Field(..., description="User message to send to the model.")

    @field_validator("session_id", "message")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("field must not be empty")
        return value


class SendMessageResponse(BaseModel):
    session_id: str
    reply: str
    message_id: int


class MessageItem(BaseModel):
    id: int
    session_id: str
    user_id: str
    role: str
    content: str
    created_at: Optional[str] = None


class ListMessagesResponse(BaseModel):
    messages: List[MessageItem]
    next_before_id: int = 0


class DemoMessage(BaseModel):
    role: str = ""
    content: str = ""


class DemoChatRequest(BaseModel):
    messages: List[DemoMessage] = Field(default_factory=list)


class DemoChatResponse(BaseModel):
    reply: str


class HealthResponse(BaseModel):
    status: str
    service: str
