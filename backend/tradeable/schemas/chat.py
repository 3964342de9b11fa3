from __future__ import annotations

import datetime
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field

from tradeable.schemas.ensemble import EnsembleOptions, EnsembleResult
from tradeable.schemas.provider import utcnow

ChatRole = Literal["user", "assistant"]
ChatIntent = Literal["AI_RESPONSE", "USER_QUERY", "SYSTEM", "ERROR", "GENERAL"]


class ChatMetadata(BaseModel):
    ensemble: Optional[EnsembleResult] = None
    market_origin: Optional[str] = None


class ChatMessage(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: ChatRole
    content: str
    timestamp: datetime.datetime = Field(default_factory=utcnow)
    intent: ChatIntent = "GENERAL"
    metadata: Optional[ChatMetadata] = None


class ChatRequest(BaseModel):
    message: str
    conversation_id: Optional[str] = None
    options: Optional[EnsembleOptions] = None


class ChatResponse(BaseModel):
    user_message: ChatMessage
    assistant_message: ChatMessage
    conversation_id: str


class ChatHistoryCreate(BaseModel):
    user_id: Optional[str] = None
    title: str
    category: str
    messages: list[ChatMessage] = Field(default_factory=list)


class ChatHistoryResponse(ChatHistoryCreate):
    id: str
    created_at: datetime.datetime
