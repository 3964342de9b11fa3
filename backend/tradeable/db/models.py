# backend/tradeable/db/models.py

import datetime
import uuid

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ChatHistory(Base):
    __tablename__ = "chat_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    category = Column(String, nullable=False, default="General")
    # serialized ChatMessage list
    messages = Column("messages_json", JSONB, nullable=False, default=list)
    created_at = Column(DateTime, default=datetime.datetime.utcnow, index=True)

    def __repr__(self):
        return f"<ChatHistory(title='{self.title}', category='{self.category}')>"
