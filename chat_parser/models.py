from datetime import datetime, timezone
from sqlalchemy import Index
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExtractedMessage(SQLModel):
    """
    One message as produced by the extraction pipeline (not yet persisted).
    """
    sender: str = "Unknown"
    timestamp: str = "Unknown"
    message: str = ""


class ChatMessage(SQLModel, table=True):
    """
    Chat message stored in Postgres.
    """
    __tablename__ = "chat_messages"

    id: int | None = Field(default=None, primary_key=True)
    sender: str = Field(index=True)
    timestamp: str                   # free text, stored as extracted
    message: str
    created_at: datetime = Field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sender": self.sender,
            "timestamp": self.timestamp,
            "message": self.message,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


# Newest-first listing is the only read path.
Index("ix_chat_messages_created_at_desc", ChatMessage.created_at.desc())
