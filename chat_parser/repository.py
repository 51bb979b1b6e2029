from typing import Iterable, List, Optional
from sqlmodel import select

from chat_parser.db import Database
from chat_parser.models import ChatMessage, ExtractedMessage, utcnow


SORT_OPTIONS = ("newest", "oldest", "sender")


def insert_messages(
    db: Database, messages: Iterable[ExtractedMessage]
) -> List[ChatMessage]:
    """
    Insert one upload's messages as a single batch.

    Every row in the batch shares the same `created_at`. Returns the stored
    rows in input order with their ids populated.
    """
    created_at = utcnow()
    rows = [
        ChatMessage(
            sender=m.sender,
            timestamp=m.timestamp,
            message=m.message,
            created_at=created_at,
        )
        for m in messages
    ]

    with db.get_session() as session:
        session.add_all(rows)
        session.commit()
        for row in rows:
            session.refresh(row)

    return rows


def get_messages(db: Database, sender: Optional[str] = None) -> List[ChatMessage]:
    """
    Return stored messages, newest first, optionally for one sender.
    """
    statement = select(ChatMessage)
    if sender:
        statement = statement.where(ChatMessage.sender == sender)
    statement = statement.order_by(
        ChatMessage.created_at.desc(), ChatMessage.id.desc()
    )

    with db.get_session() as session:
        return list(session.exec(statement).all())


def get_senders(messages: Iterable[ChatMessage]) -> List[str]:
    """Distinct known senders, in first-seen order."""
    seen = []
    for m in messages:
        if m.sender != "Unknown" and m.sender not in seen:
            seen.append(m.sender)
    return seen


def filter_messages(
    messages: List[ChatMessage],
    search: str = "",
    sender: str = "",
    sort_by: str = "newest",
) -> List[ChatMessage]:
    """
    Case-insensitive text search over message and sender, exact sender
    filter, then sort ("newest", "oldest" or "sender").
    """
    if sort_by not in SORT_OPTIONS:
        raise ValueError(f"Unknown sort option: {sort_by}")

    result = messages
    if search:
        needle = search.lower()
        result = [
            m for m in result
            if needle in m.message.lower() or needle in m.sender.lower()
        ]
    if sender:
        result = [m for m in result if m.sender == sender]

    if sort_by == "sender":
        return sorted(result, key=lambda m: m.sender.lower())
    return sorted(
        result,
        key=lambda m: (m.created_at, m.id or 0),
        reverse=(sort_by == "newest"),
    )
