"""
Network-free fallback parser for common chat-log line shapes.

Lossy by design: lines that fit none of the patterns are dropped.
"""

import re
from typing import List

from chat_parser.models import ExtractedMessage


# Tried in order, first match wins.
BRACKETED_TIMESTAMP = re.compile(r"^\[([^\]]+)\]\s*([^:]+):\s*(.*)$")
LEADING_TOKEN_TIMESTAMP = re.compile(r"^(\S+)\s+([^:]+):\s*(.*)$")
SENDER_ONLY = re.compile(r"^([^:]+):\s*(.*)$")


def parse_line(line: str) -> ExtractedMessage | None:
    line = line.strip()
    if not line:
        return None

    match = BRACKETED_TIMESTAMP.match(line)
    if match:
        timestamp, sender, message = match.groups()
        return ExtractedMessage(
            sender=sender.strip(), timestamp=timestamp.strip(), message=message.strip()
        )

    match = LEADING_TOKEN_TIMESTAMP.match(line)
    if match:
        timestamp, sender, message = match.groups()
        return ExtractedMessage(
            sender=sender.strip(), timestamp=timestamp, message=message.strip()
        )

    match = SENDER_ONLY.match(line)
    if match:
        sender, message = match.groups()
        return ExtractedMessage(
            sender=sender.strip(), timestamp="Unknown", message=message.strip()
        )

    return None


def parse_chat_lines(text: str) -> List[ExtractedMessage]:
    """Parse every line of `text`, preserving line order."""
    messages = []
    for line in text.splitlines():
        parsed = parse_line(line)
        if parsed is not None:
            messages.append(parsed)
    return messages
