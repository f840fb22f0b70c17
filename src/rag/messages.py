from __future__ import annotations

"""Chat message model supporting plain and multi-part content."""

from dataclasses import dataclass, field
from typing import Any, Sequence, Union


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class OtherPart:
    """Non-text part (image, file, tool call); carries no query text."""
    kind: str


Part = Union[TextPart, OtherPart]


@dataclass(frozen=True)
class PlainContent:
    text: str


@dataclass(frozen=True)
class PartedContent:
    parts: list[Part] = field(default_factory=list)


MessageContent = Union[PlainContent, PartedContent]


@dataclass(frozen=True)
class ChatMessage:
    """Role-tagged message in a conversation."""
    role: str
    content: MessageContent

    def to_wire(self) -> dict[str, str]:
        """Return the role/content pair sent to generation APIs."""
        return {"role": self.role, "content": message_text(self)}


def message_text(message: ChatMessage) -> str:
    """Return the text of a message, joining text parts with a space."""
    content = message.content
    if isinstance(content, PlainContent):
        return content.text
    return " ".join(
        part.text for part in content.parts if isinstance(part, TextPart) and part.text
    )


def latest_user_query(messages: Sequence[ChatMessage]) -> str:
    """Return the stripped text of the most recent user message."""
    for message in reversed(messages):
        if message.role == "user":
            return message_text(message).strip()
    return ""


def _parse_part(payload: Any) -> Part:
    """Only parts explicitly typed as text carry message text."""
    if isinstance(payload, dict) and payload.get("type") == "text":
        text = payload.get("text")
        if isinstance(text, str):
            return TextPart(text=text)
    kind = payload.get("type", "unknown") if isinstance(payload, dict) else "unknown"
    return OtherPart(kind=str(kind))


def parse_message(payload: dict[str, Any]) -> ChatMessage:
    """Build a ChatMessage from a wire payload.

    A ``parts`` list takes precedence over a ``content`` string.
    """
    role = str(payload.get("role") or "user").strip().lower()
    parts = payload.get("parts")
    if isinstance(parts, list):
        return ChatMessage(
            role=role,
            content=PartedContent(parts=[_parse_part(part) for part in parts]),
        )
    content = payload.get("content")
    if isinstance(content, list):
        return ChatMessage(
            role=role,
            content=PartedContent(parts=[_parse_part(part) for part in content]),
        )
    text = content if isinstance(content, str) else ""
    return ChatMessage(role=role, content=PlainContent(text=text))
