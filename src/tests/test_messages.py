from __future__ import annotations

from src.rag.messages import (
    ChatMessage,
    OtherPart,
    PartedContent,
    PlainContent,
    TextPart,
    latest_user_query,
    message_text,
    parse_message,
)


def test_plain_content_text() -> None:
    message = ChatMessage(role="user", content=PlainContent(text="When is rent due?"))
    assert message_text(message) == "When is rent due?"


def test_parted_content_joins_text_parts() -> None:
    message = ChatMessage(
        role="user",
        content=PartedContent(
            parts=[TextPart(text="When is"), OtherPart(kind="image"), TextPart(text="rent due?")]
        ),
    )
    assert message_text(message) == "When is rent due?"


def test_latest_user_query_skips_assistant_turns() -> None:
    messages = [
        ChatMessage(role="user", content=PlainContent(text="First question")),
        ChatMessage(role="assistant", content=PlainContent(text="An answer")),
        ChatMessage(role="user", content=PlainContent(text="  Follow up?  ")),
        ChatMessage(role="assistant", content=PlainContent(text="Partial")),
    ]
    assert latest_user_query(messages) == "Follow up?"


def test_latest_user_query_without_user_message() -> None:
    assert latest_user_query([]) == ""
    assert latest_user_query([ChatMessage(role="assistant", content=PlainContent(text="hi"))]) == ""


def test_parse_message_prefers_parts() -> None:
    message = parse_message(
        {
            "role": "user",
            "content": "ignored",
            "parts": [{"type": "text", "text": "Who is the defendant?"}, {"type": "file"}],
        }
    )

    assert isinstance(message.content, PartedContent)
    assert message.content.parts[1] == OtherPart(kind="file")
    assert message_text(message) == "Who is the defendant?"


def test_parse_message_with_string_content() -> None:
    message = parse_message({"role": "Assistant", "content": "Sure."})

    assert message.role == "assistant"
    assert message.content == PlainContent(text="Sure.")
    assert message.to_wire() == {"role": "assistant", "content": "Sure."}


def test_parse_message_with_list_content() -> None:
    message = parse_message({"role": "user", "content": [{"type": "text", "text": "Deadline?"}]})

    assert message_text(message) == "Deadline?"


def test_parse_message_missing_content_is_empty() -> None:
    message = parse_message({"role": "user"})

    assert message_text(message) == ""


def test_untyped_parts_carry_no_text() -> None:
    message = parse_message(
        {
            "role": "user",
            "parts": [{"text": "Untyped"}, "bare string", {"type": "text", "text": "Typed"}],
        }
    )

    assert message.content.parts[0] == OtherPart(kind="unknown")
    assert message.content.parts[1] == OtherPart(kind="unknown")
    assert message_text(message) == "Typed"
