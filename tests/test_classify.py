import re

from tgdispatch.registry import PatternRule
from tgdispatch.telegram.classify import classify, classify_update
from tgdispatch.telegram.normalize import normalize_update


def _noop(bot, message) -> None:
    _ = bot
    _ = message


def _text(text: str, **extra) -> dict:
    return {
        "chat": {"id": 1, "type": "private"},
        "from": {"id": 1},
        "text": text,
        **extra,
    }


def test_pattern_rule_wins_over_structural_events() -> None:
    rule = PatternRule(pattern=re.compile(r"^/(ping)$"), handler=_noop)
    message = _text(
        "/ping",
        entities=[{"type": "bot_command", "offset": 0, "length": 5}],
        reply_to_message={"message_id": 3},
    )

    event = classify(message, update_kind="message", content_type="text", rules=[rule])

    assert event == "/^/(ping)$/"


def test_pattern_rule_wins_over_edit() -> None:
    rule = PatternRule(pattern=re.compile(r"hello", re.IGNORECASE), handler=_noop)

    event = classify(
        _text("Hello there"),
        update_kind="edited_message",
        content_type="text",
        rules=[rule],
    )

    assert event == "/hello/i"


def test_first_matching_rule_wins() -> None:
    first = PatternRule(pattern=re.compile(r"a"), handler=_noop, name="first")
    second = PatternRule(pattern=re.compile(r"ab"), handler=_noop, name="second")

    event = classify(
        _text("abc"), update_kind="message", content_type="text", rules=[first, second]
    )

    assert event == "first"


def test_edited_text() -> None:
    event = classify(_text("fixed"), update_kind="edited_message", content_type="text")

    assert event == "edited_message_text"


def test_reply_before_entities() -> None:
    message = _text(
        "@bot yes",
        reply_to_message={"message_id": 10, "text": "question"},
        entities=[{"type": "mention", "offset": 0, "length": 4}],
    )

    assert (
        classify(message, update_kind="message", content_type="text")
        == "reply_to_message"
    )


def test_mention_before_bot_command() -> None:
    message = _text(
        "@bot /start",
        entities=[
            {"type": "bot_command", "offset": 5, "length": 6},
            {"type": "mention", "offset": 0, "length": 4},
        ],
    )

    assert classify(message, update_kind="message", content_type="text") == "mention"


def test_bot_command() -> None:
    message = _text("/start", entities=[{"type": "bot_command", "length": 6}])

    assert (
        classify(message, update_kind="message", content_type="text") == "bot_command"
    )


def test_plain_text_falls_back_to_text() -> None:
    assert classify(_text("hi"), update_kind="message", content_type="text") == "text"


def test_auth_by_contact_when_sharing_own_number() -> None:
    message = {
        "chat": {"id": 7, "type": "private"},
        "from": {"id": 7, "is_bot": False},
        "contact": {"phone_number": "+1", "user_id": 7},
    }

    assert (
        classify(message, update_kind="message", content_type="contact")
        == "auth_by_contact"
    )


def test_foreign_contact() -> None:
    message = {
        "chat": {"id": 7, "type": "private"},
        "from": {"id": 7},
        "contact": {"phone_number": "+1", "user_id": 8},
    }

    assert classify(message, update_kind="message", content_type="contact") == "contact"


def test_contact_from_bot_is_not_auth() -> None:
    message = {
        "chat": {"id": 7},
        "from": {"id": 7, "is_bot": True},
        "contact": {"phone_number": "+1", "user_id": 7},
    }

    assert classify(message, update_kind="message", content_type="contact") == "contact"


def test_other_content_types_pass_through() -> None:
    rule = PatternRule(pattern=re.compile(r".*"), handler=_noop)

    event = classify(
        {"chat": {"id": 1}, "sticker": {"file_id": "s"}},
        update_kind="message",
        content_type="sticker",
        rules=[rule],
    )

    assert event == "sticker"


def test_classify_update_uses_normalized_fields() -> None:
    update = normalize_update({"edited_message": _text("again")})

    assert classify_update(update) == "edited_message_text"
