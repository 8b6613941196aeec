import logging

from tgdispatch.logging import RedactTokenFilter, redact_text, redact_token_processor


def _record(msg: str, args: tuple = ()) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=args,
        exc_info=None,
    )


class TestRedactTokenFilter:
    def test_redacts_file_url_token(self) -> None:
        record = _record(
            "https://api.telegram.org/file/bot123456789:ABCdefGHI_jkl/photos/1.jpg"
        )

        RedactTokenFilter().filter(record)

        assert "123456789" not in record.getMessage()
        assert "bot[REDACTED]" in record.getMessage()

    def test_redacts_formatted_args(self) -> None:
        record = _record("webhook set to %s", ("/telegram/bot42:ABCDEFGHIJ_klmnop",))

        assert RedactTokenFilter().filter(record) is True
        assert record.getMessage() == "webhook set to /telegram/bot[REDACTED]"
        assert record.args == ()

    def test_clean_message_unchanged(self) -> None:
        record = _record("dispatch.event %s", ("text",))

        RedactTokenFilter().filter(record)

        assert record.getMessage() == "dispatch.event text"
        assert record.args == ("text",)

    def test_bad_format_args_pass_through(self) -> None:
        record = _record("value %d", ("not a number",))

        assert RedactTokenFilter().filter(record) is True


def test_redact_bare_token() -> None:
    assert redact_text("token 123456789:ABCDEFGHIJ_klmnop") == (
        "token [REDACTED_TOKEN]"
    )


def test_processor_redacts_string_fields() -> None:
    event = {
        "event": "telegram.network_error",
        "url": "https://api.telegram.org/bot123:abcdefghijkl/getFile",
        "status": 500,
    }

    result = redact_token_processor(None, "error", event)

    assert result["url"] == "https://api.telegram.org/bot[REDACTED]/getFile"
    assert result["status"] == 500
    assert result["event"] == "telegram.network_error"
