import logging

from session_gateway.core.logging import TokenRedactingFilter, redact


def test_redact_masks_token_values() -> None:
    text = redact("refresh_token=1//0gabcdefghijk and Bearer ya29.a0AfH6SMBxyz")

    assert "1//0gabcdefghijk" not in text
    assert "ya29.a0AfH6SMBxyz" not in text
    assert "refresh_token=1/***jk" in text


def test_filter_rewrites_formatted_message() -> None:
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="payload access_token: %s",
        args=("secret-access-token",),
        exc_info=None,
    )

    assert TokenRedactingFilter().filter(record) is True
    assert "secret-access-token" not in record.getMessage()
    assert record.getMessage().startswith("payload access_token: se***")
