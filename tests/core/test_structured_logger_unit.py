import logging

import pytest

from core.error_handler import StructuredLogger, get_correlation_id, set_correlation_id
from core.security_config import is_sensitive_key, mask_token


TOKEN = "123456:TEST-token-not-real-abcdefghij"


def test_structured_logger_redacts_sensitive_keys():
    logger = StructuredLogger("tests")

    # use non-sensitive placeholder values to avoid secret-detection false positives
    data = {
        "bot_token": "placeholder_token",  # pragma: allowlist secret
        "webhook_secret": "placeholder_secret",  # pragma: allowlist secret
        "text": "private message body",
        "chat_id": -100,
    }
    sanitized = logger._sanitize_data(data)

    assert sanitized["bot_token"] == "[REDACTED]"
    assert sanitized["webhook_secret"] == "[REDACTED]"
    assert sanitized["text"] == "[REDACTED]"
    assert sanitized["chat_id"] == -100


def test_structured_logger_masks_tokens_in_nested_values():
    logger = StructuredLogger("tests")

    sanitized = logger._sanitize_data(
        {"error": f"POST https://api.telegram.org/bot{TOKEN}/getMe failed",
         "attempts": [{"url": f"/bot{TOKEN}/"}]}
    )

    assert TOKEN not in str(sanitized)
    assert "[REDACTED]" in sanitized["error"]
    assert sanitized["attempts"][0]["url"] == "/bot[REDACTED]/"


def test_structured_logger_prefixes_correlation_id(caplog: pytest.LogCaptureFixture):
    logger = StructuredLogger("tests")
    set_correlation_id("update:42")
    try:
        with caplog.at_level(logging.INFO, logger="tests"):
            logger.info("Handled update", chat_id=-100)
    finally:
        set_correlation_id(None)

    assert "[update:42] Handled update (chat_id=-100)" in caplog.text


def test_correlation_id_is_generated_when_unset():
    set_correlation_id(None)
    generated = get_correlation_id()
    assert generated
    assert get_correlation_id() == generated
    set_correlation_id(None)


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        ("TELEGRAM_BOT_TOKEN", True),
        ("X-Telegram-Bot-Api-Secret-Token", True),
        ("caption", True),
        ("chat_id", False),
        ("message_id", False),
    ],
)
def test_is_sensitive_key(key: str, expected: bool):
    assert is_sensitive_key(key) is expected


def test_mask_token_with_explicit_token():
    assert mask_token("abc secret-value def", token="secret-value") == "abc [REDACTED] def"
