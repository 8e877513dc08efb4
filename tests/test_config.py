"""Tests for settings parsing and startup validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings, validate_startup_settings
from core.exceptions import ConfigurationError


def _settings(**values: object) -> Settings:
    return Settings(_env_file=None, **values)  # type: ignore[call-arg, arg-type]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("-1001,-1002", frozenset({-1001, -1002})),
        (" -1001 , ", frozenset({-1001})),
        ("[-1001, -1002]", frozenset({-1001, -1002})),
        ("", frozenset()),
        ([-5, "-6"], frozenset({-5, -6})),
        (-7, frozenset({-7})),
    ],
)
def test_allowed_chat_ids_formats(raw: object, expected: frozenset[int]) -> None:
    assert _settings(ALLOWED_CHAT_IDS=raw).allowed_chat_ids == expected


def test_allowed_chat_ids_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALLOWED_CHAT_IDS", "-1001,-1002")
    assert _settings().allowed_chat_ids == frozenset({-1001, -1002})


@pytest.mark.parametrize("raw", ["[1, 2", '{"a": 1}', "abc"])
def test_invalid_allowed_chat_ids(raw: str) -> None:
    with pytest.raises(ValidationError):
        _settings(ALLOWED_CHAT_IDS=raw)


def test_defaults() -> None:
    settings = _settings()
    assert settings.UPDATE_MODE == "polling"
    assert settings.SWEEP_INTERVAL_SECONDS == 5.0
    assert settings.SWEEP_BATCH_LIMIT == 50
    assert settings.AUTOMATIC_FORWARD_POLICY == "ignore"
    assert settings.FORWARDED_MESSAGE_POLICY == "retain"
    assert (settings.HTTP_HOST, settings.HTTP_PORT) == ("127.0.0.1", 8080)


def test_webhook_mode_requires_url() -> None:
    with pytest.raises(ValidationError, match="WEBHOOK_URL"):
        _settings(UPDATE_MODE="webhook")


@pytest.mark.parametrize(
    "field, value",
    [("SWEEP_INTERVAL_SECONDS", 0), ("SWEEP_BATCH_LIMIT", 0), ("HTTP_PORT", 0)],
)
def test_out_of_range_values_rejected(field: str, value: int) -> None:
    with pytest.raises(ValidationError):
        _settings(**{field: value})


def test_blank_token_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="TELEGRAM_BOT_TOKEN"):
        validate_startup_settings(_settings(TELEGRAM_BOT_TOKEN=" "))


def test_empty_allow_list_warns(caplog: pytest.LogCaptureFixture) -> None:
    validate_startup_settings(
        _settings(TELEGRAM_BOT_TOKEN="1:x", ALLOWED_CHAT_IDS="")
    )
    assert "ALLOWED_CHAT_IDS is empty; bot will ignore all chats." in caplog.text


def test_get_settings_rejects_unknown_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("ENVIRONMENT", "staging")
    get_settings.cache_clear()
    try:
        with pytest.raises(ValueError, match="ENVIRONMENT"):
            get_settings()
    finally:
        monkeypatch.undo()
        get_settings.cache_clear()
