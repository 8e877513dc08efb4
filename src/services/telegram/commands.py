"""Parsing and reply texts for the retention policy commands."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


# Values must fit the Bot API's 32-bit integer range.
MAX_COMMAND_VALUE = 2**31 - 1

NOT_ADMIN_REPLY = "Only group admins can change auto-delete settings."


class CommandKind(StrEnum):
    AUTODELETE = "/autodelete"
    MAX_MESSAGES = "/deletemaxmessages"


USAGE_REPLIES: dict[CommandKind, str] = {
    CommandKind.AUTODELETE: (
        "Usage: `/autodelete <minutes>` (use 0 to disable for this topic)"
    ),
    CommandKind.MAX_MESSAGES: (
        "Usage: `/deletemaxmessages <max messages>` (use 0 to disable for this topic)"
    ),
}


@dataclass(frozen=True, slots=True)
class ParsedCommand:
    kind: CommandKind
    # None when the argument is missing, not an integer, or out of range
    value: int | None

    @property
    def is_valid(self) -> bool:
        return self.value is not None

    @property
    def usage(self) -> str:
        return USAGE_REPLIES[self.kind]


def _parse_value(raw: str) -> int | None:
    # Plain ASCII digits with an optional sign; int() alone also takes "1_0"
    # and non-ASCII digits.
    digits = raw[1:] if raw[:1] in "+-" else raw
    if not (digits.isascii() and digits.isdigit()):
        return None
    value = int(raw)
    if value < 0 or value > MAX_COMMAND_VALUE:
        return None
    return value


def parse_command(text: str, bot_username: str | None = None) -> ParsedCommand | None:
    """Parse a retention command, or return None if ``text`` is not one.

    ``/cmd@name`` forms are accepted only when ``name`` is this bot.
    """
    parts = text.strip().split()
    if not parts:
        return None

    name, _, mention = parts[0].lower().partition("@")
    if mention and bot_username and mention != bot_username.lower():
        return None

    try:
        kind = CommandKind(name)
    except ValueError:
        return None

    value = _parse_value(parts[1]) if len(parts) >= 2 else None
    return ParsedCommand(kind=kind, value=value)


def render_confirmation(kind: CommandKind, value: int) -> str:
    if kind is CommandKind.AUTODELETE:
        if value == 0:
            return "Auto-delete disabled for this topic."
        return f"Auto-delete set to *{value} minute(s)* for this topic."

    if value == 0:
        return "Auto-delete Messages disabled for this topic."
    return f"Auto-delete set to *{value} message(s)* for this topic."
