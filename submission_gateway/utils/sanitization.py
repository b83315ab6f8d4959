import re
from collections.abc import Mapping
from typing import Any

DEFAULT_MAX_LENGTH = 10000

_ANGLE_BRACKETS = re.compile(r"[<>]")
_JAVASCRIPT_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)


def sanitize_string(value: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """
    Strip markup-like content from a free-text field.

    Removes angle brackets, ``javascript:`` and ``on<event>=`` fragments, trims
    whitespace and truncates. Removal is repeated until the text stops
    changing, since deleting one fragment can join the pieces of another.

    This is a denylist filter, not an HTML sanitizer: it keeps form input inert
    in the places this service echoes it (chat messages, emails, webhooks) but
    it does not make arbitrary markup safe.
    """
    previous = None
    while previous != value:
        previous = value
        value = _ANGLE_BRACKETS.sub("", value)
        value = _JAVASCRIPT_PROTOCOL.sub("", value)
        value = _EVENT_HANDLER.sub("", value)

    return value.strip()[:max_length].strip()


def sanitize(value: Any, max_length: int = DEFAULT_MAX_LENGTH) -> Any:
    """
    Recursively sanitize strings inside lists and mappings.

    Other values (numbers, booleans, None) pass through unchanged.
    """
    if isinstance(value, str):
        return sanitize_string(value, max_length)
    if isinstance(value, (list, tuple)):
        return [sanitize(item, max_length) for item in value]
    if isinstance(value, Mapping):
        return {key: sanitize(item, max_length) for key, item in value.items()}
    return value
