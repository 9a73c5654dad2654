"""
Input sanitization tests.
"""
import logging

import pytest

from security import (
    MAX_MESSAGE_LENGTH,
    is_valid_passcode,
    is_valid_room_key,
    log_security_event,
    sanitize_display_name,
    sanitize_input,
    sanitize_message,
)


def test_sanitize_input_escapes_and_truncates():
    assert sanitize_input("<script>", max_length=100) == "&lt;script&gt;"
    assert sanitize_input("a\x00b") == "ab"
    assert sanitize_input("abcdef", max_length=3) == "abc"
    assert sanitize_input("") == ""
    assert sanitize_input(None) == ""


@pytest.mark.parametrize("name, expected", [
    ("Bob", "Bob"),
    ("  Bob\n", "Bob"),
    ("Bo\x07b", "Bob"),
    ("line\nbreak", "line break"),
    (42, "Anonymous"),
    ("\x01\x02", "Anonymous"),
])
def test_sanitize_display_name(name, expected):
    assert sanitize_display_name(name) == expected


def test_sanitize_message_keeps_newlines():
    assert sanitize_message("one\ntwo") == "one\ntwo"
    assert sanitize_message(None) == ""
    assert len(sanitize_message("x" * (MAX_MESSAGE_LENGTH + 10))) == MAX_MESSAGE_LENGTH


def test_identifier_formats():
    assert is_valid_passcode("123456")
    assert is_valid_passcode(" 123456 ")
    assert not is_valid_passcode("12345")
    assert not is_valid_passcode(123456)
    assert is_valid_room_key("0123456789abcdef0123456789abcdef")
    assert not is_valid_room_key("0123456789ABCDEF0123456789ABCDEF")


def test_log_security_event(caplog):
    with caplog.at_level(logging.WARNING, logger="security"):
        log_security_event("invalid_join", {"passcode": "12****"})

    assert "SECURITY_EVENT: invalid_join" in caplog.text
