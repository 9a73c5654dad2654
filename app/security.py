"""
Security utilities for Passchat.
Provides input sanitization, identifier format checks and security event logging.
"""
import html
import re
import logging

security_logger = logging.getLogger('security')

MAX_NAME_LENGTH = 50
MAX_MESSAGE_LENGTH = 5000

PASSCODE_PATTERN = re.compile(r'^\d{6}$')
ROOM_KEY_PATTERN = re.compile(r'^[0-9a-f]{32}$')

# Control characters other than tab and newline
CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b-\x1f\x7f]')


def sanitize_input(text: str, max_length: int = 1000) -> str:
    """
    Sanitize user input to prevent XSS and injection attacks.

    Args:
        text: Raw user input
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    # Truncate to max length
    text = text[:max_length]

    # HTML escape to prevent XSS
    text = html.escape(text)

    # Remove null bytes
    text = text.replace('\x00', '')

    return text


def sanitize_display_name(name, default: str = "Anonymous") -> str:
    """
    Clean a display name, falling back to `default` when nothing usable is left.

    Names are single-line: control characters are dropped and
    surrounding whitespace trimmed before escaping.
    """
    if not isinstance(name, str):
        return default
    name = CONTROL_CHARS.sub('', name).replace('\n', ' ').replace('\t', ' ').strip()
    return sanitize_input(name, max_length=MAX_NAME_LENGTH) or default


def sanitize_message(message) -> str:
    if not isinstance(message, str):
        return ""
    return sanitize_input(message, max_length=MAX_MESSAGE_LENGTH)


def is_valid_passcode(passcode) -> bool:
    return isinstance(passcode, str) and bool(PASSCODE_PATTERN.match(passcode.strip()))


def is_valid_room_key(room_key) -> bool:
    return isinstance(room_key, str) and bool(ROOM_KEY_PATTERN.match(room_key))


def log_security_event(event_type: str, details: dict):
    """Log a security-relevant event."""
    security_logger.warning(f"SECURITY_EVENT: {event_type} - {details}")
