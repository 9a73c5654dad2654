"""
Cryptographically secure passcode and room key generation.
"""
import secrets
from typing import Container

PASSCODE_MIN = 100000
PASSCODE_MAX = 999999
ROOM_KEY_BYTES = 16
MAX_PASSCODE_ATTEMPTS = 100


class PasscodeSpaceExhausted(RuntimeError):
    """No free passcode could be found within the attempt cap."""


def generate_passcode() -> str:
    """
    Generate a 6-digit numeric passcode.

    Uses the `secrets` module so passcodes can't be predicted from
    earlier ones.

    Returns:
        str: A code like "482913" (always 6 digits, never a leading zero)
    """
    return str(PASSCODE_MIN + secrets.randbelow(PASSCODE_MAX - PASSCODE_MIN + 1))


def generate_room_key() -> str:
    """Generate a 128-bit room key as 32 lowercase hex characters."""
    return secrets.token_hex(ROOM_KEY_BYTES)


def ensure_unique_passcode(taken: Container[str], max_attempts: int = MAX_PASSCODE_ATTEMPTS) -> str:
    """
    Generate a passcode that is not already in use.

    Args:
        taken: Passcodes of the rooms that are currently live
        max_attempts: Samples to draw before giving up

    Returns:
        str: A passcode not contained in `taken`

    Raises:
        PasscodeSpaceExhausted: If every sample collided
    """
    for _ in range(max_attempts):
        passcode = generate_passcode()
        if passcode not in taken:
            return passcode
    raise PasscodeSpaceExhausted(f"Failed to generate unique passcode after {max_attempts} attempts")
