"""
Passcode and room key generation tests.
"""
import re

import pytest

from utils import code_generator
from utils.code_generator import (
    PasscodeSpaceExhausted,
    ensure_unique_passcode,
    generate_passcode,
    generate_room_key,
)


def test_passcode_is_six_digits_in_range():
    for _ in range(500):
        passcode = generate_passcode()
        assert re.fullmatch(r"[1-9]\d{5}", passcode)
        assert 100000 <= int(passcode) <= 999999


def test_room_key_is_32_lowercase_hex():
    keys = {generate_room_key() for _ in range(100)}
    assert len(keys) == 100
    for key in keys:
        assert re.fullmatch(r"[0-9a-f]{32}", key)


def test_ensure_unique_passcode_skips_taken(monkeypatch):
    samples = iter(["111111", "222222", "333333"])
    monkeypatch.setattr(code_generator, "generate_passcode", lambda: next(samples))

    assert ensure_unique_passcode({"111111", "222222"}) == "333333"


def test_ensure_unique_passcode_gives_up(monkeypatch):
    calls = []

    def always_taken():
        calls.append(1)
        return "111111"

    monkeypatch.setattr(code_generator, "generate_passcode", always_taken)

    with pytest.raises(PasscodeSpaceExhausted):
        ensure_unique_passcode({"111111"}, max_attempts=5)
    assert len(calls) == 5
