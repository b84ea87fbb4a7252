from __future__ import annotations

import os

import pytest

from todochain.ledger.address import encode_address, encode_signature, parse_address
from todochain.ledger.errors import InvalidHandle


def test_roundtrip_random_addresses() -> None:
    for _ in range(50):
        raw = os.urandom(32)
        s = encode_address(raw)
        assert len(s) <= 44
        assert parse_address(s) == raw
        assert encode_address(parse_address(s)) == s


def test_system_program_address() -> None:
    assert parse_address("11111111111111111111111111111111") == bytes(32)


def test_surrounding_whitespace_is_rejected() -> None:
    handle = encode_address(os.urandom(32))
    for padded in (f" {handle}", f"{handle} ", f"{handle}\n", f"\t{handle}"):
        with pytest.raises(InvalidHandle):
            parse_address(padded)


@pytest.mark.parametrize(
    "bad",
    [
        "",
        "   ",
        "SomeTaskID",  # valid base58 alphabet, wrong length
        "not-a-key!",
        "0OIl0OIl0OIl0OIl0OIl0OIl0OIl0OIl",  # characters outside base58
        "1" * 45,
        "ключ",
    ],
)
def test_invalid_handles(bad: str) -> None:
    with pytest.raises(InvalidHandle) as ei:
        parse_address(bad)
    assert ei.value.code == "invalid_handle"


def test_non_string_handle() -> None:
    with pytest.raises(InvalidHandle):
        parse_address(123)  # type: ignore[arg-type]


def test_encode_rejects_wrong_lengths() -> None:
    with pytest.raises(ValueError):
        encode_address(b"\x00" * 31)
    with pytest.raises(ValueError):
        encode_signature(b"\x00" * 32)
