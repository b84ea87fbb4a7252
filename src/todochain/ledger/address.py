from __future__ import annotations

"""Base58 addresses (32-byte public keys) used as task handles."""

from typing import Final

import base58

from todochain.ledger.errors import InvalidHandle

PUBKEY_LEN: Final[int] = 32
SIGNATURE_LEN: Final[int] = 64

# Longest base58 rendering of 32 bytes.
_MAX_ADDRESS_CHARS: Final[int] = 44

SYSTEM_PROGRAM_ID: Final[bytes] = bytes(PUBKEY_LEN)

# SPL Memo v2.
MEMO_PROGRAM_ID: Final[bytes] = base58.b58decode("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")


def encode_address(raw: bytes) -> str:
    if len(raw) != PUBKEY_LEN:
        raise ValueError(f"address must be {PUBKEY_LEN} bytes; got {len(raw)}")
    return base58.b58encode(bytes(raw)).decode("ascii")


def parse_address(s: str) -> bytes:
    """Parse a base58 address into its 32 raw bytes.

    Raises InvalidHandle for anything that would not round-trip.
    """
    if not isinstance(s, str):
        raise InvalidHandle(None, f"handle must be a string, got {type(s).__name__}")
    if not s:
        raise InvalidHandle(None, "handle is empty")
    if s != s.strip():
        raise InvalidHandle(None, f"handle has surrounding whitespace: {s!r}")
    if len(s) > _MAX_ADDRESS_CHARS:
        raise InvalidHandle(None, f"handle too long: {len(s)} chars")
    try:
        raw = base58.b58decode(s)
    except ValueError as e:
        raise InvalidHandle(None, f"handle is not base58: {s!r}") from e
    if len(raw) != PUBKEY_LEN:
        raise InvalidHandle(None, f"handle must decode to {PUBKEY_LEN} bytes; got {len(raw)}")
    return raw


def encode_signature(raw: bytes) -> str:
    if len(raw) != SIGNATURE_LEN:
        raise ValueError(f"signature must be {SIGNATURE_LEN} bytes; got {len(raw)}")
    return base58.b58encode(bytes(raw)).decode("ascii")


def decode_blockhash(s: str) -> bytes:
    raw = base58.b58decode(str(s).strip())
    if len(raw) != 32:
        raise ValueError(f"blockhash must decode to 32 bytes; got {len(raw)}")
    return raw
