from __future__ import annotations

"""Fixed-layout binary codec for task records stored in ledger accounts.

Layout (little-endian, length-prefixed text, zero padded to TASK_LEN):

  discriminator  8
  author        32
  is_done        1
  text           4 + n   (n <= TEXT_CAPACITY_BYTES)
  created_at     8   i64
  updated_at     8   i64
  padding            up to TASK_LEN

Storage for a record is always allocated with TASK_LEN bytes, so the
reserved text budget is paid for up front regardless of the actual text.
"""

import hashlib
import struct
from dataclasses import dataclass
from typing import Final

from todochain.ledger.address import PUBKEY_LEN, encode_address
from todochain.ledger.errors import DecodeError, FieldTooLarge

DISCRIMINATOR_LEN: Final[int] = 8
BOOL_LEN: Final[int] = 1
TEXT_MAX_CHARS: Final[int] = 400
TEXT_CAPACITY_BYTES: Final[int] = TEXT_MAX_CHARS * 4
TEXT_LEN: Final[int] = 4 + TEXT_CAPACITY_BYTES
TIMESTAMP_LEN: Final[int] = 8

TASK_LEN: Final[int] = DISCRIMINATOR_LEN + PUBKEY_LEN + BOOL_LEN + TEXT_LEN + TIMESTAMP_LEN + TIMESTAMP_LEN

# Smallest buffer that can hold a record with empty text.
MIN_RECORD_LEN: Final[int] = DISCRIMINATOR_LEN + PUBKEY_LEN + BOOL_LEN + 4 + TIMESTAMP_LEN + TIMESTAMP_LEN

TASK_DISCRIMINATOR: Final[bytes] = hashlib.sha256(b"account:Task").digest()[:DISCRIMINATOR_LEN]

_U32 = struct.Struct("<I")
_TIMESTAMPS = struct.Struct("<qq")


@dataclass(frozen=True)
class TaskRecord:
    author: bytes
    is_done: bool
    text: str
    created_at: int
    updated_at: int

    @property
    def author_address(self) -> str:
        return encode_address(self.author)

    def to_json(self) -> dict:
        return {
            "author": self.author_address,
            "is_done": bool(self.is_done),
            "text": self.text,
            "created_at": int(self.created_at),
            "updated_at": int(self.updated_at),
        }


def encode_text(text: str) -> bytes:
    """UTF-8 encode text, refusing anything over the reserved capacity."""
    raw = str(text).encode("utf-8")
    if len(raw) > TEXT_CAPACITY_BYTES:
        raise FieldTooLarge("text", len(raw), TEXT_CAPACITY_BYTES)
    return raw


def encode_task(rec: TaskRecord) -> bytes:
    if len(rec.author) != PUBKEY_LEN:
        raise ValueError(f"author must be {PUBKEY_LEN} bytes; got {len(rec.author)}")
    text_b = encode_text(rec.text)

    buf = bytearray(TASK_LEN)
    off = 0
    buf[off : off + DISCRIMINATOR_LEN] = TASK_DISCRIMINATOR
    off += DISCRIMINATOR_LEN
    buf[off : off + PUBKEY_LEN] = rec.author
    off += PUBKEY_LEN
    buf[off] = 1 if rec.is_done else 0
    off += BOOL_LEN
    _U32.pack_into(buf, off, len(text_b))
    off += 4
    buf[off : off + len(text_b)] = text_b
    off += len(text_b)
    try:
        _TIMESTAMPS.pack_into(buf, off, int(rec.created_at), int(rec.updated_at))
    except struct.error as e:
        raise ValueError(f"timestamps must fit in i64: {e}") from e
    return bytes(buf)


def decode_task(data: bytes) -> TaskRecord:
    """Decode a record from raw account bytes.

    Bytes past TASK_LEN are ignored so larger slots still decode.
    """
    buf = bytes(data[: min(TASK_LEN, len(data))])
    if len(buf) < MIN_RECORD_LEN:
        raise DecodeError("truncated", f"buffer is {len(buf)} bytes; need at least {MIN_RECORD_LEN}")

    off = 0
    disc = buf[off : off + DISCRIMINATOR_LEN]
    if disc != TASK_DISCRIMINATOR:
        if disc == bytes(DISCRIMINATOR_LEN):
            raise DecodeError("uninitialized", "account storage has not been initialized as a task")
        raise DecodeError("bad_discriminator", f"unexpected account discriminator {disc.hex()}")
    off += DISCRIMINATOR_LEN

    author = buf[off : off + PUBKEY_LEN]
    off += PUBKEY_LEN

    flag = buf[off]
    if flag not in (0, 1):
        raise DecodeError("bad_bool", f"is_done byte must be 0 or 1; got {flag}")
    off += BOOL_LEN

    (n,) = _U32.unpack_from(buf, off)
    off += 4
    if n > TEXT_CAPACITY_BYTES:
        raise DecodeError("text_too_long", f"text length {n} exceeds capacity {TEXT_CAPACITY_BYTES}")
    if off + n + _TIMESTAMPS.size > len(buf):
        raise DecodeError("truncated", f"buffer is {len(buf)} bytes; record needs {off + n + _TIMESTAMPS.size}")
    try:
        text = buf[off : off + n].decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError("invalid_utf8", f"text is not valid utf-8: {e}") from e
    off += n

    created_at, updated_at = _TIMESTAMPS.unpack_from(buf, off)
    return TaskRecord(
        author=author,
        is_done=bool(flag),
        text=text,
        created_at=created_at,
        updated_at=updated_at,
    )
