from __future__ import annotations

import struct

import pytest

from todochain.ledger.codec import (
    MIN_RECORD_LEN,
    TASK_DISCRIMINATOR,
    TASK_LEN,
    TEXT_CAPACITY_BYTES,
    TaskRecord,
    decode_task,
    encode_task,
)
from todochain.ledger.errors import DecodeError, FieldTooLarge


def _rec(text: str = "Buy milk", **kw) -> TaskRecord:
    base = dict(author=bytes(range(32)), is_done=False, text=text, created_at=1_700_000_000, updated_at=1_700_000_123)
    base.update(kw)
    return TaskRecord(**base)


def test_task_len_matches_layout() -> None:
    assert TASK_LEN == 8 + 32 + 1 + (4 + 400 * 4) + 8 + 8 == 1661
    assert MIN_RECORD_LEN == 61


@pytest.mark.parametrize(
    "rec",
    [
        _rec(),
        _rec("", is_done=True),
        _rec("naïve café ☕ 任务"),
        _rec("\U0001d11e" * 400),  # 4-byte chars filling the whole budget
        _rec("x", created_at=-1, updated_at=-(2**63)),
        _rec("y", created_at=2**63 - 1, updated_at=0),
    ],
)
def test_roundtrip(rec: TaskRecord) -> None:
    raw = encode_task(rec)
    assert len(raw) == TASK_LEN
    assert decode_task(raw) == rec


def test_encoded_field_offsets() -> None:
    rec = _rec("hi", is_done=True)
    raw = encode_task(rec)

    assert raw[0:8] == TASK_DISCRIMINATOR
    assert raw[8:40] == rec.author
    assert raw[40] == 1
    assert struct.unpack_from("<I", raw, 41)[0] == 2
    assert raw[45:47] == b"hi"
    assert struct.unpack_from("<qq", raw, 47) == (rec.created_at, rec.updated_at)
    assert raw[63:] == bytes(TASK_LEN - 63)


def test_text_over_capacity_is_rejected_not_truncated() -> None:
    with pytest.raises(FieldTooLarge) as ei:
        encode_task(_rec("a" * (TEXT_CAPACITY_BYTES + 1)))
    assert ei.value.size == TEXT_CAPACITY_BYTES + 1
    assert ei.value.capacity == TEXT_CAPACITY_BYTES
    assert ei.value.code == "field_too_large"

    # 401 four-byte characters overflow even though 400 fit.
    with pytest.raises(FieldTooLarge):
        encode_task(_rec("\U0001d11e" * 401))


def test_short_buffer_fails() -> None:
    raw = encode_task(_rec(""))
    for n in (0, 1, 8, 40, MIN_RECORD_LEN - 1):
        with pytest.raises(DecodeError) as ei:
            decode_task(raw[:n])
        assert ei.value.code == "truncated"


def test_buffer_cut_inside_text_fails() -> None:
    raw = encode_task(_rec("hello"))
    with pytest.raises(DecodeError) as ei:
        decode_task(raw[:MIN_RECORD_LEN])
    assert ei.value.code == "truncated"


def test_longer_buffer_decodes_like_its_prefix() -> None:
    rec = _rec("padded")
    raw = encode_task(rec)
    padded = raw + b"\xff" * 512

    assert decode_task(padded) == decode_task(padded[:TASK_LEN]) == rec


def test_uninitialized_storage_is_a_decode_error() -> None:
    with pytest.raises(DecodeError) as ei:
        decode_task(bytes(TASK_LEN))
    assert ei.value.code == "uninitialized"


def test_foreign_discriminator_is_rejected() -> None:
    raw = bytearray(encode_task(_rec()))
    raw[0:8] = b"\x01" * 8
    with pytest.raises(DecodeError) as ei:
        decode_task(bytes(raw))
    assert ei.value.code == "bad_discriminator"


def test_bad_bool_byte_is_rejected() -> None:
    raw = bytearray(encode_task(_rec()))
    raw[40] = 2
    with pytest.raises(DecodeError) as ei:
        decode_task(bytes(raw))
    assert ei.value.code == "bad_bool"


def test_text_length_over_capacity_is_rejected() -> None:
    raw = bytearray(encode_task(_rec()))
    struct.pack_into("<I", raw, 41, TEXT_CAPACITY_BYTES + 1)
    with pytest.raises(DecodeError) as ei:
        decode_task(bytes(raw))
    assert ei.value.code == "text_too_long"


def test_invalid_utf8_is_rejected() -> None:
    raw = bytearray(encode_task(_rec("ab")))
    raw[45] = 0xFF
    with pytest.raises(DecodeError) as ei:
        decode_task(bytes(raw))
    assert ei.value.code == "invalid_utf8"


def test_to_json_uses_base58_author() -> None:
    rec = _rec(author=bytes(32))
    out = rec.to_json()
    assert out["author"] == "1" * 32
    assert out["is_done"] is False
    assert out["text"] == "Buy milk"
