from __future__ import annotations

"""Signing identities.

The process-wide payer identity is read from a Solana CLI keypair file: a JSON
array of 64 integers, the 32-byte Ed25519 seed followed by the 32-byte public
key. Fresh identities for new storage accounts come from generate().
"""

import json
import os
from pathlib import Path
from typing import Any, List

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, NoEncryption, PrivateFormat

from todochain.crypto.sig import private_key_from_seed, public_bytes, sign_ed25519
from todochain.ledger.address import encode_address
from todochain.ledger.errors import KeyLoadError

DEFAULT_KEYPAIR_PATH = "~/.config/solana/id.json"

_KEYPAIR_LEN = 64


class SigningIdentity:
    """An Ed25519 keypair able to sign transaction messages.

    Instances are never mutated after construction and may be shared between
    threads.
    """

    __slots__ = ("_key", "_pubkey")

    def __init__(self, key: Ed25519PrivateKey) -> None:
        self._key = key
        self._pubkey = public_bytes(key)

    @classmethod
    def generate(cls) -> "SigningIdentity":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_keypair_bytes(cls, raw: bytes) -> "SigningIdentity":
        if len(raw) != _KEYPAIR_LEN:
            raise KeyLoadError("key_format_invalid", f"keypair must be {_KEYPAIR_LEN} bytes; got {len(raw)}")
        try:
            key = private_key_from_seed(raw[:32])
        except ValueError as e:
            raise KeyLoadError("key_material_invalid", f"invalid ed25519 seed: {e}") from e
        ident = cls(key)
        if ident.pubkey != bytes(raw[32:]):
            raise KeyLoadError("key_material_invalid", "public key does not match the secret seed")
        return ident

    @property
    def pubkey(self) -> bytes:
        return self._pubkey

    @property
    def address(self) -> str:
        return encode_address(self._pubkey)

    def sign(self, message: bytes) -> bytes:
        return sign_ed25519(message=message, key=self._key)

    def to_keypair_bytes(self) -> bytes:
        seed = self._key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
        return seed + self._pubkey

    def __repr__(self) -> str:
        return f"SigningIdentity({self.address})"


def _parse_keypair_json(text: str) -> bytes:
    try:
        obj: Any = json.loads(text)
    except json.JSONDecodeError as e:
        raise KeyLoadError("key_format_invalid", f"keypair file is not valid json: {e}") from e

    if not isinstance(obj, list) or len(obj) != _KEYPAIR_LEN:
        raise KeyLoadError("key_format_invalid", f"keypair file must hold a list of {_KEYPAIR_LEN} integers")

    out: List[int] = []
    for v in obj:
        # bool is an int subclass; disallow it explicitly
        if isinstance(v, bool) or not isinstance(v, int) or not (0 <= v <= 255):
            raise KeyLoadError("key_format_invalid", f"keypair entries must be bytes (0..255); got {v!r}")
        out.append(v)
    return bytes(out)


def load_identity(path: str | os.PathLike[str] = DEFAULT_KEYPAIR_PATH) -> SigningIdentity:
    """Load the payer identity from a Solana CLI keypair file."""
    p = Path(path).expanduser()
    if not p.exists():
        raise KeyLoadError("key_file_missing", f"keypair file not found: {p}")
    try:
        raw = p.read_bytes()
    except OSError as e:
        raise KeyLoadError("key_file_unreadable", f"failed to read keypair file {p}: {e}") from e
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise KeyLoadError("key_format_invalid", f"keypair file {p} is not utf-8 json") from e
    return SigningIdentity.from_keypair_bytes(_parse_keypair_json(text))
