# src/todochain/crypto/sig.py
from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat


def public_bytes(key: Ed25519PrivateKey) -> bytes:
    return key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


def private_key_from_seed(seed: bytes) -> Ed25519PrivateKey:
    """Build a private key from a 32-byte seed.

    Solana-style 64-byte keypairs (seed || pubkey) are accepted; only the
    seed half is used here.
    """
    if len(seed) == 64:
        seed = seed[:32]
    if len(seed) != 32:
        raise ValueError("ed25519 seed must be 32 bytes (or a 64-byte keypair)")
    return Ed25519PrivateKey.from_private_bytes(bytes(seed))


def sign_ed25519(*, message: bytes, key: Ed25519PrivateKey) -> bytes:
    return key.sign(message)


def verify_ed25519_signature(*, message: bytes, sig: bytes, pubkey: bytes) -> bool:
    try:
        key = Ed25519PublicKey.from_public_bytes(bytes(pubkey))
        key.verify(bytes(sig), message)
        return True
    except (InvalidSignature, ValueError):
        return False
