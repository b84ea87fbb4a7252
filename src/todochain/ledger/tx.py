from __future__ import annotations

"""Legacy Solana transaction building and wire serialization.

Only the instructions the task store needs are provided: system create-account
(allocates record storage), system transfer, and an SPL memo.

Wire format:
  transaction = compact_u16(num_sigs) || sig[64]* || message
  message     = header[3] || compact_u16(num_keys) || key[32]* || blockhash[32]
                || compact_u16(num_ix) || ix*
  ix          = program_index[u8] || compact_u16(n) || account_index[u8]*
                || compact_u16(len) || data
"""

import base64
import struct
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from todochain.crypto.identity import SigningIdentity
from todochain.ledger.address import MEMO_PROGRAM_ID, PUBKEY_LEN, SIGNATURE_LEN, SYSTEM_PROGRAM_ID, encode_signature

_SYS_CREATE_ACCOUNT = 0
_SYS_TRANSFER = 2

# Memo program limit for a single instruction.
MAX_MEMO_BYTES = 566


def encode_compact_u16(n: int) -> bytes:
    if n < 0 or n > 0xFFFF:
        raise ValueError(f"compact-u16 out of range: {n}")
    out = bytearray()
    while True:
        b = n & 0x7F
        n >>= 7
        if n:
            out.append(b | 0x80)
        else:
            out.append(b)
            return bytes(out)


def decode_compact_u16(buf: bytes, off: int = 0) -> Tuple[int, int]:
    """Return (value, bytes_consumed)."""
    val = 0
    for i in range(3):
        if off + i >= len(buf):
            raise ValueError("truncated compact-u16")
        b = buf[off + i]
        val |= (b & 0x7F) << (7 * i)
        if not b & 0x80:
            return val, i + 1
    raise ValueError("compact-u16 longer than 3 bytes")


@dataclass(frozen=True)
class AccountMeta:
    pubkey: bytes
    is_signer: bool
    is_writable: bool


@dataclass(frozen=True)
class Instruction:
    program_id: bytes
    accounts: Tuple[AccountMeta, ...]
    data: bytes


def create_account_instruction(
    *, payer: bytes, new_account: bytes, lamports: int, space: int, owner: bytes
) -> Instruction:
    if len(owner) != PUBKEY_LEN:
        raise ValueError("owner must be a 32-byte program id")
    data = struct.pack("<IQQ", _SYS_CREATE_ACCOUNT, int(lamports), int(space)) + bytes(owner)
    return Instruction(
        program_id=SYSTEM_PROGRAM_ID,
        accounts=(
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(new_account, is_signer=True, is_writable=True),
        ),
        data=data,
    )


def transfer_instruction(*, source: bytes, dest: bytes, lamports: int) -> Instruction:
    data = struct.pack("<IQ", _SYS_TRANSFER, int(lamports))
    return Instruction(
        program_id=SYSTEM_PROGRAM_ID,
        accounts=(
            AccountMeta(source, is_signer=True, is_writable=True),
            AccountMeta(dest, is_signer=False, is_writable=True),
        ),
        data=data,
    )


def memo_instruction(*, memo: bytes, signers: Sequence[bytes] = ()) -> Instruction:
    """Attach UTF-8 memo bytes to a transaction; listed signers must sign it."""
    if len(memo) > MAX_MEMO_BYTES:
        raise ValueError(f"memo too long: {len(memo)} > {MAX_MEMO_BYTES} bytes")
    try:
        memo.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValueError("memo must be utf-8") from e
    return Instruction(
        program_id=MEMO_PROGRAM_ID,
        accounts=tuple(AccountMeta(bytes(pk), is_signer=True, is_writable=False) for pk in signers),
        data=bytes(memo),
    )


@dataclass(frozen=True)
class CompiledInstruction:
    program_index: int
    account_indexes: Tuple[int, ...]
    data: bytes


@dataclass(frozen=True)
class Message:
    num_required_signatures: int
    num_readonly_signed: int
    num_readonly_unsigned: int
    account_keys: Tuple[bytes, ...]
    recent_blockhash: bytes
    instructions: Tuple[CompiledInstruction, ...]

    @classmethod
    def compile(cls, *, payer: bytes, instructions: Sequence[Instruction], recent_blockhash: bytes) -> "Message":
        # pubkey -> [is_signer, is_writable], insertion order is first-seen order
        metas: Dict[bytes, List[bool]] = {bytes(payer): [True, True]}

        def _merge(pk: bytes, signer: bool, writable: bool) -> None:
            cur = metas.setdefault(bytes(pk), [False, False])
            cur[0] = cur[0] or signer
            cur[1] = cur[1] or writable

        for ix in instructions:
            for m in ix.accounts:
                _merge(m.pubkey, m.is_signer, m.is_writable)
        for ix in instructions:
            _merge(ix.program_id, False, False)

        groups: Tuple[List[bytes], ...] = ([], [], [], [])
        for pk, (signer, writable) in metas.items():
            if signer:
                groups[0 if writable else 1].append(pk)
            else:
                groups[2 if writable else 3].append(pk)
        keys = tuple(groups[0] + groups[1] + groups[2] + groups[3])
        index = {pk: i for i, pk in enumerate(keys)}

        compiled = tuple(
            CompiledInstruction(
                program_index=index[bytes(ix.program_id)],
                account_indexes=tuple(index[bytes(m.pubkey)] for m in ix.accounts),
                data=bytes(ix.data),
            )
            for ix in instructions
        )
        if len(recent_blockhash) != 32:
            raise ValueError("recent blockhash must be 32 bytes")

        return cls(
            num_required_signatures=len(groups[0]) + len(groups[1]),
            num_readonly_signed=len(groups[1]),
            num_readonly_unsigned=len(groups[3]),
            account_keys=keys,
            recent_blockhash=bytes(recent_blockhash),
            instructions=compiled,
        )

    @property
    def signer_keys(self) -> Tuple[bytes, ...]:
        return self.account_keys[: self.num_required_signatures]

    def serialize(self) -> bytes:
        out = bytearray([self.num_required_signatures, self.num_readonly_signed, self.num_readonly_unsigned])
        out += encode_compact_u16(len(self.account_keys))
        for k in self.account_keys:
            out += k
        out += self.recent_blockhash
        out += encode_compact_u16(len(self.instructions))
        for ix in self.instructions:
            out.append(ix.program_index)
            out += encode_compact_u16(len(ix.account_indexes))
            out += bytes(ix.account_indexes)
            out += encode_compact_u16(len(ix.data))
            out += ix.data
        return bytes(out)


@dataclass
class Transaction:
    message: Message
    signatures: List[bytes] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        *,
        payer: SigningIdentity,
        instructions: Sequence[Instruction],
        recent_blockhash: bytes,
        extra_signers: Iterable[SigningIdentity] = (),
    ) -> "Transaction":
        """Compile and sign in one step, the way every store call needs it."""
        msg = Message.compile(payer=payer.pubkey, instructions=instructions, recent_blockhash=recent_blockhash)
        tx = cls(message=msg)
        tx.sign([payer, *extra_signers])
        return tx

    def sign(self, signers: Iterable[SigningIdentity]) -> None:
        by_key = {s.pubkey: s for s in signers}
        payload = self.message.serialize()
        sigs: List[bytes] = []
        for pk in self.message.signer_keys:
            s = by_key.get(pk)
            if s is None:
                raise ValueError("missing signer for required account")
            sigs.append(s.sign(payload))
        self.signatures = sigs

    @property
    def signature(self) -> Optional[str]:
        """Transaction id: the fee payer's signature, base58."""
        if not self.signatures:
            return None
        return encode_signature(self.signatures[0])

    def serialize(self) -> bytes:
        if len(self.signatures) != self.message.num_required_signatures:
            raise ValueError("transaction is not fully signed")
        out = bytearray(encode_compact_u16(len(self.signatures)))
        for s in self.signatures:
            if len(s) != SIGNATURE_LEN:
                raise ValueError("bad signature length")
            out += s
        out += self.message.serialize()
        return bytes(out)

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode("ascii")


def parse_transaction(raw: bytes) -> Transaction:
    """Parse wire bytes back into a Transaction.

    Used by the in-memory ledger to verify what a client submitted.
    """
    off = 0
    nsig, used = decode_compact_u16(raw, off)
    off += used
    sigs = []
    for _ in range(nsig):
        sigs.append(bytes(raw[off : off + SIGNATURE_LEN]))
        off += SIGNATURE_LEN
    if off + 3 > len(raw):
        raise ValueError("truncated message header")
    h0, h1, h2 = raw[off], raw[off + 1], raw[off + 2]
    off += 3
    nkeys, used = decode_compact_u16(raw, off)
    off += used
    keys = []
    for _ in range(nkeys):
        keys.append(bytes(raw[off : off + PUBKEY_LEN]))
        off += PUBKEY_LEN
    blockhash = bytes(raw[off : off + 32])
    off += 32
    nix, used = decode_compact_u16(raw, off)
    off += used
    ixs = []
    for _ in range(nix):
        if off >= len(raw):
            raise ValueError("truncated instruction")
        prog = raw[off]
        off += 1
        nacc, used = decode_compact_u16(raw, off)
        off += used
        accs = tuple(raw[off : off + nacc])
        off += nacc
        dlen, used = decode_compact_u16(raw, off)
        off += used
        ixs.append(CompiledInstruction(program_index=prog, account_indexes=accs, data=bytes(raw[off : off + dlen])))
        off += dlen
    if off != len(raw) or any(len(k) != PUBKEY_LEN for k in keys) or len(blockhash) != 32:
        raise ValueError("malformed transaction bytes")
    msg = Message(
        num_required_signatures=h0,
        num_readonly_signed=h1,
        num_readonly_unsigned=h2,
        account_keys=tuple(keys),
        recent_blockhash=blockhash,
        instructions=tuple(ixs),
    )
    return Transaction(message=msg, signatures=sigs)
