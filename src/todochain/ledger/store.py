from __future__ import annotations

"""Task CRUD over a remote ledger.

Each operation is a short, stateless sequence over the signing identity, the
ledger gateway and the record codec. Nothing is cached between calls; the
ledger is the only source of truth.

Mutations are only considered applied once submit_and_confirm returns. Any
failure surfaces to the caller as StoreError with the original exception on
``cause``. Operations are never retried here: create-account is not
idempotent, so a blind retry could allocate twice.

Update and Delete submit a zero-lamport transfer from the payer to the task
account plus a memo naming the operation, its arguments and a random nonce.
The nonce keeps two signals under the same recent blockhash from compiling to
identical transactions, which the ledger would drop as already processed.
The signal is authorized and fee-paying but does not rewrite or reclaim the
task storage; doing so needs an on-chain program that owns the account.
"""

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from todochain.config import LedgerConfig, load_ledger_config
from todochain.crypto.identity import SigningIdentity, load_identity
from todochain.ledger.address import decode_blockhash, encode_address, parse_address
from todochain.ledger.codec import TASK_LEN, TaskRecord, decode_task, encode_text
from todochain.ledger.errors import InvalidHandle, LedgerError, StoreError
from todochain.ledger.gateway import LedgerGateway, RpcLedgerGateway
from todochain.ledger.ledger_logging import log_event
from todochain.ledger.tx import (
    Instruction,
    Transaction,
    create_account_instruction,
    memo_instruction,
    transfer_instruction,
)

log = logging.getLogger("todochain.store")

T = TypeVar("T")


@dataclass(frozen=True)
class CreateResult:
    signature: str
    handle: str
    record: TaskRecord


class RecordStore:
    def __init__(
        self,
        *,
        identity: SigningIdentity,
        gateway: LedgerGateway,
        program_id: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.identity = identity
        self.gateway = gateway
        try:
            self.program_id = parse_address(program_id)
        except InvalidHandle as e:
            raise ValueError(f"program_id is not a valid address: {program_id!r}") from e
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def _guard(self, op: str, handle: str, fn: Callable[[], T]) -> T:
        """Run fn, wrapping every failure into StoreError and logging it."""
        try:
            return fn()
        except LedgerError as e:
            log_event(log, f"{op}_failed", level=logging.WARNING, handle=handle, code=e.code, error=str(e))
            raise StoreError(op, e) from e
        except ValueError as e:
            # Malformed ledger responses (bad blockhash encoding and the like).
            log_event(log, f"{op}_failed", level=logging.WARNING, handle=handle, code="bad_response", error=str(e))
            raise StoreError(op, e) from e

    def _submit(self, instructions: list[Instruction], *extra: SigningIdentity) -> str:
        # The blockhash expires quickly, so fetch it right before signing.
        blockhash = decode_blockhash(self.gateway.get_recent_blockhash())
        tx = Transaction.build(
            payer=self.identity,
            instructions=instructions,
            recent_blockhash=blockhash,
            extra_signers=extra,
        )
        return self.gateway.submit_and_confirm(tx)

    def create(self, text: str) -> CreateResult:
        """Allocate a TASK_LEN storage account for a new task.

        The returned record reflects what the caller asked for; the account
        itself is allocated zeroed.
        """
        encode_text(text)
        account = SigningIdentity.generate()
        handle = account.address

        def _do() -> str:
            lamports = self.gateway.get_minimum_rent(TASK_LEN)
            ix = create_account_instruction(
                payer=self.identity.pubkey,
                new_account=account.pubkey,
                lamports=lamports,
                space=TASK_LEN,
                owner=self.program_id,
            )
            return self._submit([ix], account)

        sig = self._guard("task_create", handle, _do)
        now = self._now()
        record = TaskRecord(author=self.identity.pubkey, is_done=False, text=str(text), created_at=now, updated_at=now)
        log_event(log, "task_create", handle=handle, signature=sig, text_bytes=len(str(text).encode("utf-8")))
        return CreateResult(signature=sig, handle=handle, record=record)

    def read(self, handle: str) -> TaskRecord:
        address = parse_address(handle)
        rec = self._guard("task_read", handle, lambda: decode_task(self.gateway.get_account_data(address)))
        log_event(log, "task_read", level=logging.DEBUG, handle=handle)
        return rec

    def _signal(self, op: str, handle: str, **fields: object) -> str:
        address = parse_address(handle)
        memo = {"op": op, "task": handle, "nonce": os.urandom(8).hex(), **fields}
        ixs = [
            transfer_instruction(source=self.identity.pubkey, dest=address, lamports=0),
            memo_instruction(
                memo=json.dumps(memo, sort_keys=True, separators=(",", ":")).encode("utf-8"),
                signers=[self.identity.pubkey],
            ),
        ]
        sig = self._guard(op, handle, lambda: self._submit(ixs))
        log_event(log, op, handle=handle, signature=sig, **fields)
        return sig

    def update(self, handle: str, is_done: bool) -> str:
        return self._signal("task_update", handle, is_done=bool(is_done))

    def delete(self, handle: str) -> str:
        return self._signal("task_delete", handle)

    @property
    def payer_address(self) -> str:
        return encode_address(self.identity.pubkey)


def build_store(cfg: Optional[LedgerConfig] = None) -> RecordStore:
    """Wire a RecordStore from environment config.

    Loads the payer keypair eagerly so a missing credential fails at boot.
    """
    cfg = cfg or load_ledger_config()
    return RecordStore(
        identity=load_identity(cfg.keypair_path),
        gateway=RpcLedgerGateway.from_config(cfg),
        program_id=cfg.program_id,
    )
