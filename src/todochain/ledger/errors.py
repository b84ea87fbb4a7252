from __future__ import annotations

"""Error taxonomy for the ledger-backed task store.

Every error carries a short machine-readable ``code`` alongside the human
message so the HTTP layer can render structured error bodies.

Client errors (caller can fix the request):
  - InvalidHandle, FieldTooLarge

Data / operational errors:
  - DecodeError, NotFoundError, KeyLoadError

Remote ledger errors:
  - NetworkError (transient, caller may retry)
  - RejectedError (network refused the transaction)

StoreError wraps whatever the store could not recover from and keeps the
original exception on ``cause``.
"""

from typing import Optional


class LedgerError(RuntimeError):
    code_default = "ledger_error"

    def __init__(self, code: Optional[str], msg: str) -> None:
        super().__init__(msg)
        self.code = code or self.code_default
        self.message = msg


class InvalidHandle(LedgerError):
    code_default = "invalid_handle"


class FieldTooLarge(LedgerError):
    code_default = "field_too_large"

    def __init__(self, field: str, size: int, capacity: int) -> None:
        super().__init__(None, f"field '{field}' is {size} bytes; capacity is {capacity}")
        self.field = field
        self.size = int(size)
        self.capacity = int(capacity)


class DecodeError(LedgerError):
    code_default = "decode_error"


class NotFoundError(LedgerError):
    code_default = "not_found"


class KeyLoadError(LedgerError):
    code_default = "key_load_error"


class NetworkError(LedgerError):
    code_default = "network_error"


_REJECT_KINDS = (
    ("stale_blockhash", ("blockhash not found", "blockhash expired", "block height exceeded")),
    ("insufficient_funds", ("insufficient funds", "insufficientfunds", "insufficient lamports", "attempt to debit")),
    ("invalid_signature", ("signature verification", "invalid signature", "missing signature")),
    ("program_error", ("custom program error", "instructionerror", "instruction error", "program failed")),
)


def classify_rejection(reason: str) -> str:
    """Map a free-form rejection reason to one of a small set of kinds."""
    r = (reason or "").lower()
    for kind, needles in _REJECT_KINDS:
        for n in needles:
            if n in r:
                return kind
    return "unknown"


class RejectedError(LedgerError):
    code_default = "tx_rejected"

    def __init__(self, reason: str, *, kind: Optional[str] = None) -> None:
        super().__init__(None, f"transaction rejected: {reason}")
        self.reason = str(reason)
        self.kind = kind or classify_rejection(self.reason)

    @property
    def transient(self) -> bool:
        # A fresh blockhash is enough to make the same request succeed.
        return self.kind == "stale_blockhash"


class StoreError(LedgerError):
    code_default = "store_error"

    def __init__(self, op: str, cause: Exception) -> None:
        code = getattr(cause, "code", None) or self.code_default
        super().__init__(code, f"{op} failed: {cause}")
        self.op = op
        self.cause = cause
