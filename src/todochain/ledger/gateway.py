from __future__ import annotations

"""Remote ledger access.

LedgerGateway is the narrow capability set the record store depends on.
RpcLedgerGateway implements it against a Solana JSON-RPC endpoint; tests use
todochain.testing.fake_ledger.InMemoryLedgerGateway instead.

No call here is retried. Retry policy belongs to the caller.
"""

import base64
import binascii
import itertools
import json
import logging
import time
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, List, Optional, Protocol

from todochain.config import LedgerConfig
from todochain.ledger.address import encode_address
from todochain.ledger.errors import NetworkError, NotFoundError, RejectedError
from todochain.ledger.ledger_logging import log_event
from todochain.ledger.tx import Transaction

Json = Dict[str, Any]

log = logging.getLogger("todochain.gateway")

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}

# sendTransaction error codes that say nothing about the transaction itself:
# the node could not take it. Everything else is a rejection.
_SEND_NETWORK_CODES = {
    -32700: "rpc_error",  # parse error
    -32600: "rpc_error",  # invalid request
    -32601: "rpc_error",  # method not found
    -32603: "rpc_error",  # internal error
    -32005: "node_unhealthy",
    -32016: "node_behind",  # minimum context slot not reached
    -32429: "rate_limited",
    429: "rate_limited",
}


class LedgerGateway(Protocol):
    def get_recent_blockhash(self) -> str: ...

    def get_minimum_rent(self, size: int) -> int: ...

    def get_account_data(self, address: bytes) -> bytes: ...

    def submit_and_confirm(self, tx: Transaction) -> str: ...


class RpcLedgerGateway:
    """JSON-RPC 2.0 client for a Solana-compatible ledger node."""

    def __init__(
        self,
        *,
        rpc_url: str,
        commitment: str = "confirmed",
        timeout_s: float = 10.0,
        confirm_timeout_s: float = 30.0,
        poll_s: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.timeout_s = float(timeout_s)
        self.confirm_timeout_s = float(confirm_timeout_s)
        self.poll_s = float(poll_s)
        self._sleep = sleep
        self._clock = clock
        self._ids = itertools.count(1)

    @classmethod
    def from_config(cls, cfg: LedgerConfig) -> "RpcLedgerGateway":
        return cls(
            rpc_url=cfg.rpc_url,
            commitment=cfg.commitment,
            timeout_s=cfg.rpc_timeout_s,
            confirm_timeout_s=cfg.confirm_timeout_s,
            poll_s=cfg.confirm_poll_s,
        )

    # ---- transport ----

    def _post(self, body: Json) -> Json:
        data = json.dumps(body).encode("utf-8")
        req = urllib.request.Request(
            self.rpc_url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            raise NetworkError("http_error", f"rpc {body.get('method')} http {e.code}: {e.reason}") from e
        except OSError as e:
            # URLError, connection resets and socket timeouts all land here.
            raise NetworkError("rpc_unreachable", f"rpc {body.get('method')} failed: {e}") from e

        try:
            out = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise NetworkError("bad_json", f"rpc {body.get('method')} returned non-json body") from e
        if not isinstance(out, dict):
            raise NetworkError("bad_json", f"rpc {body.get('method')} returned {type(out).__name__}")
        return out

    def _call(self, method: str, params: List[Any]) -> Json:
        return self._post({"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params})

    def _result(self, method: str, params: List[Any]) -> Any:
        out = self._call(method, params)
        err = out.get("error")
        if err is not None:
            msg = err.get("message") if isinstance(err, dict) else str(err)
            raise NetworkError("rpc_error", f"rpc {method} error: {msg}")
        if "result" not in out:
            raise NetworkError("bad_response", f"rpc {method} response missing result")
        return out["result"]

    # ---- LedgerGateway ----

    def get_recent_blockhash(self) -> str:
        res = self._result("getLatestBlockhash", [{"commitment": self.commitment}])
        try:
            return str(res["value"]["blockhash"])
        except (KeyError, TypeError) as e:
            raise NetworkError("bad_response", "getLatestBlockhash response missing blockhash") from e

    def get_minimum_rent(self, size: int) -> int:
        res = self._result("getMinimumBalanceForRentExemption", [int(size), {"commitment": self.commitment}])
        if isinstance(res, bool) or not isinstance(res, int):
            raise NetworkError("bad_response", f"rent exemption must be an int; got {res!r}")
        return res

    def get_account_data(self, address: bytes) -> bytes:
        addr = encode_address(address)
        res = self._result("getAccountInfo", [addr, {"encoding": "base64", "commitment": self.commitment}])
        value = res.get("value") if isinstance(res, dict) else None
        if value is None:
            raise NotFoundError(None, f"no account at {addr}")
        data = value.get("data") if isinstance(value, dict) else None
        if not isinstance(data, list) or not data or not isinstance(data[0], str):
            raise NetworkError("bad_response", f"account {addr} has no base64 data")
        try:
            return base64.b64decode(data[0], validate=True)
        except binascii.Error as e:
            raise NetworkError("bad_response", f"account {addr} data is not base64") from e

    def _send(self, tx: Transaction) -> str:
        params = [
            tx.to_base64(),
            {"encoding": "base64", "preflightCommitment": self.commitment},
        ]
        out = self._call("sendTransaction", params)
        err = out.get("error")
        if err is not None:
            if isinstance(err, dict):
                reason = str(err.get("message") or "")
                rpc_code = err.get("code")
                if isinstance(rpc_code, int) and rpc_code in _SEND_NETWORK_CODES:
                    raise NetworkError(
                        _SEND_NETWORK_CODES[rpc_code], f"rpc sendTransaction error {rpc_code}: {reason}"
                    )
                data = err.get("data")
                if isinstance(data, dict) and data.get("err") is not None:
                    reason = f"{reason} ({json.dumps(data.get('err'), sort_keys=True)})"
            else:
                reason = str(err)
            raise RejectedError(reason or "sendTransaction error")
        sig = out.get("result")
        if not isinstance(sig, str) or not sig:
            raise NetworkError("bad_response", "sendTransaction returned no signature")
        return sig

    def _status(self, sig: str) -> Optional[Json]:
        res = self._result("getSignatureStatuses", [[sig], {"searchTransactionHistory": False}])
        values = res.get("value") if isinstance(res, dict) else None
        if not isinstance(values, list) or not values:
            raise NetworkError("bad_response", "getSignatureStatuses returned no value list")
        st = values[0]
        return st if isinstance(st, dict) else None

    def _reached(self, st: Json) -> bool:
        have = _COMMITMENT_RANK.get(str(st.get("confirmationStatus") or ""), -1)
        return have >= _COMMITMENT_RANK.get(self.commitment, 1)

    def submit_and_confirm(self, tx: Transaction) -> str:
        """Send tx and block until it reaches the configured commitment.

        Waits at most confirm_timeout_s; a timeout is a NetworkError since the
        transaction may still land later.
        """
        started = self._clock()
        sig = self._send(tx)
        deadline = started + self.confirm_timeout_s

        while True:
            st = self._status(sig)
            if st is not None:
                if st.get("err") is not None:
                    raise RejectedError(json.dumps(st["err"], sort_keys=True))
                if self._reached(st):
                    log_event(
                        log,
                        "tx_confirmed",
                        level=logging.DEBUG,
                        signature=sig,
                        status=st.get("confirmationStatus"),
                        duration_ms=int((self._clock() - started) * 1000),
                    )
                    return sig
            if self._clock() >= deadline:
                raise NetworkError(
                    "confirm_timeout",
                    f"transaction {sig} not confirmed within {self.confirm_timeout_s:g}s",
                )
            self._sleep(self.poll_s)
