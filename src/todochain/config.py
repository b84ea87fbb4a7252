# src/todochain/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from todochain.crypto.identity import DEFAULT_KEYPAIR_PATH

DEFAULT_RPC_URL = "https://api.devnet.solana.com"

# Owner assigned to freshly allocated task accounts.
DEFAULT_PROGRAM_ID = "7AzUsuwMKP9XFpQaVt8Nt2XyAw8UHLWMYLnenxysV9Ce"

_ALLOWED_COMMITMENTS = {"processed", "confirmed", "finalized"}
_ALLOWED_MODES = {"dev", "testnet", "prod"}


def _as_float(v: Any, default: float) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return float(default)


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v).strip()
    return s if s else str(default)


@dataclass(frozen=True)
class LedgerConfig:
    rpc_url: str
    keypair_path: str
    program_id: str
    commitment: str

    rpc_timeout_s: float
    confirm_timeout_s: float
    confirm_poll_s: float


@dataclass(frozen=True)
class ApiConfig:
    mode: str  # "dev" | "testnet" | "prod"
    host: str
    port: int
    max_request_bytes: int


def validate_ledger_config(cfg: LedgerConfig) -> None:
    """Fail-fast validation so a typo never reaches the network layer."""
    parsed = urlparse(cfg.rpc_url)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ValueError(f"rpc_url must be an http(s) url; got: {cfg.rpc_url!r}")

    if cfg.commitment not in _ALLOWED_COMMITMENTS:
        raise ValueError(f"commitment must be one of {sorted(_ALLOWED_COMMITMENTS)}; got: {cfg.commitment!r}")

    if not cfg.keypair_path.strip():
        raise ValueError("keypair_path must be a non-empty string")

    if not cfg.program_id.strip():
        raise ValueError("program_id must be a non-empty string")

    if cfg.rpc_timeout_s <= 0:
        raise ValueError(f"rpc_timeout_s must be > 0; got: {cfg.rpc_timeout_s}")
    if cfg.confirm_timeout_s <= 0:
        raise ValueError(f"confirm_timeout_s must be > 0; got: {cfg.confirm_timeout_s}")
    if cfg.confirm_poll_s <= 0 or cfg.confirm_poll_s > cfg.confirm_timeout_s:
        raise ValueError(f"confirm_poll_s must be in (0, confirm_timeout_s]; got: {cfg.confirm_poll_s}")


def load_ledger_config(env: Optional[Mapping[str, str]] = None) -> LedgerConfig:
    e = os.environ if env is None else env
    cfg = LedgerConfig(
        rpc_url=_as_str(e.get("TODOCHAIN_RPC_URL"), DEFAULT_RPC_URL).rstrip("/"),
        keypair_path=_as_str(e.get("TODOCHAIN_KEYPAIR_PATH"), DEFAULT_KEYPAIR_PATH),
        program_id=_as_str(e.get("TODOCHAIN_PROGRAM_ID"), DEFAULT_PROGRAM_ID),
        commitment=_as_str(e.get("TODOCHAIN_COMMITMENT"), "confirmed").lower(),
        rpc_timeout_s=_as_float(e.get("TODOCHAIN_RPC_TIMEOUT_S"), 10.0),
        confirm_timeout_s=_as_float(e.get("TODOCHAIN_CONFIRM_TIMEOUT_S"), 30.0),
        confirm_poll_s=_as_float(e.get("TODOCHAIN_CONFIRM_POLL_S"), 0.5),
    )
    validate_ledger_config(cfg)
    return cfg


def load_api_config(env: Optional[Mapping[str, str]] = None) -> ApiConfig:
    e = os.environ if env is None else env
    mode = _as_str(e.get("TODOCHAIN_MODE"), "prod").lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {sorted(_ALLOWED_MODES)}; got: {mode!r}")

    port = _as_int(e.get("TODOCHAIN_API_PORT"), 8080)
    if port <= 0 or port > 65535:
        raise ValueError(f"api port must be 1..65535; got: {port}")

    return ApiConfig(
        mode=mode,
        host=_as_str(e.get("TODOCHAIN_API_HOST"), "127.0.0.1"),
        port=port,
        max_request_bytes=_as_int(e.get("TODOCHAIN_MAX_REQUEST_BYTES"), 64_000),
    )
