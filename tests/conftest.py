from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "todochain" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

from todochain.config import DEFAULT_PROGRAM_ID  # noqa: E402
from todochain.ledger.store import RecordStore  # noqa: E402
from todochain.testing.fake_ledger import InMemoryLedgerGateway  # noqa: E402
from todochain.testing.sigtools import deterministic_identity  # noqa: E402

FIXED_NOW = 1_700_000_000


@pytest.fixture
def payer():
    return deterministic_identity(label="payer")


@pytest.fixture
def ledger(payer) -> InMemoryLedgerGateway:
    led = InMemoryLedgerGateway()
    led.fund(payer.pubkey, 100_000_000_000)
    return led


@pytest.fixture
def store(payer, ledger) -> RecordStore:
    return RecordStore(identity=payer, gateway=ledger, program_id=DEFAULT_PROGRAM_ID, clock=lambda: float(FIXED_NOW))
