from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from todochain.api.app import create_app
from todochain.ledger.address import encode_address, parse_address
from todochain.ledger.codec import TEXT_CAPACITY_BYTES, TaskRecord, encode_task
from todochain.ledger.errors import NetworkError
from todochain.ledger.store import RecordStore
from todochain.testing.fake_ledger import InMemoryLedgerGateway
from todochain.testing.sigtools import deterministic_identity

from conftest import FIXED_NOW


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, store: RecordStore) -> TestClient:
    monkeypatch.setenv("TODOCHAIN_MODE", "dev")
    return TestClient(create_app(store=store))


def test_post_creates_task(client: TestClient, ledger: InMemoryLedgerGateway) -> None:
    r = client.post("/tasks", json={"text": "Buy milk"})
    assert r.status_code == 200

    j = r.json()
    assert j["text"] == "Buy milk"
    assert j["is_done"] is False
    assert j["created_at"] == j["updated_at"] == FIXED_NOW
    assert j["signature"]
    assert parse_address(j["id"]) in ledger.accounts


def test_post_oversized_text_is_client_error(client: TestClient, ledger: InMemoryLedgerGateway) -> None:
    r = client.post("/tasks", json={"text": "a" * (TEXT_CAPACITY_BYTES + 1)})
    assert r.status_code == 400

    err = r.json()["error"]
    assert err["code"] == "field_too_large"
    assert err["details"]["capacity"] == TEXT_CAPACITY_BYTES
    assert ledger.calls == []


def test_post_requires_text(client: TestClient) -> None:
    r = client.post("/tasks", json={})
    assert r.status_code == 422


def test_get_returns_decoded_record(client: TestClient, ledger: InMemoryLedgerGateway, payer) -> None:
    addr = deterministic_identity(label="task").pubkey
    rec = TaskRecord(author=payer.pubkey, is_done=True, text="read me", created_at=5, updated_at=6)
    ledger.put_account(addr, encode_task(rec))
    handle = encode_address(addr)

    r = client.get(f"/tasks/{handle}")
    assert r.status_code == 200
    assert r.json() == {
        "id": handle,
        "author": payer.address,
        "text": "read me",
        "is_done": True,
        "created_at": 5,
        "updated_at": 6,
    }


def test_get_missing_task_is_store_error(client: TestClient) -> None:
    r = client.get(f"/tasks/{deterministic_identity(label='ghost').address}")
    assert r.status_code == 500

    j = r.json()
    assert j["ok"] is False
    assert j["error"]["code"] == "not_found"
    assert j["error"]["details"]["cause"] == "NotFoundError"


def test_get_invalid_handle_is_bad_request(client: TestClient, ledger: InMemoryLedgerGateway) -> None:
    r = client.get("/tasks/SomeTaskID")
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_handle"
    assert r.json()["error"]["message"] == "Invalid task ID"
    assert ledger.calls == []


def test_put_updates_task(client: TestClient) -> None:
    created = client.post("/tasks", json={"text": "Buy milk"}).json()

    r = client.put(f"/tasks/{created['id']}", json={"is_done": True})
    assert r.status_code == 200

    j = r.json()
    assert j["ok"] is True
    assert j["signature"] != created["signature"]
    assert j["message"] == f"Task updated, tx: {j['signature']}"


def test_put_invalid_handle(client: TestClient, ledger: InMemoryLedgerGateway) -> None:
    r = client.put("/tasks/not-a-key", json={"is_done": True})
    assert r.status_code == 400
    assert ledger.calls == []


def test_put_requires_is_done(client: TestClient) -> None:
    handle = deterministic_identity(label="t").address
    r = client.put(f"/tasks/{handle}", json={})
    assert r.status_code == 422


def test_delete_task(client: TestClient) -> None:
    created = client.post("/tasks", json={"text": "gone soon"}).json()

    r = client.delete(f"/tasks/{created['id']}")
    assert r.status_code == 200
    j = r.json()
    assert j["message"] == f"Task deleted, tx: {j['signature']}"


def test_delete_invalid_handle(client: TestClient) -> None:
    r = client.delete("/tasks/0OIl")
    assert r.status_code == 400


def test_rejection_reports_reason(client: TestClient, ledger: InMemoryLedgerGateway) -> None:
    created = client.post("/tasks", json={"text": "x"}).json()
    ledger.reject_next("Transaction simulation failed: Blockhash not found")

    r = client.put(f"/tasks/{created['id']}", json={"is_done": False})
    assert r.status_code == 500

    details = r.json()["error"]["details"]
    assert details["cause"] == "RejectedError"
    assert details["kind"] == "stale_blockhash"
    assert details["transient"] is True


def test_network_error_is_500(client: TestClient, ledger: InMemoryLedgerGateway) -> None:
    ledger.fail_next(NetworkError("rpc_unreachable", "connection refused"))

    r = client.post("/tasks", json={"text": "offline"})
    assert r.status_code == 500
    assert r.json()["error"]["code"] == "rpc_unreachable"


def test_request_id_header(client: TestClient) -> None:
    r = client.get("/health", headers={"x-request-id": "abc123"})
    assert r.headers.get("x-request-id") == "abc123"

    r2 = client.get("/health")
    assert r2.headers.get("x-request-id")


def test_health_reports_payer(client: TestClient, payer) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.json()["payer"] == payer.address


def test_routes_without_store_are_not_ready(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TODOCHAIN_MODE", "dev")
    c = TestClient(create_app(boot_runtime=False))

    r = c.get(f"/tasks/{deterministic_identity(label='t').address}")
    assert r.status_code == 500
    assert r.json()["error"]["code"] == "not_ready"
    assert c.get("/health").json()["ok"] is False


def test_padded_handle_is_bad_request(client: TestClient, ledger: InMemoryLedgerGateway) -> None:
    handle = deterministic_identity(label="padded").address

    r = client.put(f"/tasks/%20{handle}%20", json={"is_done": True})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_handle"

    assert client.get(f"/tasks/%20{handle}").status_code == 400
    assert ledger.calls == []
