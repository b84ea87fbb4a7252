from __future__ import annotations

from fastapi import APIRouter, Request

from todochain.api.errors import ApiError
from todochain.api.schemas import (
    TaskCreatedResponse,
    TaskCreateRequest,
    TaskResponse,
    TaskUpdateRequest,
    TxConfirmation,
)
from todochain.ledger.store import RecordStore

router = APIRouter()


def _store(request: Request) -> RecordStore:
    st = getattr(request.app.state, "store", None)
    if st is None:
        raise ApiError.internal("not_ready", "record store not attached to app.state", {})
    return st


# Handlers are plain `def` so Starlette runs them on its worker threadpool:
# a request blocked on ledger confirmation never stalls the event loop.


@router.post("/tasks", response_model=TaskCreatedResponse)
def create_task(request: Request, body: TaskCreateRequest) -> TaskCreatedResponse:
    res = _store(request).create(body.text)
    return TaskCreatedResponse(
        id=res.handle,
        text=res.record.text,
        is_done=res.record.is_done,
        created_at=res.record.created_at,
        updated_at=res.record.updated_at,
        signature=res.signature,
    )


@router.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(request: Request, task_id: str) -> TaskResponse:
    rec = _store(request).read(task_id)
    return TaskResponse(id=task_id, **rec.to_json())


@router.put("/tasks/{task_id}", response_model=TxConfirmation)
def update_task(request: Request, task_id: str, body: TaskUpdateRequest) -> TxConfirmation:
    sig = _store(request).update(task_id, body.is_done)
    return TxConfirmation(message=f"Task updated, tx: {sig}", signature=sig)


@router.delete("/tasks/{task_id}", response_model=TxConfirmation)
def delete_task(request: Request, task_id: str) -> TxConfirmation:
    sig = _store(request).delete(task_id)
    return TxConfirmation(message=f"Task deleted, tx: {sig}", signature=sig)


@router.get("/health")
def health(request: Request) -> dict:
    st = getattr(request.app.state, "store", None)
    cfg = getattr(request.app.state, "ledger_cfg", None)
    return {
        "ok": st is not None,
        "rpc_url": getattr(cfg, "rpc_url", None),
        "payer": st.payer_address if st is not None else None,
    }
