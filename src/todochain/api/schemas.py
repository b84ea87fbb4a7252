from __future__ import annotations

"""Pydantic request/response schemas for the task API.

Text capacity is enforced by the record store (so the limit lives next to
the binary layout), not here.
"""

from pydantic import BaseModel, Field


class TaskCreateRequest(BaseModel):
    text: str = Field(..., description="Task text, at most 1600 utf-8 bytes")


class TaskUpdateRequest(BaseModel):
    is_done: bool = Field(..., description="Completion flag")


class TaskCreatedResponse(BaseModel):
    id: str
    text: str
    is_done: bool
    created_at: int
    updated_at: int
    signature: str


class TaskResponse(BaseModel):
    id: str
    author: str
    text: str
    is_done: bool
    created_at: int
    updated_at: int


class TxConfirmation(BaseModel):
    ok: bool = True
    message: str
    signature: str
