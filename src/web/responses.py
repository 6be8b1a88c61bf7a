from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel

T = TypeVar("T")


def now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class ApiResponse(BaseModel, Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    timestamp: str


def ok(data: Any) -> dict:
    return {"success": True, "data": data, "timestamp": now_iso()}


def fail(status_code: int, message: str, **extra: Any) -> JSONResponse:
    body = {"success": False, "error": message, "timestamp": now_iso()}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)
