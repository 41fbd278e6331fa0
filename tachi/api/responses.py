from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def success(
    content: Any,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
    meta: dict[str, Any] | None = None,
) -> Any:
    if meta is None:
        meta = {}

    data = {"status": "success", "data": content, "meta": meta}
    return JSONResponse(jsonable_encoder(data), status_code, headers)


def failure(
    message: str,
    status_code: int = 400,
    headers: dict[str, str] | None = None,
) -> Any:
    data = {"status": "error", "error": message}
    return JSONResponse(data, status_code, headers)
