from __future__ import annotations

from typing import Any
from typing import Generic
from typing import Literal
from typing import TypeVar

from . import BaseModel

T = TypeVar("T")


class Success(BaseModel, Generic[T]):
    status: Literal["success"]
    data: T
    meta: dict[str, Any]


class Failure(BaseModel):
    status: Literal["error"]
    error: str
