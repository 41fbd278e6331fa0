from __future__ import annotations

from typing import Literal

from pydantic import Field

from . import BaseModel


class ChangeLogLevel(BaseModel):
    logLevel: Literal["crit", "severe", "error", "warn", "info", "verbose", "debug"]
    # minutes until the level resets
    duration: float | None = Field(default=None, gt=0)
    noReset: bool = False


class LogLevelChanged(BaseModel):
    previous: str
    current: str
