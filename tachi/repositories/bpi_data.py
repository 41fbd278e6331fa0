from __future__ import annotations

from typing import TypedDict

import tachi.state

COLLECTION = "iidx-bpi-data"


class BPIData(TypedDict):
    chartID: str
    kavg: int
    wr: int
    coef: float | None


async def fetch_one(chart_id: str) -> BPIData | None:
    data = await tachi.state.services.store[COLLECTION].find_one({"chartID": chart_id})
    return data  # type: ignore[return-value]


async def create(data: BPIData) -> None:
    await tachi.state.services.store[COLLECTION].insert_one(dict(data))
