# common/carfax.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from common.settings import get_settings

logger = logging.getLogger("carmommy")


class CarfaxError(RuntimeError):
    pass


class CarfaxClient:
    def __init__(
        self,
        base_url: str = "https://helix.carfax.com",
        rows: int = 24,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.rows = rows
        self._transport = transport

    async def search_vehicles(self, *, zip_code: str, make: str, model: str, radius: int) -> Dict[str, Any]:
        params = {
            "zip": zip_code,
            "radius": radius,
            "sort": "BEST",
            "make": make,
            "model": model,
            "certified": "false",
            "vehicleCondition": "NEW",
            "rows": self.rows,
            "mpgCombinedMin": 0,
            "dynamicRadius": "false",
            "fetchImageLimit": 6,
            "tpPositions": "1,2,3",
        }
        async with httpx.AsyncClient(base_url=self.base_url, transport=self._transport) as client:
            res = await client.get("/search/v2/vehicles", params=params)
        if not res.is_success:
            raise CarfaxError(f"Carfax search failed: {res.status_code} {res.reason_phrase}")
        return res.json()


def get_client() -> CarfaxClient:
    s = get_settings()
    return CarfaxClient(base_url=s.carfax_base_url, rows=s.carfax_rows)
