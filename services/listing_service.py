# services/listing_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, List

from common.carfax import get_client as get_carfax_client

logger = logging.getLogger("carmommy")


def normalize_listing(listing: Dict[str, Any]) -> Dict[str, Any]:
    dealer = listing.get("dealer") or {}
    images = (listing.get("images") or {}).get("large") or []
    return {
        "year": listing.get("year"),
        "msrp": listing.get("msrp"),
        "price": listing.get("currentPrice"),
        "images": list(images),
        "dealer": {
            "name": dealer.get("name"),
            "phone": dealer.get("phone"),
            "address": dealer.get("address"),
            "latitude": dealer.get("latitude"),
            "longitude": dealer.get("longitude"),
        },
        "listing_url": listing.get("vdpUrl"),
        "color": listing.get("exteriorColor"),
        "trim": listing.get("trim"),
        "vin": listing.get("vin"),
        "stock_number": listing.get("stockNumber"),
        "model": listing.get("model"),
    }


async def search_listings(zip_code: str, make: str, model: str, radius_miles: int) -> List[Dict[str, Any]]:
    raw = await get_carfax_client().search_vehicles(
        zip_code=zip_code, make=make, model=model, radius=radius_miles
    )
    listings = raw.get("listings") or []
    out = [normalize_listing(l) for l in listings if l.get("currentPrice") != 0]
    logger.info(
        "Listing search zip=%s %s %s r=%s: %d of %d kept",
        zip_code, make, model, radius_miles, len(out), len(listings),
    )
    return out
