# services/quote_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from common.extraction import extract_email_terms
from db.models import CallStatus
from services.call_service import update_call_status_by_vin

logger = logging.getLogger("carmommy")


class QuoteValidationError(ValueError):
    pass


async def ingest_quote(vin: Optional[str], final_price: Any) -> Optional[dict]:
    """Record an email-confirmed price against the most recent call for the VIN."""
    if not vin:
        raise QuoteValidationError("Missing required parameter: vin is required")
    if final_price is None or final_price == "":
        raise QuoteValidationError("Missing required parameter: finalPrice is required")
    try:
        price = float(final_price)
    except (TypeError, ValueError):
        raise QuoteValidationError("finalPrice must be a number")

    updated = await update_call_status_by_vin(
        str(vin), CallStatus.confirmed_quote, confirmed_price=price
    )
    if updated:
        logger.info("Updated call for VIN %s to confirmed_quote with price: $%s", vin, price)
    return updated


async def parse_email(email_content: str) -> Dict[str, Any]:
    if not email_content or not email_content.strip():
        raise QuoteValidationError("emailContent is required")
    return await extract_email_terms(email_content)
