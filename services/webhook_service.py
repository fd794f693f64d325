# services/webhook_service.py
"""
ElevenLabs post-call webhook handling.

Event types:
  - post_call_transcription  -> completed | failed | quoted (+ extracted price)
  - call_initiation_failure  -> failed
  - post_call_audio          -> acknowledged, nothing stored
  - anything else            -> acknowledged, logged

Price extraction is best effort: a model or parsing failure leaves the price
unset but never blocks the status update.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from common.extraction import extract_call_terms
from common.logging_config import truncate
from db.models import CallStatus
from services.call_service import update_call_status

logger = logging.getLogger("carmommy")

QUOTE_KEYWORDS = ("quote", "price", "offer")


def _as_dict(value: Any) -> Dict[str, Any]:
    # vendor payload sections that are not objects read as empty
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def classify_call(call_successful: bool, transcript_summary: str) -> CallStatus:
    if not call_successful:
        return CallStatus.failed
    text = transcript_summary.lower()
    if any(k in text for k in QUOTE_KEYWORDS):
        return CallStatus.quoted
    return CallStatus.completed


async def _extract_price(transcript_summary: str) -> Optional[float]:
    try:
        terms = await extract_call_terms(transcript_summary)
    except Exception:  # noqa: BLE001
        logger.exception("Price extraction failed; continuing without a confirmed price")
        return None
    price = terms.get("final_price")
    if price is None or price <= 0:
        return None
    logger.info("Extracted confirmed price: %s", price)
    return price


async def handle_post_call_transcription(data: Dict[str, Any]) -> Optional[dict]:
    conversation_id = _as_str(data.get("conversation_id"))
    analysis = _as_dict(data.get("analysis"))
    call_successful = bool(analysis.get("call_successful") or False)
    transcript_summary = analysis.get("transcript_summary")
    if not isinstance(transcript_summary, str):
        transcript_summary = None
    logger.info(
        "post_call_transcription conversation=%s call_successful=%s",
        conversation_id, call_successful,
    )

    if not conversation_id:
        logger.warning("post_call_transcription without conversation_id; ignored")
        return None
    if not transcript_summary:
        logger.error("Transcript summary is missing for conversation=%s; ignored", conversation_id)
        return None

    logger.debug("Transcript summary: %s", truncate(transcript_summary))
    confirmed_price = await _extract_price(transcript_summary)
    status = classify_call(call_successful, transcript_summary)

    updated = await update_call_status(
        conversation_id,
        status,
        transcript_summary=transcript_summary,
        call_successful=call_successful,
        confirmed_price=confirmed_price,
    )
    logger.info("Call %s -> %s", conversation_id, status.value)
    return updated


async def handle_call_initiation_failure(data: Dict[str, Any]) -> Optional[dict]:
    conversation_id = _as_str(data.get("conversation_id"))
    reason = data.get("failure_reason")
    logger.info("call_initiation_failure conversation=%s reason=%s", conversation_id, reason)
    if not conversation_id:
        logger.warning("call_initiation_failure without conversation_id; ignored")
        return None

    return await update_call_status(
        conversation_id,
        CallStatus.failed,
        transcript_summary=f"Call initiation failed: {reason}",
        call_successful=False,
    )


async def handle_event(payload: Dict[str, Any]) -> Optional[dict]:
    """Dispatch one webhook payload ({type, data}). Returns the updated call, if any."""
    event_type = payload.get("type")
    data = _as_dict(payload.get("data"))
    logger.info("Webhook type: %s", event_type)

    if event_type == "post_call_transcription":
        return await handle_post_call_transcription(data)
    if event_type == "call_initiation_failure":
        return await handle_call_initiation_failure(data)
    if event_type == "post_call_audio":
        logger.info("Received post_call_audio webhook")
        return None

    logger.warning("Unknown webhook type: %s", event_type)
    return None
