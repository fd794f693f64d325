# services/call_service.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, select

from common.elevenlabs import get_client as get_voice_client
from db.models import Session, Call, CallStatus, ACTIVE_CALL_STATUSES
from services.payment_service import get_merchant_address, verify_payment

logger = logging.getLogger("carmommy")

_UNSET: Any = object()


class PaymentVerificationError(RuntimeError):
    pass


def _coerce_status(status: Union[str, CallStatus]) -> CallStatus:
    if isinstance(status, CallStatus):
        return status
    try:
        return CallStatus(status)
    except ValueError:
        allowed = " | ".join(s.value for s in CallStatus)
        raise ValueError(f"status must be {allowed}")


# ------------ call requester ------------

async def request_call(
    *,
    year: int,
    make: str,
    model: str,
    zipcode: Optional[str],
    dealer_name: str,
    msrp: Optional[float],
    listing_price: Optional[float],
    stock_number: Optional[str],
    vin: str,
    phone_number: str,
    voice_id: Optional[str],
    payment_signature: str,
) -> Dict[str, Any]:
    """
    Verify the payment, place the outbound dealer call, then record it as pending.
    Nothing is written unless both the payment and the vendor call succeed.
    """
    verification = await verify_payment(payment_signature, get_merchant_address())
    if not verification.get("valid"):
        raise PaymentVerificationError(verification.get("message") or "Payment verification failed")

    listing = {
        "year": year,
        "make": make,
        "model": model,
        "zipcode": zipcode,
        "dealer_name": dealer_name,
        "vin": vin,
        "msrp": msrp,
        "listing_price": listing_price,
        "stock_number": stock_number,
    }
    # dynamic variables must be string, number or boolean
    data = await get_voice_client().outbound_call(
        to_number=phone_number,
        voice_id=voice_id,
        dynamic_variables={k: v for k, v in listing.items() if v is not None},
    )

    await create_call(
        call_sid=data.get("callSid"),
        conversation_id=data.get("conversation_id"),
        vin=vin,
        year=year,
        make=make,
        model=model,
        zipcode=zipcode,
        dealer_name=dealer_name,
        msrp=msrp,
        listing_price=listing_price,
        stock_number=stock_number,
        phone_number=phone_number,
        voice_id=voice_id,
        payment_signature=payment_signature,
    )
    logger.info("Requested dealer call vin=%s conversation=%s", vin, data.get("conversation_id"))
    return data


# ------------ creators / updaters ------------

async def create_call(**fields: Any) -> dict:
    async with Session() as db:
        c = Call(status=CallStatus.pending, **fields)
        db.add(c)
        await db.commit()
        await db.refresh(c)
        return call_to_dict(c)


async def update_call_status(
    conversation_id: str,
    status: Union[str, CallStatus],
    *,
    transcript_summary: Optional[str] = _UNSET,
    call_successful: Optional[bool] = _UNSET,
    confirmed_price: Optional[float] = _UNSET,
) -> Optional[dict]:
    """Apply a status transition by conversation id. Unknown ids are a logged no-op."""
    new_status = _coerce_status(status)
    async with Session() as db:
        c = (
            await db.execute(
                select(Call)
                .where(Call.conversation_id == conversation_id)
                .order_by(Call.created_at.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        if not c:
            logger.warning("No call found for conversation_id=%s; status update skipped", conversation_id)
            return None

        c.status = new_status
        if transcript_summary is not _UNSET:
            c.transcript_summary = transcript_summary
        if call_successful is not _UNSET:
            c.call_successful = call_successful
        if confirmed_price is not _UNSET and confirmed_price is not None:
            c.confirmed_price = confirmed_price
        await db.commit()
        await db.refresh(c)
        return call_to_dict(c)


async def update_call_status_by_vin(
    vin: str,
    status: Union[str, CallStatus],
    *,
    confirmed_price: Optional[float] = None,
) -> Optional[dict]:
    new_status = _coerce_status(status)
    async with Session() as db:
        c = (
            await db.execute(
                select(Call).where(Call.vin == vin).order_by(Call.created_at.desc()).limit(1)
            )
        ).scalar_one_or_none()
        if not c:
            logger.warning("No call found for vin=%s; status update skipped", vin)
            return None

        c.status = new_status
        if confirmed_price is not None:
            c.confirmed_price = confirmed_price
        await db.commit()
        await db.refresh(c)
        return call_to_dict(c)


# ------------ readers ------------

async def check_existing_call(vin: str) -> Optional[dict]:
    """Most recent active call for this VIN, if any."""
    async with Session() as db:
        c = (
            await db.execute(
                select(Call)
                .where(Call.vin == vin, Call.status.in_(ACTIVE_CALL_STATUSES))
                .order_by(Call.created_at.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        if not c:
            return None
        out = {"id": str(c.id), "status": c.status.value}
        if c.confirmed_price is not None:
            out["confirmed_price"] = c.confirmed_price
        return out


async def get_call(conversation_id: str) -> Optional[dict]:
    async with Session() as db:
        c = (
            await db.execute(
                select(Call)
                .where(Call.conversation_id == conversation_id)
                .order_by(Call.created_at.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        return call_to_dict(c) if c else None


async def get_competitive_deals(make: str, model: str) -> List[dict]:
    """Priced, non-pending outcomes for the same make/model (case-insensitive)."""
    async with Session() as db:
        rows = (
            await db.execute(
                select(Call)
                .where(
                    func.lower(Call.make) == make.strip().lower(),
                    func.lower(Call.model) == model.strip().lower(),
                    Call.status != CallStatus.pending,
                    Call.confirmed_price.is_not(None),
                )
                .order_by(Call.confirmed_price.asc())
            )
        ).scalars().all()
        return [{"dealer_name": c.dealer_name, "confirmed_price": c.confirmed_price} for c in rows]


# ------------ serializers ------------

def call_to_dict(c: Call) -> dict:
    return {
        "id": str(c.id),
        "call_sid": c.call_sid,
        "conversation_id": c.conversation_id,
        "vin": c.vin,
        "year": c.year,
        "make": c.make,
        "model": c.model,
        "zipcode": c.zipcode,
        "dealer_name": c.dealer_name,
        "msrp": c.msrp,
        "listing_price": c.listing_price,
        "stock_number": c.stock_number,
        "phone_number": c.phone_number,
        "voice_id": c.voice_id,
        "status": c.status.value if isinstance(c.status, CallStatus) else c.status,
        "transcript_summary": c.transcript_summary,
        "call_successful": c.call_successful,
        "confirmed_price": c.confirmed_price,
        "created_at": c.created_at,
        "updated_at": c.updated_at,
    }
