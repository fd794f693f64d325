"""
Payment verification and the payment ledger (async)
---------------------------------------------------
Functions:
  - verify_payment(signature, merchant_address)
  - check_payment_exists(signature)
  - record_payment(signature, amount, merchant_address)
  - get_merchant_address()

Notes:
  - verify_payment never raises; every failure is a {"valid": False, ...} result.
  - A signature is recorded at most once. The existence check runs before the
    balance check, again right before the insert, and the unique constraint on
    payments.signature catches whatever slips between the two.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from common.ledger import LAMPORTS_PER_SOL, balance_deltas, get_ledger, parse_address
from common.settings import get_settings
from db.models import Session, Payment

logger = logging.getLogger("carmommy")

MIN_SIGNATURE_LENGTH = 64


class PaymentAlreadyRecorded(RuntimeError):
    pass


def _result(valid: bool, message: str, amount: Optional[Decimal] = None) -> Dict[str, Any]:
    out: Dict[str, Any] = {"valid": valid, "message": message}
    if amount is not None:
        out["amount"] = float(amount)
    return out


def _sol(lamports: int) -> Decimal:
    return Decimal(lamports) / Decimal(LAMPORTS_PER_SOL)


def _payment_dict(p: Payment) -> Dict[str, Any]:
    return {
        "id": str(p.id),
        "signature": p.signature,
        "amount": float(p.amount),
        "merchant_address": p.merchant_address,
        "created_at": p.created_at,
    }


# ---------- ledger ----------
async def check_payment_exists(signature: str) -> Optional[Dict[str, Any]]:
    async with Session() as db:
        row = (
            await db.execute(select(Payment).where(Payment.signature == signature).limit(1))
        ).scalar_one_or_none()
        return _payment_dict(row) if row else None


async def record_payment(*, signature: str, amount: Decimal, merchant_address: str) -> str:
    async with Session() as db:
        existing = (
            await db.execute(select(Payment.id).where(Payment.signature == signature).limit(1))
        ).scalar_one_or_none()
        if existing is not None:
            raise PaymentAlreadyRecorded("Payment already recorded")

        p = Payment(signature=signature, amount=amount, merchant_address=merchant_address)
        db.add(p)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise PaymentAlreadyRecorded("Payment already recorded") from e
        return str(p.id)


def get_merchant_address() -> str:
    return get_settings().merchant_address


# ---------- verification ----------
async def verify_payment(signature: str, merchant_address: str) -> Dict[str, Any]:
    if not signature or len(signature) < MIN_SIGNATURE_LENGTH:
        return _result(False, "Invalid transaction signature format")

    merchant = parse_address(merchant_address)
    if merchant is None:
        return _result(False, "Invalid merchant address format")

    settings = get_settings()
    expected = int(settings.payment_amount_sol * LAMPORTS_PER_SOL)
    tolerance = settings.payment_tolerance_lamports

    try:
        tx = await get_ledger().fetch_transaction(signature)
        if tx is None:
            return _result(False, "Transaction not found")

        meta = tx.get("meta")
        if not meta:
            return _result(False, "Transaction metadata not available")
        if meta.get("err") is not None:
            return _result(False, f"Transaction failed: {meta['err']}")

        if await check_payment_exists(signature):
            return _result(False, "This payment has already been used")

        merchant_key = str(merchant)
        received = 0
        matched = False
        for key, delta in balance_deltas(tx):
            if key != merchant_key or delta <= 0:
                continue
            received = delta
            if expected - tolerance <= delta <= expected + tolerance:
                matched = True
                break

        if not matched:
            logger.info(
                "payment %s… amount mismatch: expected %s lamports, merchant received %s",
                signature[:12], expected, received,
            )
            return _result(
                False,
                f"Payment amount mismatch. Expected ~{settings.payment_amount_sol} SOL, "
                f"but transaction shows a different amount",
                _sol(received),
            )

        amount = _sol(received)
        try:
            await record_payment(signature=signature, amount=amount, merchant_address=merchant_address)
        except PaymentAlreadyRecorded:
            return _result(False, "This payment has already been used")

        logger.info("payment %s… verified: %s SOL to %s", signature[:12], amount, merchant_address)
        return _result(True, "Payment verified successfully", amount)

    except Exception as e:  # noqa: BLE001
        logger.exception("Payment verification error")
        return _result(False, f"Verification failed: {e}")
