# tests/test_call_service.py
from __future__ import annotations

import importlib

import pytest
from sqlalchemy import func, select

from common.elevenlabs import ElevenLabsError
from db.models import Call, CallStatus
from _fakes import MERCHANT, FakeVoiceClient, sig

_svc = importlib.import_module("services.call_service")

pytestmark = pytest.mark.asyncio


@pytest.fixture(autouse=True)
def _db(db_session_factory):
    yield


def _listing(**over):
    base = dict(
        year=2025,
        make="Toyota",
        model="Camry",
        zipcode="94107",
        dealer_name="Bay Toyota",
        msrp=31000.0,
        listing_price=29500.0,
        stock_number="T1234",
        vin="4T1DAACK0SU000001",
        phone_number="+14155550100",
        voice_id="voice_abc",
        payment_signature=sig(1),
    )
    base.update(over)
    return base


def _paid(monkeypatch, valid=True, message="Payment verified successfully"):
    seen = []

    async def fake_verify(signature, merchant_address):
        seen.append((signature, merchant_address))
        return {"valid": valid, "message": message}

    monkeypatch.setattr(_svc, "verify_payment", fake_verify, raising=True)
    return seen


async def _seed(conversation_id, status=CallStatus.pending, price=None, **over):
    fields = _listing(**over)
    fields.pop("payment_signature")
    await _svc.create_call(conversation_id=conversation_id, call_sid=f"CA-{conversation_id}", **fields)
    if status != CallStatus.pending:
        await _svc.update_call_status(conversation_id, status, confirmed_price=price)


async def _call_count(factory) -> int:
    async with factory() as db:
        return (await db.execute(select(func.count()).select_from(Call))).scalar_one()


# ----------------------------- request_call -----------------------------
async def test_invalid_payment_places_no_call(monkeypatch, db_session_factory):
    _paid(monkeypatch, valid=False, message="This payment has already been used")
    voice = FakeVoiceClient()
    monkeypatch.setattr(_svc, "get_voice_client", lambda: voice, raising=True)

    with pytest.raises(_svc.PaymentVerificationError, match="already been used"):
        await _svc.request_call(**_listing())

    assert voice.calls == []
    assert await _call_count(db_session_factory) == 0


async def test_paid_call_is_placed_and_recorded_pending(monkeypatch):
    seen = _paid(monkeypatch)
    voice = FakeVoiceClient()
    monkeypatch.setattr(_svc, "get_voice_client", lambda: voice, raising=True)

    data = await _svc.request_call(**_listing())

    assert data["conversation_id"] == "conv_123"
    assert seen == [(sig(1), MERCHANT)]

    (placed,) = voice.calls
    assert placed["to_number"] == "+14155550100"
    assert placed["voice_id"] == "voice_abc"
    assert placed["dynamic_variables"]["dealer_name"] == "Bay Toyota"
    assert placed["dynamic_variables"]["vin"] == "4T1DAACK0SU000001"

    call = await _svc.get_call("conv_123")
    assert call["status"] == "pending"
    assert call["call_sid"] == "CA123"
    assert call["listing_price"] == 29500.0
    assert call["confirmed_price"] is None


async def test_missing_listing_details_are_not_sent_as_nulls(monkeypatch):
    _paid(monkeypatch)
    voice = FakeVoiceClient()
    monkeypatch.setattr(_svc, "get_voice_client", lambda: voice, raising=True)

    await _svc.request_call(
        **_listing(zipcode=None, msrp=None, listing_price=None, stock_number=None, voice_id=None)
    )

    variables = voice.calls[0]["dynamic_variables"]
    assert None not in variables.values()
    assert set(variables) == {"year", "make", "model", "dealer_name", "vin"}
    assert (await _svc.get_call("conv_123"))["msrp"] is None


async def test_vendor_failure_writes_nothing(monkeypatch, db_session_factory):
    _paid(monkeypatch)
    voice = FakeVoiceClient(error=ElevenLabsError(422, "Unprocessable Entity", '{"detail":"bad number"}'))
    monkeypatch.setattr(_svc, "get_voice_client", lambda: voice, raising=True)

    with pytest.raises(ElevenLabsError):
        await _svc.request_call(**_listing())

    assert await _call_count(db_session_factory) == 0


# ----------------------------- status updates -----------------------------
async def test_update_unknown_conversation_is_noop(db_session_factory):
    res = await _svc.update_call_status("conv_missing", "failed", call_successful=False)
    assert res is None
    assert await _call_count(db_session_factory) == 0


async def test_update_only_touches_given_fields():
    await _seed("conv_1")
    await _svc.update_call_status("conv_1", "quoted", transcript_summary="Offer of 28k", confirmed_price=28000)

    updated = await _svc.update_call_status("conv_1", CallStatus.quoted, call_successful=True)

    assert updated["transcript_summary"] == "Offer of 28k"
    assert updated["confirmed_price"] == 28000
    assert updated["call_successful"] is True


async def test_update_rejects_unknown_status():
    with pytest.raises(ValueError):
        await _svc.update_call_status("conv_1", "ringing")


async def test_update_by_vin_targets_most_recent_call():
    await _seed("conv_old", CallStatus.failed, vin="VIN-A")
    await _seed("conv_new", CallStatus.quoted, vin="VIN-A")

    updated = await _svc.update_call_status_by_vin("VIN-A", CallStatus.confirmed_quote, confirmed_price=27250)

    assert updated["conversation_id"] == "conv_new"
    assert updated["status"] == "confirmed_quote"
    assert (await _svc.get_call("conv_old"))["status"] == "failed"


async def test_update_by_unknown_vin_is_noop():
    assert await _svc.update_call_status_by_vin("VIN-NONE", "confirmed_quote", confirmed_price=1) is None


# ----------------------------- readers -----------------------------
async def test_check_existing_call_only_sees_active_calls():
    assert await _svc.check_existing_call("VIN-B") is None

    await _seed("conv_b1", CallStatus.failed, vin="VIN-B")
    assert await _svc.check_existing_call("VIN-B") is None

    await _seed("conv_b2", CallStatus.quoted, price=26000, vin="VIN-B")
    found = await _svc.check_existing_call("VIN-B")
    assert found["status"] == "quoted"
    assert found["confirmed_price"] == 26000


async def test_check_existing_call_pending_has_no_price():
    await _seed("conv_c", vin="VIN-C")
    found = await _svc.check_existing_call("VIN-C")
    assert found["status"] == "pending"
    assert "confirmed_price" not in found


async def test_competitive_deals_filter_and_match_case_insensitively():
    await _seed("d1", CallStatus.quoted, price=28900, dealer_name="Alpha Toyota", vin="V1")
    await _seed("d2", CallStatus.confirmed_quote, price=28100, dealer_name="Beta Toyota", make="TOYOTA", model="camry", vin="V2")
    await _seed("d3", CallStatus.pending, dealer_name="Pending Toyota", vin="V3")
    await _seed("d4", CallStatus.completed, dealer_name="No Price Toyota", vin="V4")
    await _seed("d5", CallStatus.quoted, price=30000, dealer_name="Honda Place", make="Honda", model="Accord", vin="V5")

    deals = await _svc.get_competitive_deals("toyota", "Camry")

    assert deals == [
        {"dealer_name": "Beta Toyota", "confirmed_price": 28100},
        {"dealer_name": "Alpha Toyota", "confirmed_price": 28900},
    ]


async def test_competitive_deals_skip_pending_calls_even_with_a_price():
    await _seed("p1", dealer_name="Priced But Pending", vin="VP1")
    await _svc.update_call_status("p1", CallStatus.pending, confirmed_price=26000)
    await _seed("p2", CallStatus.completed, price=27500, dealer_name="Done Toyota", vin="VP2")

    assert (await _svc.get_call("p1"))["confirmed_price"] == 26000
    assert await _svc.get_competitive_deals("Toyota", "Camry") == [
        {"dealer_name": "Done Toyota", "confirmed_price": 27500},
    ]
