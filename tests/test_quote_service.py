# tests/test_quote_service.py
from __future__ import annotations

import importlib

import pytest

from db.models import CallStatus

_quotes = importlib.import_module("services.quote_service")
_calls = importlib.import_module("services.call_service")

pytestmark = pytest.mark.asyncio


@pytest.fixture(autouse=True)
def _db(db_session_factory):
    yield


async def _quoted(conversation_id, vin="VIN-Q"):
    await _calls.create_call(
        conversation_id=conversation_id,
        vin=vin,
        year=2025,
        make="Honda",
        model="Civic",
        dealer_name="Civic Center Honda",
        phone_number="+14155550101",
    )
    await _calls.update_call_status(conversation_id, CallStatus.quoted, confirmed_price=25900)


async def test_email_price_confirms_latest_call_for_vin():
    await _quoted("q_old")
    await _quoted("q_new")

    updated = await _quotes.ingest_quote("VIN-Q", "24750.50")

    assert updated["conversation_id"] == "q_new"
    assert updated["status"] == "confirmed_quote"
    assert updated["confirmed_price"] == 24750.5
    assert (await _calls.get_call("q_old"))["confirmed_price"] == 25900


async def test_unknown_vin_is_accepted_without_changes():
    assert await _quotes.ingest_quote("VIN-UNKNOWN", 20000) is None


@pytest.mark.parametrize(
    "vin, price, fragment",
    [
        (None, 20000, "vin is required"),
        ("", 20000, "vin is required"),
        ("VIN-Q", None, "finalPrice is required"),
        ("VIN-Q", "", "finalPrice is required"),
        ("VIN-Q", "about twenty grand", "must be a number"),
    ],
)
async def test_ingest_quote_validation(vin, price, fragment):
    with pytest.raises(_quotes.QuoteValidationError, match=fragment):
        await _quotes.ingest_quote(vin, price)


async def test_parse_email_delegates_to_extractor(monkeypatch):
    seen = []

    async def fake_extract(content):
        seen.append(content)
        return {"final_price": 31000.0, "tax": 2635.0, "fees": None}

    monkeypatch.setattr(_quotes, "extract_email_terms", fake_extract, raising=True)

    out = await _quotes.parse_email("Out the door: $31,000 plus $2,635 tax")

    assert out == {"final_price": 31000.0, "tax": 2635.0, "fees": None}
    assert seen == ["Out the door: $31,000 plus $2,635 tax"]


async def test_parse_email_requires_content():
    with pytest.raises(_quotes.QuoteValidationError):
        await _quotes.parse_email("   ")
