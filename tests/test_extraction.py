# tests/test_extraction.py
from __future__ import annotations

import pytest

from common import extraction
from common.extraction import ExtractionError, parse_json_object


def _model_says(monkeypatch, text):
    prompts = []

    async def fake_complete(prompt):
        prompts.append(prompt)
        return text

    monkeypatch.setattr(extraction, "_complete", fake_complete, raising=True)
    return prompts


@pytest.mark.parametrize(
    "text",
    [
        '{"final_price": 1}',
        '```json\n{"final_price": 1}\n```',
        '```\n{"final_price": 1}```',
        '  {"final_price": 1}  ',
    ],
)
def test_parse_json_object_tolerates_fences(text):
    assert parse_json_object(text) == {"final_price": 1}


@pytest.mark.parametrize("text", ["", "sure! the price is 23500", "[1, 2]", "null"])
def test_parse_json_object_rejects_non_objects(text):
    with pytest.raises(ExtractionError):
        parse_json_object(text)


@pytest.mark.asyncio
async def test_call_terms(monkeypatch):
    prompts = _model_says(monkeypatch, '{"final_price": "$23,500", "summary": "Dealer agreed to 23.5k."}')

    out = await extraction.extract_call_terms("They offered $23,500 out the door.")

    assert out == {"final_price": 23500.0, "summary": "Dealer agreed to 23.5k."}
    assert "They offered $23,500 out the door." in prompts[0]
    assert "ParsedCall" in prompts[0]


@pytest.mark.asyncio
async def test_call_terms_null_and_junk_prices(monkeypatch):
    _model_says(monkeypatch, '{"final_price": "call us", "summary": 5}')
    out = await extraction.extract_call_terms("no numbers here")
    assert out == {"final_price": None, "summary": None}


@pytest.mark.asyncio
async def test_email_terms(monkeypatch):
    prompts = _model_says(monkeypatch, '{"final_price": 31000, "tax": "2,635.50", "fees": null, "extra": 1}')

    out = await extraction.extract_email_terms("Total $31,000, tax $2,635.50")

    assert out == {"final_price": 31000.0, "tax": 2635.5, "fees": None}
    assert "ParsedEmail" in prompts[0]


@pytest.mark.asyncio
async def test_boolean_price_is_not_a_number(monkeypatch):
    _model_says(monkeypatch, '{"final_price": true, "tax": false, "fees": 0}')
    out = await extraction.extract_email_terms("...")
    assert out == {"final_price": None, "tax": None, "fees": 0.0}


@pytest.mark.asyncio
async def test_unreadable_model_output_raises(monkeypatch):
    _model_says(monkeypatch, "I could not find a price.")
    with pytest.raises(ExtractionError):
        await extraction.extract_call_terms("...")
