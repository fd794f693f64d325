# common/extraction.py
"""
LLM-backed extraction of negotiated terms.

Two fixed prompts:
  - call summaries   -> {"final_price": number|null, "summary": str}
  - dealer emails    -> {"final_price": number|null, "tax": number|null, "fees": number|null}

The model is asked for a bare JSON object. Anything that can't be read as
one raises ExtractionError; callers decide whether that is fatal.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

from openai import AsyncOpenAI

from common.logging_config import truncate
from common.settings import get_settings

logger = logging.getLogger("carmommy")

_CALL_PROMPT = """You are an information-extraction model. Extract the final price that the dealer agreed to from the call summary and provide a summary of the call.

Return a JSON object following this TypeScript interface:

ParsedCall {{
  final_price: number | null;
  summary: string;
}}

Rules:
- Output only the JSON object.
- Do not wrap the result in code blocks or add any commentary.
- Parse only from the content of the call summary.
- Remove currency symbols and commas from the final price (e.g., $23,500 → 23500).
- If the final price is missing, unclear, or cannot be confidently interpreted as a number, set it to null.
- The summary should be a concise 1-2 sentence overview of the call.
- Include no extra fields.

Data to parse:
{data}"""

_EMAIL_PROMPT = """You are an information-extraction model. Extract numerical values from the email exactly as instructed.

Return a JSON object following this TypeScript interface:

ParsedEmail {{
  final_price: number | null;
  tax: number | null;
  fees: number | null;
}}

Rules:
- Output only the JSON object.
- Do not wrap the result in code blocks or add any commentary.
- Parse only from the content of the email.
- Remove currency symbols and commas (e.g., $23,500 → 23500).
- If a value is missing, unclear, or cannot be confidently interpreted as a number, set it to null.
- If multiple values exist, choose the most final or explicit one.
- Include no extra fields.

Email to parse:
{data}"""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class ExtractionError(ValueError):
    pass


_client: Optional[AsyncOpenAI] = None


def _openai() -> AsyncOpenAI:
    global _client
    if _client is None:
        _client = AsyncOpenAI(api_key=get_settings().openai_api_key)
    return _client


async def _complete(prompt: str) -> str:
    resp = await _openai().chat.completions.create(
        model=get_settings().extraction_model,
        temperature=0,
        messages=[{"role": "user", "content": prompt}],
        response_format={"type": "json_object"},
    )
    return resp.choices[0].message.content or ""


def _to_number(value: Any) -> Optional[float]:
    """Accept plain numbers, and strings like "$23,500" the model sometimes returns anyway."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.replace("$", "").replace(",", "").strip()
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def parse_json_object(text: str) -> Dict[str, Any]:
    cleaned = _FENCE.sub("", (text or "").strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"model response is not JSON: {truncate(text, 200)}") from e
    if not isinstance(data, dict):
        raise ExtractionError("model response is not a JSON object")
    return data


async def extract_call_terms(transcript_summary: str) -> Dict[str, Any]:
    raw = await _complete(_CALL_PROMPT.format(data=transcript_summary))
    logger.debug("extraction response: %s", truncate(raw))
    data = parse_json_object(raw)
    summary = data.get("summary")
    return {
        "final_price": _to_number(data.get("final_price")),
        "summary": summary if isinstance(summary, str) else None,
    }


async def extract_email_terms(email_content: str) -> Dict[str, Any]:
    raw = await _complete(_EMAIL_PROMPT.format(data=email_content))
    logger.debug("email extraction response: %s", truncate(raw))
    data = parse_json_object(raw)
    return {
        "final_price": _to_number(data.get("final_price")),
        "tax": _to_number(data.get("tax")),
        "fees": _to_number(data.get("fees")),
    }
