# common/elevenlabs.py
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from common.settings import get_settings

logger = logging.getLogger("carmommy")

# Reject webhook signatures older than this many seconds.
SIGNATURE_TOLERANCE_S = 30 * 60


class ElevenLabsError(RuntimeError):
    def __init__(self, status_code: int, reason: str, body: str):
        super().__init__(f"ElevenLabs API error: {status_code} {reason} - {body}")
        self.status_code = status_code
        self.body = body


class ElevenLabsClient:
    """Outbound calls and voice cloning against the ElevenLabs REST API."""

    def __init__(
        self,
        api_key: str,
        agent_id: str = "",
        phone_number_id: str = "",
        base_url: str = "https://api.elevenlabs.io",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.agent_id = agent_id
        self.phone_number_id = phone_number_id
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"xi-api-key": self.api_key},
            transport=self._transport,
        )

    @staticmethod
    def _raise_for_status(res: httpx.Response) -> None:
        if res.is_success:
            return
        raise ElevenLabsError(res.status_code, res.reason_phrase, res.text)

    async def outbound_call(
        self,
        *,
        to_number: str,
        voice_id: Optional[str],
        dynamic_variables: Dict[str, Any],
    ) -> Dict[str, Any]:
        client_data: Dict[str, Any] = {"dynamic_variables": dynamic_variables}
        if voice_id:
            client_data["conversation_config_override"] = {"tts": {"voice_id": voice_id}}
        body = {
            "agent_id": self.agent_id,
            "agent_phone_number_id": self.phone_number_id,
            "to_number": to_number,
            "conversation_initiation_client_data": client_data,
        }
        async with self._client() as client:
            res = await client.post("/v1/convai/twilio/outbound-call", json=body)
        self._raise_for_status(res)
        return res.json()

    async def add_voice(self, *, name: str, audio: bytes, filename: str = "audio.mp3") -> Dict[str, Any]:
        async with self._client() as client:
            res = await client.post(
                "/v1/voices/add",
                data={"name": name},
                files={"files": (filename, audio, "audio/mpeg")},
            )
        self._raise_for_status(res)
        return res.json()

    async def list_voices(self) -> List[Dict[str, Any]]:
        async with self._client() as client:
            res = await client.get("/v2/voices")
        self._raise_for_status(res)
        return res.json().get("voices") or []


def get_client() -> ElevenLabsClient:
    s = get_settings()
    return ElevenLabsClient(
        api_key=s.elevenlabs_api_key,
        agent_id=s.elevenlabs_agent_id,
        phone_number_id=s.elevenlabs_phone_number_id,
        base_url=s.elevenlabs_base_url,
    )


def verify_webhook_signature(
    body: bytes,
    header: Optional[str],
    secret: str,
    *,
    now: Optional[float] = None,
) -> bool:
    """
    Check an `ElevenLabs-Signature: t=<unix ts>,v0=<hex>` header, where hex is
    HMAC-SHA256(secret, "<ts>.<raw body>").
    """
    if not header:
        return False
    parts = dict(p.split("=", 1) for p in header.split(",") if "=" in p)
    ts, given = parts.get("t"), parts.get("v0")
    if not ts or not given:
        return False
    try:
        ts_int = int(ts)
    except ValueError:
        return False
    current = time.time() if now is None else now
    if abs(current - ts_int) > SIGNATURE_TOLERANCE_S:
        return False
    expected = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, given)
