# services/voice_service.py
from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, List

from common.elevenlabs import get_client as get_voice_client

logger = logging.getLogger("carmommy")


async def create_voice(audio_base64: str, name: str) -> Dict[str, Any]:
    """Clone a voice from a base64 audio sample. Returns {"data": <vendor payload>}."""
    if not name or not name.strip():
        raise ValueError("name is required")
    try:
        audio = base64.b64decode(audio_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("audio must be base64-encoded") from e
    if not audio:
        raise ValueError("audio is empty")

    data = await get_voice_client().add_voice(name=name.strip(), audio=audio)
    logger.info("Created voice %r -> %s", name, data.get("voice_id"))
    return {"data": data}


async def get_voices() -> List[Dict[str, str]]:
    voices = await get_voice_client().list_voices()
    return [{"name": v.get("name"), "voice_id": v.get("voice_id")} for v in voices]
