# services/video_service.py
from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import select

from db.models import Session, Video


def _video_dict(v: Video) -> Dict[str, Any]:
    return {
        "id": str(v.id),
        "storage_id": v.storage_id,
        "vin": v.vin,
        "created_at": v.created_at,
    }


async def save_video(*, storage_id: str, vin: str) -> Dict[str, Any]:
    if not storage_id or not vin:
        raise ValueError("storage_id and vin are required")
    async with Session() as db:
        v = Video(storage_id=storage_id, vin=vin)
        db.add(v)
        await db.commit()
        await db.refresh(v)
        return _video_dict(v)


async def get_video(vin: str) -> Optional[Dict[str, Any]]:
    async with Session() as db:
        v = (
            await db.execute(
                select(Video).where(Video.vin == vin).order_by(Video.created_at.desc()).limit(1)
            )
        ).scalar_one_or_none()
        return _video_dict(v) if v else None
