# db/session.py
from __future__ import annotations

import os
import ssl as _ssl
from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from common.config_loader import load_env_files

# Load secrets if present (won't override variables already set by the platform)
load_env_files()

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./carmommy.db"
DATABASE_URL = os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL


def _ssl_arg() -> Any:
    sslmode = os.getenv("DB_SSLMODE", "disable").lower()
    if sslmode in ("disable", "off", "false", "0"):
        return False
    if sslmode == "require":
        return True  # encrypted, no verification
    if sslmode in ("verify-ca", "verify-full"):
        ctx = _ssl.create_default_context(cafile=os.getenv("DB_SSLROOTCERT"))
        ctx.check_hostname = sslmode == "verify-full"
        if sslmode == "verify-ca":
            ctx.verify_mode = _ssl.CERT_REQUIRED
        return ctx
    return False


def _engine_kwargs(url: str) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"echo": bool(os.getenv("SQL_ECHO"))}
    if url.startswith("postgresql"):
        kwargs["pool_pre_ping"] = True
        kwargs["poolclass"] = NullPool
        kwargs["connect_args"] = {"ssl": _ssl_arg()}
    return kwargs


engine = create_async_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))

Session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def ping() -> bool:
    """Simple connectivity check for the health route."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
