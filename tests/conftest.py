# tests/conftest.py
import importlib
import os
import sys
from pathlib import Path

# --- Part 1: Path Setup ---
# Must run before any application import so `db`, `services`, ... resolve.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


# --- Part 2: Environment ---
# Set explicitly (not setdefault) so a developer's .env never leaks into tests;
# load_env_files() does not override values that are already present.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CONFIG_PATH"] = str(REPO_ROOT / "config.yaml")
os.environ["SOLANA_MERCHANT_ADDRESS"] = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
os.environ["ELEVENLABS_API_KEY"] = "test-xi-key"
os.environ["ELEVENLABS_AGENT_ID"] = "agent_test"
os.environ["ELEVENLABS_PHONE_NUMBER_ID"] = "phnum_test"
os.environ["ELEVENLABS_WEBHOOK_SECRET"] = ""
os.environ["OPENAI_API_KEY"] = "sk-test"


# --- Part 3: Application Imports ---
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from common.settings import get_settings
from db.models import Base

get_settings.cache_clear()

# Every module that opens `Session()` directly.
SESSION_MODULES = (
    "services.payment_service",
    "services.call_service",
    "services.video_service",
)


# --- Part 4: Core Test Fixtures ---

@pytest_asyncio.fixture(scope="function")
async def db_session_factory(monkeypatch):
    """
    Fresh in-memory SQLite schema per test, wired into every service module.

    StaticPool keeps a single connection so all sessions see the same
    in-memory database.
    """
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    for name in SESSION_MODULES:
        monkeypatch.setattr(importlib.import_module(name), "Session", factory, raising=True)

    yield factory

    await engine.dispose()


@pytest.fixture
def settings():
    return get_settings()
