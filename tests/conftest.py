"""
Общие фикстуры: тестовое окружение, фейковый NodeSet и временная SQLite.
"""

from __future__ import annotations

import os

os.environ.setdefault("CHAIN__RPC_ENDPOINT", "http://rpc.test.local")
os.environ.setdefault("CHAIN__REFERRAL_CONTRACT", "0x" + "c" * 40)
os.environ.setdefault("SECURITY__JWT_SECRET", "test-secret")
os.environ.setdefault("CACHE__BACKEND", "memory")

import pytest
import pytest_asyncio

from config.settings import get_settings, reset_settings
from premium.db import build_session_maker, create_engine_from_dsn, init_db
from premium.services.links.store import SqlProfileLinkStore
from premium.utils.cache import clear_cache
from tests.helpers import FakeNodeReader

reset_settings()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def fake_reader():
    return FakeNodeReader()


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    """Свежая файловая SQLite на каждый тест."""

    engine = create_engine_from_dsn(f"sqlite+aiosqlite:///{tmp_path / 'premium.db'}")
    await init_db(engine)
    yield build_session_maker(engine)
    await engine.dispose()


@pytest.fixture
def store(session_maker):
    return SqlProfileLinkStore(session_maker)


@pytest_asyncio.fixture(autouse=True)
async def _fresh_cache():
    await clear_cache()
    yield
