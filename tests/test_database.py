"""
Tests for the database layer: engine configuration, sessions and health.
"""

from datetime import timedelta

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from nyayasetu.core import database
from nyayasetu.core.config import Settings
from nyayasetu.core.utc import utc_now
from nyayasetu.models.models import Session


class TestPoolConfig:

    def test_sqlite_uses_null_pool(self):
        config = database._pool_config(Settings(database_url="sqlite:///./x.db"))
        assert config["poolclass"] is NullPool
        assert "pool_size" not in config

    def test_postgres_pool_from_settings(self):
        settings = Settings(
            database_url="postgres://nyaya:secret@db:5432/nyayasetu",
            db_pool_size=3,
            db_max_overflow=0,
            db_pool_recycle=600,
        )
        assert settings.database_url.startswith("postgresql+asyncpg://")

        config = database._pool_config(settings)
        assert config["poolclass"] is AsyncAdaptedQueuePool
        assert config["pool_size"] == 3
        assert config["max_overflow"] == 0
        assert config["pool_recycle"] == 600
        assert config["pool_pre_ping"] is True


class TestSessions:

    async def test_sqlite_enforces_foreign_keys(self, db_session):
        result = await db_session.execute(text("PRAGMA foreign_keys"))
        assert result.scalar() == 1

        db_session.add(Session(
            token_hash="0" * 64,
            user_id="no-such-user",
            expires_at=utc_now() + timedelta(hours=1),
        ))
        with pytest.raises(IntegrityError):
            await db_session.flush()
        await db_session.rollback()

    async def test_session_rolls_back_on_error(self, victim):
        with pytest.raises(RuntimeError):
            async with database.get_db_session() as session:
                await session.execute(text("UPDATE users SET full_name = 'Changed'"))
                raise RuntimeError("boom")

        async with database.get_db_session() as session:
            names = (await session.execute(text("SELECT full_name FROM users"))).scalars().all()
        assert names == ["Sunita Kamble"]

    async def test_ping(self):
        assert await database.ping_db() is True
