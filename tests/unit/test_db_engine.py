from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import select

from runwatch.db import Base, ConfigurationError, create_engine, create_session_factory, normalize_url, session_scope
from runwatch.errors import ConfigurationError as RunwatchConfigurationError
from runwatch.records.models import utc_now
from runwatch.records.store_sql import ExecutionRow


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgresql://u:p@db/runwatch", "postgresql+asyncpg://u:p@db/runwatch"),
        ("postgresql+asyncpg://u:p@db/runwatch", "postgresql+asyncpg://u:p@db/runwatch"),
        ("sqlite:///runwatch.db", "sqlite+aiosqlite:///runwatch.db"),
        (" sqlite+aiosqlite:///runwatch.db ", "sqlite+aiosqlite:///runwatch.db"),
    ],
)
def test_normalize_url(raw: str, expected: str) -> None:
    assert normalize_url(raw) == expected


def test_unsupported_driver_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        normalize_url("mysql://u:p@db/runwatch")
    assert isinstance(exc_info.value, RunwatchConfigurationError)
    assert "u:p" not in str(exc_info.value)


def test_missing_url_raises() -> None:
    with pytest.raises(ConfigurationError):
        create_engine()


def test_url_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RUNWATCH_DATABASE_URL", f"sqlite:///{tmp_path / 'env.db'}")
    engine = create_engine()
    assert engine.url.drivername == "sqlite+aiosqlite"


@pytest.mark.asyncio
async def test_session_scope_rolls_back_on_error(tmp_path: Path) -> None:
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'scope.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = create_session_factory(engine)
    now = utc_now()
    try:
        with pytest.raises(RuntimeError):
            async with session_scope(factory) as session:
                session.add(ExecutionRow(id="x" * 32, name="Lost", status="PENDING", started_at=now, updated_at=now))
                await session.flush()
                raise RuntimeError("boom")
        async with session_scope(factory) as session:
            rows = (await session.execute(select(ExecutionRow))).scalars().all()
        assert rows == []
    finally:
        await engine.dispose()
