"""PoolProvider: lazy, memoized, race-safe pool creation."""

import asyncio

import pytest

from core.config import Settings
from core.db import PoolProvider, database_url
from core.errors import DependencyError


async def test_pool_is_not_created_until_first_use(pool_provider, pool_factory):
    assert pool_provider.is_initialized is False
    assert pool_factory.calls == []


async def test_get_pool_memoizes(pool_provider, pool_factory, fake_pool):
    first = await pool_provider.get_pool()
    second = await pool_provider.get_pool()
    assert first is second is fake_pool
    assert len(pool_factory.calls) == 1


async def test_concurrent_first_calls_construct_once(settings, fake_pool):
    calls = []

    async def slow_factory(**kwargs):
        calls.append(kwargs)
        await asyncio.sleep(0.01)
        return fake_pool

    provider = PoolProvider(settings, factory=slow_factory)
    pools = await asyncio.gather(*(provider.get_pool() for _ in range(20)))
    assert len(calls) == 1
    assert all(pool is fake_pool for pool in pools)


async def test_factory_receives_pool_settings(pool_provider, pool_factory, settings):
    await pool_provider.get_pool()
    kwargs = pool_factory.calls[0]
    assert kwargs["dsn"] == settings.database_url
    assert kwargs["min_size"] == settings.db_pool_min
    assert kwargs["max_size"] == settings.db_pool_max
    assert kwargs["command_timeout"] == settings.db_command_timeout


async def test_failed_creation_is_raised_and_not_cached(settings, fake_pool):
    attempts = []

    async def flaky(**kwargs):
        attempts.append(kwargs)
        if len(attempts) == 1:
            raise ConnectionRefusedError("refused")
        return fake_pool

    provider = PoolProvider(settings, factory=flaky)
    with pytest.raises(DependencyError) as excinfo:
        await provider.get_pool()
    assert isinstance(excinfo.value.__cause__, ConnectionRefusedError)
    assert provider.is_initialized is False

    assert await provider.get_pool() is fake_pool
    assert len(attempts) == 2


async def test_unconfigured_database_raises_dependency_error():
    provider = PoolProvider(Settings())
    with pytest.raises(DependencyError):
        await provider.get_pool()


async def test_close_releases_pool(pool_provider, fake_pool):
    await pool_provider.get_pool()
    await pool_provider.close()
    assert fake_pool.closed is True
    assert pool_provider.is_initialized is False
    # Closing twice is harmless.
    await pool_provider.close()


async def test_execute_script_uses_one_connection_and_releases_it(pool_provider, fake_pool):
    await pool_provider.execute_script(["SELECT 1", "SELECT 2"])
    assert [sql for sql, _ in fake_pool.statements] == ["SELECT 1", "SELECT 2"]
    assert fake_pool.acquired == fake_pool.released == 1


async def test_fetch_helpers_return_dicts(pool_provider, fake_pool):
    fake_pool.rows = [{"id": 1}, [{"id": 2}, {"id": 3}]]
    assert await pool_provider.fetch_one("SELECT 1") == {"id": 1}
    assert await pool_provider.fetch_all("SELECT 2") == [{"id": 2}, {"id": 3}]
    assert await pool_provider.fetch_one("SELECT 3") is None


def test_database_url_from_parts():
    settings = Settings(db_host="db", db_port=5433, db_user="ats", db_password="p@ss", db_database="ats")
    assert database_url(settings) == "postgresql://ats:p%40ss@db:5433/ats"


def test_database_url_drops_sslmode():
    settings = Settings(database_url="postgresql://u:p@h/db?sslmode=require&application_name=api")
    assert database_url(settings) == "postgresql://u:p@h/db?application_name=api"
