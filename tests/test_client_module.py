import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

import client


@pytest.fixture
def fake_settings():
    return SimpleNamespace(log_file="client.log", log_level="INFO")


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch):
    monkeypatch.setattr(client, "configure_logging", MagicMock())


@pytest.mark.asyncio
async def test_run_returns_1_without_identity(monkeypatch, fake_settings):
    monkeypatch.setattr(client, "get_settings", lambda: fake_settings)
    monkeypatch.setattr(
        client,
        "create_engine",
        MagicMock(side_effect=ValueError("CHAT_USER_ID is required")),
    )

    assert await client.run(asyncio.Event()) == 1


@pytest.mark.asyncio
async def test_run_disposes_engine_on_stop(monkeypatch, fake_settings):
    engine = MagicMock()
    engine.start = AsyncMock(return_value=True)
    engine.dispose = AsyncMock()
    monkeypatch.setattr(client, "get_settings", lambda: fake_settings)
    monkeypatch.setattr(client, "create_engine", MagicMock(return_value=engine))

    stop = asyncio.Event()
    task = asyncio.create_task(client.run(stop))
    for _ in range(5):
        await asyncio.sleep(0)
    engine.dispose.assert_not_awaited()
    stop.set()

    assert await task == 0
    engine.start.assert_awaited_once()
    engine.dispose.assert_awaited_once()
    engine.add_change_listener.assert_called_once_with(client._log_state)


@pytest.mark.asyncio
async def test_run_exits_when_channel_cannot_open(monkeypatch, fake_settings):
    engine = MagicMock()
    engine.start = AsyncMock(return_value=False)
    engine.dispose = AsyncMock()
    monkeypatch.setattr(client, "get_settings", lambda: fake_settings)
    monkeypatch.setattr(client, "create_engine", MagicMock(return_value=engine))

    assert await asyncio.wait_for(client.run(asyncio.Event()), timeout=1) == 1
    engine.dispose.assert_awaited_once()


@pytest.mark.asyncio
async def test_stop_during_slow_open_disposes(monkeypatch, fake_settings):
    opened = asyncio.Event()

    async def slow_start():
        await opened.wait()
        return False

    async def dispose():
        opened.set()

    engine = MagicMock()
    engine.start = AsyncMock(side_effect=slow_start)
    engine.dispose = AsyncMock(side_effect=dispose)
    monkeypatch.setattr(client, "get_settings", lambda: fake_settings)
    monkeypatch.setattr(client, "create_engine", MagicMock(return_value=engine))

    stop = asyncio.Event()
    task = asyncio.create_task(client.run(stop))
    for _ in range(5):
        await asyncio.sleep(0)
    stop.set()

    assert await asyncio.wait_for(task, timeout=1) == 0
    engine.dispose.assert_awaited_once()


@pytest.mark.asyncio
async def test_dispose_runs_even_if_start_raises(monkeypatch, fake_settings):
    engine = MagicMock()
    engine.start = AsyncMock(side_effect=RuntimeError("boom"))
    engine.dispose = AsyncMock()
    monkeypatch.setattr(client, "get_settings", lambda: fake_settings)
    monkeypatch.setattr(client, "create_engine", MagicMock(return_value=engine))

    with pytest.raises(RuntimeError):
        await client.run(asyncio.Event())
    engine.dispose.assert_awaited_once()


@pytest.mark.asyncio
async def test_best_effort_swallows_failures():
    async def boom():
        raise RuntimeError("x")

    await client._best_effort("boom", boom())
    await client._best_effort("slow", asyncio.sleep(1), timeout_s=0.01)


def test_log_state_formats_engine():
    engine = SimpleNamespace(
        title="Chat", conversations=(), total_unread=0, active_peer=None, messages=()
    )
    client._log_state(engine)


def test_main_exits_with_run_code(monkeypatch):
    monkeypatch.setattr(client, "run", AsyncMock(return_value=0))
    with pytest.raises(SystemExit) as exc:
        client.main()
    assert exc.value.code == 0
