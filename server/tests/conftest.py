"""Shared test fixtures."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

import safeguard.main as main_module
from safeguard.config import AppConfig
from safeguard.core.geo import GeoRiskLookup
from safeguard.core.recorder import EventRecorder
from safeguard.core.stats import EngineStats
from safeguard.queue.asyncio_queue import AsyncioEventQueue
from safeguard.storage.file_storage import FileEventStorage

from fakes import FakeClock, all_channels


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def channels():
    return all_channels()


@pytest.fixture(autouse=True)
def _init_server(tmp_path, fake_clock, channels):
    """Initialize server singletons for every test, using a temp directory."""
    config = AppConfig()
    config.storage.base_dir = str(tmp_path / "data")
    config.logging.level = "warning"
    config.alerts.sharing_duration_seconds = 30.0

    stats = EngineStats(active_window_seconds=config.engine.active_window_seconds)
    queue = AsyncioEventQueue(max_size=config.queue.max_size)
    storage = FileEventStorage(base_dir=config.storage.base_dir)
    recorder = EventRecorder(queue=queue, storage=storage, stats=stats)
    lookup = GeoRiskLookup()
    dispatcher = main_module.build_dispatcher(config, channels, sleep=fake_clock.sleep)
    registry = main_module.build_registry(config, lookup, dispatcher, recorder, stats,
                                          sleep=fake_clock.sleep, clock=fake_clock)

    # Patch module-level singletons
    main_module._config = config
    main_module._stats = stats
    main_module._recorder = recorder
    main_module._lookup = lookup
    main_module._registry = registry

    yield

    # Cleanup
    main_module._config = None
    main_module._stats = None
    main_module._recorder = None
    main_module._lookup = None
    main_module._registry = None


@pytest.fixture
async def client():
    from safeguard.main import app

    registry = main_module.get_registry()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    await registry.close_all()
