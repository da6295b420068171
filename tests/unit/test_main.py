"""Tests for the service bootstrap."""

import asyncio
import io
import threading
from unittest.mock import AsyncMock, Mock

import pytest

from stream_harness.fault_handler import BackgroundFaultHandler
from stream_harness.lifecycle import HarnessContext
from stream_harness.main import HarnessService
from stream_harness.stream_manager import StreamResourceManager


@pytest.fixture(autouse=True)
def keep_logging_and_hooks(monkeypatch):
    """Leave pytest's log capture and global hooks untouched."""
    monkeypatch.setattr("stream_harness.main.setup_logging", Mock())
    monkeypatch.setattr("stream_harness.main.shutdown_logging", Mock())
    monkeypatch.setattr(threading, "excepthook", threading.excepthook)


@pytest.fixture
def stream_manager():
    manager = Mock(spec=StreamResourceManager)
    manager.ensure = AsyncMock()
    manager.teardown = AsyncMock()
    return manager


@pytest.fixture
def service(test_settings, stream_manager, fake_producer):
    # no ticks during these tests, so shutdown has nothing to drain
    test_settings.publisher.interval_seconds = 60.0
    context = HarnessContext(
        settings=test_settings,
        stream_manager=stream_manager,
        producer_factory=lambda: fake_producer,
        fault_handler=BackgroundFaultHandler(stream=io.StringIO()),
    )
    return HarnessService(context=context)


class TestHarnessService:

    @pytest.mark.asyncio
    async def test_runs_until_shutdown_requested(self, service, stream_manager, fake_producer, capsys):
        run = asyncio.create_task(service.start())
        await asyncio.sleep(0.12)

        assert service.context.initialized
        assert service.health_server.is_running

        service.request_shutdown()
        assert await asyncio.wait_for(run, timeout=2.0) == 0

        assert not service.health_server.is_running
        assert fake_producer.destroyed
        stream_manager.teardown.assert_awaited_once_with("test-stream")
        assert "shutdown complete" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_health_server_failure_exits_with_error(self, service, stream_manager, caplog):
        service.health_server.start = AsyncMock(side_effect=OSError("address already in use"))

        assert await service.start() == 1

        assert "Unable to start health check server" in caplog.text
        stream_manager.teardown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initialize_failure_keeps_serving(self, service, stream_manager):
        stream_manager.ensure.side_effect = RuntimeError("no credentials")

        run = asyncio.create_task(service.start())
        await asyncio.sleep(0.05)

        assert not run.done()
        assert service.health_server.is_running
        assert not service.context.initialized

        service.request_shutdown()
        assert await asyncio.wait_for(run, timeout=2.0) == 0
