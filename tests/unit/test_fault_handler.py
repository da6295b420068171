"""Tests for the last-resort fault handler."""

import asyncio
import io
import threading

import pytest

from stream_harness.fault_handler import BackgroundFaultHandler


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def handler(stream):
    return BackgroundFaultHandler(stream=stream)


class TestBackgroundFaultHandler:

    def test_handle_writes_stderr_and_log(self, handler, stream, caplog):
        try:
            raise ValueError("bad tick")
        except ValueError as e:
            handler.handle(e, "publish-tick")

        assert "Uncaught exception in publish-tick" in stream.getvalue()
        assert "ValueError: bad tick" in stream.getvalue()
        assert "Uncaught exception in publish-tick" in caplog.text

    def test_handle_survives_broken_stream(self, caplog):
        broken = io.StringIO()
        broken.close()

        BackgroundFaultHandler(stream=broken).handle(RuntimeError("boom"), "worker")

        assert "Uncaught exception in worker" in caplog.text

    @pytest.mark.asyncio
    async def test_supervise_catches_sync_and_async_faults(self, handler, stream):
        async def failing():
            raise RuntimeError("async failure")

        def also_failing():
            raise KeyError("sync failure")

        await handler.supervise(failing, "async-task")
        await handler.supervise(also_failing, "sync-task")

        assert "async-task" in stream.getvalue()
        assert "sync-task" in stream.getvalue()

    @pytest.mark.asyncio
    async def test_loop_exception_handler(self, handler, stream):
        loop = asyncio.get_running_loop()
        previous = loop.get_exception_handler()
        handler.install(loop)
        try:
            loop.call_exception_handler({
                "message": "Task exception was never retrieved",
                "exception": RuntimeError("lost task"),
            })
        finally:
            loop.set_exception_handler(previous)

        assert "RuntimeError: lost task" in stream.getvalue()

    @pytest.mark.asyncio
    async def test_thread_exceptions_are_captured(self, handler, stream, monkeypatch):
        monkeypatch.setattr(threading, "excepthook", threading.excepthook)
        handler.install(asyncio.get_running_loop())

        def explode():
            raise RuntimeError("thread failure")

        worker = threading.Thread(target=explode, name="worker")
        worker.start()
        worker.join()

        asyncio.get_running_loop().set_exception_handler(None)
        assert "Uncaught exception in thread worker" in stream.getvalue()
