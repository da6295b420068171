"""Tests for record publishing and draining."""

import asyncio
import logging

import pytest

from stream_harness.errors import EncodingFault, FlushFault
from stream_harness.publisher import PublishTask, RecordPublisher


@pytest.fixture
def publisher(fake_producer):
    return RecordPublisher(fake_producer, "test-stream")


class TestPublishTask:

    def test_payload_is_encoded_message(self):
        task = PublishTask(sequence=3, message="Message 3")

        assert task.payload() == b"Message 3"

    def test_unencodable_payload_raises_encoding_fault(self):
        task = PublishTask(sequence=1, message="Message \ud800")

        with pytest.raises(EncodingFault):
            task.payload("utf-8")

    def test_task_is_immutable(self):
        task = PublishTask(sequence=0, message="Message 0")

        with pytest.raises(AttributeError):
            task.sequence = 5


class TestRecordPublisher:

    @pytest.mark.asyncio
    async def test_submit_hands_record_to_producer(self, publisher, fake_producer):
        publisher.submit(PublishTask(sequence=0, message="Message 0"))

        assert len(fake_producer.records) == 1
        record = fake_producer.records[0]
        assert record['stream_name'] == "test-stream"
        assert record['partition_key'] == "Message 0"
        assert record['data'] == b"Message 0"
        assert not record['future'].done()

    @pytest.mark.asyncio
    async def test_encoding_fault_drops_record(self, publisher, fake_producer, caplog):
        publisher.submit(PublishTask(sequence=0, message="Message \ud800"))
        publisher.submit(PublishTask(sequence=1, message="Message 1"))

        assert [r['partition_key'] for r in fake_producer.records] == ["Message 1"]
        assert "Dropping record" in caplog.text

    @pytest.mark.asyncio
    async def test_failed_delivery_is_logged(self, publisher, fake_producer, caplog):
        publisher.submit(PublishTask(sequence=7, message="Message 7"))

        with caplog.at_level(logging.ERROR, logger="stream_harness.publisher"):
            fake_producer.resolve(0, successful=False)
            await asyncio.sleep(0)

        assert "Record 7 failed" in caplog.text

    @pytest.mark.asyncio
    async def test_flush_and_close_waits_for_pending_records(self, publisher, fake_producer):
        for i in range(3):
            publisher.submit(PublishTask(sequence=i, message=f"Message {i}"))

        close = asyncio.create_task(publisher.flush_and_close())

        await asyncio.sleep(0.01)
        assert not close.done()

        fake_producer.resolve(0)
        fake_producer.resolve(1)
        await asyncio.sleep(0.01)
        assert not close.done()
        assert fake_producer.outstanding_records_count() == 1

        fake_producer.resolve(2)
        await asyncio.wait_for(close, timeout=1.0)

        assert fake_producer.outstanding_records_count() == 0
        assert fake_producer.destroyed is True
        assert publisher.closed is True

    @pytest.mark.asyncio
    async def test_flush_failure_still_destroys_producer(self, publisher, fake_producer):
        fake_producer.flush_error = RuntimeError("connection reset")

        with pytest.raises(FlushFault):
            await publisher.flush_and_close()

        assert fake_producer.destroyed is True

    @pytest.mark.asyncio
    async def test_flush_and_close_runs_once(self, publisher, fake_producer):
        await publisher.flush_and_close()
        fake_producer.destroyed = False

        await publisher.flush_and_close()

        assert fake_producer.destroyed is False

    @pytest.mark.asyncio
    async def test_destroy_failure_does_not_mask_flush_failure(self, publisher, fake_producer, caplog):
        fake_producer.flush_error = RuntimeError("connection reset")

        async def broken_destroy():
            raise RuntimeError("destroy broke")

        fake_producer.destroy = broken_destroy

        with pytest.raises(FlushFault) as exc_info:
            await publisher.flush_and_close()

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert str(exc_info.value.__cause__) == "connection reset"
        assert "Error destroying record producer: destroy broke" in caplog.text
