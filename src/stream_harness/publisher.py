"""Record publishing on top of the Kinesis producer."""

import asyncio
import logging
from dataclasses import dataclass

from .clients.kinesis_producer import KinesisProducer, UserRecordResult
from .errors import EncodingFault, FlushFault

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishTask:
    """One synthetic record, generated once per scheduler tick."""
    sequence: int
    message: str

    def payload(self, encoding: str = "utf-8") -> bytes:
        try:
            return self.message.encode(encoding)
        except UnicodeEncodeError as e:
            raise EncodingFault(
                f"Record {self.sequence} cannot be encoded as {encoding}"
            ) from e


class RecordPublisher:
    """Hands records to the producer and drains it on close.

    submit() never waits for delivery and gives callers no back-pressure
    signal; delivery failures only show up in the logs.
    """

    def __init__(self, producer: KinesisProducer, stream_name: str, encoding: str = "utf-8"):
        self.producer = producer
        self.stream_name = stream_name
        self.encoding = encoding
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, task: PublishTask) -> None:
        """Queue a record for asynchronous delivery."""
        logger.debug(f"Pushing data to Kinesis stream: {task.message}")
        try:
            data = task.payload(self.encoding)
        except EncodingFault as e:
            logger.error(f"Dropping record: {e}", exc_info=True)
            return

        future = self.producer.add_user_record(
            self.stream_name,
            partition_key=task.message,
            data=data
        )
        future.add_done_callback(lambda f: self._log_outcome(task, f))

    def _log_outcome(self, task: PublishTask, future: asyncio.Future) -> None:
        if future.cancelled():
            logger.warning(f"Record {task.sequence} was cancelled before delivery")
            return

        error = future.exception()
        if error is not None:
            logger.error(f"Record {task.sequence} failed: {error}")
            return

        result: UserRecordResult = future.result()
        if result.successful:
            logger.debug(
                f"Record {task.sequence} stored in {result.shard_id} "
                f"as {result.sequence_number}"
            )
        else:
            logger.error(
                f"Record {task.sequence} failed after {result.attempts} attempt(s): {result.error}"
            )

    async def flush_and_close(self) -> None:
        """Drain every submitted record, then release the producer.

        Blocks without a timeout. The producer is destroyed even when the
        flush fails.

        Raises:
            FlushFault: If draining outstanding records failed
        """
        if self._closed:
            return
        self._closed = True

        try:
            logger.debug(
                f"Flushing {self.producer.outstanding_records_count()} outstanding records..."
            )
            await self.producer.flush_sync()
            logger.debug("Flush complete, destroying producer")
        except Exception as e:
            raise FlushFault(f"Error flushing records to {self.stream_name}") from e
        finally:
            # a destroy failure must not mask a FlushFault
            try:
                await self.producer.destroy()
                logger.info("Record producer shut down")
            except Exception as e:
                logger.error(f"Error destroying record producer: {e}", exc_info=True)
