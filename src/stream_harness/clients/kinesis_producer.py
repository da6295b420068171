"""Batching Kinesis producer with per-record completion futures."""

import asyncio
import logging
import time
from typing import Dict, Any, List, Optional, Set
from dataclasses import dataclass, field
from collections import defaultdict

from botocore.exceptions import ClientError

from ..config.settings import ProducerConfig
from ..utils.retry import exponential_backoff

logger = logging.getLogger(__name__)

MAX_PARTITION_KEY_LENGTH = 256
MAX_RECORD_SIZE_BYTES = 1024 * 1024


@dataclass
class UserRecordResult:
    """Final outcome of a single user record."""
    successful: bool
    attempts: int
    shard_id: Optional[str] = None
    sequence_number: Optional[str] = None
    error: Optional[str] = None


@dataclass
class KinesisRecord:
    """Kinesis record wrapper."""
    stream_name: str
    partition_key: str
    data: bytes
    future: asyncio.Future
    explicit_hash_key: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    attempts: int = 0
    last_error: Optional[str] = None


class KinesisProducer:
    """
    Kinesis producer that batches user records and reports each outcome.

    Features:
    - Per-stream batching flushed on size or on a background interval
    - PutRecords partial failures retried with exponential backoff
    - One future per record, resolved once it is acknowledged or finally failed
    - flush_sync() drains every outstanding record before returning
    """

    def __init__(self, kinesis_client, config: ProducerConfig):
        self.kinesis_client = kinesis_client
        self.config = config

        self.batch_size = config.batch_size
        self.flush_interval = config.flush_interval_seconds

        self._batches: Dict[str, List[KinesisRecord]] = defaultdict(list)
        self._outstanding: Set[asyncio.Future] = set()
        self._flush_tasks: Set[asyncio.Task] = set()
        self._running = False
        self._destroyed = False
        self._flush_task: Optional[asyncio.Task] = None

        self.stats = {
            'total_records': 0,
            'total_bytes': 0,
            'failed_records': 0,
            'batches_sent': 0,
            'errors': 0
        }

        logger.info(f"Initialized KinesisProducer with batch_size={self.batch_size}")

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Start the producer with background flush task."""
        if self._running:
            return
        if self._destroyed:
            raise RuntimeError("KinesisProducer has been destroyed")

        self._running = True
        self._flush_task = asyncio.create_task(self._flush_loop())
        logger.info("KinesisProducer started")

    def add_user_record(
        self,
        stream_name: str,
        partition_key: str,
        data: bytes,
        explicit_hash_key: Optional[str] = None
    ) -> asyncio.Future:
        """
        Queue a record for asynchronous delivery.

        Args:
            stream_name: Kinesis stream name
            partition_key: Partition key (1-256 characters)
            data: Record payload
            explicit_hash_key: Optional hash key overriding the partition key hash

        Returns:
            Future resolved with a UserRecordResult once the record is
            acknowledged or has exhausted its retries

        Raises:
            RuntimeError: If the producer has been destroyed
            ValueError: If the partition key or payload violates Kinesis limits
        """
        if self._destroyed:
            raise RuntimeError("KinesisProducer has been destroyed")
        if not partition_key or len(partition_key) > MAX_PARTITION_KEY_LENGTH:
            raise ValueError(
                f"Partition key must be 1-{MAX_PARTITION_KEY_LENGTH} characters, "
                f"got {len(partition_key or '')}"
            )
        if len(data) > MAX_RECORD_SIZE_BYTES:
            raise ValueError(f"Record of {len(data)} bytes exceeds {MAX_RECORD_SIZE_BYTES} bytes")

        future = asyncio.get_running_loop().create_future()
        self._outstanding.add(future)
        future.add_done_callback(self._outstanding.discard)

        self._batches[stream_name].append(KinesisRecord(
            stream_name=stream_name,
            partition_key=partition_key,
            data=data,
            future=future,
            explicit_hash_key=explicit_hash_key
        ))

        if len(self._batches[stream_name]) >= self.batch_size:
            self._spawn_flush(stream_name)

        return future

    def outstanding_records_count(self) -> int:
        """Number of records not yet acknowledged or finally failed."""
        return sum(1 for f in self._outstanding if not f.done())

    async def flush_sync(self):
        """Block until every outstanding record is acknowledged or finally failed."""
        while True:
            pending = [f for f in self._outstanding if not f.done()]
            if not pending:
                break
            logger.debug(f"Flushing {len(pending)} outstanding records")

            await self._flush_all_batches()
            await asyncio.gather(*pending, return_exceptions=True)

    async def destroy(self):
        """Stop background flushing and release resources."""
        if self._destroyed:
            return

        self._destroyed = True
        self._running = False

        if self._flush_task:
            self._flush_task.cancel()
            try:
                await self._flush_task
            except asyncio.CancelledError:
                pass

        for task in list(self._flush_tasks):
            task.cancel()
        if self._flush_tasks:
            await asyncio.gather(*self._flush_tasks, return_exceptions=True)

        abandoned = [f for f in self._outstanding if not f.done()]
        if abandoned:
            logger.warning(f"Destroying producer with {len(abandoned)} undelivered records")
            for future in abandoned:
                future.set_result(UserRecordResult(
                    successful=False, attempts=0, error="Producer destroyed before delivery"
                ))
            self.stats['failed_records'] += len(abandoned)

        self._batches.clear()
        logger.info("KinesisProducer destroyed")

    def _spawn_flush(self, stream_name: str):
        task = asyncio.create_task(self._flush_stream(stream_name))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def _flush_loop(self):
        """Background task to flush batches periodically."""
        while self._running:
            try:
                await asyncio.sleep(self.flush_interval)
                await self._flush_all_batches()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in flush loop: {e}", exc_info=True)

    async def _flush_all_batches(self):
        """Flush all pending batches."""
        streams_to_flush = [name for name, records in self._batches.items() if records]

        if streams_to_flush:
            logger.debug(f"Flushing {len(streams_to_flush)} streams")
            await asyncio.gather(
                *(self._flush_stream(name) for name in streams_to_flush),
                return_exceptions=True
            )

    async def _flush_stream(self, stream_name: str):
        """Flush pending records for a specific stream."""
        records = self._batches.pop(stream_name, [])
        if not records:
            return

        # PutRecords accepts at most batch_size records per call
        for start in range(0, len(records), self.batch_size):
            await self._deliver(stream_name, records[start:start + self.batch_size])

    async def _deliver(self, stream_name: str, records: List[KinesisRecord]):
        """Send a batch, retrying failed records, and resolve every future."""
        try:
            await exponential_backoff(
                lambda: self._send_batch(stream_name, records),
                max_attempts=self.config.max_attempts,
                initial_delay=self.config.initial_backoff_seconds,
                max_delay=self.config.max_backoff_seconds,
                jitter=self.config.jitter,
                exceptions=(ClientError,)
            )
            self.stats['batches_sent'] += 1
        except Exception as e:
            logger.error(f"Failed to deliver batch to {stream_name}: {e}")
            self.stats['errors'] += 1

            for record in records:
                if not record.future.done():
                    record.future.set_result(UserRecordResult(
                        successful=False,
                        attempts=record.attempts,
                        error=record.last_error or str(e)
                    ))
                    self.stats['failed_records'] += 1

    async def _send_batch(self, stream_name: str, records: List[KinesisRecord]):
        """Send the unresolved records of a batch with one PutRecords call."""
        pending = [r for r in records if not r.future.done()]
        if not pending:
            return

        kinesis_records = []
        for record in pending:
            kinesis_record = {
                'Data': record.data,
                'PartitionKey': record.partition_key
            }
            if record.explicit_hash_key:
                kinesis_record['ExplicitHashKey'] = record.explicit_hash_key

            kinesis_records.append(kinesis_record)
            record.attempts += 1

        try:
            response = await asyncio.get_event_loop().run_in_executor(
                None,
                lambda: self.kinesis_client.put_records(
                    StreamName=stream_name,
                    Records=kinesis_records
                )
            )
        except ClientError as e:
            for record in pending:
                record.last_error = str(e)
            raise

        failed_count = 0
        for record, record_result in zip(pending, response.get('Records', [])):
            if 'ErrorCode' in record_result:
                failed_count += 1
                record.last_error = (
                    f"{record_result.get('ErrorCode')}: {record_result.get('ErrorMessage')}"
                )
                logger.warning(f"Record failed: {record.last_error}")
                continue

            record.future.set_result(UserRecordResult(
                successful=True,
                attempts=record.attempts,
                shard_id=record_result.get('ShardId'),
                sequence_number=record_result.get('SequenceNumber')
            ))
            self.stats['total_records'] += 1
            self.stats['total_bytes'] += len(record.data)

        if failed_count or len(response.get('Records', [])) < len(pending):
            raise ClientError(
                error_response={'Error': {
                    'Code': 'PartialFailure',
                    'Message': f"{failed_count} of {len(pending)} records failed"
                }},
                operation_name='PutRecords'
            )

        logger.debug(f"Successfully sent {len(pending)} records to {stream_name}")

    def get_stats(self) -> Dict[str, Any]:
        """Get producer statistics."""
        return {
            'overall': dict(self.stats),
            'outstanding': self.outstanding_records_count(),
            'queue_sizes': {
                stream: len(records)
                for stream, records in self._batches.items()
            }
        }
