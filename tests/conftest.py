"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Dict, Any, List, Optional
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from stream_harness.clients.kinesis_producer import UserRecordResult
from stream_harness.config.settings import (
    AWSConfig,
    HarnessSettings,
    HealthConfig,
    ProducerConfig,
    PublisherConfig,
    StreamConfig,
)


class FakeProducer:
    """Stand-in for KinesisProducer whose records are resolved by the test."""

    def __init__(self):
        self.records: List[Dict[str, Any]] = []
        self.started = False
        self.destroyed = False
        self.flush_error: Optional[Exception] = None

    async def start(self):
        self.started = True

    def add_user_record(self, stream_name, partition_key, data, explicit_hash_key=None):
        future = asyncio.get_running_loop().create_future()
        self.records.append({
            'stream_name': stream_name,
            'partition_key': partition_key,
            'data': data,
            'future': future
        })
        return future

    def outstanding_records_count(self) -> int:
        return sum(1 for r in self.records if not r['future'].done())

    async def flush_sync(self):
        if self.flush_error:
            raise self.flush_error
        await asyncio.gather(*(r['future'] for r in self.records))

    async def destroy(self):
        self.destroyed = True

    def resolve(self, index: int, successful: bool = True):
        self.records[index]['future'].set_result(UserRecordResult(
            successful=successful,
            attempts=1,
            shard_id='shardId-000000000000' if successful else None,
            sequence_number=str(index) if successful else None,
            error=None if successful else 'InternalFailure: boom'
        ))


@pytest.fixture
def test_settings() -> HarnessSettings:
    """Create test configuration with short timings."""
    return HarnessSettings(
        service_name="test-harness",
        environment="local",
        stream=StreamConfig(
            name="test-stream",
            shard_count=1,
            creation_timeout_seconds=1.0,
            poll_interval_seconds=0.01
        ),
        aws=AWSConfig(
            region="us-east-1",
            endpoint_url="http://localhost:4566"
        ),
        producer=ProducerConfig(
            batch_size=10,
            flush_interval_seconds=0.05,
            max_attempts=3,
            initial_backoff_seconds=0.0,
            jitter=False
        ),
        publisher=PublisherConfig(interval_seconds=0.05),
        health=HealthConfig(host="127.0.0.1", port=0)
    )


@pytest.fixture
def mock_kinesis_client():
    """Mock boto3 Kinesis client."""
    client = Mock()
    client.describe_stream = Mock()
    client.create_stream = Mock(return_value={})
    client.delete_stream = Mock(return_value={})
    client.put_records = Mock()
    return client


@pytest.fixture
def client_error():
    """Factory for botocore ClientError instances."""
    def _create_error(code: str, operation: str = 'DescribeStream', message: str = 'error'):
        return ClientError(
            error_response={'Error': {'Code': code, 'Message': message}},
            operation_name=operation
        )
    return _create_error


@pytest.fixture
def describe_response():
    """Factory for DescribeStream responses."""
    def _create_response(status: str, name: str = 'test-stream'):
        return {
            'StreamDescription': {
                'StreamName': name,
                'StreamStatus': status,
                'Shards': [],
                'HasMoreShards': False
            }
        }
    return _create_response


@pytest.fixture
def put_records_ok():
    """put_records side effect acknowledging every record."""
    def _put_records(StreamName, Records):
        return {
            'FailedRecordCount': 0,
            'Records': [
                {'ShardId': 'shardId-000000000000', 'SequenceNumber': str(1000 + i)}
                for i, _ in enumerate(Records)
            ]
        }
    return _put_records


@pytest.fixture
def fake_producer() -> FakeProducer:
    return FakeProducer()
