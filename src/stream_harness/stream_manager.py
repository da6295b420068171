"""
Kinesis stream lifecycle management.

The stream is created on demand and torn down on shutdown. Creation is not
atomic remotely: a freshly created stream can be reported as missing for a
while and stays CREATING until it turns ACTIVE. Both are normal transient
states. A stream found in DELETING can be neither reused nor recreated.

    ABSENT --create--> CREATING --poll(active)--> ACTIVE
    CREATING --poll(timeout)--> ProvisioningTimeout
    DELETING --> ResourceConflict
    ACTIVE --teardown--> deleted
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from botocore.exceptions import BotoCoreError, ClientError

from .errors import (
    ProvisioningTimeout,
    ResourceConflict,
    StreamQueryError,
    TeardownFault,
    TransientQueryFault,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 10.0


class StreamState(str, Enum):
    ABSENT = "ABSENT"
    CREATING = "CREATING"
    ACTIVE = "ACTIVE"
    DELETING = "DELETING"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_status(cls, status: str) -> "StreamState":
        """Map a Kinesis StreamStatus to a lifecycle state."""
        try:
            state = cls(status)
        except ValueError:
            return cls.UNKNOWN
        # ABSENT is never reported by the API, only inferred from not-found
        return cls.UNKNOWN if state is cls.ABSENT else state


@dataclass(frozen=True)
class StreamResource:
    """The stream this process manages."""
    name: str
    shard_count: int

    def __post_init__(self):
        if self.shard_count < 1:
            raise ValueError(f"Shard count must be positive, got {self.shard_count}")


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class StreamResourceManager:
    """Creates, describes and deletes a Kinesis stream.

    Boto3 calls block, so each one runs in the default executor to keep the
    event loop serving other tasks.
    """

    def __init__(self, kinesis_client, poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS):
        self.kinesis_client = kinesis_client
        self.poll_interval = poll_interval

    async def _call(self, method: str, **kwargs):
        func = getattr(self.kinesis_client, method)
        return await asyncio.get_event_loop().run_in_executor(None, lambda: func(**kwargs))

    async def describe_state(self, name: str) -> StreamState:
        """Query the current state of a stream.

        Raises:
            ClientError, BotoCoreError: For anything other than not-found
        """
        try:
            response = await self._call("describe_stream", StreamName=name)
        except ClientError as e:
            if _error_code(e) == "ResourceNotFoundException":
                return StreamState.ABSENT
            raise

        status = response["StreamDescription"]["StreamStatus"]
        return StreamState.from_status(status)

    async def ensure(self, name: str, shard_count: int, creation_timeout: float) -> None:
        """Make sure the stream exists and is ACTIVE.

        Args:
            name: Stream name
            shard_count: Shards to create the stream with if it is missing
            creation_timeout: Seconds to wait for the stream to become ACTIVE

        Raises:
            ResourceConflict: If the stream is being deleted
            ProvisioningTimeout: If the stream does not become ACTIVE in time
            StreamQueryError: If the stream cannot be described or created
        """
        resource = StreamResource(name=name, shard_count=shard_count)
        logger.info(f"Ensuring Kinesis stream {resource.name} exists")

        try:
            state = await self.describe_state(resource.name)
        except (ClientError, BotoCoreError) as e:
            raise StreamQueryError(f"Error describing stream {resource.name}") from e

        if state is StreamState.DELETING:
            raise ResourceConflict(
                f"Stream {resource.name} is in DELETING state, can't use existing stream "
                f"and can't create new stream"
            )

        if state is StreamState.ACTIVE:
            logger.info(f"Stream {resource.name} is already ACTIVE")
            return

        if state is StreamState.ABSENT:
            await self._create(resource)
        else:
            logger.info(f"Found existing stream {resource.name} in state {state.value}")

        await self._wait_for_active(resource.name, creation_timeout)
        logger.info(f"Stream {resource.name} is ACTIVE")

    async def _create(self, resource: StreamResource) -> None:
        logger.info(f"Stream {resource.name} does not exist, creating it with {resource.shard_count} shard(s)")
        try:
            await self._call(
                "create_stream",
                StreamName=resource.name,
                ShardCount=resource.shard_count
            )
        except ClientError as e:
            if _error_code(e) == "ResourceInUseException":
                # Someone else created it between our describe and create
                logger.info(f"Stream {resource.name} is already being created")
                return
            raise StreamQueryError(f"Error creating stream {resource.name}") from e
        except BotoCoreError as e:
            raise StreamQueryError(f"Error creating stream {resource.name}") from e

    async def _poll_once(self, name: str) -> StreamState:
        try:
            state = await self.describe_state(name)
        except (ClientError, BotoCoreError) as e:
            raise StreamQueryError(f"Error creating stream {name}") from e

        if state is StreamState.ABSENT:
            raise TransientQueryFault(f"Stream {name} not visible yet")
        return state

    async def _wait_for_active(self, name: str, timeout: float) -> None:
        logger.debug(f"Waiting for stream {name} to become ACTIVE...")

        loop = asyncio.get_event_loop()
        deadline = loop.time() + timeout

        while loop.time() < deadline:
            await asyncio.sleep(self.poll_interval)

            try:
                state = await self._poll_once(name)
            except TransientQueryFault:
                logger.debug(f"Stream {name} not found yet, still waiting")
                continue

            logger.debug(f"Current stream status: {state.value}")
            if state is StreamState.ACTIVE:
                return

        raise ProvisioningTimeout(f"Stream {name} never became active within {timeout}s")

    async def teardown(self, name: str) -> None:
        """Delete the stream. A stream that is already gone is not an error.

        Raises:
            TeardownFault: If the delete request fails
        """
        logger.info(f"Destroying Kinesis stream {name}...")
        try:
            await self._call("delete_stream", StreamName=name)
        except ClientError as e:
            if _error_code(e) == "ResourceNotFoundException":
                logger.warning(f"Kinesis stream {name} not found")
                return
            raise TeardownFault(f"Error deleting stream {name}") from e
        except BotoCoreError as e:
            raise TeardownFault(f"Error deleting stream {name}") from e

        logger.info(f"Deleted Kinesis stream {name}")
