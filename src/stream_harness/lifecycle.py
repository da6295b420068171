"""Ordered startup and shutdown of stream publishing."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .binaries import ensure_binaries
from .clients.kinesis_producer import KinesisProducer
from .config.aws_config import AWSClientManager
from .config.settings import HarnessSettings
from .fault_handler import BackgroundFaultHandler
from .publisher import RecordPublisher
from .scheduler import PeriodicScheduler, PublishTick
from .stream_manager import StreamResourceManager

logger = logging.getLogger(__name__)


@dataclass
class HarnessContext:
    """Owns every handle that initialize() creates and shutdown() releases."""
    settings: HarnessSettings
    stream_manager: StreamResourceManager
    producer_factory: Callable[[], KinesisProducer]
    fault_handler: BackgroundFaultHandler
    producer: Optional[KinesisProducer] = None
    publisher: Optional[RecordPublisher] = None
    scheduler: Optional[PeriodicScheduler] = None
    tick: Optional[PublishTick] = None
    aws_client_manager: Optional[AWSClientManager] = None
    initialized: bool = False

    @classmethod
    def from_settings(
        cls,
        settings: HarnessSettings,
        aws_client_manager: Optional[AWSClientManager] = None
    ) -> "HarnessContext":
        aws_client_manager = aws_client_manager or AWSClientManager(settings.aws)
        kinesis_client = aws_client_manager.kinesis_client

        return cls(
            settings=settings,
            stream_manager=StreamResourceManager(
                kinesis_client,
                poll_interval=settings.stream.poll_interval_seconds
            ),
            producer_factory=lambda: KinesisProducer(kinesis_client, settings.producer),
            fault_handler=BackgroundFaultHandler(),
            aws_client_manager=aws_client_manager,
        )


class LifecycleCoordinator:
    """Runs startup as stream -> binaries -> publisher -> scheduler and
    shutdown in reverse, with every shutdown step attempted."""

    def __init__(self):
        self._shutdown_done = False

    def install_fault_handler(self, context: HarnessContext, loop: asyncio.AbstractEventLoop) -> None:
        context.fault_handler.install(loop)

    async def initialize(self, context: HarnessContext) -> bool:
        """Bring up stream publishing.

        Failures are logged as fatal but not raised, so the process keeps
        serving health checks.

        Returns:
            True if publishing is running
        """
        settings = context.settings
        logger.info("Initializing stream publishing...")

        try:
            await context.stream_manager.ensure(
                settings.stream.name,
                settings.stream.shard_count,
                settings.stream.creation_timeout_seconds
            )

            ensure_binaries(settings.binaries.specs)

            context.publisher = await self._build_publisher(context)

            context.tick = PublishTick(context.publisher, settings.publisher.message_prefix)
            context.scheduler = PeriodicScheduler(context.fault_handler)
            context.scheduler.start(settings.publisher.interval_seconds, context.tick)
        except Exception as e:
            logger.critical(f"Exception when initializing stream publishing: {e}", exc_info=True)
            return False

        context.initialized = True
        logger.info("Stream publishing initialized successfully")
        return True

    async def _build_publisher(self, context: HarnessContext) -> RecordPublisher:
        logger.info("Initializing record producer...")
        context.producer = context.producer_factory()
        await context.producer.start()
        logger.info(f"Record producer initialized for region {context.settings.aws.region}")

        return RecordPublisher(
            context.producer,
            context.settings.stream.name,
            encoding=context.settings.publisher.encoding
        )

    async def shutdown(self, context: HarnessContext) -> None:
        """Stop the scheduler, drain the producer and delete the stream."""
        if self._shutdown_done:
            logger.warning("Shutdown already performed, ignoring")
            return
        self._shutdown_done = True

        logger.info("Shutting down stream publishing...")

        if context.scheduler is not None:
            try:
                await context.scheduler.stop()
            except Exception as e:
                logger.error(f"Error stopping scheduler: {e}", exc_info=True)

        if context.publisher is not None:
            try:
                await context.publisher.flush_and_close()
            except Exception as e:
                logger.error(f"Error shutting down record publisher: {e}", exc_info=True)
        elif context.producer is not None:
            try:
                await context.producer.destroy()
            except Exception as e:
                logger.error(f"Error destroying record producer: {e}", exc_info=True)

        try:
            await context.stream_manager.teardown(context.settings.stream.name)
        except Exception as e:
            logger.error(f"Error tearing down stream: {e}", exc_info=True)

        if context.aws_client_manager is not None:
            try:
                context.aws_client_manager.close()
            except Exception as e:
                logger.error(f"Error closing Kinesis client: {e}", exc_info=True)

        logger.info("Stream publishing shut down")
