"""Stream harness service - Kinesis provisioning, periodic publishing and health endpoint."""

import asyncio
import logging
import os
import signal
import sys
from datetime import datetime, timezone
from typing import Optional

from .config.settings import load_settings
from .health import HealthCheckServer
from .lifecycle import HarnessContext, LifecycleCoordinator
from .utils.logging import setup_logging, shutdown_logging


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config/local.yaml"


class HarnessService:
    """Main service wiring the lifecycle coordinator and the health server."""

    def __init__(self, config_file: Optional[str] = None, context: Optional[HarnessContext] = None):
        self.config = load_settings(config_file) if context is None else context.settings

        setup_logging(self.config.logging, self.config.service_name)

        self.context = context or HarnessContext.from_settings(self.config)
        self.coordinator = LifecycleCoordinator()
        self.health_server = HealthCheckServer(
            host=self.config.health.host,
            port=self.config.health.port,
            path=self.config.health.path
        )
        self._shutdown_event = asyncio.Event()
        logger.info(f"{self.config.service_name} starting up...")

    def request_shutdown(self):
        self._shutdown_event.set()

    async def start(self) -> int:
        """Run until a shutdown signal arrives.

        Returns:
            Process exit status
        """
        loop = asyncio.get_running_loop()
        self.coordinator.install_fault_handler(self.context, loop)
        self._setup_signal_handlers(loop)

        await self.coordinator.initialize(self.context)

        try:
            await self.health_server.start()
        except Exception as e:
            logger.critical(f"Unable to start health check server: {e}", exc_info=True)
            await self.shutdown()
            return 1

        await self._shutdown_event.wait()
        await self.shutdown()
        return 0

    def _setup_signal_handlers(self, loop: asyncio.AbstractEventLoop):
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum):
            logger.info(f"Received signal {signum}, initiating shutdown")
            self._shutdown_event.set()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                signal.signal(signum, lambda s, f: loop.call_soon_threadsafe(signal_handler, s))

    async def shutdown(self):
        logger.info(f"Shutting down {self.config.service_name}...")

        try:
            await self.health_server.stop()
        except Exception as e:
            logger.error(f"Error shutting down health check server: {e}", exc_info=True)

        await self.coordinator.shutdown(self.context)
        shutdown_logging()

        print(
            f"{self.config.service_name} shutdown complete at "
            f"{datetime.now(timezone.utc).isoformat()}",
            file=sys.stderr
        )


async def main() -> int:
    """Main entry point."""
    config_file = os.getenv("CONFIG_FILE")
    if config_file is None and os.path.exists(DEFAULT_CONFIG_FILE):
        config_file = DEFAULT_CONFIG_FILE

    service = HarnessService(config_file)

    try:
        return await service.start()
    except Exception as e:
        logger.error(f"Service failed: {e}", exc_info=True)
        return 1


def run():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
