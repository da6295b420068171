"""Last-resort handling of exceptions that escape background work."""

import asyncio
import inspect
import logging
import sys
import threading
import traceback
from typing import Any, Callable, Dict

from .errors import UnhandledBackgroundFault

logger = logging.getLogger(__name__)


class BackgroundFaultHandler:
    """Reports faults from background tasks and threads without stopping the process.

    Every fault goes to the interpreter's original stderr first, which works
    even when logging is broken or already shut down, and then to the log.
    """

    def __init__(self, stream=None):
        self._stream = stream

    def handle(self, error: BaseException, origin: str) -> None:
        fault = UnhandledBackgroundFault(origin, error)

        # Last resort, in case logging doesn't work
        try:
            stream = self._stream or sys.__stderr__
            print(f"Uncaught exception in {origin}", file=stream)
            traceback.print_exception(type(error), error, error.__traceback__, file=stream)
            stream.flush()
        except Exception:
            pass

        logger.error(str(fault), exc_info=(type(error), error, error.__traceback__))

    async def supervise(self, func: Callable[[], Any], origin: str) -> None:
        """Run one invocation of func, reporting any exception it raises."""
        try:
            result = func()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.handle(e, origin)

    def _loop_exception_handler(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        error = context.get("exception")
        if error is None:
            loop.default_exception_handler(context)
            return

        task = context.get("task") or context.get("future")
        origin = task.get_name() if isinstance(task, asyncio.Task) else "event loop"
        self.handle(error, origin)

    def _thread_excepthook(self, args) -> None:
        if issubclass(args.exc_type, SystemExit):
            return
        name = args.thread.name if args.thread is not None else "unknown"
        error = args.exc_value if args.exc_value is not None else args.exc_type()
        self.handle(error, f"thread {name}")

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """Register for asyncio task faults and uncaught thread exceptions."""
        loop.set_exception_handler(self._loop_exception_handler)
        threading.excepthook = self._thread_excepthook
        logger.debug("Background fault handler installed")
