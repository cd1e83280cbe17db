"""
Task executor: invokes the handler for a task type under a timeout.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

from ..handlers.base import (
    HandlerLike, HandlerRegistry, TaskResult,
    invoke_async, invoke_blocking, is_async_handler,
)
from ..models.errors import (
    HandlerError, HandlerNotFoundError, HandlerTimeoutError, TaskExecutionError
)
from ..utils.logging import LoggerMixin


def normalize_output(result: Any) -> Dict[str, Any]:
    """Turn a handler return value into a task output mapping."""
    if result is None:
        return {}
    if isinstance(result, dict):
        return result
    return {"result": result}


class TaskExecutor(LoggerMixin):
    """
    Boundary between the scheduler and task-type specific logic.

    Async handlers run on the event loop; plain sync callables run on a
    thread pool so a blocking handler never stalls the scheduler. Every
    failure surfaces as a TaskExecutionError subclass.
    """

    def __init__(self, handlers: Optional[HandlerRegistry] = None, max_workers: int = 8):
        self.handlers = handlers or HandlerRegistry()
        self._thread_pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="task-handler"
        )
        self._closed = False

    def register_handler(self, task_type: str, handler: HandlerLike) -> None:
        self.handlers.register_handler(task_type, handler)

    async def handle(self, task_type: str, input: Dict[str, Any], timeout_seconds: float) -> Dict[str, Any]:
        """
        Run the handler registered for ``task_type``.

        Args:
            task_type: Task type tag
            input: Handler input
            timeout_seconds: Upper bound on the handler's wall-clock time,
                counted from the moment the handler starts running

        Returns:
            The handler output as a mapping

        Raises:
            HandlerNotFoundError: No handler for the task type
            HandlerTimeoutError: The handler did not finish in time
            HandlerError: The handler raised or reported failure
        """
        handler = self.handlers.get_handler(task_type)
        if handler is None:
            raise HandlerNotFoundError(task_type)

        self.log_operation_start("handle", task_type=task_type)
        started = time.monotonic()
        try:
            if is_async_handler(handler):
                result = await asyncio.wait_for(invoke_async(handler, input), timeout=timeout_seconds)
            else:
                result = await self._run_blocking(handler, input, timeout_seconds)
        except asyncio.TimeoutError:
            self.logger.warning("handler_timed_out", task_type=task_type, timeout_seconds=timeout_seconds)
            raise HandlerTimeoutError(task_type, timeout_seconds)
        except TaskExecutionError:
            raise
        except (KeyboardInterrupt, SystemExit):
            raise
        except asyncio.CancelledError as e:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            # Raised by the handler itself, not a cancellation of this attempt
            raise self._handler_failure(task_type, e) from e
        except BaseException as e:
            raise self._handler_failure(task_type, e) from e

        self.log_operation_success(
            "handle", int((time.monotonic() - started) * 1000), task_type=task_type
        )

        if isinstance(result, TaskResult):
            if not result.success:
                raise HandlerError(
                    result.error or f"Handler for {task_type!r} reported failure",
                    task_type=task_type,
                )
            return normalize_output(result.data)

        return normalize_output(result)

    async def _run_blocking(self, handler: HandlerLike, input: Dict[str, Any],
                            timeout_seconds: float) -> Any:
        """Run a sync handler on the thread pool; the timeout starts once a worker picks it up."""
        loop = asyncio.get_running_loop()
        picked_up = asyncio.Event()

        def run():
            loop.call_soon_threadsafe(picked_up.set)
            return invoke_blocking(handler, input)

        future = loop.run_in_executor(self._thread_pool, run)
        waiter = asyncio.ensure_future(picked_up.wait())
        try:
            await asyncio.wait({waiter, future}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            future.cancel()
            raise
        finally:
            waiter.cancel()

        # The worker thread keeps running after a timeout; its result is dropped
        return await asyncio.wait_for(future, timeout=timeout_seconds)

    def _handler_failure(self, task_type: str, error: BaseException) -> HandlerError:
        self.log_operation_error("handle", error, task_type=task_type)
        return HandlerError(
            f"Handler for {task_type!r} raised {type(error).__name__}: {error}",
            task_type=task_type, cause=type(error).__name__,
        )

    def shutdown(self, wait: bool = False) -> None:
        """Stop the handler thread pool; queued sync handlers are dropped."""
        if self._closed:
            return
        self._closed = True
        self._thread_pool.shutdown(wait=wait, cancel_futures=True)
