"""
Base task handler interface and the handler registry.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Union
import asyncio
import inspect
import threading
from datetime import datetime
from pydantic import BaseModel, Field

from ..utils.logging import get_logger

logger = get_logger(__name__)


class TaskResult(BaseModel):
    """Explicit result a handler may return instead of raising."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)
    execution_time_ms: Optional[int] = None


class BaseTaskHandler(ABC):
    """
    Abstract base class for task handlers.

    A handler receives the merged task input and returns the task output.
    Raising any exception marks the attempt as failed; the orchestrator
    decides whether to retry. Blocking work inside handle() belongs on a
    worker thread (asyncio.to_thread); plain sync callables registered
    as handlers are moved to the thread pool automatically.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.__class__.__name__
        self.logger = get_logger(f"agent_orchestrator.handlers.{self.name}")

    @abstractmethod
    async def handle(self, input: Dict[str, Any]) -> Any:
        """
        Execute the handler's work.

        Args:
            input: Task input merged with execution parameters

        Returns:
            A mapping, or any value (wrapped as ``{"result": value}``)
        """

    def validate_input(self, data: Dict[str, Any], required_fields: List[str]) -> bool:
        """
        Validate that required fields are present in input data.

        Raises:
            ValueError: If required fields are missing
        """
        missing_fields = [field for field in required_fields if field not in data]

        if missing_fields:
            raise ValueError(f"Missing required fields: {', '.join(missing_fields)}")

        return True


HandlerLike = Union[BaseTaskHandler, Callable[[Dict[str, Any]], Any]]


def is_async_handler(handler: HandlerLike) -> bool:
    """Whether invoking the handler yields an awaitable rather than blocking."""
    if isinstance(handler, BaseTaskHandler):
        return True
    if inspect.iscoroutinefunction(handler):
        return True
    call = getattr(handler, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


class HandlerRegistry:
    """
    Registry mapping task type tags to handlers.
    """

    def __init__(self):
        self._handlers: Dict[str, HandlerLike] = {}
        self._lock = threading.RLock()

    def register_handler(self, task_type: str, handler: HandlerLike) -> None:
        """
        Register (or replace) the handler for a task type.

        Args:
            task_type: Task type tag, e.g. "llm_generation"
            handler: BaseTaskHandler instance or plain callable taking the input dict
        """
        if not isinstance(handler, BaseTaskHandler) and not callable(handler):
            raise TypeError(f"Handler for {task_type!r} must be callable")
        with self._lock:
            self._handlers[task_type] = handler
        logger.info("handler_registered", task_type=task_type)

    def unregister_handler(self, task_type: str) -> None:
        with self._lock:
            self._handlers.pop(task_type, None)

    def get_handler(self, task_type: str) -> Optional[HandlerLike]:
        """Retrieve the handler for a task type, or None."""
        with self._lock:
            return self._handlers.get(task_type)

    def list_handlers(self) -> List[str]:
        """Get list of task types with a registered handler."""
        with self._lock:
            return list(self._handlers.keys())


async def invoke_async(handler: HandlerLike, input: Dict[str, Any]) -> Any:
    """Call an async handler and await its result."""
    if isinstance(handler, BaseTaskHandler):
        return await handler.handle(input)
    result = handler(input)
    if asyncio.iscoroutine(result) or inspect.isawaitable(result):
        return await result
    return result


def invoke_blocking(handler: HandlerLike, input: Dict[str, Any]) -> Any:
    """Call a blocking handler on the current (worker) thread."""
    result = handler(input)
    if inspect.isawaitable(result):
        if inspect.iscoroutine(result):
            result.close()
        raise TypeError("Blocking handler returned an awaitable; register it as async instead")
    return result
