"""
Pluggable task handlers for the agent orchestrator.
"""

from .base import (
    BaseTaskHandler,
    TaskResult,
    HandlerRegistry,
    HandlerLike,
    is_async_handler,
)

__all__ = [
    'BaseTaskHandler',
    'TaskResult',
    'HandlerRegistry',
    'HandlerLike',
    'is_async_handler',
]
