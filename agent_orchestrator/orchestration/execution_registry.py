"""
Execution registry: owns every workflow execution and its live task state.

Each execution carries its own asyncio.Lock. Every read of a snapshot and
every task transition happens while holding that lock; executions never
share a lock with each other.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from ..models.core import (
    Execution, ExecutionStatus, TaskStatus, WorkflowDefinition, WorkflowTask
)
from ..models.errors import ExecutionNotFoundError, TaskError
from ..utils.logging import get_logger
from .dependency_graph import DependencyGraph

logger = get_logger(__name__)

# Fields copied from a task template into a fresh per-execution task
_TEMPLATE_FIELDS = {
    "id", "name", "type", "required_capabilities", "input", "max_retries", "timeout_seconds"
}

ChangeCallback = Callable[[Execution], None]
RemoveCallback = Callable[[str], None]


@dataclass
class ExecutionRecord:
    """An execution plus the coordination primitives that guard it."""
    execution: Execution
    definition: WorkflowDefinition
    graph: DependencyGraph
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    wakeup: asyncio.Event = field(default_factory=asyncio.Event)
    finished: asyncio.Event = field(default_factory=asyncio.Event)
    runner: Optional[asyncio.Task] = None
    attempts: Set[asyncio.Task] = field(default_factory=set)

    @property
    def execution_id(self) -> str:
        return self.execution.execution_id

    def in_flight(self) -> int:
        return len([t for t in self.attempts if not t.done()])


class ExecutionRegistry:
    """
    Tracks in-flight and finished executions.

    Finished executions are retained for status lookups until pruned,
    either explicitly, by age, or once more than ``max_retained`` of them
    have accumulated (oldest finished first). Running executions are never
    pruned.
    """

    def __init__(self, max_retained: int = 1000, retention_seconds: Optional[float] = None,
                 on_change: Optional[ChangeCallback] = None,
                 on_remove: Optional[RemoveCallback] = None):
        self.max_retained = max_retained
        self.retention_seconds = retention_seconds
        self._records: Dict[str, ExecutionRecord] = {}
        self._on_change = on_change
        self._on_remove = on_remove

    def create(self, definition: WorkflowDefinition, graph: DependencyGraph,
               parameters: Optional[Dict[str, Any]] = None) -> ExecutionRecord:
        """
        Create an execution with fresh task copies.

        Tasks without dependencies start ``ready``; the rest ``pending``.
        A workflow with no tasks completes immediately.
        """
        task_states: Dict[str, WorkflowTask] = {}
        for template in definition.tasks:
            task = WorkflowTask.model_validate(
                template.model_dump(include=_TEMPLATE_FIELDS)
            )
            task_states[task.id] = task

        for task_id in graph.initial_ready():
            task_states[task_id].mark_ready()

        execution = Execution(
            execution_id=str(uuid.uuid4()),
            workflow_id=definition.id,
            parameters=dict(parameters or {}),
            task_states=task_states,
        )
        record = ExecutionRecord(execution=execution, definition=definition, graph=graph)

        if not task_states:
            self.complete_execution(record)

        self._records[execution.execution_id] = record
        self._enforce_retention()
        logger.info("execution_created", execution_id=execution.execution_id, workflow_id=definition.id)
        return record

    def get_record(self, execution_id: str) -> Optional[ExecutionRecord]:
        return self._records.get(execution_id)

    def require(self, execution_id: str) -> ExecutionRecord:
        """
        Raises:
            ExecutionNotFoundError: If the id is not tracked
        """
        record = self._records.get(execution_id)
        if record is None:
            raise ExecutionNotFoundError(execution_id)
        return record

    async def snapshot(self, execution_id: str) -> Optional[Execution]:
        """Point-in-time deep copy of an execution, or None if unknown."""
        record = self._records.get(execution_id)
        if record is None:
            return None
        async with record.lock:
            return record.execution.model_copy(deep=True)

    async def cancel(self, execution_id: str) -> bool:
        """
        Cancel an execution and all of its unfinished tasks.

        Returns:
            False if the execution had already reached a terminal status

        Raises:
            ExecutionNotFoundError: If the id is not tracked
        """
        record = self.require(execution_id)
        async with record.lock:
            execution = record.execution
            if execution.is_terminal:
                return False

            for task in execution.task_states.values():
                if not task.is_terminal:
                    task.mark_cancelled()

            execution.mark_finished(ExecutionStatus.CANCELLED)
            record.finished.set()
            record.wakeup.set()

        logger.info("execution_cancelled", execution_id=execution_id)
        self.notify(record)
        return True

    def fail_execution(self, record: ExecutionRecord, error: TaskError) -> None:
        """
        Fail an execution fast. Caller must hold ``record.lock``.

        Tasks that have not started are cancelled; running tasks are left
        to finish on their own.
        """
        execution = record.execution
        for task in execution.tasks_with_status(TaskStatus.PENDING, TaskStatus.READY):
            task.mark_cancelled()
        execution.mark_finished(ExecutionStatus.FAILED, error)
        record.finished.set()
        record.wakeup.set()
        logger.error(
            "execution_failed",
            execution_id=execution.execution_id,
            error_type=error.error_type,
            error=error.message,
        )

    def complete_execution(self, record: ExecutionRecord) -> None:
        """Mark an execution completed. Caller must hold ``record.lock``."""
        record.execution.mark_finished(ExecutionStatus.COMPLETED)
        record.finished.set()
        record.wakeup.set()
        logger.info("execution_completed", execution_id=record.execution_id)

    def notify(self, record: ExecutionRecord) -> None:
        """Hand the live execution to the change callback."""
        if self._on_change is not None:
            self._on_change(record.execution)

    async def wait(self, execution_id: str, timeout: Optional[float] = None) -> Execution:
        """
        Wait until an execution reaches a terminal status.

        Raises:
            ExecutionNotFoundError: If the id is not tracked
            asyncio.TimeoutError: If ``timeout`` elapses first
        """
        record = self.require(execution_id)
        await asyncio.wait_for(record.finished.wait(), timeout=timeout)
        async with record.lock:
            return record.execution.model_copy(deep=True)

    def list_executions(self, workflow_id: Optional[str] = None,
                        status: Optional[ExecutionStatus] = None) -> List[Dict[str, Any]]:
        """Summaries of tracked executions, oldest first."""
        summaries = []
        for record in self._records.values():
            execution = record.execution
            if workflow_id is not None and execution.workflow_id != workflow_id:
                continue
            if status is not None and execution.status != status:
                continue
            summaries.append(execution.get_summary())
        return summaries

    def records(self) -> List[ExecutionRecord]:
        return list(self._records.values())

    def prune(self, max_age_seconds: Optional[float] = None) -> int:
        """
        Drop finished executions.

        Args:
            max_age_seconds: Only drop executions finished at least this long
                ago; None drops every finished execution

        Returns:
            Number of executions removed
        """
        cutoff = None
        if max_age_seconds is not None:
            cutoff = datetime.now() - timedelta(seconds=max_age_seconds)

        doomed = [
            execution_id for execution_id, record in self._records.items()
            if record.execution.is_terminal and record.in_flight() == 0
            and (cutoff is None or record.execution.finished_at <= cutoff)
        ]
        for execution_id in doomed:
            self._remove(execution_id)

        if doomed:
            logger.info("executions_pruned", count=len(doomed))
        return len(doomed)

    def _remove(self, execution_id: str) -> None:
        self._records.pop(execution_id, None)
        if self._on_remove is not None:
            self._on_remove(execution_id)

    def _enforce_retention(self) -> None:
        if self.retention_seconds is not None:
            self.prune(self.retention_seconds)

        finished = sorted(
            (r for r in self._records.values()
             if r.execution.is_terminal and r.in_flight() == 0),
            key=lambda r: r.execution.finished_at,
        )
        excess = len(finished) - self.max_retained
        for record in finished[:max(excess, 0)]:
            self._remove(record.execution_id)

    def __len__(self) -> int:
        return len(self._records)
