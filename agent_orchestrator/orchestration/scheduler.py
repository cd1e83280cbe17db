"""
Task scheduler: drives one workflow execution through the task state machine.

One scheduler coroutine runs per execution. It repeatedly takes the
execution lock, dispatches every ``ready`` task (in workflow order) to a
capable agent, then sleeps until an attempt finishes, the execution is
cancelled, or, when agents are saturated, a poll interval elapses.

Each attempt runs as its own asyncio task and applies its own outcome
under the execution lock, so the scheduler keeps servicing other work while
handlers are in flight.
"""

import asyncio
import copy
import time
from typing import Any, Dict, Optional

from ..models.core import ExecutionStatus, TaskStatus
from ..models.errors import (
    HandlerError, HandlerTimeoutError, NoCapableAgentError, TaskError, TaskExecutionError
)
from ..utils.logging import LoggerMixin
from .agent_registry import AgentRegistry
from .execution_registry import ExecutionRecord, ExecutionRegistry
from .executor import TaskExecutor


class TaskScheduler(LoggerMixin):
    """Dispatches ready tasks and applies attempt outcomes."""

    def __init__(self, agent_registry: AgentRegistry, executor: TaskExecutor,
                 execution_registry: ExecutionRegistry, poll_interval_seconds: float = 0.05):
        self.agent_registry = agent_registry
        self.executor = executor
        self.execution_registry = execution_registry
        self.poll_interval_seconds = poll_interval_seconds

    def start(self, record: ExecutionRecord) -> asyncio.Task:
        """Start scheduling an execution in the background."""
        record.runner = asyncio.create_task(
            self.run(record), name=f"execution-{record.execution_id}"
        )
        return record.runner

    async def run(self, record: ExecutionRecord) -> None:
        """Scheduling loop for one execution; returns once it is terminal."""
        execution_id = record.execution_id
        log = self.execution_logger(execution_id, workflow_id=record.execution.workflow_id)
        log.info("scheduling_started")

        try:
            while True:
                async with record.lock:
                    if record.execution.is_terminal:
                        break
                    dispatched, blocked = self._dispatch_ready(record)
                    record.wakeup.clear()
                    terminal = record.execution.is_terminal

                if dispatched or terminal:
                    self.execution_registry.notify(record)
                if terminal:
                    break

                if blocked:
                    try:
                        await asyncio.wait_for(record.wakeup.wait(), timeout=self.poll_interval_seconds)
                    except asyncio.TimeoutError:
                        pass
                else:
                    await record.wakeup.wait()

        except asyncio.CancelledError:
            log.info("scheduling_stopped")
            raise
        except Exception as e:
            self.log_operation_error("schedule", e, execution_id=execution_id)
            async with record.lock:
                if not record.execution.is_terminal:
                    self.execution_registry.fail_execution(
                        record, TaskError.from_exception(e)
                    )
            self.execution_registry.notify(record)

    def _dispatch_ready(self, record: ExecutionRecord):
        """
        Start an attempt for every ready task that can get an agent.

        Caller must hold ``record.lock``.

        Returns:
            (dispatched, blocked): whether any attempt started, and whether
            a ready task is waiting on a saturated agent
        """
        execution = record.execution
        dispatched = False
        blocked = False
        log = self.execution_logger(execution.execution_id)

        for task_id in record.graph.task_ids:
            task = execution.task_states[task_id]
            if task.status != TaskStatus.READY:
                continue

            candidates = self.agent_registry.find_capable_agents(
                task.required_capabilities, record.definition.agents
            )
            if not candidates:
                error = TaskError.from_exception(
                    NoCapableAgentError(task.id, task.required_capabilities),
                    attempt=task.attempts,
                )
                task.mark_failed(error)
                log.error("no_capable_agent", task_id=task.id,
                          required_capabilities=sorted(task.required_capabilities))
                self.execution_registry.fail_execution(record, error)
                return dispatched, False

            agent_id = self.agent_registry.acquire(candidates)
            if agent_id is None:
                blocked = True
                continue

            task.mark_running(agent_id)
            payload = copy.deepcopy({**task.input, **execution.parameters})
            attempt = asyncio.create_task(
                self._run_attempt(
                    record, task.id, task.type, payload, task.timeout_seconds,
                    agent_id, task.attempts,
                ),
                name=f"{execution.execution_id}:{task.id}:{task.attempts}",
            )
            record.attempts.add(attempt)
            attempt.add_done_callback(record.attempts.discard)
            dispatched = True

            log.info("task_dispatched", task_id=task.id, attempt=task.attempts, agent_id=agent_id)

        return dispatched, blocked

    async def _run_attempt(self, record: ExecutionRecord, task_id: str, task_type: str,
                           payload: Dict[str, Any], timeout_seconds: float,
                           agent_id: str, attempt: int) -> None:
        """Invoke the handler for one attempt and apply its outcome."""
        started = time.monotonic()
        output: Optional[Dict[str, Any]] = None
        failure: Optional[TaskExecutionError] = None

        try:
            output = await self.executor.handle(task_type, payload, timeout_seconds)
        except asyncio.CancelledError:
            elapsed_ms = (time.monotonic() - started) * 1000
            self.agent_registry.release(agent_id, False, elapsed_ms, "attempt cancelled")
            raise
        except TaskExecutionError as e:
            failure = e
        except Exception as e:
            failure = HandlerError(f"Unexpected executor error: {e}", task_type=task_type)

        elapsed_ms = (time.monotonic() - started) * 1000
        self.agent_registry.release(
            agent_id, failure is None, elapsed_ms, failure.message if failure else None
        )

        async with record.lock:
            self._apply_outcome(record, task_id, attempt, output, failure)
            record.wakeup.set()

        self.execution_registry.notify(record)

    def _apply_outcome(self, record: ExecutionRecord, task_id: str, attempt: int,
                       output: Optional[Dict[str, Any]],
                       failure: Optional[TaskExecutionError]) -> None:
        """Apply an attempt result to the task. Caller must hold ``record.lock``."""
        execution = record.execution
        task = execution.task_states[task_id]
        log = self.execution_logger(execution.execution_id, task_id, attempt=attempt)

        if task.status != TaskStatus.RUNNING or task.attempts != attempt:
            # Cancelled while the handler ran: keep the result, not the status
            if task.status == TaskStatus.CANCELLED and task.attempts == attempt:
                if failure is None:
                    task.output = output
                else:
                    task.error = TaskError.from_exception(failure, attempt)
                log.info("late_result_recorded", succeeded=failure is None)
            return

        if failure is None:
            task.mark_completed(output)
            log.info("task_completed")

            if execution.status != ExecutionStatus.RUNNING:
                return

            completed_ids = [
                tid for tid, t in execution.task_states.items()
                if t.status == TaskStatus.COMPLETED
            ]
            for dependent_id in record.graph.newly_ready(task_id, completed_ids):
                dependent = execution.task_states[dependent_id]
                if dependent.status == TaskStatus.PENDING:
                    dependent.mark_ready()

            if execution.all_tasks_completed():
                self.execution_registry.complete_execution(record)
            return

        error = TaskError.from_exception(failure, attempt)
        if isinstance(failure, HandlerTimeoutError):
            task.mark_timed_out(error)

        can_retry = (
            failure.retryable
            and execution.status == ExecutionStatus.RUNNING
            and task.retry_count < task.max_retries
        )
        if can_retry:
            task.schedule_retry(error)
            log.warning("task_retry_scheduled", error_type=error.error_type,
                        retry_count=task.retry_count, max_retries=task.max_retries)
            return

        task.mark_failed(error)
        log.error("task_failed", error_type=error.error_type, error=error.message)
        if execution.status == ExecutionStatus.RUNNING:
            self.execution_registry.fail_execution(record, error)
