"""
Agent Orchestration facade.

Composes the agent registry, workflow store, task executor, scheduler and
execution registry behind the public orchestrator operations.
"""

import asyncio
from typing import Dict, List, Optional, Any, Callable, Iterable, Union
from ..handlers.base import HandlerLike, HandlerRegistry
from ..models.core import AgentCapabilities, Execution, ExecutionStatus, WorkflowDefinition
from ..models.errors import OrchestratorError
from ..utils.config import OrchestrationConfig, get_config
from ..utils.logging import get_logger
from ..utils.validation import coerce_model, normalize_capabilities, require_id, require_mapping
from .agent_registry import AgentRegistry
from .execution_registry import ExecutionRegistry
from .executor import TaskExecutor
from .scheduler import TaskScheduler
from .workflow_store import WorkflowStore

ProgressCallback = Callable[[Dict[str, Any]], None]


class ProgressTracker:
    """
    Publishes execution summaries to per-execution callbacks.

    The tracker keeps the most recent summary of each execution so late
    readers can fetch it without taking the execution lock.
    """

    def __init__(self):
        self.logger = get_logger(f"{__name__}.ProgressTracker")
        self._progress_callbacks: Dict[str, List[ProgressCallback]] = {}
        self._latest: Dict[str, Dict[str, Any]] = {}

    def register_progress_callback(self, execution_id: str, callback: ProgressCallback):
        """Register a callback for progress updates."""
        self._progress_callbacks.setdefault(execution_id, []).append(callback)

    def publish(self, execution: Execution):
        """Record the execution's current summary and hand it to its callbacks."""
        summary = execution.get_summary()
        self._latest[execution.execution_id] = summary

        for callback in list(self._progress_callbacks.get(execution.execution_id, [])):
            try:
                callback(dict(summary))
            except Exception as e:
                self.logger.error(
                    "progress_callback_failed",
                    execution_id=execution.execution_id,
                    status=summary["status"],
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def get_progress(self, execution_id: str) -> Optional[Dict[str, Any]]:
        """Get the last published summary for an execution."""
        summary = self._latest.get(execution_id)
        return dict(summary) if summary is not None else None

    def cleanup_execution(self, execution_id: str):
        """Clean up progress tracking for a pruned execution."""
        self._progress_callbacks.pop(execution_id, None)
        self._latest.pop(execution_id, None)


class AgentOrchestrator:
    """
    Orchestrator for declarative multi-agent workflows.

    Registers workflows and agents, starts executions that run concurrently
    on the current event loop, and exposes status lookup and cancellation.
    Construct one instance per embedding application; nothing is global.
    """

    def __init__(self, config: Optional[OrchestrationConfig] = None,
                 handlers: Optional[HandlerRegistry] = None):
        self.config = config or get_config()
        self.logger = get_logger(__name__)

        # Core components
        self.progress_tracker = ProgressTracker()
        self.agent_registry = AgentRegistry(self.config.default_agent_max_concurrent_tasks)
        self.workflow_store = WorkflowStore()
        self.executor = TaskExecutor(handlers, self.config.handler_thread_pool_size)
        self.execution_registry = ExecutionRegistry(
            max_retained=self.config.max_retained_executions,
            retention_seconds=self.config.execution_retention_seconds,
            on_change=self.progress_tracker.publish,
            on_remove=self.progress_tracker.cleanup_execution,
        )
        self.scheduler = TaskScheduler(
            self.agent_registry,
            self.executor,
            self.execution_registry,
            poll_interval_seconds=self.config.dispatch_poll_interval_seconds,
        )

        self._shutdown = False

    def _ensure_running(self):
        if self._shutdown:
            raise OrchestratorError("Orchestrator has been shut down")

    # Workflows

    def register_workflow(self, definition: Union[WorkflowDefinition, Dict[str, Any]]) -> str:
        """
        Register a workflow definition, replacing any with the same id.

        Args:
            definition: WorkflowDefinition or its mapping form

        Returns:
            The workflow id

        Raises:
            InvalidWorkflowError: If the definition is malformed
            CyclicDependencyError: If its dependencies contain a cycle
        """
        workflow = coerce_model(definition, WorkflowDefinition, "workflow")
        self.workflow_store.register_workflow(workflow)
        return workflow.id

    def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        require_id(workflow_id, "workflow_id")
        workflow = self.workflow_store.get(workflow_id)
        return workflow.model_copy(deep=True) if workflow else None

    def list_workflows(self) -> List[str]:
        return self.workflow_store.list_workflows()

    # Executions

    async def execute_workflow(self, workflow_id: str,
                               parameters: Optional[Dict[str, Any]] = None) -> str:
        """
        Start a new execution of a registered workflow.

        Returns immediately; tasks run in the background.

        Returns:
            The new execution id

        Raises:
            WorkflowNotFoundError: If no workflow has this id
        """
        self._ensure_running()
        require_id(workflow_id, "workflow_id")
        parameters = require_mapping(parameters, "parameters")

        definition, graph = self.workflow_store.resolve(workflow_id)
        record = self.execution_registry.create(definition, graph, parameters)
        if not record.execution.is_terminal:
            self.scheduler.start(record)
        else:
            self.execution_registry.notify(record)

        self.logger.info("execution_started", execution_id=record.execution_id, workflow_id=workflow_id)
        return record.execution_id

    async def get_execution_status(self, execution_id: str) -> Optional[Execution]:
        """Get a consistent snapshot of an execution, or None if unknown."""
        require_id(execution_id, "execution_id")
        return await self.execution_registry.snapshot(execution_id)

    async def cancel_execution(self, execution_id: str) -> bool:
        """
        Cancel an execution. Cancelling a finished execution does nothing.

        Returns:
            True if this call cancelled the execution

        Raises:
            ExecutionNotFoundError: If the id is not tracked
        """
        require_id(execution_id, "execution_id")
        return await self.execution_registry.cancel(execution_id)

    async def wait_for_execution(self, execution_id: str, timeout: Optional[float] = None) -> Execution:
        """Wait for an execution to reach a terminal status and return it."""
        require_id(execution_id, "execution_id")
        return await self.execution_registry.wait(execution_id, timeout)

    def list_executions(self, workflow_id: Optional[str] = None,
                        status: Optional[ExecutionStatus] = None) -> List[Dict[str, Any]]:
        return self.execution_registry.list_executions(workflow_id, status)

    def prune_executions(self, max_age_seconds: Optional[float] = None) -> int:
        """Drop finished executions, optionally only those older than an age."""
        return self.execution_registry.prune(max_age_seconds)

    def register_progress_callback(self, execution_id: str, callback: ProgressCallback):
        """
        Register a callback receiving the execution summary on every change.

        Raises:
            ExecutionNotFoundError: If the id is not tracked
        """
        require_id(execution_id, "execution_id")
        self.execution_registry.require(execution_id)
        self.progress_tracker.register_progress_callback(execution_id, callback)

    async def get_execution_progress(self, execution_id: str) -> Optional[Dict[str, Any]]:
        return self.progress_tracker.get_progress(execution_id)

    # Agents and handlers

    def register_agent(self, agent_id: str,
                       capabilities: Union[AgentCapabilities, Dict[str, Any], Iterable[str]]) -> None:
        """
        Register an agent or replace its capability declaration.

        Args:
            agent_id: Agent identifier
            capabilities: AgentCapabilities, its mapping form, or an iterable of tags
        """
        require_id(agent_id, "agent_id")
        if isinstance(capabilities, (AgentCapabilities, dict)):
            declaration = coerce_model(capabilities, AgentCapabilities, "capabilities")
        else:
            declaration = AgentCapabilities(capabilities=normalize_capabilities(capabilities))
        self.agent_registry.register_agent(agent_id, declaration)

    def unregister_agent(self, agent_id: str) -> None:
        """Remove an agent; unknown ids are ignored. Running tasks are unaffected."""
        require_id(agent_id, "agent_id")
        self.agent_registry.unregister_agent(agent_id)

    def register_handler(self, task_type: str, handler: HandlerLike) -> None:
        """Register the handler invoked for tasks of ``task_type``."""
        require_id(task_type, "task_type")
        self.executor.register_handler(task_type, handler)

    # Lifecycle

    def get_orchestrator_status(self) -> Dict[str, Any]:
        """Get overall orchestrator status and metrics."""
        records = self.execution_registry.records()
        by_status = {status.value: 0 for status in ExecutionStatus}
        for record in records:
            by_status[record.execution.status.value] += 1

        return {
            "shutdown": self._shutdown,
            "workflows": len(self.workflow_store),
            "executions": by_status,
            "in_flight_attempts": sum(record.in_flight() for record in records),
            "handlers": self.executor.handlers.list_handlers(),
            "agents": self.agent_registry.get_registry_status(),
        }

    async def shutdown(self):
        """Stop every scheduler and in-flight attempt and release resources."""
        if self._shutdown:
            return
        self.logger.info("orchestrator_shutting_down")
        self._shutdown = True

        pending = []
        for record in self.execution_registry.records():
            if not record.execution.is_terminal:
                await self.execution_registry.cancel(record.execution_id)
            if record.runner is not None and not record.runner.done():
                pending.append(record.runner)
            pending.extend(t for t in record.attempts if not t.done())

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self.executor.shutdown()
        self.logger.info("orchestrator_shutdown_complete")
