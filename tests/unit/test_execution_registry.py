"""
Unit tests for the execution registry.
"""

import asyncio
from datetime import datetime, timedelta

import pytest

from agent_orchestrator.models.core import (
    ExecutionStatus, TaskStatus, WorkflowDefinition, WorkflowTask
)
from agent_orchestrator.models.errors import ExecutionNotFoundError, TaskError
from agent_orchestrator.orchestration.dependency_graph import DependencyGraph
from agent_orchestrator.orchestration.execution_registry import ExecutionRegistry


def chain_workflow():
    workflow = WorkflowDefinition(
        id="chain",
        tasks=[WorkflowTask(id="a", input={"k": 1}), WorkflowTask(id="b"), WorkflowTask(id="c")],
        dependencies=[("a", "b"), ("b", "c")],
    )
    return workflow, DependencyGraph.from_definition(workflow)


def empty_workflow():
    workflow = WorkflowDefinition(id="empty")
    return workflow, DependencyGraph.from_definition(workflow)


class TestCreate:

    @pytest.mark.asyncio
    async def test_initial_task_states(self):
        registry = ExecutionRegistry()
        record = registry.create(*chain_workflow(), parameters={"p": 2})
        execution = record.execution

        assert execution.status == ExecutionStatus.RUNNING
        assert execution.parameters == {"p": 2}
        assert execution.task_states["a"].status == TaskStatus.READY
        assert execution.task_states["b"].status == TaskStatus.PENDING
        assert execution.task_states["c"].status == TaskStatus.PENDING

    @pytest.mark.asyncio
    async def test_tasks_are_fresh_copies(self):
        registry = ExecutionRegistry()
        workflow, graph = chain_workflow()
        first = registry.create(workflow, graph)
        second = registry.create(workflow, graph)

        first.execution.task_states["a"].input["k"] = 99
        assert second.execution.task_states["a"].input["k"] == 1
        assert workflow.tasks[0].input["k"] == 1
        assert workflow.tasks[0].status == TaskStatus.PENDING
        assert first.execution_id != second.execution_id

    @pytest.mark.asyncio
    async def test_empty_workflow_completes_immediately(self):
        registry = ExecutionRegistry()
        record = registry.create(*empty_workflow())
        assert record.execution.status == ExecutionStatus.COMPLETED
        assert record.finished.is_set()


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_marks_every_open_task(self):
        registry = ExecutionRegistry()
        record = registry.create(*chain_workflow())

        assert await registry.cancel(record.execution_id) is True

        snapshot = await registry.snapshot(record.execution_id)
        assert snapshot.status == ExecutionStatus.CANCELLED
        assert all(t.status == TaskStatus.CANCELLED for t in snapshot.task_states.values())
        assert snapshot.finished_at is not None

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self):
        registry = ExecutionRegistry()
        record = registry.create(*chain_workflow())
        await registry.cancel(record.execution_id)
        finished_at = record.execution.finished_at

        assert await registry.cancel(record.execution_id) is False
        assert record.execution.finished_at == finished_at

    @pytest.mark.asyncio
    async def test_cancel_unknown(self):
        with pytest.raises(ExecutionNotFoundError):
            await ExecutionRegistry().cancel("missing")


class TestLookup:

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self):
        registry = ExecutionRegistry()
        record = registry.create(*chain_workflow())

        snapshot = await registry.snapshot(record.execution_id)
        snapshot.task_states["a"].status = TaskStatus.FAILED
        assert record.execution.task_states["a"].status == TaskStatus.READY
        assert await registry.snapshot("missing") is None

    @pytest.mark.asyncio
    async def test_fail_execution_cancels_unstarted_tasks(self):
        registry = ExecutionRegistry()
        record = registry.create(*chain_workflow())
        record.execution.task_states["a"].mark_running("worker")

        async with record.lock:
            registry.fail_execution(record, TaskError(error_type="HandlerError", message="boom"))

        execution = record.execution
        assert execution.status == ExecutionStatus.FAILED
        assert execution.error.message == "boom"
        assert execution.task_states["a"].status == TaskStatus.RUNNING
        assert execution.task_states["b"].status == TaskStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_wait_timeout(self):
        registry = ExecutionRegistry()
        record = registry.create(*chain_workflow())
        with pytest.raises(asyncio.TimeoutError):
            await registry.wait(record.execution_id, timeout=0.05)

    @pytest.mark.asyncio
    async def test_list_executions_filters(self):
        registry = ExecutionRegistry()
        running = registry.create(*chain_workflow())
        registry.create(*empty_workflow())

        assert len(registry.list_executions()) == 2
        assert [s["workflow_id"] for s in registry.list_executions(workflow_id="empty")] == ["empty"]
        running_ids = [s["execution_id"] for s in registry.list_executions(status=ExecutionStatus.RUNNING)]
        assert running_ids == [running.execution_id]


class TestRetention:

    @pytest.mark.asyncio
    async def test_max_retained_drops_oldest_finished(self):
        removed = []
        registry = ExecutionRegistry(max_retained=2, on_remove=removed.append)
        running = registry.create(*chain_workflow())
        finished = [registry.create(*empty_workflow()) for _ in range(3)]

        assert removed == [finished[0].execution_id]
        assert registry.get_record(running.execution_id) is not None
        assert len(registry) == 3

    @pytest.mark.asyncio
    async def test_running_executions_are_never_pruned(self):
        registry = ExecutionRegistry()
        running = registry.create(*chain_workflow())
        registry.create(*empty_workflow())

        assert registry.prune() == 1
        assert registry.get_record(running.execution_id) is not None

    @pytest.mark.asyncio
    async def test_prune_by_age(self):
        registry = ExecutionRegistry()
        old = registry.create(*empty_workflow())
        recent = registry.create(*empty_workflow())
        old.execution.finished_at = datetime.now() - timedelta(hours=2)

        assert registry.prune(max_age_seconds=3600) == 1
        assert registry.get_record(old.execution_id) is None
        assert registry.get_record(recent.execution_id) is not None

    @pytest.mark.asyncio
    async def test_retention_seconds_applied_on_create(self):
        registry = ExecutionRegistry(retention_seconds=60)
        old = registry.create(*empty_workflow())
        old.execution.finished_at = datetime.now() - timedelta(minutes=5)

        registry.create(*empty_workflow())
        assert registry.get_record(old.execution_id) is None
