"""
Unit tests for orchestrator data models.
"""

import pytest
from pydantic import ValidationError

from agent_orchestrator.models.core import (
    AgentRole, AgentRoleType, AgentCapabilities, Execution, ExecutionStatus,
    TaskStatus, TaskType, WorkflowDefinition, WorkflowTask, WorkflowTrigger, TriggerType
)
from agent_orchestrator.models.errors import (
    InvalidStateTransitionError, NoCapableAgentError, HandlerTimeoutError, TaskError,
    ErrorCategory
)


class TestWorkflowTask:
    """Test cases for WorkflowTask model."""

    def test_defaults(self):
        task = WorkflowTask(id="a")
        assert task.status == TaskStatus.PENDING
        assert task.retry_count == 0
        assert task.max_retries == 3
        assert task.timeout_seconds == 30.0
        assert task.name == "a"
        assert task.type == "custom"

    def test_task_type_enum_is_stored_as_string(self):
        task = WorkflowTask(id="a", type=TaskType.LLM_GENERATION)
        assert task.type == "llm_generation"

    def test_retry_count_cannot_exceed_max_retries(self):
        with pytest.raises(ValidationError):
            WorkflowTask(id="a", retry_count=4, max_retries=3)

    def test_invalid_timeout(self):
        with pytest.raises(ValidationError):
            WorkflowTask(id="a", timeout_seconds=0)

    def test_empty_id(self):
        with pytest.raises(ValidationError):
            WorkflowTask(id="")

    def test_happy_path_transitions_are_recorded(self):
        task = WorkflowTask(id="a")
        task.mark_ready()
        task.mark_running("agent-1")
        task.mark_completed({"ok": True})

        assert task.status == TaskStatus.COMPLETED
        assert task.is_terminal
        assert task.attempts == 1
        assert task.assigned_agent == "agent-1"
        assert [h.status for h in task.history] == [
            TaskStatus.READY, TaskStatus.RUNNING, TaskStatus.COMPLETED
        ]
        assert task.execution_time_seconds() is not None

    def test_pending_cannot_jump_to_running(self):
        task = WorkflowTask(id="a")
        with pytest.raises(InvalidStateTransitionError):
            task.mark_running("agent-1")
        assert task.attempts == 0
        assert task.assigned_agent is None

    def test_terminal_states_are_final(self):
        task = WorkflowTask(id="a")
        task.mark_cancelled()
        with pytest.raises(InvalidStateTransitionError):
            task.mark_ready()

    def test_retry_goes_back_to_ready(self):
        task = WorkflowTask(id="a", max_retries=1)
        task.mark_ready()
        task.mark_running("agent-1")
        error = TaskError(error_type="HandlerError", message="boom", retryable=True)
        task.schedule_retry(error)

        assert task.status == TaskStatus.READY
        assert task.retry_count == 1
        assert task.error.message == "boom"

        task.mark_running("agent-1")
        with pytest.raises(InvalidStateTransitionError):
            task.schedule_retry(error)
        assert task.retry_count == 1

    def test_timeout_passes_through_timed_out(self):
        task = WorkflowTask(id="a")
        task.mark_ready()
        task.mark_running("agent-1")
        error = TaskError.from_exception(HandlerTimeoutError("mock", 1.0), attempt=1)
        task.mark_timed_out(error)
        task.schedule_retry(error)

        assert [h.status for h in task.history][-2:] == [TaskStatus.TIMED_OUT, TaskStatus.READY]
        assert task.error.category == ErrorCategory.TIMEOUT


class TestWorkflowDefinition:
    """Test cases for WorkflowDefinition model."""

    def test_valid_definition(self):
        workflow = WorkflowDefinition(
            id="wf",
            agents=[AgentRole(agent_id="a1", capabilities={"x"}, priority=2)],
            tasks=[WorkflowTask(id="t1"), WorkflowTask(id="t2")],
            dependencies=[("t1", "t2")],
            triggers=[WorkflowTrigger(type=TriggerType.WEBHOOK, config={"path": "/hook"})],
        )
        assert workflow.name == "wf"
        assert workflow.dependencies == [("t1", "t2")]
        assert workflow.get_task("t2").id == "t2"
        assert workflow.get_task("missing") is None

    def test_dependencies_accept_from_to_mappings(self):
        workflow = WorkflowDefinition(
            id="wf",
            tasks=[WorkflowTask(id="t1"), WorkflowTask(id="t2")],
            dependencies=[{"from": "t1", "to": "t2"}],
        )
        assert workflow.dependencies == [("t1", "t2")]

    def test_duplicate_task_ids(self):
        with pytest.raises(ValidationError):
            WorkflowDefinition(id="wf", tasks=[WorkflowTask(id="t1"), WorkflowTask(id="t1")])

    def test_duplicate_agent_ids(self):
        with pytest.raises(ValidationError):
            WorkflowDefinition(
                id="wf",
                agents=[AgentRole(agent_id="a1"), AgentRole(agent_id="a1")],
            )

    def test_unknown_dependency_reference(self):
        with pytest.raises(ValidationError):
            WorkflowDefinition(
                id="wf",
                tasks=[WorkflowTask(id="t1")],
                dependencies=[("t1", "ghost")],
            )

    def test_role_parsing(self):
        role = AgentRole.model_validate({"agent_id": "obs", "role": "observer"})
        assert role.role == AgentRoleType.OBSERVER
        assert role.priority == 0

    def test_json_round_trip_shape(self):
        workflow = WorkflowDefinition(
            id="wf",
            tasks=[WorkflowTask(id="t1", required_capabilities={"x"})],
        )
        data = workflow.model_dump(mode="json")
        assert data["tasks"][0]["required_capabilities"] == ["x"]
        assert data["tasks"][0]["status"] == "pending"


class TestAgentCapabilities:

    def test_max_concurrent_tasks_must_be_positive(self):
        with pytest.raises(ValidationError):
            AgentCapabilities(capabilities={"x"}, max_concurrent_tasks=0)

    def test_from_list(self):
        caps = AgentCapabilities(capabilities=["x", "y", "x"])
        assert caps.capabilities == {"x", "y"}
        assert caps.max_concurrent_tasks is None


class TestExecution:
    """Test cases for Execution model."""

    def test_summary_and_progress(self):
        done = WorkflowTask(id="a")
        done.mark_ready()
        done.mark_running("w")
        done.mark_completed({})
        waiting = WorkflowTask(id="b")

        execution = Execution(
            execution_id="e1",
            workflow_id="wf",
            task_states={"a": done, "b": waiting},
        )
        assert execution.status == ExecutionStatus.RUNNING
        assert not execution.is_terminal
        assert execution.calculate_progress_percentage() == 50.0
        assert not execution.all_tasks_completed()

        summary = execution.get_summary()
        assert summary["task_counts"]["completed"] == 1
        assert summary["task_counts"]["pending"] == 1
        assert summary["finished_at"] is None

    def test_mark_finished(self):
        execution = Execution(execution_id="e1", workflow_id="wf")
        error = TaskError.from_exception(NoCapableAgentError("a", {"x"}))
        execution.mark_finished(ExecutionStatus.FAILED, error)

        assert execution.is_terminal
        assert execution.finished_at is not None
        assert execution.error.error_type == "NoCapableAgentError"
        assert execution.duration_seconds() >= 0


class TestTaskError:

    def test_from_orchestrator_error(self):
        error = TaskError.from_exception(NoCapableAgentError("t1", {"b", "a"}), attempt=0)
        assert error.error_type == "NoCapableAgentError"
        assert error.retryable is False
        assert error.category == ErrorCategory.SCHEDULING
        assert error.context["required_capabilities"] == ["a", "b"]

    def test_from_plain_exception(self):
        error = TaskError.from_exception(KeyError("k"), attempt=2)
        assert error.error_type == "KeyError"
        assert error.attempt == 2
        assert error.retryable is False

    def test_retryable_flag_from_handler_errors(self):
        error = TaskError.from_exception(HandlerTimeoutError("mock", 0.5))
        assert error.retryable is True
        assert error.context["timeout_seconds"] == 0.5
