"""
Core Pydantic data models for the agent orchestrator.
"""

from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from typing import List, Optional, Dict, Any, Set, Tuple
from datetime import datetime
from enum import Enum

from .errors import TaskError, InvalidStateTransitionError


class AgentRoleType(str, Enum):
    """Roles an agent can play in a workflow."""
    COORDINATOR = "coordinator"
    EXECUTOR = "executor"
    VALIDATOR = "validator"
    OBSERVER = "observer"


class TaskType(str, Enum):
    """Well-known task handler tags."""
    LLM_GENERATION = "llm_generation"
    DATA_PROCESSING = "data_processing"
    VALIDATION = "validation"
    COORDINATION = "coordination"
    CUSTOM = "custom"


class TaskStatus(str, Enum):
    """Status of a task within an execution."""
    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


TERMINAL_TASK_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})

# Retries re-enter READY straight from RUNNING (handler error) or TIMED_OUT.
_ALLOWED_TRANSITIONS: Dict[TaskStatus, frozenset] = {
    TaskStatus.PENDING: frozenset({TaskStatus.READY, TaskStatus.CANCELLED}),
    TaskStatus.READY: frozenset({TaskStatus.RUNNING, TaskStatus.FAILED, TaskStatus.CANCELLED}),
    TaskStatus.RUNNING: frozenset({
        TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.TIMED_OUT,
        TaskStatus.READY, TaskStatus.CANCELLED,
    }),
    TaskStatus.TIMED_OUT: frozenset({TaskStatus.READY, TaskStatus.FAILED, TaskStatus.CANCELLED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


class ExecutionStatus(str, Enum):
    """Aggregate status of a workflow execution."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TriggerType(str, Enum):
    """Kinds of external workflow triggers."""
    MANUAL = "manual"
    SCHEDULE = "schedule"
    WEBHOOK = "webhook"
    EVENT = "event"


class AgentRole(BaseModel):
    """Declares one agent's participation in a workflow."""
    agent_id: str = Field(..., min_length=1)
    role: AgentRoleType = AgentRoleType.EXECUTOR
    capabilities: Set[str] = Field(default_factory=set)
    priority: int = 0


class AgentCapabilities(BaseModel):
    """Capability declaration submitted when an agent registers."""
    capabilities: Set[str] = Field(default_factory=set)
    max_concurrent_tasks: Optional[int] = Field(None, ge=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TaskTransition(BaseModel):
    """One entry in a task's status history."""
    status: TaskStatus
    at: datetime = Field(default_factory=datetime.now)
    attempt: int = 0
    agent_id: Optional[str] = None


class WorkflowTask(BaseModel):
    """A unit of work, used both as a template and as live execution state."""
    id: str = Field(..., min_length=1)
    name: str = ""
    type: str = Field(default=TaskType.CUSTOM.value, min_length=1)
    required_capabilities: Set[str] = Field(default_factory=set)
    input: Dict[str, Any] = Field(default_factory=dict)
    status: TaskStatus = TaskStatus.PENDING
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    timeout_seconds: float = Field(default=30.0, gt=0)

    # Runtime state, populated on per-execution copies
    assigned_agent: Optional[str] = None
    attempts: int = Field(default=0, ge=0)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    output: Optional[Dict[str, Any]] = None
    error: Optional[TaskError] = None
    history: List[TaskTransition] = Field(default_factory=list)

    @field_validator('type', mode='before')
    @classmethod
    def coerce_task_type(cls, v):
        if isinstance(v, TaskType):
            return v.value
        return v

    @model_validator(mode='after')
    def check_retry_bound(self):
        if self.retry_count > self.max_retries:
            raise ValueError(
                f"retry_count ({self.retry_count}) exceeds max_retries ({self.max_retries})"
            )
        if not self.name:
            self.name = self.id
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES

    def can_transition_to(self, status: TaskStatus) -> bool:
        return status in _ALLOWED_TRANSITIONS[self.status]

    def _check_transition(self, status: TaskStatus):
        if not self.can_transition_to(status):
            raise InvalidStateTransitionError(self.id, self.status.value, status.value)

    def transition_to(self, status: TaskStatus, agent_id: Optional[str] = None):
        """Move to a new status, recording it in the task history."""
        self._check_transition(status)
        self.status = status
        self.history.append(
            TaskTransition(status=status, attempt=self.attempts, agent_id=agent_id or self.assigned_agent)
        )

    def mark_ready(self):
        self.transition_to(TaskStatus.READY)

    def mark_running(self, agent_id: str):
        """Start a new attempt on the given agent."""
        self._check_transition(TaskStatus.RUNNING)
        self.attempts += 1
        self.assigned_agent = agent_id
        self.started_at = datetime.now()
        self.completed_at = None
        self.transition_to(TaskStatus.RUNNING, agent_id)

    def mark_completed(self, output: Dict[str, Any]):
        self._check_transition(TaskStatus.COMPLETED)
        self.output = output
        self.error = None
        self.completed_at = datetime.now()
        self.transition_to(TaskStatus.COMPLETED)

    def mark_timed_out(self, error: TaskError):
        self._check_transition(TaskStatus.TIMED_OUT)
        self.error = error
        self.transition_to(TaskStatus.TIMED_OUT)

    def schedule_retry(self, error: TaskError):
        """Send a failed attempt back to READY for another try."""
        if self.retry_count >= self.max_retries:
            raise InvalidStateTransitionError(self.id, self.status.value, TaskStatus.READY.value)
        self._check_transition(TaskStatus.READY)
        self.error = error
        self.retry_count += 1
        self.transition_to(TaskStatus.READY)

    def mark_failed(self, error: TaskError):
        self._check_transition(TaskStatus.FAILED)
        self.error = error
        self.completed_at = datetime.now()
        self.transition_to(TaskStatus.FAILED)

    def mark_cancelled(self):
        self._check_transition(TaskStatus.CANCELLED)
        self.completed_at = datetime.now()
        self.transition_to(TaskStatus.CANCELLED)

    def execution_time_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


class WorkflowTrigger(BaseModel):
    """External trigger descriptor; stored but not acted on by the core."""
    type: TriggerType = TriggerType.MANUAL
    config: Dict[str, Any] = Field(default_factory=dict)


class WorkflowDefinition(BaseModel):
    """A registered, reusable workflow template."""
    id: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    agents: List[AgentRole] = Field(default_factory=list)
    tasks: List[WorkflowTask] = Field(default_factory=list)
    dependencies: List[Tuple[str, str]] = Field(default_factory=list)
    triggers: List[WorkflowTrigger] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "content-review",
                "name": "Content review",
                "agents": [
                    {"agent_id": "writer", "role": "executor", "capabilities": ["text"], "priority": 1}
                ],
                "tasks": [
                    {"id": "draft", "type": "llm_generation", "required_capabilities": ["text"]},
                    {"id": "check", "type": "validation", "required_capabilities": ["text"]}
                ],
                "dependencies": [["draft", "check"]]
            }
        }
    )

    @field_validator('dependencies', mode='before')
    @classmethod
    def normalize_dependencies(cls, v):
        if v is None:
            return []
        normalized = []
        for dep in v:
            if isinstance(dep, dict):
                normalized.append((dep.get("from"), dep.get("to")))
            else:
                normalized.append(dep)
        return normalized

    @model_validator(mode='after')
    def check_references(self):
        task_ids = [task.id for task in self.tasks]
        duplicates = {tid for tid in task_ids if task_ids.count(tid) > 1}
        if duplicates:
            raise ValueError(f"Duplicate task ids: {', '.join(sorted(duplicates))}")

        agent_ids = [agent.agent_id for agent in self.agents]
        duplicate_agents = {aid for aid in agent_ids if agent_ids.count(aid) > 1}
        if duplicate_agents:
            raise ValueError(f"Duplicate agent ids: {', '.join(sorted(duplicate_agents))}")

        known = set(task_ids)
        for from_id, to_id in self.dependencies:
            if from_id not in known or to_id not in known:
                raise ValueError(f"Dependency ({from_id}, {to_id}) references an unknown task")

        if not self.name:
            self.name = self.id
        return self

    def get_task(self, task_id: str) -> Optional[WorkflowTask]:
        """Get a task template by its ID."""
        return next((task for task in self.tasks if task.id == task_id), None)


class Execution(BaseModel):
    """One run of a workflow definition."""
    execution_id: str = Field(..., min_length=1)
    workflow_id: str = Field(..., min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    task_states: Dict[str, WorkflowTask] = Field(default_factory=dict)
    status: ExecutionStatus = ExecutionStatus.RUNNING
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    error: Optional[TaskError] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != ExecutionStatus.RUNNING

    def get_task(self, task_id: str) -> Optional[WorkflowTask]:
        return self.task_states.get(task_id)

    def tasks_with_status(self, *statuses: TaskStatus) -> List[WorkflowTask]:
        return [task for task in self.task_states.values() if task.status in statuses]

    def all_tasks_completed(self) -> bool:
        return all(task.status == TaskStatus.COMPLETED for task in self.task_states.values())

    def mark_finished(self, status: ExecutionStatus, error: Optional[TaskError] = None):
        """Move the execution into a terminal status."""
        self.status = status
        self.finished_at = datetime.now()
        if error is not None:
            self.error = error

    def calculate_progress_percentage(self) -> float:
        """Share of tasks in a terminal status, 0-100."""
        if not self.task_states:
            return 100.0 if self.is_terminal else 0.0
        finished = len([t for t in self.task_states.values() if t.is_terminal])
        return finished / len(self.task_states) * 100.0

    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def get_summary(self) -> Dict[str, Any]:
        """Get a compact summary of the execution."""
        counts: Dict[str, int] = {status.value: 0 for status in TaskStatus}
        for task in self.task_states.values():
            counts[task.status.value] += 1

        return {
            "execution_id": self.execution_id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds(),
            "progress_percentage": self.calculate_progress_percentage(),
            "total_tasks": len(self.task_states),
            "task_counts": counts,
            "error": self.error.message if self.error else None,
        }
