"""
Pytest configuration and fixtures for orchestrator tests.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from agent_orchestrator.handlers.base import BaseTaskHandler
from agent_orchestrator.models.core import (
    AgentRole, AgentRoleType, WorkflowDefinition, WorkflowTask
)
from agent_orchestrator.orchestration.orchestrator import AgentOrchestrator
from agent_orchestrator.utils.config import OrchestrationConfig


class MockHandler(BaseTaskHandler):
    """Mock handler with configurable delay and failures."""

    def __init__(self, name: str = "mock", delay: float = 0.0, fail_times: int = 0,
                 always_fail: bool = False):
        super().__init__(name)
        self.delay = delay
        self.fail_times = fail_times
        self.always_fail = always_fail
        self.execution_count = 0
        self.started: List[str] = []
        self.finished: List[str] = []
        self.inputs: List[Dict[str, Any]] = []

    async def handle(self, input: Dict[str, Any]) -> Any:
        self.execution_count += 1
        self.inputs.append(dict(input))
        label = input.get("label", self.name)
        self.started.append(label)

        delay = input.get("delay", self.delay)
        if delay:
            await asyncio.sleep(delay)

        if self.always_fail or self.execution_count <= self.fail_times:
            raise RuntimeError(f"Mock failure from {self.name} (call {self.execution_count})")

        self.finished.append(label)
        return {"label": label, "call": self.execution_count}


def make_task(task_id: str, capabilities=("compute",), task_type: str = "mock", **kwargs) -> WorkflowTask:
    """Build a task template with a label input for tracing."""
    task_input = kwargs.pop("input", {})
    task_input.setdefault("label", task_id)
    return WorkflowTask(
        id=task_id,
        type=task_type,
        required_capabilities=set(capabilities),
        input=task_input,
        **kwargs
    )


def make_workflow(workflow_id: str, tasks: List[WorkflowTask], dependencies=(),
                  agents: Optional[List[AgentRole]] = None) -> WorkflowDefinition:
    """Build a workflow whose default agent "worker" offers "compute"."""
    if agents is None:
        agents = [AgentRole(agent_id="worker", role=AgentRoleType.EXECUTOR,
                            capabilities={"compute"}, priority=1)]
    return WorkflowDefinition(
        id=workflow_id,
        name=f"Workflow {workflow_id}",
        agents=agents,
        tasks=tasks,
        dependencies=list(dependencies),
    )


@pytest.fixture
def orchestration_config() -> OrchestrationConfig:
    """Configuration with a short poll interval for fast tests."""
    return OrchestrationConfig(dispatch_poll_interval_seconds=0.01, handler_thread_pool_size=4)


@pytest.fixture
def mock_handler() -> MockHandler:
    return MockHandler()


@pytest_asyncio.fixture
async def orchestrator(orchestration_config, mock_handler):
    """Orchestrator with one "worker" agent and the mock handler registered."""
    orch = AgentOrchestrator(orchestration_config)
    orch.register_handler("mock", mock_handler)
    orch.register_agent("worker", ["compute"])
    yield orch
    await orch.shutdown()
