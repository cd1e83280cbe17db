"""
Agent capability registry for the orchestrator.

Holds the capability declarations of known agents, tracks how many task
attempts each agent is running against its concurrency cap, and answers
capability queries scoped to the agents a workflow declares.
"""

import threading
from typing import Dict, List, Optional, Any, Iterable, Set
from datetime import datetime
from dataclasses import dataclass, field

from ..models.core import AgentCapabilities, AgentRole, AgentRoleType
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AgentMetrics:
    """Performance metrics for an agent."""
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    total_execution_time_ms: float = 0.0
    average_execution_time_ms: float = 0.0
    last_execution_time: Optional[datetime] = None
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None

    def update_execution(self, success: bool, execution_time_ms: float, error: Optional[str] = None):
        """Update metrics after an execution."""
        self.total_executions += 1
        self.total_execution_time_ms += execution_time_ms
        self.average_execution_time_ms = self.total_execution_time_ms / self.total_executions
        self.last_execution_time = datetime.now()

        if success:
            self.successful_executions += 1
        else:
            self.failed_executions += 1
            if error:
                self.last_error = error
                self.last_error_time = datetime.now()

    def get_success_rate(self) -> float:
        """Calculate success rate as a percentage."""
        if self.total_executions == 0:
            return 0.0
        return (self.successful_executions / self.total_executions) * 100.0


@dataclass
class RegisteredAgent:
    """A registered agent with its capability declaration."""
    agent_id: str
    capabilities: Set[str] = field(default_factory=set)
    max_concurrent_tasks: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    registered_at: datetime = field(default_factory=datetime.now)
    metrics: AgentMetrics = field(default_factory=AgentMetrics)

    def offers(self, required: Iterable[str]) -> bool:
        return set(required).issubset(self.capabilities)


@dataclass(frozen=True)
class AgentCandidate:
    """An agent able to serve a task, with its workflow-scoped priority."""
    agent_id: str
    priority: int
    role: AgentRoleType
    position: int


class AgentRegistry:
    """
    Registry of capability-tagged agents.

    Writes happen only on register/unregister; reads happen on every
    dispatch. All access goes through one re-entrant lock so agents can be
    registered from threads other than the scheduler's event loop.
    """

    def __init__(self, default_max_concurrent_tasks: Optional[int] = None):
        self._agents: Dict[str, RegisteredAgent] = {}
        # Survives re-registration so slots taken before an upsert are still released
        self._active: Dict[str, int] = {}
        self._lock = threading.RLock()
        self.default_max_concurrent_tasks = default_max_concurrent_tasks

    def register_agent(self, agent_id: str, capabilities: AgentCapabilities) -> RegisteredAgent:
        """
        Register an agent, replacing any existing declaration for the same id.

        Args:
            agent_id: Agent identifier
            capabilities: Capability declaration

        Returns:
            RegisteredAgent: The stored registration
        """
        with self._lock:
            previous = self._agents.get(agent_id)
            agent = RegisteredAgent(
                agent_id=agent_id,
                capabilities=set(capabilities.capabilities),
                max_concurrent_tasks=capabilities.max_concurrent_tasks,
                metadata=dict(capabilities.metadata),
                metrics=previous.metrics if previous else AgentMetrics(),
            )
            self._agents[agent_id] = agent

        logger.info(
            "agent_updated" if previous else "agent_registered",
            agent_id=agent_id,
            capabilities=sorted(agent.capabilities),
        )
        return agent

    def unregister_agent(self, agent_id: str) -> bool:
        """
        Remove an agent. Unknown ids are ignored.

        Returns:
            True if an agent was removed
        """
        with self._lock:
            removed = self._agents.pop(agent_id, None)

        if removed:
            logger.info("agent_unregistered", agent_id=agent_id)
        return removed is not None

    def get_agent(self, agent_id: str) -> Optional[RegisteredAgent]:
        with self._lock:
            return self._agents.get(agent_id)

    def is_registered(self, agent_id: str) -> bool:
        with self._lock:
            return agent_id in self._agents

    def list_agents(self) -> List[str]:
        """Get list of registered agent ids."""
        with self._lock:
            return list(self._agents.keys())

    def find_capable_agents(self, required_capabilities: Iterable[str],
                            roles: List[AgentRole]) -> List[AgentCandidate]:
        """
        Find the workflow agents able to serve a task.

        An agent qualifies when it is listed in ``roles`` (and is not an
        observer), is currently registered, its registered capabilities
        cover ``required_capabilities``, and, if the role declares
        capabilities of its own, those cover the requirement too.

        Returns:
            Candidates ordered by descending priority; equal priorities keep
            the order of ``roles``.
        """
        required = set(required_capabilities)
        candidates = []

        with self._lock:
            for position, role in enumerate(roles):
                if role.role == AgentRoleType.OBSERVER:
                    continue
                agent = self._agents.get(role.agent_id)
                if agent is None or not agent.offers(required):
                    continue
                if role.capabilities and not required.issubset(role.capabilities):
                    continue
                candidates.append(
                    AgentCandidate(
                        agent_id=role.agent_id,
                        priority=role.priority,
                        role=role.role,
                        position=position,
                    )
                )

        # sorted() is stable, so position order survives among equal priorities
        return sorted(candidates, key=lambda c: -c.priority)

    def _capacity(self, agent: RegisteredAgent) -> Optional[int]:
        if agent.max_concurrent_tasks is not None:
            return agent.max_concurrent_tasks
        return self.default_max_concurrent_tasks

    def has_capacity(self, agent_id: str) -> bool:
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                return False
            capacity = self._capacity(agent)
            return capacity is None or self._active.get(agent_id, 0) < capacity

    def acquire(self, candidates: List[AgentCandidate]) -> Optional[str]:
        """
        Reserve a slot on the first candidate that is not saturated.

        Returns:
            The chosen agent id, or None if every candidate is saturated
            (or was unregistered since the candidates were computed)
        """
        with self._lock:
            for candidate in candidates:
                if self.has_capacity(candidate.agent_id):
                    self._active[candidate.agent_id] = self._active.get(candidate.agent_id, 0) + 1
                    return candidate.agent_id
        return None

    def release(self, agent_id: str, success: bool, execution_time_ms: float,
                error: Optional[str] = None) -> None:
        """Free a slot taken by acquire() and record the attempt outcome."""
        with self._lock:
            active = self._active.get(agent_id, 0)
            if active <= 1:
                self._active.pop(agent_id, None)
            else:
                self._active[agent_id] = active - 1

            agent = self._agents.get(agent_id)
            if agent is not None:
                agent.metrics.update_execution(success, execution_time_ms, error)

    def active_executions(self, agent_id: str) -> int:
        with self._lock:
            return self._active.get(agent_id, 0)

    def get_agent_metrics(self, agent_id: str) -> Optional[Dict[str, Any]]:
        """Get metrics for a registered agent."""
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is None:
                return None

            return {
                "agent_id": agent_id,
                "capabilities": sorted(agent.capabilities),
                "max_concurrent_tasks": self._capacity(agent),
                "current_executions": self._active.get(agent_id, 0),
                "total_executions": agent.metrics.total_executions,
                "success_rate": agent.metrics.get_success_rate(),
                "average_execution_time_ms": agent.metrics.average_execution_time_ms,
                "last_error": agent.metrics.last_error,
                "last_error_time": agent.metrics.last_error_time.isoformat() if agent.metrics.last_error_time else None,
                "registered_at": agent.registered_at.isoformat(),
                "metadata": dict(agent.metadata),
            }

    def get_registry_status(self) -> Dict[str, Any]:
        """Get overall registry status and statistics."""
        with self._lock:
            return {
                "total_agents": len(self._agents),
                "busy_agents": len([a for a in self._agents if self._active.get(a, 0) > 0]),
                "active_executions": sum(self._active.values()),
                "agents": sorted(self._agents.keys()),
            }
