"""
Dependency graph resolution for workflow tasks.
"""

from collections import deque
from typing import Dict, Iterable, List, Set, Tuple

from ..models.core import WorkflowDefinition
from ..models.errors import CyclicDependencyError


class DependencyGraph:
    """
    Directed acyclic graph of the tasks in one workflow.

    Every query returns task ids in the order the tasks appear in the
    workflow definition, so dispatch order is reproducible.
    """

    def __init__(self, workflow_id: str, task_ids: List[str], dependencies: Iterable[Tuple[str, str]]):
        self.workflow_id = workflow_id
        self._order: List[str] = list(task_ids)
        self._position: Dict[str, int] = {tid: i for i, tid in enumerate(self._order)}
        self._upstream: Dict[str, Set[str]] = {tid: set() for tid in self._order}
        self._downstream: Dict[str, Set[str]] = {tid: set() for tid in self._order}

        for from_id, to_id in dependencies:
            self._upstream[to_id].add(from_id)
            self._downstream[from_id].add(to_id)

        self._topological = self._sort()

    @classmethod
    def from_definition(cls, definition: WorkflowDefinition) -> "DependencyGraph":
        """
        Build the graph for a workflow definition.

        Raises:
            CyclicDependencyError: If the dependencies contain a cycle
        """
        return cls(definition.id, [task.id for task in definition.tasks], definition.dependencies)

    def _in_order(self, task_ids: Iterable[str]) -> List[str]:
        return sorted(task_ids, key=self._position.__getitem__)

    def _sort(self) -> List[str]:
        """Kahn's algorithm; the queue is seeded and fed in workflow order."""
        in_degree = {tid: len(self._upstream[tid]) for tid in self._order}
        queue = deque(tid for tid in self._order if in_degree[tid] == 0)
        result = []

        while queue:
            task_id = queue.popleft()
            result.append(task_id)
            for dependent in self._in_order(self._downstream[task_id]):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(self._order):
            remaining = [tid for tid in self._order if in_degree[tid] > 0]
            raise CyclicDependencyError(self.workflow_id, remaining)

        return result

    @property
    def task_ids(self) -> List[str]:
        return list(self._order)

    def topological_order(self) -> List[str]:
        return list(self._topological)

    def upstream(self, task_id: str) -> List[str]:
        """Tasks that must complete before ``task_id`` may start."""
        return self._in_order(self._upstream[task_id])

    def downstream(self, task_id: str) -> List[str]:
        """Tasks that directly wait on ``task_id``."""
        return self._in_order(self._downstream[task_id])

    def initial_ready(self) -> List[str]:
        """Tasks with no dependencies at all."""
        return [tid for tid in self._order if not self._upstream[tid]]

    def newly_ready(self, completed_id: str, completed_ids: Iterable[str]) -> List[str]:
        """
        Tasks unblocked by the completion of ``completed_id``.

        Args:
            completed_id: The task that just completed
            completed_ids: Every task completed so far, including ``completed_id``
        """
        completed = set(completed_ids)
        completed.add(completed_id)
        return [
            dependent for dependent in self.downstream(completed_id)
            if self._upstream[dependent].issubset(completed)
        ]
