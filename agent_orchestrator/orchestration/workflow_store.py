"""
In-memory store of registered workflow definitions.
"""

import threading
from typing import Dict, List, Optional, Tuple

from ..models.core import WorkflowDefinition
from ..models.errors import WorkflowNotFoundError
from ..utils.logging import get_logger
from .dependency_graph import DependencyGraph

logger = get_logger(__name__)


class WorkflowStore:
    """
    Workflow definitions keyed by id, each stored with its resolved graph.

    Registration is last-write-wins. The graph is built, and the
    definition checked for cycles, before the store is touched.
    """

    def __init__(self):
        self._workflows: Dict[str, Tuple[WorkflowDefinition, DependencyGraph]] = {}
        self._lock = threading.RLock()

    def register_workflow(self, definition: WorkflowDefinition) -> DependencyGraph:
        """
        Validate and store a workflow definition.

        Raises:
            CyclicDependencyError: If the dependencies contain a cycle; the
                store is left unchanged
        """
        graph = DependencyGraph.from_definition(definition)
        stored = definition.model_copy(deep=True)

        with self._lock:
            replaced = definition.id in self._workflows
            self._workflows[definition.id] = (stored, graph)

        logger.info(
            "workflow_replaced" if replaced else "workflow_registered",
            workflow_id=definition.id,
            task_count=len(definition.tasks),
        )
        return graph

    def unregister_workflow(self, workflow_id: str) -> bool:
        with self._lock:
            return self._workflows.pop(workflow_id, None) is not None

    def get(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        with self._lock:
            entry = self._workflows.get(workflow_id)
        return entry[0] if entry else None

    def resolve(self, workflow_id: str) -> Tuple[WorkflowDefinition, DependencyGraph]:
        """
        Get a definition together with its dependency graph.

        Raises:
            WorkflowNotFoundError: If no workflow has this id
        """
        with self._lock:
            entry = self._workflows.get(workflow_id)
        if entry is None:
            raise WorkflowNotFoundError(workflow_id)
        return entry

    def list_workflows(self) -> List[str]:
        with self._lock:
            return list(self._workflows.keys())

    def __contains__(self, workflow_id: str) -> bool:
        with self._lock:
            return workflow_id in self._workflows

    def __len__(self) -> int:
        with self._lock:
            return len(self._workflows)
