"""In-process phase runner."""

import time
from collections import deque
from typing import Any, Callable, Dict, List, Optional

from .logger import PipelineLogger


class InMemoryExecutor:
    """Runs registered phase functions in dependency order.

    Each phase is called with the keyword arguments given to :meth:`run` plus
    ``stage_results``, the results of every phase that already ran.

    Parameters
    ----------
    logger : PipelineLogger, optional
        Logger instance

    Example
    -------
    >>> executor = InMemoryExecutor()
    >>> executor.register_stage("ingest", ingest)
    >>> executor.register_stage("resolve", resolve, depends_on=["ingest"])
    >>> results = executor.run(source="pack.zip")
    """

    def __init__(self, logger: Optional[PipelineLogger] = None):
        self.logger = logger
        self.stages: Dict[str, Dict[str, Any]] = {}
        self.completed_stages: List[str] = []
        self.durations: Dict[str, float] = {}

    def register_stage(
        self,
        stage_id: str,
        func: Callable,
        depends_on: Optional[List[str]] = None,
        name: Optional[str] = None,
    ) -> None:
        """Register a phase function.

        Parameters
        ----------
        stage_id : str
            Phase identifier
        func : Callable
            Phase function to execute
        depends_on : List[str], optional
            Phase ids that must run first
        name : str, optional
            Human-readable phase name
        """
        if stage_id in self.stages:
            raise ValueError(f"Stage already registered: {stage_id}")
        self.stages[stage_id] = {
            "func": func,
            "depends_on": list(depends_on or []),
            "name": name or stage_id,
        }

    def _get_execution_order(self) -> List[str]:
        """Topological order of registered phases, registration order on ties."""
        in_degree = {stage_id: 0 for stage_id in self.stages}
        for stage_id, stage in self.stages.items():
            for dep in stage["depends_on"]:
                if dep not in self.stages:
                    raise ValueError(f"Stage '{stage_id}' depends on unknown stage '{dep}'")
                in_degree[stage_id] += 1

        queue = deque(sid for sid, degree in in_degree.items() if degree == 0)
        order = []
        while queue:
            stage_id = queue.popleft()
            order.append(stage_id)
            for other_id, other_stage in self.stages.items():
                if stage_id in other_stage["depends_on"]:
                    in_degree[other_id] -= 1
                    if in_degree[other_id] == 0:
                        queue.append(other_id)

        if len(order) != len(self.stages):
            raise ValueError("Circular dependency detected")
        return order

    def run(self, **kwargs) -> Dict[str, Any]:
        """Execute all registered phases.

        Returns
        -------
        Dict[str, Any]
            Map of phase id to phase result

        Raises
        ------
        Exception
            Whatever a phase raises, after it is logged
        """
        order = self._get_execution_order()
        results: Dict[str, Any] = {}

        for stage_id in order:
            stage = self.stages[stage_id]
            if self.logger:
                self.logger.log_stage_start(stage_id, stage["name"])

            start_time = time.perf_counter()
            try:
                results[stage_id] = stage["func"](**kwargs, stage_results=results)
            except Exception as e:
                if self.logger:
                    self.logger.log_stage_error(stage_id, str(e))
                raise

            duration = time.perf_counter() - start_time
            self.durations[stage_id] = duration
            self.completed_stages.append(stage_id)
            if self.logger:
                self.logger.log_stage_complete(stage_id, duration)

        return results
