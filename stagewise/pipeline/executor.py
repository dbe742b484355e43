"""In-memory step executor with dependency ordering."""

import time
from collections import deque
from typing import Any, Callable, Dict, List, Optional

from .logger import PipelineLogger


class InMemoryExecutor:
    """Runs registered Python step functions in dependency order.

    Each step is called as ``func(**kwargs, step_results=results)`` where
    ``results`` maps the ids of steps already run to their return values.
    Errors are logged and re-raised; later steps do not run.

    Parameters
    ----------
    logger : PipelineLogger, optional
        Logger instance

    Example
    -------
    >>> executor = InMemoryExecutor()
    >>> executor.register_step("load", load_func)
    >>> executor.register_step("cluster", cluster_func, depends_on=["load"])
    >>> results = executor.run(context=ctx)
    """

    def __init__(self, logger: Optional[PipelineLogger] = None):
        self.logger = logger
        self.steps: Dict[str, Dict[str, Any]] = {}
        self.completed_steps: List[str] = []
        self.durations: Dict[str, float] = {}

    def register_step(
        self,
        step_id: str,
        func: Callable,
        depends_on: Optional[List[str]] = None,
        name: Optional[str] = None,
    ) -> None:
        """Register a step function.

        Parameters
        ----------
        step_id : str
            Step identifier
        func : Callable
            Step function to execute
        depends_on : List[str], optional
            Step IDs this step depends on
        name : str, optional
            Human-readable step name

        Raises
        ------
        ValueError
            If ``step_id`` is already registered.
        """
        if step_id in self.steps:
            raise ValueError(f"Step '{step_id}' is already registered")
        self.steps[step_id] = {
            "func": func,
            "depends_on": list(depends_on or []),
            "name": name or step_id,
        }

    def get_execution_order(self) -> List[str]:
        """Compute step execution order via topological sort.

        Ties keep registration order.

        Raises
        ------
        ValueError
            On unknown dependencies or a circular dependency.
        """
        for step_id, step in self.steps.items():
            missing = [d for d in step["depends_on"] if d not in self.steps]
            if missing:
                raise ValueError(f"Step '{step_id}' depends on unknown steps {missing}")

        in_degree = {step_id: len(step["depends_on"]) for step_id, step in self.steps.items()}
        queue = deque([sid for sid, degree in in_degree.items() if degree == 0])
        order = []

        while queue:
            step_id = queue.popleft()
            order.append(step_id)

            for other_id, other_step in self.steps.items():
                if step_id in other_step["depends_on"]:
                    in_degree[other_id] -= 1
                    if in_degree[other_id] == 0:
                        queue.append(other_id)

        if len(order) != len(self.steps):
            stuck = sorted(set(self.steps) - set(order))
            raise ValueError(f"Circular dependency detected among steps {stuck}")

        return order

    def run(self, **kwargs) -> Dict[str, Any]:
        """Execute all registered steps in order.

        Parameters
        ----------
        **kwargs
            Arguments passed to each step function

        Returns
        -------
        Dict[str, Any]
            Map of step_id to step result
        """
        order = self.get_execution_order()
        results: Dict[str, Any] = {}

        for step_id in order:
            step = self.steps[step_id]
            if self.logger:
                self.logger.log_step_start(step_id, step["name"])

            start_time = time.time()
            try:
                results[step_id] = step["func"](**kwargs, step_results=results)
            except Exception as e:
                if self.logger:
                    self.logger.log_step_error(step_id, str(e))
                raise

            duration = time.time() - start_time
            self.durations[step_id] = duration
            self.completed_steps.append(step_id)
            if self.logger:
                self.logger.log_step_complete(step_id, duration)

        return results
