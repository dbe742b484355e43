"""Workflow orchestration module.

Provides the step executor, structured logging, and assembly of the
analysis steps from a ``WorkflowConfig``.

Example Usage
-------------
>>> from stagewise.config.workflow import WorkflowConfig
>>> from stagewise.pipeline import PipelineLogger, run_workflow
>>> config = WorkflowConfig.from_yaml("workflow.yaml")
>>> logger = PipelineLogger("logs/").setup()
>>> context = run_workflow(config, logger)
"""

# Logging
from .logger import (
    ColoredFormatter,
    PipelineLogger,
)

# Execution
from .executor import InMemoryExecutor

# Workflow
from .workflow import (
    STEP_DEPENDENCIES,
    WorkflowContext,
    build_workflow,
    resolve_dependencies,
    run_workflow,
)

__all__ = [
    # Logging
    "ColoredFormatter",
    "PipelineLogger",
    # Execution
    "InMemoryExecutor",
    # Workflow
    "STEP_DEPENDENCIES",
    "WorkflowContext",
    "build_workflow",
    "resolve_dependencies",
    "run_workflow",
]
