"""Pseudo-time trajectory inference.

Example Usage
-------------
>>> from stagewise.core.trajectory import TrajectoryEngine
>>> result = TrajectoryEngine().run(adata)
>>> result.stage_summary
"""

from .config import TrajectoryConfig
from .engine import (
    TrajectoryEngine,
    TrajectoryResult,
    ordered_stages,
    stage_correlation,
    summarise_by_stage,
)
from .viz import plot_paga_connectivities, plot_pseudotime_by_stage

__all__ = [
    "TrajectoryConfig",
    "TrajectoryEngine",
    "TrajectoryResult",
    "ordered_stages",
    "plot_paga_connectivities",
    "plot_pseudotime_by_stage",
    "stage_correlation",
    "summarise_by_stage",
]
