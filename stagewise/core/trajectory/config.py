"""Configuration for pseudo-time inference."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class TrajectoryConfig:
    """Configuration for diffusion pseudo-time.

    Attributes
    ----------
    n_dcs : int
        Diffusion components computed and used by DPT
    n_neighbors : int
        Neighbours of the kNN graph built for the trajectory
    root_stage : str, optional
        Stage whose cells may be the root (earliest stage when None)
    root_cell : str, optional
        Explicit root cell id (overrides root_stage)
    use_paga : bool
        Compute PAGA connectivities between groups
    group_key : str
        obs column with groups for PAGA
    pseudotime_key : str
        obs column receiving pseudo-time
    stage_col : str
        obs column with developmental stage
    dataset : str, optional
        Registered stage configuration used to order stages
    """

    n_dcs: int = 10
    n_neighbors: int = 15
    root_stage: Optional[str] = None
    root_cell: Optional[str] = None
    use_paga: bool = True
    group_key: str = "cluster"
    pseudotime_key: str = "dpt_pseudotime"
    stage_col: str = "stage"
    dataset: Optional[str] = None
