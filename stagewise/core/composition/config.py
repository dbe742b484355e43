"""Configuration for composition analysis."""

from dataclasses import dataclass


@dataclass
class CompositionConfig:
    """Configuration for cluster composition across stages.

    Attributes
    ----------
    cluster_key : str
        obs column with cluster (or relabelled cluster) labels
    stage_col : str
        obs column with developmental stage
    truth_col : str
        obs column with ground-truth labels (skipped when absent)
    batch_col : str
        obs column with batch of origin (skipped when absent)
    correction_method : str
        Multiple testing correction passed to statsmodels (fdr_bh, bonferroni, holm)
    alpha : float
        Significance threshold
    min_cells_per_group : int
        Minimum cells for diversity metrics of a group
    dpi : int
        Figure resolution
    """

    cluster_key: str = "cluster"
    stage_col: str = "stage"
    truth_col: str = "truth"
    batch_col: str = "batch"
    correction_method: str = "fdr_bh"
    alpha: float = 0.05
    min_cells_per_group: int = 1
    dpi: int = 200
