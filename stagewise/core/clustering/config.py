"""Configuration classes for clustering module.

All clustering parameters are configurable so the same engine serves
similarity clustering, k-means and graph clustering.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ClusteringConfig:
    """Configuration for clustering.

    Attributes
    ----------
    method : str
        ``simlr`` (spectral clustering on a multi-kernel similarity),
        ``kmeans`` (on PCA) or ``leiden`` (graph clustering, k not fixed)
    n_clusters : int
        Number of clusters for simlr and kmeans
    n_pcs : int
        Number of principal components
    kernel_neighbors : List[int]
        Neighbour counts defining the per-cell kernel bandwidths
    kernel_sigmas : List[float]
        Bandwidth multipliers; one kernel per (neighbours, sigma) pair
    neighbors_k : int
        k for the neighbourhood graph (leiden)
    resolution : float
        Leiden resolution
    scale_clip : float
        Value clipping during scaling
    random_seed : int
        Random seed for reproducibility
    key_added : str
        obs column receiving cluster labels
    """

    method: str = "simlr"
    n_clusters: int = 8
    n_pcs: int = 30
    kernel_neighbors: List[int] = field(default_factory=lambda: [10, 20, 30])
    kernel_sigmas: List[float] = field(default_factory=lambda: [1.0, 1.5, 2.0])
    neighbors_k: int = 15
    resolution: float = 1.0
    scale_clip: float = 10.0
    random_seed: int = 1337
    key_added: str = "cluster"


@dataclass
class SelectionConfig:
    """Configuration for choosing the number of clusters.

    Attributes
    ----------
    k_min : int
        Smallest k evaluated
    k_max : int
        Largest k evaluated
    criterion : str
        ``silhouette``, ``ari``, ``nmi`` or ``eigengap``
    apply_best : bool
        Re-run clustering with the chosen k and use it downstream
    """

    k_min: int = 2
    k_max: int = 12
    criterion: str = "silhouette"
    apply_best: bool = True


@dataclass
class MarkerConfig:
    """Configuration for marker gene detection.

    Attributes
    ----------
    method : str
        Test passed to ``scanpy.tl.rank_genes_groups`` (wilcoxon, t-test, logreg)
    n_genes : int
        Genes ranked per cluster before filtering
    min_logfc : float
        Minimum log fold change
    min_pct : float
        Minimum fraction of in-cluster cells expressing the gene
    max_pval_adj : float
        Maximum adjusted p-value
    layer : str, optional
        Layer to test on (X when None)
    use_raw : bool
        Test on ``adata.raw``
    n_top : int
        Markers per cluster kept for plots
    """

    method: str = "wilcoxon"
    n_genes: int = 100
    min_logfc: float = 0.25
    min_pct: float = 0.1
    max_pval_adj: float = 0.05
    layer: Optional[str] = None
    use_raw: bool = False
    n_top: int = 10
