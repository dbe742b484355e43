"""Clustering module for cell population identification.

Provides SIMLR-style similarity clustering, selection of the number of
clusters, relabelling against reference labels and marker detection.

Example Usage
-------------
>>> from stagewise.core.clustering import (
...     ClusteringEngine, KSelector, MarkerFinder, align_clusters_to_reference,
... )
>>> engine = ClusteringEngine()
>>> best = KSelector(engine=engine).run(adata).best_k
>>> mapping = align_clusters_to_reference(adata.obs["cluster"], adata.obs["truth"])
>>> markers = MarkerFinder().find_markers(adata, cluster_key="cluster")
"""

# Configuration classes
from .config import (
    ClusteringConfig,
    MarkerConfig,
    SelectionConfig,
)

# Clustering engine
from .engine import (
    ClusteringEngine,
    ClusteringResult,
    to_cluster_labels,
)

# Choosing k
from .selection import (
    KSelectionResult,
    KSelector,
    estimate_n_clusters_eigengap,
)

# Relabelling
from .relabel import (
    align_clusters_to_reference,
    apply_label_map,
    contingency_table,
)

# Marker genes
from .de import (
    MARKER_COLUMNS,
    MarkerFinder,
    MarkerResult,
    marker_overlap,
    top_markers,
)

__all__ = [
    # Config
    "ClusteringConfig",
    "MarkerConfig",
    "SelectionConfig",
    # Engine
    "ClusteringEngine",
    "ClusteringResult",
    "to_cluster_labels",
    # Selection
    "KSelectionResult",
    "KSelector",
    "estimate_n_clusters_eigengap",
    # Relabel
    "align_clusters_to_reference",
    "apply_label_map",
    "contingency_table",
    # Markers
    "MARKER_COLUMNS",
    "MarkerFinder",
    "MarkerResult",
    "marker_overlap",
    "top_markers",
]
