"""stagewise: downstream analysis of stage-resolved single-cell RNA-seq data.

This package provides tools for:
- Loading a pre-merged expression matrix and parsing per-cell metadata
  (developmental stage, batch) from cell identifiers
- Similarity-based clustering with evaluation of the number of clusters k
- Marker gene detection and expression visualisation on t-SNE embeddings
- Cell-type composition summaries per developmental stage
- Optional diffusion pseudo-time trajectory inference

The workflow is a linear sequence of steps; each step can be run on its own
through the command-line interface or chained from a YAML configuration.

Example usage:
    >>> from stagewise.core.preprocessing import DataLoader, annotate_cells
    >>> from stagewise.core.clustering import ClusteringEngine
    >>>
    >>> adata = DataLoader().load("merged_matrix.tsv.gz")
    >>> annotate_cells(adata)
    >>> engine = ClusteringEngine()
    >>> engine.compute_pca(adata)
    >>> engine.build_similarity(adata)
    >>> result = engine.run_clustering(adata, n_clusters=8)
"""

__version__ = "0.1.0"
