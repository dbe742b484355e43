"""Visualization module: embeddings and expression figures.

Example Usage
-------------
>>> from stagewise.core.visualization import (
...     EmbeddingConfig, compute_tsne, plot_embedding,
... )
>>> compute_tsne(adata, EmbeddingConfig(perplexity=30))
>>> plot_embedding(adata, "cluster", "figures/tsne_cluster.png")
"""

from .config import EmbeddingConfig, PlotConfig
from .embedding import (
    clamp_perplexity,
    compute_embedding,
    compute_tsne,
    compute_umap,
)
from .interactive import export_interactive_embedding
from .plots import (
    get_values,
    is_categorical_values,
    group_means,
    marker_gene_list,
    plot_contingency_heatmap,
    plot_embedding,
    plot_feature_grid,
    plot_k_selection,
    plot_marker_dotplot,
    plot_marker_heatmap,
    plot_violin,
    present_genes,
)
from .style import categorical_palette, save_figure, set_style

__all__ = [
    # Config
    "EmbeddingConfig",
    "PlotConfig",
    # Embedding
    "clamp_perplexity",
    "compute_embedding",
    "compute_tsne",
    "compute_umap",
    # Plots
    "export_interactive_embedding",
    "get_values",
    "is_categorical_values",
    "group_means",
    "marker_gene_list",
    "plot_contingency_heatmap",
    "plot_embedding",
    "plot_feature_grid",
    "plot_k_selection",
    "plot_marker_dotplot",
    "plot_marker_heatmap",
    "plot_violin",
    "present_genes",
    # Style
    "categorical_palette",
    "save_figure",
    "set_style",
]
