"""Configuration classes for embeddings and plots."""

from dataclasses import dataclass, field
from typing import List, Tuple


@dataclass
class EmbeddingConfig:
    """Configuration for the 2-D embedding.

    Attributes
    ----------
    basis : str
        ``tsne`` or ``umap``
    perplexity : float
        t-SNE perplexity (clamped for small datasets)
    use_similarity : bool
        Embed the clustering similarity instead of PCA (t-SNE only)
    n_neighbors : int
        Neighbours for the UMAP graph
    random_seed : int
        Random seed for reproducibility
    """

    basis: str = "tsne"
    perplexity: float = 30.0
    use_similarity: bool = True
    n_neighbors: int = 15
    random_seed: int = 1337


@dataclass
class PlotConfig:
    """Configuration for static and interactive figures.

    Attributes
    ----------
    dpi : int
        Figure resolution
    point_size : float
        Scatter marker size
    genes : List[str]
        Genes shown on the embedding and as violins; top markers when empty
    n_marker_genes : int
        Markers per cluster in heatmap and dot plot
    color_by : List[str]
        obs columns drawn on the embedding
    interactive : bool
        Also write an interactive HTML embedding
    figsize : Tuple[float, float]
        Size of single-panel figures
    """

    dpi: int = 200
    point_size: float = 8.0
    genes: List[str] = field(default_factory=list)
    n_marker_genes: int = 5
    color_by: List[str] = field(
        default_factory=lambda: ["cluster", "truth", "stage", "batch"]
    )
    interactive: bool = True
    figsize: Tuple[float, float] = (7.0, 6.0)
