"""2-D embeddings of cells for visualisation.

t-SNE is computed either on PCA (through scanpy) or directly on the
clustering similarity, turned into a distance, through scikit-learn.
"""

from typing import Any, Optional
import logging

import numpy as np
from scipy import sparse

from .config import EmbeddingConfig

logger = logging.getLogger(__name__)


def clamp_perplexity(perplexity: float, n_obs: int) -> float:
    """Keep perplexity below ``(n_obs - 1) / 3`` and at least 1."""
    limit = (n_obs - 1) / 3.0 - 1.0
    return float(max(min(perplexity, limit), 1.0))


def compute_tsne(
    adata: Any,  # AnnData
    config: Optional[EmbeddingConfig] = None,
    similarity_key: str = "similarity",
) -> np.ndarray:
    """Compute t-SNE into ``obsm["X_tsne"]``.

    Parameters
    ----------
    adata : AnnData
        Dataset with ``obsm["X_pca"]`` or ``obsp[similarity_key]``
    config : EmbeddingConfig, optional
        Embedding configuration
    similarity_key : str
        obsp key of the cell-cell similarity

    Returns
    -------
    np.ndarray
        ``n_obs x 2`` coordinates

    Raises
    ------
    ValueError
        If neither the similarity nor PCA is available, or fewer than
        three cells are present.
    """
    config = config or EmbeddingConfig()
    if adata.n_obs < 3:
        raise ValueError("t-SNE needs at least three cells")
    perplexity = clamp_perplexity(config.perplexity, adata.n_obs)
    if perplexity != config.perplexity:
        logger.info(
            "Clamped perplexity %.1f -> %.1f for %d cells",
            config.perplexity,
            perplexity,
            adata.n_obs,
        )

    if config.use_similarity and similarity_key in adata.obsp:
        from sklearn.manifold import TSNE

        S = adata.obsp[similarity_key]
        S = S.toarray() if sparse.issparse(S) else np.asarray(S)
        dist = S.max() - S
        np.fill_diagonal(dist, 0.0)
        model = TSNE(
            n_components=2,
            metric="precomputed",
            init="random",
            perplexity=perplexity,
            random_state=config.random_seed,
        )
        coords = model.fit_transform(dist)
        adata.obsm["X_tsne"] = coords
        source = similarity_key
    else:
        import scanpy as sc

        if "X_pca" not in adata.obsm:
            raise ValueError("t-SNE needs obsm['X_pca'] or a similarity; run clustering first")
        sc.tl.tsne(
            adata,
            use_rep="X_pca",
            perplexity=perplexity,
            random_state=config.random_seed,
        )
        coords = np.asarray(adata.obsm["X_tsne"])
        source = "X_pca"

    adata.uns["tsne"] = {
        "params": {
            "perplexity": perplexity,
            "source": source,
            "random_state": config.random_seed,
        }
    }
    logger.info("Computed t-SNE on %s (perplexity=%.1f)", source, perplexity)
    return coords


def compute_umap(
    adata: Any,  # AnnData
    config: Optional[EmbeddingConfig] = None,
) -> np.ndarray:
    """Compute UMAP into ``obsm["X_umap"]`` from a kNN graph on PCA."""
    import scanpy as sc

    config = config or EmbeddingConfig()
    if "X_pca" not in adata.obsm:
        raise ValueError("UMAP needs obsm['X_pca']; run clustering first")
    if "neighbors" not in adata.uns:
        sc.pp.neighbors(
            adata,
            n_neighbors=min(config.n_neighbors, adata.n_obs - 1),
            use_rep="X_pca",
            random_state=config.random_seed,
        )
    sc.tl.umap(adata, random_state=config.random_seed)
    logger.info("Computed UMAP for %d cells", adata.n_obs)
    return np.asarray(adata.obsm["X_umap"])


def compute_embedding(
    adata: Any,  # AnnData
    config: Optional[EmbeddingConfig] = None,
) -> str:
    """Compute the configured basis and return its name.

    Raises
    ------
    ValueError
        If the basis is unknown.
    """
    config = config or EmbeddingConfig()
    if config.basis == "tsne":
        compute_tsne(adata, config)
    elif config.basis == "umap":
        compute_umap(adata, config)
    else:
        raise ValueError(f"Unknown basis '{config.basis}'; expected tsne or umap")
    return config.basis
