"""Clustering engine for cell population identification.

Provides SIMLR-style similarity clustering: PCA, a family of Gaussian
kernels with per-cell adaptive bandwidths fused into one cell-cell
similarity, then spectral clustering into a fixed number of clusters.
k-means on PCA and Leiden graph clustering are available for comparison.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

import numpy as np
import pandas as pd
from scipy import sparse

from .config import ClusteringConfig

METHODS = ("simlr", "kmeans", "leiden")


@dataclass
class ClusteringResult:
    """Result from clustering operation.

    Attributes
    ----------
    n_clusters : int
        Number of clusters found
    cluster_key : str
        Key in adata.obs containing cluster assignments
    cluster_sizes : Dict[str, int]
        Map of cluster ID to cell count
    method : str
        Clustering method used
    """

    n_clusters: int = 0
    cluster_key: str = "cluster"
    cluster_sizes: Dict[str, int] = field(default_factory=dict)
    method: str = "simlr"


def to_cluster_labels(labels: np.ndarray, offset: int = 1) -> pd.Categorical:
    """Convert integer labels to a string categorical starting at ``offset``.

    Categories are ordered numerically, so ``"10"`` follows ``"9"``.
    """
    values = np.asarray(labels).astype(int) + offset
    categories = [str(v) for v in np.unique(values)]
    return pd.Categorical([str(v) for v in values], categories=categories)


class ClusteringEngine:
    """Clustering engine with multi-kernel similarity and spectral clustering.

    Pipeline: scale -> PCA -> kernel similarity -> spectral clustering.

    Parameters
    ----------
    config : ClusteringConfig, optional
        Clustering configuration. If None, uses defaults.
    logger : logging.Logger, optional
        Logger instance. If None, creates default logger.

    Example
    -------
    >>> from stagewise.core.clustering import ClusteringEngine, ClusteringConfig
    >>> engine = ClusteringEngine(ClusteringConfig(n_clusters=6))
    >>> result = engine.run(adata)
    >>> result.cluster_sizes
    {'1': 312, '2': 280, ...}
    """

    def __init__(
        self,
        config: Optional[ClusteringConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or ClusteringConfig()
        self.logger = logger or logging.getLogger(__name__)

    def compute_pca(
        self,
        adata: Any,  # AnnData
        n_pcs: Optional[int] = None,
    ) -> int:
        """Scale a copy of X and store its PCA in ``obsm["X_pca"]``.

        X itself is left unscaled so marker detection and plots see the
        original expression values.

        Returns
        -------
        int
            Number of components actually computed
        """
        import anndata as ad
        import scanpy as sc

        cfg = self.config
        n_pcs = n_pcs if n_pcs is not None else cfg.n_pcs
        use_pcs = min(n_pcs, max(adata.n_vars - 1, 1), max(adata.n_obs - 1, 1))

        X = adata.X.toarray() if sparse.issparse(adata.X) else np.array(adata.X)
        work = ad.AnnData(X=X.astype(np.float32), var=pd.DataFrame(index=adata.var_names))
        sc.pp.scale(work, zero_center=True, max_value=cfg.scale_clip)
        sc.tl.pca(work, n_comps=use_pcs, svd_solver="arpack", random_state=cfg.random_seed)

        adata.obsm["X_pca"] = work.obsm["X_pca"]
        adata.varm["PCs"] = work.varm["PCs"]
        adata.uns["pca"] = work.uns["pca"]
        self.logger.info(
            "Computed PCA with %d components (requested %d)", use_pcs, n_pcs
        )
        return use_pcs

    def build_similarity(
        self,
        adata: Any,  # AnnData
        key: str = "similarity",
    ) -> np.ndarray:
        """Fuse Gaussian kernels on PCA distances into a cell-cell similarity.

        For each neighbour count k, the bandwidth of cell i is the mean
        distance to its k nearest neighbours (mu_i). For each multiplier
        sigma the kernel is ``exp(-d_ij^2 / (2 w_ij^2))`` with
        ``w_ij = sigma * (mu_i + mu_j) / 2``. Kernels are averaged with equal
        weights, symmetrised, the diagonal zeroed, rows normalised to sum to
        one and the result symmetrised again.

        Returns
        -------
        np.ndarray
            Dense ``n_obs x n_obs`` similarity, also stored in ``obsp[key]``

        Raises
        ------
        ValueError
            If PCA has not been computed or fewer than two cells are present.
        """
        from sklearn.metrics import pairwise_distances

        if "X_pca" not in adata.obsm:
            raise ValueError("PCA not found in obsm['X_pca']; run compute_pca first")
        n_obs = adata.n_obs
        if n_obs < 2:
            raise ValueError("Similarity needs at least two cells")

        cfg = self.config
        dist = pairwise_distances(np.asarray(adata.obsm["X_pca"]), metric="euclidean")
        sorted_dist = np.sort(dist, axis=1)
        eps = np.finfo(np.float64).eps

        fused = np.zeros((n_obs, n_obs), dtype=np.float64)
        n_kernels = 0
        for k in cfg.kernel_neighbors:
            k_eff = int(min(max(k, 1), n_obs - 1))
            mu = sorted_dist[:, 1 : k_eff + 1].mean(axis=1)
            pair_mu = (mu[:, None] + mu[None, :]) / 2.0
            for sigma in cfg.kernel_sigmas:
                width = sigma * pair_mu + eps
                fused += np.exp(-(dist ** 2) / (2.0 * width ** 2))
                n_kernels += 1
        if n_kernels == 0:
            raise ValueError("No kernels configured; set kernel_neighbors and kernel_sigmas")
        fused /= n_kernels

        fused = (fused + fused.T) / 2.0
        np.fill_diagonal(fused, 0.0)
        row_sums = fused.sum(axis=1, keepdims=True)
        row_sums[row_sums == 0] = 1.0
        fused = fused / row_sums
        fused = (fused + fused.T) / 2.0

        adata.obsp[key] = fused
        adata.uns[key] = {
            "kernel_neighbors": [int(k) for k in cfg.kernel_neighbors],
            "kernel_sigmas": [float(s) for s in cfg.kernel_sigmas],
            "n_kernels": n_kernels,
        }
        self.logger.info(
            "Built similarity from %d kernels over %d cells", n_kernels, n_obs
        )
        return fused

    def run_clustering(
        self,
        adata: Any,  # AnnData
        n_clusters: Optional[int] = None,
        method: Optional[str] = None,
        key_added: Optional[str] = None,
        random_seed: Optional[int] = None,
    ) -> ClusteringResult:
        """Cluster cells and store 1-based labels in ``obs[key_added]``.

        PCA and (for simlr) the similarity are computed when missing.

        Parameters
        ----------
        adata : AnnData
            Input AnnData object (modified in place)
        n_clusters : int, optional
            Number of clusters. Uses config default if None. Ignored by leiden.
        method : str, optional
            simlr, kmeans or leiden. Uses config default if None.
        key_added : str, optional
            obs column for the labels. Uses config default if None.
        random_seed : int, optional
            Random seed. Uses config default if None.

        Returns
        -------
        ClusteringResult
            Clustering result with cluster statistics

        Raises
        ------
        ValueError
            If the method is unknown or n_clusters is outside [2, n_obs].
        """
        cfg = self.config
        method = method or cfg.method
        n_clusters = n_clusters if n_clusters is not None else cfg.n_clusters
        key_added = key_added or cfg.key_added
        random_seed = random_seed if random_seed is not None else cfg.random_seed

        if method not in METHODS:
            raise ValueError(f"Unknown clustering method '{method}'; expected one of {METHODS}")
        if method != "leiden" and not 2 <= n_clusters <= adata.n_obs:
            raise ValueError(
                f"n_clusters must be between 2 and n_obs ({adata.n_obs}), got {n_clusters}"
            )

        if "X_pca" not in adata.obsm:
            self.compute_pca(adata)

        self.logger.info(
            "Running %s clustering (n_clusters=%s, key=%s)",
            method,
            n_clusters if method != "leiden" else "auto",
            key_added,
        )

        if method == "simlr":
            from sklearn.cluster import SpectralClustering

            if "similarity" not in adata.obsp:
                self.build_similarity(adata)
            similarity = adata.obsp["similarity"]
            if sparse.issparse(similarity):
                similarity = similarity.toarray()
            model = SpectralClustering(
                n_clusters=n_clusters,
                affinity="precomputed",
                random_state=random_seed,
            )
            raw = model.fit_predict(np.asarray(similarity))
        elif method == "kmeans":
            from sklearn.cluster import KMeans

            model = KMeans(n_clusters=n_clusters, n_init=10, random_state=random_seed)
            raw = model.fit_predict(np.asarray(adata.obsm["X_pca"]))
        else:
            import scanpy as sc

            sc.pp.neighbors(
                adata,
                n_neighbors=min(cfg.neighbors_k, adata.n_obs - 1),
                use_rep="X_pca",
                random_state=random_seed,
            )
            sc.tl.leiden(
                adata,
                resolution=cfg.resolution,
                random_state=random_seed,
                key_added="_leiden",
                flavor="igraph",
                n_iterations=2,
                directed=False,
            )
            raw = adata.obs.pop("_leiden").astype(int).to_numpy()

        adata.obs[key_added] = to_cluster_labels(raw)

        result = ClusteringResult(cluster_key=key_added, method=method)
        result.n_clusters = int(adata.obs[key_added].nunique())
        result.cluster_sizes = {
            str(k): int(v)
            for k, v in adata.obs[key_added].value_counts(sort=False).items()
        }
        self.logger.info(
            "Computed %s clustering with %d clusters", method, result.n_clusters
        )
        return result

    def run(self, adata: Any) -> ClusteringResult:
        """PCA, similarity (simlr only) and clustering with config defaults."""
        self.compute_pca(adata)
        if self.config.method == "simlr":
            self.build_similarity(adata)
        return self.run_clustering(adata)
