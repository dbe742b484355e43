"""Choosing the number of clusters.

A sweep over k clusters the data once per candidate and scores every
solution: silhouette on PCA (internal), adjusted Rand index and normalised
mutual information against ground-truth labels when available (external),
and the eigengap of the similarity's normalised Laplacian.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple
import logging

import numpy as np
import pandas as pd
from scipy import sparse

from .config import SelectionConfig
from .engine import ClusteringEngine

CRITERIA = ("silhouette", "ari", "nmi", "eigengap")


@dataclass
class KSelectionResult:
    """Result of a k sweep.

    Attributes
    ----------
    best_k : int
        Chosen number of clusters
    table : pd.DataFrame
        One row per evaluated k
    criterion : str
        Criterion used to choose
    """

    best_k: int
    table: pd.DataFrame = field(default_factory=pd.DataFrame)
    criterion: str = "silhouette"


def estimate_n_clusters_eigengap(
    similarity: Any,
    k_range: Iterable[int],
) -> Tuple[int, pd.DataFrame]:
    """Estimate k from the largest eigengap of the normalised Laplacian.

    With eigenvalues in ascending order (1-based), the gap for k is
    ``lambda_{k+1} - lambda_k``. Ties go to the smaller k.

    Parameters
    ----------
    similarity : array-like
        Symmetric non-negative cell-cell similarity
    k_range : Iterable[int]
        Candidate numbers of clusters

    Returns
    -------
    Tuple[int, pd.DataFrame]
        Best k and a table with columns ``k``, ``eigenvalue``, ``eigengap``

    Raises
    ------
    ValueError
        If no candidate k is below the number of cells.
    """
    from scipy.sparse.csgraph import laplacian

    S = similarity.toarray() if sparse.issparse(similarity) else np.asarray(similarity)
    n = S.shape[0]
    ks = sorted({int(k) for k in k_range if 1 <= int(k) < n})
    if not ks:
        raise ValueError(f"No candidate k in range for {n} cells")

    L = laplacian(S, normed=True)
    evals = np.sort(np.linalg.eigvalsh(L))

    table = pd.DataFrame(
        {
            "k": ks,
            "eigenvalue": [float(evals[k - 1]) for k in ks],
            "eigengap": [float(evals[k] - evals[k - 1]) for k in ks],
        }
    )
    best_k = int(table.loc[table["eigengap"].idxmax(), "k"])
    return best_k, table


class KSelector:
    """Sweep k and choose the number of clusters.

    Parameters
    ----------
    config : SelectionConfig, optional
        Selection configuration
    engine : ClusteringEngine, optional
        Engine used for each k. If None, a default engine is created.
    logger : logging.Logger, optional
        Logger instance

    Example
    -------
    >>> selector = KSelector(SelectionConfig(k_min=3, k_max=10))
    >>> result = selector.run(adata)
    >>> result.best_k
    6
    """

    def __init__(
        self,
        config: Optional[SelectionConfig] = None,
        engine: Optional[ClusteringEngine] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or SelectionConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.engine = engine or ClusteringEngine(logger=self.logger)

    def sweep(
        self,
        adata: Any,  # AnnData
        k_values: Optional[Iterable[int]] = None,
        truth_col: str = "truth",
        unknown_label: str = "unknown",
    ) -> pd.DataFrame:
        """Cluster once per k and score each solution.

        Labels for each k are stored in ``obs[f"{key}_k{k}"]``.

        Returns
        -------
        pd.DataFrame
            Columns ``k``, ``n_clusters``, ``min_cluster_size``,
            ``silhouette``, ``ari``, ``nmi`` and (simlr only) ``eigengap``.
            ari/nmi are NaN without ground truth.

        Raises
        ------
        ValueError
            If the engine uses leiden, which does not take a fixed k, or no
            k is valid for the number of cells.
        """
        from sklearn.metrics import (
            adjusted_rand_score,
            normalized_mutual_info_score,
            silhouette_score,
        )

        engine_cfg = self.engine.config
        if engine_cfg.method == "leiden":
            raise ValueError("k selection needs a fixed-k method (simlr or kmeans)")

        if k_values is None:
            k_values = range(self.config.k_min, self.config.k_max + 1)
        ks: List[int] = []
        for k in sorted({int(k) for k in k_values}):
            if 2 <= k <= adata.n_obs - 1:
                ks.append(k)
            else:
                self.logger.warning("Skipping k=%d (needs 2 <= k < %d cells)", k, adata.n_obs)
        if not ks:
            raise ValueError(f"No valid k to evaluate for {adata.n_obs} cells")

        if "X_pca" not in adata.obsm:
            self.engine.compute_pca(adata)
        if engine_cfg.method == "simlr" and "similarity" not in adata.obsp:
            self.engine.build_similarity(adata)
        X = np.asarray(adata.obsm["X_pca"])

        truth = None
        if truth_col in adata.obs.columns:
            truth_values = adata.obs[truth_col].astype(str)
            labelled = (truth_values != unknown_label).to_numpy()
            if labelled.any():
                truth = truth_values.to_numpy()
            else:
                self.logger.warning("Column '%s' has no labelled cells; skipping ARI/NMI", truth_col)

        rows = []
        for k in ks:
            key = f"{engine_cfg.key_added}_k{k}"
            result = self.engine.run_clustering(adata, n_clusters=k, key_added=key)
            labels = adata.obs[key].astype(str).to_numpy()

            sil = np.nan
            if 2 <= result.n_clusters <= adata.n_obs - 1:
                sil = float(silhouette_score(X, labels))
            ari = nmi = np.nan
            if truth is not None:
                ari = float(adjusted_rand_score(truth[labelled], labels[labelled]))
                nmi = float(normalized_mutual_info_score(truth[labelled], labels[labelled]))

            rows.append(
                {
                    "k": k,
                    "n_clusters": result.n_clusters,
                    "min_cluster_size": min(result.cluster_sizes.values()),
                    "silhouette": sil,
                    "ari": ari,
                    "nmi": nmi,
                }
            )
            self.logger.info(
                "k=%d: silhouette=%.3f ari=%.3f nmi=%.3f", k, sil, ari, nmi
            )

        table = pd.DataFrame(rows)
        if "similarity" in adata.obsp:
            _, gaps = estimate_n_clusters_eigengap(adata.obsp["similarity"], ks)
            table = table.merge(gaps[["k", "eigengap"]], on="k", how="left")
        return table

    def choose(
        self,
        table: pd.DataFrame,
        criterion: Optional[str] = None,
    ) -> KSelectionResult:
        """Pick the k maximising ``criterion``; ties go to the smaller k.

        Raises
        ------
        ValueError
            If the criterion is unknown or its column has no values (ari and
            nmi need ground truth, eigengap needs a similarity).
        """
        criterion = criterion or self.config.criterion
        if criterion not in CRITERIA:
            raise ValueError(f"Unknown criterion '{criterion}'; expected one of {CRITERIA}")
        if criterion not in table.columns or table[criterion].isna().all():
            hint = {
                "ari": "ground-truth labels",
                "nmi": "ground-truth labels",
                "eigengap": "a similarity matrix (simlr)",
            }.get(criterion, "a successful sweep")
            raise ValueError(f"Criterion '{criterion}' has no values; it needs {hint}")

        valid = table.dropna(subset=[criterion]).sort_values("k")
        best_k = int(valid.loc[valid[criterion].idxmax(), "k"])
        self.logger.info("Chose k=%d by %s", best_k, criterion)
        return KSelectionResult(best_k=best_k, table=table, criterion=criterion)

    def run(
        self,
        adata: Any,  # AnnData
        k_values: Optional[Iterable[int]] = None,
        criterion: Optional[str] = None,
        truth_col: str = "truth",
        unknown_label: str = "unknown",
    ) -> KSelectionResult:
        """Sweep, choose and (when ``apply_best``) copy the chosen labels.

        The chosen labels are copied to ``obs[key_added]``.
        """
        table = self.sweep(adata, k_values, truth_col=truth_col, unknown_label=unknown_label)
        result = self.choose(table, criterion)
        key = self.engine.config.key_added
        if self.config.apply_best:
            adata.obs[key] = adata.obs[f"{key}_k{result.best_k}"].copy()
            self.logger.info("Applied k=%d labels to obs['%s']", result.best_k, key)
        adata.uns["k_selection"] = {
            "best_k": result.best_k,
            "criterion": result.criterion,
            "k_values": [int(k) for k in table["k"]],
        }
        return result
