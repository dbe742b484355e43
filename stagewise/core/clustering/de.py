"""Marker gene detection for clustering module.

One-vs-rest differential expression per cluster via
``scanpy.tl.rank_genes_groups``, returned as one tidy table.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging
import time

import numpy as np
import pandas as pd

from .config import MarkerConfig

MARKER_COLUMNS = [
    "cluster",
    "rank",
    "gene",
    "score",
    "logfoldchange",
    "pval",
    "pval_adj",
    "pct_in",
    "pct_out",
]

_SCANPY_COLUMNS = {
    "names": "gene",
    "scores": "score",
    "logfoldchanges": "logfoldchange",
    "pvals": "pval",
    "pvals_adj": "pval_adj",
    "pct_nz_group": "pct_in",
    "pct_nz_reference": "pct_out",
}


@dataclass
class MarkerResult:
    """Result from marker detection.

    Attributes
    ----------
    table : pd.DataFrame
        Filtered markers with ``MARKER_COLUMNS``
    top_markers : Dict[str, List[str]]
        Cluster -> top genes by score
    key_added : str
        Key in adata.uns containing the full scanpy result
    elapsed_seconds : float
        Time taken for the tests
    """

    table: pd.DataFrame = field(default_factory=lambda: pd.DataFrame(columns=MARKER_COLUMNS))
    top_markers: Dict[str, List[str]] = field(default_factory=dict)
    key_added: str = ""
    elapsed_seconds: float = 0.0


def top_markers(table: pd.DataFrame, n: int = 10) -> Dict[str, List[str]]:
    """Top ``n`` genes per cluster by score, clusters in table order."""
    result: Dict[str, List[str]] = {}
    if table.empty:
        return result
    for cluster, group in table.groupby("cluster", sort=False, observed=True):
        ordered = group.sort_values("score", ascending=False, kind="stable")
        result[str(cluster)] = ordered["gene"].astype(str).head(n).tolist()
    return result


def marker_overlap(
    markers: Mapping[str, Iterable[str]],
    reference_sets: Mapping[str, Iterable[str]],
) -> pd.DataFrame:
    """Jaccard overlap between cluster markers and known marker sets.

    Returns
    -------
    pd.DataFrame
        Clusters as rows, reference sets as columns, plus ``best_match``
        (empty when no set overlaps).
    """
    refs = {str(name): set(genes) for name, genes in reference_sets.items()}
    rows = {}
    for cluster, genes in markers.items():
        genes = set(genes)
        row = {}
        for name, ref in refs.items():
            union = genes | ref
            row[name] = len(genes & ref) / len(union) if union else 0.0
        rows[str(cluster)] = row

    overlap = pd.DataFrame.from_dict(rows, orient="index", columns=list(refs))
    overlap.index.name = "cluster"
    if refs:
        best = overlap.idxmax(axis=1)
        best[overlap.max(axis=1) <= 0] = ""
        overlap["best_match"] = best
    else:
        overlap["best_match"] = ""
    return overlap


class MarkerFinder:
    """Marker gene finder.

    Parameters
    ----------
    config : MarkerConfig, optional
        Marker configuration. If None, uses defaults.
    logger : logging.Logger, optional
        Logger instance. If None, creates default logger.

    Example
    -------
    >>> from stagewise.core.clustering import MarkerFinder
    >>> result = MarkerFinder().find_markers(adata, cluster_key="cluster")
    >>> result.top_markers["1"][:3]
    ['Afp', 'Apoa2', 'Ttr']
    """

    def __init__(
        self,
        config: Optional[MarkerConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or MarkerConfig()
        self.logger = logger or logging.getLogger(__name__)

    def find_markers(
        self,
        adata: Any,  # AnnData
        cluster_key: str = "cluster",
        key_added: Optional[str] = None,
    ) -> MarkerResult:
        """Rank genes one-vs-rest per cluster and filter by thresholds.

        Clusters with fewer than two cells are excluded before testing.

        Parameters
        ----------
        adata : AnnData
            AnnData with expression data and cluster assignments
        cluster_key : str
            Column name in adata.obs with cluster labels
        key_added : str, optional
            Key to store the scanpy result in adata.uns

        Returns
        -------
        MarkerResult
            Filtered marker table and top markers per cluster

        Raises
        ------
        KeyError
            If ``cluster_key`` is not in obs.
        ValueError
            If fewer than two clusters have at least two cells.
        """
        import scanpy as sc

        cfg = self.config
        if cluster_key not in adata.obs.columns:
            raise KeyError(f"Cluster column '{cluster_key}' not found in obs")
        key_added = key_added or f"markers_{cfg.method}"

        layer = cfg.layer
        if layer and layer not in adata.layers:
            self.logger.warning(
                "Layer '%s' not found in adata.layers (available: %s). "
                "Falling back to adata.X",
                layer,
                list(adata.layers.keys()),
            )
            layer = None
        use_raw = bool(cfg.use_raw and adata.raw is not None)
        if use_raw:
            layer = None

        labels = adata.obs[cluster_key]
        if not isinstance(labels.dtype, pd.CategoricalDtype):
            adata.obs[cluster_key] = pd.Categorical(labels.astype(str))
            labels = adata.obs[cluster_key]
        sizes = labels.value_counts(sort=False)
        groups = [str(g) for g, n in sizes.items() if n >= 2]
        small = [str(g) for g, n in sizes.items() if 0 < n < 2]
        if small:
            self.logger.warning(
                "Excluding %d clusters with fewer than two cells: %s", len(small), small
            )
        if len(groups) < 2:
            raise ValueError(
                f"Marker detection needs at least two clusters with two or more cells, "
                f"got {len(groups)}"
            )

        self.logger.info(
            "Ranking markers (method=%s, layer=%s, clusters=%d, key=%s)",
            cfg.method,
            "raw" if use_raw else (layer or "X"),
            len(groups),
            key_added,
        )
        start = time.time()
        sc.tl.rank_genes_groups(
            adata,
            groupby=cluster_key,
            groups=groups,
            reference="rest",
            method=cfg.method,
            n_genes=min(cfg.n_genes, adata.n_vars),
            layer=layer,
            use_raw=use_raw,
            key_added=key_added,
            pts=True,
        )
        elapsed = time.time() - start

        frames = []
        for group in groups:
            df = sc.get.rank_genes_groups_df(adata, group=group, key=key_added)
            df = df.dropna(subset=["names"]).rename(columns=_SCANPY_COLUMNS)
            df.insert(0, "cluster", group)
            frames.append(df)
        raw_table = pd.concat(frames, ignore_index=True)
        for col in MARKER_COLUMNS:
            if col not in raw_table.columns and col != "rank":
                raw_table[col] = np.nan

        table = self.filter_markers(raw_table)
        table["rank"] = table.groupby("cluster", sort=False).cumcount() + 1
        table["cluster"] = pd.Categorical(table["cluster"], categories=groups)
        table = table.sort_values(["cluster", "rank"], kind="stable")
        table = table[MARKER_COLUMNS].reset_index(drop=True)

        result = MarkerResult(
            table=table,
            top_markers=top_markers(table, cfg.n_top),
            key_added=key_added,
            elapsed_seconds=elapsed,
        )
        self.logger.info(
            "Found %d markers across %d clusters in %.1f seconds",
            len(table),
            len(result.top_markers),
            elapsed,
        )
        return result

    def filter_markers(self, table: pd.DataFrame) -> pd.DataFrame:
        """Apply fold change, detection and significance thresholds.

        Thresholds on columns that are entirely NaN (e.g. p-values from
        ``logreg``) are skipped.
        """
        cfg = self.config
        keep = pd.Series(True, index=table.index)
        checks = [
            ("logfoldchange", lambda s: s >= cfg.min_logfc),
            ("pct_in", lambda s: s >= cfg.min_pct),
            ("pval_adj", lambda s: s <= cfg.max_pval_adj),
        ]
        for col, check in checks:
            if col in table.columns and table[col].notna().any():
                keep &= check(table[col]).fillna(False)
        filtered = table.loc[keep].copy()
        self.logger.debug("Marker filter kept %d of %d rows", len(filtered), len(table))
        return filtered
