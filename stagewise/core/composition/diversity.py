"""Diversity metrics for cluster composition.

This module computes ecological diversity indices of the cluster mix of a
group of cells (e.g. one developmental stage):
- Shannon entropy: Measures overall diversity
- Simpson index: Probability that two random cells are in different clusters
- Pielou's evenness: How evenly cells are distributed across clusters
"""

import numpy as np
import pandas as pd
from scipy.stats import entropy


def compute_shannon_entropy(counts: np.ndarray) -> float:
    """Shannon entropy in nats; 0 for an empty distribution."""
    counts = np.asarray(counts, dtype=float)
    if counts.sum() == 0:
        return 0.0
    return float(entropy(counts))


def compute_simpson_index(counts: np.ndarray) -> float:
    """Simpson diversity index D = 1 - sum(p_i^2).

    Parameters
    ----------
    counts : np.ndarray
        Array of counts (non-negative)

    Returns
    -------
    float
        Simpson diversity index (0 to 1)
    """
    counts = np.asarray(counts, dtype=float)
    total = counts.sum()
    if total == 0:
        return 0.0

    proportions = counts / total
    return float(1.0 - np.sum(proportions ** 2))


def compute_evenness(counts: np.ndarray) -> float:
    """Pielou's evenness J = H / log(S), S the number of non-empty types.

    Returns 1.0 when fewer than two types are present.
    """
    counts = np.asarray(counts, dtype=float)
    n_types = int(np.sum(counts > 0))
    if n_types <= 1:
        return 1.0
    return compute_shannon_entropy(counts) / np.log(n_types)


def compute_diversity_by_group(
    df: pd.DataFrame,
    group_col: str,
    category_col: str = "cluster",
    min_cells: int = 1,
) -> pd.DataFrame:
    """Compute diversity metrics for each group.

    Parameters
    ----------
    df : pd.DataFrame
        Per-cell table
    group_col : str
        Column to group by (e.g. "stage")
    category_col : str
        Column with categories (e.g. "cluster")
    min_cells : int
        Groups with fewer cells get NaN metrics

    Returns
    -------
    pd.DataFrame
        Columns ``group_col``, ``n_cells``, ``n_types``, ``shannon_entropy``,
        ``simpson_index``, ``evenness``
    """
    results = []

    for group, group_df in df.groupby(group_col, observed=True, sort=True):
        n_cells = len(group_df)

        if n_cells < min_cells:
            results.append({
                group_col: group,
                "n_cells": n_cells,
                "n_types": np.nan,
                "shannon_entropy": np.nan,
                "simpson_index": np.nan,
                "evenness": np.nan,
            })
            continue

        counts = group_df[category_col].value_counts()
        counts = counts[counts > 0].to_numpy()

        results.append({
            group_col: group,
            "n_cells": n_cells,
            "n_types": len(counts),
            "shannon_entropy": compute_shannon_entropy(counts),
            "simpson_index": compute_simpson_index(counts),
            "evenness": compute_evenness(counts),
        })

    return pd.DataFrame(
        results,
        columns=[group_col, "n_cells", "n_types", "shannon_entropy", "simpson_index", "evenness"],
    )
