"""Aggregation functions for cluster composition.

This module counts cells per (group, category) pair and reshapes the
counts into long and wide tables, most importantly clusters x stages.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import pandas as pd


@dataclass
class StageSummary:
    """Cluster x stage cross-tabulation.

    Attributes
    ----------
    counts : pd.DataFrame
        Cells per cluster (rows) and stage (columns)
    cluster_fraction : pd.DataFrame
        Row proportions: share of each cluster's cells in each stage
    stage_fraction : pd.DataFrame
        Column proportions: share of each stage's cells in each cluster
    """

    counts: pd.DataFrame
    cluster_fraction: pd.DataFrame
    stage_fraction: pd.DataFrame


def _observed_order(values: pd.Series) -> List[str]:
    """Observed categories in category order, or sorted unique values."""
    if isinstance(values.dtype, pd.CategoricalDtype):
        present = set(values.dropna().astype(str))
        return [str(c) for c in values.cat.categories if str(c) in present]
    return sorted(values.dropna().astype(str).unique())


def compute_composition(
    df: pd.DataFrame,
    group_col: str,
    category_col: str = "cluster",
    normalize: bool = True,
) -> pd.DataFrame:
    """Compute composition of ``category_col`` within each group.

    Parameters
    ----------
    df : pd.DataFrame
        Per-cell table (e.g. ``adata.obs``)
    group_col : str
        Column to group by (e.g. "stage")
    category_col : str
        Column whose composition is measured (e.g. "cluster")
    normalize : bool
        If True, add the proportion within each group

    Returns
    -------
    pd.DataFrame
        Columns ``group_col``, ``category_col``, ``count`` and
        ``proportion``; only observed pairs, groups in their natural order.
    """
    for col in (group_col, category_col):
        if col not in df.columns:
            raise KeyError(f"Column '{col}' not found")

    counts = (
        df.groupby([group_col, category_col], observed=True)
        .size()
        .reset_index(name="count")
    )
    counts = counts[counts["count"] > 0].reset_index(drop=True)

    if normalize:
        totals = counts.groupby(group_col, observed=True)["count"].transform("sum")
        counts["proportion"] = counts["count"] / totals

    return counts


def composition_wide(
    composition_df: pd.DataFrame,
    index_col: str,
    columns_col: str,
    value_col: str = "proportion",
    fill_value: float = 0.0,
) -> pd.DataFrame:
    """Pivot a long composition table into a matrix with zero fill."""
    wide = composition_df.pivot_table(
        index=index_col,
        columns=columns_col,
        values=value_col,
        fill_value=fill_value,
        aggfunc="first",
        observed=True,
    )
    wide.columns.name = columns_col
    return wide


def summarise_by_stage(
    obs: pd.DataFrame,
    cluster_key: str = "cluster",
    stage_col: str = "stage",
    stage_order: Optional[Sequence[str]] = None,
) -> StageSummary:
    """Cross-tabulate clusters against developmental stages.

    Stages follow ``stage_order`` when given, else the categorical order of
    ``stage_col``. Clusters follow their categorical order.

    Raises
    ------
    KeyError
        If either column is missing.
    """
    for col in (cluster_key, stage_col):
        if col not in obs.columns:
            raise KeyError(f"Column '{col}' not found in obs")

    # Cells without a stage or cluster are not counted
    valid = obs[cluster_key].notna() & obs[stage_col].notna()
    clusters = obs.loc[valid, cluster_key]
    stages = obs.loc[valid, stage_col]
    counts = pd.crosstab(clusters.astype(str), stages.astype(str))

    row_order = _observed_order(clusters)
    col_order = [str(s) for s in stage_order] if stage_order else _observed_order(stages)
    col_order = [s for s in col_order if s in counts.columns]
    col_order += [s for s in counts.columns if s not in col_order]
    counts = counts.reindex(index=row_order, columns=col_order, fill_value=0)
    counts.index.name = cluster_key
    counts.columns.name = stage_col

    cluster_fraction = counts.div(counts.sum(axis=1).replace(0, 1), axis=0)
    stage_fraction = counts.div(counts.sum(axis=0).replace(0, 1), axis=1)
    return StageSummary(
        counts=counts,
        cluster_fraction=cluster_fraction,
        stage_fraction=stage_fraction,
    )
