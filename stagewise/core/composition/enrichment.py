"""Stage enrichment of clusters.

For every (cluster, stage) pair a Fisher exact test asks whether the
cluster is over- or under-represented among the cells of that stage
compared with all other stages.
"""

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from ...config.stages import natural_key

ENRICHMENT_COLUMNS = [
    "cluster",
    "stage",
    "n_cluster_in_stage",
    "n_stage",
    "n_cluster",
    "expected",
    "odds_ratio",
    "log2_odds_ratio",
    "p_value",
    "p_adjusted",
    "significant",
    "direction",
]


def compute_stage_enrichment(
    obs: pd.DataFrame,
    cluster_key: str = "cluster",
    stage_col: str = "stage",
    correction_method: str = "fdr_bh",
    alpha: float = 0.05,
) -> pd.DataFrame:
    """Test each cluster for enrichment in each stage.

    The 2x2 table for (cluster c, stage s) counts cells in c and s, in c
    outside s, outside c in s, and outside both. The log2 odds ratio uses a
    0.5 pseudo-count on every cell so empty cells stay finite.

    Parameters
    ----------
    obs : pd.DataFrame
        Per-cell table with cluster and stage columns
    cluster_key : str
        Column with cluster labels
    stage_col : str
        Column with stages
    correction_method : str
        Method for ``statsmodels.stats.multitest.multipletests``
    alpha : float
        Significance threshold on adjusted p-values

    Returns
    -------
    pd.DataFrame
        One row per (cluster, stage) with ``ENRICHMENT_COLUMNS``; sorted by
        cluster then adjusted p-value. Empty with these columns when there
        are fewer than two stages or clusters.
    """
    df = obs[[cluster_key, stage_col]].dropna().astype(str)
    clusters = sorted(df[cluster_key].unique(), key=natural_key)
    present = set(df[stage_col])
    if isinstance(obs[stage_col].dtype, pd.CategoricalDtype):
        stages = [str(s) for s in obs[stage_col].cat.categories if str(s) in present]
    else:
        stages = sorted(present, key=natural_key)

    if len(clusters) < 2 or len(stages) < 2:
        return pd.DataFrame(columns=ENRICHMENT_COLUMNS)

    counts = pd.crosstab(df[cluster_key], df[stage_col])
    n_total = int(counts.to_numpy().sum())

    results = []
    for cluster in clusters:
        n_cluster = int(counts.loc[cluster].sum())
        for stage in stages:
            n_stage = int(counts[stage].sum())
            a = int(counts.at[cluster, stage])
            b = n_cluster - a
            c = n_stage - a
            d = n_total - n_cluster - c

            _, p_value = stats.fisher_exact([[a, b], [c, d]], alternative="two-sided")
            odds = ((a + 0.5) * (d + 0.5)) / ((b + 0.5) * (c + 0.5))

            results.append({
                "cluster": cluster,
                "stage": stage,
                "n_cluster_in_stage": a,
                "n_stage": n_stage,
                "n_cluster": n_cluster,
                "expected": n_cluster * n_stage / n_total,
                "odds_ratio": odds,
                "log2_odds_ratio": float(np.log2(odds)),
                "p_value": float(p_value),
            })

    out = pd.DataFrame(results)
    out["p_adjusted"] = multipletests(
        out["p_value"].to_numpy(), alpha=alpha, method=correction_method
    )[1]
    out["significant"] = out["p_adjusted"] < alpha
    out["direction"] = np.where(
        out["log2_odds_ratio"] > 0,
        "enriched",
        np.where(out["log2_odds_ratio"] < 0, "depleted", "neutral"),
    )

    out["cluster"] = pd.Categorical(out["cluster"], categories=clusters)
    out = out.sort_values(["cluster", "p_adjusted"], kind="stable").reset_index(drop=True)
    out["cluster"] = out["cluster"].astype(str)
    return out[ENRICHMENT_COLUMNS]


def summarize_enrichment(enrichment: pd.DataFrame) -> pd.DataFrame:
    """Per cluster: the stage it is most enriched in and the count of significant stages."""
    if enrichment.empty:
        return pd.DataFrame(
            columns=["cluster", "top_stage", "top_log2_odds_ratio", "n_significant"]
        )
    rows = []
    for cluster, group in enrichment.groupby("cluster", sort=False):
        top = group.loc[group["log2_odds_ratio"].idxmax()]
        rows.append({
            "cluster": cluster,
            "top_stage": top["stage"],
            "top_log2_odds_ratio": top["log2_odds_ratio"],
            "n_significant": int(group["significant"].sum()),
        })
    return pd.DataFrame(rows)