"""Relabelling clusters to line up with reference labels.

Cluster ids from unsupervised clustering are arbitrary. For side-by-side
plots against ground truth each cluster is renamed after the reference
label it overlaps most, with a one-to-one assignment chosen to maximise
total overlap.
"""

from typing import Any, Dict, Iterable, Mapping, Optional
import logging

import numpy as np
import pandas as pd
from scipy.optimize import linear_sum_assignment

logger = logging.getLogger(__name__)


def contingency_table(clusters: Iterable, reference: Iterable) -> pd.DataFrame:
    """Cells per (cluster, reference label); clusters as rows."""
    clusters = np.asarray([str(c) for c in clusters])
    reference = np.asarray([str(r) for r in reference])
    if clusters.shape != reference.shape:
        raise ValueError(
            f"Length mismatch: {clusters.size} clusters vs {reference.size} labels"
        )
    table = pd.crosstab(
        pd.Series(clusters, name="cluster"),
        pd.Series(reference, name="reference"),
    )
    return table


def align_clusters_to_reference(
    clusters: Iterable,
    reference: Iterable,
    ignore_labels: Optional[Iterable[str]] = None,
) -> Dict[str, str]:
    """Map each cluster to a reference label by maximum-overlap assignment.

    The contingency table is solved as an assignment problem
    (Hungarian algorithm), so each reference label is used at most once.
    Clusters left over when there are more clusters than labels are named
    ``"<majority label> (<cluster>)"``. Clusters with no labelled cells keep
    their own id.

    Parameters
    ----------
    clusters : Iterable
        Cluster label per cell
    reference : Iterable
        Reference label per cell
    ignore_labels : Iterable[str], optional
        Reference labels excluded from matching (e.g. ``"unknown"``)

    Returns
    -------
    Dict[str, str]
        Cluster id -> new name, covering every cluster
    """
    table = contingency_table(clusters, reference)
    all_clusters = list(table.index)
    ignore = {str(x) for x in (ignore_labels or [])}
    table = table.loc[:, [c for c in table.columns if c not in ignore]]

    mapping: Dict[str, str] = {}
    if table.shape[1] > 0:
        rows, cols = linear_sum_assignment(-table.to_numpy())
        for r, c in zip(rows, cols):
            if table.iat[r, c] > 0:
                mapping[table.index[r]] = str(table.columns[c])
    n_matched = len(mapping)

    for cluster in all_clusters:
        if cluster in mapping:
            continue
        counts = table.loc[cluster] if table.shape[1] > 0 else pd.Series(dtype=int)
        if counts.sum() > 0:
            mapping[cluster] = f"{counts.idxmax()} ({cluster})"
        else:
            mapping[cluster] = cluster

    logger.info(
        "Aligned %d clusters to %d reference labels (%d one-to-one)",
        len(all_clusters),
        table.shape[1],
        n_matched,
    )
    return mapping


def apply_label_map(
    adata: Any,  # AnnData
    mapping: Mapping,
    source_key: str = "cluster",
    target_key: str = "cluster_label",
) -> pd.Series:
    """Write ``obs[target_key]`` by renaming ``obs[source_key]``.

    Values missing from ``mapping`` are kept as they are. Mapping keys that
    match no value are reported in the log.

    Raises
    ------
    KeyError
        If ``source_key`` is not in obs.
    """
    if source_key not in adata.obs.columns:
        raise KeyError(f"Column '{source_key}' not found in obs")

    mapping = {str(k): str(v) for k, v in mapping.items()}
    source = adata.obs[source_key].astype(str)
    present = set(source.unique())
    unused = sorted(set(mapping) - present)
    if unused:
        logger.warning("Label map keys not found in '%s': %s", source_key, unused)

    renamed = source.map(lambda v: mapping.get(v, v))
    if isinstance(adata.obs[source_key].dtype, pd.CategoricalDtype):
        order = [mapping.get(str(c), str(c)) for c in adata.obs[source_key].cat.categories]
    else:
        order = sorted(renamed.unique())
    categories = list(dict.fromkeys(o for o in order if o in set(renamed)))
    adata.obs[target_key] = pd.Categorical(renamed.to_numpy(), categories=categories)
    logger.info(
        "Relabelled '%s' -> '%s' (%d categories)", source_key, target_key, len(categories)
    )
    return adata.obs[target_key]
