"""Mock AnnData generators for testing.

Provides functions to create small stage-resolved datasets with planted
clusters, without requiring real data. Cell ids follow the
``<stage>_<batch>_cell<nnnn>`` convention, e.g. ``E10.5_b1_cell0001``.
"""

from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd

MOCK_ID_PATTERN = r"^(?P<stage>E\d+(?:\.\d+)?)_(?P<batch>b\d+)_"
MOCK_STAGES = ("E9.5", "E10.5", "E11.5")
MOCK_CELL_TYPES = ("Hepatoblast", "Erythroid", "Endothelial", "Mesenchymal", "Neural")


def create_mock_adata(
    n_cells: int = 90,
    n_genes: int = 40,
    n_clusters: int = 3,
    stages: Sequence[str] = MOCK_STAGES,
    seed: int = 42,
    counts: bool = False,
    annotate: bool = False,
) -> "AnnData":
    """Create a mock dataset with planted clusters.

    Each planted cluster over-expresses its own block of five genes
    (``Gene_<5c>`` .. ``Gene_<5c+4>``). Cells of cluster ``c`` mostly come
    from stage ``stages[c % len(stages)]`` so composition and pseudo-time
    have a stage signal.

    Parameters
    ----------
    n_cells : int
        Number of cells
    n_genes : int
        Number of genes (at least ``5 * n_clusters``)
    n_clusters : int
        Number of planted clusters
    stages : Sequence[str]
        Stage names used in the cell ids
    seed : int
        Random seed for reproducibility
    counts : bool
        Integer counts instead of log-scale values
    annotate : bool
        Also add ``stage``, ``batch`` and ``truth`` obs columns

    Returns
    -------
    AnnData
        Cells x genes; ``obs["planted"]`` holds the 0-based planted cluster
    """
    import anndata as ad

    rng = np.random.default_rng(seed)

    planted = np.repeat(np.arange(n_clusters), n_cells // n_clusters + 1)[:n_cells]
    stage_idx = planted % len(stages)
    switch = rng.random(n_cells) < 0.15
    stage_idx[switch] = rng.integers(0, len(stages), int(switch.sum()))
    batch = np.where(np.arange(n_cells) % 2 == 0, "b1", "b2")

    if counts:
        rates = np.full((n_cells, n_genes), 1.0)
        for c in range(n_clusters):
            rates[np.ix_(planted == c, np.arange(5 * c, 5 * c + 5))] = 20.0
        X = rng.poisson(rates).astype(np.float32)
    else:
        X = rng.normal(1.0, 0.3, size=(n_cells, n_genes))
        for c in range(n_clusters):
            X[np.ix_(planted == c, np.arange(5 * c, 5 * c + 5))] += 4.0
        X = np.clip(X, 0, None).astype(np.float32)

    cell_ids = [
        f"{stages[s]}_{b}_cell{i:04d}" for i, (s, b) in enumerate(zip(stage_idx, batch))
    ]
    obs = pd.DataFrame(
        {"planted": planted},
        index=pd.Index(cell_ids, name="cell_id"),
    )
    var = pd.DataFrame(index=pd.Index([f"Gene_{j}" for j in range(n_genes)], name="gene"))
    adata = ad.AnnData(X=X, obs=obs, var=var)

    if annotate:
        adata.obs["stage"] = pd.Categorical(
            [stages[s] for s in stage_idx], categories=list(stages), ordered=True
        )
        adata.obs["batch"] = pd.Categorical(batch)
        adata.obs["truth"] = pd.Categorical([MOCK_CELL_TYPES[c] for c in planted])

    return adata


def create_clustered_adata(
    n_cells: int = 90,
    n_genes: int = 40,
    n_clusters: int = 3,
    seed: int = 42,
) -> "AnnData":
    """Create an annotated dataset with 1-based cluster labels and embeddings.

    ``obs["cluster"]`` equals the planted cluster + 1; ``obsm["X_pca"]``
    comes from an SVD of the centred matrix and ``obsm["X_tsne"]`` reuses
    its first two components.
    """
    adata = create_mock_adata(
        n_cells=n_cells,
        n_genes=n_genes,
        n_clusters=n_clusters,
        seed=seed,
        annotate=True,
    )
    labels = [str(c + 1) for c in adata.obs["planted"]]
    adata.obs["cluster"] = pd.Categorical(
        labels, categories=[str(c + 1) for c in range(n_clusters)]
    )

    X = np.asarray(adata.X, dtype=float)
    X = X - X.mean(axis=0)
    u, s, _ = np.linalg.svd(X, full_matrices=False)
    pcs = (u * s)[:, :10].astype(np.float32)
    adata.obsm["X_pca"] = pcs
    adata.obsm["X_tsne"] = pcs[:, :2].copy()
    return adata


def create_cell_labels(
    adata,
    drop: int = 0,
    cell_types: Sequence[str] = MOCK_CELL_TYPES,
) -> pd.Series:
    """Ground-truth labels keyed by cell id; the last ``drop`` cells are left out."""
    planted = adata.obs["planted"].to_numpy()
    labels = pd.Series(
        [cell_types[c] for c in planted],
        index=pd.Index(adata.obs_names.astype(str), name="cell_id"),
        name="cell_type",
    )
    if drop:
        labels = labels.iloc[:-drop]
    return labels


def write_expression_table(
    adata,
    path: Path,
    orientation: str = "genes_x_cells",
    sep: Optional[str] = None,
) -> Path:
    """Write ``adata.X`` as a delimited text matrix with identifiers."""
    path = Path(path)
    df = pd.DataFrame(
        np.asarray(adata.X),
        index=adata.obs_names.astype(str),
        columns=adata.var_names.astype(str),
    )
    if orientation == "genes_x_cells":
        df = df.T
    if sep is None:
        sep = "," if ".csv" in path.suffixes else "\t"
    df.to_csv(path, sep=sep)
    return path
