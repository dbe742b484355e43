"""Static figures: embeddings, gene expression, markers and k selection.

Provides:
- Embedding scatter coloured by a category or a continuous value
- Gene expression on the embedding (grid)
- Violin plots of expression per group
- Marker heatmap (z-scored group means) and dot plot
- k selection diagnostics
- Cluster vs reference contingency heatmap
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging

import numpy as np
import pandas as pd
from scipy import sparse

from .style import categorical_palette, save_figure, set_style

logger = logging.getLogger(__name__)


def get_values(adata, key: str, use_raw: bool = False) -> pd.Series:
    """Values of an obs column or a gene, indexed by cell.

    Raises
    ------
    KeyError
        If ``key`` is neither an obs column nor a gene.
    """
    if key in adata.obs.columns:
        return adata.obs[key]
    source = adata.raw if use_raw and adata.raw is not None else adata
    if key in source.var_names:
        col = source[:, key].X
        col = col.toarray() if sparse.issparse(col) else np.asarray(col)
        return pd.Series(col.ravel(), index=adata.obs_names, name=key)
    raise KeyError(f"'{key}' is neither an obs column nor a gene")


def is_categorical_values(values: pd.Series) -> bool:
    """True for categorical, string and boolean values."""
    return not pd.api.types.is_numeric_dtype(values) or pd.api.types.is_bool_dtype(values)


def present_genes(adata, genes: Iterable[str]) -> List[str]:
    """Genes found in ``var_names``, in input order, with a warning for the rest."""
    genes = list(dict.fromkeys(str(g) for g in genes))
    found = [g for g in genes if g in adata.var_names]
    missing = [g for g in genes if g not in adata.var_names]
    if missing:
        logger.warning("Skipping %d genes not in the dataset: %s", len(missing), missing[:10])
    return found


def _basis_coords(adata, basis: str) -> np.ndarray:
    key = f"X_{basis}"
    if key not in adata.obsm:
        raise KeyError(f"Embedding '{key}' not found in obsm; compute it first")
    return np.asarray(adata.obsm[key])[:, :2]


def _draw_embedding(ax, coords, values: pd.Series, point_size: float, palette=None, legend=True):
    """Scatter on an existing axes; categorical or continuous colouring."""
    import matplotlib.pyplot as plt

    is_categorical = is_categorical_values(values)
    if is_categorical:
        cats = values.astype("category")
        categories = [str(c) for c in cats.cat.categories]
        colors = categorical_palette(categories, palette)
        labels = cats.astype(str).to_numpy()
        missing = cats.isna().to_numpy()
        # Cells without a value (e.g. unparsed stage) drawn grey underneath
        if missing.any():
            ax.scatter(
                coords[missing, 0],
                coords[missing, 1],
                s=point_size,
                c="lightgrey",
                label="NA",
                linewidths=0,
            )
        for cat in categories:
            mask = (labels == cat) & ~missing
            if not mask.any():
                continue
            ax.scatter(
                coords[mask, 0],
                coords[mask, 1],
                s=point_size,
                c=colors[cat],
                label=cat,
                linewidths=0,
            )
        if legend:
            ax.legend(
                bbox_to_anchor=(1.02, 1),
                loc="upper left",
                frameon=False,
                markerscale=2,
                ncol=1 if len(categories) <= 15 else 2,
            )
    else:
        numeric = values.to_numpy(dtype=float)
        finite = np.isfinite(numeric)
        # Non-finite values (e.g. cells unreachable in pseudo-time) drawn grey
        if not finite.all():
            ax.scatter(
                coords[~finite, 0],
                coords[~finite, 1],
                s=point_size,
                c="lightgrey",
                linewidths=0,
            )
        if finite.any():
            sc_ = ax.scatter(
                coords[finite, 0],
                coords[finite, 1],
                s=point_size,
                c=numeric[finite],
                cmap="viridis",
                linewidths=0,
            )
            plt.colorbar(sc_, ax=ax, fraction=0.046, pad=0.04)
    ax.set_xticks([])
    ax.set_yticks([])


def plot_embedding(
    adata,
    color: str,
    output_path: Path,
    basis: str = "tsne",
    palette: Optional[Dict[str, str]] = None,
    title: Optional[str] = None,
    point_size: float = 8.0,
    dpi: int = 200,
    figsize: Tuple[float, float] = (7, 6),
) -> Path:
    """Plot the embedding coloured by an obs column or a gene.

    Parameters
    ----------
    adata : AnnData
        Dataset with ``obsm[f"X_{basis}"]``
    color : str
        obs column (categorical legend) or gene (colour bar)
    output_path : Path
        Output file path
    basis : str
        Embedding name
    palette : Dict[str, str], optional
        Fixed colours for some categories (e.g. stages)

    Returns
    -------
    Path
        Path to saved figure
    """
    import matplotlib.pyplot as plt

    set_style()
    coords = _basis_coords(adata, basis)
    values = get_values(adata, color)

    fig, ax = plt.subplots(figsize=figsize)
    _draw_embedding(ax, coords, values, point_size, palette=palette)
    ax.set_xlabel(f"{basis.upper()}1")
    ax.set_ylabel(f"{basis.upper()}2")
    ax.set_title(title or color)
    return save_figure(fig, output_path, dpi=dpi)


def plot_feature_grid(
    adata,
    genes: Sequence[str],
    output_path: Path,
    basis: str = "tsne",
    ncols: int = 4,
    point_size: float = 4.0,
    dpi: int = 200,
) -> Optional[Path]:
    """Plot expression of several genes on the embedding, one panel each.

    Returns None when none of the genes is present.
    """
    import matplotlib.pyplot as plt

    set_style()
    genes = present_genes(adata, genes)
    if not genes:
        logger.warning("No genes to plot on the embedding")
        return None

    coords = _basis_coords(adata, basis)
    ncols = max(1, min(ncols, len(genes)))
    nrows = int(np.ceil(len(genes) / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(3.6 * ncols, 3.2 * nrows), squeeze=False)

    for ax, gene in zip(axes.flat, genes):
        _draw_embedding(ax, coords, get_values(adata, gene).astype(float), point_size)
        ax.set_title(gene)
    for ax in list(axes.flat)[len(genes):]:
        ax.set_visible(False)

    plt.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)


def plot_violin(
    adata,
    genes: Sequence[str],
    groupby: str,
    output_path: Path,
    ncols: int = 3,
    dpi: int = 200,
) -> Optional[Path]:
    """Violin plots of gene expression per group, one panel per gene."""
    import matplotlib.pyplot as plt
    import seaborn as sns

    set_style()
    genes = present_genes(adata, genes)
    if not genes:
        logger.warning("No genes to plot as violins")
        return None

    groups = adata.obs[groupby].astype("category")
    order = [str(c) for c in groups.cat.categories if (groups == c).any()]
    ncols = max(1, min(ncols, len(genes)))
    nrows = int(np.ceil(len(genes) / ncols))
    width = max(4.0, 0.45 * len(order))
    fig, axes = plt.subplots(nrows, ncols, figsize=(width * ncols, 3.2 * nrows), squeeze=False)

    for ax, gene in zip(axes.flat, genes):
        df = pd.DataFrame({
            groupby: groups.astype(str).to_numpy(),
            "expression": get_values(adata, gene).astype(float).to_numpy(),
        })
        sns.violinplot(
            data=df,
            x=groupby,
            y="expression",
            hue=groupby,
            order=order,
            hue_order=order,
            ax=ax,
            palette=categorical_palette(order),
            inner=None,
            cut=0,
            density_norm="width",
            legend=False,
        )
        ax.set_title(gene)
        ax.set_xlabel("")
        plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    for ax in list(axes.flat)[len(genes):]:
        ax.set_visible(False)

    plt.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)


def marker_gene_list(markers: Mapping[str, Sequence[str]], n: Optional[int] = None) -> List[str]:
    """Flatten per-cluster markers into a unique list, cluster order kept."""
    genes: List[str] = []
    for cluster_genes in markers.values():
        genes.extend(list(cluster_genes)[:n] if n else list(cluster_genes))
    return list(dict.fromkeys(genes))


def group_means(adata, genes: Sequence[str], groupby: str) -> pd.DataFrame:
    """Mean expression per group (rows) and gene (columns)."""
    X = adata[:, list(genes)].X
    X = X.toarray() if sparse.issparse(X) else np.asarray(X)
    df = pd.DataFrame(X, columns=list(genes), index=adata.obs_names)
    return df.groupby(adata.obs[groupby].to_numpy(), observed=True, sort=False).mean()


def plot_marker_heatmap(
    adata,
    markers: Mapping[str, Sequence[str]],
    groupby: str,
    output_path: Path,
    n_genes: Optional[int] = 5,
    dpi: int = 200,
) -> Optional[Path]:
    """Heatmap of per-group mean expression of markers, z-scored per gene."""
    import matplotlib.pyplot as plt
    import seaborn as sns

    set_style()
    genes = present_genes(adata, marker_gene_list(markers, n_genes))
    if not genes:
        logger.warning("No marker genes to plot as heatmap")
        return None

    means = group_means(adata, genes, groupby)
    groups = adata.obs[groupby].astype("category").cat.categories
    means = means.reindex([g for g in groups if g in means.index])
    std = means.std(axis=0, ddof=0).replace(0, 1.0)
    zscores = (means - means.mean(axis=0)) / std

    fig, ax = plt.subplots(
        figsize=(max(6, 0.5 * len(means) + 2), max(5, 0.25 * len(genes) + 1))
    )
    sns.heatmap(
        zscores.T,
        ax=ax,
        cmap="RdBu_r",
        center=0,
        cbar_kws={"label": "z-score of mean expression"},
        yticklabels=True,
    )
    ax.set_xlabel(groupby)
    ax.set_ylabel("Gene")
    ax.set_title("Marker expression by group")
    plt.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)


def plot_marker_dotplot(
    adata,
    markers: Mapping[str, Sequence[str]],
    groupby: str,
    output_path: Path,
    n_genes: Optional[int] = 5,
    dpi: int = 200,
) -> Optional[Path]:
    """Dot plot of markers per group through ``scanpy.pl.dotplot``."""
    import matplotlib.pyplot as plt
    import scanpy as sc

    var_names = {}
    for cluster, genes in markers.items():
        found = [g for g in (list(genes)[:n_genes] if n_genes else genes) if g in adata.var_names]
        if found:
            var_names[str(cluster)] = found
    if not var_names:
        logger.warning("No marker genes to plot as dot plot")
        return None

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    dotplot = sc.pl.dotplot(
        adata,
        var_names=var_names,
        groupby=groupby,
        standard_scale="var",
        return_fig=True,
        show=False,
    )
    dotplot.savefig(output_path, dpi=dpi)
    plt.close(dotplot.fig)
    return output_path


def plot_k_selection(
    table: pd.DataFrame,
    output_path: Path,
    best_k: Optional[int] = None,
    dpi: int = 200,
    figsize: Tuple[float, float] = (7, 4.5),
) -> Path:
    """Plot k sweep metrics; eigengap on a secondary axis."""
    import matplotlib.pyplot as plt

    set_style()
    fig, ax = plt.subplots(figsize=figsize)
    handles = []
    for metric, marker in (("silhouette", "o"), ("ari", "s"), ("nmi", "^")):
        if metric in table.columns and table[metric].notna().any():
            (line,) = ax.plot(table["k"], table[metric], marker=marker, label=metric)
            handles.append(line)
    ax.set_xlabel("k")
    ax.set_ylabel("score")

    if "eigengap" in table.columns and table["eigengap"].notna().any():
        ax2 = ax.twinx()
        (line,) = ax2.plot(
            table["k"], table["eigengap"], color="grey", linestyle="--", marker="x", label="eigengap"
        )
        ax2.set_ylabel("eigengap")
        handles.append(line)

    if best_k is not None:
        ax.axvline(best_k, color="red", linestyle=":", linewidth=1)
        ax.set_title(f"Number of clusters (chosen k={best_k})")
    else:
        ax.set_title("Number of clusters")
    ax.set_xticks(list(table["k"]))
    if handles:
        ax.legend(handles=handles, loc="best", frameon=False)
    plt.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)


def plot_contingency_heatmap(
    table: pd.DataFrame,
    output_path: Path,
    normalize: bool = True,
    dpi: int = 200,
) -> Path:
    """Heatmap of a cluster x reference contingency table.

    With ``normalize`` each row shows the fraction of the cluster's cells.
    """
    import matplotlib.pyplot as plt
    import seaborn as sns

    set_style()
    values = table.div(table.sum(axis=1).replace(0, 1), axis=0) if normalize else table
    fig, ax = plt.subplots(
        figsize=(max(6, 0.5 * table.shape[1] + 2), max(4, 0.4 * table.shape[0] + 1))
    )
    sns.heatmap(
        values,
        ax=ax,
        cmap="Blues",
        annot=table.shape[0] * table.shape[1] <= 400,
        fmt=".2f" if normalize else "d",
        cbar_kws={"label": "fraction of cluster" if normalize else "cells"},
    )
    ax.set_xlabel(table.columns.name or "reference")
    ax.set_ylabel(table.index.name or "cluster")
    plt.setp(ax.get_xticklabels(), rotation=45, ha="right")
    plt.tight_layout()
    return save_figure(fig, output_path, dpi=dpi)
