"""Matrix and table I/O for stagewise.

Reads the merged expression matrix (AnnData ``.h5ad`` or delimited text with
genes as rows) and ground-truth label tables, and writes result tables.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

TEXT_SUFFIXES = {".csv": ",", ".tsv": "\t", ".txt": "\t"}
ORIENTATIONS = ("genes_x_cells", "cells_x_genes")


def ensure_output_dir(path: PathLike) -> Path:
    """Create the directory at path if it does not exist and return it."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def _strip_compression(path: Path) -> str:
    """Return the data suffix of a path, ignoring a trailing ``.gz``."""
    suffixes = [s.lower() for s in path.suffixes]
    if suffixes and suffixes[-1] == ".gz":
        suffixes = suffixes[:-1]
    return suffixes[-1] if suffixes else ""


def infer_delimiter(path: PathLike) -> Optional[str]:
    """Infer the column delimiter of a text matrix from its suffix.

    Returns None for ``.h5ad`` files.

    Raises
    ------
    ValueError
        If the suffix is not a supported matrix format.
    """
    suffix = _strip_compression(Path(path))
    if suffix == ".h5ad":
        return None
    if suffix not in TEXT_SUFFIXES:
        raise ValueError(
            f"Unsupported matrix format '{suffix}' for {path}; "
            f"expected .h5ad or one of {sorted(TEXT_SUFFIXES)}"
        )
    return TEXT_SUFFIXES[suffix]


def read_expression_matrix(
    path: PathLike,
    orientation: str = "genes_x_cells",
    delimiter: Optional[str] = None,
):
    """Read an expression matrix into a cells x genes AnnData.

    Parameters
    ----------
    path : PathLike
        ``.h5ad`` file, or a ``.csv``/``.tsv``/``.txt`` table (optionally
        gzipped) whose first column holds row identifiers and whose header
        holds column identifiers.
    orientation : str
        Layout of a text table: ``"genes_x_cells"`` (genes as rows, the usual
        layout of merged count tables) or ``"cells_x_genes"``. Ignored for
        ``.h5ad`` input, which is always cells x genes.
    delimiter : str, optional
        Column delimiter. Inferred from the suffix when None.

    Returns
    -------
    AnnData
        Cells as observations, genes as variables. Gene names are made unique.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the format or orientation is not supported.
    """
    import anndata as ad

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Expression matrix not found: {path}")
    if orientation not in ORIENTATIONS:
        raise ValueError(
            f"Unknown orientation '{orientation}'; expected one of {ORIENTATIONS}"
        )

    inferred = infer_delimiter(path)
    if inferred is None:
        adata = ad.read_h5ad(path)
        logger.info("Read %s: %d cells x %d genes", path, adata.n_obs, adata.n_vars)
    else:
        sep = delimiter or inferred
        table = pd.read_csv(path, sep=sep, index_col=0)
        table.index = table.index.astype(str)
        table.columns = table.columns.astype(str)
        if orientation == "genes_x_cells":
            table = table.T
        adata = ad.AnnData(
            X=table.to_numpy(dtype=np.float32),
            obs=pd.DataFrame(index=pd.Index(table.index, name="cell_id")),
            var=pd.DataFrame(index=pd.Index(table.columns, name="gene")),
        )
        logger.info(
            "Read %s (%s): %d cells x %d genes",
            path,
            orientation,
            adata.n_obs,
            adata.n_vars,
        )

    if not adata.var_names.is_unique:
        n_dup = int(adata.var_names.duplicated().sum())
        logger.warning("Making %d duplicated gene names unique", n_dup)
        adata.var_names_make_unique()
    if not adata.obs_names.is_unique:
        n_dup = int(adata.obs_names.duplicated().sum())
        logger.warning("Making %d duplicated cell identifiers unique", n_dup)
        adata.obs_names_make_unique()

    return adata


def read_cell_labels(
    path: PathLike,
    cell_id_col: str = "cell_id",
    label_col: str = "cell_type",
    delimiter: Optional[str] = None,
) -> pd.Series:
    """Read ground-truth cell labels keyed by cell identifier.

    Parameters
    ----------
    path : PathLike
        CSV/TSV file with at least ``cell_id_col`` and ``label_col``.
    cell_id_col : str
        Column holding cell identifiers.
    label_col : str
        Column holding labels.
    delimiter : str, optional
        Column delimiter. Inferred from the suffix when None.

    Returns
    -------
    pd.Series
        Labels (str) indexed by cell identifier (str).

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If a required column is missing.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Label table not found: {path}")

    sep = delimiter or TEXT_SUFFIXES.get(_strip_compression(path), ",")
    df = pd.read_csv(path, sep=sep, dtype=str)
    missing = [col for col in (cell_id_col, label_col) if col not in df.columns]
    if missing:
        raise ValueError(f"Label table {path} missing columns: {missing}")

    df = df.dropna(subset=[cell_id_col])
    if df[cell_id_col].duplicated().any():
        n_dup = int(df[cell_id_col].duplicated().sum())
        logger.warning("Label table has %d duplicated cell ids; keeping first", n_dup)
        df = df.drop_duplicates(subset=[cell_id_col], keep="first")

    labels = pd.Series(
        df[label_col].to_numpy(),
        index=pd.Index(df[cell_id_col].astype(str), name=cell_id_col),
        name=label_col,
    )
    logger.info("Read %d labels (%d classes) from %s", len(labels), labels.nunique(), path)
    return labels


def write_dataframe(df: pd.DataFrame, path: PathLike, index: bool = False) -> Path:
    """Write a DataFrame to CSV, creating parent directories.

    Returns
    -------
    Path
        Path written.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=index)
    logger.debug("Wrote %d rows to %s", len(df), path)
    return path
