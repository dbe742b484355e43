"""Expression matrix loader with validation.

Reads the merged genes x cells matrix into a cells x genes AnnData and
checks it before any analysis step touches it.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging

import numpy as np
from scipy import sparse

from ...io.tables import read_expression_matrix
from .config import LoaderConfig


@dataclass
class LoadResult:
    """Summary of a loaded matrix.

    Attributes
    ----------
    path : str
        Source file
    n_cells : int
        Number of cells
    n_genes : int
        Number of genes
    is_sparse : bool
        Whether X is stored sparse
    issues : List[str]
        Non-fatal issues found (e.g. all-zero cells)
    """

    path: str
    n_cells: int = 0
    n_genes: int = 0
    is_sparse: bool = False
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for reporting."""
        return {
            "path": self.path,
            "n_cells": self.n_cells,
            "n_genes": self.n_genes,
            "is_sparse": self.is_sparse,
            "issues": ";".join(self.issues),
        }


class DataLoader:
    """Expression matrix loader.

    Parameters
    ----------
    config : LoaderConfig, optional
        Loader configuration
    logger : logging.Logger, optional
        Logger instance

    Example
    -------
    >>> from stagewise.core.preprocessing import DataLoader, LoaderConfig
    >>> loader = DataLoader(LoaderConfig(orientation="genes_x_cells"))
    >>> adata = loader.load("merged.tsv.gz")
    >>> loader.last_result.n_cells
    1529
    """

    def __init__(
        self,
        config: Optional[LoaderConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or LoaderConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.last_result: Optional[LoadResult] = None

    def load(self, path: Optional[Union[str, Path]] = None) -> Any:
        """Load and validate the expression matrix.

        Parameters
        ----------
        path : str or Path, optional
            Matrix file. Defaults to ``config.path``.

        Returns
        -------
        AnnData
            Cells x genes, ``float32``. ``uns["source"]`` records the origin.

        Raises
        ------
        ValueError
            If no path is given, or the matrix is empty or has non-finite values.
        """
        path = path or self.config.path
        if not path:
            raise ValueError("No expression matrix path given")

        adata = read_expression_matrix(
            path,
            orientation=self.config.orientation,
            delimiter=self.config.delimiter,
        )
        result = self.validate(adata)
        result.path = str(path)

        if sparse.issparse(adata.X):
            adata.X = adata.X.astype(np.float32)
        else:
            adata.X = np.asarray(adata.X, dtype=np.float32)

        adata.uns["source"] = {
            "path": str(path),
            "orientation": self.config.orientation,
            "n_cells": int(adata.n_obs),
            "n_genes": int(adata.n_vars),
        }
        self.last_result = result
        self.logger.info(
            "Loaded %d cells x %d genes from %s", adata.n_obs, adata.n_vars, path
        )
        return adata

    def validate(self, adata: Any) -> LoadResult:
        """Check shape and values of a loaded matrix.

        Raises
        ------
        ValueError
            If the matrix has no cells, no genes, or non-finite values.
        """
        result = LoadResult(
            path="",
            n_cells=int(adata.n_obs),
            n_genes=int(adata.n_vars),
            is_sparse=sparse.issparse(adata.X),
        )
        if adata.n_obs == 0:
            raise ValueError("Expression matrix has no cells")
        if adata.n_vars == 0:
            raise ValueError("Expression matrix has no genes")

        values = adata.X.data if sparse.issparse(adata.X) else np.asarray(adata.X)
        n_bad = int(np.size(values) - np.isfinite(values).sum())
        if n_bad:
            raise ValueError(f"Expression matrix contains {n_bad} non-finite values")

        totals = np.asarray(adata.X.sum(axis=1)).ravel()
        n_empty = int((totals == 0).sum())
        if n_empty:
            result.issues.append(f"{n_empty} cells with zero total expression")
            self.logger.warning("%d cells have zero total expression", n_empty)

        return result
