"""Optional preprocessing of the merged expression matrix.

The merged matrix is normally already log-normalised (or batch-corrected),
so each step here is switchable and the defaults leave such data untouched.
Raw count matrices are detected and normalised when ``normalize="auto"``.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional
import logging

import numpy as np
from scipy import sparse

from .config import PreprocessConfig


@dataclass
class PreprocessResult:
    """Record of the preprocessing steps applied.

    Attributes
    ----------
    steps : List[str]
        Names of the steps that ran, in order
    n_genes_before : int
        Genes before filtering
    n_genes_after : int
        Genes after filtering and HVG selection
    looked_like_counts : bool
        Whether the input matrix looked like raw counts
    """

    steps: List[str] = field(default_factory=list)
    n_genes_before: int = 0
    n_genes_after: int = 0
    looked_like_counts: bool = False


def looks_like_counts(adata: Any, max_check: int = 100_000) -> bool:
    """Return True if X is non-negative and integer-valued.

    Only the first ``max_check`` stored values are inspected.
    """
    X = adata.X
    values = X.data if sparse.issparse(X) else np.asarray(X).ravel()
    values = values[:max_check]
    if values.size == 0:
        return False
    if np.any(values < 0):
        return False
    return bool(np.all(np.equal(np.mod(values, 1), 0)))


class Preprocessor:
    """Switchable gene filtering, normalisation, HVG selection and ComBat.

    Parameters
    ----------
    config : PreprocessConfig, optional
        Preprocessing configuration
    logger : logging.Logger, optional
        Logger instance
    """

    def __init__(
        self,
        config: Optional[PreprocessConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or PreprocessConfig()
        self.logger = logger or logging.getLogger(__name__)

    def filter_genes(self, adata: Any, min_cells: Optional[int] = None) -> Any:
        """Drop genes expressed in fewer than ``min_cells`` cells."""
        import scanpy as sc

        min_cells = self.config.min_cells if min_cells is None else min_cells
        n_before = adata.n_vars
        sc.pp.filter_genes(adata, min_cells=min_cells)
        self.logger.info(
            "Gene filter (min_cells=%d): %d -> %d genes", min_cells, n_before, adata.n_vars
        )
        return adata

    def normalize(self, adata: Any, target_sum: Optional[float] = None) -> Any:
        """Library-size normalise and log1p-transform; raw counts kept in a layer."""
        import scanpy as sc

        target_sum = self.config.target_sum if target_sum is None else target_sum
        adata.layers["counts"] = adata.X.copy()
        sc.pp.normalize_total(adata, target_sum=target_sum)
        sc.pp.log1p(adata)
        self.logger.info("Normalised to %.0f counts per cell and log1p-transformed", target_sum)
        return adata

    def select_hvg(self, adata: Any, n_top_genes: Optional[int] = None) -> Any:
        """Keep the most variable genes; the full matrix is kept in ``adata.raw``."""
        import scanpy as sc

        n_top_genes = self.config.n_top_genes if n_top_genes is None else n_top_genes
        if n_top_genes >= adata.n_vars:
            self.logger.info(
                "Requested %d HVGs but only %d genes; skipping selection",
                n_top_genes,
                adata.n_vars,
            )
            return adata
        adata.raw = adata
        sc.pp.highly_variable_genes(adata, n_top_genes=n_top_genes, flavor="seurat")
        adata = adata[:, adata.var["highly_variable"].to_numpy()].copy()
        self.logger.info("Selected %d highly variable genes", adata.n_vars)
        return adata

    def correct_batch(self, adata: Any, batch_col: Optional[str] = None) -> bool:
        """Run ComBat on ``batch_col``. Returns False when skipped.

        Raises
        ------
        KeyError
            If the batch column is missing.
        """
        import scanpy as sc

        batch_col = batch_col or self.config.batch_col
        if batch_col not in adata.obs.columns:
            raise KeyError(f"Batch column '{batch_col}' not found in obs")
        n_batches = adata.obs[batch_col].nunique()
        if n_batches < 2:
            self.logger.info("Only %d batch; skipping ComBat", n_batches)
            return False
        if sparse.issparse(adata.X):
            adata.X = adata.X.toarray()
        sc.pp.combat(adata, key=batch_col)
        self.logger.info("ComBat corrected %d batches on '%s'", n_batches, batch_col)
        return True

    def run(self, adata: Any) -> tuple:
        """Apply the enabled steps.

        Returns
        -------
        Tuple[AnnData, PreprocessResult]
            Processed AnnData (may be a new object after HVG subsetting)
            and the record of applied steps.
        """
        cfg = self.config
        result = PreprocessResult(n_genes_before=int(adata.n_vars))

        if cfg.min_cells > 0:
            adata = self.filter_genes(adata)
            result.steps.append("filter_genes")

        result.looked_like_counts = looks_like_counts(adata)
        if cfg.normalize == "always" or (cfg.normalize == "auto" and result.looked_like_counts):
            adata = self.normalize(adata)
            result.steps.append("normalize")
        elif cfg.normalize not in ("auto", "never", "always"):
            raise ValueError(
                f"Unknown normalize mode '{cfg.normalize}'; expected auto, always or never"
            )

        if cfg.n_top_genes:
            adata = self.select_hvg(adata)
            result.steps.append("select_hvg")

        if cfg.batch_correction and self.correct_batch(adata):
            result.steps.append("combat")

        result.n_genes_after = int(adata.n_vars)
        self.logger.info(
            "Preprocessing done (%s): %d -> %d genes",
            ", ".join(result.steps) or "no steps",
            result.n_genes_before,
            result.n_genes_after,
        )
        return adata, result
