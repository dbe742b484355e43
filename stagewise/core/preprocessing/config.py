"""Configuration classes for loading and preprocessing."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class LoaderConfig:
    """Configuration for reading the expression matrix.

    Attributes
    ----------
    path : str, optional
        Matrix file (.h5ad, .csv, .tsv, .txt, optionally gzipped)
    orientation : str
        Layout of text matrices: genes_x_cells or cells_x_genes
    delimiter : str, optional
        Column delimiter; inferred from the suffix when None
    """

    path: Optional[str] = None
    orientation: str = "genes_x_cells"
    delimiter: Optional[str] = None


@dataclass
class MetadataConfig:
    """Configuration for per-cell metadata.

    Attributes
    ----------
    dataset : str, optional
        Registered stage configuration (ordering, colours)
    id_pattern : str
        Regular expression applied to cell identifiers. Named groups
        ``stage`` and ``batch`` are picked up; other groups are stored
        under their own names.
    stage_col : str
        obs column receiving the developmental stage
    batch_col : str
        obs column receiving the batch of origin
    batch_source : str, optional
        Existing obs column to copy the batch from instead of the id
    default_batch : str
        Batch assigned when neither the id nor ``batch_source`` gives one
    truth_col : str
        obs column receiving ground-truth labels
    labels_path : str, optional
        CSV/TSV table of ground-truth labels
    labels_cell_id_col : str
        Cell id column of the label table
    labels_label_col : str
        Label column of the label table
    unknown_label : str
        Label given to cells absent from the label table
    strict : bool
        Raise when a cell id does not match ``id_pattern``
    """

    dataset: Optional[str] = None
    id_pattern: str = r"^(?P<stage>[EP]\d+(?:\.\d+)?)"
    stage_col: str = "stage"
    batch_col: str = "batch"
    batch_source: Optional[str] = None
    default_batch: str = "batch1"
    truth_col: str = "truth"
    labels_path: Optional[str] = None
    labels_cell_id_col: str = "cell_id"
    labels_label_col: str = "cell_type"
    unknown_label: str = "unknown"
    strict: bool = False


@dataclass
class PreprocessConfig:
    """Configuration for optional preprocessing.

    The input is usually already log-normalised or batch-corrected, so every
    step defaults to a no-op on such data.

    Attributes
    ----------
    min_cells : int
        Drop genes detected in fewer cells (0 disables)
    normalize : str
        ``auto`` (only when the matrix looks like raw counts), ``always`` or
        ``never``
    target_sum : float
        Library size after normalisation
    n_top_genes : int, optional
        Keep this many highly variable genes (None disables)
    batch_correction : bool
        Run ComBat on the batch column
    batch_col : str
        obs column with batch labels
    """

    min_cells: int = 0
    normalize: str = "auto"
    target_sum: float = 1e4
    n_top_genes: Optional[int] = None
    batch_correction: bool = False
    batch_col: str = "batch"
