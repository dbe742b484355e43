"""Loading and preprocessing module.

Reads the merged expression matrix, attaches per-cell metadata parsed from
cell identifiers (stage, batch) plus ground-truth labels, and optionally
normalises raw counts.

Example Usage
-------------
>>> from stagewise.core.preprocessing import (
...     DataLoader, MetadataConfig, annotate_cells,
... )
>>> adata = DataLoader().load("merged.tsv.gz")
>>> summary = annotate_cells(adata, MetadataConfig(dataset="mouse_embryo"))
>>> summary.stage_counts
{'E9.5': 312, 'E10.5': 401, ...}
"""

from .config import (
    LoaderConfig,
    MetadataConfig,
    PreprocessConfig,
)
from .loader import (
    DataLoader,
    LoadResult,
)
from .metadata import (
    MetadataSummary,
    align_labels,
    annotate_cells,
    parse_cell_ids,
)
from .normalization import (
    PreprocessResult,
    Preprocessor,
    looks_like_counts,
)

__all__ = [
    # Config
    "LoaderConfig",
    "MetadataConfig",
    "PreprocessConfig",
    # Loader
    "DataLoader",
    "LoadResult",
    # Metadata
    "MetadataSummary",
    "align_labels",
    "annotate_cells",
    "parse_cell_ids",
    # Normalization
    "PreprocessResult",
    "Preprocessor",
    "looks_like_counts",
]
