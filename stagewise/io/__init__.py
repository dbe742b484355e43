"""I/O utilities for stagewise.

Provides logging, expression matrix loading, and table writers.
"""

from .logging import (
    log_json,
    log_yaml,
    setup_logging,
)
from .tables import (
    ensure_output_dir,
    infer_delimiter,
    read_cell_labels,
    read_expression_matrix,
    write_dataframe,
)

__all__ = [
    # Logging
    "log_json",
    "log_yaml",
    "setup_logging",
    # Tables
    "ensure_output_dir",
    "infer_delimiter",
    "read_cell_labels",
    "read_expression_matrix",
    "write_dataframe",
]
