"""Test fixtures for stagewise.

Provides mock data generators and test utilities.
"""

from .mock_adata import (
    MOCK_CELL_TYPES,
    MOCK_ID_PATTERN,
    MOCK_STAGES,
    create_cell_labels,
    create_clustered_adata,
    create_mock_adata,
    write_expression_table,
)

__all__ = [
    "MOCK_CELL_TYPES",
    "MOCK_ID_PATTERN",
    "MOCK_STAGES",
    "create_cell_labels",
    "create_clustered_adata",
    "create_mock_adata",
    "write_expression_table",
]
