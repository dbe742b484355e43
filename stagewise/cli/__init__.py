"""Command-line interface for stagewise.

Provides CLI commands for running the analysis steps.

Example Usage
-------------
    # From command line:
    stagewise --help
    stagewise load --input merged.tsv.gz --out work/
    stagewise cluster --input work/loaded.h5ad --out work/ -k 8
    stagewise run --config workflow.yaml
"""

from .main import cli, main

__all__ = [
    "cli",
    "main",
]
