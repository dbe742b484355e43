"""Dataset stage configuration for stagewise.

Provides the canonical ordering and colours of developmental stages used by
all core modules (metadata parsing, composition, trajectory, plots).

Example
-------
>>> from stagewise.config import get_stage_config, list_available_datasets
>>> print(list_available_datasets())
['human_fetal', 'mouse_embryo']
>>> get_stage_config("embryo").sort_stages(["E12.5", "E9.5"])
['E9.5', 'E12.5']
"""

from .stages import (
    StageConfig,
    get_stage_config,
    list_available_datasets,
    natural_key,
    register_stage_config,
)

__all__ = [
    "StageConfig",
    "get_stage_config",
    "list_available_datasets",
    "natural_key",
    "register_stage_config",
]
