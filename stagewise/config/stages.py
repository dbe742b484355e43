"""Centralized developmental-stage configuration.

A dataset's stages (e.g. embryonic days) need one canonical order for
composition tables, plots and pseudo-time root selection. This module keeps
that order, plus stage colours, in a small registry loaded from
``stagewise/config/datasets/*.yaml``.

Example
-------
>>> from stagewise.config import get_stage_config
>>> config = get_stage_config("mouse_embryo")
>>> config.sort_stages(["E12.5", "E9.5", "E10.5"])
['E9.5', 'E10.5', 'E12.5']
"""

import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import yaml

_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")


def natural_key(value) -> Tuple[Tuple[int, object], ...]:
    """Sort key that orders embedded numbers numerically.

    ``"E9.5" < "E10.5"`` and ``"P2" < "P10"`` under this key.
    """
    parts = _NUMBER_RE.split(str(value).lower())
    key = []
    for part in parts:
        if not part:
            continue
        if _NUMBER_RE.fullmatch(part):
            key.append((1, float(part)))
        else:
            key.append((0, part))
    return tuple(key)


@dataclass
class StageConfig:
    """Stage ordering and colours for one dataset.

    Attributes
    ----------
    dataset_name : str
        Canonical dataset name (lowercase, underscores)
    stage_order : List[str]
        Developmental stages from earliest to latest
    stage_colors : Dict[str, str]
        Hex colour per stage
    aliases : List[str]
        Alternative dataset names
    """

    dataset_name: str
    stage_order: List[str] = field(default_factory=list)
    stage_colors: Dict[str, str] = field(default_factory=dict)
    aliases: List[str] = field(default_factory=list)

    def sort_stages(self, stages: Iterable[str]) -> List[str]:
        """Sort stages from earliest to latest.

        Known stages follow ``stage_order`` (case-insensitive). Unknown stages
        come after them in natural order, so a generic config still sorts
        ``E9.5`` before ``E10.5``. Duplicates are removed.
        """
        unique = list(dict.fromkeys(str(s) for s in stages))
        order_map = {s.lower(): i for i, s in enumerate(self.stage_order)}

        def get_order(stage: str) -> tuple:
            s_lower = stage.lower()
            if s_lower in order_map:
                return (0, order_map[s_lower], ())
            return (1, 0, natural_key(stage))

        return sorted(unique, key=get_order)

    def stage_rank(self, stage: str, stages: Optional[Iterable[str]] = None) -> int:
        """Position of ``stage`` in sorted order.

        Parameters
        ----------
        stage : str
            Stage to rank
        stages : Iterable[str], optional
            Stages observed in the data. Defaults to ``stage_order``.

        Raises
        ------
        KeyError
            If the stage is not among ``stages``.
        """
        ordered = self.sort_stages(stages if stages is not None else self.stage_order)
        lookup = {s.lower(): i for i, s in enumerate(ordered)}
        try:
            return lookup[str(stage).lower()]
        except KeyError:
            raise KeyError(f"Unknown stage '{stage}'; known stages: {ordered}") from None

    def get_stage_color(self, stage: str, default: str = "#808080") -> str:
        """Colour for a stage (case-insensitive), or ``default``."""
        if stage in self.stage_colors:
            return self.stage_colors[stage]
        stage_lower = str(stage).lower()
        for key, color in self.stage_colors.items():
            if key.lower() == stage_lower:
                return color
        return default

    def get_palette(self, stages: Iterable[str]) -> Dict[str, Optional[str]]:
        """Map each stage to its colour, None where no colour is defined."""
        palette = {}
        for stage in self.sort_stages(stages):
            color = self.get_stage_color(stage, default="")
            palette[stage] = color or None
        return palette

    @classmethod
    def from_yaml(cls, path: Path) -> "StageConfig":
        """Load a stage config from a YAML file.

        Expected layout::

            dataset: mouse_embryo
            aliases: [embryo]
            stages:
              order: [E9.5, E10.5]
              colors: {E9.5: "#440154"}
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        stages = data.get("stages", {}) or {}
        return cls(
            dataset_name=data.get("dataset", ""),
            stage_order=[str(s) for s in stages.get("order", [])],
            stage_colors={str(k): v for k, v in (stages.get("colors", {}) or {}).items()},
            aliases=data.get("aliases", []),
        )


# =============================================================================
# Registry
# =============================================================================

STAGE_CONFIG_REGISTRY: Dict[str, StageConfig] = {}

DATASET_ALIASES: Dict[str, str] = {}

_BUILTINS_LOADED = False


def _normalize_name(name: str) -> str:
    return name.lower().replace(" ", "_").replace("-", "_")


def register_stage_config(config: StageConfig) -> None:
    """Register a stage configuration under its name and aliases."""
    name = _normalize_name(config.dataset_name)
    STAGE_CONFIG_REGISTRY[name] = config
    for alias in config.aliases:
        DATASET_ALIASES[_normalize_name(alias)] = name


def get_stage_config(dataset: Optional[str] = None) -> StageConfig:
    """Get a stage configuration by dataset name or alias.

    Parameters
    ----------
    dataset : str, optional
        Dataset name or alias. None or ``"generic"`` returns the generic
        config (natural ordering, no colours).

    Raises
    ------
    ValueError
        If the dataset is not registered.
    """
    _ensure_builtins_loaded()

    if dataset is None:
        return _get_generic_config()

    name = _normalize_name(dataset)
    if name == "generic":
        return _get_generic_config()

    name = DATASET_ALIASES.get(name, name)
    if name not in STAGE_CONFIG_REGISTRY:
        raise ValueError(
            f"Unknown dataset: '{dataset}'. "
            f"Available: {sorted(STAGE_CONFIG_REGISTRY)}. "
            f"Aliases: {sorted(DATASET_ALIASES)}"
        )
    return STAGE_CONFIG_REGISTRY[name]


def list_available_datasets() -> List[str]:
    """Registered dataset names (canonical)."""
    _ensure_builtins_loaded()
    return sorted(STAGE_CONFIG_REGISTRY)


def _get_generic_config() -> StageConfig:
    if "generic" not in STAGE_CONFIG_REGISTRY:
        STAGE_CONFIG_REGISTRY["generic"] = StageConfig(dataset_name="generic")
    return STAGE_CONFIG_REGISTRY["generic"]


def _ensure_builtins_loaded() -> None:
    global _BUILTINS_LOADED
    if _BUILTINS_LOADED:
        return
    _load_builtin_configs()
    _BUILTINS_LOADED = True


def _load_builtin_configs() -> None:
    """Load builtin stage configs shipped in ``config/datasets``."""
    configs_dir = Path(__file__).parent / "datasets"
    if not configs_dir.exists():
        return

    for yaml_path in sorted(configs_dir.glob("*.yaml")):
        try:
            config = StageConfig.from_yaml(yaml_path)
        except (OSError, yaml.YAMLError) as e:
            warnings.warn(f"Failed to load stage config from {yaml_path}: {e}")
            continue
        if config.dataset_name:
            register_stage_config(config)
