"""Workflow configuration: one YAML file drives every step."""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.clustering.config import ClusteringConfig, MarkerConfig, SelectionConfig
from ..core.composition.config import CompositionConfig
from ..core.preprocessing.config import LoaderConfig, MetadataConfig, PreprocessConfig
from ..core.trajectory.config import TrajectoryConfig
from ..core.visualization.config import EmbeddingConfig, PlotConfig

ALL_STEPS = [
    "load",
    "preprocess",
    "cluster",
    "select_k",
    "relabel",
    "markers",
    "embed",
    "plots",
    "composition",
    "trajectory",
    "export",
]

DEFAULT_STEPS = [s for s in ALL_STEPS if s != "trajectory"]

_SECTIONS = {
    "input": LoaderConfig,
    "metadata": MetadataConfig,
    "preprocessing": PreprocessConfig,
    "clustering": ClusteringConfig,
    "selection": SelectionConfig,
    "markers": MarkerConfig,
    "embedding": EmbeddingConfig,
    "plots": PlotConfig,
    "composition": CompositionConfig,
    "trajectory": TrajectoryConfig,
}


@dataclass
class WorkflowConfig:
    """Master configuration for the analysis workflow.

    Attributes
    ----------
    input : LoaderConfig
        Expression matrix location and layout
    metadata : MetadataConfig
        Cell id parsing and ground-truth labels
    preprocessing : PreprocessConfig
        Optional normalisation steps
    clustering : ClusteringConfig
        Clustering method and parameters
    selection : SelectionConfig
        Range and criterion for choosing k
    markers : MarkerConfig
        Marker gene thresholds
    embedding : EmbeddingConfig
        t-SNE/UMAP parameters
    plots : PlotConfig
        Figure settings
    composition : CompositionConfig
        Stage composition settings
    trajectory : TrajectoryConfig
        Pseudo-time settings
    output_dir : str
        Directory for all outputs
    seed : int, optional
        Overrides every random seed when set
    steps : List[str]
        Enabled steps in ``ALL_STEPS``; trajectory is off by default
    label_map : Dict[str, str]
        Manual cluster renaming applied instead of automatic alignment
    """

    input: LoaderConfig = field(default_factory=LoaderConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    preprocessing: PreprocessConfig = field(default_factory=PreprocessConfig)
    clustering: ClusteringConfig = field(default_factory=ClusteringConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    markers: MarkerConfig = field(default_factory=MarkerConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    plots: PlotConfig = field(default_factory=PlotConfig)
    composition: CompositionConfig = field(default_factory=CompositionConfig)
    trajectory: TrajectoryConfig = field(default_factory=TrajectoryConfig)
    output_dir: str = "stagewise_output"
    seed: Optional[int] = None
    steps: List[str] = field(default_factory=lambda: list(DEFAULT_STEPS))
    label_map: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        unknown = [s for s in self.steps if s not in ALL_STEPS]
        if unknown:
            raise ValueError(f"Unknown steps {unknown}; available: {ALL_STEPS}")
        if self.seed is not None:
            self.clustering.random_seed = self.seed
            self.embedding.random_seed = self.seed
        # Downstream steps follow the clustering and metadata column names
        meta = self.metadata
        self.preprocessing.batch_col = meta.batch_col
        self.composition.cluster_key = self.clustering.key_added
        self.composition.stage_col = meta.stage_col
        self.composition.truth_col = meta.truth_col
        self.composition.batch_col = meta.batch_col
        self.trajectory.group_key = self.clustering.key_added
        self.trajectory.stage_col = meta.stage_col
        self.trajectory.dataset = self.trajectory.dataset or meta.dataset

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowConfig":
        """Create from a mapping; unknown keys raise ``TypeError``."""
        data = dict(data or {})
        kwargs: Dict[str, Any] = {}
        for name, section_cls in _SECTIONS.items():
            if name in data:
                kwargs[name] = section_cls(**(data.pop(name) or {}))
        if "label_map" in data:
            kwargs["label_map"] = {
                str(k): str(v) for k, v in (data.pop("label_map") or {}).items()
            }
        scalar_fields = {f.name for f in fields(cls)} - set(_SECTIONS) - {"label_map"}
        unknown = set(data) - scalar_fields
        if unknown:
            raise TypeError(f"Unknown workflow keys: {sorted(unknown)}")
        kwargs.update(data)
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Path) -> "WorkflowConfig":
        """Load configuration from YAML file.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # Handle nested workflow section
        if "workflow" in data:
            data = data["workflow"] or {}

        return cls.from_dict(data)

    @classmethod
    def default(cls) -> "WorkflowConfig":
        """Create default configuration."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary (YAML/JSON friendly)."""
        data = asdict(self)
        data["plots"]["figsize"] = list(self.plots.figsize)
        return data

    def to_yaml(self, path: Path) -> Path:
        """Write the configuration under a top-level ``workflow`` key."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump({"workflow": self.to_dict()}, f, sort_keys=False)
        return path
