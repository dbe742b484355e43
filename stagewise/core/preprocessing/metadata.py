"""Per-cell metadata: stage and batch from cell identifiers, ground truth.

Merged matrices typically encode the developmental stage (and often the
batch) in each cell identifier, e.g. ``E10.5_b2_AAACCTGAGCGT``. A regular
expression with named groups pulls these out; ground-truth cell-type labels
come from a separate table and are only used for evaluation.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional
import logging
import re

import numpy as np
import pandas as pd

from ...config import get_stage_config
from .config import MetadataConfig

logger = logging.getLogger(__name__)


@dataclass
class MetadataSummary:
    """Summary of the metadata attached to a dataset.

    Attributes
    ----------
    stage_counts : Dict[str, int]
        Cells per stage, in stage order
    batch_counts : Dict[str, int]
        Cells per batch
    label_counts : Dict[str, int]
        Cells per ground-truth label
    n_unmatched_ids : int
        Cell ids the pattern did not match
    n_unlabelled : int
        Cells without a ground-truth label
    """

    stage_counts: Dict[str, int] = field(default_factory=dict)
    batch_counts: Dict[str, int] = field(default_factory=dict)
    label_counts: Dict[str, int] = field(default_factory=dict)
    n_unmatched_ids: int = 0
    n_unlabelled: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage_counts": dict(self.stage_counts),
            "batch_counts": dict(self.batch_counts),
            "label_counts": dict(self.label_counts),
            "n_unmatched_ids": self.n_unmatched_ids,
            "n_unlabelled": self.n_unlabelled,
        }


def parse_cell_ids(
    cell_ids: Iterable[str],
    pattern: str,
    strict: bool = False,
) -> pd.DataFrame:
    """Extract named regex groups from cell identifiers.

    Parameters
    ----------
    cell_ids : Iterable[str]
        Cell identifiers
    pattern : str
        Regular expression with at least one named group
    strict : bool
        Raise if any identifier does not match

    Returns
    -------
    pd.DataFrame
        One column per named group, indexed by cell id. Unmatched ids are NaN.

    Raises
    ------
    ValueError
        If the pattern has no named groups, or ``strict`` and ids do not match.
    """
    regex = re.compile(pattern)
    if not regex.groupindex:
        raise ValueError(f"Pattern has no named groups: {pattern!r}")

    ids = pd.Index([str(c) for c in cell_ids])
    parsed = ids.to_series().str.extract(pattern, expand=True)
    parsed.index = ids

    unmatched = parsed.isna().all(axis=1)
    if unmatched.any():
        examples = ids[unmatched.to_numpy()][:5].tolist()
        if strict:
            raise ValueError(
                f"{int(unmatched.sum())} cell ids do not match {pattern!r}, "
                f"e.g. {examples}"
            )
        logger.warning(
            "%d cell ids do not match %r, e.g. %s",
            int(unmatched.sum()),
            pattern,
            examples,
        )
    return parsed


def align_labels(
    cell_ids: Iterable[str],
    labels: pd.Series,
    unknown_label: str = "unknown",
) -> pd.Series:
    """Align a label Series to ``cell_ids``, filling gaps with ``unknown_label``."""
    ids = pd.Index([str(c) for c in cell_ids])
    labels = labels.copy()
    labels.index = labels.index.astype(str)
    aligned = labels.reindex(ids)
    return aligned.fillna(unknown_label).astype(str)


def annotate_cells(
    adata: Any,  # AnnData
    config: Optional[MetadataConfig] = None,
    labels: Optional[pd.Series] = None,
) -> MetadataSummary:
    """Attach stage, batch and ground-truth columns to ``adata.obs``.

    Parameters
    ----------
    adata : AnnData
        Dataset (modified in place)
    config : MetadataConfig, optional
        Metadata configuration
    labels : pd.Series, optional
        Ground-truth labels indexed by cell id. When None and
        ``config.truth_col`` already exists in obs, that column is kept.

    Returns
    -------
    MetadataSummary
        Counts per stage, batch and label
    """
    config = config or MetadataConfig()
    stage_config = get_stage_config(config.dataset)
    summary = MetadataSummary()

    parsed = parse_cell_ids(adata.obs_names, config.id_pattern, strict=config.strict)
    summary.n_unmatched_ids = int(parsed.isna().all(axis=1).sum())

    for group in parsed.columns:
        if group in ("stage", "batch"):
            continue
        adata.obs[group] = pd.Categorical(parsed[group].to_numpy())

    # Stage
    if "stage" in parsed.columns:
        stages = parsed["stage"]
        observed = stage_config.sort_stages(stages.dropna().unique())
        adata.obs[config.stage_col] = pd.Categorical(
            stages.to_numpy(), categories=observed, ordered=True
        )
    elif config.stage_col in adata.obs.columns:
        observed = stage_config.sort_stages(adata.obs[config.stage_col].dropna().astype(str).unique())
        adata.obs[config.stage_col] = pd.Categorical(
            adata.obs[config.stage_col].astype(str).to_numpy(),
            categories=observed,
            ordered=True,
        )
    else:
        logger.warning(
            "No stage group in pattern and no '%s' column; stage left unset",
            config.stage_col,
        )

    # Batch
    if config.batch_source and config.batch_source in adata.obs.columns:
        batch = adata.obs[config.batch_source].astype(str).to_numpy()
    elif "batch" in parsed.columns:
        batch = parsed["batch"].fillna(config.default_batch).to_numpy()
    else:
        if config.batch_source:
            logger.warning(
                "Batch source column '%s' not found; using '%s'",
                config.batch_source,
                config.default_batch,
            )
        batch = np.repeat(config.default_batch, adata.n_obs)
    adata.obs[config.batch_col] = pd.Categorical(batch)

    # Ground truth
    if labels is not None:
        truth = align_labels(adata.obs_names, labels, config.unknown_label)
        adata.obs[config.truth_col] = pd.Categorical(truth.to_numpy())
    elif config.truth_col in adata.obs.columns:
        adata.obs[config.truth_col] = pd.Categorical(
            adata.obs[config.truth_col].astype(str).replace("nan", config.unknown_label)
        )

    if config.stage_col in adata.obs.columns:
        counts = adata.obs[config.stage_col].value_counts(sort=False)
        summary.stage_counts = {str(k): int(v) for k, v in counts.items()}
    summary.batch_counts = {
        str(k): int(v) for k, v in adata.obs[config.batch_col].value_counts().items()
    }
    if config.truth_col in adata.obs.columns:
        truth_counts = adata.obs[config.truth_col].value_counts()
        summary.label_counts = {str(k): int(v) for k, v in truth_counts.items()}
        summary.n_unlabelled = int(summary.label_counts.get(config.unknown_label, 0))

    logger.info(
        "Annotated %d cells: %d stages, %d batches, %d labels (%d unlabelled)",
        adata.n_obs,
        len(summary.stage_counts),
        len(summary.batch_counts),
        len(summary.label_counts),
        summary.n_unlabelled,
    )
    adata.uns["metadata_summary"] = {
        "stage_order": list(summary.stage_counts),
        "n_unmatched_ids": summary.n_unmatched_ids,
        "n_unlabelled": summary.n_unlabelled,
    }
    return summary
