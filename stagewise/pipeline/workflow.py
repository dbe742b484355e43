"""Assembly of the analysis workflow from the core engines.

Each step is a plain function ``step(context, step_results)`` that reads and
updates ``context.adata``. ``build_workflow`` registers the enabled steps on an
:class:`InMemoryExecutor`; ``run_workflow`` executes them and writes the
provenance record.

Example
-------
>>> from stagewise.config.workflow import WorkflowConfig
>>> from stagewise.pipeline import run_workflow
>>> config = WorkflowConfig.from_yaml("workflow.yaml")
>>> context = run_workflow(config)
>>> context.outputs["h5ad"]
'stagewise_output/analysed.h5ad'
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .. import __version__
from ..config.stages import get_stage_config
from ..config.workflow import ALL_STEPS, WorkflowConfig
from ..core.clustering import (
    ClusteringEngine,
    KSelector,
    MarkerFinder,
    align_clusters_to_reference,
    apply_label_map,
    contingency_table,
)
from ..core.composition import CompositionEngine, generate_composition_figures
from ..core.preprocessing import DataLoader, Preprocessor, annotate_cells
from ..core.trajectory import (
    TrajectoryEngine,
    plot_paga_connectivities,
    plot_pseudotime_by_stage,
)
from ..core.visualization import (
    compute_embedding,
    export_interactive_embedding,
    marker_gene_list,
    plot_contingency_heatmap,
    plot_embedding,
    plot_feature_grid,
    plot_k_selection,
    plot_marker_dotplot,
    plot_marker_heatmap,
    plot_violin,
)
from ..io.logging import log_json, log_yaml
from ..io.tables import ensure_output_dir, read_cell_labels, write_dataframe
from .executor import InMemoryExecutor
from .logger import PipelineLogger

# Direct dependencies; disabled steps are bridged by their own dependencies.
STEP_DEPENDENCIES: Dict[str, List[str]] = {
    "load": [],
    "preprocess": ["load"],
    "cluster": ["preprocess"],
    "select_k": ["cluster"],
    "relabel": ["select_k"],
    "markers": ["relabel"],
    "embed": ["cluster"],
    "plots": ["embed", "markers"],
    "composition": ["relabel"],
    "trajectory": ["embed", "relabel"],
    "export": ["plots", "composition", "trajectory"],
}

STEP_NAMES = {
    "load": "Load matrix and annotate cells",
    "preprocess": "Optional preprocessing",
    "cluster": "Similarity clustering",
    "select_k": "Evaluate number of clusters",
    "relabel": "Align clusters to reference labels",
    "markers": "Marker genes",
    "embed": "Embedding",
    "plots": "Figures",
    "composition": "Stage composition",
    "trajectory": "Pseudo-time trajectory",
    "export": "Export results",
}


@dataclass
class WorkflowContext:
    """Mutable state shared by the workflow steps.

    Attributes
    ----------
    config : WorkflowConfig
        Workflow configuration
    output_dir : Path
        Root output directory
    logger : logging.Logger
        Logger passed to every engine
    adata : AnnData, optional
        Dataset; preset it to skip reading ``config.input.path``
    outputs : Dict[str, str]
        Name -> written file
    """

    config: WorkflowConfig
    output_dir: Path
    logger: logging.Logger
    adata: Any = None
    outputs: Dict[str, str] = field(default_factory=dict)

    def record(self, name: str, path: Optional[Path]) -> None:
        if path is not None:
            self.outputs[name] = str(path)

    @property
    def cluster_key(self) -> str:
        return self.config.clustering.key_added

    @property
    def label_key(self) -> str:
        return f"{self.config.clustering.key_added}_label"

    def stage_palette(self) -> Dict[str, Optional[str]]:
        stage_col = self.config.metadata.stage_col
        if self.adata is None or stage_col not in self.adata.obs.columns:
            return {}
        stages = self.adata.obs[stage_col].dropna().astype(str).unique()
        return get_stage_config(self.config.metadata.dataset).get_palette(stages)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def step_load(context: WorkflowContext, step_results: Dict[str, Any]):
    cfg = context.config
    loader = DataLoader(cfg.input, logger=context.logger)
    if context.adata is None:
        context.adata = loader.load()
        load_result = loader.last_result
    else:
        load_result = loader.validate(context.adata)
        load_result.path = "<in-memory>"

    labels = None
    if cfg.metadata.labels_path:
        labels = read_cell_labels(
            cfg.metadata.labels_path,
            cell_id_col=cfg.metadata.labels_cell_id_col,
            label_col=cfg.metadata.labels_label_col,
        )
    summary = annotate_cells(context.adata, cfg.metadata, labels=labels)
    return {"load": load_result.to_dict(), "metadata": summary.to_dict()}


def step_preprocess(context: WorkflowContext, step_results: Dict[str, Any]):
    preprocessor = Preprocessor(context.config.preprocessing, logger=context.logger)
    context.adata, result = preprocessor.run(context.adata)
    return result


def step_cluster(context: WorkflowContext, step_results: Dict[str, Any]):
    engine = ClusteringEngine(context.config.clustering, logger=context.logger)
    return engine.run(context.adata)


def step_select_k(context: WorkflowContext, step_results: Dict[str, Any]):
    cfg = context.config
    engine = ClusteringEngine(cfg.clustering, logger=context.logger)
    selector = KSelector(cfg.selection, engine=engine, logger=context.logger)
    result = selector.run(
        context.adata,
        k_values=range(cfg.selection.k_min, cfg.selection.k_max + 1),
        truth_col=cfg.metadata.truth_col,
        unknown_label=cfg.metadata.unknown_label,
    )
    path = write_dataframe(result.table, context.output_dir / "tables" / "k_selection.csv")
    context.record("k_selection", path)
    return result


def step_relabel(context: WorkflowContext, step_results: Dict[str, Any]):
    cfg = context.config
    obs = context.adata.obs
    truth_col = cfg.metadata.truth_col

    if cfg.label_map:
        mapping = dict(cfg.label_map)
        source = "label_map"
    elif truth_col in obs.columns:
        mapping = align_clusters_to_reference(
            obs[context.cluster_key],
            obs[truth_col],
            ignore_labels=[cfg.metadata.unknown_label],
        )
        source = truth_col
    else:
        context.logger.info("No label map and no '%s' column; clusters keep their ids", truth_col)
        return None

    apply_label_map(context.adata, mapping, context.cluster_key, context.label_key)
    mapping_df = _mapping_frame(mapping, context.cluster_key)
    context.record(
        "cluster_labels",
        write_dataframe(mapping_df, context.output_dir / "tables" / "cluster_labels.csv"),
    )
    return {"mapping": mapping, "source": source}


def _mapping_frame(mapping: Dict[str, str], cluster_key: str):
    import pandas as pd

    return pd.DataFrame(
        {cluster_key: list(mapping.keys()), "label": list(mapping.values())}
    )


def step_markers(context: WorkflowContext, step_results: Dict[str, Any]):
    finder = MarkerFinder(context.config.markers, logger=context.logger)
    result = finder.find_markers(context.adata, cluster_key=context.cluster_key)
    context.record(
        "markers", write_dataframe(result.table, context.output_dir / "tables" / "markers.csv")
    )
    return result


def step_embed(context: WorkflowContext, step_results: Dict[str, Any]):
    return compute_embedding(context.adata, context.config.embedding)


def step_plots(context: WorkflowContext, step_results: Dict[str, Any]):
    cfg = context.config.plots
    adata = context.adata
    basis = step_results.get("embed", context.config.embedding.basis)
    fig_dir = ensure_output_dir(context.output_dir / "figures")
    stage_col = context.config.metadata.stage_col

    color_by = list(cfg.color_by)
    if context.label_key in adata.obs.columns and context.label_key not in color_by:
        color_by.insert(1, context.label_key)
    for color in color_by:
        if color not in adata.obs.columns:
            context.logger.debug("obs column '%s' not present; no embedding plot", color)
            continue
        palette = context.stage_palette() if color == stage_col else None
        context.record(
            f"{basis}_{color}",
            plot_embedding(
                adata,
                color,
                fig_dir / f"{basis}_{color}.png",
                basis=basis,
                palette=palette,
                point_size=cfg.point_size,
                dpi=cfg.dpi,
                figsize=cfg.figsize,
            ),
        )
        if cfg.interactive:
            hover = [c for c in color_by if c in adata.obs.columns and c != color]
            context.record(
                f"{basis}_{color}_html",
                export_interactive_embedding(
                    adata,
                    color,
                    fig_dir / f"{basis}_{color}.html",
                    basis=basis,
                    hover_cols=hover,
                    palette=palette,
                ),
            )

    markers = step_results.get("markers")
    top = markers.top_markers if markers is not None else {}
    genes = list(cfg.genes) or marker_gene_list(top, n=1)
    if genes:
        context.record(
            "feature_grid",
            plot_feature_grid(adata, genes, fig_dir / f"{basis}_genes.png", basis=basis, dpi=cfg.dpi),
        )
        context.record(
            "violin",
            plot_violin(adata, genes, context.cluster_key, fig_dir / "violin_genes.png", dpi=cfg.dpi),
        )
    if top:
        context.record(
            "marker_heatmap",
            plot_marker_heatmap(
                adata,
                top,
                context.cluster_key,
                fig_dir / "marker_heatmap.png",
                n_genes=cfg.n_marker_genes,
                dpi=cfg.dpi,
            ),
        )
        context.record(
            "marker_dotplot",
            plot_marker_dotplot(
                adata,
                top,
                context.cluster_key,
                fig_dir / "marker_dotplot.png",
                n_genes=cfg.n_marker_genes,
                dpi=cfg.dpi,
            ),
        )

    selection = step_results.get("select_k")
    if selection is not None:
        context.record(
            "k_selection_plot",
            plot_k_selection(
                selection.table, fig_dir / "k_selection.png", best_k=selection.best_k, dpi=cfg.dpi
            ),
        )

    truth_col = context.config.metadata.truth_col
    if truth_col in adata.obs.columns:
        table = contingency_table(adata.obs[context.cluster_key], adata.obs[truth_col])
        context.record(
            "contingency_heatmap",
            plot_contingency_heatmap(table, fig_dir / "cluster_vs_truth.png", dpi=cfg.dpi),
        )
    return basis


def step_composition(context: WorkflowContext, step_results: Dict[str, Any]):
    cfg = context.config.composition
    engine = CompositionEngine(cfg, logger=context.logger)
    result = engine.run(context.adata)
    out_dir = context.output_dir / "composition"
    for name, path in engine.export(result, out_dir).items():
        context.record(name, path)
    figures = generate_composition_figures(
        result, out_dir, stage_palette=context.stage_palette(), dpi=cfg.dpi
    )
    for name, path in figures.items():
        context.record(f"composition_{name}", path)
    return result


def step_trajectory(context: WorkflowContext, step_results: Dict[str, Any]):
    cfg = context.config.trajectory
    dpi = context.config.plots.dpi
    engine = TrajectoryEngine(cfg, logger=context.logger)
    result = engine.run(context.adata)
    out_dir = context.output_dir / "trajectory"

    if not result.stage_summary.empty:
        context.record(
            "pseudotime_by_stage",
            write_dataframe(result.stage_summary, out_dir / "pseudotime_by_stage.csv"),
        )
        order = list(result.stage_summary["stage"])
        context.record(
            "pseudotime_by_stage_plot",
            plot_pseudotime_by_stage(
                context.adata,
                out_dir / "pseudotime_by_stage.png",
                pseudotime_key=result.pseudotime_key,
                stage_col=cfg.stage_col,
                stage_order=order,
                palette=context.stage_palette(),
                dpi=dpi,
            ),
        )
    basis = step_results.get("embed")
    if basis:
        context.record(
            "pseudotime_embedding",
            plot_embedding(
                context.adata,
                result.pseudotime_key,
                out_dir / f"{basis}_pseudotime.png",
                basis=basis,
                title="Pseudo-time",
                dpi=dpi,
            ),
        )
    if result.paga_connectivities is not None:
        context.record(
            "paga",
            plot_paga_connectivities(result.paga_connectivities, out_dir / "paga.png", dpi=dpi),
        )
    return result


def step_export(context: WorkflowContext, step_results: Dict[str, Any]):
    adata = context.adata
    cells = adata.obs.copy()
    cells.index.name = "cell_id"
    context.record(
        "cells", write_dataframe(cells, context.output_dir / "tables" / "cells.csv", index=True)
    )
    h5ad_path = context.output_dir / "analysed.h5ad"
    adata.write_h5ad(h5ad_path)
    context.record("h5ad", h5ad_path)
    context.logger.info("Wrote %s", h5ad_path)
    return h5ad_path


STEP_FUNCTIONS: Dict[str, Callable] = {
    "load": step_load,
    "preprocess": step_preprocess,
    "cluster": step_cluster,
    "select_k": step_select_k,
    "relabel": step_relabel,
    "markers": step_markers,
    "embed": step_embed,
    "plots": step_plots,
    "composition": step_composition,
    "trajectory": step_trajectory,
    "export": step_export,
}


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def resolve_dependencies(step_id: str, enabled: List[str]) -> List[str]:
    """Enabled steps that ``step_id`` waits for.

    A disabled dependency is replaced by its own (resolved) dependencies, so
    the original ordering holds whatever subset of steps is enabled.
    """
    resolved: List[str] = []
    for dep in STEP_DEPENDENCIES[step_id]:
        candidates = [dep] if dep in enabled else resolve_dependencies(dep, enabled)
        for candidate in candidates:
            if candidate not in resolved:
                resolved.append(candidate)
    return resolved


def build_workflow(
    config: WorkflowConfig,
    logger: Optional[PipelineLogger] = None,
) -> InMemoryExecutor:
    """Register the enabled steps of ``config`` on an executor.

    Raises
    ------
    ValueError
        On unknown steps or when ``load`` is not enabled.
    """
    unknown = [s for s in config.steps if s not in STEP_FUNCTIONS]
    if unknown:
        raise ValueError(f"Unknown steps {unknown}; available: {ALL_STEPS}")
    if "load" not in config.steps:
        raise ValueError("The 'load' step is required")

    enabled = [s for s in ALL_STEPS if s in config.steps]
    executor = InMemoryExecutor(logger)
    for step_id in enabled:
        executor.register_step(
            step_id,
            STEP_FUNCTIONS[step_id],
            depends_on=resolve_dependencies(step_id, enabled),
            name=STEP_NAMES[step_id],
        )
    return executor


def run_workflow(
    config: WorkflowConfig,
    logger: Optional[PipelineLogger] = None,
    adata: Any = None,
) -> WorkflowContext:
    """Run the workflow and write ``provenance.json``.

    A one-line summary of every run, failed runs included, is appended to
    ``logs/runs.jsonl``. Steps left out of ``config.steps`` are logged as skipped.

    Parameters
    ----------
    config : WorkflowConfig
        Workflow configuration
    logger : PipelineLogger, optional
        Logger; one writing to ``<output_dir>/logs`` is created if None
    adata : AnnData, optional
        In-memory dataset used instead of ``config.input.path``

    Returns
    -------
    WorkflowContext
        Final dataset and written outputs
    """
    output_dir = ensure_output_dir(config.output_dir)
    if logger is None:
        logger = PipelineLogger(log_dir=str(output_dir / "logs")).setup()

    executor = build_workflow(config, logger)
    context = WorkflowContext(
        config=config,
        output_dir=output_dir,
        logger=logger.logger,
        adata=adata,
    )
    for step_id in ALL_STEPS:
        if step_id not in config.steps:
            logger.log_step_skipped(step_id, "not enabled")

    runs_path = output_dir / "logs" / "runs.jsonl"
    started = datetime.now()
    try:
        results = executor.run(context=context)
    except Exception as e:
        log_json(
            runs_path,
            {
                "started": started.isoformat(timespec="seconds"),
                "finished": datetime.now().isoformat(timespec="seconds"),
                "status": "failed",
                "steps": list(executor.completed_steps),
                "error": f"{type(e).__name__}: {e}",
            },
        )
        raise

    provenance = {
        "version": __version__,
        "started": started.isoformat(timespec="seconds"),
        "finished": datetime.now().isoformat(timespec="seconds"),
        "steps": list(executor.completed_steps),
        "durations": {k: round(v, 3) for k, v in executor.durations.items()},
        "n_cells": int(context.adata.n_obs),
        "n_genes": int(context.adata.n_vars),
        "config": config.to_dict(),
        "outputs": dict(context.outputs),
    }
    if "load" in results:
        provenance["input"] = results["load"]
    if results.get("select_k") is not None:
        provenance["best_k"] = int(results["select_k"].best_k)

    provenance_path = output_dir / "provenance.json"
    with open(provenance_path, "w") as f:
        json.dump(provenance, f, indent=2, default=str)
    context.record("provenance", provenance_path)
    log_json(
        runs_path,
        {
            "started": provenance["started"],
            "finished": provenance["finished"],
            "status": "completed",
            "steps": provenance["steps"],
            "best_k": provenance.get("best_k"),
            "provenance": provenance_path,
        },
    )

    log_yaml(
        provenance_path,
        {
            "steps": provenance["steps"],
            "n_cells": provenance["n_cells"],
            "n_genes": provenance["n_genes"],
            "outputs": len(context.outputs),
        },
        logger=logger.logger,
    )
    logger.logger.info(
        "Workflow finished: %d steps in %s",
        len(executor.completed_steps),
        PipelineLogger.format_duration(sum(executor.durations.values())),
    )
    return context
