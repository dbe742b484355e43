"""Command-line interface for stagewise.

Provides CLI commands for running the analysis steps one at a time or as a
configured workflow.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Tuple

import click

from .. import __version__
from ..io.logging import setup_logging


def _setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    return setup_logging(level=level)


@contextmanager
def _errors_as_click():
    """Report library errors as a clean CLI failure (exit code 1)."""
    try:
        yield
    except (ValueError, KeyError, TypeError, FileNotFoundError) as e:
        message = e.args[0] if isinstance(e, KeyError) and e.args else str(e)
        raise click.ClickException(str(message)) from e


def _load(input_path: str, logger: logging.Logger):
    from stagewise.core.preprocessing import DataLoader

    return DataLoader(logger=logger).load(input_path)


def _write(adata, out_dir: Path, name: str) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    output_file = out_dir / name
    adata.write_h5ad(output_file)
    return output_file


@click.group()
@click.version_option(version=__version__, prog_name="stagewise")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """stagewise: downstream analysis of stage-resolved scRNA-seq data.

    Clusters cells from a merged expression matrix, evaluates the number of
    clusters, finds marker genes, plots t-SNE embeddings, summarises cluster
    composition per developmental stage and optionally infers pseudo-time.

    Examples:

        # Load a genes x cells matrix and parse stages from cell ids
        stagewise load --input merged.tsv.gz --labels labels.csv --out work/

        # Cluster into 8 groups
        stagewise cluster --input work/loaded.h5ad --n-clusters 8 --out work/

        # Run every step from a config file
        stagewise run --config workflow.yaml
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["logger"] = _setup_logging(verbose, debug)


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Expression matrix (.h5ad, .csv, .tsv, .txt, optionally gzipped)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output directory")
@click.option("--labels", type=click.Path(exists=True), help="Ground-truth label table")
@click.option("--labels-id-col", default="cell_id", help="Cell id column of the label table")
@click.option("--labels-col", default="cell_type", help="Label column of the label table")
@click.option("--dataset", help="Registered stage configuration")
@click.option("--id-pattern", help="Regex with named groups (stage, batch) for cell ids")
@click.option("--orientation", type=click.Choice(["genes_x_cells", "cells_x_genes"]),
              default="genes_x_cells", help="Layout of text matrices")
@click.pass_context
def load(
    ctx: click.Context,
    input_path: str,
    output_path: str,
    labels: Optional[str],
    labels_id_col: str,
    labels_col: str,
    dataset: Optional[str],
    id_pattern: Optional[str],
    orientation: str,
) -> None:
    """Load the merged matrix and attach stage, batch and truth labels."""
    logger = ctx.obj["logger"]

    from stagewise.core.preprocessing import (
        DataLoader,
        LoaderConfig,
        MetadataConfig,
        annotate_cells,
    )
    from stagewise.io.tables import read_cell_labels

    meta_cfg = MetadataConfig(dataset=dataset)
    if id_pattern:
        meta_cfg.id_pattern = id_pattern

    with _errors_as_click():
        adata = DataLoader(LoaderConfig(orientation=orientation), logger=logger).load(input_path)
        label_series = read_cell_labels(labels, labels_id_col, labels_col) if labels else None
        summary = annotate_cells(adata, meta_cfg, labels=label_series)
        output_file = _write(adata, Path(output_path), "loaded.h5ad")

    click.echo(f"Loaded {adata.n_obs} cells x {adata.n_vars} genes")
    for stage, count in summary.stage_counts.items():
        click.echo(f"  {stage}: {count} cells")
    click.echo(f"Output saved to: {output_file}")


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Input AnnData file (.h5ad)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output directory")
@click.option("--method", type=click.Choice(["simlr", "kmeans", "leiden"]), default="simlr",
              help="Clustering method")
@click.option("--n-clusters", "-k", type=int, default=8, help="Number of clusters")
@click.option("--n-pcs", type=int, default=30, help="Number of principal components")
@click.option("--resolution", type=float, default=1.0, help="Leiden resolution")
@click.option("--seed", type=int, default=1337, help="Random seed")
@click.pass_context
def cluster(
    ctx: click.Context,
    input_path: str,
    output_path: str,
    method: str,
    n_clusters: int,
    n_pcs: int,
    resolution: float,
    seed: int,
) -> None:
    """Cluster cells on a multi-kernel similarity (or k-means/Leiden)."""
    logger = ctx.obj["logger"]

    from stagewise.core.clustering import ClusteringConfig, ClusteringEngine

    config = ClusteringConfig(
        method=method,
        n_clusters=n_clusters,
        n_pcs=n_pcs,
        resolution=resolution,
        random_seed=seed,
    )
    with _errors_as_click():
        adata = _load(input_path, logger)
        result = ClusteringEngine(config, logger).run(adata)
        output_file = _write(adata, Path(output_path), "clustered.h5ad")

    click.echo(f"Clustering complete: {result.n_clusters} clusters ({result.method})")
    click.echo(f"Output saved to: {output_file}")


@cli.command("select-k")
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Input AnnData file (.h5ad)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output directory")
@click.option("--k-min", type=int, default=2, help="Smallest k")
@click.option("--k-max", type=int, default=12, help="Largest k")
@click.option("--criterion", type=click.Choice(["silhouette", "ari", "nmi", "eigengap"]),
              default="silhouette", help="Selection criterion")
@click.option("--method", type=click.Choice(["simlr", "kmeans"]), default="simlr",
              help="Clustering method")
@click.option("--truth-col", default="truth", help="Ground-truth column")
@click.option("--seed", type=int, default=1337, help="Random seed")
@click.pass_context
def select_k(
    ctx: click.Context,
    input_path: str,
    output_path: str,
    k_min: int,
    k_max: int,
    criterion: str,
    method: str,
    truth_col: str,
    seed: int,
) -> None:
    """Evaluate a range of k and keep the best clustering."""
    logger = ctx.obj["logger"]

    from stagewise.core.clustering import (
        ClusteringConfig,
        ClusteringEngine,
        KSelector,
        SelectionConfig,
    )
    from stagewise.core.visualization import plot_k_selection

    if k_min > k_max:
        raise click.BadParameter("--k-min must not exceed --k-max", param_hint="--k-min")

    out_dir = Path(output_path)
    engine = ClusteringEngine(ClusteringConfig(method=method, random_seed=seed), logger)
    selector = KSelector(
        SelectionConfig(k_min=k_min, k_max=k_max, criterion=criterion), engine, logger
    )
    with _errors_as_click():
        adata = _load(input_path, logger)
        result = selector.run(adata, range(k_min, k_max + 1), truth_col=truth_col)
        out_dir.mkdir(parents=True, exist_ok=True)
        result.table.to_csv(out_dir / "k_selection.csv", index=False)
        plot_k_selection(result.table, out_dir / "k_selection.png", best_k=result.best_k)
        output_file = _write(adata, out_dir, "clustered.h5ad")

    click.echo(result.table.to_string(index=False))
    click.echo(f"Best k by {result.criterion}: {result.best_k}")
    click.echo(f"Output saved to: {output_file}")


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Clustered AnnData file (.h5ad)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output directory")
@click.option("--cluster-key", default="cluster", help="Cluster column name")
@click.option("--method", type=click.Choice(["wilcoxon", "t-test", "logreg"]),
              default="wilcoxon", help="Test used by rank_genes_groups")
@click.option("--n-top", type=int, default=10, help="Top markers listed per cluster")
@click.pass_context
def markers(
    ctx: click.Context,
    input_path: str,
    output_path: str,
    cluster_key: str,
    method: str,
    n_top: int,
) -> None:
    """Find marker genes for each cluster (one-vs-rest)."""
    logger = ctx.obj["logger"]

    from stagewise.core.clustering import MarkerConfig, MarkerFinder
    from stagewise.core.visualization import plot_marker_heatmap

    out_dir = Path(output_path)
    with _errors_as_click():
        adata = _load(input_path, logger)
        result = MarkerFinder(MarkerConfig(method=method, n_top=n_top), logger).find_markers(
            adata, cluster_key=cluster_key
        )
        out_dir.mkdir(parents=True, exist_ok=True)
        result.table.to_csv(out_dir / "markers.csv", index=False)
        plot_marker_heatmap(adata, result.top_markers, cluster_key, out_dir / "marker_heatmap.png")

    for group, genes in result.top_markers.items():
        click.echo(f"{group}: {', '.join(genes)}")
    click.echo(f"Markers saved to: {out_dir / 'markers.csv'}")


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Clustered AnnData file (.h5ad)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output directory")
@click.option("--basis", type=click.Choice(["tsne", "umap"]), default="tsne", help="Embedding")
@click.option("--color", "-c", "colors", multiple=True,
              help="obs columns to colour by (repeatable). Default: cluster, truth, stage")
@click.option("--gene", "-g", "genes", multiple=True, help="Genes to plot (repeatable)")
@click.option("--perplexity", type=float, default=30.0, help="t-SNE perplexity")
@click.option("--interactive", is_flag=True, help="Also write plotly HTML")
@click.option("--seed", type=int, default=1337, help="Random seed")
@click.pass_context
def plot(
    ctx: click.Context,
    input_path: str,
    output_path: str,
    basis: str,
    colors: Tuple[str, ...],
    genes: Tuple[str, ...],
    perplexity: float,
    interactive: bool,
    seed: int,
) -> None:
    """Compute the embedding (if missing) and plot clusters and genes."""
    logger = ctx.obj["logger"]

    from stagewise.core.visualization import (
        EmbeddingConfig,
        compute_embedding,
        export_interactive_embedding,
        plot_embedding,
        plot_feature_grid,
    )

    out_dir = Path(output_path)
    written = []
    with _errors_as_click():
        adata = _load(input_path, logger)
        if f"X_{basis}" not in adata.obsm:
            config = EmbeddingConfig(basis=basis, perplexity=perplexity, random_seed=seed)
            compute_embedding(adata, config)
        colors = colors or tuple(
            c for c in ("cluster", "truth", "stage") if c in adata.obs.columns
        )
        for color in colors:
            written.append(plot_embedding(adata, color, out_dir / f"{basis}_{color}.png", basis=basis))
            if interactive:
                written.append(export_interactive_embedding(
                    adata, color, out_dir / f"{basis}_{color}.html", basis=basis
                ))
        if genes:
            grid = plot_feature_grid(adata, list(genes), out_dir / f"{basis}_genes.png", basis=basis)
            if grid is not None:
                written.append(grid)

    for path in written:
        click.echo(f"Wrote {path}")


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Clustered AnnData file (.h5ad)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output directory")
@click.option("--cluster-key", default="cluster", help="Cluster column name")
@click.option("--stage-col", default="stage", help="Stage column name")
@click.option("--truth-col", default="truth", help="Ground-truth column name")
@click.option("--dataset", help="Registered stage configuration (colours)")
@click.option("--skip-plots", is_flag=True, help="Only write tables")
@click.pass_context
def composition(
    ctx: click.Context,
    input_path: str,
    output_path: str,
    cluster_key: str,
    stage_col: str,
    truth_col: str,
    dataset: Optional[str],
    skip_plots: bool,
) -> None:
    """Summarise cluster composition per developmental stage."""
    logger = ctx.obj["logger"]

    from stagewise.config import get_stage_config
    from stagewise.core.composition import (
        CompositionConfig,
        CompositionEngine,
        generate_composition_figures,
    )

    out_dir = Path(output_path)
    config = CompositionConfig(cluster_key=cluster_key, stage_col=stage_col, truth_col=truth_col)
    engine = CompositionEngine(config, logger)
    with _errors_as_click():
        adata = _load(input_path, logger)
        result = engine.run(adata)
        written = engine.export(result, out_dir)
        if not skip_plots:
            palette = get_stage_config(dataset).get_palette(result.stage_summary.counts.columns)
            generate_composition_figures(result, out_dir, stage_palette=palette)

    click.echo(result.stage_summary.counts.to_string())
    click.echo(f"Wrote {len(written)} tables to {out_dir}")


@cli.command()
@click.option("--input", "-i", "input_path", required=True, type=click.Path(exists=True),
              help="Clustered AnnData file (.h5ad)")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output directory")
@click.option("--root-stage", help="Stage containing the root (default: earliest)")
@click.option("--root-cell", help="Explicit root cell id")
@click.option("--dataset", help="Registered stage configuration (ordering)")
@click.option("--no-paga", is_flag=True, help="Skip PAGA over clusters")
@click.pass_context
def trajectory(
    ctx: click.Context,
    input_path: str,
    output_path: str,
    root_stage: Optional[str],
    root_cell: Optional[str],
    dataset: Optional[str],
    no_paga: bool,
) -> None:
    """Infer diffusion pseudo-time and compare it with stage order."""
    logger = ctx.obj["logger"]

    from stagewise.core.trajectory import (
        TrajectoryConfig,
        TrajectoryEngine,
        plot_pseudotime_by_stage,
    )

    out_dir = Path(output_path)
    config = TrajectoryConfig(
        root_stage=root_stage,
        root_cell=root_cell,
        dataset=dataset,
        use_paga=not no_paga,
    )
    with _errors_as_click():
        adata = _load(input_path, logger)
        result = TrajectoryEngine(config, logger).run(adata)
        out_dir.mkdir(parents=True, exist_ok=True)
        if not result.stage_summary.empty:
            result.stage_summary.to_csv(out_dir / "pseudotime_by_stage.csv", index=False)
            plot_pseudotime_by_stage(
                adata,
                out_dir / "pseudotime_by_stage.png",
                pseudotime_key=result.pseudotime_key,
                stage_col=config.stage_col,
                stage_order=list(result.stage_summary["stage"]),
            )
        output_file = _write(adata, out_dir, "trajectory.h5ad")

    click.echo(f"Root cell: {result.root_cell}")
    click.echo(f"Spearman rho (pseudo-time vs stage): {result.stage_correlation:.3f}")
    click.echo(f"Output saved to: {output_file}")


@cli.command()
@click.option("--config", "-c", "config_path", required=True, type=click.Path(exists=True),
              help="Workflow configuration file (YAML)")
@click.option("--out", "-o", "output_path", type=click.Path(),
              help="Override the configured output directory")
@click.option("--steps", help="Comma-separated steps to run (overrides the config)")
@click.option("--dry-run", is_flag=True, help="Show execution plan without running")
@click.pass_context
def run(
    ctx: click.Context,
    config_path: str,
    output_path: Optional[str],
    steps: Optional[str],
    dry_run: bool,
) -> None:
    """Run the configured workflow from a YAML file."""
    from stagewise.config.workflow import WorkflowConfig
    from stagewise.pipeline import PipelineLogger, build_workflow, run_workflow

    with _errors_as_click():
        config = WorkflowConfig.from_yaml(Path(config_path))
        if output_path:
            config.output_dir = output_path
        if steps:
            config.steps = [s.strip() for s in steps.split(",") if s.strip()]

        if dry_run:
            order = build_workflow(config).get_execution_order()
            click.echo("Execution plan:")
            for i, step_id in enumerate(order, 1):
                click.echo(f"  {i}. {step_id}")
            return

        log_level = "DEBUG" if ctx.obj["debug"] else "INFO"
        pipeline_logger = PipelineLogger(
            log_dir=str(Path(config.output_dir) / "logs"), log_level=log_level
        ).setup()
        context = run_workflow(config, pipeline_logger)

    click.echo("Workflow completed successfully")
    click.echo(f"Outputs in: {context.output_dir}")


@cli.command("init-config")
@click.option("--out", "-o", "output_path", default="workflow.yaml", type=click.Path(),
              help="Where to write the default configuration")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init_config(output_path: str, force: bool) -> None:
    """Write a default workflow configuration to edit."""
    from stagewise.config.workflow import WorkflowConfig

    path = Path(output_path)
    if path.exists() and not force:
        raise click.ClickException(f"{path} exists; use --force to overwrite")
    WorkflowConfig.default().to_yaml(path)
    click.echo(f"Wrote default configuration to {path}")


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
