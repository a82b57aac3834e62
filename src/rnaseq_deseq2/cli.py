"""Command-line entry points: ``run`` the workflow and print inferred sample ``labels``."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click

from rnaseq_deseq2.config import DEFAULT_SUFFIX_PATTERN, WorkflowConfig
from rnaseq_deseq2.design import infer_sample_design
from rnaseq_deseq2.errors import WorkflowError
from rnaseq_deseq2.loader import load_count_table
from rnaseq_deseq2.pipeline import run_workflow

logger = logging.getLogger(__name__)


def build_config(config_path: Optional[Path], overrides: Dict[str, Any]) -> WorkflowConfig:
    """Config from an optional TOML file, with command-line values taking precedence."""
    try:
        if config_path is not None:
            return WorkflowConfig.from_toml(config_path, **overrides)
        return WorkflowConfig.from_mapping({k: v for k, v in overrides.items() if v is not None})
    except (ValueError, TypeError) as exc:
        raise click.UsageError(f"Invalid configuration: {exc}") from exc


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose logging.")
def cli(verbose: bool) -> None:
    """RNA-seq differential expression workflow backed by DESeq2."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.captureWarnings(True)


@cli.command("run")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="TOML file with a [workflow] table.",
)
@click.option(
    "--counts",
    "counts_path",
    type=click.Path(path_type=Path),
    help="Tab-separated feature-count table.",
)
@click.option("--annotation-url", help="URL of the plain-text annotation table.")
@click.option(
    "--annotation",
    "annotation_path",
    type=click.Path(path_type=Path),
    help="Local annotation table (takes precedence over --annotation-url).",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory receiving all outputs.  [default: .]",
)
@click.option("--min-count", type=click.IntRange(0), help="Minimum total count per gene.  [default: 10]")
@click.option(
    "--q-cutoff",
    type=click.FloatRange(0, 1, min_open=True),
    help="Adjusted p-value threshold.  [default: 0.05]",
)
@click.option("--lfc-cutoff", type=click.FloatRange(0), help="Absolute log2 fold-change threshold.  [default: 1]")
@click.option(
    "--contrast",
    "contrasts",
    type=(str, str),
    multiple=True,
    metavar="TARGET REFERENCE",
    help="Condition pair to compare (repeat for multiple). Defaults to every level vs the first.",
)
@click.option(
    "--shrink-type",
    type=click.Choice(["normal", "ashr", "apeglm"]),
    help="Fold-change shrinkage estimator.  [default: normal]",
)
@click.option("--refit", is_flag=True, help="Refit the model even if a persisted one exists.")
@click.option("--strict-annotation", is_flag=True, help="Fail on gene ids missing from the annotation.")
@click.option("--skip-diagnostics", is_flag=True, help="Do not write PCA, clustering and correlation output.")
def run_command(
    config_path: Optional[Path],
    counts_path: Optional[Path],
    annotation_url: Optional[str],
    annotation_path: Optional[Path],
    output_dir: Optional[Path],
    min_count: Optional[int],
    q_cutoff: Optional[float],
    lfc_cutoff: Optional[float],
    contrasts: Tuple[Tuple[str, str], ...],
    shrink_type: Optional[str],
    refit: bool,
    strict_annotation: bool,
    skip_diagnostics: bool,
) -> None:
    """Run the full workflow."""
    overrides: Dict[str, Any] = {
        "counts_path": counts_path,
        "annotation_url": annotation_url,
        "annotation_path": annotation_path,
        "output_dir": output_dir,
        "min_count": min_count,
        "q_cutoff": q_cutoff,
        "lfc_cutoff": lfc_cutoff,
        "shrink_type": shrink_type,
        "contrasts": [{"target": t, "reference": r} for t, r in contrasts] or None,
        "reuse_model": False if refit else None,
        "strict_annotation_join": True if strict_annotation else None,
    }
    config = build_config(config_path, overrides)
    if config.counts_path is None:
        raise click.UsageError("A count table is required (--counts or counts_path in --config).")
    if config.annotation_path is None and not config.annotation_url:
        raise click.UsageError("An annotation source is required (--annotation or --annotation-url).")

    try:
        result = run_workflow(config, diagnostics=not skip_diagnostics)
    except WorkflowError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    for name, summary in result.summaries.items():
        click.echo(
            f"{name}: {summary.n_significant}/{summary.n_total} significant "
            f"({summary.n_up} up, {summary.n_down} down)"
        )


@cli.command("labels")
@click.argument("counts_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--n-meta-columns", type=click.IntRange(2), default=5, show_default=True,
              help="Leading metadata columns of the count table.")
@click.option("--suffix-pattern", default=DEFAULT_SUFFIX_PATTERN, show_default=True,
              help="Regex stripped from the end of sample headers.")
def labels_command(counts_path: Path, n_meta_columns: int, suffix_pattern: str) -> None:
    """Print the condition and batch inferred for each sample."""
    try:
        table = load_count_table(
            counts_path, min_count=0, n_meta_columns=n_meta_columns, suffix_pattern=suffix_pattern
        )
    except WorkflowError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    design = infer_sample_design(table.sample_names)
    click.echo("sample\tcondition\tbatch")
    for sample, row in design.iterrows():
        click.echo(f"{sample}\t{row['condition']}\t{row['batch']}")


def main() -> None:  # pragma: no cover
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
