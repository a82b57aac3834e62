"""
Sample-level quality diagnostics.

PCA and sample clustering work on the variance-stabilized matrix of the
fitted model; correlation and the count histogram work on raw counts.
"""

from __future__ import annotations
import itertools
import logging
from pathlib import Path
from typing import Dict, Optional, Union
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy.cluster.hierarchy import linkage
from scipy.spatial.distance import pdist, squareform

from .engine import DifferentialExpressionEngine, FittedModel

logger = logging.getLogger(__name__)


def variance_stabilize(model: FittedModel, engine: DifferentialExpressionEngine) -> pd.DataFrame:
    """Variance-stabilized expression (genes x samples), computed by the engine."""
    return engine.transform(model)


def pca(vst: pd.DataFrame, design: pd.DataFrame, n_top: int = 500) -> pd.DataFrame:
    """
    Project samples on the first two principal components.

    Uses the ``n_top`` genes with the highest variance across samples,
    centered per gene.

    Args:
        vst: Variance-stabilized matrix, genes x samples.
        design: Sample design with ``condition`` and ``batch`` columns.
        n_top: Number of most variable genes. Default: 500.

    Returns:
        DataFrame indexed by sample with ``PC1``, ``PC2``, ``condition``,
        ``batch``. The explained variance ratio of the two axes is stored in
        ``attrs["explained_variance"]``.
    """
    if vst.shape[1] < 2:
        raise ValueError("PCA needs at least two samples")
    variances = vst.var(axis=1)
    top = variances.sort_values(ascending=False).index[:n_top]
    x = vst.loc[top].T.to_numpy(dtype=float)
    x = x - x.mean(axis=0)
    u, s, _ = np.linalg.svd(x, full_matrices=False)
    scores = u * s
    if scores.shape[1] < 2:
        scores = np.column_stack([scores, np.zeros(len(scores))])
    total = float((s ** 2).sum())
    explained = (s ** 2 / total) if total > 0 else np.zeros_like(s)
    explained = np.pad(explained, (0, max(0, 2 - len(explained))))

    coords = pd.DataFrame(
        {"PC1": scores[:, 0], "PC2": scores[:, 1]},
        index=vst.columns,
    )
    coords = coords.join(design[["condition", "batch"]].astype(str))
    coords.attrs["explained_variance"] = [float(explained[0]), float(explained[1])]
    return coords


def plot_pca(coords: pd.DataFrame, title: str = "PCA", save_path: Optional[Union[str, Path]] = None) -> plt.Figure:
    """Scatter plot of PCA coordinates, colored by condition and shaped by batch."""
    fig, ax = plt.subplots(figsize=(8, 6), dpi=100)
    sns.scatterplot(data=coords, x="PC1", y="PC2", hue="condition", style="batch", s=90, ax=ax)
    for sample, row in coords.iterrows():
        ax.annotate(str(sample), (row["PC1"], row["PC2"]), textcoords="offset points",
                    xytext=(4, 4), fontsize=8)
    var1, var2 = coords.attrs.get("explained_variance", [np.nan, np.nan])
    ax.set_xlabel(f"PC1: {var1 * 100:.0f}% variance")
    ax.set_ylabel(f"PC2: {var2 * 100:.0f}% variance")
    ax.set_title(title)
    ax.grid(True, alpha=0.2, linestyle=":")
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches="tight", facecolor="white")
    return fig


def sample_distances(vst: pd.DataFrame) -> pd.DataFrame:
    """Pairwise Euclidean distances between samples (square, symmetric)."""
    dist = squareform(pdist(vst.T.to_numpy(dtype=float), metric="euclidean"))
    return pd.DataFrame(dist, index=vst.columns, columns=vst.columns)


def plot_sample_distance_heatmap(
    distances: pd.DataFrame,
    save_path: Optional[Union[str, Path]] = None,
) -> sns.matrix.ClusterGrid:
    """Clustered heatmap of sample distances.

    Rows and columns share one complete-linkage clustering, so both axes
    show samples in the same order.
    """
    condensed = squareform(distances.to_numpy(), checks=False)
    link = linkage(condensed, method="complete")
    grid = sns.clustermap(
        distances,
        row_linkage=link,
        col_linkage=link,
        cmap="Blues_r",
        figsize=(8, 8),
    )
    grid.ax_heatmap.set_xlabel("")
    grid.ax_heatmap.set_ylabel("")
    if save_path:
        grid.savefig(save_path, dpi=300, bbox_inches="tight", facecolor="white")
    return grid


def correlation_table(counts: pd.DataFrame) -> pd.DataFrame:
    """
    Pearson correlation of every unordered sample pair over raw counts.

    Returns:
        Long-format DataFrame with columns ``sample1``, ``sample2``,
        ``score``; ``N * (N - 1) / 2`` rows for N samples.
    """
    corr = counts.astype(float).corr(method="pearson")
    rows = [
        (a, b, float(corr.loc[a, b]))
        for a, b in itertools.combinations(counts.columns, 2)
    ]
    return pd.DataFrame(rows, columns=["sample1", "sample2", "score"])


def plot_count_histogram(counts: pd.DataFrame, save_path: Optional[Union[str, Path]] = None) -> plt.Figure:
    """Histogram of log10(count + 1) over all genes and samples."""
    values = np.log10(counts.to_numpy(dtype=float).ravel() + 1)
    fig, ax = plt.subplots(figsize=(8, 5), dpi=100)
    ax.hist(values, bins=100, color="#95a5a6", edgecolor="none")
    ax.set_xlabel("log10(count + 1)")
    ax.set_ylabel("Frequency")
    ax.set_title("Count distribution")
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches="tight", facecolor="white")
    return fig


def run_diagnostics(
    model: FittedModel,
    counts: pd.DataFrame,
    engine: DifferentialExpressionEngine,
    output_dir: Union[str, Path],
    design: Optional[pd.DataFrame] = None,
    n_top: int = 500,
) -> Dict[str, Path]:
    """Write all diagnostics to ``output_dir``.

    ``design`` defaults to the design stored on the model.

    Returns:
        Mapping of diagnostic name to the written file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "pca": output_dir / "PCA.png",
        "distance": output_dir / "sample_distance.png",
        "correlation": output_dir / "correlation.csv",
        "histogram": output_dir / "count_histogram.png",
    }

    vst = variance_stabilize(model, engine)
    if design is None:
        design = model.design
    design = design.loc[list(vst.columns)]

    fig = plot_pca(pca(vst, design, n_top=n_top), save_path=paths["pca"])
    plt.close(fig)
    grid = plot_sample_distance_heatmap(sample_distances(vst), save_path=paths["distance"])
    plt.close(grid.figure)
    correlation_table(counts).to_csv(paths["correlation"], index=False)
    fig = plot_count_histogram(counts, save_path=paths["histogram"])
    plt.close(fig)

    logger.info("Wrote diagnostics to %s", output_dir)
    return paths
