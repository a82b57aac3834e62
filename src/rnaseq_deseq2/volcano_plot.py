"""Volcano and MA plots of per-gene contrast results."""

from pathlib import Path
from typing import Optional, Union
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

# Threshold categories, drawn back to front
CATEGORIES = ("neither", "q_only", "lfc_only", "both")

_CATEGORY_STYLE = {
    "neither": ("#95a5a6", "Not significant"),
    "q_only": ("#3498db", "q-value only"),
    "lfc_only": ("#f39c12", "Fold change only"),
    "both": ("#e74c3c", "Significant"),
}


def threshold_categories(
    results: pd.DataFrame,
    logfc_col: str = "log2FoldChange",
    fdr_col: str = "padj",
    fdr_threshold: float = 0.05,
    logfc_threshold: float = 1.0,
) -> pd.Series:
    """Label each gene by the thresholds it crosses.

    Missing values never cross a threshold.
    """
    passes_q = (results[fdr_col] < fdr_threshold).fillna(False).astype(bool)
    passes_lfc = (results[logfc_col].abs() > logfc_threshold).fillna(False).astype(bool)
    labels = np.select(
        [passes_q & passes_lfc, passes_lfc, passes_q],
        ["both", "lfc_only", "q_only"],
        default="neither",
    )
    return pd.Series(labels, index=results.index, name="category")


def volcano_plot(
    results: pd.DataFrame,
    logfc_col: str = "log2FoldChange",
    fdr_col: str = "padj",
    fdr_threshold: float = 0.05,
    logfc_threshold: float = 1.0,
    lfc_limit: float = 10.0,
    q_limit: float = 50.0,
    figsize: tuple = (10, 8),
    title: str = "Volcano Plot",
    xlabel: str = "log₂(Fold Change)",
    ylabel: str = "-log₁₀(Adjusted p-value)",
    save_path: Optional[Union[str, Path]] = None,
    **kwargs
) -> plt.Figure:
    """
    Volcano plot with clipped axes.

    Fold changes are clipped to ``[-lfc_limit, lfc_limit]`` and
    -log10(q) to ``[0, q_limit]`` so extreme genes stay on the canvas.
    Points are colored by the thresholds they cross.

    Args:
        results: DataFrame with per-gene results.
        logfc_col: Column name for log fold change (default: "log2FoldChange").
        fdr_col: Column name for adjusted p-value (default: "padj").
        fdr_threshold: Adjusted p-value threshold (default: 0.05).
        logfc_threshold: Absolute log fold change threshold (default: 1.0).
        lfc_limit: Absolute x-axis bound (default: 10).
        q_limit: Upper y-axis bound (default: 50).
        figsize: Figure size tuple (default: (10, 8)).
        title: Plot title.
        xlabel: X-axis label.
        ylabel: Y-axis label.
        save_path: Path to save figure (optional).
        **kwargs: Additional arguments for customization
            - point_size: Size of points (default: 20)
            - text_color: Color for axis text (default: '#2c3e50')
            - alpha: Transparency (default: 0.7)
            - dpi: DPI for saved figure (default: 300)

    Returns:
        matplotlib.figure.Figure: The figure object

    Examples:
        >>> fig = volcano_plot(res.table, title="treated vs control", save_path="volcano.png")
    """
    point_size = kwargs.get('point_size', 20)
    text_color = kwargs.get('text_color', '#2c3e50')
    alpha = kwargs.get('alpha', 0.7)
    dpi = kwargs.get('dpi', 300)

    df = results[[logfc_col, fdr_col]].dropna().copy()
    category = threshold_categories(df, logfc_col, fdr_col, fdr_threshold, logfc_threshold)
    with np.errstate(divide="ignore"):
        y = -np.log10(df[fdr_col].astype(float))
    df['x'] = df[logfc_col].astype(float).clip(-lfc_limit, lfc_limit)
    df['y'] = y.clip(0, q_limit)

    fig, ax = plt.subplots(figsize=figsize, dpi=100)

    for zorder, name in enumerate(CATEGORIES, start=1):
        color, label = _CATEGORY_STYLE[name]
        sub = df[category == name]
        ax.scatter(
            sub['x'],
            sub['y'],
            s=point_size,
            color=color,
            alpha=alpha if name == "both" else alpha * 0.6,
            edgecolors='none',
            label=f'{label} ({len(sub)})',
            zorder=zorder,
        )

    # Threshold lines
    ax.axvline(-logfc_threshold, color='#34495e', linestyle='--', linewidth=1.2, alpha=0.6, zorder=0)
    ax.axvline(logfc_threshold, color='#34495e', linestyle='--', linewidth=1.2, alpha=0.6, zorder=0)
    ax.axhline(-np.log10(fdr_threshold), color='#34495e', linestyle='--', linewidth=1.2, alpha=0.6, zorder=0)

    ax.set_xlim(-lfc_limit * 1.05, lfc_limit * 1.05)
    ax.set_ylim(0, q_limit * 1.05)
    ax.set_xlabel(xlabel, fontsize=13, fontweight='bold', color=text_color)
    ax.set_ylabel(ylabel, fontsize=13, fontweight='bold', color=text_color)
    ax.set_title(title, fontsize=15, fontweight='bold', color=text_color, pad=20)

    for spine in ax.spines.values():
        spine.set_color(text_color)
        spine.set_linewidth(1.5)

    ax.grid(True, alpha=0.2, linestyle=':', linewidth=0.8)
    ax.set_axisbelow(True)
    ax.tick_params(colors=text_color, labelsize=11, width=1.5, length=6)
    ax.legend(loc='upper right', frameon=True, fontsize=10, framealpha=0.95)

    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=dpi, bbox_inches='tight', facecolor='white')
    return fig


def ma_plot(
    results: pd.DataFrame,
    significant: Optional[pd.Series] = None,
    mean_col: str = "baseMean",
    logfc_col: str = "log2FoldChange",
    title: str = "MA Plot",
    save_path: Optional[Union[str, Path]] = None,
) -> plt.Figure:
    """Log fold change against mean normalized count, significant genes in red."""
    df = results[[mean_col, logfc_col]].dropna()
    df = df[df[mean_col] > 0]
    if significant is None:
        sig = pd.Series(False, index=df.index)
    else:
        sig = significant.reindex(df.index).fillna(False).astype(bool)

    fig, ax = plt.subplots(figsize=(9, 6), dpi=100)
    ax.scatter(df.loc[~sig, mean_col], df.loc[~sig, logfc_col], s=8, color='#95a5a6',
               alpha=0.5, edgecolors='none', label='Not significant')
    ax.scatter(df.loc[sig, mean_col], df.loc[sig, logfc_col], s=12, color='#e74c3c',
               alpha=0.8, edgecolors='none', label=f'Significant ({int(sig.sum())})')
    ax.axhline(0, color='#34495e', linewidth=1)
    ax.set_xscale('log')
    ax.set_xlabel("Mean of normalized counts")
    ax.set_ylabel("log₂(Fold Change)")
    ax.set_title(title)
    ax.grid(True, alpha=0.2, linestyle=':')
    ax.legend(loc='upper right')
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches='tight', facecolor='white')
    return fig


def pvalue_histogram(
    values: pd.Series,
    xlabel: str = "p-value",
    title: str = "p-value distribution",
    save_path: Optional[Union[str, Path]] = None,
) -> plt.Figure:
    """Histogram of (adjusted) p-values on [0, 1], missing values dropped."""
    fig, ax = plt.subplots(figsize=(8, 5), dpi=100)
    ax.hist(values.dropna().astype(float), bins=50, range=(0, 1), color='#3498db', edgecolor='white')
    ax.set_xlabel(xlabel)
    ax.set_ylabel("Frequency")
    ax.set_title(title)
    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=300, bbox_inches='tight', facecolor='white')
    return fig
