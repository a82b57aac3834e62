"""R dependency management utilities."""

from __future__ import annotations
import logging
from typing import Sequence

logger = logging.getLogger(__name__)

# Track which packages have been checked
_checked_packages: set = set()

BIOC_PACKAGES = ["DESeq2", "SummarizedExperiment", "S4Vectors"]


def _import_rpy2_packages():
    try:
        import rpy2.robjects.packages as rpackages
        from rpy2.robjects.vectors import StrVector
    except ImportError:
        raise ImportError(
            "rpy2 is not installed. Please install it via 'pip install rpy2' "
            "together with an R installation."
        )
    return rpackages, StrVector


def r_packages_available(packages: Sequence[str]) -> bool:
    """
    Check whether R and the given R packages can be used.

    Never installs anything.

    Args:
        packages: R package names, e.g. ``["DESeq2"]``.

    Returns:
        True if rpy2 can start R and every package is installed.
    """
    try:
        rpackages, _ = _import_rpy2_packages()
        return all(rpackages.isinstalled(pkg) for pkg in packages)
    except (ImportError, RuntimeError, OSError, ValueError):
        # rpy2 raises these when no usable R installation is found
        return False


def ensure_r_dependencies(packages: Sequence[str]) -> None:
    """
    Checks if required R packages are installed.
    If not, attempts to install them using BiocManager via rpy2.

    Args:
        packages: Sequence of R package names to check/install.

    Example:
        >>> ensure_r_dependencies(["DESeq2"])
    """
    global _checked_packages

    packages_to_check = [pkg for pkg in packages if pkg not in _checked_packages]
    if not packages_to_check:
        return

    rpackages, StrVector = _import_rpy2_packages()

    missing_pkgs = [pkg for pkg in packages_to_check if not rpackages.isinstalled(pkg)]

    if missing_pkgs:
        logger.warning("Missing R packages detected: %s", ", ".join(missing_pkgs))
        logger.info("Attempting to install via BiocManager...")

        utils = rpackages.importr("utils")
        utils.chooseCRANmirror(ind=1)

        if not rpackages.isinstalled("BiocManager"):
            utils.install_packages(StrVector(["BiocManager"]))

        bioc_manager = rpackages.importr("BiocManager")
        bioc_manager.install(StrVector(missing_pkgs), ask=False)

        still_missing = [pkg for pkg in missing_pkgs if not rpackages.isinstalled(pkg)]
        if still_missing:
            raise RuntimeError(f"Failed to install R packages: {', '.join(still_missing)}")
        logger.info("R packages installed successfully.")

    _checked_packages.update(packages_to_check)
