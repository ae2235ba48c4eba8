"""
Correlation-based splitting of co-expression modules.

Tags every (TF, target) pair of the module table with the sign of their
expression correlation and selects the activating (positively correlated)
modules that go on to motif enrichment.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from .config import check_correlation_thresholds, check_positive_int
from .modules import TFModule

logger = logging.getLogger(__name__)


class MissingCorrelationError(KeyError):
    """A (TF, target) pair has no entry in the correlation matrix."""

    def __init__(self, missing_pairs: List[tuple], n_missing: int):
        self.missing_pairs = missing_pairs
        self.n_missing = n_missing
        shown = ", ".join(f"{tf}->{target}" for tf, target in missing_pairs[:5])
        more = f" (and {n_missing - 5} more)" if n_missing > 5 else ""
        super().__init__(
            f"{n_missing} TF-target pair(s) absent from the correlation matrix: {shown}{more}"
        )

    def __str__(self) -> str:
        return self.args[0]


@dataclass
class ModuleSelectionResult:
    """Activating modules that passed the size filter."""

    gene_sets: Dict[str, TFModule]
    n_modules_total: int
    n_modules_positive: int
    min_module_size: int
    dropped_modules: List[str] = field(default_factory=list)

    @property
    def n_modules_selected(self) -> int:
        return len(self.gene_sets)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_modules_total": self.n_modules_total,
            "n_modules_positive": self.n_modules_positive,
            "n_modules_selected": self.n_modules_selected,
            "n_modules_too_small": len(self.dropped_modules),
            "min_module_size": self.min_module_size,
        }


def correlation_sign(
    values: np.ndarray,
    positive_threshold: float = 0.03,
    negative_threshold: float = -0.03,
) -> np.ndarray:
    """
    Sign of correlation values with exclusive thresholds.

    Values above ``positive_threshold`` map to 1, below ``negative_threshold``
    to -1, anything else (boundaries and NaN included) to 0.
    """
    values = np.asarray(values, dtype=float)
    with np.errstate(invalid="ignore"):
        signs = np.where(values > positive_threshold, 1, np.where(values < negative_threshold, -1, 0))
    return signs.astype(np.int8)


def add_correlation(
    modules: pd.DataFrame,
    correlation_matrix: pd.DataFrame,
    positive_threshold: float = 0.03,
    negative_threshold: float = -0.03,
) -> pd.DataFrame:
    """
    Add a ``corr`` column (-1, 0, 1) to the module table.

    Args:
        modules: Module table with TF and Target columns
        correlation_matrix: Regulators (rows) x genes (columns)
        positive_threshold: Exclusive cut-off for +1
        negative_threshold: Exclusive cut-off for -1

    Returns:
        Copy of ``modules`` with the corr column. Missing (NaN) matrix values
        give 0.

    Raises:
        MissingCorrelationError: If a TF row or target column is absent
    """
    check_correlation_thresholds(positive_threshold, negative_threshold)

    row_idx = correlation_matrix.index.get_indexer(modules["TF"])
    col_idx = correlation_matrix.columns.get_indexer(modules["Target"])
    absent = (row_idx < 0) | (col_idx < 0)
    if absent.any():
        pairs = modules.loc[absent, ["TF", "Target"]].drop_duplicates()
        raise MissingCorrelationError(
            list(pairs.itertuples(index=False, name=None)), n_missing=len(pairs)
        )

    values = correlation_matrix.to_numpy(dtype=float)[row_idx, col_idx]
    correlated = modules.copy()
    correlated["corr"] = correlation_sign(values, positive_threshold, negative_threshold)

    counts = correlated["corr"].value_counts()
    logger.info(
        f"[Correlation] {counts.get(1, 0)} positive, {counts.get(-1, 0)} negative, "
        f"{counts.get(0, 0)} neutral module links"
    )
    return correlated


def select_activating_modules(
    correlated: pd.DataFrame,
    min_module_size: int = 20,
    include_tf: bool = True,
) -> ModuleSelectionResult:
    """
    Select positively correlated modules for motif enrichment.

    Keeps corr == 1 links, deduplicates targets per (TF, method), adds the TF
    to its own module and drops gene sets with fewer than ``min_module_size``
    genes. Dropped modules are logged and listed, never raised.

    Args:
        correlated: Module table with a corr column
        min_module_size: Minimum number of unique genes per gene set
        include_tf: Add the TF itself to each of its modules

    Returns:
        ModuleSelectionResult keyed by gene-set name (``TF_method``)
    """
    check_positive_int(min_module_size, "correlation.min_module_size")

    n_total = correlated.groupby(["TF", "method"], sort=False).ngroups
    positive = correlated.loc[correlated["corr"] == 1]
    grouped = positive.groupby(["TF", "method"], sort=False)["Target"]

    gene_sets: Dict[str, TFModule] = {}
    dropped: List[str] = []
    for (tf, method), targets in grouped:
        genes = set(targets)
        if include_tf:
            genes.add(tf)
        module = TFModule(tf=tf, method=method, genes=frozenset(genes))
        if len(module) < min_module_size:
            dropped.append(module.name)
            continue
        gene_sets[module.name] = module

    if dropped:
        logger.info(
            f"[Correlation] Dropped {len(dropped)} module(s) with fewer than "
            f"{min_module_size} genes"
        )
    logger.info(
        f"[Correlation] Selected {len(gene_sets)} of {grouped.ngroups} activating modules "
        f"({n_total} modules before correlation split)"
    )

    return ModuleSelectionResult(
        gene_sets=gene_sets,
        n_modules_total=n_total,
        n_modules_positive=grouped.ngroups,
        min_module_size=min_module_size,
        dropped_modules=dropped,
    )


def gene_sets_to_frame(gene_sets: Dict[str, TFModule]) -> pd.DataFrame:
    """Long table (geneSet, TF, method, gene) of selected gene sets, for storage."""
    rows = [
        (name, module.tf, module.method, gene)
        for name, module in gene_sets.items()
        for gene in sorted(module.genes)
    ]
    return pd.DataFrame(rows, columns=["geneSet", "TF", "method", "gene"])


def gene_sets_from_frame(frame: pd.DataFrame) -> Dict[str, TFModule]:
    """Inverse of :func:`gene_sets_to_frame`."""
    gene_sets = {}
    for (name, tf, method), genes in frame.groupby(["geneSet", "TF", "method"], sort=False)["gene"]:
        gene_sets[name] = TFModule(tf=tf, method=method, genes=frozenset(genes))
    return gene_sets
