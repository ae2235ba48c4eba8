"""
Regulator-target link list.

Turns a dense regulator x target importance matrix (GENIE3/GRNBoost style)
into a long table of (TF, Target, weight) links above a minimum weight,
sorted by decreasing weight.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict

import numpy as np
import pandas as pd

from .config import ConfigError, check_non_negative

logger = logging.getLogger(__name__)

LINK_COLUMNS = ["TF", "Target", "weight"]


@dataclass
class LinkListResult:
    """Link list plus the counts needed to diagnose the weight threshold."""

    links: pd.DataFrame
    min_weight: float
    n_candidate_links: int
    n_links: int

    @property
    def n_removed(self) -> int:
        return self.n_candidate_links - self.n_links

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_weight": self.min_weight,
            "n_candidate_links": self.n_candidate_links,
            "n_links": self.n_links,
            "n_removed": self.n_removed,
        }


def build_link_list(weight_matrix: pd.DataFrame, min_weight: float = 0.001) -> LinkListResult:
    """
    Convert a weight matrix into a sorted link list.

    Entries with weight <= ``min_weight`` (and missing weights) are dropped.
    Ties keep the row-major order of the matrix, so the result is
    reproducible for a given input.

    Args:
        weight_matrix: Regulators (rows) x targets (columns)
        min_weight: Exclusive lower bound on the weight

    Returns:
        LinkListResult with a DataFrame of TF, Target, weight

    Raises:
        ConfigError: If min_weight is negative or the matrix is empty
    """
    min_weight = check_non_negative(min_weight, "modules.min_weight")
    if weight_matrix is None or weight_matrix.empty:
        raise ConfigError(
            "Weight matrix is empty",
            field="data.weight_matrix_path",
            suggestions=["Provide a regulator x target matrix with at least one entry"],
        )

    values = weight_matrix.to_numpy(dtype=float)
    n_candidates = int(np.isfinite(values).sum())

    with np.errstate(invalid="ignore"):
        rows, cols = np.nonzero(values > min_weight)

    links = pd.DataFrame(
        {
            "TF": weight_matrix.index.to_numpy()[rows],
            "Target": weight_matrix.columns.to_numpy()[cols],
            "weight": values[rows, cols],
        },
        columns=LINK_COLUMNS,
    )
    # mergesort is stable: equal weights stay in matrix order
    links = links.sort_values("weight", ascending=False, kind="mergesort").reset_index(drop=True)

    logger.info(
        f"[LinkList] Kept {len(links)} of {n_candidates} links with weight > {min_weight}"
    )
    return LinkListResult(
        links=links,
        min_weight=min_weight,
        n_candidate_links=n_candidates,
        n_links=len(links),
    )
