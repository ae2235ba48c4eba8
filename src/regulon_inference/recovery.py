"""
Rank recovery curves and their area (AUC).

For a gene set and one motif ranking, the recovery curve counts how many
genes of the set are found within the top ``r`` ranked genes, for every
``r`` up to a cut-off. The AUC of that curve, normalized by its maximum,
measures how concentrated the set is at the top of the ranking.

All functions work on a ranks matrix of shape (n_motifs, n_genes_in_set)
holding 1-based ranks, so a whole database is scored in one pass.
"""

import logging
from typing import Iterable, List, Tuple

import numpy as np

from .databases import MotifRankings

logger = logging.getLogger(__name__)


def auc_max_rank_for(n_genes: int, fraction: float = 0.01) -> int:
    """Rank cut-off for the AUC as a fraction of the ranked genes (at least 1)."""
    return max(1, int(round(fraction * n_genes)))


def gene_set_ranks(
    rankings: MotifRankings, genes: Iterable[str]
) -> Tuple[np.ndarray, List[str], List[str]]:
    """
    Ranks of a gene set in every motif of a database.

    Args:
        rankings: Ranking database
        genes: Gene set members

    Returns:
        Tuple of (ranks [n_motifs x n_present], present genes, missing genes).
        Genes are in sorted order; genes absent from the database are returned
        separately and left out of the matrix.
    """
    ordered = sorted(genes)
    idx = rankings.genes.get_indexer(ordered)
    present = [g for g, i in zip(ordered, idx) if i >= 0]
    missing = [g for g, i in zip(ordered, idx) if i < 0]
    ranks = rankings.rankings.to_numpy()[:, idx[idx >= 0]]
    return ranks, present, missing


def calc_auc(ranks: np.ndarray, auc_max_rank: int) -> np.ndarray:
    """
    Normalized area under the recovery curve, one value per motif.

    Each gene ranked better than ``auc_max_rank`` adds
    ``auc_max_rank - rank`` to the area; the total is divided by the
    maximum area, ``auc_max_rank * n_genes``.
    """
    n_motifs, n_present = ranks.shape
    if n_present == 0:
        return np.zeros(n_motifs)
    area = np.where(ranks < auc_max_rank, auc_max_rank - ranks, 0).sum(axis=1)
    return area / float(auc_max_rank * n_present)


def recovery_positions(max_rank: int, step: int = 1) -> np.ndarray:
    """Rank positions at which recovery curves are evaluated, always ending at max_rank."""
    positions = np.arange(step, max_rank + 1, step)
    if len(positions) == 0 or positions[-1] != max_rank:
        positions = np.append(positions, max_rank)
    return positions


def recovery_curves(ranks: np.ndarray, positions: np.ndarray) -> np.ndarray:
    """
    Recovery curves evaluated at ``positions``.

    Returns:
        Array [n_motifs x n_positions]; entry (m, j) is the number of genes
        with rank <= positions[j] in motif m.
    """
    n_rows, n_cols = ranks.shape
    # genes beyond the last position fall in the overflow bin
    bins = np.searchsorted(positions, ranks, side="left")
    hist = np.zeros((n_rows, len(positions) + 1), dtype=np.int64)
    if n_cols:
        rows = np.repeat(np.arange(n_rows), n_cols)
        np.add.at(hist, (rows, bins.ravel()), 1)
    return np.cumsum(hist[:, :-1], axis=1)


def recovery_statistics(
    ranks: np.ndarray, positions: np.ndarray, chunk_size: int = 2000
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Mean and sample standard deviation of the recovery curves of all motifs.

    Motifs are processed in chunks so that only ``chunk_size`` curves are
    held in memory at once.
    """
    n_motifs = ranks.shape[0]
    total = np.zeros(len(positions))
    total_sq = np.zeros(len(positions))
    for start in range(0, n_motifs, chunk_size):
        curves = recovery_curves(ranks[start:start + chunk_size], positions).astype(float)
        total += curves.sum(axis=0)
        total_sq += (curves ** 2).sum(axis=0)

    mean = total / max(n_motifs, 1)
    if n_motifs < 2:
        return mean, np.zeros(len(positions))
    variance = (total_sq - n_motifs * mean ** 2) / (n_motifs - 1)
    return mean, np.sqrt(np.clip(variance, 0, None))
