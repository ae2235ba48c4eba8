"""
Significant-gene pruning of self-motif enrichments.

For each (gene set, motif) row, the recovery curve of the gene set in the
motif's ranking is compared with the mean + n_sd standard deviations of the
recovery curves of all motifs of the same database. The first rank where
the motif's curve exceeds that background the most is the leading edge:
genes ranked at or before it are the motif's recovered (enriched) genes.

Methods:
    - aprox: curves evaluated on a coarse rank grid (fast, default)
    - icistarget: curves evaluated at every rank
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .config import check_non_negative, check_positive_int
from .databases import MotifRankings
from .enrichment import ENRICHMENT_COLUMNS
from .modules import TFModule
from .recovery import gene_set_ranks, recovery_curves, recovery_positions, recovery_statistics
from .utils.performance import parallel_map

logger = logging.getLogger(__name__)

PRUNED_COLUMNS = ENRICHMENT_COLUMNS + ["nEnrGenes", "rankAtMax", "enrichedGenes"]

# number of grid points the aprox method aims for
APROX_GRID_POINTS = 500


class PruningMethod(Enum):
    """Recovery-curve evaluation strategies."""

    APROX = "aprox"
    ICISTARGET = "icistarget"


class DatabaseMismatchError(RuntimeError):
    """Enrichment rows were paired with a ranking table of another database."""


@dataclass
class PruningResult:
    """Self-motif rows with their recovered genes."""

    table: pd.DataFrame
    method: PruningMethod
    max_rank: int

    @property
    def n_rows(self) -> int:
        return len(self.table)

    @property
    def n_empty(self) -> int:
        return int((self.table["nEnrGenes"] == 0).sum())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method.value,
            "max_rank": self.max_rank,
            "n_rows": self.n_rows,
            "n_rows_without_genes": self.n_empty,
        }


def grid_step(max_rank: int, method: PruningMethod) -> int:
    """Spacing of recovery-curve evaluation points."""
    if method == PruningMethod.ICISTARGET:
        return 1
    return max(1, max_rank // APROX_GRID_POINTS)


def leading_edge(
    curve: np.ndarray, background: np.ndarray, positions: np.ndarray
) -> Tuple[int, bool]:
    """
    Rank at which ``curve`` exceeds ``background`` the most.

    Returns:
        Tuple of (rank at max, whether any gene is recovered by then)
    """
    j = int(np.argmax(curve - background))
    return int(positions[j]), bool(curve[j] > 0)


def _check_database(rows: pd.DataFrame, rankings: MotifRankings) -> None:
    tagged = set(rows["database"].unique())
    if tagged - {rankings.name}:
        raise DatabaseMismatchError(
            f"Rows tagged with database(s) {sorted(tagged - {rankings.name})} "
            f"cannot be pruned against ranking '{rankings.name}'"
        )
    unknown = set(rows["motif"]) - set(rankings.motifs)
    if unknown:
        shown = ", ".join(sorted(unknown)[:5])
        raise DatabaseMismatchError(
            f"{len(unknown)} motif(s) not found in ranking '{rankings.name}': {shown}"
        )


def add_significant_genes(
    rows: pd.DataFrame,
    gene_sets: Mapping[str, TFModule],
    rankings: MotifRankings,
    max_rank: int = 5000,
    method: Union[PruningMethod, str] = PruningMethod.APROX,
    n_sd: float = 2.0,
    n_workers: int = 1,
    show_progress: bool = False,
) -> pd.DataFrame:
    """
    Add the recovered genes of each row, for rows of a single database.

    Args:
        rows: Enrichment rows, all tagged with ``rankings.name``
        gene_sets: Gene sets referenced by the rows' geneSet column
        rankings: The ranking table the rows were scored against
        max_rank: Deepest rank considered (clipped to the number of genes)
        method: PruningMethod or its value
        n_sd: Standard deviations above the mean background curve
        n_workers: Worker threads over gene sets
        show_progress: Display a progress bar

    Returns:
        Copy of ``rows`` with nEnrGenes, rankAtMax and enrichedGenes (list of
        gene names ordered by rank). Rows that recover nothing keep an empty
        list.

    Raises:
        DatabaseMismatchError: If a row belongs to another database or its
            motif is absent from ``rankings``
    """
    method = PruningMethod(method)
    check_positive_int(max_rank, "pruning.max_rank")
    n_sd = check_non_negative(n_sd, "pruning.n_sd")
    _check_database(rows, rankings)

    max_rank = min(max_rank, rankings.n_genes)
    positions = recovery_positions(max_rank, grid_step(max_rank, method))
    motif_idx = rankings.motifs.get_indexer(rows["motif"])

    def prune_gene_set(item: Tuple[str, np.ndarray]) -> List[Tuple[int, int, List[str]]]:
        name, row_positions = item
        if name not in gene_sets:
            raise KeyError(f"Gene set '{name}' has enrichment rows but no module")
        ranks, present, _ = gene_set_ranks(rankings, gene_sets[name].genes)
        mean, sd = recovery_statistics(ranks, positions)
        background = mean + n_sd * sd

        out = []
        for pos in row_positions:
            gene_ranks = ranks[motif_idx[pos]]
            curve = recovery_curves(gene_ranks[np.newaxis, :], positions)[0]
            rank_at_max, recovered = leading_edge(curve, background, positions)
            genes: List[str] = []
            if recovered:
                order = np.argsort(gene_ranks, kind="mergesort")
                genes = [present[i] for i in order if gene_ranks[i] <= rank_at_max]
            out.append((pos, rank_at_max, genes))
        return out

    # positional indices so duplicate row labels cannot collide
    set_names = rows["geneSet"].to_numpy()
    items = [
        (name, np.flatnonzero(set_names == name)) for name in pd.unique(set_names)
    ]
    results = parallel_map(
        prune_gene_set,
        items,
        n_workers=n_workers,
        desc=f"Pruning {rankings.name}",
        show_progress=show_progress,
    )

    rank_at_max = np.zeros(len(rows), dtype=int)
    enriched: List[List[str]] = [[] for _ in range(len(rows))]
    for chunk in results:
        for pos, rank, genes in chunk:
            rank_at_max[pos] = rank
            enriched[pos] = genes

    pruned = rows.copy()
    pruned["nEnrGenes"] = [len(genes) for genes in enriched]
    pruned["rankAtMax"] = rank_at_max
    pruned["enrichedGenes"] = pd.Series(enriched, index=rows.index, dtype=object)

    n_empty = int((pruned["nEnrGenes"] == 0).sum())
    if n_empty:
        logger.info(
            f"[Pruning] {n_empty} of {len(pruned)} row(s) in {rankings.name} recovered no genes; "
            "kept with an empty gene list"
        )
    return pruned


def prune_by_database(
    self_motifs: pd.DataFrame,
    gene_sets: Mapping[str, TFModule],
    databases: Union[Mapping[str, MotifRankings], Sequence[MotifRankings]],
    max_rank: int = 5000,
    method: Union[PruningMethod, str] = PruningMethod.APROX,
    n_sd: float = 2.0,
    n_workers: int = 1,
    show_progress: bool = False,
) -> PruningResult:
    """
    Prune self-motif rows, each against the ranking of its own database.

    Returns:
        PruningResult whose table keeps the input row order

    Raises:
        DatabaseMismatchError: If rows reference a database that is not given
    """
    method = PruningMethod(method)
    if not isinstance(databases, Mapping):
        databases = {db.name: db for db in databases}

    frames = []
    for db_name, group in self_motifs.groupby("database", sort=False):
        if db_name not in databases:
            raise DatabaseMismatchError(
                f"No ranking table for database '{db_name}' "
                f"(available: {', '.join(databases) or 'none'})"
            )
        frames.append(
            add_significant_genes(
                group,
                gene_sets,
                databases[db_name],
                max_rank=max_rank,
                method=method,
                n_sd=n_sd,
                n_workers=n_workers,
                show_progress=show_progress,
            )
        )

    if frames:
        table = pd.concat(frames).sort_index(kind="mergesort").reset_index(drop=True)
    else:
        table = pd.DataFrame(columns=PRUNED_COLUMNS)
    table = table[PRUNED_COLUMNS]

    result = PruningResult(table=table, method=method, max_rank=max_rank)
    logger.info(
        f"[Pruning] {result.n_rows} self-motif row(s) pruned ({method.value}), "
        f"{result.n_empty} without recovered genes"
    )
    return result
