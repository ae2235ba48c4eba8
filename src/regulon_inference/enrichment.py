"""
Motif enrichment of TF modules.

For each ranking database, every selected gene set is scored against every
motif (recovery AUC), the AUCs are normalized per gene set into NES
z-scores, and pairs above the NES cut-off are annotated with the TFs known
to bind the motif. A pair whose motif is annotated to the gene set's own TF
is a "self-motif":

    **  the TF is directly annotated to the motif
    *   the TF is only inferred (orthology / motif similarity)

NES are relative to one database and one aucMaxRank, so every database is
scored to completion before the per-database tables are merged.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from .config import ConfigError, check_fraction
from .databases import MotifAnnotations, MotifRankings
from .modules import TFModule
from .recovery import auc_max_rank_for, calc_auc, gene_set_ranks
from .utils.performance import chunked, parallel_map

logger = logging.getLogger(__name__)

TFINDB_DIRECT = "**"
TFINDB_INFERRED = "*"
TFINDB_NONE = ""

ENRICHMENT_COLUMNS = [
    "database",
    "geneSet",
    "TF",
    "method",
    "motif",
    "AUC",
    "NES",
    "TFinDB",
    "TF_highConf",
    "TF_lowConf",
]


@dataclass
class DatabaseEnrichmentStats:
    """Counts for one ranking database."""

    database: str
    auc_max_rank: int
    n_gene_sets: int = 0
    n_motifs: int = 0
    n_pairs: int = 0
    n_above_cutoff: int = 0
    n_self_motifs: int = 0
    n_gene_sets_with_missing_genes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "database": self.database,
            "auc_max_rank": self.auc_max_rank,
            "n_gene_sets": self.n_gene_sets,
            "n_motifs": self.n_motifs,
            "n_pairs": self.n_pairs,
            "n_above_cutoff": self.n_above_cutoff,
            "n_self_motifs": self.n_self_motifs,
            "n_gene_sets_with_missing_genes": self.n_gene_sets_with_missing_genes,
        }


@dataclass
class EnrichmentResult:
    """Merged motif enrichment across databases."""

    table: pd.DataFrame
    nes_threshold: float
    database_stats: List[DatabaseEnrichmentStats] = field(default_factory=list)

    @property
    def self_motifs(self) -> pd.DataFrame:
        """Rows whose motif is annotated to the gene set's own TF."""
        return self.table.loc[self.table["TFinDB"] != TFINDB_NONE].reset_index(drop=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nes_threshold": self.nes_threshold,
            "n_pairs": sum(s.n_pairs for s in self.database_stats),
            "n_above_cutoff": len(self.table),
            "n_self_motifs": int((self.table["TFinDB"] != TFINDB_NONE).sum()),
            "databases": [s.to_dict() for s in self.database_stats],
        }


def calc_motif_auc(
    gene_sets: Dict[str, TFModule],
    rankings: MotifRankings,
    auc_max_rank: int,
    n_workers: int = 1,
    chunk_size: int = 50,
    show_progress: bool = False,
) -> pd.DataFrame:
    """
    Recovery AUC of every gene set in every motif of one database.

    Returns:
        DataFrame of gene sets (rows) x motifs (columns). Gene set members
        missing from the database are ignored; ``attrs['n_with_missing']``
        holds how many gene sets had any.
    """
    names = list(gene_sets)

    def score_chunk(chunk: Sequence[str]):
        scores = []
        n_with_missing = 0
        for name in chunk:
            ranks, _, missing = gene_set_ranks(rankings, gene_sets[name].genes)
            if missing:
                n_with_missing += 1
                logger.debug(
                    f"[Enrichment] {name}: {len(missing)} gene(s) not in {rankings.name}"
                )
            scores.append(calc_auc(ranks, auc_max_rank))
        return scores, n_with_missing

    chunks = list(chunked(names, chunk_size))
    results = parallel_map(
        score_chunk,
        chunks,
        n_workers=n_workers,
        desc=f"AUC {rankings.name}",
        show_progress=show_progress,
    )

    rows = [row for scores, _ in results for row in scores]
    values = np.vstack(rows) if rows else np.zeros((0, rankings.n_motifs))
    auc = pd.DataFrame(values, index=pd.Index(names, name="geneSet"), columns=rankings.motifs)
    auc.attrs["n_with_missing"] = sum(n for _, n in results)
    return auc


def auc_to_nes(auc: pd.DataFrame) -> pd.DataFrame:
    """
    Normalized enrichment scores: z-score of each gene set's AUCs across motifs.

    Gene sets with constant AUCs (e.g. no gene in the top ranks of any
    motif) get NES 0.
    """
    with np.errstate(invalid="ignore", divide="ignore"):
        nes = stats.zscore(auc.to_numpy(dtype=float), axis=1, ddof=1)
    nes = np.nan_to_num(nes, nan=0.0, posinf=0.0, neginf=0.0)
    return pd.DataFrame(nes, index=auc.index, columns=auc.columns)


def tfindb_tag(tf: str, motif: str, annotations: MotifAnnotations) -> str:
    """TFinDB tag for a TF/motif pair: '**' direct, '*' inferred, '' none."""
    if tf in annotations.direct_tfs(motif):
        return TFINDB_DIRECT
    if tf in annotations.inferred_tfs(motif):
        return TFINDB_INFERRED
    return TFINDB_NONE


def annotate_motifs(table: pd.DataFrame, annotations: MotifAnnotations) -> pd.DataFrame:
    """
    Add TF_highConf, TF_lowConf and TFinDB columns to an enrichment table.

    Args:
        table: Rows with at least TF and motif columns
        annotations: Motif annotations

    Returns:
        Annotated copy of ``table``
    """
    annotated = table.copy()
    motifs = annotated["motif"].unique()
    high = {m: "; ".join(sorted(annotations.direct_tfs(m))) for m in motifs}
    low = {m: "; ".join(sorted(annotations.inferred_tfs(m))) for m in motifs}
    annotated["TF_highConf"] = annotated["motif"].map(high).astype(object)
    annotated["TF_lowConf"] = annotated["motif"].map(low).astype(object)
    annotated["TFinDB"] = [
        tfindb_tag(tf, motif, annotations)
        for tf, motif in zip(annotated["TF"], annotated["motif"])
    ]
    return annotated


def _enrich_database(
    gene_sets: Dict[str, TFModule],
    rankings: MotifRankings,
    annotations: MotifAnnotations,
    nes_threshold: float,
    auc_max_rank: int,
    n_workers: int,
    show_progress: bool,
):
    auc = calc_motif_auc(
        gene_sets, rankings, auc_max_rank, n_workers=n_workers, show_progress=show_progress
    )
    nes = auc_to_nes(auc)

    nes_values = nes.to_numpy()
    set_idx, motif_idx = np.nonzero(nes_values > nes_threshold)
    set_names = auc.index.to_numpy()[set_idx]
    table = pd.DataFrame(
        {
            "database": rankings.name,
            "geneSet": set_names,
            "TF": [gene_sets[name].tf for name in set_names],
            "method": [gene_sets[name].method for name in set_names],
            "motif": auc.columns.to_numpy()[motif_idx],
            "AUC": auc.to_numpy()[set_idx, motif_idx],
            "NES": nes_values[set_idx, motif_idx],
        }
    )
    table = annotate_motifs(table, annotations)[ENRICHMENT_COLUMNS]

    db_stats = DatabaseEnrichmentStats(
        database=rankings.name,
        auc_max_rank=auc_max_rank,
        n_gene_sets=auc.shape[0],
        n_motifs=auc.shape[1],
        n_pairs=int(auc.size),
        n_above_cutoff=len(table),
        n_self_motifs=int((table["TFinDB"] != TFINDB_NONE).sum()),
        n_gene_sets_with_missing_genes=auc.attrs.get("n_with_missing", 0),
    )
    if db_stats.n_gene_sets_with_missing_genes:
        logger.info(
            f"[Enrichment] {db_stats.n_gene_sets_with_missing_genes} gene set(s) have genes "
            f"missing from {rankings.name}; those genes were skipped"
        )
    logger.info(
        f"[Enrichment] {rankings.name}: {db_stats.n_above_cutoff} of {db_stats.n_pairs} "
        f"motif/gene-set pairs with NES > {nes_threshold} "
        f"({db_stats.n_self_motifs} self-motifs, aucMaxRank={auc_max_rank})"
    )
    return table, db_stats


def run_motif_enrichment(
    gene_sets: Dict[str, TFModule],
    databases: Sequence[MotifRankings],
    annotations: MotifAnnotations,
    nes_threshold: float = 3.0,
    auc_max_rank_fraction: float = 0.01,
    auc_max_rank: Optional[int] = None,
    n_workers: int = 1,
    show_progress: bool = False,
) -> EnrichmentResult:
    """
    Score gene sets against each ranking database and merge the results.

    Args:
        gene_sets: Selected TF modules keyed by gene-set name
        databases: Ranking databases; names must be unique
        annotations: Motif to TF annotations
        nes_threshold: Strict NES cut-off (rows with NES <= cut-off are dropped)
        auc_max_rank_fraction: AUC cut-off as a fraction of ranked genes
        auc_max_rank: Absolute AUC cut-off; overrides the fraction when given
        n_workers: Worker threads for scoring gene-set chunks
        show_progress: Display progress bars

    Returns:
        EnrichmentResult with the merged table (tagged by database)
    """
    if isinstance(nes_threshold, bool) or not isinstance(nes_threshold, (int, float)):
        raise ConfigError(f"Invalid nes_threshold: {nes_threshold}", field="enrichment.nes_threshold")
    check_fraction(auc_max_rank_fraction, "enrichment.auc_max_rank_fraction")
    names = [db.name for db in databases]
    if len(set(names)) != len(names):
        raise ConfigError(f"Duplicate ranking database names: {names}", field="databases")

    tables = []
    db_stats = []
    for rankings in databases:
        max_rank = auc_max_rank or auc_max_rank_for(rankings.n_genes, auc_max_rank_fraction)
        table, stats_ = _enrich_database(
            gene_sets,
            rankings,
            annotations,
            nes_threshold=nes_threshold,
            auc_max_rank=max_rank,
            n_workers=n_workers,
            show_progress=show_progress,
        )
        tables.append(table)
        db_stats.append(stats_)

    if tables:
        merged = pd.concat(tables, ignore_index=True)
    else:
        merged = pd.DataFrame(columns=ENRICHMENT_COLUMNS)
    merged = merged.sort_values(
        ["database", "geneSet", "NES"], ascending=[True, True, False], kind="mergesort"
    ).reset_index(drop=True)

    result = EnrichmentResult(table=merged, nes_threshold=float(nes_threshold), database_stats=db_stats)
    logger.info(
        f"[Enrichment] {len(merged)} enriched motif rows across {len(databases)} database(s), "
        f"{len(result.self_motifs)} self-motif rows"
    )
    return result
