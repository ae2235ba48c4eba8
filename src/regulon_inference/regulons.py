"""
Regulon assembly.

Flattens pruned self-motif rows into an incidence list (one row per TF,
motif and recovered gene), merges the motif evidence per (TF, gene) and
builds the final regulons:

    - TF: genes supported by at least one directly annotated motif
    - TF_extended: the TF regulon plus genes supported only by inferred
      annotations (only built when such genes exist)

Tie-break per (TF, gene): when any supporting row is directly annotated,
only direct rows compete; the winner is the row with the highest NES
(motif name breaks exact ties). nMotifs counts every supporting row.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from .enrichment import TFINDB_DIRECT

logger = logging.getLogger(__name__)

EXTENDED_SUFFIX = "_extended"

INCIDENCE_LIST_COLUMNS = ["TF", "geneSet", "method", "motif", "NES", "TFinDB", "database", "gene"]
TARGETS_INFO_COLUMNS = ["TF", "gene", "nMotifs", "bestMotif", "NES", "directAnnot", "weight"]


@dataclass
class RegulonSet:
    """Final regulons and their binary incidence matrix."""

    regulons: Dict[str, List[str]]
    incidence_matrix: pd.DataFrame

    @property
    def n_strict(self) -> int:
        return sum(1 for name in self.regulons if not name.endswith(EXTENDED_SUFFIX))

    @property
    def n_extended(self) -> int:
        return sum(1 for name in self.regulons if name.endswith(EXTENDED_SUFFIX))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_regulons": self.n_strict,
            "n_extended_regulons": self.n_extended,
            "n_target_genes": int(self.incidence_matrix.shape[1]),
            "sizes": {name: len(genes) for name, genes in self.regulons.items()},
        }


def unnest(table: pd.DataFrame, column: str, new_column: Optional[str] = None) -> pd.DataFrame:
    """
    One-to-many flattening of a list-valued column.

    Every element of ``table[column]`` becomes its own row; rows with an
    empty list produce no output row.
    """
    new_column = new_column or column
    flat = table.explode(column)
    flat = flat.loc[flat[column].notna()]
    if new_column != column:
        flat = flat.rename(columns={column: new_column})
    return flat.reset_index(drop=True)


def build_incidence_list(pruned: pd.DataFrame) -> pd.DataFrame:
    """One row per (TF, gene set, motif, database, recovered gene)."""
    columns = [c for c in INCIDENCE_LIST_COLUMNS if c != "gene"] + ["enrichedGenes"]
    incidence = unnest(pruned[columns], "enrichedGenes", new_column="gene")
    logger.info(
        f"[Regulons] Incidence list: {len(incidence)} rows from {len(pruned)} pruned motif rows"
    )
    return incidence[INCIDENCE_LIST_COLUMNS]


def build_regulon_targets_info(
    incidence_list: pd.DataFrame, links: Optional[pd.DataFrame] = None
) -> pd.DataFrame:
    """
    Merge motif evidence into one row per (TF, gene).

    Args:
        incidence_list: Output of :func:`build_incidence_list`
        links: Optional link list (TF, Target, weight); its weight is joined
            on (TF, gene). Pairs without a link get a NaN weight.

    Returns:
        DataFrame with TF, gene, nMotifs, bestMotif, NES, directAnnot, weight
    """
    if incidence_list.empty:
        return pd.DataFrame(columns=TARGETS_INFO_COLUMNS)

    evidence = incidence_list.copy()
    evidence["_direct"] = evidence["TFinDB"] == TFINDB_DIRECT
    by_pair = evidence.groupby(["TF", "gene"], sort=False)
    evidence["directAnnot"] = by_pair["_direct"].transform("any")
    evidence["nMotifs"] = by_pair["motif"].transform("size")

    # direct rows take precedence over any NES of inferred rows
    candidates = evidence.loc[evidence["_direct"] | ~evidence["directAnnot"]]
    best = candidates.sort_values(
        ["TF", "gene", "NES", "motif"],
        ascending=[True, True, False, True],
        kind="mergesort",
    ).drop_duplicates(["TF", "gene"], keep="first")

    info = best.rename(columns={"motif": "bestMotif"})[
        ["TF", "gene", "nMotifs", "bestMotif", "NES", "directAnnot"]
    ].reset_index(drop=True)
    info["nMotifs"] = info["nMotifs"].astype(int)
    info["directAnnot"] = info["directAnnot"].astype(bool)

    if links is not None:
        weights = links.drop_duplicates(["TF", "Target"], keep="first").rename(
            columns={"Target": "gene"}
        )[["TF", "gene", "weight"]]
        info = info.merge(weights, on=["TF", "gene"], how="left")
        n_missing = int(info["weight"].isna().sum())
        if n_missing:
            logger.info(f"[Regulons] {n_missing} TF-gene pair(s) have no link weight")
    else:
        info["weight"] = np.nan

    logger.info(
        f"[Regulons] {len(info)} TF-gene pairs for {info['TF'].nunique()} TFs "
        f"({int(info['directAnnot'].sum())} with direct annotation)"
    )
    return info[TARGETS_INFO_COLUMNS]


def build_regulons(targets_info: pd.DataFrame) -> Dict[str, List[str]]:
    """
    Strict and extended regulons from the merged target table.

    Returns:
        Mapping regulon name -> sorted gene list. Strict regulons are named
        by the TF, extended ones by ``TF_extended``.
    """
    regulons: Dict[str, List[str]] = {}
    if targets_info.empty:
        return regulons

    direct = targets_info.loc[targets_info["directAnnot"]]
    inferred = targets_info.loc[~targets_info["directAnnot"]]

    strict = {tf: sorted(set(genes)) for tf, genes in direct.groupby("TF")["gene"]}
    regulons.update(strict)

    for tf, genes in inferred.groupby("TF")["gene"]:
        regulons[f"{tf}{EXTENDED_SUFFIX}"] = sorted(set(strict.get(tf, [])) | set(genes))

    logger.info(
        f"[Regulons] Built {len(strict)} regulons and "
        f"{len(regulons) - len(strict)} extended regulons"
    )
    return dict(sorted(regulons.items()))


def regulons_to_incidence_matrix(regulons: Dict[str, List[str]]) -> pd.DataFrame:
    """Binary regulon x gene matrix; 1 iff the gene belongs to the regulon."""
    names = sorted(regulons)
    genes = sorted({gene for members in regulons.values() for gene in members})
    gene_idx = {gene: j for j, gene in enumerate(genes)}

    matrix = np.zeros((len(names), len(genes)), dtype=np.int8)
    for i, name in enumerate(names):
        for gene in regulons[name]:
            matrix[i, gene_idx[gene]] = 1
    return pd.DataFrame(matrix, index=pd.Index(names, name="regulon"), columns=genes)


def incidence_matrix_to_regulons(matrix: pd.DataFrame) -> Dict[str, List[str]]:
    """Regulons from the nonzero entries of an incidence matrix."""
    return {
        name: sorted(matrix.columns[row != 0].tolist())
        for name, row in zip(matrix.index, matrix.to_numpy())
    }


def assemble_regulons(targets_info: pd.DataFrame) -> RegulonSet:
    """Regulons plus their incidence matrix."""
    regulons = build_regulons(targets_info)
    return RegulonSet(regulons=regulons, incidence_matrix=regulons_to_incidence_matrix(regulons))


def summarize_module_methods(self_motifs: pd.DataFrame) -> pd.DataFrame:
    """
    How often each module-building method produced a self-motif, per TF.

    Returns:
        TF x method count table, TFs ordered by total count (descending)
    """
    if self_motifs.empty:
        return pd.DataFrame()
    counts = pd.crosstab(self_motifs["TF"], self_motifs["method"])
    order = counts.sum(axis=1).sort_values(ascending=False, kind="mergesort").index
    return counts.loc[order]
