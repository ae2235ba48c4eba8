"""
Motif ranking databases, motif-to-TF annotations and the organism registry.

Rankings are genome-wide: for every motif, every gene has an integer rank
(1 = strongest association). Several rankings (search spaces such as the
500bp upstream region or 10kb around the TSS) are used side by side.
Annotations link motifs to TFs in two tiers, direct (curated) and inferred
(orthology or motif similarity).

The registry maps a supported organism to its bundle of rankings plus one
annotation table. It is validated once, before any data is loaded.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import numpy as np
import pandas as pd

from .config import SUPPORTED_ORGANISMS, ConfigError, validate_database_section

logger = logging.getLogger(__name__)


def _read_table(path: Path, **kwargs) -> pd.DataFrame:
    sep = "\t" if path.suffix in (".tsv", ".txt", ".tbl") else ","
    return pd.read_csv(path, sep=sep, **kwargs)


@dataclass(frozen=True, eq=False)
class MotifRankings:
    """
    One genome-wide ranking database.

    Attributes:
        name: Database name; enrichment rows are tagged with it
        rankings: Motifs (rows) x genes (columns) of 1-based integer ranks
    """

    name: str
    rankings: pd.DataFrame

    def __post_init__(self):
        if self.rankings.empty:
            raise ConfigError(f"Ranking database '{self.name}' is empty", field="rankings")

    @property
    def n_genes(self) -> int:
        return self.rankings.shape[1]

    @property
    def n_motifs(self) -> int:
        return self.rankings.shape[0]

    @property
    def motifs(self) -> pd.Index:
        return self.rankings.index

    @property
    def genes(self) -> pd.Index:
        return self.rankings.columns


@dataclass(eq=False)
class MotifAnnotations:
    """
    Motif to TF annotation table.

    Attributes:
        table: DataFrame with motif, TF and boolean directAnnotation columns
    """

    table: pd.DataFrame
    _direct: Dict[str, Set[str]] = field(init=False, repr=False)
    _inferred: Dict[str, Set[str]] = field(init=False, repr=False)

    def __post_init__(self):
        missing = [c for c in ("motif", "TF", "directAnnotation") if c not in self.table.columns]
        if missing:
            raise ConfigError(
                f"Motif annotation table is missing columns: {missing}",
                field="annotations",
                suggestions=["Expected columns: motif, TF, directAnnotation"],
            )
        direct = self.table["directAnnotation"].astype(bool)
        self._direct = self._as_sets(self.table.loc[direct])
        self._inferred = self._as_sets(self.table.loc[~direct])

    @staticmethod
    def _as_sets(table: pd.DataFrame) -> Dict[str, Set[str]]:
        return {motif: set(tfs) for motif, tfs in table.groupby("motif")["TF"]}

    def direct_tfs(self, motif: str) -> Set[str]:
        return self._direct.get(motif, set())

    def inferred_tfs(self, motif: str) -> Set[str]:
        # a TF directly annotated to a motif is never also reported as inferred
        return self._inferred.get(motif, set()) - self.direct_tfs(motif)


@dataclass
class DatabaseBundle:
    """Rankings plus annotations resolved for one organism."""

    organism: str
    rankings: List[MotifRankings]
    annotations: MotifAnnotations

    def __post_init__(self):
        names = [db.name for db in self.rankings]
        if len(set(names)) != len(names):
            raise ConfigError(f"Duplicate ranking database names: {names}", field="rankings")

    @property
    def database_names(self) -> List[str]:
        return [db.name for db in self.rankings]

    def by_name(self) -> Dict[str, MotifRankings]:
        return {db.name: db for db in self.rankings}


# =============================================================================
# LOADERS
# =============================================================================


def load_matrix(path: str) -> pd.DataFrame:
    """Load a numeric matrix (row labels in the first column) from CSV/TSV."""
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Matrix file not found: {path}")
    matrix = _read_table(file_path, index_col=0)
    matrix.index = matrix.index.astype(str)
    matrix.columns = matrix.columns.astype(str)
    return matrix.apply(pd.to_numeric, errors="coerce")


def load_rankings(path: str, name: Optional[str] = None) -> MotifRankings:
    """
    Load a ranking database from CSV/TSV (motifs as rows, genes as columns).

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If ranks are missing or not positive integers
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Ranking database not found: {path}")

    table = _read_table(file_path, index_col=0)
    table.index = table.index.astype(str)
    table.columns = table.columns.astype(str)

    values = table.to_numpy()
    if not np.issubdtype(values.dtype, np.integer) or (values < 1).any():
        raise ConfigError(
            f"Ranking database {path} must contain positive integer ranks",
            field="rankings",
            suggestions=["Ranks are 1-based: the strongest gene of each motif has rank 1"],
        )

    name = name or file_path.stem
    logger.info(f"[Databases] Loaded ranking '{name}': {table.shape[0]} motifs x {table.shape[1]} genes")
    return MotifRankings(name=name, rankings=table)


def load_motif_annotations(path: str) -> MotifAnnotations:
    """
    Load motif annotations from CSV/TSV.

    Accepts either a boolean ``directAnnotation`` column or an
    ``annotationSource`` column where direct rows read 'directAnnotation'.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Motif annotation file not found: {path}")

    table = _read_table(file_path)
    if "directAnnotation" not in table.columns and "annotationSource" in table.columns:
        table["directAnnotation"] = table["annotationSource"].astype(str) == "directAnnotation"
    elif "directAnnotation" in table.columns and table["directAnnotation"].dtype != bool:
        table["directAnnotation"] = (
            table["directAnnotation"].astype(str).str.lower().isin(["true", "1", "yes"])
        )

    annotations = MotifAnnotations(table=table)
    logger.info(
        f"[Databases] Loaded {len(table)} motif annotations "
        f"({int(table['directAnnotation'].sum())} direct)"
    )
    return annotations


# =============================================================================
# ORGANISM REGISTRY
# =============================================================================


class OrganismRegistry:
    """
    Maps supported organisms to their ranking/annotation files.

    Example:
        registry = OrganismRegistry.from_config(config["databases"])
        bundle = registry.resolve()
    """

    def __init__(self, entries: Dict[str, Dict[str, Any]], organism: str = "hgnc"):
        self.entries = entries
        self.organism = organism

    @classmethod
    def from_config(cls, databases: Dict[str, Any], check_files: bool = True) -> "OrganismRegistry":
        """Build and validate the registry from the ``databases`` config section."""
        validate_database_section(databases, check_files=check_files)
        return cls(entries=dict(databases.get("registry") or {}), organism=databases.get("organism", "hgnc"))

    @property
    def organisms(self) -> List[str]:
        return [o for o in SUPPORTED_ORGANISMS if o in self.entries]

    def ranking_paths(self, organism: Optional[str] = None) -> Dict[str, str]:
        organism = organism or self.organism
        return {str(name): str(path) for name, path in self.entries[organism]["rankings"].items()}

    def resolve(self, organism: Optional[str] = None) -> DatabaseBundle:
        """Load the rankings and annotations registered for ``organism``."""
        organism = organism or self.organism
        if organism not in self.entries:
            raise ConfigError(
                f"No database bundle registered for organism '{organism}'",
                field=f"databases.registry.{organism}",
                suggestions=[f"Registered organisms: {', '.join(self.organisms) or 'none'}"],
            )

        entry = self.entries[organism]
        rankings = [
            load_rankings(path, name=name) for name, path in self.ranking_paths(organism).items()
        ]
        annotations = load_motif_annotations(entry["annotations"])
        logger.info(
            f"[Databases] Resolved organism '{organism}' with {len(rankings)} ranking database(s)"
        )
        return DatabaseBundle(organism=organism, rankings=rankings, annotations=annotations)
