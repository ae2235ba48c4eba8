"""
Regulon Inference Framework

Infers transcription factor regulons from co-expression modules pruned by
cis-regulatory motif enrichment.
"""

__version__ = "0.1.0"

from .config import ConfigError, load_config, validate_config
from .correlation import (
    MissingCorrelationError,
    ModuleSelectionResult,
    add_correlation,
    correlation_sign,
    select_activating_modules,
)
from .databases import (
    DatabaseBundle,
    MotifAnnotations,
    MotifRankings,
    OrganismRegistry,
    load_matrix,
    load_motif_annotations,
    load_rankings,
)
from .enrichment import (
    EnrichmentResult,
    annotate_motifs,
    auc_to_nes,
    calc_motif_auc,
    run_motif_enrichment,
)
from .link_list import LinkListResult, build_link_list
from .modules import TFModule, build_tf_modules, summarize_modules
from .pipeline import FilteringReport, PipelineConfig, RegulonPipeline
from .pruning import (
    DatabaseMismatchError,
    PruningMethod,
    PruningResult,
    add_significant_genes,
    prune_by_database,
)
from .recovery import calc_auc, gene_set_ranks, recovery_curves, recovery_statistics
from .regulons import (
    RegulonSet,
    build_incidence_list,
    build_regulon_targets_info,
    build_regulons,
    incidence_matrix_to_regulons,
    regulons_to_incidence_matrix,
    summarize_module_methods,
)

__all__ = [
    # Pipeline
    "RegulonPipeline",
    "PipelineConfig",
    "FilteringReport",
    # Configuration
    "ConfigError",
    "load_config",
    "validate_config",
    # Link list and modules
    "LinkListResult",
    "build_link_list",
    "TFModule",
    "build_tf_modules",
    "summarize_modules",
    # Correlation
    "MissingCorrelationError",
    "ModuleSelectionResult",
    "add_correlation",
    "correlation_sign",
    "select_activating_modules",
    # Databases
    "DatabaseBundle",
    "MotifAnnotations",
    "MotifRankings",
    "OrganismRegistry",
    "load_matrix",
    "load_motif_annotations",
    "load_rankings",
    # Recovery and enrichment
    "calc_auc",
    "gene_set_ranks",
    "recovery_curves",
    "recovery_statistics",
    "EnrichmentResult",
    "annotate_motifs",
    "auc_to_nes",
    "calc_motif_auc",
    "run_motif_enrichment",
    # Pruning
    "DatabaseMismatchError",
    "PruningMethod",
    "PruningResult",
    "add_significant_genes",
    "prune_by_database",
    # Regulons
    "RegulonSet",
    "build_incidence_list",
    "build_regulon_targets_info",
    "build_regulons",
    "incidence_matrix_to_regulons",
    "regulons_to_incidence_matrix",
    "summarize_module_methods",
    # Meta
    "__version__",
]
