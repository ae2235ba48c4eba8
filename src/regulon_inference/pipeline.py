"""
Regulon Inference Pipeline Orchestrator

Runs the full regulon inference from a co-expression weight matrix to the
final regulons:

    1. Link list from the weight matrix
    2. TF modules by the six thresholding heuristics
    3. Correlation split and module size filter
    4. Motif enrichment per ranking database
    5. Significant-gene pruning of self-motifs
    6. Regulon assembly and incidence matrix

Each stage writes a named artifact to an artifact store, together with a
fingerprint of the settings that produced it and its filtering counts. With
``resume`` enabled, a stage whose artifact exists and whose fingerprint
matches the current settings is loaded instead of rerun; any other stored
artifact is recomputed.
"""

import hashlib
import json
import logging
import subprocess
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import yaml

from .config import load_config, validate_config
from .correlation import (
    add_correlation,
    gene_sets_from_frame,
    gene_sets_to_frame,
    select_activating_modules,
)
from .databases import DatabaseBundle, OrganismRegistry, load_matrix
from .enrichment import run_motif_enrichment
from .link_list import build_link_list
from .modules import TFModule, build_tf_modules, summarize_modules
from .pruning import prune_by_database
from .regulons import (
    assemble_regulons,
    build_incidence_list,
    build_regulon_targets_info,
    summarize_module_methods,
)
from .utils.artifacts import ArtifactStore, DirectoryArtifactStore

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "regulon_inference"

# Settings each resumable stage adds to those of the stages before it
STAGE_PARAMETERS = [
    ("link_list", ["weight_matrix_path", "min_weight"]),
    ("tf_modules", ["secondary_weight", "top_n_per_tf", "top_k_per_target"]),
    (
        "tf_modules_selected",
        [
            "correlation_matrix_path",
            "positive_threshold",
            "negative_threshold",
            "min_module_size",
            "include_tf",
        ],
    ),
    ("motif_enrichment", ["organism", "nes_threshold", "auc_max_rank_fraction"]),
    ("motif_enrichment_with_genes", ["max_rank", "pruning_method", "n_sd"]),
]
STAGE_META_SUFFIX = ".meta"


@dataclass
class PipelineConfig:
    """Configuration for the regulon pipeline."""

    name: str = "regulon_run"
    output_dir: str = "outputs/regulon_run"
    verbose: bool = True
    n_workers: int = 1
    resume: bool = False
    show_progress: bool = False

    # Input paths
    weight_matrix_path: str = ""
    correlation_matrix_path: str = ""

    # Module construction
    min_weight: float = 0.001
    secondary_weight: float = 0.005
    top_n_per_tf: int = 50
    top_k_per_target: List[int] = field(default_factory=lambda: [5, 10, 50])

    # Correlation split
    positive_threshold: float = 0.03
    negative_threshold: float = -0.03
    min_module_size: int = 20
    include_tf: bool = True

    # Motif enrichment
    nes_threshold: float = 3.0
    auc_max_rank_fraction: float = 0.01

    # Pruning
    max_rank: int = 5000
    pruning_method: str = "aprox"
    n_sd: float = 2.0

    # Databases
    organism: str = "hgnc"
    registry: Dict[str, Any] = field(default_factory=dict)

    @property
    def database_config(self) -> Dict[str, Any]:
        return {"organism": self.organism, "registry": self.registry}

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "PipelineConfig":
        """Build from a nested config dict (as loaded from YAML)."""
        # Flatten nested config
        pipeline = config_dict.get("pipeline") or {}
        data = config_dict.get("data") or {}
        modules = config_dict.get("modules") or {}
        correlation = config_dict.get("correlation") or {}
        enrichment = config_dict.get("enrichment") or {}
        pruning = config_dict.get("pruning") or {}
        databases = config_dict.get("databases") or {}

        return cls(
            name=pipeline.get("name", "regulon_run"),
            output_dir=pipeline.get("output_dir", "outputs/regulon_run"),
            verbose=pipeline.get("verbose", True),
            n_workers=pipeline.get("n_workers", 1),
            resume=pipeline.get("resume", False),
            show_progress=pipeline.get("show_progress", False),
            weight_matrix_path=data.get("weight_matrix_path", ""),
            correlation_matrix_path=data.get("correlation_matrix_path", ""),
            min_weight=modules.get("min_weight", 0.001),
            secondary_weight=modules.get("secondary_weight", 0.005),
            top_n_per_tf=modules.get("top_n_per_tf", 50),
            top_k_per_target=list(modules.get("top_k_per_target", [5, 10, 50])),
            positive_threshold=correlation.get("positive_threshold", 0.03),
            negative_threshold=correlation.get("negative_threshold", -0.03),
            min_module_size=correlation.get("min_module_size", 20),
            include_tf=correlation.get("include_tf", True),
            nes_threshold=enrichment.get("nes_threshold", 3.0),
            auc_max_rank_fraction=enrichment.get("auc_max_rank_fraction", 0.01),
            max_rank=pruning.get("max_rank", 5000),
            pruning_method=pruning.get("method", "aprox"),
            n_sd=pruning.get("n_sd", 2.0),
            organism=databases.get("organism", "hgnc"),
            registry=dict(databases.get("registry") or {}),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "PipelineConfig":
        """Load and validate configuration from a YAML file.

        Input files are checked when the data is loaded, not here, so a
        config can be inspected on a machine without the databases.
        """
        config_dict = load_config(yaml_path)
        validate_config(config_dict, check_files=False)
        return cls.from_dict(config_dict)


@dataclass
class FilteringReport:
    """Counts at every filtering stage, to diagnose over-aggressive thresholds."""

    link_list: Dict[str, Any] = field(default_factory=dict)
    modules: Dict[str, Any] = field(default_factory=dict)
    module_selection: Dict[str, Any] = field(default_factory=dict)
    enrichment: Dict[str, Any] = field(default_factory=dict)
    pruning: Dict[str, Any] = field(default_factory=dict)
    regulons: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "link_list": self.link_list,
            "modules": self.modules,
            "module_selection": self.module_selection,
            "enrichment": self.enrichment,
            "pruning": self.pruning,
            "regulons": self.regulons,
        }

    def format_report(self) -> str:
        """Markdown table of the stage counts."""
        lines = [
            "## Filtering Summary",
            "",
            "| Stage | Before | After |",
            "|-------|--------|-------|",
        ]

        def row(stage: str, before: Any, after: Any) -> None:
            before = "N/A" if before is None else before
            after = "N/A" if after is None else after
            lines.append(f"| {stage} | {before} | {after} |")

        row(
            f"Links (weight > {self.link_list.get('min_weight', 'N/A')})",
            self.link_list.get("n_candidate_links"),
            self.link_list.get("n_links"),
        )
        row(
            "Modules (positive correlation)",
            self.module_selection.get("n_modules_total"),
            self.module_selection.get("n_modules_positive"),
        )
        row(
            f"Modules (>= {self.module_selection.get('min_module_size', 'N/A')} genes)",
            self.module_selection.get("n_modules_positive"),
            self.module_selection.get("n_modules_selected"),
        )
        row(
            f"Motif/gene-set pairs (NES > {self.enrichment.get('nes_threshold', 'N/A')})",
            self.enrichment.get("n_pairs"),
            self.enrichment.get("n_above_cutoff"),
        )
        row(
            "Motifs annotated to their own TF",
            self.enrichment.get("n_above_cutoff"),
            self.enrichment.get("n_self_motifs"),
        )
        row(
            "Self-motif rows with recovered genes",
            self.pruning.get("n_rows"),
            (
                self.pruning["n_rows"] - self.pruning["n_rows_without_genes"]
                if "n_rows_without_genes" in self.pruning
                else None
            ),
        )

        rows_per_method = self.modules.get("rows_per_method", {})
        if rows_per_method:
            lines.extend(["", "### Module Rows per Method", "", "| Method | Rows |", "|--------|------|"])
            for method, n in rows_per_method.items():
                lines.append(f"| {method} | {n} |")

        if self.regulons:
            lines.extend(
                [
                    "",
                    "### Regulons",
                    "",
                    f"- TF-gene pairs: {self.regulons.get('n_target_rows', 'N/A')}",
                    f"- Regulons: {self.regulons.get('n_regulons', 'N/A')}",
                    f"- Extended regulons: {self.regulons.get('n_extended_regulons', 'N/A')}",
                ]
            )

        return "\n".join(lines)


class RegulonPipeline:
    """
    Main pipeline orchestrator for regulon inference.

    Example:
        config = PipelineConfig.from_yaml("configs/example.yaml")
        pipeline = RegulonPipeline(config)
        pipeline.run()
        pipeline.regulons["SOX10"]
    """

    def __init__(self, config: PipelineConfig, store: Optional[ArtifactStore] = None):
        """Initialize the pipeline with configuration and an optional artifact store."""
        self.config = config
        self.output_dir = Path(config.output_dir)
        self.store = store

        # Inputs
        self.weight_matrix: Optional[pd.DataFrame] = None
        self.correlation_matrix: Optional[pd.DataFrame] = None
        self.databases: Optional[DatabaseBundle] = None

        # Stage artifacts
        self.links: Optional[pd.DataFrame] = None
        self.tf_modules: Optional[pd.DataFrame] = None
        self.gene_sets: Dict[str, TFModule] = {}
        self.enrichment: Optional[pd.DataFrame] = None
        self.self_motifs: Optional[pd.DataFrame] = None
        self.pruned: Optional[pd.DataFrame] = None
        self.targets_info: Optional[pd.DataFrame] = None
        self.regulons: Dict[str, List[str]] = {}
        self.incidence_matrix: Optional[pd.DataFrame] = None

        self.report = FilteringReport()
        self._log_handlers: List[logging.Handler] = []

        # Timing
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None

    def setup(self) -> None:
        """Set up output directories, the artifact store and logging."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        if self.store is None:
            self.store = DirectoryArtifactStore(str(self.output_dir / "artifacts"))

        # Handlers go on the package logger so each run gets its own log file
        log_file = self.output_dir / "pipeline.log"
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        self._log_handlers = [logging.FileHandler(log_file), logging.StreamHandler(sys.stdout)]
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.setLevel(logging.INFO if self.config.verbose else logging.WARNING)
        for handler in self._log_handlers:
            handler.setFormatter(formatter)
            package_logger.addHandler(handler)

        logger.info(f"Output directory: {self.output_dir}")

    def teardown(self) -> None:
        """Detach and close the run's log handlers."""
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        for handler in self._log_handlers:
            package_logger.removeHandler(handler)
            handler.close()
        self._log_handlers = []

    def load_data(self) -> None:
        """Load the matrices and resolve the ranking databases."""
        logger.info("Loading input data...")

        self.weight_matrix = load_matrix(self.config.weight_matrix_path)
        self.correlation_matrix = load_matrix(self.config.correlation_matrix_path)

        registry = OrganismRegistry.from_config(self.config.database_config, check_files=True)
        self.databases = registry.resolve()

        logger.info(
            f"Loaded: {self.weight_matrix.shape[0]} regulators x "
            f"{self.weight_matrix.shape[1]} targets, "
            f"{len(self.databases.rankings)} ranking database(s) for "
            f"'{self.databases.organism}'"
        )

    def _stage_fingerprint(self, name: str) -> str:
        """Hash of every setting that shapes a stage artifact, upstream stages included."""
        settings: Dict[str, Any] = {}
        for stage, parameters in STAGE_PARAMETERS:
            for parameter in parameters:
                settings[parameter] = getattr(self.config, parameter)
            if stage == "motif_enrichment":
                settings["databases"] = sorted(self.databases.database_names) if self.databases else []
            if stage == name:
                break
        payload = json.dumps(settings, sort_keys=True, default=str)
        return hashlib.sha256(payload.encode()).hexdigest()[:16]

    def _resumable(self, name: str) -> bool:
        if not (self.config.resume and self.store.exists(name)):
            return False
        meta_name = f"{name}{STAGE_META_SUFFIX}"
        stored = self.store.load(meta_name).get("fingerprint") if self.store.exists(meta_name) else None
        if stored != self._stage_fingerprint(name):
            logger.warning(
                f"Stored artifact {name} was built with different settings; recomputing"
            )
            return False
        logger.info(f"Resuming from stored artifact: {name}")
        return True

    def _save_stage(self, name: str, artifact: Any, report: Optional[Dict[str, Any]] = None) -> None:
        """Store a stage artifact with its settings fingerprint and report counts."""
        self.store.save(name, artifact)
        self.store.save(
            f"{name}{STAGE_META_SUFFIX}",
            {"fingerprint": self._stage_fingerprint(name), "report": report or {}},
        )

    def _stored_report(self, name: str) -> Dict[str, Any]:
        report = dict(self.store.load(f"{name}{STAGE_META_SUFFIX}").get("report") or {})
        report["resumed"] = True
        return report

    def build_links(self) -> None:
        """Stage 1: link list."""
        if self._resumable("link_list"):
            self.links = self.store.load("link_list")
            self.report.link_list = self._stored_report("link_list")
            return

        result = build_link_list(self.weight_matrix, min_weight=self.config.min_weight)
        self.links = result.links
        self.report.link_list = result.to_dict()
        self._save_stage("link_list", self.links, self.report.link_list)

    def build_modules(self) -> None:
        """Stage 2: TF modules by every heuristic."""
        if self._resumable("tf_modules"):
            self.tf_modules = self.store.load("tf_modules")
        else:
            self.tf_modules = build_tf_modules(
                self.links,
                min_weight=self.config.min_weight,
                secondary_weight=self.config.secondary_weight,
                top_n_per_tf=self.config.top_n_per_tf,
                top_k_per_target=self.config.top_k_per_target,
            )
            self._save_stage("tf_modules", self.tf_modules)

        counts = self.tf_modules["method"].value_counts(sort=False)
        self.report.modules = {
            "n_rows": len(self.tf_modules),
            "rows_per_method": {str(m): int(n) for m, n in counts.items()},
        }

    def select_modules(self) -> None:
        """Stage 3: correlation split and size filter."""
        if self._resumable("tf_modules_selected"):
            self.gene_sets = gene_sets_from_frame(self.store.load("tf_modules_selected"))
            self.report.module_selection = self._stored_report("tf_modules_selected")
            return

        correlated = add_correlation(
            self.tf_modules,
            self.correlation_matrix,
            positive_threshold=self.config.positive_threshold,
            negative_threshold=self.config.negative_threshold,
        )
        self.store.save("tf_modules_correlated", correlated)

        selection = select_activating_modules(
            correlated,
            min_module_size=self.config.min_module_size,
            include_tf=self.config.include_tf,
        )
        self.gene_sets = selection.gene_sets
        self.report.module_selection = selection.to_dict()
        self._save_stage(
            "tf_modules_selected", gene_sets_to_frame(self.gene_sets), self.report.module_selection
        )

    def enrich_motifs(self) -> None:
        """Stage 4: motif enrichment for every ranking database."""
        if self._resumable("motif_enrichment") and self.store.exists("motif_enrichment_self_motifs"):
            self.enrichment = self.store.load("motif_enrichment")
            self.self_motifs = self.store.load("motif_enrichment_self_motifs")
            self.report.enrichment = self._stored_report("motif_enrichment")
            return

        result = run_motif_enrichment(
            self.gene_sets,
            self.databases.rankings,
            self.databases.annotations,
            nes_threshold=self.config.nes_threshold,
            auc_max_rank_fraction=self.config.auc_max_rank_fraction,
            n_workers=self.config.n_workers,
            show_progress=self.config.show_progress,
        )
        self.enrichment = result.table
        self.self_motifs = result.self_motifs
        self.report.enrichment = result.to_dict()
        self.store.save("motif_enrichment_self_motifs", self.self_motifs)
        self._save_stage("motif_enrichment", self.enrichment, self.report.enrichment)

    def prune_motifs(self) -> None:
        """Stage 5: recovered genes of each self-motif row."""
        if self._resumable("motif_enrichment_with_genes"):
            self.pruned = self.store.load("motif_enrichment_with_genes")
            self.report.pruning = self._stored_report("motif_enrichment_with_genes")
            return

        result = prune_by_database(
            self.self_motifs,
            self.gene_sets,
            self.databases.by_name(),
            max_rank=self.config.max_rank,
            method=self.config.pruning_method,
            n_sd=self.config.n_sd,
            n_workers=self.config.n_workers,
            show_progress=self.config.show_progress,
        )
        self.pruned = result.table
        self.report.pruning = result.to_dict()
        self._save_stage("motif_enrichment_with_genes", self.pruned, self.report.pruning)

    def build_regulons(self) -> None:
        """Stage 6: merged targets, regulons and incidence matrix."""
        incidence_list = build_incidence_list(self.pruned)
        self.targets_info = build_regulon_targets_info(incidence_list, links=self.links)
        regulon_set = assemble_regulons(self.targets_info)
        self.regulons = regulon_set.regulons
        self.incidence_matrix = regulon_set.incidence_matrix

        self.report.regulons = {
            "n_target_rows": len(self.targets_info),
            "n_targets_without_weight": int(self.targets_info["weight"].isna().sum()),
            **regulon_set.to_dict(),
        }
        self.store.save("regulon_targets_info", self.targets_info)
        self.store.save("regulons", self.regulons)
        self.store.save("regulons_incidence_matrix", self.incidence_matrix)

    def generate_outputs(self) -> None:
        """Generate all output artifacts."""
        logger.info("Generating outputs...")

        # 1. Tables
        self._save_tables()

        # 2. Reports (JSON and Markdown)
        self._generate_reports()

        # 3. Run metadata
        self._save_metadata()

        logger.info(f"All outputs saved to: {self.output_dir}")

    def _save_tables(self) -> None:
        """Save result tables as CSV and regulons as JSON."""
        targets_path = self.output_dir / "regulon_targets_info.csv"
        self.targets_info.to_csv(targets_path, index=False)

        incidence_path = self.output_dir / "regulons_incidence_matrix.csv"
        self.incidence_matrix.to_csv(incidence_path)

        enrichment_path = self.output_dir / "motif_enrichment.csv"
        self.enrichment.to_csv(enrichment_path, index=False)

        pruned = self.pruned.copy()
        pruned["enrichedGenes"] = pruned["enrichedGenes"].map("; ".join)
        pruned.to_csv(self.output_dir / "motif_enrichment_with_genes.csv", index=False)

        summarize_modules(self.tf_modules).to_csv(self.output_dir / "module_size_summary.csv")
        summarize_module_methods(self.self_motifs).to_csv(
            self.output_dir / "self_motif_methods.csv"
        )

        regulons_path = self.output_dir / "regulons.json"
        with open(regulons_path, "w") as f:
            json.dump(self.regulons, f, indent=2)
        logger.info(f"Saved {len(self.regulons)} regulons: {regulons_path}")

    def _generate_reports(self) -> None:
        """Generate JSON and Markdown reports."""
        report = {
            "pipeline_name": self.config.name,
            "timestamp": datetime.now().isoformat(),
            "organism": self.config.organism,
            "databases": self.databases.database_names if self.databases else [],
            "input_files": {
                "weight_matrix": self.config.weight_matrix_path,
                "correlation_matrix": self.config.correlation_matrix_path,
            },
            "filtering": self.report.to_dict(),
            "regulons": {name: len(genes) for name, genes in self.regulons.items()},
        }

        json_path = self.output_dir / "report.json"
        with open(json_path, "w") as f:
            json.dump(report, f, indent=2)
        logger.info(f"Saved JSON report: {json_path}")

        md_content = self._generate_markdown_report(report)
        md_path = self.output_dir / "report.md"
        with open(md_path, "w") as f:
            f.write(md_content)
        logger.info(f"Saved Markdown report: {md_path}")

    def _generate_markdown_report(self, report: Dict[str, Any]) -> str:
        """Generate human-readable Markdown report."""
        lines = [
            "# Regulon Inference - Analysis Report",
            "",
            f"**Pipeline:** {report['pipeline_name']}",
            f"**Date:** {report['timestamp']}",
            f"**Organism:** {report['organism']}",
            f"**Databases:** {', '.join(report['databases']) or 'none'}",
            "",
            "---",
            "",
            self.report.format_report(),
            "",
            "## Regulon Sizes",
            "",
        ]

        if report["regulons"]:
            lines.extend(["| Regulon | Genes |", "|---------|-------|"])
            for name, size in report["regulons"].items():
                lines.append(f"| {name} | {size} |")
        else:
            lines.append("No regulons passed the filters.")

        lines.extend(["", "---", "", "*Generated by Regulon Inference Framework*"])
        return "\n".join(lines)

    def _save_metadata(self) -> None:
        """Save run metadata for reproducibility."""

        def file_hash(path: str) -> str:
            if not Path(path).exists():
                return "N/A"
            with open(path, "rb") as f:
                return hashlib.sha256(f.read()).hexdigest()[:16]

        input_files = {
            "weight_matrix": self.config.weight_matrix_path,
            "weight_matrix_hash": file_hash(self.config.weight_matrix_path),
            "correlation_matrix": self.config.correlation_matrix_path,
            "correlation_matrix_hash": file_hash(self.config.correlation_matrix_path),
        }
        bundle = self.config.registry.get(self.config.organism, {})
        for db_name, path in (bundle.get("rankings") or {}).items():
            input_files[f"rankings_{db_name}"] = str(path)
            input_files[f"rankings_{db_name}_hash"] = file_hash(str(path))
        if bundle.get("annotations"):
            input_files["annotations"] = str(bundle["annotations"])
            input_files["annotations_hash"] = file_hash(str(bundle["annotations"]))

        metadata = {
            "run_id": f"{self.config.name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}",
            "timestamp": datetime.now().isoformat(),
            "git_commit": self._get_git_commit(),
            "organism": self.config.organism,
            "input_files": input_files,
            "parameters": {
                "min_weight": self.config.min_weight,
                "secondary_weight": self.config.secondary_weight,
                "top_n_per_tf": self.config.top_n_per_tf,
                "top_k_per_target": list(self.config.top_k_per_target),
                "positive_threshold": self.config.positive_threshold,
                "negative_threshold": self.config.negative_threshold,
                "min_module_size": self.config.min_module_size,
                "nes_threshold": self.config.nes_threshold,
                "auc_max_rank_fraction": self.config.auc_max_rank_fraction,
                "max_rank": self.config.max_rank,
                "pruning_method": self.config.pruning_method,
                "n_sd": self.config.n_sd,
            },
            "resumed": self.config.resume,
            "runtime_seconds": (
                (self.end_time - self.start_time).total_seconds()
                if self.end_time and self.start_time
                else None
            ),
        }

        yaml_path = self.output_dir / "run_metadata.yaml"
        with open(yaml_path, "w") as f:
            yaml.dump(metadata, f, default_flow_style=False)
        logger.info(f"Saved metadata: {yaml_path}")

    def _get_git_commit(self) -> str:
        """Get current git commit hash."""
        try:
            result = subprocess.run(
                ["git", "rev-parse", "--short", "HEAD"],
                capture_output=True,
                text=True,
                cwd=Path(__file__).parent.parent,
            )
        except (OSError, subprocess.SubprocessError):
            return "unknown"
        return result.stdout.strip() if result.returncode == 0 else "unknown"

    def run(self) -> None:
        """Execute the full pipeline."""
        self.start_time = datetime.now()

        try:
            self.setup()

            logger.info("=" * 60)
            logger.info("Regulon Inference Pipeline")
            logger.info("=" * 60)

            self.load_data()
            self.build_links()
            self.build_modules()
            self.select_modules()
            self.enrich_motifs()
            self.prune_motifs()
            self.build_regulons()

            self.end_time = datetime.now()
            self.generate_outputs()
            runtime = (self.end_time - self.start_time).total_seconds()

            logger.info("=" * 60)
            logger.info(f"Pipeline completed successfully in {runtime:.1f} seconds")
            logger.info(f"Regulons: {len(self.regulons)}")
            logger.info(f"Outputs: {self.output_dir}")
            logger.info("=" * 60)

        except Exception as e:
            logger.error(f"Pipeline failed: {e}")
            raise
        finally:
            self.teardown()
