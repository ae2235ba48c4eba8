"""
Configuration loading and validation.

Provides utility functions for loading pipeline configuration from YAML files
and the threshold checks shared by every pipeline stage.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

logger = logging.getLogger(__name__)

SUPPORTED_ORGANISMS = ("hgnc", "mgi", "dmel")
PRUNING_METHODS = ("aprox", "icistarget")


class ConfigError(ValueError):
    """Exception raised for invalid thresholds or configuration."""

    def __init__(
        self, message: str, field: Optional[str] = None, suggestions: Optional[List[str]] = None
    ):
        self.field = field
        self.suggestions = suggestions or []
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        lines = [message]
        if self.field:
            lines.append(f"Field: {self.field}")
        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, s in enumerate(self.suggestions, 1):
                lines.append(f"  {i}. {s}")
        return "\n".join(lines)


# =============================================================================
# THRESHOLD CHECKS
# =============================================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def check_non_negative(value: Any, field: str) -> float:
    """Return ``value`` as float, raising ConfigError unless it is a number >= 0."""
    if not _is_number(value) or value < 0:
        raise ConfigError(
            f"Invalid {field}: {value} (must be a non-negative number)",
            field=field,
            suggestions=[f"Use a non-negative number, e.g., {field}: 0.001"],
        )
    return float(value)


def check_positive_int(value: Any, field: str) -> int:
    """Return ``value``, raising ConfigError unless it is an integer >= 1."""
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConfigError(
            f"Invalid {field}: {value} (must be a positive integer)",
            field=field,
            suggestions=[f"Use a positive integer, e.g., {field}: 50"],
        )
    return value


def check_fraction(value: Any, field: str) -> float:
    """Return ``value`` as float, raising ConfigError unless it is in (0, 1]."""
    if not _is_number(value) or value <= 0 or value > 1:
        raise ConfigError(
            f"Invalid {field}: {value} (must be in (0, 1])",
            field=field,
            suggestions=[f"Use a value between 0 and 1, e.g., {field}: 0.01"],
        )
    return float(value)


def check_top_k_tiers(tiers: Any, field: str = "modules.top_k_per_target") -> List[int]:
    """Validate the top-K-per-target tiers and return them sorted ascending."""
    if not isinstance(tiers, (list, tuple)) or len(tiers) == 0:
        raise ConfigError(
            f"Invalid {field}: {tiers} (must be a non-empty list of integers)",
            field=field,
            suggestions=["Use format: top_k_per_target: [5, 10, 50]"],
        )
    for k in tiers:
        check_positive_int(k, field)
    if len(set(tiers)) != len(tiers):
        raise ConfigError(f"Duplicate values in {field}: {tiers}", field=field)
    return sorted(tiers)


def check_correlation_thresholds(positive: Any, negative: Any) -> None:
    """Validate the activating/repressing correlation cut-offs."""
    if not _is_number(positive) or positive < 0:
        raise ConfigError(
            f"Invalid positive_threshold: {positive} (must be >= 0)",
            field="correlation.positive_threshold",
            suggestions=["Use a small positive value, e.g., positive_threshold: 0.03"],
        )
    if not _is_number(negative) or negative > 0:
        raise ConfigError(
            f"Invalid negative_threshold: {negative} (must be <= 0)",
            field="correlation.negative_threshold",
            suggestions=["Use a small negative value, e.g., negative_threshold: -0.03"],
        )


# =============================================================================
# YAML LOADING
# =============================================================================


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load pipeline configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        config = yaml.safe_load(f)

    if config is None:
        raise ConfigError(
            "Config file is empty or invalid",
            suggestions=["Check the file contains valid YAML", "Ensure proper indentation"],
        )

    return config


def validate_config(config: Dict[str, Any], check_files: bool = True) -> bool:
    """
    Validate pipeline configuration.

    Args:
        config: Configuration dictionary
        check_files: If True, verify input files exist

    Returns:
        True if valid

    Raises:
        ConfigError: If configuration is invalid
    """
    required_sections = ["pipeline", "data", "databases"]
    for section in required_sections:
        if section not in config:
            raise ConfigError(
                f"Missing required config section: {section}",
                field=section,
                suggestions=[f"Add a '{section}:' section to your config file"],
            )

    _validate_data_section(config.get("data") or {}, check_files)
    _validate_pipeline_section(config.get("pipeline") or {})

    modules = config.get("modules") or {}
    if modules:
        _validate_modules_section(modules)

    correlation = config.get("correlation") or {}
    if correlation:
        _validate_correlation_section(correlation)

    enrichment = config.get("enrichment") or {}
    if enrichment:
        _validate_enrichment_section(enrichment)

    pruning = config.get("pruning") or {}
    if pruning:
        _validate_pruning_section(pruning)

    validate_database_section(config.get("databases") or {}, check_files)

    return True


def _validate_data_section(data: Dict[str, Any], check_files: bool) -> None:
    """Validate the data section of config."""
    for field in ["weight_matrix_path", "correlation_matrix_path"]:
        if not data.get(field):
            raise ConfigError(
                f"Missing required field: data.{field}",
                field=f"data.{field}",
                suggestions=[f"Add '{field}: /path/to/file.csv' under the 'data:' section"],
            )

        if check_files:
            path = Path(data[field])
            if not path.exists():
                raise ConfigError(
                    f"File not found: {data[field]}",
                    field=f"data.{field}",
                    suggestions=[
                        "Check the file path is correct",
                        "Use absolute paths if relative paths don't work",
                        f"Verify the file exists: ls -la {data[field]}",
                    ],
                )


def _validate_pipeline_section(pipeline: Dict[str, Any]) -> None:
    """Validate the pipeline section of config."""
    n_workers = pipeline.get("n_workers")
    if n_workers is not None:
        check_positive_int(n_workers, "pipeline.n_workers")

    output_dir = pipeline.get("output_dir")
    if output_dir:
        parent = Path(output_dir).parent
        if not parent.exists():
            logger.warning(f"Output directory parent does not exist: {parent}")


def _validate_modules_section(modules: Dict[str, Any]) -> None:
    """Validate the modules section of config."""
    min_weight = modules.get("min_weight")
    if min_weight is not None:
        check_non_negative(min_weight, "modules.min_weight")

    secondary = modules.get("secondary_weight")
    if secondary is not None:
        check_non_negative(secondary, "modules.secondary_weight")
        if min_weight is not None and secondary < min_weight:
            raise ConfigError(
                f"secondary_weight ({secondary}) must be >= min_weight ({min_weight})",
                field="modules.secondary_weight",
            )

    top_n = modules.get("top_n_per_tf")
    if top_n is not None:
        check_positive_int(top_n, "modules.top_n_per_tf")

    tiers = modules.get("top_k_per_target")
    if tiers is not None:
        check_top_k_tiers(tiers)


def _validate_correlation_section(correlation: Dict[str, Any]) -> None:
    """Validate the correlation section of config."""
    check_correlation_thresholds(
        correlation.get("positive_threshold", 0.03),
        correlation.get("negative_threshold", -0.03),
    )

    min_size = correlation.get("min_module_size")
    if min_size is not None:
        check_positive_int(min_size, "correlation.min_module_size")


def _validate_enrichment_section(enrichment: Dict[str, Any]) -> None:
    """Validate the enrichment section of config."""
    nes = enrichment.get("nes_threshold")
    if nes is not None and not _is_number(nes):
        raise ConfigError(
            f"Invalid nes_threshold: {nes} (must be a number)",
            field="enrichment.nes_threshold",
            suggestions=["Use a number, e.g., nes_threshold: 3.0"],
        )

    fraction = enrichment.get("auc_max_rank_fraction")
    if fraction is not None:
        check_fraction(fraction, "enrichment.auc_max_rank_fraction")


def _validate_pruning_section(pruning: Dict[str, Any]) -> None:
    """Validate the pruning section of config."""
    max_rank = pruning.get("max_rank")
    if max_rank is not None:
        check_positive_int(max_rank, "pruning.max_rank")

    method = pruning.get("method")
    if method is not None and method not in PRUNING_METHODS:
        raise ConfigError(
            f"Invalid pruning method: {method}",
            field="pruning.method",
            suggestions=[f"Use one of: {', '.join(PRUNING_METHODS)}"],
        )

    n_sd = pruning.get("n_sd")
    if n_sd is not None:
        check_non_negative(n_sd, "pruning.n_sd")


def validate_database_section(databases: Dict[str, Any], check_files: bool = True) -> None:
    """
    Validate the organism selection and its registry entry.

    Only the selected organism must be fully specified; other registry
    entries are checked for shape but their files are not required to exist.
    """
    organism = databases.get("organism", "hgnc")
    if organism not in SUPPORTED_ORGANISMS:
        raise ConfigError(
            f"Unsupported organism: {organism}",
            field="databases.organism",
            suggestions=[f"Use one of: {', '.join(SUPPORTED_ORGANISMS)}"],
        )

    registry = databases.get("registry") or {}
    if organism not in registry:
        raise ConfigError(
            f"No database bundle registered for organism '{organism}'",
            field=f"databases.registry.{organism}",
            suggestions=[
                f"Add a '{organism}:' entry with 'rankings:' and 'annotations:' "
                "under 'databases.registry'"
            ],
        )

    for name, bundle in registry.items():
        _validate_bundle(name, bundle or {}, check_files=check_files and name == organism)


def _validate_bundle(organism: str, bundle: Dict[str, Any], check_files: bool) -> None:
    field = f"databases.registry.{organism}"
    if organism not in SUPPORTED_ORGANISMS:
        raise ConfigError(
            f"Unsupported organism in registry: {organism}",
            field=field,
            suggestions=[f"Use one of: {', '.join(SUPPORTED_ORGANISMS)}"],
        )

    rankings = bundle.get("rankings") or {}
    if not isinstance(rankings, dict) or not rankings:
        raise ConfigError(
            f"Organism '{organism}' has no ranking databases",
            field=f"{field}.rankings",
            suggestions=["Map each database name to a ranking file, e.g. "
                         "rankings: {500bp_upstream: rankings_500bp.csv}"],
        )

    annotations = bundle.get("annotations")
    if not annotations:
        raise ConfigError(
            f"Organism '{organism}' has no motif annotation table",
            field=f"{field}.annotations",
            suggestions=["Add 'annotations: /path/to/motif_annotations.csv'"],
        )

    if check_files:
        paths: Sequence[Any] = list(rankings.values()) + [annotations]
        for path in paths:
            if not Path(path).exists():
                raise ConfigError(
                    f"Database file not found: {path}",
                    field=field,
                    suggestions=["Check the ranking and annotation paths for this organism"],
                )
