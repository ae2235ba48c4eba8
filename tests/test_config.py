"""
Tests for configuration loading and validation.
"""

import copy

import pytest
import yaml

from regulon_inference.config import (
    ConfigError,
    check_correlation_thresholds,
    check_fraction,
    check_non_negative,
    check_positive_int,
    check_top_k_tiers,
    load_config,
    validate_config,
)


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_config_file_not_found(self):
        """Test that missing config file raises error."""
        with pytest.raises(FileNotFoundError):
            load_config("nonexistent.yaml")

    def test_load_config_valid_yaml(self, pipeline_config_path):
        """Test loading a valid YAML config."""
        config = load_config(str(pipeline_config_path))

        assert config["pipeline"]["name"] == "test_run"
        assert config["correlation"]["min_module_size"] == 3

    def test_load_config_empty_file(self, tmp_path):
        """Test loading an empty YAML file raises error."""
        config_file = tmp_path / "empty.yaml"
        config_file.touch()

        with pytest.raises(ConfigError, match="empty or invalid"):
            load_config(str(config_file))

    def test_load_config_invalid_yaml(self, tmp_path):
        """Test loading invalid YAML raises error."""
        config_file = tmp_path / "invalid.yaml"
        config_file.write_text("invalid: yaml: content: [")

        with pytest.raises(yaml.YAMLError):
            load_config(str(config_file))


class TestValidateConfig:
    """Tests for validate_config function."""

    def test_valid_config(self, pipeline_config_dict):
        assert validate_config(pipeline_config_dict) is True

    @pytest.mark.parametrize("section", ["pipeline", "data", "databases"])
    def test_missing_section(self, pipeline_config_dict, section):
        del pipeline_config_dict[section]
        with pytest.raises(ConfigError, match=f"Missing required config section: {section}"):
            validate_config(pipeline_config_dict)

    def test_missing_data_field(self, pipeline_config_dict):
        del pipeline_config_dict["data"]["correlation_matrix_path"]
        with pytest.raises(ConfigError, match="data.correlation_matrix_path"):
            validate_config(pipeline_config_dict)

    def test_missing_data_file(self, pipeline_config_dict):
        pipeline_config_dict["data"]["weight_matrix_path"] = "/nonexistent/weights.csv"
        with pytest.raises(ConfigError, match="File not found"):
            validate_config(pipeline_config_dict)

    def test_missing_file_ignored_without_check(self, pipeline_config_dict):
        pipeline_config_dict["data"]["weight_matrix_path"] = "/nonexistent/weights.csv"
        assert validate_config(pipeline_config_dict, check_files=False) is True

    def test_negative_min_weight(self, pipeline_config_dict):
        pipeline_config_dict["modules"] = {"min_weight": -0.1}
        with pytest.raises(ConfigError, match="modules.min_weight"):
            validate_config(pipeline_config_dict)

    def test_secondary_weight_below_min_weight(self, pipeline_config_dict):
        pipeline_config_dict["modules"] = {"min_weight": 0.01, "secondary_weight": 0.005}
        with pytest.raises(ConfigError, match="secondary_weight"):
            validate_config(pipeline_config_dict)

    def test_duplicate_top_k_tiers(self, pipeline_config_dict):
        pipeline_config_dict["modules"] = {"top_k_per_target": [5, 5, 10]}
        with pytest.raises(ConfigError, match="Duplicate"):
            validate_config(pipeline_config_dict)

    def test_zero_min_module_size(self, pipeline_config_dict):
        pipeline_config_dict["correlation"] = {"min_module_size": 0}
        with pytest.raises(ConfigError, match="min_module_size"):
            validate_config(pipeline_config_dict)

    def test_auc_fraction_out_of_range(self, pipeline_config_dict):
        pipeline_config_dict["enrichment"] = {"auc_max_rank_fraction": 1.5}
        with pytest.raises(ConfigError, match="auc_max_rank_fraction"):
            validate_config(pipeline_config_dict)

    def test_non_numeric_nes_threshold(self, pipeline_config_dict):
        pipeline_config_dict["enrichment"] = {"nes_threshold": "high"}
        with pytest.raises(ConfigError, match="nes_threshold"):
            validate_config(pipeline_config_dict)

    def test_unknown_pruning_method(self, pipeline_config_dict):
        pipeline_config_dict["pruning"] = {"method": "exact"}
        with pytest.raises(ConfigError, match="Invalid pruning method"):
            validate_config(pipeline_config_dict)


class TestDatabaseSection:
    """Tests for organism and registry validation."""

    def test_unsupported_organism(self, pipeline_config_dict):
        pipeline_config_dict["databases"]["organism"] = "zebrafish"
        with pytest.raises(ConfigError, match="Unsupported organism"):
            validate_config(pipeline_config_dict)

    def test_organism_not_registered(self, pipeline_config_dict):
        pipeline_config_dict["databases"]["organism"] = "mgi"
        with pytest.raises(ConfigError, match="No database bundle registered"):
            validate_config(pipeline_config_dict)

    def test_bundle_without_rankings(self, pipeline_config_dict):
        pipeline_config_dict["databases"]["registry"]["hgnc"]["rankings"] = {}
        with pytest.raises(ConfigError, match="no ranking databases"):
            validate_config(pipeline_config_dict)

    def test_bundle_without_annotations(self, pipeline_config_dict):
        del pipeline_config_dict["databases"]["registry"]["hgnc"]["annotations"]
        with pytest.raises(ConfigError, match="no motif annotation table"):
            validate_config(pipeline_config_dict)

    def test_missing_database_file(self, pipeline_config_dict):
        pipeline_config_dict["databases"]["registry"]["hgnc"]["annotations"] = "/nonexistent.csv"
        with pytest.raises(ConfigError, match="Database file not found"):
            validate_config(pipeline_config_dict)

    def test_unselected_organism_files_not_required(self, pipeline_config_dict):
        registry = pipeline_config_dict["databases"]["registry"]
        registry["mgi"] = copy.deepcopy(registry["hgnc"])
        registry["mgi"]["annotations"] = "/nonexistent.csv"
        assert validate_config(pipeline_config_dict) is True


class TestThresholdChecks:
    """Tests for the shared threshold validators."""

    def test_check_non_negative(self):
        assert check_non_negative(0, "x") == 0.0
        with pytest.raises(ConfigError):
            check_non_negative(-1e-9, "x")
        with pytest.raises(ConfigError):
            check_non_negative(True, "x")

    def test_check_positive_int(self):
        assert check_positive_int(3, "x") == 3
        for bad in (0, 2.5, "3", False):
            with pytest.raises(ConfigError):
                check_positive_int(bad, "x")

    def test_check_fraction_bounds(self):
        assert check_fraction(1, "x") == 1.0
        with pytest.raises(ConfigError):
            check_fraction(0, "x")

    def test_check_top_k_tiers_sorted(self):
        assert check_top_k_tiers([50, 5, 10]) == [5, 10, 50]
        with pytest.raises(ConfigError):
            check_top_k_tiers([])

    def test_check_correlation_thresholds(self):
        check_correlation_thresholds(0.03, -0.03)
        with pytest.raises(ConfigError, match="positive_threshold"):
            check_correlation_thresholds(-0.1, -0.03)
        with pytest.raises(ConfigError, match="negative_threshold"):
            check_correlation_thresholds(0.03, 0.1)

    def test_error_message_includes_suggestions(self):
        error = ConfigError("Bad value", field="a.b", suggestions=["Fix it"])
        assert "Field: a.b" in str(error)
        assert "1. Fix it" in str(error)
        assert error.field == "a.b"
