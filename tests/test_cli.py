"""
Tests for the CLI module.

Tests cover:
- Version and help output
- Config loading and override handling
- Error handling and exit codes
"""

import json
from pathlib import Path

import yaml
from click.testing import CliRunner

from regulon_inference import __version__
from regulon_inference.cli import main


class TestCLIVersion:
    """Tests for version display."""

    def test_version_option(self):
        """Test --version flag displays version."""
        runner = CliRunner()
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestCLIHelp:
    """Tests for help display."""

    def test_help_option(self):
        """Test --help flag displays help."""
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "--config" in result.output
        assert "--workers" in result.output
        assert "--resume" in result.output

    def test_config_required(self):
        """Test missing --config is a usage error."""
        runner = CliRunner()
        result = runner.invoke(main, [])

        assert result.exit_code != 0
        assert "--config" in result.output


class TestCLIRun:
    """Tests for running the pipeline from the CLI."""

    def test_successful_run(self, pipeline_config_path, tmp_path):
        runner = CliRunner()
        output_dir = tmp_path / "cli_output"
        result = runner.invoke(
            main, ["--config", str(pipeline_config_path), "--output", str(output_dir), "--quiet"]
        )

        assert result.exit_code == 0, result.output
        assert "Pipeline completed successfully!" in result.output
        assert "Regulons: 2" in result.output
        with open(output_dir / "regulons.json") as f:
            assert json.load(f)["A"] == ["G1", "G2", "G3", "G4"]

    def test_workers_override(self, pipeline_config_path, tmp_path):
        runner = CliRunner()
        output_dir = tmp_path / "threaded"
        result = runner.invoke(
            main,
            ["-c", str(pipeline_config_path), "-o", str(output_dir), "-j", "3", "-q"],
        )

        assert result.exit_code == 0, result.output
        assert (output_dir / "report.json").exists()

    def test_nonexistent_config(self):
        runner = CliRunner()
        result = runner.invoke(main, ["--config", "/nonexistent/config.yaml"])

        assert result.exit_code != 0

    def test_invalid_config_exits_with_error(self, pipeline_config_dict, tmp_path):
        pipeline_config_dict["pruning"] = {"method": "exact"}
        config_path = tmp_path / "bad.yaml"
        with open(config_path, "w") as f:
            yaml.dump(pipeline_config_dict, f)

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(config_path)])

        assert result.exit_code == 1
        assert "Invalid pruning method" in result.output

    def test_missing_input_file(self, pipeline_config_dict, tmp_path):
        pipeline_config_dict["data"]["weight_matrix_path"] = str(tmp_path / "missing.csv")
        config_path = tmp_path / "missing_input.yaml"
        with open(config_path, "w") as f:
            yaml.dump(pipeline_config_dict, f)

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(config_path), "-q"])

        assert result.exit_code == 1
        assert "not found" in result.output
        assert not Path(tmp_path / "output" / "regulons.json").exists()
