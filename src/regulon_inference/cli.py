"""
Command-line interface for the Regulon Inference Framework.

Usage:
    python -m regulon_inference --config configs/example.yaml
    regulon-inference --config configs/example.yaml --workers 4
"""

import sys
from pathlib import Path

import click

from . import __version__
from .config import SUPPORTED_ORGANISMS, ConfigError
from .pipeline import PipelineConfig, RegulonPipeline


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Path to YAML configuration file",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default=None,
    help="Override output directory from config",
)
@click.option(
    "--organism",
    type=click.Choice(SUPPORTED_ORGANISMS),
    default=None,
    help="Override organism from config",
)
@click.option(
    "--workers",
    "-j",
    type=click.IntRange(min=1),
    default=None,
    help="Override number of worker threads from config",
)
@click.option(
    "--resume/--no-resume",
    default=None,
    help="Reuse stored stage artifacts from a previous run",
)
@click.option(
    "--verbose/--quiet",
    "-v/-q",
    default=True,
    help="Enable/disable verbose output",
)
@click.version_option(version=__version__, prog_name="regulon-inference-framework")
def main(config: str, output: str, organism: str, workers: int, resume: bool, verbose: bool) -> None:
    """
    Regulon Inference Framework - Motif-Pruned Gene Regulatory Networks

    Infer TF regulons from a co-expression weight matrix and cis-regulatory
    motif rankings.

    Example:
        python -m regulon_inference --config configs/example.yaml
    """
    click.echo(f"Regulon Inference Framework v{__version__}")
    click.echo("=" * 50)

    config_path = Path(config)
    click.echo(f"Loading config: {config_path}")

    try:
        pipeline_config = PipelineConfig.from_yaml(str(config_path))

        # Apply overrides
        if output:
            pipeline_config.output_dir = output
        if organism:
            pipeline_config.organism = organism
        if workers is not None:
            pipeline_config.n_workers = workers
        if resume is not None:
            pipeline_config.resume = resume
        pipeline_config.verbose = verbose

        pipeline = RegulonPipeline(pipeline_config)
        pipeline.run()

        click.echo("")
        click.echo("Pipeline completed successfully!")
        click.echo(f"Regulons: {len(pipeline.regulons)}")
        click.echo(f"Results: {pipeline_config.output_dir}")

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Pipeline failed: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
