"""Command-line interface for running dbferry tasks."""
import sys

import click

from . import __version__
from .config import Config
from .errors import ConfigurationError, ConnectionCloseError, DbFerryError
from .logger import setup_logger
from .migrator import Processor
from .progress import TqdmProgress


@click.group()
@click.version_option(version=__version__)
def cli():
    """Move query results between heterogeneous databases."""
    pass


@cli.command()
@click.option(
    "--config",
    "-c",
    required=True,
    type=click.Path(exists=True),
    help="Path to task configuration YAML file",
)
@click.option(
    "--env",
    "env_file",
    default=".env",
    show_default=True,
    help="Path to a .env file with credentials (ignored when missing)",
)
def validate(config, env_file):
    """Validate configuration without connecting to any database."""
    logger = setup_logger(level="INFO")

    try:
        logger.info(f"Loading configuration from {config}")
        cfg = Config.load(config, env_path=env_file)
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error("Configuration validation failed:")
        for line in str(e).splitlines():
            logger.error(f"  {line.strip()}")
        sys.exit(1)

    enabled = len(cfg.enabled_tasks)
    logger.info(f"✓ Configuration is valid: {len(cfg.databases)} database(s), "
                f"{enabled} enabled task(s), {len(cfg.tasks) - enabled} ignored")


@cli.command()
@click.option(
    "--config",
    "-c",
    required=True,
    type=click.Path(exists=True),
    help="Path to task configuration YAML file",
)
@click.option(
    "--env",
    "env_file",
    default=".env",
    show_default=True,
    help="Path to a .env file with credentials (ignored when missing)",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable debug logging",
)
def run(config, env_file, verbose):
    """Run all enabled tasks of a configuration."""
    logger = setup_logger(level="DEBUG" if verbose else "INFO")

    try:
        cfg = Config.load(config, env_path=env_file)
    except (ConfigurationError, FileNotFoundError) as e:
        logger.error(f"Configuration validation failed: {e}")
        sys.exit(1)

    logger = setup_logger(
        level="DEBUG" if verbose else cfg.logging.level,
        console=cfg.logging.console,
        log_file=cfg.logging.file,
    )

    processor = Processor(cfg, progress_factory=TqdmProgress)
    exit_code = 0
    try:
        result = processor.process_all_tasks()
        logger.info("=" * 60)
        logger.info("RUN COMPLETED")
        logger.info("=" * 60)
        logger.info(f"Tasks completed: {result['tasks_completed']}")
        logger.info(f"Rows transferred: {result['rows_transferred']}")
        logger.info(f"Total time: {result['total_time']:.2f} seconds")
        logger.info("=" * 60)
    except DbFerryError as e:
        logger.error(f"Run failed: {e}")
        exit_code = 1
    finally:
        try:
            processor.close()
        except ConnectionCloseError as e:
            logger.error(f"Failed to close connections: {e}")
            exit_code = 1

    if exit_code:
        sys.exit(exit_code)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
