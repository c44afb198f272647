"""Command line entry point"""

import sys
from typing import Optional

import click

from pirouette import __version__, configure_logging
from pirouette.config import LOG_LEVELS, Config, load_config
from pirouette.context import RunContext
from pirouette.errors import ConfigError
from pirouette.runner import EXIT_FATAL, Runner, exit_code


def format_summary(summary: dict) -> str:
    """One-line human summary of a run."""
    prefix = '[DRY RUN] ' if summary['dry_run'] else ''
    if summary['status'] == 'failed':
        return f"{prefix}pirouette: failed ({summary['error']})"
    return (
        f"{prefix}pirouette: {summary['status']}, "
        f"created {summary['snapshot'] or 'nothing'}, "
        f"deleted {len(summary['deleted'])}, "
        f"retained {len(summary['retained'])}, "
        f"failures {len(summary['failures'])}"
    )


@click.command()
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              envvar=Config.CONFIG_FILE_ENV, default=None,
              help='Path to pirouette.toml (default: ./pirouette.toml, or /config/pirouette.toml in a container).')
@click.option('--dry-run/--no-dry-run', default=None,
              help='Report what would happen without touching the target.')
@click.option('--log-level', type=click.Choice(sorted(LOG_LEVELS), case_sensitive=False), default=None,
              help='Override the log_level option of the config file.')
@click.option('--log-dir', type=click.Path(file_okay=False), envvar=Config.LOG_DIR_ENV, default=None,
              help='Also write a rotating pirouette.log into this directory.')
@click.version_option(__version__, prog_name='pirouette')
def main(config_path: Optional[str], dry_run: Optional[bool], log_level: Optional[str],
         log_dir: Optional[str]):
    """Capture a snapshot of the source, then rotate old snapshots."""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"pirouette: {e}", err=True)
        sys.exit(EXIT_FATAL)

    if dry_run is not None:
        config.dry_run = dry_run
    if log_level is not None:
        config.log_level = log_level.lower()

    logger = configure_logging(config.log_level_value, log_dir)

    runner = Runner(config, RunContext(dry_run=config.dry_run, logger=logger))
    summary = runner.run()

    click.echo(format_summary(summary), err=summary['status'] != 'success')
    sys.exit(exit_code(summary))


if __name__ == '__main__':
    main()
