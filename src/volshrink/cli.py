"""volshrink command-line interface.

Commands:
    shrink   Interactive shrink of a partition across one or more hosts
    query    Read-only report of partition constraints
    config   Show or change stored defaults
"""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console

from volshrink import __version__
from volshrink.config_manager import ConfigError, ConfigManager, VolshrinkConfig
from volshrink.constraint_collector import ConstraintCollector, NoValidTargetsError
from volshrink.display import ReportRenderer
from volshrink.errors import InputInvalidError, VolshrinkError
from volshrink.input_parsing import (
    parse_drive_letter,
    parse_size,
    parse_target_list,
    parse_user,
)
from volshrink.models import Target
from volshrink.partition_ops import PartitionClient
from volshrink.remote_exec import Credentials
from volshrink.rollout_executor import RolloutExecutor
from volshrink.session import Session, SessionLoop, SessionPresets
from volshrink.shrink_validator import ShrinkValidator

logger = logging.getLogger(__name__)
console = Console()


def _parsed(parser):
    """Adapt a parse-or-reject function into a click option callback."""

    def callback(ctx: click.Context, param: click.Parameter, value):
        if value is None or value == ():
            return value
        try:
            if isinstance(value, tuple):
                return parser(",".join(value))
            return parser(value)
        except InputInvalidError as e:
            raise click.BadParameter(str(e)) from e

    return callback


def _load_config(config_path: str | None) -> VolshrinkConfig:
    try:
        return ConfigManager.load_config(config_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _partition_client(config: VolshrinkConfig) -> PartitionClient:
    return PartitionClient(
        query_timeout=config.query_timeout, resize_timeout=config.resize_timeout
    )


@click.group(context_settings={"help_option_names": ["--help", "-h"]})
@click.option("--verbose", "-v", is_flag=True, help="Show debug output")
@click.version_option(version=__version__)
def main(verbose: bool) -> None:
    """volshrink - shrink a partition across a fleet of Windows hosts.

    Targets are reached over OpenSSH with key-based authentication and run
    the Windows Storage cmdlets through PowerShell. Use 'localhost' (or '.')
    to operate on the local machine without SSH.

    \b
    COMMANDS:
        shrink   Collect constraints, validate, confirm, and resize
        query    Show partition constraints without changing anything
        config   Show or change stored defaults

    \b
    CONFIGURATION:
        Config file: ~/.volshrink/config.toml
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO, format="%(message)s"
    )


@main.command(name="shrink")
@click.option(
    "--target",
    "-t",
    "targets",
    multiple=True,
    callback=_parsed(parse_target_list),
    help="Target host (repeatable, or comma separated)",
)
@click.option("--drive", "-d", callback=_parsed(parse_drive_letter), help="Drive letter")
@click.option(
    "--amount",
    "-a",
    callback=_parsed(parse_size),
    help="Amount to shrink, e.g. 15000MB or 15GB (plain numbers are MB)",
)
@click.option("--user", "-u", callback=_parsed(parse_user), help="Remote user")
@click.option(
    "--key",
    "key_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="SSH private key",
)
@click.option("--workers", type=click.IntRange(min=1), help="Parallel constraint queries")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Skip the proceed confirmation")
@click.option("--no-restart", is_flag=True, help="Exit after one pass")
@click.option("--config", "config_path", help="Config file path", type=click.Path())
def shrink_command(
    targets: list[str] | None,
    drive: str | None,
    amount: int | None,
    user: str | None,
    key_path: Path | None,
    workers: int | None,
    assume_yes: bool,
    no_restart: bool,
    config_path: str | None,
) -> None:
    """Shrink a partition by the same amount on every target.

    Constraints are collected from every host first. The shrink is rejected
    for all hosts if any host would drop below its own minimum size or below
    the largest minimum size in the fleet. Hosts are resized one at a time;
    a failure on one host does not stop the others.

    \b
    Examples:
      # Fully interactive
      $ volshrink shrink
      \b
      # Shrink D: by 15000 MB on two hosts
      $ volshrink shrink -t web01,web02 -d D -a 15000MB --key ~/.ssh/id_ed25519
      \b
      # Local machine, no restart prompt
      $ volshrink shrink -t localhost -d C -a 10GB --no-restart
    """
    config = _load_config(config_path)
    client = _partition_client(config)

    def remember(session: Session) -> None:
        try:
            ConfigManager.remember_session(session.target_names, session.drive, config_path)
        except ConfigError as e:
            logger.warning(f"Could not save last session to config: {e}")

    loop = SessionLoop(
        collector=ConstraintCollector(client, max_workers=workers or config.collection_workers),
        validator=ShrinkValidator(),
        rollout=RolloutExecutor(client),
        config=config,
        renderer=ReportRenderer(console),
        presets=SessionPresets(
            targets=tuple(targets or ()),
            drive=drive,
            user=user,
            key_path=key_path,
            delta=amount,
            assume_yes=assume_yes,
        ),
        allow_restart=not no_restart,
        on_executed=remember,
    )

    try:
        history = loop.run()
    except VolshrinkError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if history and history[-1].outcome.needs_attention:
        sys.exit(1)


@main.command(name="query")
@click.option(
    "--target",
    "-t",
    "targets",
    multiple=True,
    required=True,
    callback=_parsed(parse_target_list),
    help="Target host (repeatable, or comma separated)",
)
@click.option(
    "--drive", "-d", required=True, callback=_parsed(parse_drive_letter), help="Drive letter"
)
@click.option("--user", "-u", callback=_parsed(parse_user), help="Remote user")
@click.option(
    "--key",
    "key_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="SSH private key",
)
@click.option("--config", "config_path", help="Config file path", type=click.Path())
def query_command(
    targets: list[str],
    drive: str,
    user: str | None,
    key_path: Path | None,
    config_path: str | None,
) -> None:
    """Show current size, minimum size and fleet floor without changing anything.

    Exits non-zero if any target could not be queried.
    """
    config = _load_config(config_path)
    credentials = Credentials(
        user=user or config.default_user,
        key_path=key_path or config.key_path,
        port=config.ssh_port,
        strict_host_key_checking=config.strict_host_key_checking,
    )
    collector = ConstraintCollector(_partition_client(config), max_workers=config.collection_workers)
    renderer = ReportRenderer(console)

    try:
        result = collector.collect([Target(name=t) for t in targets], drive, credentials)
    except NoValidTargetsError as e:
        renderer.show_constraints(e.result)
        click.echo("No target returned partition constraints.", err=True)
        sys.exit(1)

    renderer.show_constraints(result)
    if result.errors:
        sys.exit(1)


@main.group(name="config")
def config_group() -> None:
    """Show or change stored defaults."""
    pass


@config_group.command(name="show")
@click.option("--config", "config_path", help="Config file path", type=click.Path())
def config_show(config_path: str | None) -> None:
    """Show the effective configuration."""
    config = _load_config(config_path)
    try:
        path = ConfigManager.get_config_path(config_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"# {path}")
    for key, value in config.to_dict().items():
        if isinstance(value, list):
            value = ", ".join(value)
        elif isinstance(value, bool):
            value = str(value).lower()
        click.echo(f"{key} = {value}")


@config_group.command(name="set")
@click.argument("key")
@click.argument("value")
@click.option("--config", "config_path", help="Config file path", type=click.Path())
def config_set(key: str, value: str, config_path: str | None) -> None:
    """Set a configuration value.

    \b
    Example:
      $ volshrink config set default_user admin
    """
    try:
        ConfigManager.set_value(key, value, config_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Set {key} = {value}")


if __name__ == "__main__":
    main()
