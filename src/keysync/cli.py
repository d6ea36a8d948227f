"""
keysync CLI — sync published SSH keys into authorized_keys.

    keysync octocat
    keysync --once --authorized-keys-path /home/deploy/.ssh/authorized_keys octocat
    kill -HUP <pid>        # sync now

Entry point: keysync.cli:main
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import DEFAULT_AUTHORIZED_KEYS, __version__
from .config import build_config, load_config, parse_duration, setup_logging
from .errors import KeySyncError
from .models import ReconcileResult

console = Console()


class DurationParamType(click.ParamType):
    """Click type for durations like ``30s``, ``1m`` or ``1h30m``."""

    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, (int, float)):
            return float(value)
        try:
            return parse_duration(value)
        except ValueError as exc:
            self.fail(str(exc), param, ctx)


DURATION = DurationParamType()


def _print_result(result: ReconcileResult, path: Path) -> None:
    if not result.changed:
        console.print(f"  [green]{escape(str(path))} is up to date[/]", soft_wrap=True)
        return

    table = Table(title=escape(str(path)), show_header=True, header_style="bold")
    table.add_column("Change")
    table.add_column("Key")
    for key in result.added:
        table.add_row("[green]added[/]", escape(key))
    for key in result.removed:
        table.add_row("[red]removed[/]", escape(key))
    console.print(table)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="keysync")
@click.argument("identity", required=False)
@click.option(
    "--sync-interval",
    type=DURATION,
    default=None,
    help="Interval to sync keys at, e.g. 30s, 5m, 1h (default: 1m).",
)
@click.option(
    "--disable-periodic-sync",
    "--once",
    "once",
    is_flag=True,
    help="Sync just once then exit.",
)
@click.option(
    "--authorized-keys-path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"authorized_keys file to write keys into (default: {DEFAULT_AUTHORIZED_KEYS}).",
)
@click.option(
    "--url-template",
    default=None,
    help="Key listing URL; {identity} is replaced by IDENTITY.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="KEYSYNC_CONFIG",
    default=None,
    help="YAML config file; flags override its values.",
)
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging.")
@click.pass_context
def main(
    ctx: click.Context,
    identity: Optional[str],
    sync_interval: Optional[float],
    once: bool,
    authorized_keys_path: Optional[Path],
    url_template: Optional[str],
    config_path: Optional[Path],
    log_file: Optional[Path],
    verbose: bool,
):
    """Keep IDENTITY's published SSH keys synced into authorized_keys.

    Keys written by keysync are tagged "synced from github" and are
    removed again once IDENTITY no longer publishes them. Every other
    line of the file is left alone.

    Runs a sync at startup, every --sync-interval, and on SIGHUP.
    """
    setup_logging(verbose=verbose, log_file=log_file)

    try:
        file_values = load_config(config_path) if config_path else {}
        if not identity and not file_values.get("identity"):
            raise click.UsageError(
                "keysync requires a github username as its first argument", ctx=ctx
            )
        config = build_config(
            file_values,
            identity=identity,
            sync_interval=sync_interval,
            once=once or None,
            authorized_keys_path=authorized_keys_path,
            url_template=url_template,
        )
    except KeySyncError as exc:
        console.print(f"[bold red]Error:[/] {escape(str(exc))}")
        sys.exit(exc.exit_code)

    from .daemon import SyncService, run_once

    if config.once:
        status, result = run_once(config)
        if result is not None:
            _print_result(result, config.authorized_keys_path)
        sys.exit(status)

    svc = SyncService(config)
    svc.start()
    svc.run_forever()
