"""
peertrade status — look up a claim in the transfer journal.

Exit codes:
    0  Claim found, or unset
    2  Error (bad config, no journal configured, unreadable journal)
"""

from pathlib import Path

import click

from peertrade.config import SettlementConfig
from peertrade.core.exceptions import PeertradeError
from peertrade.state.store import TransferStateStore


@click.command("status")
@click.argument("claim")
@click.option(
    "--config", "config_path", required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Settlement config YAML with a journal path.",
)
def status_command(claim: str, config_path: Path) -> None:
    """Print unset, performed or cancelled for CLAIM."""
    try:
        config = SettlementConfig.from_yaml(config_path)
        if config.journal is None:
            raise click.UsageError("config has no journal path")
        store = TransferStateStore(config.journal)
    except PeertradeError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(2)
    click.echo(store.status(claim.lower().removeprefix("0x")).value)
