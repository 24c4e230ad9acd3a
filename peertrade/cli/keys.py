"""
peertrade keygen — create a signing key.

Exit codes:
    0  Key written
    2  Error (file exists without --force, write failure)
"""

from pathlib import Path

import click

from peertrade.core.crypto import Secp256k1KeyManager


@click.command("keygen")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--force", is_flag=True, help="Overwrite an existing key file.")
def keygen_command(output: Path, force: bool) -> None:
    """Generate a secp256k1 key, write it as PEM, print its identity."""
    if output.exists() and not force:
        click.echo(f"Error: {output} already exists (use --force)", err=True)
        raise SystemExit(2)
    key = Secp256k1KeyManager.generate()
    try:
        key.save(output)
    except RuntimeError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(2)
    click.echo(key.identity)
