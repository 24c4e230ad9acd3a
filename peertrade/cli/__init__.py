"""
peertrade/cli/__init__.py

Peertrade CLI — root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    peertrade = "peertrade.cli:cli"

Adding a new command:
    1. Create peertrade/cli/your_command.py with a @click.command()
    2. Import it here
    3. cli.add_command(your_command)
"""

import click

from peertrade.cli.keys import keygen_command
from peertrade.cli.orders import claim_command, sign_command, verify_command
from peertrade.cli.status import status_command


@click.group()
@click.version_option(package_name="peertrade")
def cli() -> None:
    """
    Peertrade — signed order tooling.

    \b
    Commands:
      keygen    Create a secp256k1 signing key.
      claim     Compute the claim of an order file.
      sign      Sign an order's claim.
      verify    Check a signature against an order.
      status    Look up a claim in the transfer journal.

    \b
    Quick start:
      peertrade keygen sender.pem
      peertrade sign order.yaml --key sender.pem --config settlement.yaml
      peertrade verify order.yaml 0x<signature> --config settlement.yaml
    """
    pass


cli.add_command(keygen_command)
cli.add_command(claim_command)
cli.add_command(sign_command)
cli.add_command(verify_command)
cli.add_command(status_command)
