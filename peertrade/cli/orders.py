"""
peertrade claim / sign / verify — order file tooling.

Order file (YAML or JSON):

    from: "0x..."
    to: "0x..."
    asset: "0x..."
    asset_id: 1
    seed: 42
    expiration: 1893456000
    fees:
      - recipient: "0x..."
        amount: 10

The instance identity comes from --config (a settlement YAML) or
--instance. Claims depend on it.

Exit codes:
    0  Success / signature valid
    1  Signature invalid
    2  Error (missing file, malformed order, key mismatch)
"""

from pathlib import Path
from typing import Optional

import click
import yaml

from peertrade.config import SettlementConfig
from peertrade.core.canonical import canonicalize
from peertrade.core.claim import claim_for_order
from peertrade.core.crypto import Secp256k1KeyManager, recover_signer
from peertrade.core.exceptions import PeertradeError
from peertrade.core.identity import normalize_identity
from peertrade.core.models import Order, Signature

_instance_options = [
    click.option(
        "--config", "config_path",
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        help="Settlement config YAML providing the instance identity.",
    ),
    click.option("--instance", help="Instance identity (overrides --config)."),
]

_format_option = click.option(
    "--format", "fmt",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
)


def instance_options(func):
    for option in reversed(_instance_options):
        func = option(func)
    return func


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(2)


def _resolve_instance(config_path: Optional[Path], instance: Optional[str]) -> str:
    try:
        if instance:
            return normalize_identity(instance, "instance")
        if config_path:
            return SettlementConfig.from_yaml(config_path).instance
    except PeertradeError as exc:
        _fail(str(exc))
    _fail("an instance identity is required (--config or --instance)")


def load_order(path: Path) -> Order:
    """Read an order document. Exits with code 2 on any error."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return Order.from_dict(data or {})
    except (OSError, yaml.YAMLError, PeertradeError) as exc:
        _fail(f"cannot load order {path}: {exc}")


def _emit(fmt: str, record: dict) -> None:
    if fmt == "json":
        click.echo(canonicalize(record).decode("utf-8"))
        return
    for key, value in record.items():
        click.echo(f"{key:<10} {value}")


@click.command("claim")
@click.argument("order_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@instance_options
@_format_option
def claim_command(order_file: Path, config_path, instance, fmt: str) -> None:
    """Print the claim a sender must sign for ORDER_FILE."""
    order = load_order(order_file)
    claim = claim_for_order(_resolve_instance(config_path, instance), order)
    if fmt == "json":
        _emit(fmt, {"claim": claim})
    else:
        click.echo(claim)


@click.command("sign")
@click.argument("order_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--key", "key_path", required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="PEM private key of the order's sender.",
)
@instance_options
@_format_option
def sign_command(order_file: Path, key_path: Path, config_path, instance, fmt: str) -> None:
    """Sign the claim of ORDER_FILE with the sender's key."""
    order = load_order(order_file)
    claim = claim_for_order(_resolve_instance(config_path, instance), order)
    try:
        key = Secp256k1KeyManager.from_file(key_path)
    except ValueError as exc:
        _fail(str(exc))
    if key.identity != order.from_:
        _fail(f"key identity {key.identity} is not the order sender {order.from_}")

    signature = key.sign_claim(claim)
    _emit(fmt, {
        "claim":     claim,
        "signer":    key.identity,
        "signature": signature.to_hex(),
        "v":         signature.v,
        "r":         "0x%064x" % signature.r,
        "s":         "0x%064x" % signature.s,
    })


@click.command("verify")
@click.argument("order_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("signature")
@instance_options
@_format_option
@click.option("--quiet", "-q", is_flag=True, help="Exit code only.")
def verify_command(
    order_file: Path, signature: str, config_path, instance, fmt: str, quiet: bool
) -> None:
    """Check that SIGNATURE authorizes ORDER_FILE on behalf of its sender."""
    order = load_order(order_file)
    claim = claim_for_order(_resolve_instance(config_path, instance), order)
    try:
        sig = Signature.from_hex(signature)
    except PeertradeError as exc:
        _fail(str(exc))

    recovered = recover_signer(claim, sig.v, sig.r, sig.s)
    valid = recovered is not None and recovered == order.from_

    if not quiet:
        _emit(fmt, {
            "claim":     claim,
            "from":      order.from_,
            "recovered": recovered,
            "valid":     valid,
        })
    raise SystemExit(0 if valid else 1)
