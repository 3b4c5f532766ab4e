"""
flow_ix.cli.main
================

`flow-ix`: build, resolve, sign and send transactions against an access node
from the command line.

Examples
--------
    $ flow-ix version
    $ flow-ix --node http://127.0.0.1:8888 block
    $ flow-ix encode tx.cdc --arg 'String=hello' --address f8d6e0586b0a20c7 \\
          --key $FLOW_IX_PRIVATE_KEY --ref 7bc42f... --seq 12
    $ flow-ix send tx.cdc --arg 'String=hello' --address f8d6e0586b0a20c7 --key ...

Arguments are given as `TYPE=VALUE`. String-like and numeric values are taken
verbatim; Bool, Optional, array and dictionary values are parsed as JSON
(`--arg 'Bool=true'`, `--arg '[UInt8]=[1,2,3]'`).

Configuration
-------------
- Node URL     : `--node` or env `FLOW_IX_NODE` (default: http://127.0.0.1:8888)
- HTTP Timeout : `--timeout` or env `FLOW_IX_TIMEOUT` seconds (default: 10.0)
- Private key  : `--key` or env `FLOW_IX_PRIVATE_KEY` (hex, 32 bytes)
- Log format   : `--log-json/--log-text` or env `FLOW_IX_LOG_FORMAT`
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

import typer

from .. import build as b
from .. import logging as ixlog
from .. import resolve as r
from ..config import Config
from ..encode import transaction_id, wire_envelope
from ..errors import FlowIxError, NodeError
from ..interaction import Argument, Interaction
from ..pipe import pipe
from ..rpc.http import NodeClient
from ..send import send as send_ix
from ..types import SCALARS, type_tag
from ..version import version_info
from ..wallet.signer import InMemorySigner

app = typer.Typer(
    name="flow-ix",
    help="Build, resolve, sign and send transactions.",
    no_args_is_help=True,
    add_completion=False,
)

__all__ = ["app", "main", "run"]

_VERBATIM = frozenset(name for name in SCALARS if name not in ("Bool", "Void"))


def _print_json(obj: Any) -> None:
    typer.echo(json.dumps(obj, indent=2, ensure_ascii=False))


def _config(ctx: typer.Context) -> Config:
    return ctx.obj


@app.callback()
def _root(
    ctx: typer.Context,
    node: Optional[str] = typer.Option(None, "--node", help="Access node base URL.", envvar="FLOW_IX_NODE"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="HTTP timeout in seconds.", envvar="FLOW_IX_TIMEOUT"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level."),
    log_json: Optional[bool] = typer.Option(None, "--log-json/--log-text", help="Log format (default: env/TTY)."),
) -> None:
    """Set the effective configuration for this CLI process."""
    ixlog.configure(json=log_json, level=log_level)
    try:
        ctx.obj = Config.with_overrides(Config.from_env(), node=node, timeout_s=timeout)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


# --- Helpers ------------------------------------------------------------------


def parse_arg(text: str) -> Argument:
    """`TYPE=VALUE` → Argument."""
    tag_text, sep, raw = text.partition("=")
    if not sep:
        raise typer.BadParameter(f"expected TYPE=VALUE, got {text!r}")
    try:
        tag = type_tag(tag_text)
    except FlowIxError as e:
        raise typer.BadParameter(e.message) from e
    if tag.name in _VERBATIM:
        value: Any = raw
    else:
        try:
            value = json.loads(raw)
        except ValueError as e:
            raise typer.BadParameter(f"{tag.name} value must be JSON: {e}") from e
    return b.arg(value, tag)


def _signer(key: Optional[str]) -> InMemorySigner:
    if not key:
        raise typer.BadParameter("a private key is required (--key or FLOW_IX_PRIVATE_KEY)")
    try:
        return InMemorySigner.from_hex(key)
    except ValueError as e:
        raise typer.BadParameter(f"invalid private key: {e}") from e


def _build(
    script: Path,
    args: List[str],
    address: str,
    key: Optional[str],
    key_id: int,
    ref: Optional[str],
    seq: Optional[int],
    limit: Optional[int],
) -> Interaction:
    authz = _signer(key).authorization(address, key_id=key_id, sequence_number=seq)
    builders = [
        b.transaction(script.read_text(encoding="utf-8")),
        b.args([parse_arg(a) for a in args]),
        b.proposer(authz),
        b.payer(authz),
        b.authorizations([authz]),
    ]
    if ref:
        builders.append(b.ref(ref))
    if limit is not None:
        builders.append(b.limit(limit))
    return b.build(builders)


def _resolvers(cfg: Config) -> List[Any]:
    return [
        r.resolve_ref_block_id(cfg),
        r.resolve_accounts,
        r.resolve_proposer_sequence_number(cfg),
        r.resolve_params,
        r.resolve_arguments,
        r.resolve_validators,
        r.resolve_signatures,
    ]


def _fail(e: FlowIxError) -> None:
    typer.echo(f"error: {e}", err=True)
    raise typer.Exit(code=1)


_SCRIPT = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Transaction script file.")
_ARGS = typer.Option([], "--arg", "-a", help="Argument as TYPE=VALUE (repeatable).")
_ADDRESS = typer.Option(..., "--address", help="Account used as proposer, payer and authorizer.")
_KEY = typer.Option(None, "--key", help="Hex private key (ECDSA_P256, SHA3_256).", envvar="FLOW_IX_PRIVATE_KEY")
_KEY_ID = typer.Option(0, "--key-id", help="Account key index.")
_LIMIT = typer.Option(None, "--limit", help="Compute limit (default from config).")


# --- Commands -----------------------------------------------------------------


@app.command("version")
def version() -> None:
    """Print the CLI version."""
    typer.echo(f"flow-ix {version_info()}")


@app.command("block")
def block(ctx: typer.Context) -> None:
    """Print the id of the latest sealed block."""
    cfg = _config(ctx)

    async def _latest() -> str:
        async with NodeClient(cfg) as node:
            return await node.get_latest_block_id()

    try:
        block_id = asyncio.run(_latest())
    except NodeError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1)
    _print_json({"id": block_id, "node": cfg.node})


@app.command("encode")
def encode(
    ctx: typer.Context,
    script: Path = _SCRIPT,
    args: List[str] = _ARGS,
    address: str = _ADDRESS,
    key: Optional[str] = _KEY,
    key_id: int = _KEY_ID,
    ref: str = typer.Option(..., "--ref", help="Reference block id (hex)."),
    seq: int = typer.Option(..., "--seq", help="Proposer key sequence number."),
    limit: Optional[int] = _LIMIT,
) -> None:
    """Build, resolve and sign offline; print the wire envelope and transaction id."""
    cfg = _config(ctx)
    try:
        ix = _build(script, args, address, key, key_id, ref, seq, limit)
        ix = asyncio.run(pipe(ix, [r.resolve(_resolvers(cfg), cfg)]))
    except FlowIxError as e:
        _fail(e)
    _print_json({"id": transaction_id(ix), "envelope": wire_envelope(ix)})


@app.command("send")
def send(
    ctx: typer.Context,
    script: Path = _SCRIPT,
    args: List[str] = _ARGS,
    address: str = _ADDRESS,
    key: Optional[str] = _KEY,
    key_id: int = _KEY_ID,
    ref: Optional[str] = typer.Option(None, "--ref", help="Reference block id (default: latest sealed)."),
    seq: Optional[int] = typer.Option(None, "--seq", help="Sequence number (default: fetched from the node)."),
    limit: Optional[int] = _LIMIT,
) -> None:
    """Build, resolve, sign and send; print the node's raw response."""
    cfg = _config(ctx)

    async def _run(ix: Interaction) -> Any:
        ix = await pipe(ix, [r.resolve(_resolvers(cfg), cfg)])
        return await send_ix(ix, cfg)

    try:
        ix = _build(script, args, address, key, key_id, ref, seq, limit)
        response = asyncio.run(_run(ix))
    except FlowIxError as e:
        _fail(e)
    _print_json(response)


# --- Entrypoints --------------------------------------------------------------


def main(argv: Optional[list[str]] = None) -> int:
    """
    Run the CLI. Returns an integer exit code.
    """
    try:
        # Without standalone mode, click hands back the `typer.Exit` code.
        code = app(prog_name="flow-ix", standalone_mode=False, args=argv)
        return int(code or 0)
    except typer.Exit as e:
        return int(e.exit_code)
    except Exception as e:
        typer.echo(f"error: {e}", err=True)
        return int(getattr(e, "exit_code", 1))


def run(argv: Optional[list[str]] = None) -> int:
    """Alias for :func:`main`."""
    return main(argv)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
