from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import httpx
import pytest
import respx
from typer.testing import CliRunner

from flow_ix.cli import main as cli
from flow_ix.version import __version__

from .helpers import ADDR_A, HELLO, NODE, REF

runner = CliRunner()

KEY = "1f" * 32


@pytest.fixture(autouse=True)
def _restore_logging():
    logger = logging.getLogger("flow_ix")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def script(tmp_path: Path) -> Path:
    path = tmp_path / "hello.cdc"
    path.write_text(HELLO, encoding="utf-8")
    return path


def _common(script: Path) -> list[str]:
    return [str(script), "--arg", "String=hello", "--address", ADDR_A, "--key", KEY]


def test_version() -> None:
    result = runner.invoke(cli.app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output
    assert cli.main(["version"]) == 0


@respx.mock
def test_block_uses_node_option() -> None:
    route = respx.get(f"{NODE}/v1/blocks").mock(return_value=httpx.Response(200, json=[{"header": {"id": REF}}]))
    result = runner.invoke(cli.app, ["--node", NODE, "block"])
    assert result.exit_code == 0
    assert json.loads(result.output) == {"id": REF, "node": NODE}
    assert route.called


@respx.mock
def test_block_reads_node_from_env(monkeypatch: Any) -> None:
    monkeypatch.setenv("FLOW_IX_NODE", NODE)
    monkeypatch.setenv("FLOW_IX_MAX_RETRIES", "0")
    respx.get(f"{NODE}/v1/blocks").mock(return_value=httpx.Response(500))
    result = runner.invoke(cli.app, ["block"])
    assert result.exit_code == 1


def test_encode_prints_signed_envelope(script: Path) -> None:
    with respx.mock(assert_all_called=False) as mock:
        route = mock.route()
        result = runner.invoke(cli.app, ["--node", NODE, "encode", *_common(script), "--ref", REF, "--seq", "7"])
    assert result.exit_code == 0, result.output
    assert not route.called
    data = json.loads(result.output)
    assert len(data["id"]) == 64
    env = data["envelope"]
    assert env["script"] == HELLO
    assert env["arguments"] == ['{"type":"String","value":"hello"}']
    assert env["proposalKey"] == {"address": "0x" + ADDR_A, "keyId": 0, "sequenceNumber": 7}
    assert len(env["payloadSignatures"]) == 1
    assert len(env["envelopeSignatures"]) == 1


@respx.mock
def test_send_resolves_from_the_node(script: Path) -> None:
    respx.get(f"{NODE}/v1/blocks").mock(return_value=httpx.Response(200, json=[{"header": {"id": REF}}]))
    respx.get(f"{NODE}/v1/accounts/{ADDR_A}").mock(
        return_value=httpx.Response(200, json={"keys": [{"index": "0", "sequence_number": "3"}]})
    )
    post = respx.post(f"{NODE}/v1/transactions").mock(return_value=httpx.Response(200, json={"id": "cd" * 32}))
    result = runner.invoke(cli.app, ["--node", NODE, "send", *_common(script)])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"id": "cd" * 32}
    body = json.loads(post.calls.last.request.content)
    assert body["proposal_key"]["sequence_number"] == "3"
    assert body["reference_block_id"] == REF


@pytest.mark.parametrize("bad", ["hello", "Nope=1", "Bool=yes"])
def test_bad_argument_is_a_usage_error(script: Path, bad: str) -> None:
    args = [str(script), "--arg", bad, "--address", ADDR_A, "--key", KEY, "--ref", REF, "--seq", "0"]
    result = runner.invoke(cli.app, ["encode", *args])
    assert result.exit_code == 2


def test_resolution_failure_exits_with_one(script: Path) -> None:
    args = [str(script), "--arg", "Int=5", "--address", ADDR_A, "--key", KEY, "--ref", REF, "--seq", "0"]
    result = runner.invoke(cli.app, ["encode", *args])
    assert result.exit_code == 1


def test_parse_arg() -> None:
    assert cli.parse_arg("UFix64=1.5").value == "1.5"
    assert cli.parse_arg("[UInt8]=[1,2]").value == [1, 2]
    assert cli.parse_arg("Bool=true").value is True


def test_main_reports_failure_exit_codes(script: Path) -> None:
    pinned = ["--address", ADDR_A, "--key", KEY, "--ref", REF, "--seq", "0"]
    assert cli.main(["encode", str(script), "--arg", "Int=5", *pinned]) == 1
    assert cli.main(["encode", str(script), "--arg", "hello", *pinned]) == 2
    assert cli.main(["encode", str(script), "--arg", "String=hi", *pinned]) == 0
