import httpx
import pytest
import respx

from flow_ix.errors import NodeError
from flow_ix.rpc.http import NodeClient

from .helpers import ADDR_A, NODE, REF


def _keys(*pairs):
    return {"address": ADDR_A, "keys": [{"index": str(i), "sequence_number": str(s)} for i, s in pairs]}


@pytest.mark.asyncio
@respx.mock
async def test_latest_block_id_is_normalized(config):
    route = respx.get(f"{NODE}/v1/blocks").mock(
        return_value=httpx.Response(200, json=[{"header": {"id": "0x" + REF.upper()}}])
    )
    async with NodeClient(config) as node:
        assert await node.get_latest_block_id() == REF
    assert route.calls.last.request.url.params["height"] == "sealed"


@pytest.mark.asyncio
@respx.mock
async def test_sequence_number_for_key(config):
    route = respx.get(f"{NODE}/v1/accounts/{ADDR_A}").mock(return_value=httpx.Response(200, json=_keys((0, 5), (2, 9))))
    async with NodeClient(config) as node:
        assert await node.get_sequence_number("0x" + ADDR_A, 2) == 9
        with pytest.raises(NodeError, match="has no key 1"):
            await node.get_sequence_number(ADDR_A, 1)
    assert route.calls.last.request.url.params["expand"] == "keys"


@pytest.mark.asyncio
@respx.mock
async def test_reads_retry_transient_failures(config):
    route = respx.get(f"{NODE}/v1/blocks").mock(
        side_effect=[
            httpx.Response(503),
            httpx.ConnectError("refused"),
            httpx.Response(200, json=[{"header": {"id": REF}}]),
        ]
    )
    async with NodeClient(config) as node:
        assert await node.get_latest_block_id() == REF
    assert route.call_count == 3


@pytest.mark.asyncio
@respx.mock
async def test_retries_are_bounded(config):
    route = respx.get(f"{NODE}/v1/blocks").mock(return_value=httpx.Response(503, text="busy"))
    async with NodeClient(config) as node:
        with pytest.raises(NodeError) as exc:
            await node.get_latest_block_id()
    assert route.call_count == 1 + config.max_retries
    assert exc.value.http_status == 503
    assert exc.value.data == "busy"


@pytest.mark.asyncio
@respx.mock
async def test_submission_is_never_retried(config):
    route = respx.post(f"{NODE}/v1/transactions").mock(return_value=httpx.Response(503))
    async with NodeClient(config) as node:
        with pytest.raises(NodeError, match="HTTP 503"):
            await node.send_transaction({"script": ""})
    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_client_errors_and_bad_bodies(config):
    respx.get(f"{NODE}/v1/accounts/{ADDR_A}").mock(return_value=httpx.Response(404, json={"message": "not found"}))
    respx.get(f"{NODE}/v1/blocks").mock(return_value=httpx.Response(200, json=[{"header": {}}]))
    async with NodeClient(config) as node:
        with pytest.raises(NodeError) as exc:
            await node.get_account_keys(ADDR_A)
        assert exc.value.http_status == 404
        with pytest.raises(NodeError, match="malformed block response"):
            await node.get_latest_block_id()


@pytest.mark.asyncio
@respx.mock
async def test_injected_client_is_left_open(config):
    respx.get(f"{NODE}/v1/blocks").mock(return_value=httpx.Response(200, json=[{"header": {"id": REF}}]))
    async with httpx.AsyncClient(base_url=NODE) as shared:
        async with NodeClient(config, client=shared) as node:
            await node.get_latest_block_id()
        assert not shared.is_closed
