"""
Tests for the EntryPoint JSON-RPC client.
"""

import json

import httpx
import pytest
from eth_abi import encode

from sicbo_wallet.config import ENTRYPOINT_V07
from sicbo_wallet.core.execution.operation_builder import OperationBuilder
from sicbo_wallet.core.execution.packing import hex_to_bytes, to_hex
from sicbo_wallet.core.execution.userop import compute_operation_hash
from sicbo_wallet.providers.entrypoint import (
    BALANCE_OF_SELECTOR,
    GET_NONCE_SELECTOR,
    GET_USER_OP_HASH_SELECTOR,
    REQUIRED_FEE_SELECTOR,
    BalanceFetchError,
    ChainReadError,
    EntryPointClient,
    LocalHashOracle,
)

from conftest import ACCOUNT, PAYMASTER, TOKEN

RPC_URL = "http://rpc.test"


def _client(results, requests=None):
    """EntryPointClient whose node answers eth_call by selector."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if requests is not None:
            requests.append(body)
        method = body["method"]
        if method == "eth_call":
            selector = hex_to_bytes(body["params"][0]["data"])[:4]
            result = results.get(selector)
        else:
            result = results.get(method)
        if isinstance(result, dict):
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": result})
        if isinstance(result, int):
            return httpx.Response(result, json={})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EntryPointClient(rpc_url=RPC_URL, entry_point=ENTRYPOINT_V07, client=http)


@pytest.mark.asyncio
async def test_get_operation_hash_calls_entry_point() -> None:
    op_hash = b"\x42" * 32
    requests = []
    client = _client({GET_USER_OP_HASH_SELECTOR: to_hex(op_hash)}, requests)
    op = OperationBuilder(paymaster_address=PAYMASTER).build(ACCOUNT, 5, "0x1234")

    assert await client.get_operation_hash(op) == op_hash

    call = requests[0]["params"][0]
    assert call["to"].lower() == ENTRYPOINT_V07.lower()
    assert call["data"].startswith(to_hex(GET_USER_OP_HASH_SELECTOR))


@pytest.mark.asyncio
async def test_get_operation_hash_rejects_short_result() -> None:
    client = _client({GET_USER_OP_HASH_SELECTOR: "0x1234"})
    op = OperationBuilder().build(ACCOUNT, 0, "0x")

    with pytest.raises(ChainReadError):
        await client.get_operation_hash(op)


@pytest.mark.asyncio
async def test_get_nonce_decodes_uint() -> None:
    requests = []
    client = _client({GET_NONCE_SELECTOR: to_hex(encode(["uint256"], [5]))}, requests)

    assert await client.get_nonce(ACCOUNT) == 5
    assert requests[0]["id"] == 1


@pytest.mark.asyncio
async def test_is_deployed_checks_code() -> None:
    assert await _client({"eth_getCode": "0x6080"}).is_deployed(ACCOUNT)
    assert not await _client({"eth_getCode": "0x"}).is_deployed(ACCOUNT)


@pytest.mark.asyncio
async def test_token_balance_and_required_fee() -> None:
    client = _client({
        BALANCE_OF_SELECTOR: to_hex(encode(["uint256"], [1_000])),
        REQUIRED_FEE_SELECTOR: to_hex(encode(["uint256"], [3])),
    })

    assert await client.get_token_balance(TOKEN, ACCOUNT) == 1_000
    assert await client.get_required_fee(PAYMASTER) == 3


@pytest.mark.asyncio
async def test_balance_errors_are_typed() -> None:
    client = _client({BALANCE_OF_SELECTOR: {"code": -32000, "message": "execution reverted"}})

    with pytest.raises(BalanceFetchError):
        await client.get_token_balance(TOKEN, ACCOUNT)


@pytest.mark.asyncio
async def test_empty_call_result_is_a_typed_error() -> None:
    client = _client({BALANCE_OF_SELECTOR: "0x", REQUIRED_FEE_SELECTOR: "0x", GET_NONCE_SELECTOR: "0x"})

    with pytest.raises(BalanceFetchError):
        await client.get_token_balance(TOKEN, ACCOUNT)
    with pytest.raises(ChainReadError, match="requiredFee"):
        await client.get_required_fee(PAYMASTER)
    with pytest.raises(ChainReadError, match="getNonce"):
        await client.get_nonce(ACCOUNT)


@pytest.mark.asyncio
async def test_rpc_and_http_errors_raise_chain_read_error() -> None:
    with pytest.raises(ChainReadError, match="RPC error"):
        await _client({GET_NONCE_SELECTOR: {"code": -32000, "message": "boom"}}).get_nonce(ACCOUNT)
    with pytest.raises(ChainReadError):
        await _client({"eth_getCode": 502}).get_code(ACCOUNT)


@pytest.mark.asyncio
async def test_health_check_reports_chain_id() -> None:
    health = await _client({"eth_chainId": "0x14a34"}).health_check()

    assert health == {"status": "healthy", "chainId": "0x14a34"}


@pytest.mark.asyncio
async def test_local_hash_oracle_matches_compute() -> None:
    op = OperationBuilder().build(ACCOUNT, 1, "0xabcd")
    oracle = LocalHashOracle(ENTRYPOINT_V07, 84532)

    assert await oracle.get_operation_hash(op) == compute_operation_hash(op, ENTRYPOINT_V07, 84532)
