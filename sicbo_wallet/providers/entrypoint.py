"""
EntryPoint / chain JSON-RPC client.

Serves as the hash oracle (``getUserOpHash``), the nonce source
(``getNonce``), the deployment check (``eth_getCode``) and the token
balance / paymaster fee reader.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_checksum_address

from .base import ChainReader, HashOracle, Provider
from ..config import settings
from ..core.execution.packing import hex_to_bytes, to_hex
from ..core.execution.userop import (
    PACKED_USER_OPERATION_TYPE,
    AbstractAccountOperation,
    compute_operation_hash,
)

logger = logging.getLogger(__name__)

GET_USER_OP_HASH_SELECTOR = keccak(text=f"getUserOpHash({PACKED_USER_OPERATION_TYPE})")[:4]
GET_NONCE_SELECTOR = keccak(text="getNonce(address,uint192)")[:4]
BALANCE_OF_SELECTOR = keccak(text="balanceOf(address)")[:4]
REQUIRED_FEE_SELECTOR = keccak(text="requiredFee()")[:4]


class ChainReadError(Exception):
    """Chain JSON-RPC read failed."""
    pass


class BalanceFetchError(ChainReadError):
    """Token balance could not be read."""
    pass


def _decode_uint256(result: bytes, call: str) -> int:
    try:
        (value,) = decode(["uint256"], result)
    except DecodingError as exc:
        raise ChainReadError(f"{call} returned undecodable data {to_hex(result)}") from exc
    return value


class EntryPointClient(Provider, HashOracle, ChainReader):
    name = "entrypoint"
    timeout_s = 30

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        entry_point: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: Optional[int] = None,
    ) -> None:
        self.rpc_url = rpc_url or settings.rpc_url
        self.entry_point = entry_point or settings.entry_point_address
        self.timeout_s = timeout_s or settings.rpc_timeout_seconds
        self._client = client
        self._request_id = 0

    async def ready(self) -> bool:
        return bool(self.rpc_url and self.entry_point)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": "RPC or EntryPoint not configured"}

        try:
            result = await self._rpc_call("eth_chainId", [])
            return {"status": "healthy", "chainId": result}
        except Exception as exc:
            return {"status": "error", "reason": str(exc)}

    async def get_operation_hash(self, op: AbstractAccountOperation) -> bytes:
        data = GET_USER_OP_HASH_SELECTOR + encode([PACKED_USER_OPERATION_TYPE], [op.to_abi_tuple()])
        result = await self._eth_call(self.entry_point, data)
        if len(result) != 32:
            raise ChainReadError(f"getUserOpHash returned {len(result)} bytes, expected 32")
        return result

    async def get_nonce(self, sender: str, key: int = 0) -> int:
        data = GET_NONCE_SELECTOR + encode(["address", "uint192"], [to_checksum_address(sender), key])
        nonce = _decode_uint256(await self._eth_call(self.entry_point, data), "getNonce")
        logger.info(f"Current nonce for {sender[:10]}...: {nonce}")
        return nonce

    async def get_code(self, address: str) -> bytes:
        result = await self._rpc_call("eth_getCode", [to_checksum_address(address), "latest"])
        return hex_to_bytes(result or "0x")

    async def get_token_balance(self, token: str, holder: str) -> int:
        data = BALANCE_OF_SELECTOR + encode(["address"], [to_checksum_address(holder)])
        try:
            balance = _decode_uint256(await self._eth_call(token, data), "balanceOf")
        except (ChainReadError, httpx.HTTPError) as exc:
            raise BalanceFetchError(f"Could not read balance of {holder}: {exc}") from exc
        return balance

    async def get_required_fee(self, paymaster: str) -> int:
        return _decode_uint256(await self._eth_call(paymaster, REQUIRED_FEE_SELECTOR), "requiredFee")

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _eth_call(self, to: str, data: bytes) -> bytes:
        result = await self._rpc_call(
            "eth_call",
            [{"to": to_checksum_address(to), "data": to_hex(data)}, "latest"],
        )
        if not isinstance(result, str):
            raise ChainReadError("Invalid eth_call response")
        return hex_to_bytes(result)

    async def _rpc_call(self, method: str, params: list[Any]) -> Any:
        if not self._client or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)

        self._request_id += 1
        try:
            response = await self._client.post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ChainReadError(f"{method} failed: {exc}") from exc

        payload = response.json()
        if "error" in payload:
            raise ChainReadError(f"RPC error: {payload['error']}")
        return payload.get("result")


class LocalHashOracle(HashOracle):
    """Computes the v0.7 operation hash without a network round trip."""

    def __init__(self, entry_point: Optional[str] = None, chain_id: Optional[int] = None) -> None:
        self.entry_point = entry_point or settings.entry_point_address
        self.chain_id = chain_id if chain_id is not None else settings.chain_id

    async def get_operation_hash(self, op: AbstractAccountOperation) -> bytes:
        return compute_operation_hash(op, self.entry_point, self.chain_id)
