"""Async client for the operator backend that relays operations to the EntryPoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .base import Provider
from ..config import settings
from ..core.execution.packing import hex_to_bytes
from ..core.execution.userop import AbstractAccountOperation, RelayReceipt

logger = logging.getLogger(__name__)

BUILD_PATH = "/api/userop-builder/build"
SUBMIT_PATH = "/api/userops/submit"
REVOKE_PATH = "/api/userops/revoke-delegator"


class RelayError(Exception):
    """Operator relay error."""
    pass


class RelaySubmissionError(RelayError):
    """Relay answered with a non-success response."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


@dataclass
class RelayBuildResult:
    user_op: AbstractAccountOperation
    user_op_hash: bytes


class OperatorRelayProvider(Provider):
    """Thin wrapper around the operator backend's build/submit/revoke endpoints."""

    name = "relay"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.relay_base_url).rstrip("/")
        self.timeout_s = timeout_s or settings.relay_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "content-type": "application/json",
        }

    async def ready(self) -> bool:
        return bool(self.base_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": "Relay base URL not configured"}
        return {"status": "configured", "baseUrl": self.base_url}

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not await self.ready():
            raise RelayError("Relay provider is not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_s,
                transport=self._transport,
            ) as client:
                response = await client.post(path, json=body, headers=self._headers())
        except httpx.RequestError as exc:
            raise RelayError(f"Relay request to {path} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {"error": response.text}

        if response.is_error:
            message = payload.get("error") if isinstance(payload, dict) else None
            raise RelaySubmissionError(
                message or f"Relay returned HTTP {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )
        if not isinstance(payload, dict):
            raise RelayError(f"Invalid relay response for {path}")
        return payload

    async def build(self, sender: str, call_data: str) -> RelayBuildResult:
        payload = await self._post(BUILD_PATH, {"senderAddress": sender, "callData": call_data})
        user_op_hash = payload.get("userOpHash")
        user_op = payload.get("userOp")
        if not user_op_hash or not isinstance(user_op, dict):
            raise RelaySubmissionError("Relay build returned no operation hash", payload=payload)
        return RelayBuildResult(
            user_op=AbstractAccountOperation.from_rpc_dict(user_op),
            user_op_hash=hex_to_bytes(user_op_hash),
        )

    async def submit(self, op: AbstractAccountOperation, entry_point: str) -> RelayReceipt:
        logger.info(f"Submitting operation for {op.sender[:10]}... nonce={op.nonce}")
        payload = await self._post(
            SUBMIT_PATH,
            {"userOp": op.to_rpc_dict(), "entryPointAddress": entry_point},
        )
        return self._receipt(payload, "submit")

    async def revoke(self, op: AbstractAccountOperation, entry_point: str) -> RelayReceipt:
        logger.info(f"Submitting revocation for {op.sender[:10]}... nonce={op.nonce}")
        payload = await self._post(
            REVOKE_PATH,
            {"userOp": op.to_rpc_dict(), "entryPointAddress": entry_point},
        )
        receipt = self._receipt(payload, "revoke")
        receipt.is_revoked = bool(payload.get("isRevoked"))
        return receipt

    @staticmethod
    def _receipt(payload: Dict[str, Any], action: str) -> RelayReceipt:
        if not payload.get("success"):
            raise RelaySubmissionError(
                payload.get("error") or f"Relay {action} was not successful",
                payload=payload,
            )
        block_number = payload.get("blockNumber")
        return RelayReceipt(
            success=True,
            tx_hash=payload.get("txHash"),
            block_number=int(block_number) if block_number is not None else None,
        )
