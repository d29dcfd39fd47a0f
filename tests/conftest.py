"""
Shared fixtures: an in-memory chain, a counting hash oracle and a mocked
relay wired into a WalletContext.
"""

import logging
import sys
from typing import Dict, List
from unittest.mock import AsyncMock

import pytest

from sicbo_wallet.config import Settings
from sicbo_wallet.context import WalletContext
from sicbo_wallet.core.execution.userop import AbstractAccountOperation, RelayReceipt
from sicbo_wallet.logging_config import setup_logging
from sicbo_wallet.providers.base import ChainReader, HashOracle
from sicbo_wallet.providers.entrypoint import LocalHashOracle

ACCOUNT = "0x" + "aa" * 20
TOKEN = "0x" + "11" * 20
PAYMASTER = "0x" + "22" * 20
DELEGATOR = "0x" + "33" * 20
HOUSE = "0x" + "44" * 20
NOW = 1_700_000_000


class FakeChain(ChainReader):
    def __init__(self, nonce: int = 5, fee: int = 3, deployed: bool = True):
        self.nonce = nonce
        self.fee = fee
        self.code = b"\x60\x80" if deployed else b""
        self.balances: Dict[str, int] = {}
        self.calls: List[str] = []

    async def get_nonce(self, sender: str, key: int = 0) -> int:
        self.calls.append("get_nonce")
        return self.nonce

    async def get_code(self, address: str) -> bytes:
        self.calls.append("get_code")
        return self.code

    async def get_token_balance(self, token: str, holder: str) -> int:
        self.calls.append("get_token_balance")
        return self.balances.get(holder.lower(), 0)

    async def get_required_fee(self, paymaster: str) -> int:
        self.calls.append("get_required_fee")
        return self.fee


class CountingHashOracle(HashOracle):
    def __init__(self, entry_point: str, chain_id: int):
        self.inner = LocalHashOracle(entry_point, chain_id)
        self.calls = 0
        self.seen: List[AbstractAccountOperation] = []

    async def get_operation_hash(self, op: AbstractAccountOperation) -> bytes:
        self.calls += 1
        self.seen.append(op)
        return await self.inner.get_operation_hash(op)


class Clock:
    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def wallet_settings() -> Settings:
    return Settings(
        token_address=TOKEN,
        paymaster_address=PAYMASTER,
        delegator_address=DELEGATOR,
        relay_base_url="http://relay.test",
        chain_id=84532,
        provisioning_mode="demo",
    )


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def hash_oracle(wallet_settings) -> CountingHashOracle:
    return CountingHashOracle(wallet_settings.entry_point_address, wallet_settings.chain_id)


@pytest.fixture
def relay() -> AsyncMock:
    relay = AsyncMock()
    relay.submit.return_value = RelayReceipt(success=True, tx_hash="0x" + "ab" * 32, block_number=12)
    relay.revoke.return_value = RelayReceipt(success=True, tx_hash="0x" + "cd" * 32, is_revoked=True)
    return relay


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def context(wallet_settings, chain, hash_oracle, relay) -> WalletContext:
    return WalletContext(
        settings=wallet_settings,
        chain=chain,
        hash_oracle=hash_oracle,
        relay=relay,
        gas_defaults=wallet_settings.gas_defaults(),
    )


class _CurrentStdout:
    """Resolve sys.stdout at write time so the handler follows pytest's per-phase capture."""

    def write(self, text: str) -> int:
        return sys.stdout.write(text)

    def flush(self) -> None:
        sys.stdout.flush()


@pytest.fixture
def structured_logs(capsys):
    """Route logging through the structlog pipeline into captured stdout."""
    setup_logging("DEBUG")
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.StreamHandler):
            handler.setStream(_CurrentStdout())
    yield capsys
    logging.getLogger().handlers.clear()
