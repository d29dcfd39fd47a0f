"""
Wallet provisioning strategies.

How the game learns which abstract account it plays for is chosen once at
startup: by asking the host page over the bridge, from URL parameters the
host embedded in the iframe URL, or locally in demo mode.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping, Optional, Union
from urllib.parse import parse_qs, urlparse

from ...config import Settings
from ..bridge.protocol import BridgeProtocol

logger = logging.getLogger(__name__)


class ProvisioningError(Exception):
    """Provisioning could not produce a wallet."""
    pass


@dataclass
class ProvisionedWallet:
    account_address: str
    token_address: str
    tx: Optional[str] = None


class ProvisioningStrategy(ABC):
    name: str

    @abstractmethod
    async def provision(self, owner_address: str) -> ProvisionedWallet:
        """Return the abstract account the new owner key controls"""
        pass


class MessageProvisioning(ProvisioningStrategy):
    """WALLET_CREATED to the host, then wait for WALLET_CONFIRMED."""

    name = "message"

    def __init__(self, bridge: BridgeProtocol, timeout_s: float, default_token: str = ""):
        self.bridge = bridge
        self.timeout_s = timeout_s
        self.default_token = default_token

    async def provision(self, owner_address: str) -> ProvisionedWallet:
        self.bridge.expect_confirmation()
        await self.bridge.send_wallet_created(owner_address)
        logger.info("Waiting for host authorization...")

        confirmation = await self.bridge.wait_for_confirmation(self.timeout_s)
        if not confirmation.abstract_account_address:
            raise ProvisioningError("Host confirmed without an abstract account address")
        return ProvisionedWallet(
            account_address=confirmation.abstract_account_address,
            token_address=confirmation.token_address or self.default_token,
            tx=confirmation.tx,
        )


class UrlParameterProvisioning(ProvisioningStrategy):
    """Addresses handed over in the iframe URL query string."""

    name = "url"
    ACCOUNT_KEYS = ("abstractAccountAddress", "account")
    TOKEN_KEYS = ("tokenAddress", "token")

    def __init__(self, query: Union[str, Mapping[str, str]], default_token: str = ""):
        if isinstance(query, str):
            parsed = parse_qs(urlparse(query).query if "?" in query else query)
            self.params = {key: values[0] for key, values in parsed.items() if values}
        else:
            self.params = dict(query)
        self.default_token = default_token

    def _first(self, keys) -> Optional[str]:
        for key in keys:
            if self.params.get(key):
                return self.params[key]
        return None

    async def provision(self, owner_address: str) -> ProvisionedWallet:
        account = self._first(self.ACCOUNT_KEYS)
        if not account:
            raise ProvisioningError("URL parameters carry no abstract account address")
        token = self._first(self.TOKEN_KEYS) or self.default_token
        return ProvisionedWallet(account_address=account, token_address=token)


class DemoProvisioning(ProvisioningStrategy):
    """No host: the owner address doubles as the account."""

    name = "demo"

    def __init__(self, token_address: str = ""):
        self.token_address = token_address

    async def provision(self, owner_address: str) -> ProvisionedWallet:
        logger.info("DEMO MODE: skipping host confirmation")
        return ProvisionedWallet(account_address=owner_address, token_address=self.token_address)


def strategy_from_settings(
    settings: Settings,
    bridge: Optional[BridgeProtocol] = None,
    query: Union[str, Mapping[str, str], None] = None,
) -> ProvisioningStrategy:
    if settings.is_demo:
        return DemoProvisioning(settings.token_address)
    if settings.provisioning_mode == "url":
        if query is None:
            raise ProvisioningError("URL provisioning needs the iframe query string")
        return UrlParameterProvisioning(query, settings.token_address)
    if bridge is None:
        raise ProvisioningError("Message provisioning needs a bridge")
    return MessageProvisioning(bridge, settings.provisioning_timeout_seconds, settings.token_address)
