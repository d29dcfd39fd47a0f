"""
Explicit service context.

Built once at startup and handed to every component that needs chain
access, the relay or signing. Several contexts can coexist (one per
account or per test) because nothing here is a module-level singleton.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from .config import GasDefaults, Settings, settings as default_settings
from .core.execution.nonce_manager import AccountLocks
from .core.execution.operation_builder import OperationBuilder
from .core.execution.signing import SigningService
from .providers.base import ChainReader, HashOracle
from .providers.entrypoint import EntryPointClient, LocalHashOracle
from .providers.relay import OperatorRelayProvider

logger = logging.getLogger(__name__)


@dataclass
class WalletContext:
    settings: Settings
    chain: ChainReader
    hash_oracle: HashOracle
    relay: OperatorRelayProvider
    gas_defaults: GasDefaults
    locks: AccountLocks = field(default_factory=AccountLocks)
    builder: Optional[OperationBuilder] = None
    signer: Optional[SigningService] = None

    def __post_init__(self) -> None:
        if self.builder is None:
            self.builder = OperationBuilder(
                gas_defaults=self.gas_defaults,
                paymaster_address=self.settings.paymaster_address or None,
                chain=self.chain,
            )
        if self.signer is None:
            self.signer = SigningService(self.hash_oracle)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        local_hash: bool = False,
    ) -> "WalletContext":
        """
        Wire the default providers.

        With ``local_hash`` the operation hash is computed in-process
        instead of asking the EntryPoint.
        """
        settings = settings or default_settings
        chain = EntryPointClient(
            rpc_url=settings.rpc_url,
            entry_point=settings.entry_point_address,
            timeout_s=settings.rpc_timeout_seconds,
        )
        hash_oracle: HashOracle = chain
        if local_hash:
            hash_oracle = LocalHashOracle(settings.entry_point_address, settings.chain_id)

        logger.info(
            f"Wallet context for chain {settings.chain_id}, "
            f"EntryPoint {settings.entry_point_address}"
        )
        if not settings.has_relay:
            logger.warning("No relay base URL configured; actions cannot be submitted")
        return cls(
            settings=settings,
            chain=chain,
            hash_oracle=hash_oracle,
            relay=OperatorRelayProvider(
                base_url=settings.relay_base_url,
                timeout_s=settings.relay_timeout_seconds,
            ),
            gas_defaults=settings.gas_defaults(),
        )

    @property
    def token_address(self) -> str:
        return self.settings.token_address

    @property
    def fee_recipient(self) -> str:
        """The paymaster sponsors gas and is paid the relayer fee."""
        return self.settings.paymaster_address

    @property
    def entry_point(self) -> str:
        return self.settings.entry_point_address

    async def relayer_fee(self) -> int:
        if not self.settings.paymaster_address:
            return self.settings.default_fee_amount
        return await self.chain.get_required_fee(self.settings.paymaster_address)
