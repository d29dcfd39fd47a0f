"""
Assembles abstract-account operations from call data and gas defaults.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ...config import GasDefaults
from .packing import pack_paymaster_and_data, pack_uint128_pair, to_hex
from .userop import EMPTY_BYTES, PLACEHOLDER_SIGNATURE, AbstractAccountOperation

if TYPE_CHECKING:
    from ...providers.base import ChainReader

logger = logging.getLogger(__name__)


class OperationBuildError(Exception):
    """Operation could not be built."""
    pass


class AccountNotDeployedError(OperationBuildError):
    """The sender has no code; this core never builds initCode."""
    pass


class OperationBuilder:
    """
    Builds fully populated operations with an empty signature.

    Gas values come from ``GasDefaults``; there is no estimation here.
    """

    def __init__(
        self,
        gas_defaults: Optional[GasDefaults] = None,
        paymaster_address: Optional[str] = None,
        chain: Optional["ChainReader"] = None,
    ) -> None:
        self.gas_defaults = gas_defaults or GasDefaults()
        self.paymaster_address = paymaster_address
        self.chain = chain

    def build(
        self,
        sender: str,
        nonce: int,
        call_data: str,
        gas: Optional[GasDefaults] = None,
        deployed: bool = True,
    ) -> AbstractAccountOperation:
        if not deployed:
            raise AccountNotDeployedError(f"Account {sender} is not deployed")
        if nonce < 0:
            raise OperationBuildError("Nonce must be non-negative")

        gas = gas or self.gas_defaults
        paymaster_and_data = EMPTY_BYTES
        if self.paymaster_address:
            paymaster_and_data = to_hex(
                pack_paymaster_and_data(
                    self.paymaster_address,
                    gas.paymaster_verification_gas_limit,
                    gas.paymaster_post_op_gas_limit,
                )
            )

        return AbstractAccountOperation(
            sender=sender,
            nonce=nonce,
            init_code=EMPTY_BYTES,
            call_data=call_data,
            account_gas_limits=to_hex(
                pack_uint128_pair(gas.verification_gas_limit, gas.call_gas_limit)
            ),
            pre_verification_gas=gas.pre_verification_gas,
            gas_fees=to_hex(
                pack_uint128_pair(gas.max_priority_fee_per_gas, gas.max_fee_per_gas)
            ),
            paymaster_and_data=paymaster_and_data,
            signature=PLACEHOLDER_SIGNATURE,
        )

    async def prepare(
        self,
        sender: str,
        call_data: str,
        gas: Optional[GasDefaults] = None,
    ) -> AbstractAccountOperation:
        """Check deployment, fetch a fresh nonce, then build."""
        if self.chain is None:
            raise OperationBuildError("A chain reader is required to prepare operations")

        deployed = await self.chain.is_deployed(sender)
        if not deployed:
            raise AccountNotDeployedError(f"Account {sender} is not deployed")

        nonce = await self.chain.get_nonce(sender)
        return self.build(sender, nonce, call_data, gas=gas, deployed=True)
