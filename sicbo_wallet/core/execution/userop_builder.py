"""
Batched calldata builders for the delegation account.

Every privileged action is encoded as a single ``executeBatch`` call whose
last entry is always the relayer fee transfer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from eth_abi import decode, encode
from eth_utils import keccak, to_checksum_address

from .packing import hex_to_bytes, to_hex

EXECUTE_BATCH_SIGNATURE = "executeBatch((address,uint256,bytes)[])"
TRANSFER_SIGNATURE = "transfer(address,uint256)"
ADD_DELEGATOR_SIGNATURE = "addDelegatorWithExpiry(address,uint256)"
REMOVE_DELEGATOR_SIGNATURE = "removeDelegatorOnBehalfOf(address)"

_BATCH_TYPE = "(address,uint256,bytes)[]"


def selector_from_signature(signature: str) -> bytes:
    return keccak(text=signature)[:4]


EXECUTE_BATCH_SELECTOR = selector_from_signature(EXECUTE_BATCH_SIGNATURE)
TRANSFER_SELECTOR = selector_from_signature(TRANSFER_SIGNATURE)
ADD_DELEGATOR_SELECTOR = selector_from_signature(ADD_DELEGATOR_SIGNATURE)
REMOVE_DELEGATOR_SELECTOR = selector_from_signature(REMOVE_DELEGATOR_SIGNATURE)


@dataclass(frozen=True)
class Call:
    """One entry of an executeBatch call."""
    target: str
    value: int
    data: bytes

    @property
    def selector(self) -> bytes:
        return self.data[:4]

    def as_abi_tuple(self) -> tuple:
        if self.value < 0:
            raise ValueError("Value must be non-negative")
        return (to_checksum_address(self.target), self.value, self.data)


def encode_token_transfer(recipient: str, amount: int) -> bytes:
    if amount < 0:
        raise ValueError("Transfer amount must be non-negative")
    return TRANSFER_SELECTOR + encode(
        ["address", "uint256"], [to_checksum_address(recipient), amount]
    )


def decode_token_transfer(data: bytes) -> tuple[str, int]:
    if data[:4] != TRANSFER_SELECTOR:
        raise ValueError("Call data is not an ERC-20 transfer")
    recipient, amount = decode(["address", "uint256"], data[4:])
    return recipient, amount


def encode_add_delegator(session_address: str, valid_until: int) -> bytes:
    return ADD_DELEGATOR_SELECTOR + encode(
        ["address", "uint256"], [to_checksum_address(session_address), valid_until]
    )


def encode_remove_delegator(session_address: str) -> bytes:
    return REMOVE_DELEGATOR_SELECTOR + encode(
        ["address"], [to_checksum_address(session_address)]
    )


def fee_call(fee_token: str, fee_recipient: str, fee_amount: int) -> Call:
    return Call(target=fee_token, value=0, data=encode_token_transfer(fee_recipient, fee_amount))


def compose_batch(
    action_calls: Sequence[Call],
    fee_recipient: str,
    fee_amount: int,
    fee_token: str,
) -> str:
    """
    Append the relayer fee transfer and encode the whole list as
    executeBatch calldata.
    """
    calls: List[Call] = list(action_calls)
    calls.append(fee_call(fee_token, fee_recipient, fee_amount))
    encoded = encode([_BATCH_TYPE], [[c.as_abi_tuple() for c in calls]])
    return to_hex(EXECUTE_BATCH_SELECTOR + encoded)


def decode_batch(call_data: str) -> List[Call]:
    raw = hex_to_bytes(call_data)
    if raw[:4] != EXECUTE_BATCH_SELECTOR:
        raise ValueError("Call data is not an executeBatch call")
    (entries,) = decode([_BATCH_TYPE], raw[4:])
    return [Call(target=target, value=value, data=bytes(data)) for target, value, data in entries]


def compose_token_transfer(
    token: str,
    recipient: str,
    amount: int,
    fee_recipient: str,
    fee_amount: int,
) -> str:
    transfer = Call(target=token, value=0, data=encode_token_transfer(recipient, amount))
    return compose_batch([transfer], fee_recipient, fee_amount, token)


def compose_bet_settlement(
    token: str,
    house: str,
    stake: int,
    fee_recipient: str,
    fee_amount: int,
) -> str:
    """Stake goes to the house, then the fee goes to the relayer."""
    return compose_token_transfer(token, house, stake, fee_recipient, fee_amount)


def compose_delegation_grant(
    delegator: str,
    session_address: str,
    valid_until: int,
    token: str,
    fee_recipient: str,
    fee_amount: int,
) -> str:
    grant = Call(target=delegator, value=0, data=encode_add_delegator(session_address, valid_until))
    return compose_batch([grant], fee_recipient, fee_amount, token)


def compose_delegation_revoke(
    delegator: str,
    session_address: str,
    token: str,
    fee_recipient: str,
    fee_amount: int,
) -> str:
    revoke = Call(target=delegator, value=0, data=encode_remove_delegator(session_address))
    return compose_batch([revoke], fee_recipient, fee_amount, token)
