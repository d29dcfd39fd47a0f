"""
Operation Execution Module

Packs, composes, builds and signs ERC-4337 v0.7 operations for an
abstract account, and serializes submissions per account.
"""

from .nonce_manager import AccountLocks, NonceState, StaleNonceError
from .operation_builder import AccountNotDeployedError, OperationBuildError, OperationBuilder
from .packing import (
    PaymasterData,
    RangeError,
    pack_paymaster_and_data,
    pack_uint128_pair,
    unpack_paymaster_and_data,
    unpack_uint128_pair,
)
from .signing import (
    CompositeSignature,
    HashFetchError,
    SignedOperation,
    SignerKind,
    SigningAttempt,
    SigningError,
    SigningService,
    SigningServiceError,
    SigningState,
    build_composite_signature,
    split_composite_signature,
)
from .userop import AbstractAccountOperation, RelayReceipt, compute_operation_hash
from .userop_builder import (
    Call,
    compose_batch,
    compose_bet_settlement,
    compose_delegation_grant,
    compose_delegation_revoke,
    compose_token_transfer,
    decode_batch,
)

__all__ = [
    # Packing
    "pack_uint128_pair",
    "unpack_uint128_pair",
    "pack_paymaster_and_data",
    "unpack_paymaster_and_data",
    "PaymasterData",
    "RangeError",
    # Call data
    "Call",
    "compose_batch",
    "compose_token_transfer",
    "compose_bet_settlement",
    "compose_delegation_grant",
    "compose_delegation_revoke",
    "decode_batch",
    # Operations
    "AbstractAccountOperation",
    "RelayReceipt",
    "compute_operation_hash",
    "OperationBuilder",
    "OperationBuildError",
    "AccountNotDeployedError",
    # Signing
    "SigningService",
    "SignedOperation",
    "SigningAttempt",
    "SigningState",
    "SignerKind",
    "CompositeSignature",
    "build_composite_signature",
    "split_composite_signature",
    "SigningServiceError",
    "HashFetchError",
    "SigningError",
    # Nonce serialization
    "AccountLocks",
    "NonceState",
    "StaleNonceError",
]
