from .base import ChainReader, HashOracle, Provider
from .entrypoint import (
    BalanceFetchError,
    ChainReadError,
    EntryPointClient,
    LocalHashOracle,
)
from .relay import (
    OperatorRelayProvider,
    RelayBuildResult,
    RelayError,
    RelaySubmissionError,
)

__all__ = [
    "Provider",
    "HashOracle",
    "ChainReader",
    "EntryPointClient",
    "LocalHashOracle",
    "ChainReadError",
    "BalanceFetchError",
    "OperatorRelayProvider",
    "RelayBuildResult",
    "RelayError",
    "RelaySubmissionError",
]
