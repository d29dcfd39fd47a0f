from abc import ABC, abstractmethod
from typing import Any, Dict

from ..core.execution.userop import AbstractAccountOperation


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class HashOracle(ABC):
    """Source of the canonical operation hash (the EntryPoint)."""

    @abstractmethod
    async def get_operation_hash(self, op: AbstractAccountOperation) -> bytes:
        """Return the 32-byte hash the EntryPoint will verify against"""
        pass


class ChainReader(ABC):
    """Read-only chain state needed to build and settle operations"""

    @abstractmethod
    async def get_nonce(self, sender: str, key: int = 0) -> int:
        pass

    @abstractmethod
    async def get_code(self, address: str) -> bytes:
        pass

    async def is_deployed(self, address: str) -> bool:
        return len(await self.get_code(address)) > 0

    @abstractmethod
    async def get_token_balance(self, token: str, holder: str) -> int:
        pass

    @abstractmethod
    async def get_required_fee(self, paymaster: str) -> int:
        pass
