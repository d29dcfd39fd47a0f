"""
Per-account serialization of the build/sign/submit sequence.

The nonce is read from the EntryPoint immediately before building, so two
overlapping sequences for the same sender would sign the same nonce. Each
account gets its own lock; different accounts never contend.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Optional


class StaleNonceError(Exception):
    """Nonce was already consumed by an earlier submitted operation."""
    pass


@dataclass
class NonceState:
    """Tracks the last submitted nonce for an account."""
    address: str
    last_submitted: Optional[int] = None
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AccountLocks:
    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._states: Dict[str, NonceState] = {}

    def _get_key(self, address: str) -> str:
        return address.lower()

    def lock_for(self, address: str) -> asyncio.Lock:
        key = self._get_key(address)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    @asynccontextmanager
    async def hold(self, address: str) -> AsyncIterator[None]:
        async with self.lock_for(address):
            yield

    def is_busy(self, address: str) -> bool:
        lock = self._locks.get(self._get_key(address))
        return bool(lock and lock.locked())

    def check_fresh(self, address: str, nonce: int) -> None:
        state = self._states.get(self._get_key(address))
        if state and state.last_submitted is not None and nonce <= state.last_submitted:
            raise StaleNonceError(
                f"Nonce {nonce} for {address} already submitted (last {state.last_submitted})"
            )

    def record_submitted(self, address: str, nonce: int) -> None:
        key = self._get_key(address)
        state = self._states.setdefault(key, NonceState(address=key))
        if state.last_submitted is None or nonce > state.last_submitted:
            state.last_submitted = nonce
        state.last_updated = datetime.now(timezone.utc)

    def get_state(self, address: str) -> Optional[NonceState]:
        return self._states.get(self._get_key(address))

    def clear_state(self, address: str) -> None:
        self._states.pop(self._get_key(address), None)
