"""
Message channel between the sandboxed game and its host page.

The host owns a ``BridgeChannel``; the game consumes it through a
``BridgeProtocol`` that subscribes on ``start()`` and unsubscribes on
``stop()``. Delivery is fire-and-forget: no acknowledgement, no retry.
Messages carrying an id are delivered at most once per channel.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections import OrderedDict
from typing import Any, Awaitable, Callable, List, Optional, Union

from .models import (
    BridgeError,
    BridgeMessage,
    GameMessageType,
    GamePlayResultPayload,
    HouseChangedPayload,
    InvalidMessageError,
    RewardSentPayload,
    WalletConfirmedPayload,
    WalletCreatedPayload,
)

logger = logging.getLogger(__name__)

Handler = Callable[[BridgeMessage], Union[Awaitable[None], None]]
RewardCallback = Callable[[RewardSentPayload], Union[Awaitable[None], None]]


class ParentConfirmationFailure(BridgeError):
    """The host page reported FAIL for wallet provisioning."""
    pass


class ProvisioningTimeout(BridgeError):
    """No wallet confirmation arrived in time."""
    pass


class Subscription:
    def __init__(self, channel: "BridgeChannel", handler: Handler):
        self._channel = channel
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._channel._remove(self)


class BridgeChannel:
    """In-process fan-out queue with id-based de-duplication."""

    def __init__(self, dedupe_window: int = 256):
        self._subscribers: List[Subscription] = []
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._dedupe_window = dedupe_window

    def subscribe(self, handler: Handler) -> Subscription:
        subscription = Subscription(self, handler)
        self._subscribers.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _is_duplicate(self, message_id: Optional[str]) -> bool:
        if not message_id:
            return False
        if message_id in self._seen:
            return True
        self._seen[message_id] = None
        while len(self._seen) > self._dedupe_window:
            self._seen.popitem(last=False)
        return False

    async def publish(self, message: Union[BridgeMessage, dict]) -> bool:
        """Deliver to every current subscriber; False if dropped."""
        if isinstance(message, dict):
            try:
                decoded = BridgeMessage.decode(message)
            except InvalidMessageError as exc:
                logger.warning(f"[Bridge] Dropping invalid message: {exc}")
                return False
            if decoded is None:
                logger.debug(f"[Bridge] Ignoring untagged message: {message!r}")
                return False
            message = decoded

        if self._is_duplicate(message.message_id):
            logger.debug(f"[Bridge] Duplicate {message.type.value} {message.message_id} dropped")
            return False

        for subscription in list(self._subscribers):
            if not subscription.active:
                continue
            try:
                result = subscription.handler(message)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[Bridge] Handler failed for {message.type.value}: {e}", exc_info=True)
        return True


class BridgeProtocol:
    """Game-side endpoint of the bridge."""

    def __init__(self, channel: BridgeChannel):
        self.channel = channel
        self.house_address: Optional[str] = None
        self.last_confirmation: Optional[WalletConfirmedPayload] = None
        self.last_reward: Optional[RewardSentPayload] = None
        self._subscription: Optional[Subscription] = None
        self._confirmation: Optional[asyncio.Future] = None
        self._reward_callbacks: List[RewardCallback] = []

    def start(self) -> None:
        if self._subscription is None:
            self._subscription = self.channel.subscribe(self._handle)

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def on_reward(self, callback: RewardCallback) -> None:
        self._reward_callbacks.append(callback)

    async def _send(self, message_type: GameMessageType, payload: Any = None) -> None:
        message = BridgeMessage(type=message_type, value=payload, message_id=uuid.uuid4().hex)
        await self.channel.publish(message)
        logger.info(f"[Bridge] Sent {message_type.value}")

    async def send_wallet_created(self, wallet_address: str) -> None:
        await self._send(
            GameMessageType.WALLET_CREATED,
            WalletCreatedPayload(wallet_address=wallet_address),
        )

    async def send_play_result(self, result: GamePlayResultPayload) -> None:
        await self._send(GameMessageType.GAME_PLAY_RESULT, result)

    async def send_logout(self) -> None:
        await self._send(GameMessageType.GAME_LOGOUT)

    def expect_confirmation(self) -> asyncio.Future:
        """
        Arm a waiter for the next WALLET_CONFIRMED (before sending WALLET_CREATED).

        An armed waiter is kept until ``wait_for_confirmation`` consumes it,
        even if the host has already answered.
        """
        if self._confirmation is None:
            self._confirmation = asyncio.get_running_loop().create_future()
        return self._confirmation

    async def wait_for_confirmation(self, timeout: float) -> WalletConfirmedPayload:
        waiter = self.expect_confirmation()
        try:
            # wait_for cancels the waiter on timeout so a late answer is dropped
            return await asyncio.wait_for(waiter, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ProvisioningTimeout(f"No wallet confirmation within {timeout}s") from exc
        finally:
            self._confirmation = None

    async def _handle(self, message: BridgeMessage) -> None:
        if message.type.from_game:
            return

        if message.type == GameMessageType.WALLET_CONFIRMED:
            self._on_confirmed(message.value)
        elif message.type == GameMessageType.HOUSE_CHANGED:
            self._on_house_changed(message.value)
        elif message.type == GameMessageType.REWARD_SENT:
            await self._on_reward(message.value)

    def _on_confirmed(self, payload: WalletConfirmedPayload) -> None:
        self.last_confirmation = payload
        waiter = self._confirmation
        if waiter is None or waiter.done():
            logger.debug("[Bridge] WALLET_CONFIRMED with nobody waiting")
            return

        if payload.succeeded:
            logger.info(f"[Bridge] Host confirmed wallet, tx {payload.tx}")
            waiter.set_result(payload)
        else:
            logger.error(f"[Bridge] Host confirmation failed: {payload.error or 'Unknown error'}")
            waiter.set_exception(ParentConfirmationFailure(payload.error or "Unknown error"))

    def _on_house_changed(self, payload: HouseChangedPayload) -> None:
        if payload.address_pays_reward and payload.address_pays_reward != self.house_address:
            self.house_address = payload.address_pays_reward
            logger.info(f"[Bridge] House updated: {self.house_address[:10]}...")

    async def _on_reward(self, payload: RewardSentPayload) -> None:
        self.last_reward = payload
        for callback in list(self._reward_callbacks):
            result = callback(payload)
            if inspect.isawaitable(result):
                await result
