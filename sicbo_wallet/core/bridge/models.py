"""
Game <-> host page message models.

Wire form is ``{"type": <tag>, "value": <JSON string or object>, "id": <optional>}``.
The host page sends ``value`` either JSON-stringified or as a plain
object, so decoding accepts both.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Literal, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class BridgeError(Exception):
    """Base error for bridge messaging."""
    pass


class InvalidMessageError(BridgeError):
    """A message carried a payload that does not match its type."""
    pass


class GameMessageType(str, Enum):
    # Game -> host
    WALLET_CREATED = "WALLET_CREATED"
    GAME_PLAY_RESULT = "GAME_PLAY_RESULT"
    GAME_LOGOUT = "GAME_LOGOUT"

    # Host -> game
    WALLET_CONFIRMED = "WALLET_CONFIRMED"
    REWARD_SENT = "REWARD_SENT"
    HOUSE_CHANGED = "HOUSE_CHANGED"

    @property
    def from_game(self) -> bool:
        return self in OUTGOING_TYPES


OUTGOING_TYPES = frozenset({
    GameMessageType.WALLET_CREATED,
    GameMessageType.GAME_PLAY_RESULT,
    GameMessageType.GAME_LOGOUT,
})


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class WalletCreatedPayload(_Payload):
    wallet_address: str = Field(alias="walletAddress")


class WalletConfirmedPayload(_Payload):
    status: Literal["SUCCESS", "FAIL"]
    abstract_account_address: Optional[str] = Field(default=None, alias="abstractAccountAddress")
    token_address: Optional[str] = Field(default=None, alias="tokenAddress")
    tx: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "SUCCESS"


class GamePlayResultPayload(_Payload):
    is_win: bool = Field(alias="isWin")
    dice_values: Tuple[int, int, int] = Field(alias="diceValues")
    total: int
    choice: Literal["big", "small"]
    win_amount: float = Field(alias="winAmount")

    @field_validator("dice_values")
    @classmethod
    def _check_faces(cls, value: Tuple[int, int, int]) -> Tuple[int, int, int]:
        if any(face < 1 or face > 6 for face in value):
            raise ValueError("dice values must be between 1 and 6")
        return value


class RewardSentPayload(_Payload):
    status: Literal["success", "failure"]
    tx_hash: Optional[str] = Field(default=None, alias="txHash")
    reward_amount: Optional[Union[float, str]] = Field(default=None, alias="rewardAmount")
    error: Optional[str] = None


class HouseChangedPayload(_Payload):
    address_pays_reward: str = Field(alias="addressPaysReward")


PAYLOAD_MODELS: Dict[GameMessageType, Optional[Type[_Payload]]] = {
    GameMessageType.WALLET_CREATED: WalletCreatedPayload,
    GameMessageType.GAME_PLAY_RESULT: GamePlayResultPayload,
    GameMessageType.GAME_LOGOUT: None,
    GameMessageType.WALLET_CONFIRMED: WalletConfirmedPayload,
    GameMessageType.REWARD_SENT: RewardSentPayload,
    GameMessageType.HOUSE_CHANGED: HouseChangedPayload,
}


@dataclass(frozen=True)
class BridgeMessage:
    type: GameMessageType
    value: Optional[_Payload] = None
    message_id: Optional[str] = None

    def encode(self) -> Dict[str, Any]:
        wire: Dict[str, Any] = {
            "type": self.type.value,
            "value": self.value.model_dump_json(by_alias=True) if self.value is not None else None,
        }
        if self.message_id:
            wire["id"] = self.message_id
        return wire

    @classmethod
    def decode(cls, raw: Any) -> Optional["BridgeMessage"]:
        """
        Parse a wire message. Returns None for anything that is not a
        known, tagged message; raises InvalidMessageError for a known tag
        with a bad payload.
        """
        if not isinstance(raw, dict) or not raw.get("type"):
            return None
        try:
            message_type = GameMessageType(raw["type"])
        except ValueError:
            return None

        value = raw.get("value")
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                pass

        model = PAYLOAD_MODELS[message_type]
        payload = None
        if model is not None:
            try:
                payload = model.model_validate(value)
            except ValidationError as exc:
                raise InvalidMessageError(f"Bad {message_type.value} payload: {exc}") from exc

        return cls(type=message_type, value=payload, message_id=raw.get("id"))
