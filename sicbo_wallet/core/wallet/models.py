"""
Session key models.

A session key is an ephemeral key pair that the wallet owner authorizes,
once, to act for one abstract account within a validity window and only
against an explicit list of (target, selector) pairs.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from ..execution.packing import hex_to_bytes, to_hex


def normalize_selector(selector: Any) -> str:
    raw = hex_to_bytes(selector)
    if len(raw) != 4:
        raise ValueError(f"Selector must be 4 bytes, got {len(raw)}")
    return to_hex(raw)


@dataclass(frozen=True)
class SessionPermission:
    """Capability grant for one function on one contract."""
    target: str
    selector: str
    max_value: int = 0
    max_usage: Optional[int] = None  # None = unlimited

    def __post_init__(self) -> None:
        object.__setattr__(self, "selector", normalize_selector(self.selector))

    def matches(self, target: str, selector: Any) -> bool:
        raw = hex_to_bytes(selector)
        if len(raw) != 4:
            return False
        return self.target.lower() == target.lower() and self.selector == to_hex(raw)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "selector": self.selector,
            "maxValue": str(self.max_value),
            "maxUsage": self.max_usage,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionPermission":
        return cls(
            target=data["target"],
            selector=data["selector"],
            max_value=int(data.get("maxValue") or 0),
            max_usage=data.get("maxUsage"),
        )


@dataclass(frozen=True)
class SessionKey:
    """
    An owner-authorized session key record.

    ``valid_after`` and ``valid_until`` are inclusive unix seconds.
    """
    public_key: str
    private_key: str = field(repr=False)
    valid_after: int
    valid_until: int
    account_address: str
    owner_consent_signature: str = field(repr=False)
    permissions: Tuple[SessionPermission, ...] = ()
    owner_address: Optional[str] = None

    def __post_init__(self) -> None:
        if self.valid_after > self.valid_until:
            raise ValueError("valid_after must not be later than valid_until")
        object.__setattr__(self, "permissions", tuple(self.permissions))

    @property
    def selectors(self) -> List[str]:
        return [p.selector for p in self.permissions]

    @property
    def commitment(self) -> bytes:
        return compute_session_commitment(
            self.public_key,
            self.valid_after,
            self.valid_until,
            self.account_address,
            self.selectors,
        )

    def covers(self, target: str, selector: Any) -> bool:
        return any(p.matches(target, selector) for p in self.permissions)

    def is_within_window(self, now: int) -> bool:
        return self.valid_after <= now <= self.valid_until

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionPublicKey": self.public_key,
            "sessionPrivateKey": self.private_key,
            "validAfter": self.valid_after,
            "validUntil": self.valid_until,
            "permissions": [p.to_dict() for p in self.permissions],
            "ownerSignature": self.owner_consent_signature,
            "accountAddress": self.account_address,
            "ownerAddress": self.owner_address,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionKey":
        return cls(
            public_key=data["sessionPublicKey"],
            private_key=data["sessionPrivateKey"],
            valid_after=int(data["validAfter"]),
            valid_until=int(data["validUntil"]),
            account_address=data["accountAddress"],
            owner_consent_signature=data["ownerSignature"],
            permissions=tuple(SessionPermission.from_dict(p) for p in data.get("permissions", [])),
            owner_address=data.get("ownerAddress"),
        )


def compute_session_commitment(
    public_key: str,
    valid_after: int,
    valid_until: int,
    account_address: str,
    selectors: Sequence[str],
) -> bytes:
    """keccak256(abi.encode(address, uint48, uint48, address, bytes4[]))"""
    return keccak(
        encode(
            ["address", "uint48", "uint48", "address", "bytes4[]"],
            [
                to_checksum_address(public_key),
                valid_after,
                valid_until,
                to_checksum_address(account_address),
                [hex_to_bytes(s) for s in selectors],
            ],
        )
    )
