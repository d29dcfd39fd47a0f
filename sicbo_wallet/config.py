from dataclasses import dataclass
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

ENTRYPOINT_V07 = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
ONE_GWEI = 10**9

PROVISIONING_MODES = ("message", "url", "demo")


@dataclass(frozen=True)
class GasDefaults:
    """Static gas limits and fees applied to every operation.

    These are not estimates; the operator relay re-estimates before
    submission if it needs to.
    """
    verification_gas_limit: int = 4_000_000
    call_gas_limit: int = 6_000_000
    pre_verification_gas: int = 100_000
    paymaster_verification_gas_limit: int = 200_000
    paymaster_post_op_gas_limit: int = 200_000
    max_priority_fee_per_gas: int = ONE_GWEI
    max_fee_per_gas: int = ONE_GWEI


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Chain
    rpc_url: str = Field(default="https://sepolia.base.org", description="JSON-RPC endpoint")
    chain_id: int = Field(default=84532, description="Chain ID used for operation hashing")
    rpc_timeout_seconds: int = Field(default=30, description="JSON-RPC request timeout")

    # Contracts
    entry_point_address: str = Field(default=ENTRYPOINT_V07, description="EntryPoint v0.7 address")
    token_address: str = Field(default="", description="Game token (ERC-20) address")
    paymaster_address: str = Field(default="", description="Token paymaster address, also the fee recipient")
    delegator_address: str = Field(
        default="",
        description="Delegator module that grants and removes session keys",
    )
    token_decimals: int = Field(default=18, description="Decimals of the game token")

    # Operator relay
    relay_base_url: str = Field(
        default="",
        description="Operator backend base URL",
        validation_alias=AliasChoices("relay_base_url", "backend_url", "NEXT_PUBLIC_BACKEND_URL"),
    )
    relay_timeout_seconds: int = Field(default=20, description="Relay request timeout")

    # Gas defaults
    verification_gas_limit: int = Field(default=4_000_000)
    call_gas_limit: int = Field(default=6_000_000)
    pre_verification_gas: int = Field(default=100_000)
    paymaster_verification_gas_limit: int = Field(default=200_000)
    paymaster_post_op_gas_limit: int = Field(default=200_000)
    max_priority_fee_per_gas: int = Field(default=ONE_GWEI)
    max_fee_per_gas: int = Field(default=ONE_GWEI)
    default_fee_amount: int = Field(
        default=0,
        description="Relayer fee (token base units) used when the paymaster fee cannot be read",
    )

    # Sessions
    session_duration_seconds: int = Field(default=3600, ge=60, description="Session key lifetime")

    # Provisioning
    provisioning_mode: str = Field(default="message", description="message, url or demo")
    provisioning_timeout_seconds: float = Field(
        default=120.0,
        description="How long to wait for the host page to confirm a wallet",
    )

    @field_validator("provisioning_mode")
    @classmethod
    def _check_provisioning_mode(cls, value: str) -> str:
        mode = value.strip().lower()
        if mode not in PROVISIONING_MODES:
            raise ValueError(f"provisioning_mode must be one of {PROVISIONING_MODES}")
        return mode

    @property
    def has_relay(self) -> bool:
        return bool(self.relay_base_url)

    @property
    def is_demo(self) -> bool:
        return self.provisioning_mode == "demo"

    def gas_defaults(self) -> GasDefaults:
        return GasDefaults(
            verification_gas_limit=self.verification_gas_limit,
            call_gas_limit=self.call_gas_limit,
            pre_verification_gas=self.pre_verification_gas,
            paymaster_verification_gas_limit=self.paymaster_verification_gas_limit,
            paymaster_post_op_gas_limit=self.paymaster_post_op_gas_limit,
            max_priority_fee_per_gas=self.max_priority_fee_per_gas,
            max_fee_per_gas=self.max_fee_per_gas,
        )


# Global settings instance
settings = Settings()
