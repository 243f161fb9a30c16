"""
Bridge wallet settings.

A validated, typed settings layer read from the environment (a `.env` file is
loaded first). Values are checked at instantiation so misconfigurations
surface at startup, not in the middle of a bridging operation.

Usage:
    from app.core.settings import Settings

    settings = Settings()
    if settings.SIGNER_TYPE is SignerType.ACCOUNT_ABSTRACTION:
        ...
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Tuple

from dotenv import load_dotenv

from transactions.types import REQUIRED_L1_TO_L2_GAS_PER_PUBDATA_LIMIT
from transactions.utils import is_hex_address

# Load environment variables from .env file
load_dotenv()

DEFAULT_L2_GAS_FIXED_COST = 300_000
DEFAULT_FAIR_L2_GAS_PRICE = 500_000_000
DEFAULT_L1_GAS_PER_PUBDATA_BYTE = 17


class SignerType(Enum):
    """Signer backend types."""

    PRIVATE_KEY = "private_key"
    ACCOUNT_ABSTRACTION = "account_abstraction"


class L2GasModel(Enum):
    NODE = "node"
    PUBDATA = "pubdata"


class BaseCostModel(Enum):
    MAILBOX = "mailbox"
    FORMULA = "formula"


class SettingsValidationError(Exception):
    """Raised when settings validation fails."""

    def __init__(self, field: str, value: Any, message: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid configuration for {field}={value!r}: {message}")


def _parse_int(value: str | None, default: int | None = None) -> int | None:
    """Parse an integer from environment variable."""
    if value is None or value.strip() == "":
        return default
    try:
        return int(value.strip(), 0)  # Support hex with 0x prefix
    except ValueError:
        return default


def _parse_float(value: str | None, default: float | None = None) -> float | None:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


def _parse_csv(value: str | None) -> Tuple[str, ...]:
    """Parse a comma-separated list, keeping order."""
    if not value:
        return ()
    return tuple(v.strip() for v in value.split(",") if v.strip())


def _parse_enum(enum_cls: type, env: str, default: Enum) -> Any:
    raw = os.getenv(env, default.value).strip().lower()
    if raw in [e.value for e in enum_cls]:
        return enum_cls(raw)
    return raw


def _optional(env: str) -> str | None:
    v = os.getenv(env)
    if v is None or v.strip() == "":
        return None
    return v.strip()


@dataclass
class Settings:
    """
    Unified settings class with validation.

    Secrets (private keys) are only ever exposed through attribute access;
    `to_dict` and `repr` redact them.
    """

    PROJECT_NAME: str = "bridge-wallet"

    # Network endpoints
    L1_RPC_URL: str | None = field(default_factory=lambda: _optional("L1_RPC_URL"))
    L2_RPC_URL: str | None = field(default_factory=lambda: _optional("L2_RPC_URL"))
    HTTP_TIMEOUT_SEC: int = field(default_factory=lambda: _parse_int(os.getenv("HTTP_TIMEOUT_SEC"), 10) or 10)

    # Signer settings
    SIGNER_TYPE: SignerType = field(default_factory=lambda: _parse_enum(SignerType, "SIGNER_TYPE", SignerType.PRIVATE_KEY))
    PRIVATE_KEY: str | None = field(default_factory=lambda: _optional("PRIVATE_KEY"), repr=False)
    AA_ACCOUNT_ADDRESS: str | None = field(default_factory=lambda: _optional("AA_ACCOUNT_ADDRESS"))
    AA_EXTRA_PRIVATE_KEYS: Tuple[str, ...] = field(
        default_factory=lambda: _parse_csv(os.getenv("AA_EXTRA_PRIVATE_KEYS")), repr=False
    )

    # Paymaster
    PAYMASTER_ADDRESS: str | None = field(default_factory=lambda: _optional("PAYMASTER_ADDRESS"))
    PAYMASTER_TOKEN: str | None = field(default_factory=lambda: _optional("PAYMASTER_TOKEN"))
    PAYMASTER_MIN_ALLOWANCE: int = field(default_factory=lambda: _parse_int(os.getenv("PAYMASTER_MIN_ALLOWANCE"), 1) or 0)

    # Fee estimation
    DEPOSIT_GAS_PER_PUBDATA_LIMIT: int = field(
        default_factory=lambda: _parse_int(
            os.getenv("DEPOSIT_GAS_PER_PUBDATA_LIMIT"), REQUIRED_L1_TO_L2_GAS_PER_PUBDATA_LIMIT
        )
        or REQUIRED_L1_TO_L2_GAS_PER_PUBDATA_LIMIT
    )
    L2_GAS_MODEL: L2GasModel = field(default_factory=lambda: _parse_enum(L2GasModel, "L2_GAS_MODEL", L2GasModel.NODE))
    L2_GAS_FIXED_COST: int = field(
        default_factory=lambda: _parse_int(os.getenv("L2_GAS_FIXED_COST"), DEFAULT_L2_GAS_FIXED_COST) or 0
    )
    BASE_COST_MODEL: BaseCostModel = field(
        default_factory=lambda: _parse_enum(BaseCostModel, "BASE_COST_MODEL", BaseCostModel.MAILBOX)
    )
    FAIR_L2_GAS_PRICE: int = field(
        default_factory=lambda: _parse_int(os.getenv("FAIR_L2_GAS_PRICE"), DEFAULT_FAIR_L2_GAS_PRICE) or 0
    )
    L1_GAS_PER_PUBDATA_BYTE: int = field(
        default_factory=lambda: _parse_int(os.getenv("L1_GAS_PER_PUBDATA_BYTE"), DEFAULT_L1_GAS_PER_PUBDATA_BYTE) or 0
    )

    # Receipts
    RECEIPT_POLL_INTERVAL_SEC: float = field(
        default_factory=lambda: _parse_float(os.getenv("RECEIPT_POLL_INTERVAL_SEC"), 1.0) or 1.0
    )

    # Observability
    BRIDGE_LOG_LEVEL: str = field(default_factory=lambda: os.getenv("BRIDGE_LOG_LEVEL", "info").strip().lower())
    BRIDGE_SERVICE_NAME: str = field(default_factory=lambda: os.getenv("BRIDGE_SERVICE_NAME", "bridge-wallet").strip())

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        self._validate()

    def _validate(self) -> None:
        if not isinstance(self.SIGNER_TYPE, SignerType):
            raise SettingsValidationError(
                "SIGNER_TYPE", self.SIGNER_TYPE, f"expected one of {[e.value for e in SignerType]}"
            )
        if not isinstance(self.L2_GAS_MODEL, L2GasModel):
            raise SettingsValidationError(
                "L2_GAS_MODEL", self.L2_GAS_MODEL, f"expected one of {[e.value for e in L2GasModel]}"
            )
        if not isinstance(self.BASE_COST_MODEL, BaseCostModel):
            raise SettingsValidationError(
                "BASE_COST_MODEL", self.BASE_COST_MODEL, f"expected one of {[e.value for e in BaseCostModel]}"
            )

        errors: list[str] = []

        for name in ("AA_ACCOUNT_ADDRESS", "PAYMASTER_ADDRESS", "PAYMASTER_TOKEN"):
            value = getattr(self, name)
            if value is not None and not is_hex_address(value):
                errors.append(f"{name} must be a 0x-prefixed 20-byte hex address")

        if self.SIGNER_TYPE is SignerType.ACCOUNT_ABSTRACTION and not self.AA_ACCOUNT_ADDRESS:
            errors.append("AA_ACCOUNT_ADDRESS required when SIGNER_TYPE=account_abstraction")
        if self.PAYMASTER_TOKEN and not self.PAYMASTER_ADDRESS:
            errors.append("PAYMASTER_ADDRESS required when PAYMASTER_TOKEN is set")

        if self.DEPOSIT_GAS_PER_PUBDATA_LIMIT <= 0:
            errors.append("DEPOSIT_GAS_PER_PUBDATA_LIMIT must be > 0")
        if self.L2_GAS_FIXED_COST < 0:
            errors.append("L2_GAS_FIXED_COST must be >= 0")
        if self.FAIR_L2_GAS_PRICE < 0:
            errors.append("FAIR_L2_GAS_PRICE must be >= 0")
        if self.L1_GAS_PER_PUBDATA_BYTE < 0:
            errors.append("L1_GAS_PER_PUBDATA_BYTE must be >= 0")
        if self.PAYMASTER_MIN_ALLOWANCE < 0:
            errors.append("PAYMASTER_MIN_ALLOWANCE must be >= 0")
        if self.RECEIPT_POLL_INTERVAL_SEC <= 0:
            errors.append("RECEIPT_POLL_INTERVAL_SEC must be > 0")
        if self.HTTP_TIMEOUT_SEC <= 0:
            errors.append("HTTP_TIMEOUT_SEC must be > 0")

        if errors:
            raise SettingsValidationError("MULTIPLE", None, "; ".join(errors))

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary (redacting secrets)."""
        result: dict[str, Any] = {}
        for f in fields(self):
            key = f.name
            value = getattr(self, key)
            # Redact sensitive values
            if "KEY" in key.upper():
                result[key] = "***REDACTED***" if value else None
            elif isinstance(value, tuple):
                result[key] = list(value)
            elif isinstance(value, Enum):
                result[key] = value.value
            else:
                result[key] = value
        return result
