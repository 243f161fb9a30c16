from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

LEGACY_TX_TYPE = 0
EIP1559_TX_TYPE = 2
EIP712_TX_TYPE = 113

# Gas-per-pubdata the L2 node assumes when none is specified on an L2 transaction.
DEFAULT_GAS_PER_PUBDATA_LIMIT = 50_000
# Gas-per-pubdata limit the mailbox requires for L1 -> L2 requests.
REQUIRED_L1_TO_L2_GAS_PER_PUBDATA_LIMIT = 800


@dataclass(frozen=True)
class PaymasterParams:
    paymaster: str
    paymaster_input: bytes


@dataclass(frozen=True)
class Eip712Meta:
    """Custom-data envelope carried by L2-native (type 113) transactions."""

    gas_per_pubdata: int = DEFAULT_GAS_PER_PUBDATA_LIMIT
    factory_deps: Tuple[bytes, ...] = ()
    custom_signature: Optional[bytes] = None
    paymaster_params: Optional[PaymasterParams] = None


@dataclass(frozen=True)
class L2CallParams:
    """The L1 -> L2 message an L1 bridging transaction requests."""

    contract_address: str
    calldata: bytes
    l2_value: int
    l2_gas_limit: int
    gas_per_pubdata_byte: int
    refund_recipient: str
    operator_tip: int = 0
    token: Optional[str] = None
    amount: int = 0
    factory_deps: Tuple[bytes, ...] = ()


@dataclass(frozen=True)
class PopulatedTransaction:
    """
    A fully specified, not yet signed transaction.

    Instances are immutable; use `replace` to derive a variant (e.g. with a
    fresh nonce) instead of mutating one that may already have been signed.
    """

    tx_type: int
    to: Optional[str]
    value: int = 0
    data: bytes = b""
    from_: Optional[str] = None
    chain_id: Optional[int] = None
    nonce: Optional[int] = None
    gas_limit: Optional[int] = None
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    custom_data: Optional[Eip712Meta] = None
    l2_call: Optional[L2CallParams] = None

    def replace(self, **changes) -> "PopulatedTransaction":
        return dataclasses.replace(self, **changes)

    @property
    def is_eip712(self) -> bool:
        return self.tx_type == EIP712_TX_TYPE

    def missing_fields(self) -> List[str]:
        missing: List[str] = []
        if self.chain_id is None:
            missing.append("chain_id")
        if self.nonce is None:
            missing.append("nonce")
        if self.gas_limit is None:
            missing.append("gas_limit")
        if self.tx_type == LEGACY_TX_TYPE:
            if self.gas_price is None:
                missing.append("gas_price")
        else:
            if self.max_fee_per_gas is None:
                missing.append("max_fee_per_gas")
            if self.max_priority_fee_per_gas is None:
                missing.append("max_priority_fee_per_gas")
        if self.tx_type == EIP712_TX_TYPE and not self.from_:
            missing.append("from_")
        return missing


@dataclass(frozen=True)
class TxSignature:
    y_parity: int
    r: int
    s: int

    def to_bytes(self) -> bytes:
        """65-byte r || s || v encoding with v in {27, 28}."""
        return self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big") + bytes([27 + self.y_parity])


@dataclass(frozen=True)
class SignedTransaction:
    raw: bytes
    hash: str
    tx: PopulatedTransaction
    signature: Optional[TxSignature] = field(default=None, repr=False)

    @property
    def raw_hex(self) -> str:
        return "0x" + self.raw.hex()


@dataclass(frozen=True)
class TxOverrides:
    """Caller-supplied values that take precedence over computed defaults."""

    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_limit: Optional[int] = None
    value: Optional[int] = None
    nonce: Optional[int] = None

    def replace(self, **changes) -> "TxOverrides":
        return dataclasses.replace(self, **changes)

    def without_gas_prices(self) -> "TxOverrides":
        return dataclasses.replace(self, gas_price=None, max_fee_per_gas=None, max_priority_fee_per_gas=None)
