from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address

# Sentinel used by the L1 bridges for the native asset.
NATIVE_TOKEN_ADDRESS = "0x0000000000000000000000000000000000000000"
# System contract holding native balances on L2.
L2_BASE_TOKEN_ADDRESS = "0x000000000000000000000000000000000000800a"
ZERO_ADDRESS = NATIVE_TOKEN_ADDRESS

L1_TO_L2_ALIAS_OFFSET = 0x1111000000000000000000000000000000001111
ADDRESS_MODULO = 2**160


def is_hex_address(s: Any) -> bool:
    if not isinstance(s, str):
        return False
    v = s.strip()
    if not (v.startswith("0x") and len(v) == 42):
        return False
    try:
        int(v[2:], 16)
        return True
    except ValueError:
        return False


def addresses_equal(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


def is_native_token(token: str) -> bool:
    return addresses_equal(token, NATIVE_TOKEN_ADDRESS) or addresses_equal(token, L2_BASE_TOKEN_ADDRESS)


def checksum(address: str) -> str:
    return to_checksum_address(address)


def apply_l1_to_l2_alias(address: str) -> str:
    """Address an L1 contract appears as when it sends a message to L2."""
    aliased = (int(address, 16) + L1_TO_L2_ALIAS_OFFSET) % ADDRESS_MODULO
    return checksum("0x" + aliased.to_bytes(20, "big").hex())


def undo_l1_to_l2_alias(address: str) -> str:
    original = (int(address, 16) - L1_TO_L2_ALIAS_OFFSET) % ADDRESS_MODULO
    return checksum("0x" + original.to_bytes(20, "big").hex())


def to_bytes(v: Any, *, name: str = "value") -> bytes:
    if v is None:
        return b""
    if isinstance(v, (bytes, bytearray)):
        return bytes(v)
    if isinstance(v, str):
        s = v.strip()
        if s.startswith("0x"):
            s = s[2:]
        if s == "":
            return b""
        return bytes.fromhex(s)
    raise ValueError(f"Invalid bytes field {name}: {type(v).__name__}")


def to_int(v: Any, *, name: str = "value") -> int:
    if v is None:
        raise ValueError(f"Missing required field: {name}")
    if isinstance(v, bool):
        raise ValueError(f"Invalid int field {name}: {v}")
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        s = v.strip().lower()
        if s.startswith("0x"):
            return int(s, 16)
        return int(s, 10)
    raise ValueError(f"Invalid int field {name}: {type(v).__name__}")


def scale_gas_limit(gas_limit: int, numerator: int = 12, denominator: int = 10) -> int:
    return gas_limit * numerator // denominator
