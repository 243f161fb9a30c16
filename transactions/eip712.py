from __future__ import annotations

import hashlib
from typing import Any, Dict

from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import keccak

from .types import EIP712_TX_TYPE, PopulatedTransaction

DOMAIN_NAME = "zkSync"
DOMAIN_VERSION = "2"

EIP712_TYPES: Dict[str, Any] = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
    ],
    "Transaction": [
        {"name": "txType", "type": "uint256"},
        {"name": "from", "type": "uint256"},
        {"name": "to", "type": "uint256"},
        {"name": "gasLimit", "type": "uint256"},
        {"name": "gasPerPubdataByteLimit", "type": "uint256"},
        {"name": "maxFeePerGas", "type": "uint256"},
        {"name": "maxPriorityFeePerGas", "type": "uint256"},
        {"name": "paymaster", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "value", "type": "uint256"},
        {"name": "data", "type": "bytes"},
        {"name": "factoryDeps", "type": "bytes32[]"},
        {"name": "paymasterInput", "type": "bytes"},
    ],
}

MAX_BYTECODE_WORDS = 2**16


def hash_bytecode(bytecode: bytes) -> bytes:
    """
    Versioned hash the L2 uses to identify deployed bytecode.

    Layout: version byte (1), zero byte, length in 32-byte words (2 bytes,
    big endian), then the last 28 bytes of sha256(bytecode).
    """
    if len(bytecode) % 32 != 0:
        raise ValueError("The bytecode length in bytes must be divisible by 32")
    words = len(bytecode) // 32
    if words >= MAX_BYTECODE_WORDS:
        raise ValueError(f"Bytecode length must be less than {MAX_BYTECODE_WORDS} words")
    if words % 2 == 0:
        raise ValueError("Bytecode length in 32-byte words must be odd")
    digest = hashlib.sha256(bytecode).digest()
    return b"\x01\x00" + words.to_bytes(2, "big") + digest[4:]


def _address_as_int(address: str | None) -> int:
    if not address:
        return 0
    return int(address, 16)


def typed_data(tx: PopulatedTransaction) -> Dict[str, Any]:
    meta = tx.custom_data
    paymaster = meta.paymaster_params if meta is not None else None
    message = {
        "txType": EIP712_TX_TYPE,
        "from": _address_as_int(tx.from_),
        "to": _address_as_int(tx.to),
        "gasLimit": tx.gas_limit or 0,
        "gasPerPubdataByteLimit": meta.gas_per_pubdata if meta is not None else 0,
        "maxFeePerGas": tx.max_fee_per_gas or 0,
        "maxPriorityFeePerGas": tx.max_priority_fee_per_gas or 0,
        "paymaster": _address_as_int(paymaster.paymaster) if paymaster else 0,
        "nonce": tx.nonce or 0,
        "value": tx.value or 0,
        "data": tx.data or b"",
        "factoryDeps": [hash_bytecode(dep) for dep in (meta.factory_deps if meta else ())],
        "paymasterInput": paymaster.paymaster_input if paymaster else b"",
    }
    return {
        "types": EIP712_TYPES,
        "primaryType": "Transaction",
        "domain": {"name": DOMAIN_NAME, "version": DOMAIN_VERSION, "chainId": tx.chain_id},
        "message": message,
    }


def signable_message(tx: PopulatedTransaction) -> SignableMessage:
    return encode_typed_data(full_message=typed_data(tx))


def signed_digest(tx: PopulatedTransaction) -> bytes:
    """The 32-byte EIP-712 digest a type 113 transaction's signature commits to."""
    msg = signable_message(tx)
    return keccak(b"\x19" + msg.version + msg.header + msg.body)
