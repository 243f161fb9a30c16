from __future__ import annotations

from typing import Any, Dict, List, Optional

import rlp
from eth_utils import keccak

from .eip712 import signed_digest
from .types import (
    EIP712_TX_TYPE,
    EIP1559_TX_TYPE,
    LEGACY_TX_TYPE,
    Eip712Meta,
    PopulatedTransaction,
    TxSignature,
)
from .utils import to_bytes


def _rlp_int(i: int) -> bytes:
    if i == 0:
        return b""
    return int(i).to_bytes((int(i).bit_length() + 7) // 8, "big")


def _address_bytes(v: Optional[str]) -> bytes:
    if not v:
        return b""
    b = to_bytes(v, name="address")
    if len(b) != 20:
        raise ValueError("address must be 20 bytes")
    return b


def _int(v: Optional[int]) -> bytes:
    return _rlp_int(v or 0)


def _legacy_fields(tx: PopulatedTransaction) -> List[Any]:
    return [
        _int(tx.nonce),
        _int(tx.gas_price),
        _int(tx.gas_limit),
        _address_bytes(tx.to),
        _int(tx.value),
        tx.data or b"",
    ]


def _eip1559_fields(tx: PopulatedTransaction) -> List[Any]:
    return [
        _int(tx.chain_id),
        _int(tx.nonce),
        _int(tx.max_priority_fee_per_gas),
        _int(tx.max_fee_per_gas),
        _int(tx.gas_limit),
        _address_bytes(tx.to),
        _int(tx.value),
        tx.data or b"",
        [],
    ]


def _eip712_fields(tx: PopulatedTransaction, signature: Optional[TxSignature]) -> List[Any]:
    meta = tx.custom_data or Eip712Meta()
    fields: List[Any] = [
        _int(tx.nonce),
        _int(tx.max_priority_fee_per_gas),
        _int(tx.max_fee_per_gas),
        _int(tx.gas_limit),
        _address_bytes(tx.to),
        _int(tx.value),
        tx.data or b"",
    ]
    if signature is not None:
        fields += [_rlp_int(signature.y_parity), _rlp_int(signature.r), _rlp_int(signature.s)]
    else:
        fields += [_int(tx.chain_id), b"", b""]
    fields += [_int(tx.chain_id), _address_bytes(tx.from_), _rlp_int(meta.gas_per_pubdata)]
    fields.append([bytes(dep) for dep in meta.factory_deps])
    if meta.custom_signature is not None and len(meta.custom_signature) == 0:
        raise ValueError("Empty signatures are not supported")
    fields.append(meta.custom_signature or b"")
    if meta.paymaster_params is not None:
        fields.append(
            [_address_bytes(meta.paymaster_params.paymaster), bytes(meta.paymaster_params.paymaster_input)]
        )
    else:
        fields.append([])
    return fields


def unsigned_payload(tx: PopulatedTransaction) -> bytes:
    """Canonical pre-image for type 0 / type 2 signing."""
    if tx.tx_type == LEGACY_TX_TYPE:
        return rlp.encode(_legacy_fields(tx) + [_int(tx.chain_id), b"", b""])
    if tx.tx_type == EIP1559_TX_TYPE:
        return b"\x02" + rlp.encode(_eip1559_fields(tx))
    raise ValueError(f"Unsupported tx type for unsigned payload: {tx.tx_type}")


def signing_digest(tx: PopulatedTransaction) -> bytes:
    if tx.tx_type == EIP712_TX_TYPE:
        return signed_digest(tx)
    return keccak(unsigned_payload(tx))


def serialize(tx: PopulatedTransaction, signature: Optional[TxSignature] = None) -> bytes:
    """
    Encode a transaction into the wire format of its layer.

    For type 113 the ECDSA signature is optional: when the custom-data envelope
    carries a custom signature the top-level slots hold placeholders instead.
    """
    if tx.tx_type == LEGACY_TX_TYPE:
        if signature is None:
            return unsigned_payload(tx)
        v = signature.y_parity + 35 + 2 * int(tx.chain_id or 0)
        return rlp.encode(_legacy_fields(tx) + [_rlp_int(v), _rlp_int(signature.r), _rlp_int(signature.s)])
    if tx.tx_type == EIP1559_TX_TYPE:
        if signature is None:
            return unsigned_payload(tx)
        inner = _eip1559_fields(tx) + [
            _rlp_int(signature.y_parity),
            _rlp_int(signature.r),
            _rlp_int(signature.s),
        ]
        return b"\x02" + rlp.encode(inner)
    if tx.tx_type == EIP712_TX_TYPE:
        return bytes([EIP712_TX_TYPE]) + rlp.encode(_eip712_fields(tx, signature))
    raise ValueError(f"Unsupported tx type: {tx.tx_type} (supported: 0, 2, 113)")


def transaction_hash(tx: PopulatedTransaction, raw: bytes, signature: Optional[TxSignature] = None) -> str:
    if tx.tx_type != EIP712_TX_TYPE:
        return "0x" + keccak(raw).hex()
    meta = tx.custom_data
    if meta is not None and meta.custom_signature:
        sig_bytes = meta.custom_signature
    elif signature is not None:
        sig_bytes = signature.to_bytes()
    else:
        raise ValueError("No signature provided")
    return "0x" + keccak(signed_digest(tx) + keccak(sig_bytes)).hex()


def _quantity(v: int) -> str:
    return hex(int(v))


def to_rpc_dict(tx: PopulatedTransaction) -> Dict[str, Any]:
    """JSON-RPC call object for eth_call / eth_estimateGas."""
    out: Dict[str, Any] = {"data": "0x" + (tx.data or b"").hex(), "value": _quantity(tx.value or 0)}
    if tx.to:
        out["to"] = tx.to
    if tx.from_:
        out["from"] = tx.from_
    if tx.gas_limit is not None:
        out["gas"] = _quantity(tx.gas_limit)
    if tx.gas_price is not None:
        out["gasPrice"] = _quantity(tx.gas_price)
    if tx.max_fee_per_gas is not None:
        out["maxFeePerGas"] = _quantity(tx.max_fee_per_gas)
    if tx.max_priority_fee_per_gas is not None:
        out["maxPriorityFeePerGas"] = _quantity(tx.max_priority_fee_per_gas)
    if tx.tx_type == EIP712_TX_TYPE:
        out["type"] = _quantity(EIP712_TX_TYPE)
        meta = tx.custom_data or Eip712Meta()
        rpc_meta: Dict[str, Any] = {
            "gasPerPubdata": _quantity(meta.gas_per_pubdata),
            "factoryDeps": [list(dep) for dep in meta.factory_deps],
        }
        if meta.custom_signature:
            rpc_meta["customSignature"] = "0x" + meta.custom_signature.hex()
        if meta.paymaster_params is not None:
            rpc_meta["paymasterParams"] = {
                "paymaster": meta.paymaster_params.paymaster,
                "paymasterInput": list(meta.paymaster_params.paymaster_input),
            }
        out["eip712Meta"] = rpc_meta
    return out
