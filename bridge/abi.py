"""
Call encoders and result decoders for the bridge-facing contracts.

Only the handful of functions the wallet touches are described; everything is
built from `eth_abi` plus 4-byte selectors derived from the canonical
signatures below.
"""

from __future__ import annotations

from typing import Any, Dict, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import event_signature_to_log_topic, function_signature_to_4byte_selector

from transactions.utils import checksum

# ERC-20
ERC20_BALANCE_OF = "balanceOf(address)"
ERC20_ALLOWANCE = "allowance(address,address)"
ERC20_APPROVE = "approve(address,uint256)"
ERC20_TRANSFER = "transfer(address,uint256)"
ERC20_NAME = "name()"
ERC20_SYMBOL = "symbol()"
ERC20_DECIMALS = "decimals()"

# L1 mailbox (main contract)
MAILBOX_BASE_COST = "l2TransactionBaseCost(uint256,uint256,uint256)"
MAILBOX_REQUEST_L2_TX = "requestL2Transaction(address,uint256,bytes,uint256,uint256,bytes[],address)"

# ERC-20 bridges
L1_BRIDGE_DEPOSIT = "deposit(address,address,uint256,uint256,uint256,address)"
BRIDGE_L2_TOKEN_ADDRESS = "l2TokenAddress(address)"
L1_BRIDGE_L2_BRIDGE = "l2Bridge()"
L2_BRIDGE_FINALIZE_DEPOSIT = "finalizeDeposit(address,address,address,uint256,bytes)"
L2_BRIDGE_WITHDRAW = "withdraw(address,address,uint256)"

# L2 base token system contract
L2_BASE_TOKEN_WITHDRAW = "withdraw(address)"

_L2_CANONICAL_TX = (
    "(uint256,uint256,uint256,uint256,uint256,uint256,uint256,uint256,uint256,uint256,"
    "uint256[4],bytes,bytes,uint256[],bytes,bytes)"
)
NEW_PRIORITY_REQUEST = f"NewPriorityRequest(uint256,bytes32,uint64,{_L2_CANONICAL_TX},bytes[])"
NEW_PRIORITY_REQUEST_TOPIC = "0x" + event_signature_to_log_topic(NEW_PRIORITY_REQUEST).hex()


def selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


def encode_call(signature: str, types: Sequence[str], args: Sequence[Any]) -> bytes:
    return selector(signature) + encode(list(types), list(args))


def decode_result(types: Sequence[str], data: bytes) -> Tuple[Any, ...]:
    return tuple(decode(list(types), data))


def call_object(to: str, data: bytes) -> Dict[str, str]:
    """JSON-RPC call object for a read-only `eth_call`."""
    return {"to": checksum(to), "data": "0x" + bytes(data).hex()}


def balance_of(owner: str) -> bytes:
    return encode_call(ERC20_BALANCE_OF, ["address"], [checksum(owner)])


def allowance(owner: str, spender: str) -> bytes:
    return encode_call(ERC20_ALLOWANCE, ["address", "address"], [checksum(owner), checksum(spender)])


def approve(spender: str, amount: int) -> bytes:
    return encode_call(ERC20_APPROVE, ["address", "uint256"], [checksum(spender), int(amount)])


def transfer(to: str, amount: int) -> bytes:
    return encode_call(ERC20_TRANSFER, ["address", "uint256"], [checksum(to), int(amount)])


def l2_transaction_base_cost(gas_price: int, l2_gas_limit: int, gas_per_pubdata_byte: int) -> bytes:
    return encode_call(
        MAILBOX_BASE_COST,
        ["uint256", "uint256", "uint256"],
        [int(gas_price), int(l2_gas_limit), int(gas_per_pubdata_byte)],
    )


def request_l2_transaction(
    contract_address: str,
    l2_value: int,
    calldata: bytes,
    l2_gas_limit: int,
    gas_per_pubdata_byte: int,
    factory_deps: Sequence[bytes],
    refund_recipient: str,
) -> bytes:
    return encode_call(
        MAILBOX_REQUEST_L2_TX,
        ["address", "uint256", "bytes", "uint256", "uint256", "bytes[]", "address"],
        [
            checksum(contract_address),
            int(l2_value),
            bytes(calldata),
            int(l2_gas_limit),
            int(gas_per_pubdata_byte),
            [bytes(d) for d in factory_deps],
            checksum(refund_recipient),
        ],
    )


def bridge_deposit(
    l2_receiver: str,
    l1_token: str,
    amount: int,
    l2_gas_limit: int,
    gas_per_pubdata_byte: int,
    refund_recipient: str,
) -> bytes:
    return encode_call(
        L1_BRIDGE_DEPOSIT,
        ["address", "address", "uint256", "uint256", "uint256", "address"],
        [
            checksum(l2_receiver),
            checksum(l1_token),
            int(amount),
            int(l2_gas_limit),
            int(gas_per_pubdata_byte),
            checksum(refund_recipient),
        ],
    )


def l2_token_address(l1_token: str) -> bytes:
    return encode_call(BRIDGE_L2_TOKEN_ADDRESS, ["address"], [checksum(l1_token)])


def finalize_deposit(l1_sender: str, l2_receiver: str, l1_token: str, amount: int, token_data: bytes) -> bytes:
    return encode_call(
        L2_BRIDGE_FINALIZE_DEPOSIT,
        ["address", "address", "address", "uint256", "bytes"],
        [checksum(l1_sender), checksum(l2_receiver), checksum(l1_token), int(amount), bytes(token_data)],
    )


def encode_token_data(name: str, symbol: str, decimals: int) -> bytes:
    """Token metadata blob the L2 bridge expects when it first sees a token."""
    return encode(
        ["bytes", "bytes", "bytes"],
        [encode(["string"], [name]), encode(["string"], [symbol]), encode(["uint256"], [int(decimals)])],
    )


def l2_bridge_withdraw(l1_receiver: str, l2_token: str, amount: int) -> bytes:
    return encode_call(
        L2_BRIDGE_WITHDRAW, ["address", "address", "uint256"], [checksum(l1_receiver), checksum(l2_token), int(amount)]
    )


def base_token_withdraw(l1_receiver: str) -> bytes:
    return encode_call(L2_BASE_TOKEN_WITHDRAW, ["address"], [checksum(l1_receiver)])
