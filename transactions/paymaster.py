from __future__ import annotations

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector

from .types import PaymasterParams
from .utils import checksum

APPROVAL_BASED_SIGNATURE = "approvalBased(address,uint256,bytes)"
GENERAL_SIGNATURE = "general(bytes)"


def approval_based_paymaster(
    paymaster: str,
    token: str,
    minimal_allowance: int,
    inner_input: bytes = b"",
) -> PaymasterParams:
    """
    Paymaster that takes an ERC-20 allowance from the account in exchange for
    covering the fee in the native asset.
    """
    if minimal_allowance < 0:
        raise ValueError("minimal_allowance must be >= 0")
    payload = function_signature_to_4byte_selector(APPROVAL_BASED_SIGNATURE) + encode(
        ["address", "uint256", "bytes"], [checksum(token), int(minimal_allowance), bytes(inner_input)]
    )
    return PaymasterParams(paymaster=checksum(paymaster), paymaster_input=payload)


def general_paymaster(paymaster: str, inner_input: bytes = b"") -> PaymasterParams:
    payload = function_signature_to_4byte_selector(GENERAL_SIGNATURE) + encode(["bytes"], [bytes(inner_input)])
    return PaymasterParams(paymaster=checksum(paymaster), paymaster_input=payload)
