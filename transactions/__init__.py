from .eip712 import hash_bytecode, signed_digest
from .paymaster import approval_based_paymaster, general_paymaster
from .serializer import serialize, signing_digest, to_rpc_dict, transaction_hash
from .types import (
    DEFAULT_GAS_PER_PUBDATA_LIMIT,
    EIP712_TX_TYPE,
    EIP1559_TX_TYPE,
    LEGACY_TX_TYPE,
    REQUIRED_L1_TO_L2_GAS_PER_PUBDATA_LIMIT,
    Eip712Meta,
    L2CallParams,
    PaymasterParams,
    PopulatedTransaction,
    SignedTransaction,
    TxOverrides,
    TxSignature,
)
from .utils import L2_BASE_TOKEN_ADDRESS, NATIVE_TOKEN_ADDRESS, is_native_token

__all__ = [
    "DEFAULT_GAS_PER_PUBDATA_LIMIT",
    "EIP712_TX_TYPE",
    "EIP1559_TX_TYPE",
    "LEGACY_TX_TYPE",
    "L2_BASE_TOKEN_ADDRESS",
    "NATIVE_TOKEN_ADDRESS",
    "REQUIRED_L1_TO_L2_GAS_PER_PUBDATA_LIMIT",
    "Eip712Meta",
    "L2CallParams",
    "PaymasterParams",
    "PopulatedTransaction",
    "SignedTransaction",
    "TxOverrides",
    "TxSignature",
    "approval_based_paymaster",
    "general_paymaster",
    "hash_bytecode",
    "is_native_token",
    "serialize",
    "signed_digest",
    "signing_digest",
    "to_rpc_dict",
    "transaction_hash",
]
