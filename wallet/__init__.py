from .nonce import NonceManager
from .receipts import PriorityOpHandle, TransactionHandle, TxState, poll_receipt
from .wallet import Wallet

__all__ = [
    "NonceManager",
    "PriorityOpHandle",
    "TransactionHandle",
    "TxState",
    "Wallet",
    "poll_receipt",
]
