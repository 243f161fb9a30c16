from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from errors import BridgeError, Stage
from transactions.utils import addresses_equal

from .abi import NEW_PRIORITY_REQUEST_TOPIC

WORD = 32


@dataclass(frozen=True)
class PriorityOp:
    """Position of an L1 -> L2 request in the priority queue and its L2 hash."""

    tx_id: int
    l2_hash: str
    expiration_timestamp: int


def parse_priority_op(receipt: Dict[str, Any], mailbox: Optional[str] = None) -> PriorityOp:
    """
    Read the mailbox's `NewPriorityRequest` event out of an L1 receipt.

    The event's head words are (txId, txHash, expirationTimestamp); the L2
    transaction hash is the second word, committed by the mailbox when it
    enqueued the request.
    """
    for log in receipt.get("logs", []):
        topics = log.get("topics") or []
        if not topics or topics[0].lower() != NEW_PRIORITY_REQUEST_TOPIC:
            continue
        if mailbox is not None and not addresses_equal(log.get("address", ""), mailbox):
            continue
        data = bytes(log.get("data") or b"")
        if len(data) < 3 * WORD:
            raise BridgeError(
                "NewPriorityRequest log is truncated",
                stage=Stage.CONFIRM,
                data={"length": len(data)},
            )
        return PriorityOp(
            tx_id=int.from_bytes(data[0:WORD], "big"),
            l2_hash="0x" + data[WORD : 2 * WORD].hex(),
            expiration_timestamp=int.from_bytes(data[2 * WORD : 3 * WORD], "big"),
        )
    raise BridgeError(
        "L1 receipt carries no NewPriorityRequest event",
        stage=Stage.CONFIRM,
        data={"transactionHash": receipt.get("transactionHash"), "mailbox": mailbox},
    )
