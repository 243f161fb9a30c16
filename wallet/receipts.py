from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional

from bridge.priority import PriorityOp, parse_priority_op
from errors import ConfirmationTimeout, OnChainRevert, PendingOrDropped, Stage, stage_errors
from observability import log_event
from providers.base import L1Provider, L2Provider
from transactions.types import SignedTransaction

DEFAULT_POLL_INTERVAL_SEC = 1.0


class TxState(Enum):
    """Lifecycle of one submitted transaction."""

    BUILT = "built"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    INCLUDED = "included"
    FAILED = "failed"
    FINALIZED_ON_L2 = "finalized_on_l2"


def _deadline(timeout: Optional[float]) -> Optional[float]:
    if timeout is None:
        return None
    return asyncio.get_running_loop().time() + float(timeout)


def _remaining(deadline: Optional[float]) -> Optional[float]:
    if deadline is None:
        return None
    return deadline - asyncio.get_running_loop().time()


async def poll_receipt(
    provider: L1Provider,
    tx_hash: str,
    *,
    deadline: Optional[float],
    poll_interval: float,
) -> Dict[str, Any]:
    """Poll until the receipt has a block number or the deadline passes."""
    while True:
        with stage_errors(Stage.CONFIRM):
            receipt = await provider.get_transaction_receipt(tx_hash)
        if receipt is not None and receipt.get("blockNumber") is not None:
            return receipt
        left = _remaining(deadline)
        if left is not None and left <= 0:
            raise ConfirmationTimeout(
                f"Transaction {tx_hash} not included before timeout",
                data={"hash": tx_hash},
            )
        await asyncio.sleep(poll_interval if left is None else max(0.0, min(poll_interval, left)))


class TransactionHandle:
    """
    A submitted transaction. `wait` is the single poll-until-included primitive.

    Abandoning a wait (cancel or timeout) never retracts the transaction; a
    timed-out wait is safe to call again.
    """

    def __init__(
        self,
        tx_hash: str,
        provider: L1Provider,
        *,
        signed: Optional[SignedTransaction] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SEC,
        log_ctx: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.hash = tx_hash
        self.provider = provider
        self.signed = signed
        self.poll_interval = poll_interval
        self.receipt: Optional[Dict[str, Any]] = None
        self.history: List[TxState] = [TxState.BUILT, TxState.SIGNED, TxState.SUBMITTED]
        self._log_ctx = dict(log_ctx or {})

    def __repr__(self) -> str:
        return f"{type(self).__name__}(hash={self.hash}, state={self.state.value})"

    @property
    def state(self) -> TxState:
        return self.history[-1]

    def _advance(self, state: TxState) -> None:
        if self.history[-1] is not state:
            self.history.append(state)

    def _settle(self, receipt: Dict[str, Any]) -> Dict[str, Any]:
        self.receipt = receipt
        if receipt.get("status") == 0:
            self._advance(TxState.FAILED)
            log_event("confirm_failed", ctx=self._log_ctx, data={"hash": self.hash}, level="warning")
            raise OnChainRevert(
                f"Transaction {self.hash} reverted",
                data={"hash": self.hash, "blockNumber": receipt.get("blockNumber")},
            )
        self._advance(TxState.INCLUDED)
        log_event("confirm", ctx=self._log_ctx, data={"hash": self.hash, "blockNumber": receipt.get("blockNumber")})
        return receipt

    async def get_receipt(self) -> Dict[str, Any]:
        """One poll. Absence is reported as `PendingOrDropped`, never as failure."""
        with stage_errors(Stage.CONFIRM):
            receipt = await self.provider.get_transaction_receipt(self.hash)
        if receipt is None or receipt.get("blockNumber") is None:
            raise PendingOrDropped(f"No receipt yet for {self.hash}", data={"hash": self.hash})
        return self._settle(receipt)

    async def wait(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        receipt = await poll_receipt(
            self.provider, self.hash, deadline=_deadline(timeout), poll_interval=self.poll_interval
        )
        return self._settle(receipt)


class PriorityOpHandle(TransactionHandle):
    """
    L1 transaction that enqueued an L1 -> L2 request.

    Inclusion on L1 is necessary, not sufficient: `wait_finalized` also follows
    the derived L2 transaction until the L2 has executed it.
    """

    def __init__(
        self,
        tx_hash: str,
        provider: L1Provider,
        l2: L2Provider,
        *,
        mailbox: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(tx_hash, provider, **kwargs)
        self.l2 = l2
        self.mailbox = mailbox
        self.priority_op: Optional[PriorityOp] = None
        self.l2_receipt: Optional[Dict[str, Any]] = None

    async def get_priority_op(self, timeout: Optional[float] = None) -> PriorityOp:
        if self.priority_op is None:
            receipt = self.receipt if self.receipt is not None else await self.wait(timeout)
            self.priority_op = parse_priority_op(receipt, self.mailbox)
        return self.priority_op

    async def l2_hash(self, timeout: Optional[float] = None) -> str:
        return (await self.get_priority_op(timeout)).l2_hash

    async def wait_finalized(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        deadline = _deadline(timeout)
        if self.receipt is None:
            self._settle(
                await poll_receipt(self.provider, self.hash, deadline=deadline, poll_interval=self.poll_interval)
            )
        op = await self.get_priority_op()
        l2_receipt = await poll_receipt(self.l2, op.l2_hash, deadline=deadline, poll_interval=self.poll_interval)
        self.l2_receipt = l2_receipt
        if l2_receipt.get("status") == 0:
            self._advance(TxState.FAILED)
            raise OnChainRevert(
                f"L2 execution of priority op {op.tx_id} reverted",
                data={"l1_hash": self.hash, "l2_hash": op.l2_hash},
            )
        self._advance(TxState.FINALIZED_ON_L2)
        log_event(
            "finalized_on_l2",
            ctx=self._log_ctx,
            data={"l1_hash": self.hash, "l2_hash": op.l2_hash, "tx_id": op.tx_id},
        )
        return l2_receipt
