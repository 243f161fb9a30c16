from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, Optional

from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound, Web3Exception


class Stage(Enum):
    """Bridging pipeline stage where a failure happened."""

    ESTIMATE = "estimate"
    BUILD = "build"
    SIGN = "sign"
    SUBMIT = "submit"
    CONFIRM = "confirm"


class BridgeError(Exception):
    """
    Base error for every failure surfaced by the wallet.

    `stage` identifies which step failed; the underlying error (if any) is kept
    as `cause` and chained through `__cause__`.
    """

    code = "bridge_error"
    default_stage = Stage.BUILD

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[Stage] = None,
        data: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.data: Dict[str, Any] = dict(data or {})
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"[{self.stage.value}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "stage": self.stage.value,
            "data": self.data,
        }


class ValidationError(BridgeError):
    code = "validation_error"


class UnsupportedTokenError(ValidationError):
    code = "unsupported_token"
    default_stage = Stage.ESTIMATE


class NonceConflictError(ValidationError):
    code = "nonce_conflict"
    default_stage = Stage.SIGN


class InsufficientFundsError(BridgeError):
    code = "insufficient_funds"
    default_stage = Stage.ESTIMATE


class IncompleteTransactionError(BridgeError):
    code = "incomplete_transaction"
    default_stage = Stage.SIGN

    def __init__(self, field: str, **kwargs: Any) -> None:
        data = dict(kwargs.pop("data", None) or {})
        data["field"] = field
        super().__init__(f"Transaction is missing required field '{field}'", data=data, **kwargs)
        self.field = field


class ApprovalFailedError(BridgeError):
    code = "approval_failed"


class SubmissionError(BridgeError):
    code = "submission_error"
    default_stage = Stage.SUBMIT


class PendingOrDropped(BridgeError):
    code = "pending_or_dropped"
    default_stage = Stage.CONFIRM


class ConfirmationTimeout(PendingOrDropped, TimeoutError):
    code = "confirmation_timeout"


class OnChainRevert(BridgeError):
    code = "onchain_revert"
    default_stage = Stage.CONFIRM


def classify_exception(e: BaseException, stage: Stage) -> BridgeError:
    """
    Map provider / web3 failures into the bridge error taxonomy.

    Errors that are already `BridgeError` pass through untouched.
    """
    if isinstance(e, BridgeError):
        return e
    if isinstance(e, TimeExhausted):
        return ConfirmationTimeout(str(e), stage=Stage.CONFIRM, cause=e)
    if isinstance(e, TransactionNotFound):
        return PendingOrDropped(str(e), stage=Stage.CONFIRM, cause=e)
    if isinstance(e, ContractLogicError):
        if stage in (Stage.ESTIMATE, Stage.BUILD):
            return ValidationError(f"Contract call reverted: {e}", stage=stage, cause=e)
        return OnChainRevert(f"Contract call reverted: {e}", stage=stage, cause=e)
    if stage == Stage.SUBMIT and isinstance(e, (Web3Exception, ValueError, ConnectionError)):
        return SubmissionError(f"Node rejected transaction: {e}", stage=stage, cause=e)
    return BridgeError(str(e) or type(e).__name__, stage=stage, cause=e)


@contextmanager
def stage_errors(stage: Stage) -> Iterator[None]:
    """Re-raise provider failures as `BridgeError`s tagged with `stage`, chaining the original."""
    try:
        yield
    except BridgeError:
        raise
    except Exception as e:
        raise classify_exception(e, stage) from e
