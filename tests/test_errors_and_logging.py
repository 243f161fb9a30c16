import json
from unittest.mock import MagicMock, patch

import pytest
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound

from errors import (
    BridgeError,
    ConfirmationTimeout,
    OnChainRevert,
    PendingOrDropped,
    Stage,
    SubmissionError,
    ValidationError,
    classify_exception,
    stage_errors,
)
from observability import build_log_context, log_event


@pytest.mark.parametrize(
    "exc, stage, expected",
    [
        (TimeExhausted("slow"), Stage.CONFIRM, ConfirmationTimeout),
        (TransactionNotFound("gone"), Stage.CONFIRM, PendingOrDropped),
        (ContractLogicError("execution reverted"), Stage.ESTIMATE, ValidationError),
        (ContractLogicError("execution reverted"), Stage.CONFIRM, OnChainRevert),
        (ValueError("nonce too low"), Stage.SUBMIT, SubmissionError),
        (ConnectionError("refused"), Stage.SUBMIT, SubmissionError),
        (RuntimeError("boom"), Stage.BUILD, BridgeError),
    ],
)
def test_classify_exception(exc, stage, expected):
    err = classify_exception(exc, stage)
    assert type(err) is expected
    assert err.cause is exc


def test_classify_passes_bridge_errors_through():
    original = ValidationError("bad")
    assert classify_exception(original, Stage.SUBMIT) is original


def test_stage_errors_chains_cause():
    with pytest.raises(BridgeError) as e:
        with stage_errors(Stage.ESTIMATE):
            raise KeyError("missing")
    assert e.value.stage is Stage.ESTIMATE
    assert isinstance(e.value.__cause__, KeyError)


def test_error_to_dict():
    err = ValidationError("amount must be > 0", data={"amount": 0})
    assert err.to_dict() == {
        "code": "validation_error",
        "message": "amount must be > 0",
        "stage": "build",
        "data": {"amount": 0},
    }
    assert str(err) == "[build] amount must be > 0"


def test_log_event_redacts_secrets():
    logger = MagicMock()
    with patch("observability.logging.get_logger", return_value=logger):
        log_event(
            "sign",
            ctx=build_log_context(wallet="0xabc", chain=None),
            data={"private_key": "0xdead", "nested": {"signature": b"\x01"}, "raw": b"\x02", "hash": "0x01"},
        )
    level, message = logger.log.call_args[0]
    payload = json.loads(message)
    assert payload["event"] == "sign"
    assert payload["wallet"] == "0xabc"
    assert "chain" not in payload
    assert payload["data"]["private_key"] == "***REDACTED***"
    assert payload["data"]["nested"]["signature"] == "***REDACTED***"
    assert payload["data"]["raw"] == "***REDACTED***"
    assert payload["data"]["hash"] == "0x01"
    assert "0xdead" not in message


def test_log_event_level():
    logger = MagicMock()
    with patch("observability.logging.get_logger", return_value=logger):
        log_event("submit_failed", data={}, level="error")
    assert logger.log.call_args[0][0] == 40
