from .builder import Approver, BridgeTransactionBuilder, DepositRequest, L2Call, RequestExecuteRequest
from .contracts import BridgeContext, BridgeContractResolver, BridgeContractSet
from .fees import (
    FeeEstimator,
    FeeQuote,
    FormulaBaseCostModel,
    L1FeeData,
    MailboxBaseCostModel,
    NodeL2GasEstimator,
    PubdataL2GasModel,
)
from .priority import PriorityOp, parse_priority_op

__all__ = [
    "Approver",
    "BridgeContext",
    "BridgeContractResolver",
    "BridgeContractSet",
    "BridgeTransactionBuilder",
    "DepositRequest",
    "FeeEstimator",
    "FeeQuote",
    "FormulaBaseCostModel",
    "L1FeeData",
    "L2Call",
    "MailboxBaseCostModel",
    "NodeL2GasEstimator",
    "PriorityOp",
    "PubdataL2GasModel",
    "RequestExecuteRequest",
    "parse_priority_op",
]
