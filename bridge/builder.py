from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple

from errors import ApprovalFailedError, Stage, ValidationError, stage_errors
from observability import build_log_context, log_event
from transactions.types import (
    EIP1559_TX_TYPE,
    LEGACY_TX_TYPE,
    REQUIRED_L1_TO_L2_GAS_PER_PUBDATA_LIMIT,
    L2CallParams,
    PopulatedTransaction,
    TxOverrides,
)
from transactions.utils import NATIVE_TOKEN_ADDRESS, checksum, is_hex_address, is_native_token, to_bytes

from . import abi
from .contracts import BridgeContext

if TYPE_CHECKING:
    from .fees import FeeEstimator, L1FeeData

# Submits an ERC-20 approval (token, spender, amount) and returns once it is included.
Approver = Callable[[str, str, int], Awaitable[object]]


@dataclass(frozen=True)
class DepositRequest:
    """
    Caller-facing deposit parameters. Unset fields take documented defaults:

    - to, refund_recipient: the wallet's address
    - operator_tip: 0
    - l2_gas_limit: estimated
    - gas_per_pubdata_byte: the L1 -> L2 required limit (800)
    - bridge_address: the default ERC-20 bridge
    """

    token: str
    amount: Optional[int] = None
    to: Optional[str] = None
    refund_recipient: Optional[str] = None
    operator_tip: int = 0
    l2_gas_limit: Optional[int] = None
    gas_per_pubdata_byte: Optional[int] = None
    bridge_address: Optional[str] = None
    approve_erc20: bool = False
    approve_overrides: Optional[TxOverrides] = None
    overrides: TxOverrides = field(default_factory=TxOverrides)


@dataclass(frozen=True)
class ResolvedDeposit:
    token: str
    amount: int
    to: str
    refund_recipient: str
    operator_tip: int
    l2_gas_limit: Optional[int]
    gas_per_pubdata_byte: int
    bridge_address: Optional[str]
    approve_erc20: bool
    approve_overrides: Optional[TxOverrides]
    overrides: TxOverrides

    @property
    def is_native(self) -> bool:
        return is_native_token(self.token)


@dataclass(frozen=True)
class L2Call:
    """The L2 execution an L1 -> L2 request will trigger, as seen by the L2 node."""

    caller: str
    contract: str
    calldata: bytes = b""
    l2_value: int = 0
    gas_per_pubdata_byte: int = REQUIRED_L1_TO_L2_GAS_PER_PUBDATA_LIMIT
    factory_deps: Tuple[bytes, ...] = ()

    def to_rpc_dict(self) -> Dict[str, Any]:
        return {
            "from": checksum(self.caller),
            "to": checksum(self.contract),
            "data": "0x" + self.calldata.hex(),
            "value": hex(self.l2_value),
            "eip712Meta": {
                "gasPerPubdata": hex(self.gas_per_pubdata_byte),
                "factoryDeps": [list(d) for d in self.factory_deps],
            },
        }


@dataclass(frozen=True)
class RequestExecuteRequest:
    contract_address: str
    calldata: bytes = b""
    l2_value: int = 0
    l2_gas_limit: Optional[int] = None
    gas_per_pubdata_byte: Optional[int] = None
    operator_tip: int = 0
    factory_deps: Tuple[bytes, ...] = ()
    refund_recipient: Optional[str] = None
    overrides: TxOverrides = field(default_factory=TxOverrides)


def _address(value: Optional[str], default: str, name: str) -> str:
    v = value if value is not None else default
    if not is_hex_address(v):
        raise ValidationError(f"{name} must be a 0x-prefixed 20-byte hex address", stage=Stage.BUILD, data={name: v})
    return checksum(v)


def _non_negative(values: Sequence[Tuple[str, Optional[int]]]) -> None:
    for name, v in values:
        if v is not None and v < 0:
            raise ValidationError(f"{name} must be >= 0", stage=Stage.BUILD, data={name: v})


def resolve_deposit(request: DepositRequest, ctx: BridgeContext, *, default_gas_per_pubdata: int) -> ResolvedDeposit:
    """Fill every default so nothing downstream needs to ask whether a field was set."""
    if request.amount is None or request.amount <= 0:
        raise ValidationError("amount must be > 0", stage=Stage.BUILD, data={"amount": request.amount})
    if not is_hex_address(request.token):
        raise ValidationError(
            "token must be the native sentinel or an ERC-20 address", stage=Stage.BUILD, data={"token": request.token}
        )
    _non_negative([("operator_tip", request.operator_tip), ("l2_gas_limit", request.l2_gas_limit)])
    token = NATIVE_TOKEN_ADDRESS if is_native_token(request.token) else checksum(request.token)
    return ResolvedDeposit(
        token=token,
        amount=int(request.amount),
        to=_address(request.to, ctx.wallet_address, "to"),
        refund_recipient=_address(request.refund_recipient, ctx.wallet_address, "refund_recipient"),
        operator_tip=int(request.operator_tip),
        l2_gas_limit=request.l2_gas_limit,
        gas_per_pubdata_byte=request.gas_per_pubdata_byte or default_gas_per_pubdata,
        bridge_address=_address(request.bridge_address, "", "bridge_address") if request.bridge_address else None,
        approve_erc20=request.approve_erc20,
        approve_overrides=request.approve_overrides,
        overrides=request.overrides,
    )


class BridgeTransactionBuilder:
    """
    Assembles the L1 transaction for a deposit or an arbitrary L1 -> L2 request.

    Output is unsigned and, unless overridden, carries no nonce or gas limit;
    the wallet fills those at submission time. The only state-changing side
    effect is the optional ERC-20 approval, delegated to `approver` and sent
    only once the deposit itself has been fully priced and validated.
    """

    def __init__(self, estimator: "FeeEstimator", approver: Optional[Approver] = None) -> None:
        self.estimator = estimator
        self.approver = approver

    async def build_deposit_tx(
        self, ctx: BridgeContext, request: DepositRequest, *, approve: bool = True
    ) -> PopulatedTransaction:
        deposit = resolve_deposit(request, ctx, default_gas_per_pubdata=self.estimator.default_gas_per_pubdata)
        if deposit.is_native:
            tx = await self._native_deposit(ctx, deposit)
        else:
            bridge = deposit.bridge_address or ctx.contracts.erc20_l1
            # fees and value are settled before the approval touches L1
            tx = await self._erc20_deposit(ctx, deposit, bridge)
            if approve and deposit.approve_erc20:
                await self.ensure_allowance(ctx, deposit.token, bridge, deposit.amount)
        log_event(
            "build_deposit",
            ctx=build_log_context(sender=ctx.sender),
            data={"token": deposit.token, "amount": deposit.amount, "to": tx.to, "value": tx.value},
        )
        return tx

    async def build_request_execute_tx(self, ctx: BridgeContext, request: RequestExecuteRequest) -> PopulatedTransaction:
        contract = _address(request.contract_address, "", "contract_address")
        refund = _address(request.refund_recipient, ctx.wallet_address, "refund_recipient")
        _non_negative(
            [
                ("l2_value", request.l2_value),
                ("operator_tip", request.operator_tip),
                ("l2_gas_limit", request.l2_gas_limit),
            ]
        )
        gas_per_pubdata = request.gas_per_pubdata_byte or self.estimator.default_gas_per_pubdata
        calldata = to_bytes(request.calldata, name="calldata")
        factory_deps = tuple(bytes(d) for d in request.factory_deps)

        fee = await self.estimator.l1_fee_data(ctx, request.overrides)
        l2_gas_limit = request.l2_gas_limit
        if l2_gas_limit is None:
            l2_gas_limit = await self.estimator.l2_gas_limit(
                ctx,
                L2Call(
                    caller=ctx.sender,
                    contract=contract,
                    calldata=calldata,
                    l2_value=request.l2_value,
                    gas_per_pubdata_byte=gas_per_pubdata,
                    factory_deps=factory_deps,
                ),
            )
        base_cost = await self.estimator.base_cost(ctx, l2_gas_limit, gas_per_pubdata, fee.price_for_messages)
        value = self._value(request.overrides, base_cost, request.operator_tip + request.l2_value)
        data = abi.request_l2_transaction(
            contract, request.l2_value, calldata, l2_gas_limit, gas_per_pubdata, factory_deps, refund
        )
        l2_call = L2CallParams(
            contract_address=contract,
            calldata=calldata,
            l2_value=request.l2_value,
            l2_gas_limit=l2_gas_limit,
            gas_per_pubdata_byte=gas_per_pubdata,
            refund_recipient=refund,
            operator_tip=request.operator_tip,
            factory_deps=factory_deps,
        )
        tx = await self._l1_tx(ctx, ctx.contracts.mailbox, value, data, fee, request.overrides, l2_call)
        log_event(
            "build_request_execute",
            ctx=build_log_context(sender=ctx.sender),
            data={"contract": contract, "l2_value": request.l2_value, "value": value, "l2_gas_limit": l2_gas_limit},
        )
        return tx

    async def ensure_allowance(self, ctx: BridgeContext, token: str, spender: str, amount: int) -> bool:
        """
        Approve `spender` for `amount` when the current allowance is short.

        Returns True when an approval was submitted (and confirmed). Any failure
        aborts with `ApprovalFailedError`; no deposit is built after it.
        """
        with stage_errors(Stage.BUILD):
            raw = await ctx.l1.call(abi.call_object(token, abi.allowance(ctx.sender, spender)))
        (current,) = abi.decode_result(["uint256"], raw)
        if current >= amount:
            return False
        if self.approver is None:
            raise ApprovalFailedError(
                "Allowance is below the deposit amount and no approver is configured",
                data={"token": token, "allowance": current, "amount": amount},
            )
        log_event(
            "approval_start",
            ctx=build_log_context(sender=ctx.sender),
            data={"token": token, "spender": spender, "amount": amount, "allowance": current},
        )
        try:
            await self.approver(token, spender, amount)
        except Exception as e:
            log_event(
                "approval_failed",
                ctx=build_log_context(sender=ctx.sender),
                data={"token": token, "error": str(e)},
                level="warning",
            )
            raise ApprovalFailedError(
                f"ERC-20 approval did not confirm: {e}",
                data={"token": token, "spender": spender, "amount": amount},
                cause=e,
            ) from e
        log_event("approval_confirmed", ctx=build_log_context(sender=ctx.sender), data={"token": token})
        return True

    async def _native_deposit(self, ctx: BridgeContext, deposit: ResolvedDeposit) -> PopulatedTransaction:
        fee = await self.estimator.l1_fee_data(ctx, deposit.overrides)
        l2_gas_limit = await self.estimator.deposit_l2_gas_limit(ctx, deposit)
        base_cost = await self.estimator.base_cost(ctx, l2_gas_limit, deposit.gas_per_pubdata_byte, fee.price_for_messages)
        value = self._value(deposit.overrides, base_cost, deposit.operator_tip + deposit.amount)
        data = abi.request_l2_transaction(
            deposit.to, deposit.amount, b"", l2_gas_limit, deposit.gas_per_pubdata_byte, [], deposit.refund_recipient
        )
        l2_call = self._deposit_call(deposit, l2_gas_limit, l2_value=deposit.amount)
        return await self._l1_tx(ctx, ctx.contracts.mailbox, value, data, fee, deposit.overrides, l2_call)

    async def _erc20_deposit(self, ctx: BridgeContext, deposit: ResolvedDeposit, bridge: str) -> PopulatedTransaction:
        fee = await self.estimator.l1_fee_data(ctx, deposit.overrides)
        l2_gas_limit = await self.estimator.deposit_l2_gas_limit(ctx, deposit)
        base_cost = await self.estimator.base_cost(ctx, l2_gas_limit, deposit.gas_per_pubdata_byte, fee.price_for_messages)
        value = self._value(deposit.overrides, base_cost, deposit.operator_tip)
        data = abi.bridge_deposit(
            deposit.to,
            deposit.token,
            deposit.amount,
            l2_gas_limit,
            deposit.gas_per_pubdata_byte,
            deposit.refund_recipient,
        )
        l2_call = self._deposit_call(deposit, l2_gas_limit, l2_value=0)
        return await self._l1_tx(ctx, bridge, value, data, fee, deposit.overrides, l2_call)

    @staticmethod
    def _deposit_call(deposit: ResolvedDeposit, l2_gas_limit: int, *, l2_value: int) -> L2CallParams:
        return L2CallParams(
            contract_address=deposit.to,
            calldata=b"",
            l2_value=l2_value,
            l2_gas_limit=l2_gas_limit,
            gas_per_pubdata_byte=deposit.gas_per_pubdata_byte,
            refund_recipient=deposit.refund_recipient,
            operator_tip=deposit.operator_tip,
            token=deposit.token,
            amount=deposit.amount,
        )

    @staticmethod
    def _value(overrides: TxOverrides, base_cost: int, extra: int) -> int:
        value = overrides.value if overrides.value is not None else base_cost + extra
        if value < base_cost:
            raise ValidationError(
                "The base cost of performing the priority operation is higher than the provided value",
                stage=Stage.BUILD,
                data={"base_cost": base_cost, "value": value},
            )
        return value

    @staticmethod
    async def _l1_tx(
        ctx: BridgeContext,
        to: str,
        value: int,
        data: bytes,
        fee: "L1FeeData",
        overrides: TxOverrides,
        l2_call: L2CallParams,
    ) -> PopulatedTransaction:
        with stage_errors(Stage.BUILD):
            chain_id = await ctx.l1.chain_id()
        tx_type = LEGACY_TX_TYPE if fee.gas_price is not None else EIP1559_TX_TYPE
        return PopulatedTransaction(
            tx_type=tx_type,
            to=checksum(to),
            value=value,
            data=data,
            from_=ctx.sender,
            chain_id=chain_id,
            nonce=overrides.nonce,
            gas_limit=overrides.gas_limit,
            gas_price=fee.gas_price,
            max_fee_per_gas=fee.max_fee_per_gas,
            max_priority_fee_per_gas=fee.max_priority_fee_per_gas,
            l2_call=l2_call,
        )
