"""
Fee and gas sizing for L1 -> L2 requests.

The base cost is what the mailbox charges (in L1 value) for executing a relayed
request on L2. It is a pure function of the L2 gas limit, the gas-per-pubdata
limit and the L1 gas price; both the on-chain view and an off-chain replica of
the mailbox formula are provided as interchangeable models. The L2 gas limit is
likewise pluggable: ask the L2 node, or derive it from calldata size.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from errors import InsufficientFundsError, Stage, UnsupportedTokenError, ValidationError, stage_errors
from observability import build_log_context, log_event
from transactions.serializer import to_rpc_dict
from transactions.types import REQUIRED_L1_TO_L2_GAS_PER_PUBDATA_LIMIT, PopulatedTransaction, TxOverrides
from transactions.utils import apply_l1_to_l2_alias, checksum, scale_gas_limit

from . import abi
from .builder import BridgeTransactionBuilder, DepositRequest, L2Call, ResolvedDeposit, resolve_deposit
from .contracts import BridgeContext

# Mailbox constants as deployed on zkSync Era; network policy, so injectable.
DEFAULT_FAIR_L2_GAS_PRICE = 500_000_000
DEFAULT_L1_GAS_PER_PUBDATA_BYTE = 17
# Fixed overhead of an L1 -> L2 request when sized without the node.
DEFAULT_L2_GAS_FIXED_COST = 300_000

L1_RECOMMENDED_MIN_ETH_DEPOSIT_GAS_LIMIT = 200_000
L1_RECOMMENDED_MIN_ERC20_DEPOSIT_GAS_LIMIT = 400_000

# Sizing amount when the caller asks for fees before choosing an amount.
DUMMY_AMOUNT = 1


@dataclass(frozen=True)
class L1FeeData:
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    @property
    def price_for_messages(self) -> int:
        """L1 gas price the mailbox will see; drives the base cost."""
        if self.max_fee_per_gas is not None:
            return self.max_fee_per_gas
        return self.gas_price or 0

    def as_overrides(self, overrides: TxOverrides) -> TxOverrides:
        return overrides.replace(
            gas_price=self.gas_price,
            max_fee_per_gas=self.max_fee_per_gas,
            max_priority_fee_per_gas=self.max_priority_fee_per_gas,
        )


@dataclass(frozen=True)
class FeeQuote:
    base_cost: int
    l1_gas_limit: int
    l2_gas_limit: int
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    gas_price: Optional[int] = None

    def __post_init__(self) -> None:
        if self.base_cost < 0 or self.l1_gas_limit < 0 or self.l2_gas_limit < 0:
            raise ValueError("base cost and gas limits must be >= 0")
        if (
            self.max_fee_per_gas is not None
            and self.max_priority_fee_per_gas is not None
            and self.max_fee_per_gas < self.max_priority_fee_per_gas
        ):
            raise ValueError("max_fee_per_gas must be >= max_priority_fee_per_gas")

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in dataclasses.asdict(self).items() if v is not None}


class BaseCostModel(Protocol):
    async def base_cost(
        self, ctx: BridgeContext, l2_gas_limit: int, gas_per_pubdata_byte: int, l1_gas_price: int
    ) -> int:
        ...


class MailboxBaseCostModel:
    """Authoritative: asks the mailbox's `l2TransactionBaseCost` view."""

    async def base_cost(
        self, ctx: BridgeContext, l2_gas_limit: int, gas_per_pubdata_byte: int, l1_gas_price: int
    ) -> int:
        data = abi.l2_transaction_base_cost(l1_gas_price, l2_gas_limit, gas_per_pubdata_byte)
        result = await ctx.l1.call(abi.call_object(ctx.contracts.mailbox, data))
        (cost,) = abi.decode_result(["uint256"], result)
        return int(cost)


@dataclass(frozen=True)
class FormulaBaseCostModel:
    """
    Off-chain replica of the mailbox formula:

        max(fair_l2_gas_price, ceil(l1_gas_price * l1_gas_per_pubdata_byte / gas_per_pubdata_byte))
            * l2_gas_limit
    """

    fair_l2_gas_price: int = DEFAULT_FAIR_L2_GAS_PRICE
    l1_gas_per_pubdata_byte: int = DEFAULT_L1_GAS_PER_PUBDATA_BYTE

    def l2_gas_price(self, l1_gas_price: int, gas_per_pubdata_byte: int) -> int:
        pubdata_price = l1_gas_price * self.l1_gas_per_pubdata_byte
        min_l2_gas_price = (pubdata_price + gas_per_pubdata_byte - 1) // gas_per_pubdata_byte
        return max(self.fair_l2_gas_price, min_l2_gas_price)

    async def base_cost(
        self, ctx: BridgeContext, l2_gas_limit: int, gas_per_pubdata_byte: int, l1_gas_price: int
    ) -> int:
        return self.l2_gas_price(l1_gas_price, gas_per_pubdata_byte) * l2_gas_limit


class L2GasEstimator(Protocol):
    async def estimate(self, ctx: BridgeContext, call: L2Call) -> int:
        ...


class NodeL2GasEstimator:
    async def estimate(self, ctx: BridgeContext, call: L2Call) -> int:
        return await ctx.l2.estimate_gas_l1_to_l2(call.to_rpc_dict())


@dataclass(frozen=True)
class PubdataL2GasModel:
    """`fixed_cost + len(calldata) * gas_per_pubdata_byte`; monotonic in calldata length."""

    fixed_cost: int = DEFAULT_L2_GAS_FIXED_COST

    async def estimate(self, ctx: BridgeContext, call: L2Call) -> int:
        return self.fixed_cost + len(call.calldata) * call.gas_per_pubdata_byte


class FeeEstimator:
    """
    Sizes bridging operations. Reads chain state, never writes it.

    Quotes are advisory: callers re-derive them at submission time when network
    conditions may have moved.
    """

    def __init__(
        self,
        base_cost_model: Optional[BaseCostModel] = None,
        l2_gas_estimator: Optional[L2GasEstimator] = None,
        *,
        default_gas_per_pubdata: int = REQUIRED_L1_TO_L2_GAS_PER_PUBDATA_LIMIT,
    ) -> None:
        self.base_cost_model: BaseCostModel = base_cost_model or MailboxBaseCostModel()
        self.l2_gas_estimator: L2GasEstimator = l2_gas_estimator or NodeL2GasEstimator()
        self.default_gas_per_pubdata = default_gas_per_pubdata

    async def l1_fee_data(self, ctx: BridgeContext, overrides: Optional[TxOverrides] = None) -> L1FeeData:
        """Explicit overrides first; otherwise the L1 fee oracle (EIP-1559 when the chain reports a base fee)."""
        o = overrides or TxOverrides()
        if o.gas_price is not None:
            return L1FeeData(gas_price=o.gas_price)
        with stage_errors(Stage.ESTIMATE):
            if o.max_fee_per_gas is not None:
                priority = o.max_priority_fee_per_gas
                if priority is None:
                    priority = min(await ctx.l1.max_priority_fee(), o.max_fee_per_gas)
                fee = L1FeeData(max_fee_per_gas=o.max_fee_per_gas, max_priority_fee_per_gas=priority)
            else:
                block = await ctx.l1.get_block("latest")
                base_fee = block.get("baseFeePerGas")
                if base_fee is None:
                    return L1FeeData(gas_price=await ctx.l1.gas_price())
                priority = o.max_priority_fee_per_gas
                if priority is None:
                    priority = await ctx.l1.max_priority_fee()
                fee = L1FeeData(max_fee_per_gas=2 * base_fee + priority, max_priority_fee_per_gas=priority)
        if (fee.max_fee_per_gas or 0) < (fee.max_priority_fee_per_gas or 0):
            raise ValidationError(
                "max_fee_per_gas must be >= max_priority_fee_per_gas",
                stage=Stage.ESTIMATE,
                data={"max_fee_per_gas": fee.max_fee_per_gas, "max_priority_fee_per_gas": fee.max_priority_fee_per_gas},
            )
        return fee

    async def base_cost(
        self,
        ctx: BridgeContext,
        l2_gas_limit: int,
        gas_per_pubdata_byte: Optional[int] = None,
        l1_gas_price: Optional[int] = None,
    ) -> int:
        gas_per_pubdata = gas_per_pubdata_byte or self.default_gas_per_pubdata
        if l2_gas_limit < 0 or gas_per_pubdata <= 0:
            raise ValidationError(
                "l2_gas_limit must be >= 0 and gas_per_pubdata_byte > 0",
                stage=Stage.ESTIMATE,
                data={"l2_gas_limit": l2_gas_limit, "gas_per_pubdata_byte": gas_per_pubdata},
            )
        if l1_gas_price is None:
            l1_gas_price = (await self.l1_fee_data(ctx)).price_for_messages
        with stage_errors(Stage.ESTIMATE):
            return await self.base_cost_model.base_cost(ctx, l2_gas_limit, gas_per_pubdata, l1_gas_price)

    async def l2_gas_limit(self, ctx: BridgeContext, call: L2Call) -> int:
        with stage_errors(Stage.ESTIMATE):
            return int(await self.l2_gas_estimator.estimate(ctx, call))

    async def token_data(self, ctx: BridgeContext, token: str) -> bytes:
        """ERC-20 metadata the L2 bridge needs to deploy the token's L2 counterpart."""
        try:
            (name,) = abi.decode_result(["string"], await ctx.l1.call(abi.call_object(token, abi.selector(abi.ERC20_NAME))))
            (symbol,) = abi.decode_result(["string"], await ctx.l1.call(abi.call_object(token, abi.selector(abi.ERC20_SYMBOL))))
            (decimals,) = abi.decode_result(["uint8"], await ctx.l1.call(abi.call_object(token, abi.selector(abi.ERC20_DECIMALS))))
        except Exception as e:
            raise UnsupportedTokenError(
                f"Token {token} does not expose ERC-20 metadata", data={"token": token}, cause=e
            ) from e
        return abi.encode_token_data(name, symbol, decimals)

    async def l2_bridge_for(self, ctx: BridgeContext, l1_bridge: str) -> str:
        if l1_bridge.lower() == ctx.contracts.erc20_l1.lower():
            return ctx.contracts.erc20_l2
        if ctx.contracts.weth_l1 and ctx.contracts.weth_l2 and l1_bridge.lower() == ctx.contracts.weth_l1.lower():
            return ctx.contracts.weth_l2
        try:
            (l2_bridge,) = abi.decode_result(
                ["address"], await ctx.l1.call(abi.call_object(l1_bridge, abi.selector(abi.L1_BRIDGE_L2_BRIDGE)))
            )
        except Exception as e:
            raise UnsupportedTokenError(
                f"Bridge {l1_bridge} does not report its L2 counterpart", data={"bridge": l1_bridge}, cause=e
            ) from e
        return checksum(l2_bridge)

    async def deposit_l2_call(self, ctx: BridgeContext, deposit: ResolvedDeposit) -> L2Call:
        if deposit.is_native:
            return L2Call(
                caller=ctx.sender,
                contract=deposit.to,
                calldata=b"",
                l2_value=deposit.amount,
                gas_per_pubdata_byte=deposit.gas_per_pubdata_byte,
            )
        l1_bridge = deposit.bridge_address or ctx.contracts.erc20_l1
        l2_bridge = await self.l2_bridge_for(ctx, l1_bridge)
        token_data = await self.token_data(ctx, deposit.token)
        calldata = abi.finalize_deposit(ctx.sender, deposit.to, deposit.token, deposit.amount, token_data)
        return L2Call(
            caller=apply_l1_to_l2_alias(l1_bridge),
            contract=l2_bridge,
            calldata=calldata,
            l2_value=0,
            gas_per_pubdata_byte=deposit.gas_per_pubdata_byte,
        )

    async def deposit_l2_gas_limit(self, ctx: BridgeContext, deposit: ResolvedDeposit) -> int:
        if deposit.l2_gas_limit is not None:
            return deposit.l2_gas_limit
        return await self.l2_gas_limit(ctx, await self.deposit_l2_call(ctx, deposit))

    async def estimate_l1_gas(self, ctx: BridgeContext, tx: PopulatedTransaction) -> int:
        """Raw `eth_estimateGas` of an L1 transaction, explicit gas prices stripped."""
        bare = tx.replace(gas_price=None, max_fee_per_gas=None, max_priority_fee_per_gas=None, gas_limit=None)
        with stage_errors(Stage.ESTIMATE):
            return await ctx.l1.estimate_gas(to_rpc_dict(bare))

    async def estimate_gas_deposit(self, ctx: BridgeContext, tx: PopulatedTransaction) -> int:
        return scale_gas_limit(await self.estimate_l1_gas(ctx, tx))

    @staticmethod
    def recommended_deposit_gas_limit(estimate: int, *, native: bool) -> int:
        floor = L1_RECOMMENDED_MIN_ETH_DEPOSIT_GAS_LIMIT if native else L1_RECOMMENDED_MIN_ERC20_DEPOSIT_GAS_LIMIT
        return max(estimate, floor)

    async def estimate_deposit(self, ctx: BridgeContext, request: DepositRequest) -> FeeQuote:
        """
        Full fee required to deposit: base cost, L1 and L2 gas limits, L1 gas prices.

        Sized with a dummy amount of 1 when the request carries none. Balance and
        allowance are checked best-effort; the contracts have the final say.
        """
        if request.amount is None:
            request = dataclasses.replace(request, amount=DUMMY_AMOUNT)
        deposit = resolve_deposit(request, ctx, default_gas_per_pubdata=self.default_gas_per_pubdata)
        fee = await self.l1_fee_data(ctx, deposit.overrides)
        l2_gas_limit = await self.deposit_l2_gas_limit(ctx, deposit)
        base_cost = await self.base_cost(ctx, l2_gas_limit, deposit.gas_per_pubdata_byte, fee.price_for_messages)

        with stage_errors(Stage.ESTIMATE):
            balance = await ctx.l1.get_balance(ctx.sender)
        required = base_cost + deposit.operator_tip + (deposit.amount if deposit.is_native else 0)
        if required > balance:
            raise InsufficientFundsError(
                "Not enough balance for deposit",
                data={"required": required, "balance": balance, "base_cost": base_cost},
            )
        if not deposit.is_native:
            bridge = deposit.bridge_address or ctx.contracts.erc20_l1
            with stage_errors(Stage.ESTIMATE):
                raw = await ctx.l1.call(abi.call_object(deposit.token, abi.allowance(ctx.sender, bridge)))
            (allowance,) = abi.decode_result(["uint256"], raw)
            if allowance < deposit.amount:
                raise InsufficientFundsError(
                    "Not enough allowance to cover the deposit",
                    data={"token": deposit.token, "allowance": allowance, "amount": deposit.amount},
                )

        sized = dataclasses.replace(request, l2_gas_limit=l2_gas_limit, overrides=fee.as_overrides(deposit.overrides))
        tx = await BridgeTransactionBuilder(self).build_deposit_tx(ctx, sized, approve=False)
        l1_gas_limit = await self.estimate_gas_deposit(ctx, tx)
        quote = FeeQuote(
            base_cost=base_cost,
            l1_gas_limit=l1_gas_limit,
            l2_gas_limit=l2_gas_limit,
            max_fee_per_gas=fee.max_fee_per_gas,
            max_priority_fee_per_gas=fee.max_priority_fee_per_gas,
            gas_price=fee.gas_price,
        )
        log_event(
            "estimate_deposit",
            ctx=build_log_context(sender=ctx.sender),
            data={"token": deposit.token, **quote.to_dict()},
        )
        return quote
