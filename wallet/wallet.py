"""
Wallet facade: deposit / request-execute on L1, transfer / withdraw on L2.

A wallet binds a signer to an L2 provider and, for bridging, an L1 provider.
The logical address is the signer's (an account contract for
account-abstraction wallets); L1 transactions are always signed by a plain
key signer, since the settlement layer only accepts ECDSA envelopes.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Dict, Optional, Sequence

from bridge import abi
from bridge.builder import BridgeTransactionBuilder, DepositRequest, RequestExecuteRequest
from bridge.contracts import BridgeContext, BridgeContractResolver, BridgeContractSet
from bridge.fees import FeeEstimator, FeeQuote
from errors import BridgeError, Stage, ValidationError, stage_errors
from observability import build_log_context, log_event
from providers.base import L1Provider, L2Provider
from signing.account_abstraction import AccountAbstractionSigner
from signing.base import Signer
from signing.private_key import PrivateKeySigner
from transactions.serializer import to_rpc_dict
from transactions.types import (
    DEFAULT_GAS_PER_PUBDATA_LIMIT,
    EIP712_TX_TYPE,
    EIP1559_TX_TYPE,
    LEGACY_TX_TYPE,
    Eip712Meta,
    PaymasterParams,
    PopulatedTransaction,
    SignedTransaction,
    TxOverrides,
)
from transactions.utils import L2_BASE_TOKEN_ADDRESS, checksum, is_hex_address, is_native_token

from .nonce import NonceManager
from .receipts import DEFAULT_POLL_INTERVAL_SEC, PriorityOpHandle, TransactionHandle


class Wallet:
    """
    Bridging-capable wallet over one L2 (and optionally one L1) endpoint.

    Rebinding (`connect`, `connect_l1`) returns a new wallet sharing the signer,
    the contract resolver and the nonce manager.
    """

    def __init__(
        self,
        signer: Signer,
        l2: L2Provider,
        l1: Optional[L1Provider] = None,
        *,
        l1_signer: Optional[Signer] = None,
        paymaster: Optional[PaymasterParams] = None,
        fee_estimator: Optional[FeeEstimator] = None,
        resolver: Optional[BridgeContractResolver] = None,
        nonce_manager: Optional[NonceManager] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SEC,
    ) -> None:
        if not isinstance(signer, Signer):
            raise TypeError("signer must expose get_address() and sign_transaction()")
        self._signer = signer
        self._l2 = l2
        self._l1 = l1
        if l1_signer is None and isinstance(signer, PrivateKeySigner):
            l1_signer = signer
        self._l1_signer = l1_signer
        if paymaster is None and isinstance(signer, AccountAbstractionSigner):
            paymaster = signer.paymaster
        self.paymaster = paymaster
        self.fees = fee_estimator or FeeEstimator()
        self._resolver = resolver or BridgeContractResolver()
        self._nonces = nonce_manager or NonceManager()
        self.poll_interval = poll_interval

    @classmethod
    def from_private_key(
        cls, private_key: str | bytes, l2: L2Provider, l1: Optional[L1Provider] = None, **kwargs: Any
    ) -> "Wallet":
        return cls(PrivateKeySigner(private_key), l2, l1, **kwargs)

    @classmethod
    def account_abstraction(
        cls,
        account_address: str,
        private_keys: str | bytes | Sequence[str | bytes],
        l2: L2Provider,
        l1: Optional[L1Provider] = None,
        *,
        paymaster: Optional[PaymasterParams] = None,
        **kwargs: Any,
    ) -> "Wallet":
        """Smart-account wallet; the first key also signs on L1."""
        keys = [private_keys] if isinstance(private_keys, (str, bytes)) else list(private_keys)
        signer = AccountAbstractionSigner(account_address, keys, paymaster=paymaster)
        kwargs.setdefault("l1_signer", PrivateKeySigner(keys[0]))
        kwargs.setdefault("paymaster", paymaster)
        return cls(signer, l2, l1, **kwargs)

    def __repr__(self) -> str:
        return f"Wallet(address={self.address}, l1={'bound' if self._l1 is not None else 'unbound'})"

    def _rebind(self, **changes: Any) -> "Wallet":
        params: Dict[str, Any] = {
            "signer": self._signer,
            "l2": self._l2,
            "l1": self._l1,
            "l1_signer": self._l1_signer,
            "paymaster": self.paymaster,
            "fee_estimator": self.fees,
            "resolver": self._resolver,
            "nonce_manager": self._nonces,
            "poll_interval": self.poll_interval,
        }
        params.update(changes)
        signer = params.pop("signer")
        return Wallet(signer, params.pop("l2"), params.pop("l1"), **params)

    def connect(self, l2: L2Provider) -> "Wallet":
        return self._rebind(l2=l2)

    def connect_l1(self, l1: L1Provider) -> "Wallet":
        return self._rebind(l1=l1)

    # identity

    @property
    def signer(self) -> Signer:
        return self._signer

    @property
    def l2(self) -> L2Provider:
        return self._l2

    @property
    def l1(self) -> L1Provider:
        if self._l1 is None:
            raise ValidationError("No L1 provider bound; use connect_l1()", stage=Stage.BUILD)
        return self._l1

    @property
    def address(self) -> str:
        return self._signer.get_address()

    def get_address(self) -> str:
        return self.address

    @property
    def l1_signer(self) -> Signer:
        if self._l1_signer is None:
            raise ValidationError("No L1 signer configured for this wallet", stage=Stage.SIGN)
        return self._l1_signer

    @property
    def l1_address(self) -> str:
        return self.l1_signer.get_address()

    def _log_ctx(self, layer: str) -> Dict[str, Any]:
        return build_log_context(wallet=self.address, layer=layer)

    # contracts and balances

    async def get_bridge_contracts(self) -> BridgeContractSet:
        return await self._resolver.resolve(self._l2, self._l1)

    async def _context(self) -> BridgeContext:
        return BridgeContext(
            l1=self.l1,
            l2=self._l2,
            contracts=await self.get_bridge_contracts(),
            sender=self.l1_address,
            wallet_address=self.address,
        )

    async def _erc20_view(self, provider: L1Provider, token: str, data: bytes) -> int:
        with stage_errors(Stage.ESTIMATE):
            raw = await provider.call(abi.call_object(token, data))
            (value,) = abi.decode_result(["uint256"], raw)
        return int(value)

    async def get_balance(self, token: Optional[str] = None, block: str = "latest") -> int:
        """L2 balance of the wallet's logical address."""
        if token is None or is_native_token(token):
            with stage_errors(Stage.ESTIMATE):
                return await self._l2.get_balance(self.address, block)
        return await self._erc20_view(self._l2, token, abi.balance_of(self.address))

    async def get_balance_l1(self, token: Optional[str] = None, block: str = "latest") -> int:
        if token is None or is_native_token(token):
            with stage_errors(Stage.ESTIMATE):
                return await self.l1.get_balance(self.l1_address, block)
        return await self._erc20_view(self.l1, token, abi.balance_of(self.l1_address))

    async def get_allowance_l1(self, token: str, bridge_address: Optional[str] = None) -> int:
        spender = bridge_address or (await self.get_bridge_contracts()).erc20_l1
        return await self._erc20_view(self.l1, token, abi.allowance(self.l1_address, spender))

    async def l2_token_address(self, token: str) -> str:
        """L2 counterpart of an L1 token, as reported by the default L2 bridge."""
        if is_native_token(token):
            return L2_BASE_TOKEN_ADDRESS
        contracts = await self.get_bridge_contracts()
        with stage_errors(Stage.ESTIMATE):
            raw = await self._l2.call(abi.call_object(contracts.erc20_l2, abi.l2_token_address(token)))
            (address,) = abi.decode_result(["address"], raw)
        return checksum(address)

    async def get_base_cost(
        self,
        l2_gas_limit: int,
        gas_per_pubdata_byte: Optional[int] = None,
        gas_price: Optional[int] = None,
    ) -> int:
        return await self.fees.base_cost(await self._context(), l2_gas_limit, gas_per_pubdata_byte, gas_price)

    # L1 -> L2

    async def approve_erc20(
        self,
        token: str,
        amount: int,
        *,
        bridge_address: Optional[str] = None,
        overrides: Optional[TxOverrides] = None,
    ) -> TransactionHandle:
        if is_native_token(token):
            raise ValidationError("The native token does not need approval", stage=Stage.BUILD, data={"token": token})
        if not is_hex_address(token) or amount < 0:
            raise ValidationError("Invalid approval request", stage=Stage.BUILD, data={"token": token, "amount": amount})
        ctx = await self._context()
        spender = bridge_address or ctx.contracts.erc20_l1
        o = overrides or TxOverrides()
        fee = await self.fees.l1_fee_data(ctx, o)
        with stage_errors(Stage.BUILD):
            chain_id = await ctx.l1.chain_id()
        tx = PopulatedTransaction(
            tx_type=LEGACY_TX_TYPE if fee.gas_price is not None else EIP1559_TX_TYPE,
            to=checksum(token),
            value=0,
            data=abi.approve(spender, amount),
            from_=ctx.sender,
            chain_id=chain_id,
            nonce=o.nonce,
            gas_limit=o.gas_limit,
            gas_price=fee.gas_price,
            max_fee_per_gas=fee.max_fee_per_gas,
            max_priority_fee_per_gas=fee.max_priority_fee_per_gas,
        )
        return await self._send_l1(tx)

    def _builder(self, request: Optional[DepositRequest] = None) -> BridgeTransactionBuilder:
        approve_overrides = request.approve_overrides if request is not None else None

        async def approve_and_wait(token: str, spender: str, amount: int) -> Dict[str, Any]:
            handle = await self.approve_erc20(token, amount, bridge_address=spender, overrides=approve_overrides)
            return await handle.wait()

        return BridgeTransactionBuilder(self.fees, approver=approve_and_wait)

    async def get_deposit_tx(self, request: DepositRequest) -> PopulatedTransaction:
        """Dry run: the unsigned L1 deposit transaction. Never approves or submits."""
        return await self._builder().build_deposit_tx(await self._context(), request, approve=False)

    async def estimate_gas_deposit(self, request: DepositRequest) -> int:
        ctx = await self._context()
        tx = await self._builder().build_deposit_tx(ctx, request, approve=False)
        return await self.fees.estimate_gas_deposit(ctx, tx)

    async def get_full_required_deposit_fee(self, request: DepositRequest) -> FeeQuote:
        return await self.fees.estimate_deposit(await self._context(), request)

    async def deposit(self, request: DepositRequest) -> PriorityOpHandle:
        """
        Deposit `amount` of `token` to L2.

        ERC-20 deposits with `approve_erc20` first raise the allowance when it is
        short, waiting for the approval before the deposit is built.
        """
        ctx = await self._context()
        tx = await self._builder(request).build_deposit_tx(ctx, request)
        if tx.gas_limit is None:
            estimate = await self.fees.estimate_gas_deposit(ctx, tx)
            native = is_native_token(request.token)
            tx = tx.replace(gas_limit=self.fees.recommended_deposit_gas_limit(estimate, native=native))
        return await self._send_priority_op(ctx, tx)

    async def get_request_execute_tx(self, request: RequestExecuteRequest) -> PopulatedTransaction:
        return await self._builder().build_request_execute_tx(await self._context(), request)

    async def estimate_gas_request_execute(self, request: RequestExecuteRequest) -> int:
        ctx = await self._context()
        tx = await self._builder().build_request_execute_tx(ctx, request)
        return await self.fees.estimate_l1_gas(ctx, tx)

    async def request_execute(self, request: RequestExecuteRequest) -> PriorityOpHandle:
        ctx = await self._context()
        tx = await self._builder().build_request_execute_tx(ctx, request)
        return await self._send_priority_op(ctx, tx)

    async def _send_priority_op(self, ctx: BridgeContext, tx: PopulatedTransaction) -> PriorityOpHandle:
        signed = await self._sign_and_claim_l1(tx)
        tx_hash = await self._submit(self.l1, signed, "l1")
        return PriorityOpHandle(
            tx_hash,
            self.l1,
            self._l2,
            mailbox=ctx.contracts.mailbox,
            signed=signed,
            poll_interval=self.poll_interval,
            log_ctx=self._log_ctx("l1"),
        )

    async def _send_l1(self, tx: PopulatedTransaction) -> TransactionHandle:
        signed = await self._sign_and_claim_l1(tx)
        tx_hash = await self._submit(self.l1, signed, "l1")
        return TransactionHandle(
            tx_hash, self.l1, signed=signed, poll_interval=self.poll_interval, log_ctx=self._log_ctx("l1")
        )

    async def _sign_and_claim_l1(self, tx: PopulatedTransaction) -> SignedTransaction:
        l1 = self.l1
        sender = self.l1_address
        if tx.gas_limit is None:
            with stage_errors(Stage.ESTIMATE):
                tx = tx.replace(gas_limit=await l1.estimate_gas(to_rpc_dict(tx.replace(from_=sender))))
        return await self._sign_with_nonce(l1, tx.replace(from_=sender), self.l1_signer)

    # L2

    async def transfer(
        self,
        to: str,
        amount: int,
        token: Optional[str] = None,
        *,
        overrides: Optional[TxOverrides] = None,
        paymaster: Optional[PaymasterParams] = None,
    ) -> TransactionHandle:
        """Plain L2 value or ERC-20 move; no bridging involved."""
        if not is_hex_address(to) or amount < 0:
            raise ValidationError("Invalid transfer request", stage=Stage.BUILD, data={"to": to, "amount": amount})
        if token is None or is_native_token(token):
            tx = PopulatedTransaction(tx_type=EIP1559_TX_TYPE, to=checksum(to), value=amount)
        else:
            tx = PopulatedTransaction(tx_type=EIP1559_TX_TYPE, to=checksum(token), data=abi.transfer(to, amount))
        return await self.send_transaction(self._with_overrides(tx, overrides), paymaster=paymaster)

    async def withdraw(
        self,
        amount: int,
        token: Optional[str] = None,
        *,
        to: Optional[str] = None,
        bridge_address: Optional[str] = None,
        overrides: Optional[TxOverrides] = None,
        paymaster: Optional[PaymasterParams] = None,
    ) -> TransactionHandle:
        """
        Start a withdrawal to L1 (`to` defaults to the wallet's address).

        `token` is the L2 token; the native asset goes through the L2 base-token
        system contract, everything else through the L2 bridge. Finalizing on L1
        is a separate step, not performed here.
        """
        receiver = to or self.address
        if amount <= 0 or not is_hex_address(receiver):
            raise ValidationError(
                "Invalid withdrawal request", stage=Stage.BUILD, data={"to": receiver, "amount": amount}
            )
        if token is None or is_native_token(token):
            tx = PopulatedTransaction(
                tx_type=EIP1559_TX_TYPE,
                to=checksum(L2_BASE_TOKEN_ADDRESS),
                value=amount,
                data=abi.base_token_withdraw(receiver),
            )
        else:
            bridge = bridge_address or (await self.get_bridge_contracts()).erc20_l2
            tx = PopulatedTransaction(
                tx_type=EIP1559_TX_TYPE,
                to=checksum(bridge),
                data=abi.l2_bridge_withdraw(receiver, token, amount),
            )
        return await self.send_transaction(self._with_overrides(tx, overrides), paymaster=paymaster)

    @staticmethod
    def _with_overrides(tx: PopulatedTransaction, overrides: Optional[TxOverrides]) -> PopulatedTransaction:
        if overrides is None:
            return tx
        changes: Dict[str, Any] = {}
        for name in ("gas_price", "max_fee_per_gas", "max_priority_fee_per_gas", "gas_limit", "value", "nonce"):
            value = getattr(overrides, name)
            if value is not None:
                changes[name] = value
        if overrides.gas_price is not None and overrides.max_fee_per_gas is None:
            changes["tx_type"] = LEGACY_TX_TYPE
        return tx.replace(**changes)

    def _wants_eip712(self, tx: PopulatedTransaction, paymaster: Optional[PaymasterParams]) -> bool:
        return (
            tx.tx_type == EIP712_TX_TYPE
            or tx.custom_data is not None
            or paymaster is not None
            or isinstance(self._signer, AccountAbstractionSigner)
        )

    async def populate_transaction(
        self, tx: PopulatedTransaction, *, paymaster: Optional[PaymasterParams] = None
    ) -> PopulatedTransaction:
        """
        Complete an L2 transaction: sender, chain id, nonce, fees, gas limit.

        Paymaster-backed and account-abstraction wallets produce type 113; the
        wallet's paymaster is attached unless one is given per call. A missing
        nonce is reserved through the nonce manager.
        """
        paymaster = paymaster or self.paymaster
        sender = self.address
        tx = tx.replace(from_=tx.from_ or sender)
        if self._wants_eip712(tx, paymaster):
            meta = tx.custom_data or Eip712Meta(gas_per_pubdata=DEFAULT_GAS_PER_PUBDATA_LIMIT)
            if paymaster is not None:
                meta = dataclasses.replace(meta, paymaster_params=paymaster)
            tx = tx.replace(tx_type=EIP712_TX_TYPE, custom_data=meta)
        with stage_errors(Stage.BUILD):
            if tx.chain_id is None:
                tx = tx.replace(chain_id=await self._l2.chain_id())
            if tx.tx_type == LEGACY_TX_TYPE:
                if tx.gas_price is None:
                    tx = tx.replace(gas_price=await self._l2.gas_price())
            elif tx.max_fee_per_gas is None:
                tx = tx.replace(
                    gas_price=None,
                    max_fee_per_gas=tx.gas_price or await self._l2.gas_price(),
                    max_priority_fee_per_gas=tx.max_priority_fee_per_gas or 0,
                )
            elif tx.max_priority_fee_per_gas is None:
                tx = tx.replace(max_priority_fee_per_gas=0)
        if tx.gas_limit is None:
            with stage_errors(Stage.ESTIMATE):
                tx = tx.replace(gas_limit=await self._l2.estimate_gas(to_rpc_dict(tx)))
        if tx.nonce is None:
            tx = tx.replace(nonce=await self._nonces.acquire(self._l2, tx.chain_id, tx.from_))
        return tx

    def sign_transaction(self, tx: PopulatedTransaction) -> SignedTransaction:
        return self._sign(tx, self._signer)

    def _sign(self, tx: PopulatedTransaction, signer: Signer) -> SignedTransaction:
        ctx = build_log_context(wallet=self.address, signer=signer.get_address())
        try:
            signed = signer.sign_transaction(tx)
        except BridgeError as e:
            log_event("sign_failed", ctx=ctx, data=e.to_dict(), level="warning")
            raise
        except Exception as e:
            log_event("sign_failed", ctx=ctx, data={"error": str(e)}, level="warning")
            raise BridgeError(f"Signing failed: {e}", stage=Stage.SIGN, cause=e) from e
        log_event("sign", ctx=ctx, data={"hash": signed.hash, "type": signed.tx.tx_type, "nonce": signed.tx.nonce})
        return signed

    async def _sign_with_nonce(self, provider: L1Provider, tx: PopulatedTransaction, signer: Signer) -> SignedTransaction:
        """Reserve (or claim the given) nonce, then sign; the nonce is returned on failure."""
        with stage_errors(Stage.BUILD):
            chain_id = tx.chain_id if tx.chain_id is not None else await provider.chain_id()
        sender = tx.from_ or signer.get_address()
        if tx.nonce is None:
            tx = tx.replace(nonce=await self._nonces.acquire(provider, chain_id, sender))
        await self._nonces.claim(chain_id, sender, tx.nonce)
        try:
            return self._sign(tx.replace(chain_id=chain_id), signer)
        except BridgeError:
            await self._nonces.release(chain_id, sender, tx.nonce)
            raise

    async def _submit(self, provider: L1Provider, signed: SignedTransaction, layer: str) -> str:
        ctx = self._log_ctx(layer)
        try:
            with stage_errors(Stage.SUBMIT):
                node_hash = await provider.send_raw_transaction(signed.raw)
        except BridgeError as e:
            if signed.tx.chain_id is not None and signed.tx.from_ and signed.tx.nonce is not None:
                await self._nonces.release(signed.tx.chain_id, signed.tx.from_, signed.tx.nonce)
            log_event("submit_failed", ctx=ctx, data={"hash": signed.hash, **e.to_dict()}, level="error")
            raise
        log_event("submit", ctx=ctx, data={"hash": signed.hash, "nonce": signed.tx.nonce, "to": signed.tx.to})
        return node_hash or signed.hash

    async def send_transaction(
        self, tx: PopulatedTransaction, *, paymaster: Optional[PaymasterParams] = None
    ) -> TransactionHandle:
        """Populate, sign and submit an L2 transaction."""
        populated = await self.populate_transaction(tx, paymaster=paymaster)
        signed = await self._sign_with_nonce(self._l2, populated, self._signer)
        tx_hash = await self._submit(self._l2, signed, "l2")
        return TransactionHandle(
            tx_hash, self._l2, signed=signed, poll_interval=self.poll_interval, log_ctx=self._log_ctx("l2")
        )
