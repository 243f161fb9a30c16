from __future__ import annotations

from functools import cached_property
from typing import Optional

from app.core.settings import BaseCostModel, L2GasModel, Settings, SignerType
from bridge import (
    BridgeContractResolver,
    FeeEstimator,
    FormulaBaseCostModel,
    MailboxBaseCostModel,
    NodeL2GasEstimator,
    PubdataL2GasModel,
)
from observability import build_log_context, log_event
from providers import Web3Provider
from signing import PrivateKeySigner, get_signer, paymaster_from_settings
from signing.base import Signer
from wallet import NonceManager, Wallet


class Container:
    """
    Wires settings into providers, signer, fee estimator and wallet.

    Components are built on first access so a container can be created
    without an L1 endpoint (L2-only use) or before keys are present.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    @cached_property
    def l2(self) -> Web3Provider:
        if not self.settings.L2_RPC_URL:
            raise ValueError("L2_RPC_URL environment variable not set")
        return Web3Provider(self.settings.L2_RPC_URL, timeout=self.settings.HTTP_TIMEOUT_SEC)

    @cached_property
    def l1(self) -> Optional[Web3Provider]:
        if not self.settings.L1_RPC_URL:
            return None
        return Web3Provider(self.settings.L1_RPC_URL, timeout=self.settings.HTTP_TIMEOUT_SEC)

    @cached_property
    def signer(self) -> Signer:
        return get_signer(self.settings)

    @cached_property
    def fee_estimator(self) -> FeeEstimator:
        s = self.settings
        if s.BASE_COST_MODEL is BaseCostModel.FORMULA:
            base_cost = FormulaBaseCostModel(s.FAIR_L2_GAS_PRICE, s.L1_GAS_PER_PUBDATA_BYTE)
        else:
            base_cost = MailboxBaseCostModel()
        if s.L2_GAS_MODEL is L2GasModel.PUBDATA:
            l2_gas = PubdataL2GasModel(s.L2_GAS_FIXED_COST)
        else:
            l2_gas = NodeL2GasEstimator()
        return FeeEstimator(base_cost, l2_gas, default_gas_per_pubdata=s.DEPOSIT_GAS_PER_PUBDATA_LIMIT)

    @cached_property
    def resolver(self) -> BridgeContractResolver:
        return BridgeContractResolver()

    @cached_property
    def nonce_manager(self) -> NonceManager:
        return NonceManager()

    @cached_property
    def wallet(self) -> Wallet:
        s = self.settings
        signer = self.signer
        l1_signer: Optional[Signer] = None
        if s.SIGNER_TYPE is SignerType.ACCOUNT_ABSTRACTION:
            # the account contract cannot sign L1 transactions; its first owner key does
            l1_signer = PrivateKeySigner(s.PRIVATE_KEY or "")
        paymaster = paymaster_from_settings(s)
        wallet = Wallet(
            signer,
            self.l2,
            self.l1,
            l1_signer=l1_signer,
            paymaster=paymaster,
            fee_estimator=self.fee_estimator,
            resolver=self.resolver,
            nonce_manager=self.nonce_manager,
            poll_interval=s.RECEIPT_POLL_INTERVAL_SEC,
        )
        log_event(
            "wallet_ready",
            ctx=build_log_context(wallet=wallet.address),
            data={
                "signer_type": s.SIGNER_TYPE.value,
                "l1": self.l1 is not None,
                "base_cost_model": s.BASE_COST_MODEL.value,
                "l2_gas_model": s.L2_GAS_MODEL.value,
            },
        )
        return wallet
