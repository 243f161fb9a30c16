from unittest.mock import patch

import pytest
from conftest import AA_ACCOUNT, ALICE_KEY, BOB_KEY, PAYMASTER, TOKEN

from app.core.container import Container
from app.core.settings import BaseCostModel, L2GasModel, Settings, SettingsValidationError, SignerType
from bridge import FormulaBaseCostModel, MailboxBaseCostModel, NodeL2GasEstimator, PubdataL2GasModel
from providers import Web3Provider
from signing import AccountAbstractionSigner
from transactions import general_paymaster


def test_defaults():
    with patch.dict("os.environ", {}, clear=True):
        s = Settings()
    assert s.SIGNER_TYPE is SignerType.PRIVATE_KEY
    assert s.DEPOSIT_GAS_PER_PUBDATA_LIMIT == 800
    assert s.BASE_COST_MODEL is BaseCostModel.MAILBOX
    assert s.L2_GAS_MODEL is L2GasModel.NODE
    assert s.L1_RPC_URL is None


def test_invalid_signer_type():
    with patch.dict("os.environ", {"SIGNER_TYPE": "hsm"}, clear=True):
        with pytest.raises(SettingsValidationError) as e:
            Settings()
    assert e.value.field == "SIGNER_TYPE"


def test_account_abstraction_requires_address():
    with patch.dict("os.environ", {"SIGNER_TYPE": "account_abstraction"}, clear=True):
        with pytest.raises(SettingsValidationError, match="AA_ACCOUNT_ADDRESS"):
            Settings()


def test_collects_multiple_errors():
    env = {"PAYMASTER_TOKEN": TOKEN, "DEPOSIT_GAS_PER_PUBDATA_LIMIT": "-1", "AA_ACCOUNT_ADDRESS": "0x12"}
    with patch.dict("os.environ", env, clear=True):
        with pytest.raises(SettingsValidationError) as e:
            Settings()
    assert e.value.field == "MULTIPLE"
    assert "PAYMASTER_ADDRESS" in str(e.value)
    assert "DEPOSIT_GAS_PER_PUBDATA_LIMIT" in str(e.value)
    assert "AA_ACCOUNT_ADDRESS" in str(e.value)


def test_secrets_are_redacted():
    env = {"PRIVATE_KEY": ALICE_KEY, "AA_EXTRA_PRIVATE_KEYS": BOB_KEY}
    with patch.dict("os.environ", env, clear=True):
        s = Settings()
    d = s.to_dict()
    assert d["PRIVATE_KEY"] == "***REDACTED***"
    assert d["AA_EXTRA_PRIVATE_KEYS"] == "***REDACTED***"
    assert ALICE_KEY not in repr(s)
    assert d["SIGNER_TYPE"] == "private_key"


def test_container_wires_models_from_settings():
    env = {
        "PRIVATE_KEY": ALICE_KEY,
        "L2_RPC_URL": "http://localhost:3050",
        "BASE_COST_MODEL": "formula",
        "L2_GAS_MODEL": "pubdata",
        "FAIR_L2_GAS_PRICE": "250000000",
    }
    with patch.dict("os.environ", env, clear=True):
        c = Container()
    assert isinstance(c.fee_estimator.base_cost_model, FormulaBaseCostModel)
    assert c.fee_estimator.base_cost_model.fair_l2_gas_price == 250_000_000
    assert isinstance(c.fee_estimator.l2_gas_estimator, PubdataL2GasModel)
    assert isinstance(c.l2, Web3Provider)
    assert c.l1 is None
    assert c.wallet.fees is c.fee_estimator
    assert c.wallet.paymaster is None


def test_container_defaults_to_node_models():
    with patch.dict("os.environ", {"PRIVATE_KEY": ALICE_KEY, "L2_RPC_URL": "http://localhost:3050"}, clear=True):
        c = Container()
    assert isinstance(c.fee_estimator.base_cost_model, MailboxBaseCostModel)
    assert isinstance(c.fee_estimator.l2_gas_estimator, NodeL2GasEstimator)


def test_container_account_abstraction_wallet():
    env = {
        "PRIVATE_KEY": ALICE_KEY,
        "SIGNER_TYPE": "account_abstraction",
        "AA_ACCOUNT_ADDRESS": AA_ACCOUNT,
        "PAYMASTER_ADDRESS": PAYMASTER,
        "L1_RPC_URL": "http://localhost:8545",
        "L2_RPC_URL": "http://localhost:3050",
    }
    with patch.dict("os.environ", env, clear=True):
        c = Container()
    w = c.wallet
    assert isinstance(w.signer, AccountAbstractionSigner)
    assert w.address == AA_ACCOUNT
    assert w.l1_address != AA_ACCOUNT
    assert w.paymaster == general_paymaster(PAYMASTER)
    assert isinstance(c.l1, Web3Provider)
