from unittest.mock import patch

import pytest
import rlp
from conftest import AA_ACCOUNT, ALICE_KEY, BOB_KEY, PAYMASTER, TOKEN
from eth_account import Account
from eth_keys import keys

from app.core.settings import Settings
from errors import IncompleteTransactionError, ValidationError
from signing import AccountAbstractionSigner, PrivateKeySigner, Signer, get_signer
from transactions import (
    EIP712_TX_TYPE,
    EIP1559_TX_TYPE,
    Eip712Meta,
    PopulatedTransaction,
    approval_based_paymaster,
    general_paymaster,
    signed_digest,
)

RECEIVER = "0x36615Cf349d7F6344891B1e7CA7C72883F5dc049"


def _tx(**kw):
    base = dict(
        tx_type=EIP1559_TX_TYPE,
        to=RECEIVER,
        value=1,
        chain_id=270,
        nonce=0,
        gas_limit=150_000,
        max_fee_per_gas=250_000_000,
        max_priority_fee_per_gas=0,
    )
    base.update(kw)
    return PopulatedTransaction(**base)


def test_private_key_signer_fills_sender():
    signer = PrivateKeySigner(ALICE_KEY)
    signed = signer.sign_transaction(_tx())
    assert signed.tx.from_ == Account.from_key(ALICE_KEY).address
    assert isinstance(signer, Signer)


def test_private_key_signer_rejects_foreign_sender():
    signer = PrivateKeySigner(ALICE_KEY)
    with pytest.raises(ValidationError):
        signer.sign_transaction(_tx(from_=Account.from_key(BOB_KEY).address))


def test_incomplete_transaction_names_missing_field():
    signer = PrivateKeySigner(ALICE_KEY)
    with pytest.raises(IncompleteTransactionError) as e:
        signer.sign_transaction(_tx(nonce=None))
    assert e.value.field == "nonce"
    assert "nonce" in str(e.value)


def test_private_key_signer_signs_eip712_into_custom_signature():
    signer = PrivateKeySigner(ALICE_KEY)
    signed = signer.sign_transaction(_tx(tx_type=EIP712_TX_TYPE))
    fields = rlp.decode(signed.raw[1:])
    assert int.from_bytes(fields[7], "big") == 270
    assert fields[8] == b"" and fields[9] == b""
    assert fields[14] == signed.signature.to_bytes()
    assert len(fields[14]) == 65
    assert signed.tx.custom_data.custom_signature == fields[14]
    pub = keys.Signature(vrs=(signed.signature.y_parity, signed.signature.r, signed.signature.s)).recover_public_key_from_msg_hash(
        signed_digest(signed.tx)
    )
    assert pub.to_checksum_address() == signer.get_address()


def test_repr_hides_key():
    signer = PrivateKeySigner(ALICE_KEY)
    assert ALICE_KEY[2:] not in repr(signer)
    aa = AccountAbstractionSigner(AA_ACCOUNT, [ALICE_KEY, BOB_KEY])
    assert ALICE_KEY[2:] not in repr(aa)
    assert BOB_KEY[2:] not in repr(aa)


def test_aa_signer_uses_custom_signature_slot():
    aa = AccountAbstractionSigner(AA_ACCOUNT, ALICE_KEY)
    signed = aa.sign_transaction(_tx())
    assert signed.tx.tx_type == EIP712_TX_TYPE
    assert signed.tx.from_ == AA_ACCOUNT
    assert signed.signature is None
    fields = rlp.decode(signed.raw[1:])
    # top-level slots: chain id placeholder, empty r and s
    assert fields[7] == (270).to_bytes(2, "big")
    assert fields[8] == b"" and fields[9] == b""
    assert fields[14] == signed.tx.custom_data.custom_signature
    assert len(signed.tx.custom_data.custom_signature) == 65


def test_aa_signer_concatenates_owner_signatures_in_order():
    aa = AccountAbstractionSigner(AA_ACCOUNT, [ALICE_KEY, BOB_KEY])
    signed = aa.sign_transaction(_tx())
    sig = signed.tx.custom_data.custom_signature
    assert len(sig) == 130
    digest = signed_digest(signed.tx)
    recovered = []
    for chunk in (sig[:65], sig[65:]):
        r, s, v = int.from_bytes(chunk[:32], "big"), int.from_bytes(chunk[32:64], "big"), chunk[64] - 27
        recovered.append(keys.Signature(vrs=(v, r, s)).recover_public_key_from_msg_hash(digest).to_checksum_address())
    assert recovered == aa.owner_addresses


def test_aa_signing_is_idempotent():
    aa = AccountAbstractionSigner(AA_ACCOUNT, [ALICE_KEY, BOB_KEY])
    assert aa.sign_transaction(_tx()).raw == aa.sign_transaction(_tx()).raw


def test_aa_signer_merges_paymaster():
    pm = approval_based_paymaster(PAYMASTER, TOKEN, 1)
    aa = AccountAbstractionSigner(AA_ACCOUNT, ALICE_KEY, paymaster=pm)
    signed = aa.sign_transaction(_tx())
    assert signed.tx.custom_data.paymaster_params == pm
    fields = rlp.decode(signed.raw[1:])
    assert fields[15] == [bytes.fromhex(PAYMASTER[2:]), pm.paymaster_input]


def test_aa_signer_keeps_paymaster_already_on_the_transaction():
    default = approval_based_paymaster(PAYMASTER, TOKEN, 1)
    chosen = general_paymaster("0x7777777777777777777777777777777777777777")
    aa = AccountAbstractionSigner(AA_ACCOUNT, ALICE_KEY, paymaster=default)
    signed = aa.sign_transaction(_tx(tx_type=EIP712_TX_TYPE, custom_data=Eip712Meta(paymaster_params=chosen)))
    assert signed.tx.custom_data.paymaster_params == chosen


def test_aa_signer_rejects_foreign_sender():
    aa = AccountAbstractionSigner(AA_ACCOUNT, ALICE_KEY)
    with pytest.raises(ValidationError):
        aa.sign_transaction(_tx(from_=RECEIVER))


def test_aa_signer_requires_keys_and_address():
    with pytest.raises(ValueError):
        AccountAbstractionSigner(AA_ACCOUNT, [])
    with pytest.raises(ValueError):
        AccountAbstractionSigner("0x1234", ALICE_KEY)


def test_get_signer_private_key():
    with patch.dict("os.environ", {"PRIVATE_KEY": ALICE_KEY}, clear=True):
        signer = get_signer(Settings())
    assert isinstance(signer, PrivateKeySigner)


def test_get_signer_account_abstraction_with_paymaster():
    env = {
        "PRIVATE_KEY": ALICE_KEY,
        "SIGNER_TYPE": "account_abstraction",
        "AA_ACCOUNT_ADDRESS": AA_ACCOUNT,
        "AA_EXTRA_PRIVATE_KEYS": BOB_KEY,
        "PAYMASTER_ADDRESS": PAYMASTER,
    }
    with patch.dict("os.environ", env, clear=True):
        signer = get_signer(Settings())
    assert isinstance(signer, AccountAbstractionSigner)
    assert signer.get_address() == AA_ACCOUNT
    assert len(signer.owner_addresses) == 2
    assert signer.paymaster == general_paymaster(PAYMASTER)


def test_get_signer_requires_key():
    with patch.dict("os.environ", {}, clear=True):
        with pytest.raises(ValueError):
            get_signer(Settings())
