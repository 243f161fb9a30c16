import hashlib

import pytest
import rlp
from conftest import ALICE_KEY, PAYMASTER
from eth_utils import keccak

from signing import PrivateKeySigner
from transactions import (
    EIP712_TX_TYPE,
    EIP1559_TX_TYPE,
    LEGACY_TX_TYPE,
    Eip712Meta,
    PopulatedTransaction,
    TxSignature,
    general_paymaster,
    hash_bytecode,
    serialize,
    signed_digest,
    to_rpc_dict,
    transaction_hash,
)

RECEIVER = "0x36615Cf349d7F6344891B1e7CA7C72883F5dc049"


def _tx(**kw):
    base = dict(
        tx_type=EIP1559_TX_TYPE,
        to=RECEIVER,
        value=7_000_000,
        chain_id=270,
        nonce=3,
        gas_limit=150_000,
        max_fee_per_gas=250_000_000,
        max_priority_fee_per_gas=0,
    )
    base.update(kw)
    return PopulatedTransaction(**base)


def test_signing_is_deterministic():
    signer = PrivateKeySigner(ALICE_KEY)
    a = signer.sign_transaction(_tx())
    b = signer.sign_transaction(_tx())
    assert a.raw == b.raw
    assert a.hash == b.hash


def test_eip1559_hash_is_keccak_of_envelope():
    signed = PrivateKeySigner(ALICE_KEY).sign_transaction(_tx())
    assert signed.raw[0] == 2
    assert signed.hash == "0x" + keccak(signed.raw).hex()


def test_legacy_envelope_carries_eip155_v():
    signed = PrivateKeySigner(ALICE_KEY).sign_transaction(
        _tx(tx_type=LEGACY_TX_TYPE, gas_price=1_000_000_000, max_fee_per_gas=None, max_priority_fee_per_gas=None)
    )
    fields = rlp.decode(signed.raw)
    v = int.from_bytes(fields[6], "big")
    assert v in (35 + 2 * 270, 36 + 2 * 270)


def test_eip712_hash_commits_to_custom_signature():
    sig = b"\x01" * 65
    tx = _tx(tx_type=EIP712_TX_TYPE, from_=RECEIVER, custom_data=Eip712Meta(custom_signature=sig))
    raw = serialize(tx)
    assert raw[0] == EIP712_TX_TYPE
    assert transaction_hash(tx, raw) == "0x" + keccak(signed_digest(tx) + keccak(sig)).hex()


def test_eip712_hash_uses_ecdsa_signature_when_no_custom_signature():
    tx = _tx(tx_type=EIP712_TX_TYPE, from_=RECEIVER, custom_data=Eip712Meta())
    sig = TxSignature(y_parity=1, r=5, s=9)
    raw = serialize(tx, sig)
    assert transaction_hash(tx, raw, sig) == "0x" + keccak(signed_digest(tx) + keccak(sig.to_bytes())).hex()


def test_eip712_empty_custom_signature_is_rejected():
    tx = _tx(tx_type=EIP712_TX_TYPE, from_=RECEIVER, custom_data=Eip712Meta(custom_signature=b""))
    with pytest.raises(ValueError, match="Empty signatures"):
        serialize(tx)


def test_eip712_envelope_layout():
    pm = general_paymaster(PAYMASTER)
    tx = _tx(
        tx_type=EIP712_TX_TYPE,
        from_=RECEIVER,
        custom_data=Eip712Meta(gas_per_pubdata=50_000, custom_signature=b"\x02" * 65, paymaster_params=pm),
    )
    fields = rlp.decode(serialize(tx)[1:])
    # nonce, priority, max fee, gas, to, value, data, v, r, s, chain id, from, gpp, deps, sig, paymaster
    assert len(fields) == 16
    assert fields[7] == (270).to_bytes(2, "big")
    assert fields[8] == b"" and fields[9] == b""
    assert fields[11] == bytes.fromhex(RECEIVER[2:])
    assert int.from_bytes(fields[12], "big") == 50_000
    assert fields[14] == b"\x02" * 65
    assert fields[15] == [bytes.fromhex(PAYMASTER[2:]), pm.paymaster_input]


def test_signed_digest_changes_with_paymaster():
    plain = _tx(tx_type=EIP712_TX_TYPE, from_=RECEIVER, custom_data=Eip712Meta())
    sponsored = plain.replace(custom_data=Eip712Meta(paymaster_params=general_paymaster(PAYMASTER)))
    assert signed_digest(plain) != signed_digest(sponsored)


def test_unsupported_type_rejected():
    with pytest.raises(ValueError):
        serialize(_tx(tx_type=1))


def test_hash_bytecode_layout():
    bytecode = b"\x00" * 32 * 3
    h = hash_bytecode(bytecode)
    assert len(h) == 32
    assert h[:4] == b"\x01\x00\x00\x03"
    assert h[4:] == hashlib.sha256(bytecode).digest()[4:]


@pytest.mark.parametrize("bytecode", [b"\x00" * 31, b"\x00" * 64])
def test_hash_bytecode_rejects_bad_lengths(bytecode):
    with pytest.raises(ValueError):
        hash_bytecode(bytecode)


def test_rpc_dict_carries_eip712_meta():
    pm = general_paymaster(PAYMASTER)
    out = to_rpc_dict(_tx(tx_type=EIP712_TX_TYPE, from_=RECEIVER, custom_data=Eip712Meta(paymaster_params=pm)))
    assert out["type"] == hex(113)
    assert out["eip712Meta"]["gasPerPubdata"] == hex(50_000)
    assert out["eip712Meta"]["paymasterParams"]["paymaster"] == pm.paymaster
    assert out["value"] == hex(7_000_000)
