from __future__ import annotations

import dataclasses

from eth_account import Account
from eth_keys import keys

from errors import IncompleteTransactionError, Stage, ValidationError
from transactions.serializer import serialize, signing_digest, transaction_hash
from transactions.types import EIP712_TX_TYPE, Eip712Meta, PopulatedTransaction, SignedTransaction, TxSignature
from transactions.utils import addresses_equal


def sign_digest_with_key(private_key: keys.PrivateKey, digest: bytes) -> TxSignature:
    # eth_keys signs deterministically (RFC 6979) and returns low-s signatures.
    sig = private_key.sign_msg_hash(digest)
    return TxSignature(y_parity=sig.v, r=sig.r, s=sig.s)


def require_complete(tx: PopulatedTransaction) -> None:
    missing = tx.missing_fields()
    if missing:
        raise IncompleteTransactionError(missing[0], data={"missing": missing})


class PrivateKeySigner:
    """
    Signer backed by a raw secp256k1 private key.

    Type 0 and type 2 signatures go into the standard top-level slots. For
    L2-native (type 113) transactions the 65-byte EIP-712 signature is written
    to the custom-signature slot and the top-level slots hold placeholders,
    the same envelope an account-abstraction signer produces.
    """

    def __init__(self, private_key: str | bytes) -> None:
        self._account = Account.from_key(private_key)
        self._key = keys.PrivateKey(bytes(self._account.key))

    def __repr__(self) -> str:
        return f"PrivateKeySigner(address={self._account.address})"

    def get_address(self) -> str:
        return self._account.address

    def sign_digest(self, digest: bytes) -> TxSignature:
        return sign_digest_with_key(self._key, digest)

    def sign_transaction(self, tx: PopulatedTransaction) -> SignedTransaction:
        if tx.from_ is None:
            tx = tx.replace(from_=self.get_address())
        elif not addresses_equal(tx.from_, self.get_address()):
            raise ValidationError(
                "Transaction sender does not match signer address",
                stage=Stage.SIGN,
                data={"from": tx.from_, "signer": self.get_address()},
            )
        require_complete(tx)
        signature = self.sign_digest(signing_digest(tx))
        if tx.tx_type == EIP712_TX_TYPE:
            meta = tx.custom_data or Eip712Meta()
            tx = tx.replace(custom_data=dataclasses.replace(meta, custom_signature=signature.to_bytes()))
            raw = serialize(tx)
        else:
            raw = serialize(tx, signature)
        return SignedTransaction(raw=raw, hash=transaction_hash(tx, raw, signature), tx=tx, signature=signature)
