from __future__ import annotations

import dataclasses
from typing import List, Optional, Sequence

from eth_account import Account
from eth_keys import keys

from errors import Stage, ValidationError
from transactions.eip712 import signed_digest
from transactions.serializer import serialize, transaction_hash
from transactions.types import (
    EIP712_TX_TYPE,
    Eip712Meta,
    PaymasterParams,
    PopulatedTransaction,
    SignedTransaction,
)
from transactions.utils import addresses_equal, checksum, is_hex_address

from .private_key import require_complete, sign_digest_with_key


class AccountAbstractionSigner:
    """
    Signs on behalf of a smart-contract account.

    The logical sender is `account_address`; the keys only authorize. Every key
    signs the same EIP-712 digest and the 65-byte signatures are concatenated
    (in key order) into the custom-signature slot of the type 113 envelope.
    Top-level signature slots are left as placeholders.

    Subclasses may override `get_address` and `sign_digest` independently, e.g.
    to plug an external signing service behind a deployed account.
    """

    def __init__(
        self,
        account_address: str,
        private_keys: str | bytes | Sequence[str | bytes],
        paymaster: Optional[PaymasterParams] = None,
    ) -> None:
        if not is_hex_address(account_address):
            raise ValueError("account_address must be a 0x-prefixed 20-byte hex address")
        if isinstance(private_keys, (str, bytes)):
            private_keys = [private_keys]
        if not private_keys:
            raise ValueError("At least one private key is required")
        self._account_address = checksum(account_address)
        self._owners = [Account.from_key(k) for k in private_keys]
        self._keys = [keys.PrivateKey(bytes(a.key)) for a in self._owners]
        self._paymaster = paymaster

    def __repr__(self) -> str:
        return (
            f"AccountAbstractionSigner(account={self._account_address}, "
            f"owners={len(self._owners)}, paymaster={self._paymaster is not None})"
        )

    @property
    def owner_addresses(self) -> List[str]:
        return [a.address for a in self._owners]

    @property
    def paymaster(self) -> Optional[PaymasterParams]:
        return self._paymaster

    def get_address(self) -> str:
        return self._account_address

    def sign_digest(self, digest: bytes) -> bytes:
        return b"".join(sign_digest_with_key(k, digest).to_bytes() for k in self._keys)

    def prepare(self, tx: PopulatedTransaction) -> PopulatedTransaction:
        """Promote to type 113, bind the account as sender and attach the default paymaster if none is set."""
        sender = self.get_address()
        if tx.from_ is not None and not addresses_equal(tx.from_, sender):
            raise ValidationError(
                "Transaction sender does not match account address",
                stage=Stage.SIGN,
                data={"from": tx.from_, "account": sender},
            )
        if tx.tx_type != EIP712_TX_TYPE:
            fee = tx.max_fee_per_gas if tx.max_fee_per_gas is not None else tx.gas_price
            priority = tx.max_priority_fee_per_gas if tx.max_priority_fee_per_gas is not None else fee
            tx = tx.replace(
                tx_type=EIP712_TX_TYPE,
                gas_price=None,
                max_fee_per_gas=fee,
                max_priority_fee_per_gas=priority,
            )
        meta = tx.custom_data or Eip712Meta()
        if meta.paymaster_params is None and self._paymaster is not None:
            meta = dataclasses.replace(meta, paymaster_params=self._paymaster)
        meta = dataclasses.replace(meta, custom_signature=None)
        return tx.replace(from_=sender, custom_data=meta)

    def sign_transaction(self, tx: PopulatedTransaction) -> SignedTransaction:
        tx = self.prepare(tx)
        require_complete(tx)
        custom_signature = self.sign_digest(signed_digest(tx))
        meta = tx.custom_data or Eip712Meta()
        tx = tx.replace(custom_data=dataclasses.replace(meta, custom_signature=custom_signature))
        raw = serialize(tx)
        return SignedTransaction(raw=raw, hash=transaction_hash(tx, raw), tx=tx)
