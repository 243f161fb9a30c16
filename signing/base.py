from __future__ import annotations

from typing import Protocol, runtime_checkable

from transactions.types import PopulatedTransaction, SignedTransaction


@runtime_checkable
class Signer(Protocol):
    """
    Minimal signing capability the wallet needs.

    Any object exposing these two methods is accepted; the built-in
    implementations do not share a base class.
    """

    def get_address(self) -> str:
        ...

    def sign_transaction(self, tx: PopulatedTransaction) -> SignedTransaction:
        ...
