from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class L1Provider(Protocol):
    """
    JSON-RPC surface the wallet consumes from a chain.

    Call objects are JSON-RPC dicts (hex quantities, see
    `transactions.serializer.to_rpc_dict`). Receipts are plain mappings with
    integer `status` / `blockNumber` and `logs` entries of
    `{address, topics: [hex str], data: bytes}`; `None` when not yet observed.
    """

    async def chain_id(self) -> int:
        ...

    async def get_balance(self, address: str, block: str = "latest") -> int:
        ...

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        ...

    async def gas_price(self) -> int:
        ...

    async def max_priority_fee(self) -> int:
        ...

    async def get_block(self, block: str = "latest") -> Dict[str, Any]:
        ...

    async def call(self, tx: Dict[str, Any], block: str = "latest") -> bytes:
        ...

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        ...

    async def send_raw_transaction(self, raw: bytes) -> str:
        ...

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        ...


@runtime_checkable
class L2Provider(L1Provider, Protocol):
    """L1 surface plus the rollup node's `zks_*` extensions."""

    async def main_contract_address(self) -> str:
        ...

    async def bridge_contracts(self) -> Dict[str, Optional[str]]:
        """Keys: l1Erc20DefaultBridge, l2Erc20DefaultBridge, l1WethBridge, l2WethBridge."""
        ...

    async def estimate_gas_l1_to_l2(self, tx: Dict[str, Any]) -> int:
        ...
