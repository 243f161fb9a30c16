from __future__ import annotations

from typing import Any, Dict, List, Optional

from web3 import AsyncWeb3
from web3.providers.rpc import AsyncHTTPProvider

from transactions.utils import to_bytes, to_int

from .endpoints import NetworkEndpoint


def _hex(v: Any) -> str:
    if isinstance(v, (bytes, bytearray)):
        return "0x" + bytes(v).hex()
    return str(v).lower()


def _normalize_log(log: Any) -> Dict[str, Any]:
    return {
        "address": str(log["address"]),
        "topics": [_hex(t) for t in log.get("topics", [])],
        "data": to_bytes(log.get("data"), name="data"),
    }


def normalize_receipt(receipt: Any) -> Optional[Dict[str, Any]]:
    if receipt is None:
        return None
    status = receipt.get("status")
    block_number = receipt.get("blockNumber")
    return {
        "transactionHash": _hex(receipt.get("transactionHash")),
        "status": to_int(status, name="status") if status is not None else None,
        "blockNumber": to_int(block_number, name="blockNumber") if block_number is not None else None,
        "gasUsed": to_int(receipt.get("gasUsed") or 0, name="gasUsed"),
        "logs": [_normalize_log(log) for log in receipt.get("logs", [])],
    }


class Web3Provider:
    """
    Async JSON-RPC adapter over `web3.AsyncWeb3`.

    Every method goes through the raw request manager so L2-only payloads
    (`eip712Meta`, `zks_*` methods) reach the node untouched; results are
    parsed from hex here.
    """

    def __init__(self, endpoint: NetworkEndpoint | str, *, timeout: float = 10.0, w3: AsyncWeb3 | None = None) -> None:
        if isinstance(endpoint, NetworkEndpoint):
            self.endpoint: Optional[NetworkEndpoint] = endpoint
            url = endpoint.rpc_url
        else:
            self.endpoint = None
            url = endpoint
        self.rpc_url = url
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(url, request_kwargs={"timeout": float(timeout)}))
        self._chain_id: Optional[int] = endpoint.chain_id if isinstance(endpoint, NetworkEndpoint) else None

    def __repr__(self) -> str:
        return f"Web3Provider(url={self.rpc_url!r})"

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        return await self._w3.manager.coro_request(method, params)

    async def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = to_int(await self._rpc("eth_chainId", []), name="chainId")
        return self._chain_id

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return to_int(await self._rpc("eth_getBalance", [address, block]), name="balance")

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return to_int(await self._rpc("eth_getTransactionCount", [address, block]), name="nonce")

    async def gas_price(self) -> int:
        return to_int(await self._rpc("eth_gasPrice", []), name="gasPrice")

    async def max_priority_fee(self) -> int:
        return to_int(await self._rpc("eth_maxPriorityFeePerGas", []), name="maxPriorityFeePerGas")

    async def get_block(self, block: str = "latest") -> Dict[str, Any]:
        raw = await self._rpc("eth_getBlockByNumber", [block, False])
        out: Dict[str, Any] = {"number": to_int(raw["number"], name="number")}
        if raw.get("baseFeePerGas") is not None:
            out["baseFeePerGas"] = to_int(raw["baseFeePerGas"], name="baseFeePerGas")
        return out

    async def call(self, tx: Dict[str, Any], block: str = "latest") -> bytes:
        return to_bytes(await self._rpc("eth_call", [tx, block]), name="result")

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return to_int(await self._rpc("eth_estimateGas", [tx]), name="gas")

    async def send_raw_transaction(self, raw: bytes) -> str:
        return _hex(await self._rpc("eth_sendRawTransaction", ["0x" + raw.hex()]))

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return normalize_receipt(await self._rpc("eth_getTransactionReceipt", [tx_hash]))

    # zks_* namespace

    async def main_contract_address(self) -> str:
        return str(await self._rpc("zks_getMainContract", []))

    async def bridge_contracts(self) -> Dict[str, Optional[str]]:
        raw = await self._rpc("zks_getBridgeContracts", [])
        return {
            "l1Erc20DefaultBridge": raw.get("l1Erc20DefaultBridge"),
            "l2Erc20DefaultBridge": raw.get("l2Erc20DefaultBridge"),
            "l1WethBridge": raw.get("l1WethBridge"),
            "l2WethBridge": raw.get("l2WethBridge"),
        }

    async def estimate_gas_l1_to_l2(self, tx: Dict[str, Any]) -> int:
        return to_int(await self._rpc("zks_estimateGasL1ToL2", [tx]), name="gas")
