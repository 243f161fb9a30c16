import os
import sys
from typing import Any, Dict, List, Optional

import pytest
import rlp
from eth_abi import decode, encode
from eth_utils import keccak
from web3.exceptions import ContractLogicError

# Add project root to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from bridge import abi
from bridge.contracts import BridgeContext, BridgeContractSet
from signing import PrivateKeySigner
from wallet import Wallet

ALICE_KEY = "0x7726827caac94a7f9e1b160f7ea819f172f7b6f9d2a97f992c38edeab82d4110"
BOB_KEY = "0xac1e735be8536c6534bb4f17f06f6afc73b2b5ba84ac2cfb12f7461b20c0bbe3"

MAILBOX = "0x1111111111111111111111111111111111111111"
L1_ERC20_BRIDGE = "0x2222222222222222222222222222222222222222"
L2_ERC20_BRIDGE = "0x3333333333333333333333333333333333333333"
TOKEN = "0x881567b68502e6d7a7a3556ff4313b637ba47f4e"
L2_TOKEN = "0x4444444444444444444444444444444444444444"
AA_ACCOUNT = "0x5555555555555555555555555555555555555555"
PAYMASTER = "0x6666666666666666666666666666666666666666"

_SELECTORS = {
    abi.selector(s): s
    for s in (
        abi.MAILBOX_BASE_COST,
        abi.ERC20_ALLOWANCE,
        abi.ERC20_BALANCE_OF,
        abi.ERC20_NAME,
        abi.ERC20_SYMBOL,
        abi.ERC20_DECIMALS,
        abi.L1_BRIDGE_L2_BRIDGE,
        abi.BRIDGE_L2_TOKEN_ADDRESS,
    )
}


def _data(tx: Dict[str, Any]) -> bytes:
    return bytes.fromhex(tx.get("data", "0x")[2:])


def receipt(status: int = 1, block: Optional[int] = 1, logs: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {"status": status, "blockNumber": block, "logs": list(logs or [])}


def priority_log(mailbox: str, tx_id: int, l2_hash: str, expiration: int = 1_700_000_000) -> Dict[str, Any]:
    data = encode(["uint256", "bytes32", "uint64"], [tx_id, bytes.fromhex(l2_hash[2:]), expiration])
    return {"address": mailbox, "topics": [abi.NEW_PRIORITY_REQUEST_TOPIC], "data": data + b"\x00" * 64}


def decode_typed_tx(raw: bytes) -> Dict[str, Any]:
    """Pull the interesting fields out of a signed type 2 envelope."""
    assert raw[0] == 2
    fields = rlp.decode(raw[1:])
    return {
        "nonce": int.from_bytes(fields[1], "big"),
        "gas": int.from_bytes(fields[4], "big"),
        "to": "0x" + fields[5].hex(),
        "value": int.from_bytes(fields[6], "big"),
        "data": fields[7],
    }


class FakeL1:
    """In-memory L1 node: answers the handful of views the bridge reads."""

    def __init__(self, chain_id: int = 9) -> None:
        self.chain = chain_id
        self.default_balance = 10**21
        self.balances: Dict[str, int] = {}
        self.pending_nonce = 0
        self.gas_price_wei = 1_000_000_000
        self.priority_fee = 100_000_000
        self.base_fee: Optional[int] = 1_000_000_000
        self.mailbox_base_cost = 1_000_000_000_000
        self.allowances: Dict[tuple, int] = {}
        self.token_balances: Dict[tuple, int] = {}
        self.tokens: Dict[str, tuple] = {TOKEN.lower(): ("DAI", "DAI", 18)}
        self.l2_bridges: Dict[str, str] = {}
        self.l2_token_addresses: Dict[str, str] = {}
        self.auto_receipts = False
        self.send_error: Optional[Exception] = None
        self.sent: List[bytes] = []
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.estimates: List[Dict[str, Any]] = []
        # execution cost of the bridge entry points on top of intrinsic gas
        self.contract_gas: Dict[str, int] = {MAILBOX: 60_000, L1_ERC20_BRIDGE: 120_000}

    async def chain_id(self) -> int:
        return self.chain

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return self.balances.get(address.lower(), self.default_balance)

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return self.pending_nonce

    async def gas_price(self) -> int:
        return self.gas_price_wei

    async def max_priority_fee(self) -> int:
        return self.priority_fee

    async def get_block(self, block: str = "latest") -> Dict[str, Any]:
        out: Dict[str, Any] = {"number": 100}
        if self.base_fee is not None:
            out["baseFeePerGas"] = self.base_fee
        return out

    async def call(self, tx: Dict[str, Any], block: str = "latest") -> bytes:
        self.calls.append(tx)
        data = _data(tx)
        sig = _SELECTORS.get(data[:4])
        to = tx["to"].lower()
        if sig == abi.MAILBOX_BASE_COST:
            return encode(["uint256"], [self.mailbox_base_cost])
        if sig == abi.ERC20_ALLOWANCE:
            owner, spender = decode(["address", "address"], data[4:])
            return encode(["uint256"], [self.allowances.get((to, owner.lower(), spender.lower()), 0)])
        if sig == abi.ERC20_BALANCE_OF:
            (owner,) = decode(["address"], data[4:])
            return encode(["uint256"], [self.token_balances.get((to, owner.lower()), 0)])
        if sig in (abi.ERC20_NAME, abi.ERC20_SYMBOL, abi.ERC20_DECIMALS) and to in self.tokens:
            name, symbol, decimals = self.tokens[to]
            if sig == abi.ERC20_DECIMALS:
                return encode(["uint8"], [decimals])
            return encode(["string"], [name if sig == abi.ERC20_NAME else symbol])
        if sig == abi.L1_BRIDGE_L2_BRIDGE and to in self.l2_bridges:
            return encode(["address"], [self.l2_bridges[to]])
        if sig == abi.BRIDGE_L2_TOKEN_ADDRESS:
            (token,) = decode(["address"], data[4:])
            return encode(["address"], [self.l2_token_addresses.get(token.lower(), L2_TOKEN)])
        raise ContractLogicError("execution reverted")

    def gas_for(self, tx: Dict[str, Any]) -> int:
        return 21_000 + 16 * len(_data(tx)) + self.contract_gas.get(tx.get("to", "").lower(), 0)

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        self.estimates.append(tx)
        return self.gas_for(tx)

    async def send_raw_transaction(self, raw: bytes) -> str:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(raw)
        tx_hash = "0x" + keccak(raw).hex()
        if self.auto_receipts:
            self.receipts[tx_hash] = receipt()
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self.receipts.get(tx_hash)


class FakeL2(FakeL1):
    def __init__(self, chain_id: int = 270) -> None:
        super().__init__(chain_id)
        self.gas_price_wei = 250_000_000
        self.mailbox = MAILBOX
        self.bridges: Dict[str, Optional[str]] = {
            "l1Erc20DefaultBridge": L1_ERC20_BRIDGE,
            "l2Erc20DefaultBridge": L2_ERC20_BRIDGE,
            "l1WethBridge": None,
            "l2WethBridge": None,
        }
        self.l1_to_l2_fixed: Optional[int] = None
        self.l1_to_l2_requests: List[Dict[str, Any]] = []
        self.contract_lookups = 0

    async def main_contract_address(self) -> str:
        self.contract_lookups += 1
        return self.mailbox

    async def bridge_contracts(self) -> Dict[str, Optional[str]]:
        return dict(self.bridges)

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        self.estimates.append(tx)
        return 150_000

    async def estimate_gas_l1_to_l2(self, tx: Dict[str, Any]) -> int:
        self.l1_to_l2_requests.append(tx)
        if self.l1_to_l2_fixed is not None:
            return self.l1_to_l2_fixed
        return 400_000 + 10 * len(_data(tx))


@pytest.fixture
def l1():
    return FakeL1()


@pytest.fixture
def l2():
    return FakeL2()


@pytest.fixture
def alice():
    return PrivateKeySigner(ALICE_KEY)


@pytest.fixture
def contracts():
    return BridgeContractSet(mailbox=MAILBOX, erc20_l1=L1_ERC20_BRIDGE, erc20_l2=L2_ERC20_BRIDGE)


@pytest.fixture
def ctx(l1, l2, contracts, alice):
    return BridgeContext(
        l1=l1,
        l2=l2,
        contracts=contracts,
        sender=alice.get_address(),
        wallet_address=alice.get_address(),
    )


@pytest.fixture
def wallet(l1, l2, alice):
    return Wallet(alice, l2, l1, poll_interval=0.001)
