import sys
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
from hexbytes import HexBytes
from web3.providers import BaseProvider

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from latency_lab.chains import ZERO_ADDRESS, ChainConfig  # noqa: E402
from latency_lab.models import TransactionOptions, now_ms  # noqa: E402
from latency_lab.runner import ReceiptSettings  # noqa: E402
from latency_lab.wallets import ConnectedWallet  # noqa: E402

TX_HASH = "0x" + "ab" * 32
BLOCK_HASH = "0x" + "cd" * 32
EMPTY_HASH = "0x" + "00" * 32
SENDER = "0x" + "11" * 20
BASE_FEE = 1_000_000_000
PRIORITY_FEE = 2_000_000_000
GAS_ESTIMATE = 21_000

FAST_RECEIPTS = ReceiptSettings(timeout=5, poll_latency=0.01)


def make_receipt(tx_hash: str, status: int = 1) -> Dict[str, Any]:
    return {
        "transactionHash": tx_hash,
        "transactionIndex": "0x0",
        "blockHash": BLOCK_HASH,
        "blockNumber": "0x10",
        "from": SENDER,
        "to": ZERO_ADDRESS,
        "cumulativeGasUsed": hex(GAS_ESTIMATE),
        "gasUsed": hex(GAS_ESTIMATE),
        "effectiveGasPrice": hex(BASE_FEE + PRIORITY_FEE),
        "contractAddress": None,
        "logs": [],
        "logsBloom": "0x" + "00" * 256,
        "status": hex(status),
        "type": "0x2",
    }


def make_block(base_fee: Optional[int] = BASE_FEE) -> Dict[str, Any]:
    block = {
        "number": "0x10",
        "hash": BLOCK_HASH,
        "parentHash": EMPTY_HASH,
        "nonce": "0x0000000000000000",
        "sha3Uncles": EMPTY_HASH,
        "logsBloom": "0x" + "00" * 256,
        "transactionsRoot": EMPTY_HASH,
        "stateRoot": EMPTY_HASH,
        "receiptsRoot": EMPTY_HASH,
        "miner": ZERO_ADDRESS,
        "difficulty": "0x0",
        "totalDifficulty": "0x0",
        "extraData": "0x",
        "size": "0x200",
        "gasLimit": hex(30_000_000),
        "gasUsed": "0x0",
        "timestamp": "0x65000000",
        "transactions": [],
        "uncles": [],
        "mixHash": EMPTY_HASH,
    }
    if base_fee is not None:
        block["baseFeePerGas"] = hex(base_fee)
    return block


class FakeNode(BaseProvider):
    """Scripted JSON-RPC node answering the calls a benchmark makes."""

    def __init__(
        self,
        chain_id: int = 1337,
        pending_receipt_polls: int = 1,
        failures: Optional[Dict[str, Exception]] = None,
        delay: float = 0.0,
        base_fee: Optional[int] = BASE_FEE,
        accounts: Optional[List[str]] = None,
    ) -> None:
        super().__init__()
        self.chain_id = chain_id
        self.pending_receipt_polls = pending_receipt_polls
        self.failures = dict(failures or {})
        self.delay = delay
        self.base_fee = base_fee
        self.accounts = list(accounts or [])
        self.calls: List[Tuple[str, int]] = []
        self.sent: List[str] = []
        self.sent_transactions: List[Dict[str, Any]] = []
        self.unlocked: List[str] = []
        self._receipt_polls = 0
        self._lock = threading.Lock()

    def make_request(self, method: str, params: Any) -> Dict[str, Any]:
        with self._lock:
            self.calls.append((method, now_ms()))
        if self.delay:
            time.sleep(self.delay)
        if method in self.failures:
            raise self.failures[method]
        handler = getattr(self, f"rpc_{method}", None)
        if handler is None:
            return {
                "jsonrpc": "2.0",
                "id": 1,
                "error": {"code": -32601, "message": f"the method {method} does not exist"},
            }
        with self._lock:
            result = handler(params)
        return {"jsonrpc": "2.0", "id": 1, "result": result}

    def is_connected(self, show_traceback: bool = False) -> bool:
        return True

    def methods(self) -> List[str]:
        return [method for method, _ in self.calls]

    def rpc_eth_chainId(self, params: Any) -> str:
        return hex(self.chain_id)

    def rpc_eth_getTransactionCount(self, params: Any) -> str:
        return "0x0"

    def rpc_eth_getBlockByNumber(self, params: Any) -> Dict[str, Any]:
        return make_block(self.base_fee)

    def rpc_eth_maxPriorityFeePerGas(self, params: Any) -> str:
        return hex(PRIORITY_FEE)

    def rpc_eth_estimateGas(self, params: Any) -> str:
        return hex(GAS_ESTIMATE)

    def rpc_eth_sendRawTransaction(self, params: Any) -> str:
        self.sent.append(params[0])
        return TX_HASH

    def rpc_eth_sendRawTransactionSync(self, params: Any) -> Dict[str, Any]:
        self.sent.append(params[0])
        return make_receipt(TX_HASH)

    def rpc_eth_sendTransaction(self, params: Any) -> str:
        self.sent_transactions.append(dict(params[0]))
        return TX_HASH

    def rpc_eth_getTransactionReceipt(self, params: Any) -> Optional[Dict[str, Any]]:
        if self._receipt_polls < self.pending_receipt_polls:
            self._receipt_polls += 1
            return None
        return make_receipt(params[0])

    def rpc_eth_accounts(self, params: Any) -> List[str]:
        return self.accounts

    def rpc_personal_unlockAccount(self, params: Any) -> bool:
        self.unlocked.append(params[0])
        return True


class StepClock:
    """Millisecond clock returning scripted readings in order."""

    def __init__(self, *readings: int) -> None:
        self._readings = iter(readings)

    def __call__(self) -> int:
        return next(self._readings)


class FakeSigner:
    def __init__(self, address: str) -> None:
        self.address = address
        self.signed: List[Dict[str, Any]] = []

    def sign(self, transaction: Dict[str, Any]) -> HexBytes:
        self.signed.append(dict(transaction))
        return HexBytes(b"\x02\xf8\x6b")


class FakeWallet(ConnectedWallet):
    def __init__(
        self,
        address: str = SENDER,
        error: Optional[Exception] = None,
        switch_error: Optional[Exception] = None,
    ) -> None:
        self.address = address
        self.error = error
        self.switch_error = switch_error
        self.connected = True
        self.requests: List[Dict[str, Any]] = []
        self.resolved_at: Optional[int] = None
        self.switched_to: List[int] = []

    @property
    def is_connected(self) -> bool:
        return self.connected

    def send_transaction(self, params: Dict[str, Any]) -> str:
        self.requests.append(dict(params))
        if self.error is not None:
            raise self.error
        self.resolved_at = now_ms()
        return TX_HASH

    def switch_chain(self, chain: ChainConfig) -> None:
        if self.switch_error is not None:
            raise self.switch_error
        self.switched_to.append(chain.chain_id)

    def disconnect(self) -> None:
        self.connected = False


@pytest.fixture
def node() -> FakeNode:
    return FakeNode()


@pytest.fixture
def chain() -> ChainConfig:
    return ChainConfig(
        key="devnet",
        chain_id=1337,
        name="Local Devnet",
        short_name="Devnet",
        rpc_url="http://127.0.0.1:8545",
    )


@pytest.fixture
def sync_chain(chain: ChainConfig) -> ChainConfig:
    return ChainConfig(
        key="sync-devnet",
        chain_id=chain.chain_id,
        name="Sync Devnet",
        short_name="SyncDev",
        rpc_url=chain.rpc_url,
        supports_sync_mode=True,
    )


@pytest.fixture
def no_options() -> TransactionOptions:
    return TransactionOptions()


@pytest.fixture
def all_prefetched() -> TransactionOptions:
    return TransactionOptions(nonce=True, gas_params=True, chain_id=True, sync_mode=False)
