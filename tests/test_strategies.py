from dataclasses import replace

from eth_account import Account

from latency_lab.latency_log import LatencyLog
from latency_lab.models import BenchmarkStatus, TransactionOptions
from latency_lab.strategies import (
    ConnectedWalletStrategy,
    LocalAccountStrategy,
    RunListener,
    prefetch_gas,
    select_strategy,
)
from latency_lab.transport import create_setup_web3

from conftest import BASE_FEE, FAST_RECEIPTS, GAS_ESTIMATE, PRIORITY_FEE, SENDER, FakeNode, FakeWallet


class RecordingListener(RunListener):
    def __init__(self):
        self.events = []

    def awaiting_wallet(self) -> None:
        self.events.append(("awaiting_wallet",))

    def timing_started(self, start_time: int, sync_mode: bool) -> None:
        self.events.append(("timing_started", start_time, sync_mode))


def local_strategy(chain, node, **kwargs):
    return LocalAccountStrategy(chain, provider_factory=lambda _: node, receipt=FAST_RECEIPTS, **kwargs)


def test_prefetch_gas_combines_block_and_priority_fee(chain, node):
    web3 = create_setup_web3(chain, provider_factory=lambda _: node)

    gas = prefetch_gas(web3, SENDER, SENDER)

    assert gas.max_priority_fee_per_gas == PRIORITY_FEE
    assert gas.max_fee_per_gas == BASE_FEE + PRIORITY_FEE
    assert gas.gas == GAS_ESTIMATE
    assert {"eth_getBlockByNumber", "eth_maxPriorityFeePerGas", "eth_estimateGas"} <= set(node.methods())


def test_prefetch_gas_without_base_fee_uses_priority_fee(chain):
    node = FakeNode(base_fee=None)
    web3 = create_setup_web3(chain, provider_factory=lambda _: node)

    assert prefetch_gas(web3, SENDER, SENDER).max_fee_per_gas == PRIORITY_FEE


def test_local_strategy_fully_prefetched_run(chain, node, all_prefetched):
    log = LatencyLog()
    listener = RecordingListener()

    result = local_strategy(chain, node).execute(all_prefetched, log, listener)

    assert result.ok
    methods = [call.method for call in result.rpc_calls]
    assert methods[0] == "eth_sendRawTransaction"
    for hidden in ("eth_getTransactionCount", "eth_estimateGas", "eth_chainId", "eth_getBlockByNumber"):
        assert hidden not in methods
    # The prefetches did reach the node, strictly before the timer started.
    submit_index = node.methods().index("eth_sendRawTransaction")
    prefetched = node.calls[:submit_index]
    assert {"eth_getTransactionCount", "eth_estimateGas"} <= {method for method, _ in prefetched}
    assert all(called_at <= result.start_time for _, called_at in prefetched)
    assert listener.events == [("timing_started", result.start_time, False)]


def test_local_strategy_uses_fresh_account_each_run(chain, node, no_options):
    created = []

    def factory():
        account = Account.create()
        created.append(account.address)
        return account

    strategy = local_strategy(chain, node, account_factory=factory)
    strategy.execute(no_options, LatencyLog())
    strategy.execute(no_options, LatencyLog())

    assert len(set(created)) == 2


def test_nonce_prefetch_failure_is_zero_duration_error(chain):
    node = FakeNode(failures={"eth_getTransactionCount": ConnectionError("nonce lookup failed")})
    listener = RecordingListener()

    result = local_strategy(chain, node).execute(TransactionOptions(nonce=True), LatencyLog(), listener)

    assert result.status is BenchmarkStatus.ERROR
    assert result.duration == 0
    assert result.start_time == result.end_time
    assert result.tx_hash == ""
    assert result.error == "nonce lookup failed"
    assert result.rpc_calls == ()
    assert listener.events == []


def test_gas_prefetch_failure_is_zero_duration_error(chain):
    node = FakeNode(failures={"eth_estimateGas": ValueError("execution reverted")})

    result = local_strategy(chain, node).execute(TransactionOptions(gas_params=True), LatencyLog())

    assert result.status is BenchmarkStatus.ERROR
    assert result.duration == 0


def test_connected_strategy_reports_wallet_wait(chain, node):
    wallet = FakeWallet()
    listener = RecordingListener()
    strategy = ConnectedWalletStrategy(chain, wallet, provider_factory=lambda _: node, receipt=FAST_RECEIPTS)

    result = strategy.execute(TransactionOptions(), LatencyLog(), listener)

    assert result.ok
    assert listener.events == [("awaiting_wallet",), ("timing_started", result.start_time, False)]


def test_connected_strategy_prefetches_nonce_for_wallet(chain, node):
    wallet = FakeWallet()
    strategy = ConnectedWalletStrategy(chain, wallet, provider_factory=lambda _: node, receipt=FAST_RECEIPTS)

    strategy.execute(TransactionOptions(nonce=True), LatencyLog())

    assert wallet.requests[0]["nonce"] == 0


def test_connected_strategy_rejection(chain, node):
    wallet = FakeWallet(error=RuntimeError("User rejected the request."))
    listener = RecordingListener()
    strategy = ConnectedWalletStrategy(chain, wallet, provider_factory=lambda _: node)

    result = strategy.execute(TransactionOptions(), LatencyLog(), listener)

    assert result.status is BenchmarkStatus.ERROR
    assert result.duration == 0
    assert listener.events == [("awaiting_wallet",)]


def test_select_strategy_follows_wallet_connection(chain):
    wallet = FakeWallet()
    assert isinstance(select_strategy(chain, wallet), ConnectedWalletStrategy)

    wallet.disconnect()
    assert isinstance(select_strategy(chain, wallet), LocalAccountStrategy)
    assert isinstance(select_strategy(chain, None), LocalAccountStrategy)


def test_local_strategy_signs_sponsored_run_with_eip712(chain, node, all_prefetched):
    sponsored = replace(
        chain,
        is_zksync=True,
        supports_paymaster=True,
        paymaster="0x" + "22" * 20,
        paymaster_input="0x8c5a3445",
    )

    result = local_strategy(sponsored, node).execute(all_prefetched, LatencyLog())

    assert result.status is BenchmarkStatus.SUCCESS
    assert node.sent[0].startswith("0x71")


def test_local_strategy_keeps_eip1559_on_plain_chains(chain, node, all_prefetched):
    result = local_strategy(chain, node).execute(all_prefetched, LatencyLog())

    assert result.ok
    assert node.sent[0].startswith("0x02")
