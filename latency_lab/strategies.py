"""Submission strategies: preparation outside the timer, then a timed run."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Tuple

from eth_account.signers.local import LocalAccount
from web3 import Web3

from .chains import ZERO_ADDRESS, ChainConfig
from .latency_log import LatencyLog
from .models import BenchmarkResult, PrefetchedGas, TransactionOptions, describe_error, now_ms
from .runner import (
    BenchmarkClients,
    ConnectedWalletContext,
    ReceiptSettings,
    compute_max_fee,
    run_connected_wallet_transaction,
    run_transaction,
)
from .transport import (
    ProviderFactory,
    create_benchmark_web3,
    create_setup_web3,
    default_provider_factory,
)
from .wallets import ConnectedWallet, LocalSigner, create_signer, generate_local_account

logger = logging.getLogger(__name__)


class RunListener:
    """Lifecycle notifications a strategy sends while it executes."""

    def awaiting_wallet(self) -> None:
        pass

    def timing_started(self, start_time: int, sync_mode: bool) -> None:
        pass

    def transaction_submitted(self, start_time: int) -> None:
        self.timing_started(start_time, False)


def prefetch_gas(web3: Web3, sender: str, to: str) -> PrefetchedGas:
    """Resolve fee and gas limit with the three lookups issued concurrently."""
    with ThreadPoolExecutor(max_workers=3, thread_name_prefix="gas-prefetch") as pool:
        block_future = pool.submit(web3.eth.get_block, "latest")
        priority_future = pool.submit(lambda: web3.eth.max_priority_fee)
        gas_future = pool.submit(web3.eth.estimate_gas, {"from": sender, "to": to, "value": 0})
        block = block_future.result()
        priority_fee = int(priority_future.result())
        gas = int(gas_future.result())

    return PrefetchedGas(
        max_fee_per_gas=compute_max_fee(block.get("baseFeePerGas"), priority_fee),
        max_priority_fee_per_gas=priority_fee,
        gas=gas,
    )


class SubmissionStrategy:
    mode = "base"

    def __init__(
        self,
        chain: ChainConfig,
        provider_factory: ProviderFactory = default_provider_factory,
        receipt: ReceiptSettings = ReceiptSettings(),
    ) -> None:
        self.chain = chain
        self.provider_factory = provider_factory
        self.receipt = receipt

    def execute(
        self,
        options: TransactionOptions,
        log: LatencyLog,
        listener: Optional[RunListener] = None,
    ) -> BenchmarkResult:
        raise NotImplementedError

    def prefetch(
        self, options: TransactionOptions, sender: str, to: str
    ) -> Tuple[Optional[int], Optional[PrefetchedGas]]:
        setup_web3 = create_setup_web3(self.chain, self.provider_factory)
        prefetched_gas = None
        nonce = None
        if options.gas_params:
            prefetched_gas = prefetch_gas(setup_web3, sender, to)
            logger.info(
                "[%s] Pre-fetched gas parameters: %s", self.chain.short_name, prefetched_gas
            )
        if options.nonce:
            nonce = setup_web3.eth.get_transaction_count(sender, "pending")
            logger.info("[%s] Pre-fetched nonce: %d", self.chain.short_name, nonce)
        return nonce, prefetched_gas

    def instrumented_web3(self, log: LatencyLog, prefetch_chain_id: bool = False) -> Web3:
        return create_benchmark_web3(
            self.chain,
            on_finish=log.reconcile,
            on_start=log.record_start,
            prefetch_chain_id=prefetch_chain_id,
            provider_factory=self.provider_factory,
        )

    def preparation_failure(self, exc: Exception, sync_mode: bool) -> BenchmarkResult:
        failed_at = now_ms()
        logger.error("[%s] [%s] Preparation failed: %s", self.chain.short_name, self.mode, exc)
        return BenchmarkResult.failure(
            start_time=failed_at,
            end_time=failed_at,
            error=describe_error(exc),
            rpc_calls=(),
            sync_mode=sync_mode,
        )


class LocalAccountStrategy(SubmissionStrategy):
    """Fresh throwaway account; sponsored where the chain offers a paymaster."""

    mode = "local"

    def __init__(
        self,
        chain: ChainConfig,
        provider_factory: ProviderFactory = default_provider_factory,
        receipt: ReceiptSettings = ReceiptSettings(),
        account_factory: Callable[[], LocalAccount] = generate_local_account,
        signer_factory: Optional[Callable[[LocalAccount], LocalSigner]] = None,
    ) -> None:
        super().__init__(chain, provider_factory, receipt)
        self.account_factory = account_factory
        self.signer_factory = signer_factory

    def create_signer(self, account: LocalAccount) -> LocalSigner:
        """EIP-712 signing on zkSync-stack and sponsored chains, EIP-1559 elsewhere."""
        if self.signer_factory is not None:
            return self.signer_factory(account)
        return create_signer(account, self.chain)

    def execute(
        self,
        options: TransactionOptions,
        log: LatencyLog,
        listener: Optional[RunListener] = None,
    ) -> BenchmarkResult:
        listener = listener or RunListener()
        sync_mode = options.sync_mode and self.chain.supports_sync_mode

        try:
            account = self.account_factory()
            nonce, prefetched_gas = self.prefetch(options, account.address, ZERO_ADDRESS)
            clients = BenchmarkClients(
                wallet_web3=self.instrumented_web3(log, prefetch_chain_id=options.chain_id),
                public_web3=self.instrumented_web3(log),
                signer=self.create_signer(account),
            )
        except Exception as exc:  # noqa: BLE001 - reported as a zero-duration error
            return self.preparation_failure(exc, sync_mode)

        return run_transaction(
            clients,
            self.chain,
            nonce,
            log,
            options,
            prefetched_gas,
            on_timing_started=lambda start_time: listener.timing_started(start_time, sync_mode),
            receipt=self.receipt,
        )


class ConnectedWalletStrategy(SubmissionStrategy):
    """External wallet signs and sends; only confirmation is timed."""

    mode = "connected"

    def __init__(
        self,
        chain: ChainConfig,
        wallet: ConnectedWallet,
        provider_factory: ProviderFactory = default_provider_factory,
        receipt: ReceiptSettings = ReceiptSettings(),
    ) -> None:
        super().__init__(chain, provider_factory, receipt)
        self.wallet = wallet

    def execute(
        self,
        options: TransactionOptions,
        log: LatencyLog,
        listener: Optional[RunListener] = None,
    ) -> BenchmarkResult:
        listener = listener or RunListener()
        address = self.wallet.address

        try:
            nonce, prefetched_gas = self.prefetch(options, address, address)
            context = ConnectedWalletContext(
                wallet=self.wallet,
                public_web3=self.instrumented_web3(log),
                address=address,
            )
        except Exception as exc:  # noqa: BLE001 - reported as a zero-duration error
            return self.preparation_failure(exc, sync_mode=False)

        listener.awaiting_wallet()
        return run_connected_wallet_transaction(
            context,
            self.chain,
            nonce,
            log,
            options,
            prefetched_gas,
            on_transaction_submitted=listener.transaction_submitted,
            receipt=self.receipt,
        )


def select_strategy(
    chain: ChainConfig,
    wallet: Optional[ConnectedWallet] = None,
    provider_factory: ProviderFactory = default_provider_factory,
    receipt: ReceiptSettings = ReceiptSettings(),
) -> SubmissionStrategy:
    if wallet is not None and wallet.is_connected:
        return ConnectedWalletStrategy(chain, wallet, provider_factory, receipt)
    return LocalAccountStrategy(chain, provider_factory, receipt)
