"""Benchmark lifecycle: mode selection, live timer and result publication.

State transitions::

    IDLE -> PREPARING -> [WAITING_FOR_WALLET ->] RUNNING -> IDLE

Any failure ends the run with an error ``BenchmarkResult`` and returns to
``IDLE``. The ticker that refreshes the partial result is acquired on entry to
``RUNNING`` and released by the ``ExitStack`` around the strategy call, so it
is gone on every exit path before the final result is published.
"""
from __future__ import annotations

import logging
import threading
from contextlib import ExitStack
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from .chains import ChainConfig
from .errors import BenchmarkBusyError, WalletRequiredError
from .latency_log import LatencyLog
from .models import BenchmarkResult, PartialResult, RPCCallRecord, TransactionOptions, now_ms
from .strategies import RunListener, SubmissionStrategy, select_strategy
from .ticker import TIMER_UPDATE_INTERVAL, Ticker
from .wallets import ConnectedWallet

logger = logging.getLogger(__name__)

StrategyFactory = Callable[[ChainConfig, Optional[ConnectedWallet]], SubmissionStrategy]


class BenchmarkState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    WAITING_FOR_WALLET = "waiting_for_wallet"
    RUNNING = "running"


class BenchmarkObserver:
    """Receives published state. Calls are synchronous and must not block."""

    def on_state_change(self, state: BenchmarkState) -> None:
        pass

    def on_partial_result(self, partial: Optional[PartialResult]) -> None:
        pass

    def on_result(self, result: Optional[BenchmarkResult]) -> None:
        pass

    def on_transaction_submitted(self, start_time: int) -> None:
        pass


class BenchmarkOrchestrator(RunListener):
    def __init__(
        self,
        chain: ChainConfig,
        wallet: Optional[ConnectedWallet] = None,
        options: Optional[TransactionOptions] = None,
        observer: Optional[BenchmarkObserver] = None,
        strategy_factory: StrategyFactory = select_strategy,
        tick_interval: float = TIMER_UPDATE_INTERVAL,
    ) -> None:
        self.chain = chain
        self.wallet = wallet
        self.options = options or TransactionOptions()
        self.observer = observer or BenchmarkObserver()
        self.strategy_factory = strategy_factory
        self.tick_interval = tick_interval

        self.state = BenchmarkState.IDLE
        self.result: Optional[BenchmarkResult] = None
        self.partial_result: Optional[PartialResult] = None
        self.elapsed_time = 0

        self._lock = threading.RLock()
        self._start_time: Optional[int] = None
        self._log: Optional[LatencyLog] = None
        self._scope: Optional[ExitStack] = None
        self._ticker: Optional[Ticker] = None

    @property
    def is_busy(self) -> bool:
        return self.state is not BenchmarkState.IDLE

    @property
    def wallet_connected(self) -> bool:
        return self.wallet is not None and self.wallet.is_connected

    @property
    def can_run(self) -> bool:
        return self.wallet_connected or not self.chain.requires_wallet

    def set_options(self, options: TransactionOptions) -> None:
        with self._lock:
            if self.is_busy:
                raise BenchmarkBusyError("Options cannot change while a benchmark is running")
            self.options = options

    def run(self) -> BenchmarkResult:
        with self._lock:
            if self.is_busy:
                raise BenchmarkBusyError("A benchmark is already running")
            if not self.can_run:
                raise WalletRequiredError(
                    f"{self.chain.name} requires a connected wallet to send transactions"
                )
            chain, wallet, options = self.chain, self.wallet, self.options
            self.result = None
            self.partial_result = None
            self.elapsed_time = 0
            self._start_time = None
            self._log = LatencyLog()
            self._set_state(BenchmarkState.PREPARING)

        log = self._log
        log.subscribe(self._on_log_change)
        result: Optional[BenchmarkResult] = None
        try:
            strategy = self.strategy_factory(chain, wallet)
            logger.info("Running %s benchmark on %s", strategy.mode, chain.name)
            with ExitStack() as scope:
                self._scope = scope
                result = strategy.execute(options, log, listener=self)
        finally:
            self._scope = None
            self._ticker = None
            self._finish(result)
        return result

    def close(self) -> None:
        ticker = self._ticker
        if ticker is not None:
            ticker.cancel()

    def switch_chain(self, chain: ChainConfig) -> bool:
        """Select another chain; ignored while a run is in progress."""
        with self._lock:
            if self.is_busy:
                logger.warning(
                    "Ignoring switch to %s while a benchmark is %s", chain.name, self.state.value
                )
                return False
            self.chain = chain
            if self.options.sync_mode and not chain.supports_sync_mode:
                self.options = replace(self.options, sync_mode=False)
            self._clear_results()

        if self.wallet_connected:
            try:
                self.wallet.switch_chain(chain)
            except Exception as exc:  # noqa: BLE001 - switching is advisory
                logger.info("Chain switch cancelled or failed: %s", exc)
        return True

    def disconnect_wallet(self) -> bool:
        with self._lock:
            if self.is_busy:
                logger.warning(
                    "Ignoring wallet disconnect while a benchmark is %s", self.state.value
                )
                return False
            if self.wallet is not None:
                self.wallet.disconnect()
            self.wallet = None
            self._clear_results()
        return True

    def connect_wallet(self, wallet: ConnectedWallet) -> bool:
        with self._lock:
            if self.is_busy:
                logger.warning("Ignoring wallet connect while a benchmark is %s", self.state.value)
                return False
            self.wallet = wallet
            self._clear_results()
        return True

    # RunListener

    def awaiting_wallet(self) -> None:
        with self._lock:
            self._set_state(BenchmarkState.WAITING_FOR_WALLET)

    def timing_started(self, start_time: int, sync_mode: bool) -> None:
        with self._lock:
            self._start_time = start_time
            self.elapsed_time = 0
            self._set_state(BenchmarkState.RUNNING)
            self._publish_partial(
                PartialResult(start_time=start_time, is_complete=False, sync_mode=sync_mode)
            )
        if self._scope is None:
            logger.warning("Timing started outside a benchmark run; live timer not started")
            return
        self._ticker = self._scope.enter_context(Ticker(self._tick, self.tick_interval))

    def transaction_submitted(self, start_time: int) -> None:
        self.timing_started(start_time, False)
        self._emit("on_transaction_submitted", start_time)

    # internals

    def _tick(self) -> None:
        with self._lock:
            if self.partial_result is None or self._start_time is None or self._log is None:
                return
            self.elapsed_time = now_ms() - self._start_time
            self._publish_partial(
                replace(
                    self.partial_result,
                    rpc_calls=self._log.snapshot(),
                    elapsed_time=self.elapsed_time,
                )
            )

    def _on_log_change(self, snapshot: Tuple[RPCCallRecord, ...]) -> None:
        with self._lock:
            if self.partial_result is None:
                return
            self._publish_partial(replace(self.partial_result, rpc_calls=snapshot))

    def _finish(self, result: Optional[BenchmarkResult]) -> None:
        with self._lock:
            self._log = None
            self._start_time = None
            self.partial_result = None
            self._emit("on_partial_result", None)
            if result is not None:
                self.elapsed_time = result.duration
                self.result = result
                self._emit("on_result", result)
            self._set_state(BenchmarkState.IDLE)

    def _clear_results(self) -> None:
        self.result = None
        self.partial_result = None
        self.elapsed_time = 0
        self._emit("on_result", None)
        self._emit("on_partial_result", None)

    def _publish_partial(self, partial: PartialResult) -> None:
        self.partial_result = partial
        self._emit("on_partial_result", partial)

    def _set_state(self, state: BenchmarkState) -> None:
        if state is self.state:
            return
        self.state = state
        self._emit("on_state_change", state)

    def _emit(self, hook: str, *args: Any) -> None:
        try:
            getattr(self.observer, hook)(*args)
        except Exception:  # noqa: BLE001 - observers are a side channel
            logger.exception("Observer %s failed", hook)
