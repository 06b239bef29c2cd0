"""Per-RPC-call latency benchmarks for EVM transaction submission."""
from __future__ import annotations

from .chains import ChainConfig, create_custom_chain_config, get_chain_config
from .errors import (
    BenchmarkBusyError,
    LatencyLabError,
    SponsorshipNotSupportedError,
    UnknownChainError,
    WalletRequiredError,
)
from .latency_log import LatencyLog
from .models import (
    BenchmarkResult,
    BenchmarkStatus,
    PartialResult,
    PrefetchedGas,
    RPCCallRecord,
    TransactionOptions,
)
from .orchestrator import BenchmarkObserver, BenchmarkOrchestrator, BenchmarkState
from .strategies import ConnectedWalletStrategy, LocalAccountStrategy, select_strategy
from .transport import InstrumentedProvider

__version__ = "0.1.0"

__all__ = [
    "BenchmarkBusyError",
    "BenchmarkObserver",
    "BenchmarkOrchestrator",
    "BenchmarkResult",
    "BenchmarkState",
    "BenchmarkStatus",
    "ChainConfig",
    "ConnectedWalletStrategy",
    "InstrumentedProvider",
    "LatencyLabError",
    "LatencyLog",
    "LocalAccountStrategy",
    "PartialResult",
    "PrefetchedGas",
    "RPCCallRecord",
    "SponsorshipNotSupportedError",
    "TransactionOptions",
    "UnknownChainError",
    "WalletRequiredError",
    "create_custom_chain_config",
    "get_chain_config",
    "select_strategy",
]
