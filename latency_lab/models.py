"""Records and results produced by a benchmark run."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RPCCallRecord:
    method: str
    start_time: int
    end_time: Optional[int] = None
    duration: int = 0
    is_pending: bool = False

    @classmethod
    def pending(cls, method: str, start_time: int) -> "RPCCallRecord":
        return cls(method=method, start_time=start_time, is_pending=True)

    @classmethod
    def finished(cls, method: str, start_time: int, end_time: int) -> "RPCCallRecord":
        return cls(
            method=method,
            start_time=start_time,
            end_time=end_time,
            duration=end_time - start_time,
            is_pending=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "is_pending": self.is_pending,
        }


@dataclass(frozen=True)
class TransactionOptions:
    """Client-side optimizations applied to one run.

    ``nonce``, ``gas_params`` and ``chain_id`` resolve the parameter before the
    timed section instead of letting the signing step fetch it. ``sync_mode``
    submits through ``eth_sendRawTransactionSync`` when the chain supports it.
    """

    nonce: bool = False
    gas_params: bool = False
    chain_id: bool = False
    sync_mode: bool = False

    @classmethod
    def all_enabled(cls) -> "TransactionOptions":
        return cls(nonce=True, gas_params=True, chain_id=True, sync_mode=True)

    @property
    def fully_prefetched(self) -> bool:
        return self.nonce and self.gas_params and self.chain_id


@dataclass(frozen=True)
class PrefetchedGas:
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    gas: int

    def __post_init__(self) -> None:
        for name in ("max_fee_per_gas", "max_priority_fee_per_gas", "gas"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    def as_tx_fields(self) -> Dict[str, int]:
        return {
            "maxFeePerGas": self.max_fee_per_gas,
            "maxPriorityFeePerGas": self.max_priority_fee_per_gas,
            "gas": self.gas,
        }


class BenchmarkStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class BenchmarkResult:
    start_time: int
    end_time: int
    duration: int
    status: BenchmarkStatus
    tx_hash: str
    rpc_calls: Tuple[RPCCallRecord, ...]
    sync_mode: bool
    error: Optional[str] = None

    @classmethod
    def success(
        cls,
        start_time: int,
        end_time: int,
        tx_hash: str,
        rpc_calls: Sequence[RPCCallRecord],
        sync_mode: bool,
    ) -> "BenchmarkResult":
        return cls(
            start_time=start_time,
            end_time=end_time,
            duration=end_time - start_time,
            status=BenchmarkStatus.SUCCESS,
            tx_hash=tx_hash,
            rpc_calls=tuple(rpc_calls),
            sync_mode=sync_mode,
        )

    @classmethod
    def failure(
        cls,
        start_time: int,
        end_time: int,
        error: str,
        rpc_calls: Sequence[RPCCallRecord],
        sync_mode: bool,
    ) -> "BenchmarkResult":
        return cls(
            start_time=start_time,
            end_time=end_time,
            duration=end_time - start_time,
            status=BenchmarkStatus.ERROR,
            tx_hash="",
            rpc_calls=tuple(rpc_calls),
            sync_mode=sync_mode,
            error=error,
        )

    @property
    def ok(self) -> bool:
        return self.status is BenchmarkStatus.SUCCESS

    @property
    def total_rpc_time(self) -> int:
        return sum(call.duration for call in self.rpc_calls)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "tx_hash": self.tx_hash,
            "error": self.error,
            "sync_mode": self.sync_mode,
            "total_rpc_time": self.total_rpc_time,
            "rpc_calls": [call.to_dict() for call in self.rpc_calls],
        }


@dataclass(frozen=True)
class PartialResult:
    start_time: int
    rpc_calls: Tuple[RPCCallRecord, ...] = field(default_factory=tuple)
    is_complete: bool = False
    sync_mode: bool = False
    elapsed_time: int = 0


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__
