"""Latency summaries over repeated benchmark runs."""
from __future__ import annotations

import math
import statistics
from typing import Dict, List, Optional, Sequence

from .models import BenchmarkResult


def percentile(values: List[float], fraction: float) -> float:
    if not values:
        raise ValueError("Cannot compute percentile of empty list")
    ordered = sorted(values)
    index = max(0, math.ceil(fraction * len(ordered)) - 1)
    return ordered[index]


def calculate_latency_stats(latencies: List[float]) -> Optional[Dict[str, float]]:
    if not latencies:
        return None
    return {
        "avg": statistics.mean(latencies),
        "p95": percentile(latencies, 0.95),
        "max": max(latencies),
        "min": min(latencies),
        "count": len(latencies),
    }


def collect_method_breakdown(results: Sequence[BenchmarkResult]) -> Dict[str, Dict[str, float]]:
    """Per RPC method latency stats across the successful runs, in first-seen order."""
    durations: Dict[str, List[float]] = {}
    for result in results:
        if not result.ok:
            continue
        for call in result.rpc_calls:
            if call.is_pending:
                continue
            durations.setdefault(call.method, []).append(float(call.duration))

    breakdown: Dict[str, Dict[str, float]] = {}
    for method, values in durations.items():
        stats = calculate_latency_stats(values)
        if stats is not None:
            breakdown[method] = stats
    return breakdown


def summarize_runs(results: Sequence[BenchmarkResult]) -> Dict[str, object]:
    successes = [result for result in results if result.ok]
    return {
        "runs": len(results),
        "success": len(successes),
        "failed": len(results) - len(successes),
        "duration": calculate_latency_stats([float(result.duration) for result in successes]),
        "rpc_time": calculate_latency_stats([float(result.total_rpc_time) for result in successes]),
        "methods": collect_method_breakdown(results),
    }


def format_latency_line(label: str, stats: Optional[Dict[str, float]]) -> str:
    if not stats or stats.get("count", 0) == 0:
        return f"- {label}: no successful runs"
    return (
        f"- {label}: avg {stats['avg']:.1f} ms, p95 {stats['p95']:.1f} ms, "
        f"max {stats['max']:.1f} ms (n = {stats['count']})"
    )
