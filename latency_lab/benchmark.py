#!/usr/bin/env python3
"""Measure per-RPC-call latency of sending a transaction to an EVM chain."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from typing import Any, Dict, List, Optional, TextIO

from .chains import (
    DEFAULT_CHAIN_KEY,
    ChainConfig,
    create_custom_chain_config,
    get_chain_config,
    get_supported_chain_keys,
    load_chain_file,
)
from .errors import LatencyLabError, WalletRequiredError
from .models import BenchmarkResult, PartialResult, TransactionOptions
from .orchestrator import BenchmarkObserver, BenchmarkOrchestrator, BenchmarkState
from .runner import DEFAULT_POLL_LATENCY, DEFAULT_RECEIPT_TIMEOUT, ReceiptSettings
from .stats import format_latency_line, summarize_runs
from .strategies import select_strategy
from .wallets import NodeWallet


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--chain",
        default=DEFAULT_CHAIN_KEY,
        help=f"Registered chain to benchmark (known: {', '.join(get_supported_chain_keys())})",
    )
    parser.add_argument(
        "--chains-file",
        help="JSON file with extra chain definitions keyed by chain name",
    )
    parser.add_argument(
        "--rpc-url",
        default=None,
        help="Override RPC endpoint; combined with --chain-id it defines a custom chain",
    )
    parser.add_argument(
        "--chain-id",
        type=int,
        default=None,
        help="Chain id of a custom chain reached through --rpc-url",
    )
    parser.add_argument(
        "--chain-name",
        default=None,
        help="Display name for a custom chain",
    )
    parser.add_argument(
        "--sync-capable",
        action="store_true",
        help="Mark a custom chain as supporting eth_sendRawTransactionSync",
    )
    parser.add_argument(
        "--poa",
        action="store_true",
        help="Inject POA middleware (recommended for Clique/IBFT)",
    )
    parser.add_argument(
        "--prefetch-nonce",
        action="store_true",
        help="Resolve the nonce before the timer starts",
    )
    parser.add_argument(
        "--prefetch-gas",
        action="store_true",
        help="Resolve maxFeePerGas, maxPriorityFeePerGas and gas before the timer starts",
    )
    parser.add_argument(
        "--prefetch-chain-id",
        action="store_true",
        help="Answer eth_chainId from the chain registry instead of the node",
    )
    parser.add_argument(
        "--sync-mode",
        action="store_true",
        help="Submit with eth_sendRawTransactionSync when the chain supports it",
    )
    parser.add_argument(
        "--all-optimizations",
        action="store_true",
        help="Enable every prefetch option and sync mode",
    )
    parser.add_argument(
        "--wallet-address",
        help="Node-managed account to send from (connected wallet mode)",
    )
    parser.add_argument(
        "--wallet-password",
        default="",
        help="Password used when unlocking --wallet-address",
    )
    parser.add_argument(
        "--unlock", "--unlock-duration",
        type=int,
        default=3600,
        help="Unlock the wallet account for the specified duration (seconds)",
    )
    parser.add_argument(
        "--skip-unlock",
        action="store_true",
        help="Assume the wallet account is already unlocked and skip personal_unlockAccount",
    )
    parser.add_argument(
        "--runs",
        type=int,
        default=1,
        help="Number of independent benchmark runs to execute sequentially",
    )
    parser.add_argument(
        "--receipt-timeout",
        type=float,
        default=DEFAULT_RECEIPT_TIMEOUT,
        help="Seconds to wait for each transaction receipt",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_LATENCY,
        help="Seconds between receipt polls",
    )
    parser.add_argument(
        "--live",
        action="store_true",
        help="Print RPC calls as they complete",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON on stdout (progress goes to stderr)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging of individual benchmark steps",
    )
    args = parser.parse_args(argv)
    if args.runs < 1:
        parser.error("--runs must be at least 1")
    return args


def resolve_chain(args: argparse.Namespace) -> ChainConfig:
    if args.chains_file:
        load_chain_file(args.chains_file)

    if args.rpc_url and args.chain_id is not None:
        return create_custom_chain_config(
            args.rpc_url,
            args.chain_id,
            name=args.chain_name,
            supports_sync_mode=True if args.sync_capable else None,
            poa=args.poa,
        )

    chain = get_chain_config(args.chain)
    if args.rpc_url:
        chain = replace(chain, rpc_url=args.rpc_url)
    if args.poa:
        chain = replace(chain, poa=True)
    return chain


def build_options(args: argparse.Namespace) -> TransactionOptions:
    if args.all_optimizations:
        return TransactionOptions.all_enabled()
    return TransactionOptions(
        nonce=args.prefetch_nonce,
        gas_params=args.prefetch_gas,
        chain_id=args.prefetch_chain_id,
        sync_mode=args.sync_mode,
    )


class ConsoleObserver(BenchmarkObserver):
    STATE_MESSAGES = {
        BenchmarkState.PREPARING: "Preparing...",
        BenchmarkState.WAITING_FOR_WALLET: "Confirm in wallet...",
        BenchmarkState.RUNNING: "Sending transaction...",
    }

    def __init__(self, stream: TextIO, live: bool = False) -> None:
        self.stream = stream
        self.live = live
        self._reported = 0

    def on_state_change(self, state: BenchmarkState) -> None:
        message = self.STATE_MESSAGES.get(state)
        if message:
            print(f"[INFO] {message}", file=self.stream, flush=True)
        if state is BenchmarkState.PREPARING:
            self._reported = 0

    def on_partial_result(self, partial: Optional[PartialResult]) -> None:
        if not self.live or partial is None:
            return
        finished = [call for call in partial.rpc_calls if not call.is_pending]
        for call in finished[self._reported:]:
            print(
                f"  [INFO] {call.method:<32} {call.duration:>6} ms",
                file=self.stream,
                flush=True,
            )
        self._reported = max(self._reported, len(finished))

    def on_transaction_submitted(self, start_time: int) -> None:
        print(
            f"[INFO] Wallet returned the transaction hash; timer started at {start_time}",
            file=self.stream,
            flush=True,
        )


def format_result(result: BenchmarkResult, chain: ChainConfig) -> List[str]:
    lines = [
        "--- Benchmark Result ---",
        f"Status: {result.status.value}",
        f"Duration: {result.duration} ms",
        f"Total RPC time: {result.total_rpc_time} ms",
        f"Sync mode: {'yes' if result.sync_mode else 'no'}",
    ]
    if result.tx_hash:
        lines.append(f"Transaction: {result.tx_hash}")
        explorer = chain.explorer_tx_url(result.tx_hash)
        if explorer:
            lines.append(f"Explorer: {explorer}")
    if result.error:
        lines.append(f"Error: {result.error}")
    lines.append(f"RPC calls ({len(result.rpc_calls)}):")
    for call in result.rpc_calls:
        lines.append(f"  {call.method:<32} {call.duration:>6} ms")
    return lines


def build_summary_payload(
    chain: ChainConfig,
    options: TransactionOptions,
    results: List[BenchmarkResult],
) -> Dict[str, Any]:
    return {
        "chain": {"key": chain.key, "chain_id": chain.chain_id, "name": chain.name},
        "options": {
            "nonce": options.nonce,
            "gas_params": options.gas_params,
            "chain_id": options.chain_id,
            "sync_mode": options.sync_mode,
        },
        "results": [result.to_dict() for result in results],
        "summary": summarize_runs(results),
    }


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    out = sys.stderr if args.json else sys.stdout

    try:
        chain = resolve_chain(args)
    except (LatencyLabError, ValueError, FileNotFoundError) as exc:
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1

    options = build_options(args)
    if options.sync_mode and not chain.supports_sync_mode:
        print(
            f"[WARN] {chain.name} does not support eth_sendRawTransactionSync; using async mode.",
            file=out,
            flush=True,
        )
        options = replace(options, sync_mode=False)

    wallet = None
    if args.wallet_address:
        wallet = NodeWallet(chain, args.wallet_address, password=args.wallet_password)
        if args.skip_unlock:
            print("[INFO] Skipping account unlock as requested", file=out, flush=True)
        else:
            print(f"[INFO] Unlocking {wallet.address} for {args.unlock}s...", file=out, flush=True)
            if not wallet.unlock(args.unlock):
                print(
                    f"[WARN] Failed to unlock {wallet.address}; proceeding regardless.",
                    file=out,
                    flush=True,
                )

    receipt = ReceiptSettings(timeout=args.receipt_timeout, poll_latency=args.poll_interval)
    orchestrator = BenchmarkOrchestrator(
        chain,
        wallet=wallet,
        options=options,
        observer=ConsoleObserver(out, live=args.live),
        strategy_factory=lambda target, connected: select_strategy(
            target, connected, receipt=receipt
        ),
    )

    print("RPC:", chain.rpc_url, file=out)
    print("Chain:", f"{chain.name} ({chain.chain_id})", file=out)
    mode = "connected wallet" if orchestrator.wallet_connected else "local account"
    print("Mode:", mode, file=out)
    print(
        "Options:",
        f"nonce={options.nonce} gas={options.gas_params} "
        f"chainId={options.chain_id} sync={options.sync_mode}",
        file=out,
        flush=True,
    )

    results: List[BenchmarkResult] = []
    try:
        for index in range(args.runs):
            if args.runs > 1:
                print(f"[INFO] Run {index + 1}/{args.runs}", file=out, flush=True)
            result = orchestrator.run()
            results.append(result)
            print("\n".join(format_result(result, chain)), file=out, flush=True)
            if not result.ok:
                print(f"[ERROR] Benchmark failed: {result.error}", file=sys.stderr, flush=True)
    except WalletRequiredError as exc:
        print(f"Fatal error: {exc}", file=sys.stderr)
        return 1
    finally:
        orchestrator.close()

    if args.runs > 1:
        summary = summarize_runs(results)
        print("--- Benchmark Summary ---", file=out)
        print(
            f"Runs: {summary['runs']} "
            f"(success {summary['success']}, failed {summary['failed']})",
            file=out,
        )
        print(format_latency_line("Duration", summary["duration"]), file=out)
        print(format_latency_line("RPC time", summary["rpc_time"]), file=out)
        for method, stats in summary["methods"].items():
            print(format_latency_line(method, stats), file=out)

    if args.json:
        print(json.dumps(build_summary_payload(chain, options, results), indent=2))

    return 0 if all(result.ok for result in results) else 2


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as exc:  # noqa: BLE001
        print(f"Fatal error: {exc}", file=sys.stderr)
        raise
