"""Timed submission of a single benchmark transaction.

Two entry points share the same result shape:

* ``run_transaction`` signs with an ephemeral local account, so every RPC call
  from parameter resolution to confirmation is visible to the latency log.
* ``run_connected_wallet_transaction`` hands the transaction to an external
  wallet that signs and sends atomically; only confirmation polling is timed,
  and the clock starts when the wallet returns the hash.

Both catch every failure once and turn it into an error result carrying the
calls logged so far.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional

from web3 import Web3

from .chains import ZERO_ADDRESS, ChainConfig
from .latency_log import LatencyLog
from .models import BenchmarkResult, PrefetchedGas, TransactionOptions, describe_error, now_ms
from .wallets import ConnectedWallet, LocalSigner, to_hex_hash

logger = logging.getLogger(__name__)

DEFAULT_RECEIPT_TIMEOUT = 120
DEFAULT_POLL_LATENCY = 0.1

FEE_FIELDS = ("maxFeePerGas", "maxPriorityFeePerGas")
ESTIMATE_FIELDS = ("from", "to", "value", "data")

OnTimingStarted = Callable[[int], None]


@dataclass
class BenchmarkClients:
    """Instrumented clients bound to the local account.

    ``wallet_web3`` answers ``eth_chainId`` from cache when chain id prefetch is
    on; ``public_web3`` always goes to the node.
    """

    wallet_web3: Web3
    public_web3: Web3
    signer: LocalSigner


@dataclass
class ConnectedWalletContext:
    wallet: ConnectedWallet
    public_web3: Web3
    address: str


@dataclass(frozen=True)
class ReceiptSettings:
    timeout: float = DEFAULT_RECEIPT_TIMEOUT
    poll_latency: float = DEFAULT_POLL_LATENCY


def compute_max_fee(base_fee: Optional[int], priority_fee: int) -> int:
    if base_fee:
        return int(base_fee) + int(priority_fee)
    return int(priority_fee)


def build_transaction_params(
    to: str,
    chain: ChainConfig,
    nonce: Optional[int],
    options: TransactionOptions,
    prefetched_gas: Optional[PrefetchedGas],
    sponsored: bool = True,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {"to": to, "value": 0}

    # Sponsorship follows the chain, not the options.
    if sponsored:
        params.update(chain.sponsorship_fields())

    if options.nonce and nonce is not None:
        params["nonce"] = nonce

    if options.gas_params and prefetched_gas is not None:
        params.update(prefetched_gas.as_tx_fields())

    return params


def prepare_transaction_request(web3: Web3, params: Dict[str, Any], sender: str) -> Dict[str, Any]:
    """Fill every field the signer needs that the caller did not resolve."""
    request = dict(params)
    request["from"] = sender

    if "chainId" not in request:
        request["chainId"] = web3.eth.chain_id

    if "nonce" not in request:
        request["nonce"] = web3.eth.get_transaction_count(sender, "pending")

    if not all(field in request for field in FEE_FIELDS):
        block = web3.eth.get_block("latest")
        priority_fee = web3.eth.max_priority_fee
        request["maxPriorityFeePerGas"] = int(priority_fee)
        request["maxFeePerGas"] = compute_max_fee(block.get("baseFeePerGas"), priority_fee)

    if "gas" not in request:
        estimate = {key: request[key] for key in ESTIMATE_FIELDS if key in request}
        request["gas"] = web3.eth.estimate_gas(estimate)

    return request


@contextmanager
def _timed_step(chain: ChainConfig, mode_label: str, step: str) -> Iterator[None]:
    started = now_ms()
    yield
    logger.info(
        "[%s] [%s] %s completed in %d ms", chain.short_name, mode_label, step, now_ms() - started
    )


def run_transaction(
    clients: BenchmarkClients,
    chain: ChainConfig,
    nonce: Optional[int],
    log: LatencyLog,
    options: TransactionOptions,
    prefetched_gas: Optional[PrefetchedGas] = None,
    on_timing_started: Optional[OnTimingStarted] = None,
    receipt: ReceiptSettings = ReceiptSettings(),
) -> BenchmarkResult:
    start_time = now_ms()
    use_sync = options.sync_mode and chain.supports_sync_mode
    mode_label = "SYNC" if use_sync else "ASYNC"
    logger.info("[%s] [%s] Transaction started at %d", chain.short_name, mode_label, start_time)
    if on_timing_started is not None:
        on_timing_started(start_time)

    try:
        params = build_transaction_params(ZERO_ADDRESS, chain, nonce, options, prefetched_gas)
        sender = clients.signer.address

        if use_sync:
            with _timed_step(chain, mode_label, "prepareTransactionRequest"):
                request = prepare_transaction_request(clients.wallet_web3, params, sender)
            with _timed_step(chain, mode_label, "signTransaction"):
                raw_transaction = clients.signer.sign(request)
            with _timed_step(chain, mode_label, "eth_sendRawTransactionSync"):
                tx_receipt = clients.public_web3.manager.request_blocking(
                    "eth_sendRawTransactionSync", [raw_transaction.to_0x_hex()]
                )
            tx_hash = to_hex_hash(tx_receipt["transactionHash"])
        else:
            if options.fully_prefetched and prefetched_gas is not None:
                # Everything is resolved, so nothing may reach the node before the send.
                request = dict(params, **{"from": sender, "chainId": chain.chain_id})
                with _timed_step(chain, mode_label, "signTransaction"):
                    raw_transaction = clients.signer.sign(request)
                with _timed_step(chain, mode_label, "eth_sendRawTransaction"):
                    tx_hash = to_hex_hash(
                        clients.public_web3.eth.send_raw_transaction(raw_transaction)
                    )
            else:
                with _timed_step(chain, mode_label, "sendTransaction"):
                    request = prepare_transaction_request(clients.wallet_web3, params, sender)
                    raw_transaction = clients.signer.sign(request)
                    tx_hash = to_hex_hash(
                        clients.wallet_web3.eth.send_raw_transaction(raw_transaction)
                    )
            logger.info("[%s] [%s] Transaction hash: %s", chain.short_name, mode_label, tx_hash)

            with _timed_step(chain, mode_label, "waitForTransactionReceipt"):
                clients.public_web3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=receipt.timeout, poll_latency=receipt.poll_latency
                )

        end_time = now_ms()
        logger.info(
            "[%s] [%s] Total transaction time: %d ms",
            chain.short_name,
            mode_label,
            end_time - start_time,
        )
        return BenchmarkResult.success(
            start_time=start_time,
            end_time=end_time,
            tx_hash=tx_hash,
            rpc_calls=log.snapshot(),
            sync_mode=use_sync,
        )
    except Exception as exc:  # noqa: BLE001 - every failure becomes an error result
        end_time = now_ms()
        logger.error("[%s] [%s] Transaction failed: %s", chain.short_name, mode_label, exc)
        return BenchmarkResult.failure(
            start_time=start_time,
            end_time=end_time,
            error=describe_error(exc),
            rpc_calls=log.snapshot(),
            sync_mode=use_sync,
        )


def run_connected_wallet_transaction(
    context: ConnectedWalletContext,
    chain: ChainConfig,
    nonce: Optional[int],
    log: LatencyLog,
    options: TransactionOptions,
    prefetched_gas: Optional[PrefetchedGas] = None,
    on_transaction_submitted: Optional[OnTimingStarted] = None,
    receipt: ReceiptSettings = ReceiptSettings(),
) -> BenchmarkResult:
    mode_label = "CONNECTED"
    start_time: Optional[int] = None

    try:
        # Self-transfer: wallets warn about sends to the burn address.
        params = build_transaction_params(
            context.address, chain, nonce, options, prefetched_gas, sponsored=False
        )
        params["from"] = context.address

        logger.info(
            "[%s] [%s] Waiting for wallet to sign and send...", chain.short_name, mode_label
        )
        tx_hash = context.wallet.send_transaction(params)

        start_time = now_ms()
        logger.info(
            "[%s] [%s] Transaction %s sent, timer started at %d",
            chain.short_name,
            mode_label,
            tx_hash,
            start_time,
        )
        if on_transaction_submitted is not None:
            on_transaction_submitted(start_time)

        with _timed_step(chain, mode_label, "waitForTransactionReceipt"):
            context.public_web3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=receipt.timeout, poll_latency=receipt.poll_latency
            )

        end_time = now_ms()
        logger.info(
            "[%s] [%s] Total confirmation time: %d ms",
            chain.short_name,
            mode_label,
            end_time - start_time,
        )
        return BenchmarkResult.success(
            start_time=start_time,
            end_time=end_time,
            tx_hash=tx_hash,
            rpc_calls=log.snapshot(),
            sync_mode=False,
        )
    except Exception as exc:  # noqa: BLE001 - wallet rejections included
        end_time = now_ms()
        logger.error("[%s] [%s] Transaction failed: %s", chain.short_name, mode_label, exc)
        return BenchmarkResult.failure(
            start_time=end_time if start_time is None else start_time,
            end_time=end_time,
            error=describe_error(exc),
            rpc_calls=log.snapshot(),
            sync_mode=False,
        )
