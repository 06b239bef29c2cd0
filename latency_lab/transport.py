"""Timed JSON-RPC provider and the web3 clients built on top of it."""
from __future__ import annotations

import itertools
import logging
from typing import Any, Callable, Optional

from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers import BaseProvider, HTTPProvider
from web3.types import RPCEndpoint, RPCResponse

from .chains import ChainConfig
from .models import RPCCallRecord, now_ms

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 30

CallCallback = Callable[[RPCCallRecord], None]
ProviderFactory = Callable[[ChainConfig], BaseProvider]


class InstrumentedProvider(BaseProvider):
    """Wraps another provider and reports the timing of every request.

    ``on_start`` receives a pending record before the request is sent and
    ``on_finish`` the completed record afterwards, for failed requests too.
    When ``prefetch_chain_id`` is set and a ``cached_chain_id`` is known,
    ``eth_chainId`` is answered locally and never reported.
    """

    _bypass_ids = itertools.count(1)

    def __init__(
        self,
        base_provider: BaseProvider,
        on_finish: CallCallback,
        on_start: Optional[CallCallback] = None,
        prefetch_chain_id: bool = False,
        cached_chain_id: Optional[int] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        super().__init__()
        self.base_provider = base_provider
        self.on_finish = on_finish
        self.on_start = on_start
        self.prefetch_chain_id = prefetch_chain_id
        self.cached_chain_id = cached_chain_id
        self._clock = clock

    def make_request(self, method: RPCEndpoint, params: Any) -> RPCResponse:
        start_time = self._clock()

        if method == "eth_chainId" and self.prefetch_chain_id and self.cached_chain_id:
            logger.debug("eth_chainId answered from cache: %s", self.cached_chain_id)
            return {
                "jsonrpc": "2.0",
                "id": next(self._bypass_ids),
                "result": hex(self.cached_chain_id),
            }

        if self.on_start is not None:
            self._report(self.on_start, RPCCallRecord.pending(method, start_time))

        try:
            response = self.base_provider.make_request(method, params)
        except Exception:
            self._report(self.on_finish, RPCCallRecord.finished(method, start_time, self._clock()))
            raise

        self._report(self.on_finish, RPCCallRecord.finished(method, start_time, self._clock()))
        return response

    @staticmethod
    def _report(callback: CallCallback, record: RPCCallRecord) -> None:
        try:
            callback(record)
        except Exception:  # noqa: BLE001 - reporting must not change the RPC outcome
            logger.exception("Latency callback failed for %s", record.method)

    def is_connected(self, show_traceback: bool = False) -> bool:
        return self.base_provider.is_connected(show_traceback)


def default_provider_factory(chain: ChainConfig) -> BaseProvider:
    return HTTPProvider(chain.rpc_url, request_kwargs={"timeout": DEFAULT_REQUEST_TIMEOUT})


def inject_poa_if_needed(web3: Web3, enabled: bool) -> None:
    if enabled:
        try:
            web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        except ValueError:
            # Middleware already present
            pass


def create_benchmark_web3(
    chain: ChainConfig,
    on_finish: CallCallback,
    on_start: Optional[CallCallback] = None,
    prefetch_chain_id: bool = False,
    provider_factory: ProviderFactory = default_provider_factory,
) -> Web3:
    provider = InstrumentedProvider(
        provider_factory(chain),
        on_finish=on_finish,
        on_start=on_start,
        prefetch_chain_id=prefetch_chain_id,
        cached_chain_id=chain.chain_id,
    )
    web3 = Web3(provider)
    inject_poa_if_needed(web3, chain.poa)
    return web3


def create_setup_web3(
    chain: ChainConfig,
    provider_factory: ProviderFactory = default_provider_factory,
) -> Web3:
    """Plain client for calls made before the timer starts; never instrumented."""
    web3 = Web3(provider_factory(chain))
    inject_poa_if_needed(web3, chain.poa)
    return web3
