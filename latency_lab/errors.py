"""Exceptions raised for caller mistakes and configuration problems."""
from __future__ import annotations


class LatencyLabError(Exception):
    pass


class BenchmarkBusyError(LatencyLabError):
    """A run is already in progress."""


class WalletRequiredError(LatencyLabError):
    """The selected chain cannot be benchmarked without a connected wallet."""


class UnknownChainError(LatencyLabError, KeyError):
    pass


class SponsorshipNotSupportedError(LatencyLabError):
    """The signer cannot produce paymaster-sponsored transactions."""
