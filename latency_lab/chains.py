"""Chain registry: RPC endpoints and per-chain transaction capabilities."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from .errors import UnknownChainError

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# zkSync stack chains need EIP-712 transactions and may expose sync sends.
ZKSYNC_CHAIN_IDS = frozenset(
    {
        324,  # zkSync Era Mainnet
        300,  # zkSync Sepolia
        302,  # zkSync Goerli
        11124,  # Abstract Testnet
        282,  # Cronos zkEVM Testnet
        388,  # Cronos zkEVM Mainnet
        4654,  # Gold Chain
        333271,  # Camp Testnet
        37111,  # Lens Testnet
        978658,  # Treasure Ruby
        531050104,  # Sophon
        4457845,  # Zero Network
        2741,  # Abstract Mainnet
        240,  # Blast zkEVM
        555271,  # Xsolla zkEVM
        61166,  # Treasure
        555272,  # Xsolla zkEVM Mainnet
    }
)

LOCAL_CHAIN_IDS = frozenset({1337, 31337})

CUSTOM_CHAIN_KEY = "custom"


def is_zksync_chain(chain_id: int) -> bool:
    if chain_id in LOCAL_CHAIN_IDS:
        return False
    return chain_id in ZKSYNC_CHAIN_IDS


@dataclass(frozen=True)
class ChainConfig:
    key: str
    chain_id: int
    name: str
    short_name: str
    rpc_url: str
    supports_sync_mode: bool = False
    supports_paymaster: bool = False
    requires_wallet: bool = False
    is_zksync: bool = False
    poa: bool = False
    paymaster: Optional[str] = None
    paymaster_input: Optional[str] = None
    explorer_url: Optional[str] = None

    def __post_init__(self) -> None:
        if self.supports_paymaster and not self.paymaster:
            raise ValueError(f"Chain '{self.key}' enables sponsorship without a paymaster address")

    def sponsorship_fields(self) -> Dict[str, str]:
        if not self.supports_paymaster:
            return {}
        return {"paymaster": self.paymaster, "paymasterInput": self.paymaster_input or "0x"}

    def explorer_tx_url(self, tx_hash: str) -> Optional[str]:
        if not self.explorer_url or not tx_hash:
            return None
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"


CHAIN_CONFIGS: Dict[str, ChainConfig] = {
    "polygon": ChainConfig(
        key="polygon",
        chain_id=137,
        name="Polygon Mainnet",
        short_name="Polygon",
        rpc_url="https://polygon-rpc.com",
        requires_wallet=True,
        explorer_url="https://polygonscan.com",
    ),
    "polygon-amoy": ChainConfig(
        key="polygon-amoy",
        chain_id=80002,
        name="Polygon Amoy",
        short_name="Polygon Amoy",
        rpc_url="https://rpc-amoy.polygon.technology",
        requires_wallet=True,
        explorer_url="https://amoy.polygonscan.com",
    ),
    "abstract-testnet": ChainConfig(
        key="abstract-testnet",
        chain_id=11124,
        name="Abstract Testnet",
        short_name="Abstract",
        rpc_url="https://api.testnet.abs.xyz",
        supports_sync_mode=True,
        requires_wallet=True,
        is_zksync=True,
        explorer_url="https://sepolia.abscan.org",
    ),
}

DEFAULT_CHAIN_KEY = "polygon-amoy"


def get_supported_chain_keys() -> List[str]:
    return list(CHAIN_CONFIGS)


def get_chain_config(key: str) -> ChainConfig:
    try:
        return CHAIN_CONFIGS[key]
    except KeyError:
        raise UnknownChainError(
            f"Unknown chain '{key}'. Known chains: {', '.join(sorted(CHAIN_CONFIGS))}"
        ) from None


def find_chain_by_id(chain_id: int) -> Optional[ChainConfig]:
    for config in CHAIN_CONFIGS.values():
        if config.chain_id == chain_id:
            return config
    return None


def create_custom_chain_config(
    rpc_url: str,
    chain_id: int,
    name: Optional[str] = None,
    supports_sync_mode: Optional[bool] = None,
    poa: bool = False,
) -> ChainConfig:
    known = find_chain_by_id(chain_id)
    if known is not None:
        config = replace(known, key=CUSTOM_CHAIN_KEY, rpc_url=rpc_url, poa=poa or known.poa)
        if supports_sync_mode is not None:
            config = replace(config, supports_sync_mode=supports_sync_mode)
        return config

    zksync = is_zksync_chain(chain_id)
    return ChainConfig(
        key=CUSTOM_CHAIN_KEY,
        chain_id=chain_id,
        name=name or f"Chain {chain_id}",
        short_name=name or f"Chain {chain_id}",
        rpc_url=rpc_url,
        supports_sync_mode=zksync if supports_sync_mode is None else supports_sync_mode,
        is_zksync=zksync,
        poa=poa,
    )


def chain_config_from_dict(key: str, payload: Dict[str, Any]) -> ChainConfig:
    try:
        chain_id = int(payload["chainId"])
        rpc_url = payload["rpcUrl"]
    except KeyError as exc:
        raise ValueError(f"Chain '{key}' must define chainId and rpcUrl (missing {exc})") from exc

    name = payload.get("name") or f"Chain {chain_id}"
    return ChainConfig(
        key=key,
        chain_id=chain_id,
        name=name,
        short_name=payload.get("shortName", name),
        rpc_url=rpc_url,
        supports_sync_mode=bool(payload.get("supportsSyncMode", False)),
        supports_paymaster=bool(payload.get("supportsPaymaster", False)),
        requires_wallet=bool(payload.get("requiresWallet", False)),
        is_zksync=bool(payload.get("isZkSync", is_zksync_chain(chain_id))),
        poa=bool(payload.get("poa", False)),
        paymaster=payload.get("paymaster"),
        paymaster_input=payload.get("paymasterInput"),
        explorer_url=payload.get("explorerUrl"),
    )


def load_chain_file(path: str) -> List[str]:
    """Register the chains described in a JSON file and return their keys.

    The file maps a chain key to an object with at least ``chainId`` and
    ``rpcUrl``; entries override built-in chains with the same key.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Chain file not found: {path}")
    with open(path, "r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict):
        raise ValueError("Chain file must contain a JSON object keyed by chain name")

    loaded: List[str] = []
    for key, entry in payload.items():
        CHAIN_CONFIGS[key] = chain_config_from_dict(key, entry)
        loaded.append(key)
    return loaded
