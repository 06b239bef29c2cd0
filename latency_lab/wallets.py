"""Signers and wallets used to produce benchmark transactions."""
from __future__ import annotations

import logging
from typing import Any, Dict

import rlp
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import Web3

from .chains import ChainConfig
from .errors import SponsorshipNotSupportedError
from .transport import ProviderFactory, create_setup_web3, default_provider_factory

logger = logging.getLogger(__name__)

SPONSORSHIP_FIELDS = ("paymaster", "paymasterInput")

ZKSYNC_EIP712_TX_TYPE = 0x71
DEFAULT_GAS_PER_PUBDATA_LIMIT = 50_000

ZKSYNC_TRANSACTION_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
    ],
    "Transaction": [
        {"name": "txType", "type": "uint256"},
        {"name": "from", "type": "uint256"},
        {"name": "to", "type": "uint256"},
        {"name": "gasLimit", "type": "uint256"},
        {"name": "gasPerPubdataByteLimit", "type": "uint256"},
        {"name": "maxFeePerGas", "type": "uint256"},
        {"name": "maxPriorityFeePerGas", "type": "uint256"},
        {"name": "paymaster", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "value", "type": "uint256"},
        {"name": "data", "type": "bytes"},
        {"name": "factoryDeps", "type": "bytes32[]"},
        {"name": "paymasterInput", "type": "bytes"},
    ],
}


def generate_local_account() -> LocalAccount:
    return Account.create()


def to_hex_hash(value: Any) -> str:
    if isinstance(value, str):
        return value if value.startswith("0x") else f"0x{value}"
    return HexBytes(value).to_0x_hex()


class LocalSigner:
    """Signs standard EIP-1559 transactions with an in-memory key."""

    def __init__(self, account: LocalAccount) -> None:
        self.account = account

    @property
    def address(self) -> str:
        return self.account.address

    def sign(self, transaction: Dict[str, Any]) -> HexBytes:
        if any(field in transaction for field in SPONSORSHIP_FIELDS):
            raise SponsorshipNotSupportedError(
                "Paymaster-sponsored transactions need an EIP-712 capable signer"
            )
        signed = self.account.sign_transaction(transaction)
        return HexBytes(signed.raw_transaction)


class Eip712Signer(LocalSigner):
    """Signs zkSync-stack EIP-712 transactions (type 0x71).

    The typed-data signature travels in the transaction's custom signature
    field, so paymaster sponsorship is carried by the signed payload itself.
    """

    def __init__(
        self, account: LocalAccount, gas_per_pubdata: int = DEFAULT_GAS_PER_PUBDATA_LIMIT
    ) -> None:
        super().__init__(account)
        self.gas_per_pubdata = gas_per_pubdata

    def typed_data(self, transaction: Dict[str, Any]) -> Dict[str, Any]:
        paymaster = transaction.get("paymaster")
        return {
            "types": ZKSYNC_TRANSACTION_TYPES,
            "primaryType": "Transaction",
            "domain": {"name": "zkSync", "version": "2", "chainId": int(transaction["chainId"])},
            "message": {
                "txType": ZKSYNC_EIP712_TX_TYPE,
                "from": int(self.address, 16),
                "to": int(transaction["to"], 16),
                "gasLimit": int(transaction["gas"]),
                "gasPerPubdataByteLimit": self.gas_per_pubdata,
                "maxFeePerGas": int(transaction["maxFeePerGas"]),
                "maxPriorityFeePerGas": int(transaction["maxPriorityFeePerGas"]),
                "paymaster": int(paymaster, 16) if paymaster else 0,
                "nonce": int(transaction["nonce"]),
                "value": int(transaction.get("value", 0)),
                "data": _to_bytes(transaction.get("data")),
                "factoryDeps": [],
                "paymasterInput": _to_bytes(transaction.get("paymasterInput")),
            },
        }

    def sign(self, transaction: Dict[str, Any]) -> HexBytes:
        typed_data = self.typed_data(transaction)
        message = typed_data["message"]
        signature = self.account.sign_message(encode_typed_data(full_message=typed_data)).signature
        chain_id = typed_data["domain"]["chainId"]
        paymaster = transaction.get("paymaster")

        fields = [
            message["nonce"],
            message["maxPriorityFeePerGas"],
            message["maxFeePerGas"],
            message["gasLimit"],
            _to_bytes(transaction["to"]),
            message["value"],
            message["data"],
            chain_id,
            b"",
            b"",
            chain_id,
            _to_bytes(self.address),
            self.gas_per_pubdata,
            [],
            bytes(signature),
            [_to_bytes(paymaster), message["paymasterInput"]] if paymaster else [],
        ]
        return HexBytes(bytes([ZKSYNC_EIP712_TX_TYPE]) + rlp.encode(fields))


def _to_bytes(value: Any) -> bytes:
    if not value:
        return b""
    return bytes(HexBytes(value))


def create_signer(account: LocalAccount, chain: ChainConfig) -> LocalSigner:
    if chain.is_zksync or chain.supports_paymaster:
        return Eip712Signer(account)
    return LocalSigner(account)


class ConnectedWallet:
    """An externally controlled account that signs and sends in one step."""

    address: str

    @property
    def is_connected(self) -> bool:
        raise NotImplementedError

    def send_transaction(self, params: Dict[str, Any]) -> str:
        raise NotImplementedError

    def switch_chain(self, chain: ChainConfig) -> None:
        raise NotImplementedError

    def disconnect(self) -> None:
        raise NotImplementedError


def personal_unlock_account(web3: Web3, account: str, password: str, duration: int) -> Any:
    return web3.manager.request_blocking("personal_unlockAccount", [account, password, duration])


class NodeWallet(ConnectedWallet):
    """Account managed by the node itself, sending through ``eth_sendTransaction``.

    Mirrors how Quorum/Geth development networks expose unlocked accounts.
    Signing happens on the node, so only the confirmation can be timed.
    """

    def __init__(
        self,
        chain: ChainConfig,
        address: str,
        password: str = "",
        provider_factory: ProviderFactory = default_provider_factory,
    ) -> None:
        self.address = Web3.to_checksum_address(address)
        self.password = password
        self.chain = chain
        self._provider_factory = provider_factory
        self.web3 = create_setup_web3(chain, provider_factory)
        self._connected = True

    @property
    def is_connected(self) -> bool:
        return self._connected

    def unlock(self, duration: int) -> bool:
        try:
            personal_unlock_account(self.web3, self.address, self.password, duration)
        except Exception as exc:  # noqa: BLE001 - node may not expose personal API
            logger.warning("Unable to unlock %s: %s", self.address, exc)
            return False
        return True

    def send_transaction(self, params: Dict[str, Any]) -> str:
        tx_hash = self.web3.eth.send_transaction(dict(params))
        return to_hex_hash(tx_hash)

    def switch_chain(self, chain: ChainConfig) -> None:
        web3 = create_setup_web3(chain, self._provider_factory)
        accounts = [Web3.to_checksum_address(acc) for acc in web3.eth.accounts]
        if self.address not in accounts:
            raise ValueError(f"Account {self.address} is not managed by the {chain.name} node")
        self.chain = chain
        self.web3 = web3

    def disconnect(self) -> None:
        self._connected = False

