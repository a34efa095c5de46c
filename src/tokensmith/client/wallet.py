"""Wallet sessions and their lifecycle.

A ``WalletSession`` is the capability the payment coordinator needs: whether
a spendable account is connected, its address, and a native-currency
transfer that returns once the transaction is confirmed. ``kind`` tags the
chain family so callers can branch on it without isinstance checks.

``EvmWalletSession`` implements it on web3.py, either signing locally with a
private key or delegating to a wallet-backed RPC (``eth_requestAccounts``,
``eth_sendTransaction``). ``WalletSessionContext`` owns the current session
and the account-change listeners between ``open()`` and ``close()``.
``open_session`` picks the session class for the configured currency family.

The command line front end only connects once. ``accounts_changed`` is the
hook for front ends that receive wallet events (a browser bridge, a
websocket relay) and forward them here.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol, runtime_checkable

from eth_account import Account
from web3 import Web3
from web3.exceptions import Web3Exception

from tokensmith.common.config import PaymentSettings
from tokensmith.common.errors import (
    ConfigError,
    NotConnected,
    PaymentBroadcastOrConfirmFailed,
    PaymentRejectedByUser,
)

LOGGER = logging.getLogger("tokensmith.client.wallet")

# EIP-1193 provider error codes
USER_REJECTED = 4001
UNRECOGNIZED_CHAIN = 4902


@dataclass(frozen=True)
class TransferConfirmation:
    tx_hash: str
    block_number: int | None = None


@runtime_checkable
class WalletSession(Protocol):
    kind: str

    @property
    def is_connected(self) -> bool: ...

    @property
    def address(self) -> str | None: ...

    def connect(self) -> str: ...

    def disconnect(self) -> None: ...

    def use_account(self, address: str) -> None: ...

    def send_native_transfer(
        self, amount: int, to: str, on_broadcast: Callable[[str], None] | None = None
    ) -> TransferConfirmation: ...


def rpc_error_code(exc: BaseException) -> int | None:
    """EIP-1193/JSON-RPC error code carried by a web3 exception, if any."""
    response = getattr(exc, "rpc_response", None)
    if isinstance(response, dict) and isinstance(response.get("error"), dict):
        return response["error"].get("code")
    for arg in getattr(exc, "args", ()):
        if isinstance(arg, dict) and "code" in arg:
            return arg["code"]
    return None


def is_user_rejection(exc: BaseException) -> bool:
    if rpc_error_code(exc) == USER_REJECTED:
        return True
    text = str(exc).lower()
    return "user rejected" in text or "user denied" in text or "action_rejected" in text


class EvmWalletSession:
    """
    Native-currency payments on an EVM chain through web3.py.

    Args:
        w3: Connected Web3 instance.
        settings: Fee chain, currency and confirmation timeout.
        private_key: Sign locally with this key; otherwise the RPC's wallet signs.
    """

    kind = "evm"

    def __init__(self, w3: Web3, settings: PaymentSettings, private_key: str | None = None) -> None:
        self.w3 = w3
        self.settings = settings
        try:
            self._account = Account.from_key(private_key) if private_key else None
        except ValueError as e:
            raise NotConnected("The configured private key is not a valid EVM key.") from e
        self._address: str | None = None

    @classmethod
    def from_rpc(cls, settings: PaymentSettings, private_key: str | None = None, timeout: float = 30.0) -> "EvmWalletSession":
        provider = Web3.HTTPProvider(settings.chain.rpc_url, request_kwargs={"timeout": timeout})
        return cls(Web3(provider), settings, private_key)

    @property
    def is_connected(self) -> bool:
        return self._address is not None

    @property
    def address(self) -> str | None:
        return self._address

    def connect(self) -> str:
        try:
            self._ensure_chain()
            if self._account is not None:
                self._address = self._account.address
            else:
                accounts = self.w3.manager.request_blocking("eth_requestAccounts", [])
                if not accounts:
                    raise NotConnected("The wallet did not expose any account.")
                self._address = Web3.to_checksum_address(accounts[0])
        except (Web3Exception, ValueError, OSError) as e:
            if is_user_rejection(e):
                raise NotConnected("Connection request was rejected in the wallet.") from e
            raise NotConnected(f"Connection failed: {e}") from e
        LOGGER.info("Connected %s on %s", self._address, self.settings.chain.name)
        return self._address

    def disconnect(self) -> None:
        self._address = None

    def use_account(self, address: str) -> None:
        address = Web3.to_checksum_address(address)
        if self._account is not None and address != self._account.address:
            raise NotConnected("This session can only sign for its own key.")
        self._address = address

    def _ensure_chain(self) -> None:
        chain = self.settings.chain
        if chain.chain_id is None or self.w3.eth.chain_id == chain.chain_id:
            return
        if self._account is not None:
            raise NotConnected(f"RPC endpoint is not on {chain.name} (chain id {chain.chain_id}).")

        chain_hex = hex(chain.chain_id)
        try:
            self.w3.manager.request_blocking("wallet_switchEthereumChain", [{"chainId": chain_hex}])
        except (Web3Exception, ValueError) as e:
            if rpc_error_code(e) != UNRECOGNIZED_CHAIN:
                raise NotConnected(
                    f"Failed to switch to the {chain.name} network. Please switch manually in your wallet."
                ) from e
            LOGGER.info("Adding %s to the wallet", chain.name)
            currency = self.settings.currency
            params: dict[str, Any] = {
                "chainId": chain_hex,
                "chainName": chain.name,
                "nativeCurrency": {"name": currency.symbol, "symbol": currency.symbol, "decimals": currency.decimals},
                "rpcUrls": [chain.rpc_url],
            }
            if chain.explorer_url:
                params["blockExplorerUrls"] = [chain.explorer_url]
            try:
                self.w3.manager.request_blocking("wallet_addEthereumChain", [params])
            except (Web3Exception, ValueError) as add_error:
                raise NotConnected(
                    f"Failed to add {chain.name} network. Please add it manually."
                ) from add_error

    def send_native_transfer(
        self, amount: int, to: str, on_broadcast: Callable[[str], None] | None = None
    ) -> TransferConfirmation:
        """
        Broadcast one value transfer and block until it is mined.

        ``on_broadcast`` receives the transaction hash before the wait starts.

        Raises:
            NotConnected: no account.
            PaymentRejectedByUser: the wallet declined to sign.
            PaymentBroadcastOrConfirmFailed: broadcast, timeout or reverted receipt.
        """
        if self._address is None:
            raise NotConnected()
        tx: dict[str, Any] = {
            "from": self._address,
            "to": Web3.to_checksum_address(to),
            "value": amount,
        }
        try:
            if self._account is not None:
                tx.update(
                    nonce=self.w3.eth.get_transaction_count(self._address),
                    chainId=self.w3.eth.chain_id,
                    gasPrice=self.w3.eth.gas_price,
                )
                tx["gas"] = self.w3.eth.estimate_gas(tx)
                signed = self._account.sign_transaction(tx)
                tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            else:
                tx_hash = self.w3.eth.send_transaction(tx)
            LOGGER.info("Payment broadcast: %s", Web3.to_hex(tx_hash))
            if on_broadcast is not None:
                on_broadcast(Web3.to_hex(tx_hash))
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.settings.confirm_timeout_s
            )
        except (Web3Exception, ValueError, OSError) as e:
            if is_user_rejection(e):
                raise PaymentRejectedByUser() from e
            raise PaymentBroadcastOrConfirmFailed(str(e) or type(e).__name__) from e

        if receipt.get("status") == 0:
            raise PaymentBroadcastOrConfirmFailed("Payment transaction reverted.")
        return TransferConfirmation(tx_hash=Web3.to_hex(tx_hash), block_number=receipt.get("blockNumber"))


SESSION_FAMILIES: dict[str, type[EvmWalletSession]] = {"evm": EvmWalletSession}


def open_session(settings: PaymentSettings, private_key: str | None = None) -> WalletSession:
    """
    Build the wallet session matching ``settings.currency.family``.

    Raises:
        ConfigError: no session implementation for that family.
        NotConnected: the private key is unusable.
    """
    family = settings.currency.family
    session_cls = SESSION_FAMILIES.get(family)
    if session_cls is None:
        raise ConfigError(f"No wallet session is available for the {family!r} currency family.")
    return session_cls.from_rpc(settings, private_key)


AccountListener = Callable[[str | None], None]


class WalletSessionContext:
    """
    Holds the connected session for one app run.

    Created at start-up, subscribed to account changes while open, torn down
    with ``close()``. Listeners receive the new address (None on disconnect).
    """

    def __init__(self, session: WalletSession | None = None) -> None:
        self._session = session
        self._listeners: list[AccountListener] = []
        self._open = False

    @property
    def session(self) -> WalletSession | None:
        return self._session

    @property
    def address(self) -> str | None:
        return self._session.address if self._session is not None else None

    @property
    def is_connected(self) -> bool:
        return self._session is not None and self._session.is_connected and bool(self._session.address)

    def open(self) -> "WalletSessionContext":
        self._open = True
        return self

    def close(self) -> None:
        self.disconnect()
        self._listeners.clear()
        self._open = False

    def __enter__(self) -> "WalletSessionContext":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    def subscribe(self, listener: AccountListener) -> Callable[[], None]:
        """Register an account-change listener; returns its unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: AccountListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def connect(self, session: WalletSession | None = None) -> str:
        if not self._open:
            raise RuntimeError("WalletSessionContext is not open")
        if session is not None:
            self._session = session
        if self._session is None:
            raise NotConnected("No wallet available to connect.")
        address = self._session.connect()
        self._notify(address)
        return address

    def disconnect(self) -> None:
        if self._session is None:
            return
        was_connected = self._session.is_connected
        self._session.disconnect()
        if was_connected:
            self._notify(None)

    def accounts_changed(self, accounts: list[str]) -> None:
        """Apply a wallet accountsChanged event."""
        if self._session is None:
            return
        if not accounts:
            self.disconnect()
            return
        try:
            self._session.use_account(accounts[0])
        except NotConnected as e:
            LOGGER.warning("Dropping session after account change: %s", e.message)
            self.disconnect()
            return
        self._notify(self._session.address)

    def _notify(self, address: str | None) -> None:
        for listener in list(self._listeners):
            listener(address)
