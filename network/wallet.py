# network/wallet.py
"""
Wallet side of the session: an EIP-1193 style `request(method, params)`
surface plus the two wallet events the session listens to.
"""
from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from typing import Any, Callable, Dict, List, Optional

import requests
from web3 import AsyncWeb3
from web3.providers import AsyncBaseProvider
from web3.types import RPCEndpoint, RPCResponse

from config import WALLET_POLL_INTERVAL, WALLET_REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

ACCOUNTS_CHANGED = "accountsChanged"
CHAIN_CHANGED = "chainChanged"

# EIP-1193 error code for a request the user declined
USER_REJECTED = 4001

Listener = Callable[[Any], Any]


class WalletError(Exception):
    """
    Error returned by the wallet for a JSON-RPC request.
    """

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_rpc_error(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class Subscription:
    """
    Handle returned by Wallet.on(). Disposing it removes the listener.
    """

    def __init__(self, wallet: "Wallet", event: str, listener: Listener) -> None:
        self.wallet = wallet
        self.event = event
        self.listener = listener
        self.active = True

    def dispose(self) -> None:
        if not self.active:
            return
        self.active = False
        self.wallet.remove_listener(self.event, self.listener)


class Wallet:
    """
    Base wallet. On its own it is only a listener registry: request() must
    be provided by a subclass that talks to an actual wallet.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Subscription:
        self._listeners.setdefault(event, []).append(listener)
        return Subscription(self, event, listener)

    def remove_listener(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    async def emit(self, event: str, payload: Any) -> None:
        # copy: a listener may unsubscribe while we iterate
        for listener in list(self._listeners.get(event, [])):
            result = listener(payload)
            if inspect.isawaitable(result):
                await result

    async def request(self, method: str, params: Any = None) -> Any:
        raise NotImplementedError(f"{type(self).__name__} cannot send {method}")


class RpcWallet(Wallet):
    """
    Wallet backed by a JSON-RPC node that holds unlocked accounts
    (a local dev chain). Account / chain switches are noticed by polling.
    """

    def __init__(self, rpc_url: str, timeout: float = WALLET_REQUEST_TIMEOUT) -> None:
        super().__init__()
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._ids = itertools.count(1)
        # last observed values, None until the first poll
        self._accounts: Optional[List[str]] = None
        self._chain_id: Optional[str] = None

    def _post(self, method: str, params: Any) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params if params is not None else [],
        }
        resp = requests.post(self.rpc_url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        body = resp.json()
        error = body.get("error")
        if error:
            raise WalletError(
                error.get("code", -32603),
                error.get("message", "Internal error"),
                error.get("data"),
            )
        return body.get("result")

    async def request(self, method: str, params: Any = None) -> Any:
        if method == "eth_requestAccounts":
            # a node has no approval prompt: no unlocked account means "rejected"
            accounts = await asyncio.to_thread(self._post, "eth_accounts", [])
            if not accounts:
                raise WalletError(USER_REJECTED, "User rejected the request.")
            self._accounts = list(accounts)
            return accounts
        return await asyncio.to_thread(self._post, method, params)

    async def poll(self) -> None:
        """
        Compare accounts and chain id with the last snapshot and emit
        the matching event for anything that changed.
        """
        accounts = list(await self.request("eth_accounts") or [])
        chain_id = await self.request("eth_chainId")

        previous_chain, self._chain_id = self._chain_id, chain_id
        if previous_chain is not None and chain_id != previous_chain:
            logger.info(f"Wallet chain changed: {previous_chain} -> {chain_id}")
            await self.emit(CHAIN_CHANGED, chain_id)

        previous_accounts, self._accounts = self._accounts, accounts
        if previous_accounts is not None and accounts != previous_accounts:
            logger.info(f"Wallet accounts changed: {len(accounts)} account(s)")
            await self.emit(ACCOUNTS_CHANGED, accounts)

    async def watch(self, interval: float = WALLET_POLL_INTERVAL) -> None:
        """
        Runs in the background until cancelled.
        """
        while True:
            try:
                await self.poll()
            except Exception as e:
                logger.warning(f"Wallet poll failed: {e}")
            await asyncio.sleep(interval)


def detect_wallet(rpc_url: Optional[str], timeout: float = WALLET_REQUEST_TIMEOUT) -> Optional[RpcWallet]:
    """
    Return a wallet for `rpc_url`, or None if nothing answers there.
    """
    if not rpc_url:
        logger.warning("No wallet RPC URL configured")
        return None

    wallet = RpcWallet(rpc_url, timeout=timeout)
    try:
        client_version = wallet._post("web3_clientVersion", [])
    except (requests.RequestException, WalletError, ValueError) as e:
        logger.warning(f"Wallet not detected at {rpc_url}: {e}")
        return None

    logger.info(f"Wallet detected at {rpc_url} ({client_version})")
    return wallet


class WalletProvider(AsyncBaseProvider):
    """
    web3 provider that sends every request through a wallet.
    Wallet errors are handed back as JSON-RPC errors so web3 raises its own
    exception types (ContractLogicError on reverts, etc.).
    """

    def __init__(self, wallet: Wallet) -> None:
        super().__init__()
        self.wallet = wallet
        self._ids = itertools.count(1)

    async def make_request(self, method: RPCEndpoint, params: Any) -> RPCResponse:
        request_id = next(self._ids)
        try:
            result = await self.wallet.request(method, params)
        except WalletError as e:
            return {"jsonrpc": "2.0", "id": request_id, "error": e.to_rpc_error()}
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    async def is_connected(self, show_traceback: bool = False) -> bool:
        try:
            await self.wallet.request("web3_clientVersion", [])
        except Exception:
            if show_traceback:
                raise
            return False
        return True


def build_provider(wallet: Wallet) -> AsyncWeb3:
    """
    Wrap the wallet in a brand new web3 connection.
    """
    return AsyncWeb3(WalletProvider(wallet))
