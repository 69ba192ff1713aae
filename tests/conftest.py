from typing import Any, Dict, List, Optional, Set

import pytest
import requests

from core.contract import Candidate
from core.session import SessionController
from network.wallet import USER_REJECTED, Wallet, WalletError

ACCOUNT_A = "0x90F8bf6A479f320ead074411a4B0e7944Ea8c9C1"
ACCOUNT_B = "0xFFcf8FDEE72ac11b5c542428B35EEF5769C409f0"


class FakeWallet(Wallet):
    """
    In-memory wallet: answers account requests, records every request.
    """

    def __init__(self, accounts: Optional[List[str]] = None, reject: bool = False) -> None:
        super().__init__()
        self.accounts = list(accounts or [])
        self.reject = reject
        self.fail_accounts = False
        self.requests: List[str] = []

    async def request(self, method: str, params: Any = None) -> Any:
        self.requests.append(method)
        if method == "eth_requestAccounts":
            if self.reject:
                raise WalletError(USER_REJECTED, "User rejected the request.")
            return list(self.accounts)
        if method == "eth_accounts":
            if self.fail_accounts:
                raise WalletError(-32603, "wallet locked")
            return list(self.accounts)
        raise WalletError(-32601, f"method {method} not supported")


class FakeChain:
    """
    Contract state shared by every FakeContract built from it.
    """

    def __init__(self) -> None:
        self.candidates = [("Alice", 3), ("Bob", 5), ("Carol", 0)]
        self.status = True
        self.remaining = 3600
        self.voters: Set[str] = set()
        self.calls: List[tuple] = []
        self.failing: Set[str] = set()
        self.vote_error: Optional[Exception] = None
        # provider -> asyncio.Event that get_candidates waits on
        self.gates: Dict[Any, Any] = {}

    def contract(self, provider: Any) -> "FakeContract":
        return FakeContract(self, provider)

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def count(self, name: str) -> int:
        return self.names().count(name)

    def _enter(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if name in self.failing:
            raise RuntimeError(f"{name} failed")


class FakeContract:
    def __init__(self, chain: FakeChain, provider: Any) -> None:
        self.chain = chain
        self.provider = provider

    async def get_candidates(self) -> List[Candidate]:
        self.chain._enter("get_candidates", self.provider)
        data = list(self.chain.candidates)
        gate = self.chain.gates.get(self.provider)
        if gate is not None:
            await gate.wait()
        return [Candidate(index=i, name=name, vote_count=count) for i, (name, count) in enumerate(data)]

    async def get_voting_status(self) -> bool:
        self.chain._enter("get_voting_status", self.provider)
        return self.chain.status

    async def get_remaining_time(self) -> int:
        self.chain._enter("get_remaining_time", self.provider)
        return self.chain.remaining

    async def has_voted(self, address: str) -> bool:
        self.chain._enter("has_voted", self.provider, address)
        return address in self.chain.voters

    async def vote(self, index: int, sender: str, timeout: float = 0) -> str:
        self.chain._enter("vote", self.provider, index, sender)
        if self.chain.vote_error is not None:
            raise self.chain.vote_error
        name, count = self.chain.candidates[index]
        self.chain.candidates[index] = (name, count + 1)
        self.chain.voters.add(sender)
        return "0x" + "ab" * 32


class ProviderFactory:
    """
    Stands in for build_provider; hands out named handles.
    """

    def __init__(self) -> None:
        self.built: List[str] = []

    def __call__(self, wallet: Wallet) -> str:
        name = f"provider-{len(self.built) + 1}"
        self.built.append(name)
        return name


class FakeResponse:
    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")

    def json(self):
        return self.body


class FakeNode:
    """
    Replaces requests.post; answers JSON-RPC from a dict of results.
    The first `refuse` calls fail as if the node were down.
    """

    def __init__(self, results, refuse=0):
        self.results = results
        self.refuse = refuse
        self.payloads = []

    def __call__(self, url, json=None, timeout=None):
        if self.refuse > 0:
            self.refuse -= 1
            raise requests.ConnectionError("connection refused")
        self.payloads.append(json)
        method = json["method"]
        if method not in self.results:
            return FakeResponse({"jsonrpc": "2.0", "id": json["id"],
                                 "error": {"code": -32601, "message": f"{method} not found"}})
        result = self.results[method]
        return FakeResponse({"jsonrpc": "2.0", "id": json["id"], "result": result})


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet(accounts=[ACCOUNT_A, ACCOUNT_B])


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def providers() -> ProviderFactory:
    return ProviderFactory()


@pytest.fixture
def controller(wallet, chain, providers) -> SessionController:
    return SessionController(wallet, provider_factory=providers, contract_factory=chain.contract)


@pytest.fixture
def node(monkeypatch) -> FakeNode:
    fake = FakeNode({
        "eth_accounts": [ACCOUNT_A],
        "eth_chainId": "0x539",
        "web3_clientVersion": "anvil/v0.2.0",
    })
    monkeypatch.setattr(requests, "post", fake)
    return fake
