import asyncio
from types import SimpleNamespace

import pytest
from eth_abi import encode
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError

from core.contract import Candidate, VoteReverted, VotingContract, revert_reason
from network.wallet import Wallet, WalletError, build_provider

from conftest import ACCOUNT_A

CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


def selector(signature: str) -> str:
    return AsyncWeb3.to_hex(AsyncWeb3.keccak(text=signature)[:4])


class AbiWallet(Wallet):
    """
    Answers eth_call with canned ABI-encoded results, keyed by selector.
    """

    def __init__(self, results):
        super().__init__()
        self.results = results
        self.calls = []

    async def request(self, method, params=None):
        if method == "eth_chainId":
            return "0x539"
        if method == "eth_call":
            tx = params[0]
            data = tx.get("data") or tx.get("input")
            self.calls.append(data)
            return self.results[data[:10]]
        raise WalletError(-32601, f"method {method} not supported")


def test_reads_decode_contract_results():
    wallet = AbiWallet({
        selector("getAllVotesOfCandiates()"): AsyncWeb3.to_hex(
            encode(["(string,uint256)[]"], [[("Alice", 3), ("Bob", 2**60)]])
        ),
        selector("getVotingStatus()"): AsyncWeb3.to_hex(encode(["bool"], [True])),
        selector("getRemainingTime()"): AsyncWeb3.to_hex(encode(["uint256"], [86400])),
        selector("voters(address)"): AsyncWeb3.to_hex(encode(["bool"], [True])),
    })
    contract = VotingContract(build_provider(wallet), address=CONTRACT)

    async def read_all():
        return (
            await contract.get_candidates(),
            await contract.get_voting_status(),
            await contract.get_remaining_time(),
            await contract.has_voted(ACCOUNT_A.lower()),
        )

    candidates, status, remaining, voted = asyncio.run(read_all())

    assert candidates == [
        Candidate(index=0, name="Alice", vote_count=3),
        Candidate(index=1, name="Bob", vote_count=2**60),
    ]
    assert isinstance(candidates[1].vote_count, int)
    assert status is True
    assert remaining == 86400
    assert voted is True
    assert wallet.calls[-1].lower().endswith(ACCOUNT_A[2:].lower())


class StubFunctions:
    def __init__(self):
        self.voted = []
        self.tx = None

    def vote(self, index):
        self.voted.append(index)
        return SimpleNamespace(transact=self._transact)

    async def _transact(self, tx):
        self.tx = tx
        return b"\x12" * 32


def stub_contract(status):
    wallet = AbiWallet({})
    contract = VotingContract(build_provider(wallet), address=CONTRACT)
    functions = StubFunctions()
    receipts = []

    async def wait_for_receipt(tx_hash, timeout, poll_latency):
        receipts.append((tx_hash, timeout))
        return {"status": status, "transactionHash": tx_hash}

    contract.contract = SimpleNamespace(functions=functions)
    contract.provider = SimpleNamespace(eth=SimpleNamespace(wait_for_transaction_receipt=wait_for_receipt))
    return contract, functions, receipts


def test_vote_waits_for_receipt_and_returns_hash():
    contract, functions, receipts = stub_contract(status=1)

    tx_hash = asyncio.run(contract.vote(2, ACCOUNT_A.lower(), timeout=30))

    assert tx_hash == "0x" + "12" * 32
    assert functions.voted == [2]
    assert functions.tx == {"from": ACCOUNT_A}
    assert receipts == [(b"\x12" * 32, 30)]


def test_vote_raises_when_receipt_reports_failure():
    contract, _, _ = stub_contract(status=0)

    with pytest.raises(VoteReverted):
        asyncio.run(contract.vote(0, ACCOUNT_A))


def test_revert_reason_from_contract_logic_error():
    exc = ContractLogicError("execution reverted: Voting has ended")
    assert revert_reason(exc) == "Voting has ended"


def test_revert_reason_without_reason_text():
    assert revert_reason(ContractLogicError("execution reverted")) is None


def test_revert_reason_from_rpc_error_payload():
    exc = ValueError({"code": 3, "message": "execution reverted: You have already voted."})
    assert revert_reason(exc) == "You have already voted."


def test_revert_reason_ignores_unrelated_errors():
    assert revert_reason(ConnectionError("connection refused")) is None
    assert revert_reason(TimeoutError()) is None


def test_revert_reason_for_failed_receipt():
    assert revert_reason(VoteReverted("Transaction 0x12 reverted"))
