# core/contract.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError

from config import CONTRACT_ADDRESS, VOTE_RECEIPT_POLL_LATENCY, VOTE_RECEIPT_TIMEOUT

# Entry points of the deployed voting contract that this service calls.
# Names and types must stay as deployed, including the
# "getAllVotesOfCandiates" spelling, or the selectors stop matching.
VOTING_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [],
        "name": "getAllVotesOfCandiates",
        "outputs": [
            {
                "components": [
                    {"internalType": "string", "name": "name", "type": "string"},
                    {"internalType": "uint256", "name": "voteCount", "type": "uint256"},
                ],
                "internalType": "struct Voting.Candidate[]",
                "name": "",
                "type": "tuple[]",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getVotingStatus",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getRemainingTime",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "", "type": "address"}],
        "name": "voters",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint256", "name": "_candidateIndex", "type": "uint256"}],
        "name": "vote",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]

_REVERT_RE = re.compile(r"execution reverted:?\s*(?P<reason>[^'\"}]*)")


class VoteReverted(Exception):
    """The vote transaction was mined but the contract rejected it."""


@dataclass
class Candidate:
    """
    One entry of the contract's candidate list.
    """
    index: int
    name: str
    vote_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "vote_count": self.vote_count,
        }


class VotingContract:
    """
    Typed wrapper over the deployed voting contract.

    Every method is a single round trip through the given provider; nothing
    is cached here.
    """

    def __init__(self, provider: AsyncWeb3, address: str = CONTRACT_ADDRESS) -> None:
        self.provider = provider
        self.address = AsyncWeb3.to_checksum_address(address)
        self.contract = provider.eth.contract(address=self.address, abi=VOTING_ABI)

    async def get_candidates(self) -> List[Candidate]:
        raw = await self.contract.functions.getAllVotesOfCandiates().call()
        # vote counts come back as arbitrary-precision ints
        return [
            Candidate(index=index, name=str(entry[0]), vote_count=int(entry[1]))
            for index, entry in enumerate(raw)
        ]

    async def get_voting_status(self) -> bool:
        return bool(await self.contract.functions.getVotingStatus().call())

    async def get_remaining_time(self) -> int:
        return int(await self.contract.functions.getRemainingTime().call())

    async def has_voted(self, address: str) -> bool:
        voter = AsyncWeb3.to_checksum_address(address)
        return bool(await self.contract.functions.voters(voter).call())

    async def vote(self, index: int, sender: str, timeout: float = VOTE_RECEIPT_TIMEOUT) -> str:
        """
        Submit vote(index) from `sender` and wait until it is mined.

        Returns the transaction hash as a 0x-prefixed hex string.
        Raises VoteReverted if the mined receipt reports failure.
        """
        tx_hash = await self.contract.functions.vote(index).transact(
            {"from": AsyncWeb3.to_checksum_address(sender)}
        )
        receipt = await self.provider.eth.wait_for_transaction_receipt(
            tx_hash,
            timeout=timeout,
            poll_latency=VOTE_RECEIPT_POLL_LATENCY,
        )
        tx_hex = AsyncWeb3.to_hex(tx_hash)
        if receipt["status"] == 0:
            raise VoteReverted(f"Transaction {tx_hex} reverted")
        return tx_hex


def revert_reason(exc: Exception) -> Optional[str]:
    """
    Best-effort human readable reason supplied by the contract, or None.
    """
    if isinstance(exc, VoteReverted):
        return "Transaction was reverted by the contract"

    if isinstance(exc, ContractLogicError):
        message = getattr(exc, "message", None) or (str(exc.args[0]) if exc.args else "")
        match = _REVERT_RE.search(message)
        if match is None:
            return message or None
        return match.group("reason").strip() or None

    # raw JSON-RPC error payloads, e.g. ValueError({"code": 3, "message": ...})
    payload = exc.args[0] if exc.args else None
    if isinstance(payload, dict):
        message = str(payload.get("message", ""))
    else:
        message = str(getattr(exc, "message", "") or "")
    match = _REVERT_RE.search(message)
    if match is None:
        return None
    return match.group("reason").strip() or None
