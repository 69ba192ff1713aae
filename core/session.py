# core/session.py
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

from config import (
    GENERIC_VOTE_ERROR,
    INVALID_INDEX_MESSAGE,
    NO_SIGNER_MESSAGE,
    VOTE_RECEIPT_TIMEOUT,
    WALLET_NOT_DETECTED_MESSAGE,
)
from network.wallet import (
    ACCOUNTS_CHANGED,
    CHAIN_CHANGED,
    Subscription,
    Wallet,
    build_provider,
)

from .contract import Candidate, VotingContract, revert_reason

logger = logging.getLogger(__name__)

# connection states
DISCONNECTED = "disconnected"
READ_ONLY = "read_only"
CONNECTED = "connected"

# screens
SCREEN_LOGIN = "login"
SCREEN_VOTING = "voting"
SCREEN_CLOSED = "closed"

# candidate index field: ASCII digits only
_INDEX_RE = re.compile(r"\s*\+?(?P<digits>[0-9]+)\s*", re.ASCII)


@dataclass
class Signer:
    """
    A provider bound to one account; required to send transactions.
    """
    provider: Any
    address: str


@dataclass
class Session:
    """
    Everything the page shows, mirrored from the wallet and the contract.
    """
    provider: Any = None
    account: Optional[str] = None
    is_connected: bool = False
    candidates: List[Candidate] = field(default_factory=list)
    voting_status: bool = True
    remaining_time: Optional[int] = None
    can_vote: bool = True

    @property
    def state(self) -> str:
        if self.provider is None:
            return DISCONNECTED
        if self.is_connected and self.account:
            return CONNECTED
        return READ_ONLY

    @property
    def screen(self) -> str:
        # a closed vote wins over the connection state
        if not self.voting_status:
            return SCREEN_CLOSED
        if self.is_connected:
            return SCREEN_VOTING
        return SCREEN_LOGIN

    def snapshot(self) -> "Session":
        return replace(self, candidates=list(self.candidates))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "screen": self.screen,
            "account": self.account,
            "is_connected": self.is_connected,
            "candidates": [c.to_dict() for c in self.candidates],
            "voting_status": self.voting_status,
            "remaining_time": self.remaining_time,
            "can_vote": self.can_vote,
        }


@dataclass
class VoteResult:
    ok: bool
    message: str
    tx_hash: Optional[str] = None


def parse_candidate_index(number: Any) -> Optional[int]:
    """
    Strict parse of the candidate index field: ASCII digits only, optional
    leading "+", surrounding whitespace allowed. None otherwise.
    """
    if number is None or isinstance(number, bool):
        return None
    match = _INDEX_RE.fullmatch(str(number))
    if match is None:
        return None
    return int(match.group("digits"))


class SessionController:
    """
    Keeps a Session in sync with the wallet and the voting contract.

    - Read-only queries run without asking the wallet for accounts.
    - Account and chain switches in the wallet rebuild the connection and
      trigger a refresh.
    - Every refresh carries a generation number; results from a refresh that
      has since been superseded are dropped.
    """

    def __init__(
        self,
        wallet: Optional[Wallet] = None,
        provider_factory: Callable[[Wallet], Any] = build_provider,
        contract_factory: Callable[[Any], VotingContract] = VotingContract,
        receipt_timeout: float = VOTE_RECEIPT_TIMEOUT,
    ) -> None:
        self.wallet = wallet
        self.provider_factory = provider_factory
        self.contract_factory = contract_factory
        self.receipt_timeout = receipt_timeout
        self.session = Session()
        self._generation = 0
        self._subscriptions: List[Subscription] = []

    @property
    def generation(self) -> int:
        return self._generation

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    # lifecycle

    async def start(self, wallet: Optional[Wallet] = None) -> None:
        """
        App start: read-only view of the contract if a wallet is present.
        """
        if wallet is not None:
            self.wallet = wallet
        if self.wallet is None:
            logger.info("No wallet detected, nothing to load")
            return

        provider = self.provider_factory(self.wallet)
        self.session.provider = provider
        self._subscribe()
        await self.refresh_read_only(provider)

    def _subscribe(self) -> None:
        if self._subscriptions or self.wallet is None:
            return
        self._subscriptions = [
            self.wallet.on(ACCOUNTS_CHANGED, self.handle_accounts_changed),
            self.wallet.on(CHAIN_CHANGED, self.handle_chain_changed),
        ]

    def close(self) -> None:
        """
        Drop the wallet listeners. Safe to call more than once.
        """
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.dispose()

    # user actions

    async def connect(self) -> bool:
        """
        Ask the wallet for account access and load the full session.
        """
        if self.wallet is None:
            logger.error(WALLET_NOT_DETECTED_MESSAGE)
            return False

        provider = self.provider_factory(self.wallet)
        try:
            accounts = await self.wallet.request("eth_requestAccounts")
        except Exception as e:
            logger.error(f"Wallet connection failed: {e}")
            return False
        if not accounts:
            logger.error("Wallet returned no accounts")
            return False

        account = accounts[0]
        generation = self._next_generation()
        self.session.provider = provider
        self.session.account = account
        self.session.is_connected = True
        logger.info(f"Connected account {account}")

        await self.refresh_all(Signer(provider, account), generation)
        return True

    async def vote(self, number: Any) -> VoteResult:
        """
        Cast a vote for the candidate at index `number` (raw field text).
        """
        index = parse_candidate_index(number)
        if index is None:
            logger.warning(f"Rejected candidate index {number!r}")
            return VoteResult(ok=False, message=INVALID_INDEX_MESSAGE)

        provider = self.session.provider
        if provider is None:
            if self.wallet is None:
                logger.error(WALLET_NOT_DETECTED_MESSAGE)
                return VoteResult(ok=False, message=WALLET_NOT_DETECTED_MESSAGE)
            provider = self.provider_factory(self.wallet)

        signer = await self._obtain_signer(provider)
        if signer is None:
            logger.error("Vote attempted without a signer")
            return VoteResult(ok=False, message=NO_SIGNER_MESSAGE)

        try:
            tx_hash = await self.contract_factory(provider).vote(
                index, signer.address, timeout=self.receipt_timeout
            )
        except Exception as e:
            logger.error(f"Vote failed: {e}")
            return VoteResult(ok=False, message=revert_reason(e) or GENERIC_VOTE_ERROR)

        logger.info(f"Vote for candidate #{index} confirmed in {tx_hash}")
        generation = self._next_generation()
        await asyncio.gather(
            self.refresh_candidates(provider, generation),
            self.refresh_can_vote(signer, generation),
        )
        return VoteResult(ok=True, message="Vote recorded", tx_hash=tx_hash)

    # wallet events

    async def handle_accounts_changed(self, accounts: Optional[List[str]]) -> None:
        accounts = list(accounts or [])
        generation = self._next_generation()

        if not accounts:
            logger.info("Wallet reported no accounts, disconnecting")
            self.session.provider = None
            self.session.account = None
            self.session.is_connected = False
            self.session.can_vote = True
            return

        if self.wallet is None:
            logger.error(WALLET_NOT_DETECTED_MESSAGE)
            return

        provider = self.provider_factory(self.wallet)
        account = accounts[0]
        self.session.provider = provider
        self.session.account = account
        self.session.is_connected = True
        logger.info(f"Switched to account {account}")

        await self.refresh_all(Signer(provider, account), generation)

    async def handle_chain_changed(self, chain_id: Any) -> None:
        if self.wallet is None:
            logger.error(WALLET_NOT_DETECTED_MESSAGE)
            return

        generation = self._next_generation()
        provider = self.provider_factory(self.wallet)
        self.session.provider = provider
        logger.info(f"Chain changed to {chain_id}, reloading")

        signer = await self._obtain_signer(provider)
        if signer is None:
            logger.info("No signer after chain change, skipping voter check")
            await self.refresh_read_only(provider, generation)
        else:
            await self.refresh_all(signer, generation)

    async def _obtain_signer(self, provider: Any) -> Optional[Signer]:
        if self.session.account:
            return Signer(provider, self.session.account)
        if self.wallet is None:
            return None
        try:
            accounts = await self.wallet.request("eth_accounts")
        except Exception as e:
            logger.info(f"Could not list wallet accounts: {e}")
            return None
        if not accounts:
            return None
        return Signer(provider, accounts[0])

    # refreshes

    async def refresh_read_only(self, provider: Any, generation: Optional[int] = None) -> None:
        if generation is None:
            generation = self._next_generation()
        await asyncio.gather(
            self.refresh_candidates(provider, generation),
            self.refresh_voting_status(provider, generation),
            self.refresh_remaining_time(provider, generation),
        )

    async def refresh_all(self, signer: Signer, generation: Optional[int] = None) -> None:
        if generation is None:
            generation = self._next_generation()
        await asyncio.gather(
            self.refresh_read_only(signer.provider, generation),
            self.refresh_can_vote(signer, generation),
        )

    async def refresh_candidates(self, provider: Any, generation: Optional[int] = None) -> None:
        if provider is None:
            return
        if generation is None:
            generation = self._generation
        try:
            candidates = await self.contract_factory(provider).get_candidates()
        except Exception as e:
            logger.error(f"Failed to read candidates: {e}")
            return
        if not self._is_current(generation):
            logger.debug(f"Dropping candidates from stale refresh #{generation}")
            return
        self.session.candidates = candidates

    async def refresh_voting_status(self, provider: Any, generation: Optional[int] = None) -> None:
        if provider is None:
            return
        if generation is None:
            generation = self._generation
        try:
            status = await self.contract_factory(provider).get_voting_status()
        except Exception as e:
            logger.error(f"Failed to read voting status: {e}")
            return
        if not self._is_current(generation):
            logger.debug(f"Dropping voting status from stale refresh #{generation}")
            return
        self.session.voting_status = status

    async def refresh_remaining_time(self, provider: Any, generation: Optional[int] = None) -> None:
        if provider is None:
            return
        if generation is None:
            generation = self._generation
        try:
            remaining = await self.contract_factory(provider).get_remaining_time()
        except Exception as e:
            logger.error(f"Failed to read remaining time: {e}")
            return
        if not self._is_current(generation):
            logger.debug(f"Dropping remaining time from stale refresh #{generation}")
            return
        self.session.remaining_time = remaining

    async def refresh_can_vote(self, signer: Optional[Signer], generation: Optional[int] = None) -> None:
        if signer is None:
            return
        if generation is None:
            generation = self._generation
        try:
            voted = await self.contract_factory(signer.provider).has_voted(signer.address)
        except Exception as e:
            logger.error(f"Failed to read voter status for {signer.address}: {e}")
            return
        if not self._is_current(generation):
            logger.debug(f"Dropping voter status from stale refresh #{generation}")
            return
        self.session.can_vote = not voted
