# network/schemas.py
from __future__ import annotations

from typing import Any, List, Optional
from pydantic import BaseModel


class CandidateView(BaseModel):
    index: int
    name: str
    vote_count: int


class SessionView(BaseModel):
    """
    What the page renders.

    screen:
      - "login"   no wallet or no connected account
      - "voting"  connected, vote still open
      - "closed"  the contract reports voting is over
    """

    screen: str
    state: str
    account: Optional[str] = None
    is_connected: bool
    candidates: List[CandidateView]
    voting_status: bool
    remaining_time: Optional[int] = None
    can_vote: bool


class AccountsChangedEvent(BaseModel):
    # ordered, first entry is the active account; empty means disconnected
    accounts: List[str]


class ChainChangedEvent(BaseModel):
    chain_id: Any
