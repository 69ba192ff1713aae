# api/server.py
from __future__ import annotations
import os
import asyncio
import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional, Dict, Any, Union

from fastapi import FastAPI
from pydantic import BaseModel
from fastapi.middleware.cors import CORSMiddleware

from config import (
    CONTRACT_ADDRESS,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_WALLET_RPC_URL,
    ALREADY_VOTED_MESSAGE,
    VOTE_RECEIPT_TIMEOUT,
    VOTING_CLOSED_MESSAGE,
    WALLET_NOT_DETECTED_MESSAGE,
    WALLET_POLL_INTERVAL,
)
from core.contract import VotingContract
from core.session import SessionController
from network.schemas import AccountsChangedEvent, ChainChangedEvent, SessionView
from network.wallet import ACCOUNTS_CHANGED, CHAIN_CHANGED, RpcWallet, detect_wallet

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Read from environment to point the service at another chain / deployment
WALLET_RPC_URL = os.getenv("WALLET_RPC_URL", DEFAULT_WALLET_RPC_URL)
VOTING_CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS", CONTRACT_ADDRESS)
HOST = os.getenv("APP_HOST", DEFAULT_HOST)
PORT = int(os.getenv("APP_PORT", str(DEFAULT_PORT)))

controller = SessionController(
    contract_factory=partial(VotingContract, address=VOTING_CONTRACT_ADDRESS),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Startup: looking for a wallet at {WALLET_RPC_URL}...")
    wallet = await asyncio.to_thread(detect_wallet, WALLET_RPC_URL)
    await controller.start(wallet)

    # background loop that turns wallet switches into events
    watch_task = None
    if isinstance(wallet, RpcWallet):
        watch_task = asyncio.create_task(wallet.watch(WALLET_POLL_INTERVAL))

    yield

    if watch_task is not None:
        watch_task.cancel()
        try:
            await watch_task
        except asyncio.CancelledError:
            pass
    controller.close()
    logger.info("Shutting down.")

# app

app = FastAPI(title="Voting Session", lifespan=lifespan)

# cors
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# models

class VoteRequest(BaseModel):
    # raw text of the candidate index field
    number: Union[str, int] = ""


class VoteResponse(BaseModel):
    ok: bool
    message: str
    tx_hash: Optional[str] = None


class ConnectResponse(BaseModel):
    ok: bool
    account: Optional[str] = None
    error: Optional[str] = None


class EventResponse(BaseModel):
    ok: bool
    error: Optional[str] = None


def _view() -> SessionView:
    return SessionView(**controller.session.to_dict())


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok", "state": controller.session.state}


@app.get("/config")
def get_config() -> Dict[str, Any]:
    """
    Connection parameters, for display.
    """
    return {
        "contract_address": VOTING_CONTRACT_ADDRESS,
        "wallet_rpc_url": WALLET_RPC_URL,
        "wallet_detected": controller.wallet is not None,
        "wallet_poll_interval": WALLET_POLL_INTERVAL,
        "vote_receipt_timeout": VOTE_RECEIPT_TIMEOUT,
    }


@app.get("/view", response_model=SessionView)
def get_view() -> SessionView:
    return _view()


@app.post("/connect", response_model=ConnectResponse)
async def connect() -> ConnectResponse:
    if controller.wallet is None:
        return ConnectResponse(ok=False, error=WALLET_NOT_DETECTED_MESSAGE)
    connected = await controller.connect()
    if not connected:
        return ConnectResponse(ok=False, error="connection_rejected")
    return ConnectResponse(ok=True, account=controller.session.account)


@app.post("/vote", response_model=VoteResponse)
async def cast_vote(req: VoteRequest) -> VoteResponse:
    # same gating as the vote button on the voting screen
    if not controller.session.voting_status:
        return VoteResponse(ok=False, message=VOTING_CLOSED_MESSAGE)
    if not controller.session.can_vote:
        return VoteResponse(ok=False, message=ALREADY_VOTED_MESSAGE)
    result = await controller.vote(req.number)
    return VoteResponse(ok=result.ok, message=result.message, tx_hash=result.tx_hash)


@app.post("/refresh", response_model=SessionView)
async def refresh() -> SessionView:
    """
    Re-read candidates, status and remaining time with the current connection.
    """
    provider = controller.session.provider
    if provider is not None:
        await controller.refresh_read_only(provider)
    return _view()


@app.post("/wallet/accounts", response_model=EventResponse)
async def wallet_accounts_changed(event: AccountsChangedEvent) -> EventResponse:
    """
    Endpoint for a browser-side wallet bridge to forward account switches.
    """
    if controller.wallet is None:
        return EventResponse(ok=False, error=WALLET_NOT_DETECTED_MESSAGE)
    await controller.wallet.emit(ACCOUNTS_CHANGED, event.accounts)
    return EventResponse(ok=True)


@app.post("/wallet/chain", response_model=EventResponse)
async def wallet_chain_changed(event: ChainChangedEvent) -> EventResponse:
    if controller.wallet is None:
        return EventResponse(ok=False, error=WALLET_NOT_DETECTED_MESSAGE)
    await controller.wallet.emit(CHAIN_CHANGED, event.chain_id)
    return EventResponse(ok=True)
