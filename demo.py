#!/usr/bin/env python3
"""
Quick Demo Script - connect to the wallet, show the ballot, optionally vote.

Usage: python demo.py [candidate_index]
"""

import asyncio
import os
import sys

from config import DEFAULT_WALLET_RPC_URL
from core.session import SessionController
from network.wallet import detect_wallet


def display_session(controller: SessionController) -> None:
    session = controller.session

    print("\n" + "=" * 60)
    print("Voting Status")
    print("=" * 60)
    print(f"Account:        {session.account or '-'}")
    print(f"Voting open:    {'yes' if session.voting_status else 'no'}")
    print(f"Remaining time: {session.remaining_time}")
    print(f"Can vote:       {'yes' if session.can_vote else 'no (already voted)'}")

    if not session.candidates:
        print("\nNo candidates.")
    else:
        total_votes = sum(c.vote_count for c in session.candidates)
        print(f"\nTotal votes: {total_votes}\n")
        for candidate in session.candidates:
            percentage = (candidate.vote_count / total_votes) * 100 if total_votes else 0
            bar = "█" * int(percentage / 2)
            print(
                f"#{candidate.index} {candidate.name:15} | {bar} "
                f"{candidate.vote_count} votes ({percentage:.1f}%)"
            )

    print("=" * 60 + "\n")


async def demo(choice=None):
    rpc_url = os.getenv("WALLET_RPC_URL", DEFAULT_WALLET_RPC_URL)

    print("\n1. Looking for a wallet...")
    wallet = detect_wallet(rpc_url)
    if wallet is None:
        print(f"✗ No wallet answering at {rpc_url}")
        return

    controller = SessionController(wallet)
    try:
        print("\n2. Loading the ballot (read-only)...")
        await controller.start()
        display_session(controller)

        print("3. Connecting account...")
        if not await controller.connect():
            print("✗ Connection rejected")
            return
        print(f"✓ Connected as {controller.session.account}")
        display_session(controller)

        if choice is not None:
            print(f"4. Voting for candidate #{choice}...")
            result = await controller.vote(choice)
            mark = "✓" if result.ok else "✗"
            print(f"{mark} {result.message}")
            display_session(controller)
    finally:
        controller.close()


if __name__ == "__main__":
    asyncio.run(demo(sys.argv[1] if len(sys.argv) > 1 else None))
