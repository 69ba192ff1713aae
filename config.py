# config.py
"""
Configuration file for the voting session service.
Centralizes the contract, wallet and voting parameters.
"""

# Contract Configuration
# Address of the deployed voting contract (first deployment on a fresh dev chain)
CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"

# Wallet Configuration
# JSON-RPC endpoint of the wallet / dev node holding the unlocked accounts
DEFAULT_WALLET_RPC_URL = "http://127.0.0.1:8545"

# Timeout for a single wallet JSON-RPC request in seconds
WALLET_REQUEST_TIMEOUT = 10

# How often the wallet watcher checks for account / chain switches, in seconds
WALLET_POLL_INTERVAL = 2

# Voting Configuration
# How long to wait for a vote transaction to be confirmed, in seconds
VOTE_RECEIPT_TIMEOUT = 120

# Delay between receipt lookups while waiting for confirmation, in seconds
VOTE_RECEIPT_POLL_LATENCY = 0.5

# User-facing messages
INVALID_INDEX_MESSAGE = "Please enter a valid candidate index"
GENERIC_VOTE_ERROR = "Vote failed. Please try again."
WALLET_NOT_DETECTED_MESSAGE = "Wallet is not detected"
NO_SIGNER_MESSAGE = "Connect a wallet account before voting"
ALREADY_VOTED_MESSAGE = "This account has already voted"
VOTING_CLOSED_MESSAGE = "Voting is closed"

# Server Configuration
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
