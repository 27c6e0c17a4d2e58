"""
Chain Layer - Solana RPC access and shared domain models.

This module provides:
    - SolanaChainClient: Balances, latest blockhash, submit-and-confirm
    - NetworkError / TransactionError: Uniform failure types for callers
    - load_keypair: Wallet key loading (base58 or JSON byte array)
    - Balance, ActiveBin, Position, BinRange, PreparedTransaction: Domain records

Usage:
    from dlmm_rebalancer.chain import SolanaChainClient, load_keypair

    wallet = load_keypair(os.environ["WALLET_PRIVATE_KEY"])
    async with SolanaChainClient(rpc_url) as chain:
        lamports = await chain.get_native_balance(wallet.pubkey())
"""

from .client import (
    ChainError,
    NetworkError,
    SolanaChainClient,
    TransactionError,
    parse_commitment,
)
from .keys import ConfigurationError, load_keypair
from .models import (
    LAMPORTS_PER_SOL,
    ActiveBin,
    Balance,
    BinRange,
    Position,
    PreparedTransaction,
    lamports_to_sol,
)

__all__ = [
    # Client
    "SolanaChainClient",
    "ChainError",
    "NetworkError",
    "TransactionError",
    "parse_commitment",
    # Keys
    "load_keypair",
    "ConfigurationError",
    # Models
    "LAMPORTS_PER_SOL",
    "ActiveBin",
    "Balance",
    "BinRange",
    "Position",
    "PreparedTransaction",
    "lamports_to_sol",
]
