"""
Chain layer test fixtures.

The RPC client is always mocked - never hit a real Solana endpoint in tests.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from solders.keypair import Keypair

from dlmm_rebalancer.chain.client import SolanaChainClient


@pytest.fixture
def wallet():
    return Keypair()


@pytest.fixture
def mock_rpc():
    """Mock solana-py AsyncClient."""
    rpc = MagicMock()
    rpc.close = AsyncMock()
    rpc.is_connected = AsyncMock(return_value=True)
    rpc.get_balance = AsyncMock(return_value=MagicMock(value=2_500_000_000))
    rpc.get_token_accounts_by_owner = AsyncMock(return_value=MagicMock(value=[]))
    rpc.get_token_account_balance = AsyncMock()
    rpc.get_latest_blockhash = AsyncMock()
    rpc.send_transaction = AsyncMock(return_value=MagicMock(value="5igSig"))
    rpc.confirm_transaction = AsyncMock(
        return_value=MagicMock(value=[MagicMock(err=None)])
    )
    return rpc


@pytest.fixture
def chain_client(mock_rpc):
    return SolanaChainClient(
        "https://rpc.test",
        commitment="confirmed",
        client=mock_rpc,
    )
