"""
Execution layer test fixtures.

The execution layer talks to the chain, the pool and the swap service.
All of them are mocked here - never hit a real RPC endpoint in tests.
"""
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from dlmm_rebalancer.chain.models import (
    LAMPORTS_PER_SOL,
    ActiveBin,
    Balance,
    BinRange,
    PreparedTransaction,
)
from dlmm_rebalancer.execution import (
    BalanceTracker,
    ManualClock,
    PositionManager,
    PositionManagerConfig,
)
from dlmm_rebalancer.swap.client import QuoteRecord

MINT_A = "27G8MtK7VtTcCHkpASjSDdkWWYfoqT6ggEuKidVJidD4"
MINT_B = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
OWNER = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def manual_clock():
    """Clock that records sleeps instead of sleeping."""
    return ManualClock()


# =============================================================================
# Mock Chain Client
# =============================================================================


@pytest.fixture
def token_balances():
    """Mutable mint -> Balance map served by mock_chain. 100 A and 100 B."""
    return {
        MINT_A: Balance.from_raw(100_000_000, 6),
        MINT_B: Balance.from_raw(100_000_000, 6),
    }


@pytest.fixture
def mock_chain(token_balances):
    """Mock chain client with 1 SOL and the token_balances map."""
    chain = MagicMock()
    chain.get_native_balance = AsyncMock(return_value=1 * LAMPORTS_PER_SOL)
    chain.get_token_balance = AsyncMock(
        side_effect=lambda owner, mint: token_balances.get(mint)
    )
    chain.send_and_confirm = AsyncMock(return_value="sig_123")
    return chain


@pytest.fixture
def balance_tracker(mock_chain):
    return BalanceTracker(mock_chain, OWNER, MINT_A, MINT_B)


# =============================================================================
# Mock Pool Adapter
# =============================================================================


@pytest.fixture
def mock_pool():
    """
    Mock pool adapter.

    Active bin 100 at price 1 (UI rate 1). Tracked position spans [90, 110].
    """
    pool = MagicMock()
    pool.active_bin = AsyncMock(return_value=ActiveBin(bin_id=100, price=Decimal("1")))
    pool.price_from_bin = MagicMock(side_effect=lambda price: price)
    pool.positions_for_wallet = AsyncMock(return_value=[])
    pool.create_position = AsyncMock(
        return_value=PreparedTransaction(
            transaction="create_tx",
            signers=("position_keypair",),
            position_id="pos_new",
            description="Create position pos_new",
        )
    )
    pool.remove_position = AsyncMock(
        return_value=PreparedTransaction(transaction="remove_tx")
    )
    pool.bin_range_of = AsyncMock(return_value=BinRange(90, 110))
    return pool


# =============================================================================
# Mock Swap Client
# =============================================================================


@pytest.fixture
def mock_swaps():
    swaps = MagicMock()
    swaps.quote = AsyncMock(
        return_value=QuoteRecord(
            input_mint=MINT_A,
            output_mint=MINT_B,
            in_amount=10_000_000,
            out_amount=10_000_000,
            slippage_bps=100,
        )
    )
    swaps.build_signed_swap = AsyncMock(return_value="swap_tx")
    return swaps


@pytest.fixture
def signer():
    wallet = MagicMock()
    wallet.pubkey.return_value = OWNER
    return wallet


# =============================================================================
# Position Manager
# =============================================================================


@pytest.fixture
def manager_config():
    return PositionManagerConfig()


@pytest.fixture
def mock_alerts():
    return MagicMock()


@pytest.fixture
def position_manager(
    mock_pool,
    balance_tracker,
    mock_swaps,
    mock_chain,
    signer,
    manager_config,
    manual_clock,
    mock_alerts,
):
    return PositionManager(
        pool=mock_pool,
        balances=balance_tracker,
        swap_client=mock_swaps,
        chain_client=mock_chain,
        signer=signer,
        config=manager_config,
        clock=manual_clock,
        alert_manager=mock_alerts,
    )
