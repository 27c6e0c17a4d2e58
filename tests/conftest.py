"""
Shared test fixtures for integration tests.

This file provides fixtures that span multiple components, wiring the real
PositionManager to the paper chain, pool and swap simulation, unlike
component-specific fixtures in src/dlmm_rebalancer/{component}/tests/conftest.py
"""
import pytest
from decimal import Decimal

from solders.keypair import Keypair

from dlmm_rebalancer.execution import (
    BalanceTracker,
    ManualClock,
    PositionManager,
    PositionManagerConfig,
)
from dlmm_rebalancer.paper import (
    PaperChainClient,
    PaperLedger,
    PaperPoolAdapter,
    PaperSwapClient,
)

MINT_A = "JLPMintAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
MINT_B = "USDCMintBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBB"


# =============================================================================
# Paper Simulation Fixtures
# =============================================================================


@pytest.fixture
def paper_ledger():
    """
    Ledger priced at 4 B per A, holding 100 A and no B.

    1 SOL of gas, 10 bps bin step.
    """
    ledger = PaperLedger(MINT_A, MINT_B, decimals_a=6, decimals_b=6, price=Decimal("4"))
    ledger.fund(MINT_A, 100_000_000)
    ledger.fund(MINT_B, 0)
    return ledger


@pytest.fixture
def paper_chain(paper_ledger):
    return PaperChainClient(paper_ledger)


@pytest.fixture
def paper_pool(paper_ledger):
    return PaperPoolAdapter(paper_ledger)


@pytest.fixture
def paper_swaps(paper_ledger):
    return PaperSwapClient(paper_ledger)


@pytest.fixture
def wallet():
    return Keypair()


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def paper_manager(paper_chain, paper_pool, paper_swaps, wallet, manual_clock):
    """PositionManager running entirely against the paper simulation."""
    return PositionManager(
        pool=paper_pool,
        balances=BalanceTracker(paper_chain, wallet.pubkey(), MINT_A, MINT_B),
        swap_client=paper_swaps,
        chain_client=paper_chain,
        signer=wallet,
        config=PositionManagerConfig(),
        clock=manual_clock,
    )
