"""
Position lifecycle tests against the paper simulation.

Each test drives the real PositionManager through ticks while moving the
simulated pool, then checks the resulting state and wallet balances.

Scenario baseline (see tests/conftest.py):
    price 4 B per A, wallet holds 100 A and 0 B, 1 SOL gas
"""
import pytest

from dlmm_rebalancer.chain.client import TransactionError
from dlmm_rebalancer.execution import (
    BalanceTracker,
    ManagedState,
    PositionManager,
    TickOutcome,
)
from dlmm_rebalancer.paper import PAPER_FEE_LAMPORTS, PaperChainClient, PaperPosition

pytestmark = pytest.mark.integration


class FlakyPaperChain(PaperChainClient):
    """Paper chain that fails the submission numbered `fail_at`."""

    def __init__(self, ledger):
        super().__init__(ledger)
        self.count = 0
        self.fail_at = None

    async def send_and_confirm(self, transaction, signers=()):
        self.count += 1
        if self.count == self.fail_at:
            raise TransactionError("Blockhash expired")
        return await super().send_and_confirm(transaction, signers)


# =============================================================================
# Full Lifecycle
# =============================================================================


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_rebalance_create_range_check_remove_recreate(
        self, paper_manager, paper_ledger
    ):
        mint_a, mint_b = paper_ledger.mint_a, paper_ledger.mint_b
        state = await paper_manager.discover()
        assert state == ManagedState.no_position()

        # 100 A at 4 -> sell 50 A for 200 B, then deposit both
        result = await paper_manager.tick(state)
        assert result.outcome is TickOutcome.CREATED
        position_id = result.state.position_id
        assert paper_ledger.positions[position_id].amount_a == 50_000_000
        assert paper_ledger.positions[position_id].amount_b == 200_000_000
        assert paper_ledger.accounts == {mint_a: 0, mint_b: 0}

        result = await paper_manager.tick(result.state)
        assert result.outcome is TickOutcome.IN_RANGE
        assert result.state.position_id == position_id

        paper_ledger.move_active_bin(15)
        result = await paper_manager.tick(result.state)
        assert result.outcome is TickOutcome.REMOVED
        assert result.state == ManagedState.no_position()
        assert paper_ledger.positions == {}
        assert paper_ledger.accounts == {mint_a: 50_000_000, mint_b: 200_000_000}

        # Balanced within threshold at the new price: no swap, new range around 15
        result = await paper_manager.tick(result.state)
        assert result.outcome is TickOutcome.CREATED
        new_position = paper_ledger.positions[result.state.position_id]
        assert (new_position.lower_bin_id, new_position.upper_bin_id) == (5, 25)

        stats = paper_manager.stats
        assert stats.swaps_executed == 1
        assert stats.positions_created == 2
        assert stats.positions_removed == 1
        assert stats.failed_actions == 0
        assert paper_ledger.native_lamports == 10**9 - 4 * PAPER_FEE_LAMPORTS

    @pytest.mark.asyncio
    async def test_run_loop_opens_and_holds_position(self, paper_manager, manual_clock):
        state = await paper_manager.run(max_ticks=3)

        assert state.has_position
        assert paper_manager.stats.ticks == 3
        assert paper_manager.stats.positions_created == 1
        assert manual_clock.sleeps == [5.0, 5.0, 5.0]
        assert paper_manager.is_running is False

    @pytest.mark.asyncio
    async def test_discovers_existing_position_at_startup(self, paper_manager, paper_ledger):
        paper_ledger.positions["existing"] = PaperPosition("existing", -5, 5, 1, 1)

        state = await paper_manager.discover()

        assert state == ManagedState.with_position("existing")


# =============================================================================
# Gas Gate
# =============================================================================


class TestGasGate:

    @pytest.mark.asyncio
    async def test_low_gas_blocks_every_action(self, paper_manager, paper_ledger):
        paper_ledger.native_lamports = 50_000_000  # 0.05 SOL

        result = await paper_manager.tick(ManagedState.no_position())

        assert result.outcome is TickOutcome.GAS_GATED
        assert paper_ledger.submitted == []

    @pytest.mark.asyncio
    async def test_out_of_range_position_kept_while_gated(self, paper_manager, paper_ledger):
        created = await paper_manager.tick(ManagedState.no_position())
        paper_ledger.move_active_bin(50)
        paper_ledger.native_lamports = 1_000

        result = await paper_manager.tick(created.state)

        assert result.outcome is TickOutcome.GAS_GATED
        assert result.state == created.state
        assert created.state.position_id in paper_ledger.positions


# =============================================================================
# Removal Splitting and Failures
# =============================================================================


class TestRemoval:

    @pytest.mark.asyncio
    async def test_wide_position_removed_in_several_transactions(
        self, paper_manager, paper_ledger
    ):
        paper_ledger.max_bins_per_tx = 5
        created = await paper_manager.tick(ManagedState.no_position())
        submitted_before = len(paper_ledger.submitted)
        paper_ledger.move_active_bin(-11)

        result = await paper_manager.tick(created.state)

        assert result.outcome is TickOutcome.REMOVED
        # 21 bins at 5 per transaction
        assert len(paper_ledger.submitted) - submitted_before == 5
        assert paper_ledger.accounts[paper_ledger.mint_a] == 50_000_000
        assert paper_ledger.accounts[paper_ledger.mint_b] == 200_000_000

    @pytest.mark.asyncio
    async def test_removal_resumes_after_partial_failure(
        self, paper_ledger, paper_pool, paper_swaps, wallet, manual_clock
    ):
        chain = FlakyPaperChain(paper_ledger)
        manager = PositionManager(
            pool=paper_pool,
            balances=BalanceTracker(chain, wallet.pubkey(), paper_ledger.mint_a, paper_ledger.mint_b),
            swap_client=paper_swaps,
            chain_client=chain,
            signer=wallet,
            clock=manual_clock,
        )
        paper_ledger.max_bins_per_tx = 5
        created = await manager.tick(ManagedState.no_position())
        paper_ledger.move_active_bin(20)

        # Two of five removal transactions land, the third fails
        chain.fail_at = chain.count + 3
        result = await manager.tick(created.state)

        assert result.outcome is TickOutcome.REMOVED
        assert paper_ledger.positions == {}
        assert paper_ledger.accounts[paper_ledger.mint_a] == 50_000_000
        assert paper_ledger.accounts[paper_ledger.mint_b] == 200_000_000
        assert manual_clock.sleeps == [2.0]

    @pytest.mark.asyncio
    async def test_exhausted_removal_keeps_position(self, paper_manager, paper_ledger):
        created = await paper_manager.tick(ManagedState.no_position())
        paper_ledger.move_active_bin(30)
        paper_ledger.fail_next(5)

        failed = await paper_manager.tick(created.state)

        assert failed.outcome is TickOutcome.REMOVE_FAILED
        assert failed.state == created.state
        assert paper_manager.stats.failed_actions == 1

        # Next tick re-evaluates and removes
        result = await paper_manager.tick(failed.state)
        assert result.outcome is TickOutcome.REMOVED


# =============================================================================
# External Changes
# =============================================================================


class TestExternalChanges:

    @pytest.mark.asyncio
    async def test_position_closed_elsewhere(self, paper_manager, paper_ledger):
        created = await paper_manager.tick(ManagedState.no_position())
        position = paper_ledger.positions.pop(created.state.position_id)
        paper_ledger.fund(paper_ledger.mint_a, position.amount_a)
        paper_ledger.fund(paper_ledger.mint_b, position.amount_b)

        missing = await paper_manager.tick(created.state)
        assert missing.outcome is TickOutcome.POSITION_MISSING
        assert missing.state == ManagedState.no_position()

        result = await paper_manager.tick(missing.state)
        assert result.outcome is TickOutcome.CREATED

    @pytest.mark.asyncio
    async def test_position_opened_elsewhere_is_adopted(self, paper_manager, paper_ledger):
        paper_ledger.positions["manual"] = PaperPosition("manual", -3, 3, 1, 1)

        result = await paper_manager.tick(ManagedState.no_position())

        assert result.outcome is TickOutcome.ADOPTED
        assert result.state == ManagedState.with_position("manual")
        assert paper_ledger.submitted == []

    @pytest.mark.asyncio
    async def test_failed_swap_creates_nothing(self, paper_manager, paper_ledger):
        paper_ledger.fail_next(3)

        result = await paper_manager.tick(ManagedState.no_position())

        assert result.outcome is TickOutcome.REBALANCE_FAILED
        assert paper_ledger.positions == {}
        assert paper_ledger.accounts[paper_ledger.mint_a] == 100_000_000

    @pytest.mark.asyncio
    async def test_empty_wallet_waits_for_funds(self, paper_manager, paper_ledger):
        paper_ledger.accounts.clear()

        result = await paper_manager.tick(ManagedState.no_position())

        assert result.outcome is TickOutcome.NO_FUNDS
        assert paper_ledger.submitted == []
