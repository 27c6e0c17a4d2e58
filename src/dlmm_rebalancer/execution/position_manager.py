"""
Position Manager - the position lifecycle control loop.

States:
    Discovering  - transient, startup only (discover())
    NoPosition   - no tracked position; rebalance then create
    HasPosition  - one tracked position; remove when out of range

Every tick:
    1. Gas gate: native balance below minimum -> no action this tick
    2. NoPosition:  (re-discover) -> plan -> swap -> re-read -> create
       HasPosition: range check -> remove when the active bin left the range
    3. State changes only after the mutating transaction is confirmed

Every chain read and every mutating action runs through the RetryExecutor.
Reads that exhaust their bound raise RetryExhaustedError; mutating actions
that exhaust theirs leave the state unchanged so the next tick re-evaluates
from chain data. Any exception escaping a tick is caught at the tick boundary
in run(); a single bad tick never stops the loop.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from dlmm_rebalancer.chain.models import (
    ActiveBin,
    Balance,
    BinRange,
    Position,
    PreparedTransaction,
)
from dlmm_rebalancer.pool.protocol import FULL_WITHDRAWAL_BPS, PoolAdapter, StrategyKind

from .balance_tracker import BalanceTracker
from .planner import RebalanceDirection, RebalancePlan, plan_rebalance
from .retry import (
    ActionResult,
    AsyncioClock,
    Clock,
    RetryExecutor,
    RetryPolicy,
)

if TYPE_CHECKING:
    from dlmm_rebalancer.monitoring import AlertManager

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StartupError(Exception):
    """Raised when the loop cannot establish its initial state."""

    pass


@dataclass(frozen=True)
class ManagedState:
    """
    The loop's working state: no position, or one tracked position id.

    Immutable. tick() receives one and returns the next.
    """

    position_id: Optional[str] = None

    @classmethod
    def no_position(cls) -> "ManagedState":
        return cls(position_id=None)

    @classmethod
    def with_position(cls, position_id: str) -> "ManagedState":
        return cls(position_id=position_id)

    @property
    def has_position(self) -> bool:
        return self.position_id is not None

    def __str__(self) -> str:
        if self.position_id is None:
            return "NoPosition"
        return f"HasPosition({self.position_id})"


class TickOutcome(str, Enum):
    """What a tick did."""

    GAS_GATED = "gas_gated"
    IN_RANGE = "in_range"
    REMOVED = "removed"
    REMOVE_FAILED = "remove_failed"
    POSITION_MISSING = "position_missing"
    ADOPTED = "adopted"
    CREATED = "created"
    CREATE_FAILED = "create_failed"
    REBALANCE_FAILED = "rebalance_failed"
    NO_FUNDS = "no_funds"
    ERROR = "error"


@dataclass(frozen=True)
class TickResult:
    """Next state plus what happened."""

    state: ManagedState
    outcome: TickOutcome
    detail: str = ""


@dataclass
class PositionManagerConfig:
    """Configuration for the position manager."""

    # Position shape
    range_half_width: int = 10
    strategy: StrategyKind = StrategyKind.SPOT_IMBALANCED
    position_slippage: Decimal = Decimal("0.02")

    # Rebalance swap
    swap_slippage_bps: int = 100  # 1%

    # Gas gate (SOL)
    min_gas_balance: Decimal = Decimal("0.1")

    # Loop
    poll_interval_seconds: float = 5.0
    stats_log_interval_ticks: int = 60

    # Adopt a position that appeared on chain instead of opening a second one
    rediscover_before_create: bool = True

    # Retry bounds per operation
    swap_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(3, 2.0))
    create_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(3, 2.0))
    remove_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(5, 2.0))
    query_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(3, 1.0))


@dataclass
class ManagerStats:
    """Runtime statistics for the position manager."""

    ticks: int = 0
    gas_gated_ticks: int = 0
    swaps_executed: int = 0
    positions_created: int = 0
    positions_removed: int = 0
    positions_adopted: int = 0
    failed_actions: int = 0
    failed_attempts: int = 0
    tick_errors: int = 0


class PositionManager:
    """
    Owns the position lifecycle state machine.

    Usage:
        manager = PositionManager(
            pool=adapter,
            balances=BalanceTracker(chain, wallet.pubkey(), mint_a, mint_b),
            swap_client=swaps,
            chain_client=chain,
            signer=wallet,
            config=PositionManagerConfig(),
        )

        state = await manager.discover()
        result = await manager.tick(state)   # one step
        await manager.run()                  # forever
    """

    def __init__(
        self,
        pool: PoolAdapter,
        balances: BalanceTracker,
        swap_client: Any,
        chain_client: Any,
        signer: Any,
        config: Optional[PositionManagerConfig] = None,
        clock: Optional[Clock] = None,
        alert_manager: Optional["AlertManager"] = None,
    ) -> None:
        """
        Initialize the position manager.

        Args:
            pool: Pool adapter bound to the configured pool and wallet
            balances: Balance tracker for the wallet
            swap_client: Swap service (quote + build_signed_swap)
            chain_client: Chain client used to submit transactions
            signer: Wallet keypair, signs every transaction
            config: Manager configuration
            clock: Clock for poll and retry delays (asyncio by default)
            alert_manager: Optional alert sink for lifecycle events
        """
        self._pool = pool
        self._balances = balances
        self._swaps = swap_client
        self._chain = chain_client
        self._signer = signer
        self._config = config or PositionManagerConfig()
        self._clock = clock or AsyncioClock()
        self._alerts = alert_manager

        self._retry = RetryExecutor(self._clock, on_failure=self._on_attempt_failed)
        self._stats = ManagerStats()
        self._state: Optional[ManagedState] = None
        self._running = False

    @property
    def config(self) -> PositionManagerConfig:
        return self._config

    @property
    def stats(self) -> ManagerStats:
        return self._stats

    @property
    def state(self) -> Optional[ManagedState]:
        """Last state produced by discover() or tick(), for monitoring."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # Discovery
    # =========================================================================

    async def discover(self) -> ManagedState:
        """
        Establish the initial state from the wallet's open positions.

        Raises:
            StartupError: If the pool cannot be queried within the retry bound
        """
        result = await self._retry.execute(
            "discover_positions",
            self._pool.positions_for_wallet,
            self._config.query_retry,
        )
        if not result.success:
            raise StartupError(f"Position discovery failed: {result.error}") from result.error

        state = self._state_from_positions(result.value or [])
        logger.info(f"Discovery: {state}")
        self._state = state
        return state

    def _state_from_positions(self, positions: Sequence[Position]) -> ManagedState:
        if not positions:
            return ManagedState.no_position()

        if len(positions) > 1:
            others = ", ".join(p.id for p in positions[1:])
            logger.warning(
                f"Found {len(positions)} open positions in the pool; "
                f"tracking {positions[0].id}, ignoring: {others}"
            )
        return ManagedState.with_position(positions[0].id)

    # =========================================================================
    # Queries
    # =========================================================================

    async def is_in_range(self, position_id: str) -> Optional[bool]:
        """
        Whether the pool's active bin lies inside the position's range.

        Returns None when the position no longer exists. Read-only.
        """
        status = await self._range_status(position_id)
        if status is None:
            return None
        bin_range, active = status
        return bin_range.contains(active.bin_id)

    async def _range_status(self, position_id: str) -> Optional[Tuple[BinRange, ActiveBin]]:
        """The position's bin range and the pool's active bin, or None if closed."""
        bin_range = await self._query(
            "read_bin_range", lambda: self._pool.bin_range_of(position_id)
        )
        if bin_range is None:
            return None
        active = await self._query("read_active_bin", self._pool.active_bin)
        return bin_range, active

    async def _token_balances(self) -> Tuple[Optional[Balance], Optional[Balance]]:
        async def read() -> Tuple[Optional[Balance], Optional[Balance]]:
            return await self._balances.token_a(), await self._balances.token_b()

        return await self._query("read_token_balances", read)

    async def _query(self, operation: str, read: Callable[[], Awaitable[T]]) -> T:
        """
        Run a read under the query retry policy.

        Raises:
            RetryExhaustedError: If every attempt failed
        """
        result = await self._retry.execute(operation, read, self._config.query_retry)
        if not result.success:
            raise result.error
        return result.value

    # =========================================================================
    # Tick
    # =========================================================================

    async def tick(self, state: ManagedState) -> TickResult:
        """
        Run one evaluation step and return the next state.

        Reads are retried under query_retry and raise RetryExhaustedError when
        exhausted. Mutating actions are retried under their own policy and
        their exhaustion is reported in the result, not raised.
        """
        snapshot = await self._query("read_balances", self._balances.snapshot)
        logger.info(
            f"Tick: state={state} sol={snapshot.native} "
            f"a={snapshot.token_a.ui_amount if snapshot.token_a else None} "
            f"b={snapshot.token_b.ui_amount if snapshot.token_b else None}"
        )

        if snapshot.native < self._config.min_gas_balance:
            logger.warning(
                f"Gas balance {snapshot.native} below minimum "
                f"{self._config.min_gas_balance}; skipping tick"
            )
            self._stats.gas_gated_ticks += 1
            if self._alerts:
                await self._notify(
                    self._alerts.alert_low_gas, snapshot.native, self._config.min_gas_balance
                )
            return TickResult(state, TickOutcome.GAS_GATED)

        if state.has_position:
            return await self._tick_with_position(state)
        return await self._tick_without_position(state)

    async def _tick_with_position(self, state: ManagedState) -> TickResult:
        position_id = state.position_id
        status = await self._range_status(position_id)

        if status is None:
            logger.warning(f"Position {position_id} no longer exists; tracking cleared")
            return TickResult(ManagedState.no_position(), TickOutcome.POSITION_MISSING)

        bin_range, active = status
        if bin_range.contains(active.bin_id):
            logger.info(
                f"Position {position_id} in range "
                f"[{bin_range.lower_bin_id}, {bin_range.upper_bin_id}] active={active.bin_id}"
            )
            return TickResult(state, TickOutcome.IN_RANGE)

        logger.info(
            f"Position {position_id} out of range "
            f"[{bin_range.lower_bin_id}, {bin_range.upper_bin_id}] active={active.bin_id}; removing"
        )
        result = await self._remove(position_id)
        if not result.success:
            await self._record_failure(result)
            return TickResult(state, TickOutcome.REMOVE_FAILED, str(result.error))

        self._stats.positions_removed += 1
        if self._alerts:
            await self._notify(self._alerts.alert_position_closed, position_id, active.bin_id)
        return TickResult(ManagedState.no_position(), TickOutcome.REMOVED)

    async def _tick_without_position(self, state: ManagedState) -> TickResult:
        if self._config.rediscover_before_create:
            positions = await self._query(
                "rediscover_positions", self._pool.positions_for_wallet
            )
            if positions:
                adopted = self._state_from_positions(positions)
                logger.info(f"Adopting existing position: {adopted}")
                self._stats.positions_adopted += 1
                return TickResult(adopted, TickOutcome.ADOPTED)

        active = await self._query("read_active_bin", self._pool.active_bin)
        rate = self._pool.price_from_bin(active.price)
        token_a, token_b = await self._token_balances()

        plan = plan_rebalance(token_a, token_b, rate)
        if plan.needs_swap:
            logger.info(f"Rebalancing: {plan.direction.value} amount={plan.amount} rate={rate}")
            result = await self._swap(plan)
            if not result.success:
                await self._record_failure(result)
                return TickResult(state, TickOutcome.REBALANCE_FAILED, str(result.error))
            self._stats.swaps_executed += 1

            token_a, token_b = await self._token_balances()
        else:
            logger.info("No need to rebalance")

        amount_a = token_a.raw_amount if token_a else 0
        amount_b = token_b.raw_amount if token_b else 0
        if amount_a == 0 and amount_b == 0:
            logger.warning("No token balances to deposit; waiting for funds")
            return TickResult(state, TickOutcome.NO_FUNDS)

        result = await self._create(amount_a, amount_b)
        if not result.success:
            await self._record_failure(result)
            return TickResult(state, TickOutcome.CREATE_FAILED, str(result.error))

        position_id = result.value
        self._stats.positions_created += 1
        logger.info(f"Created position {position_id} around bin {active.bin_id}")
        if self._alerts:
            await self._notify(
                self._alerts.alert_position_opened,
                position_id,
                active.bin_id - self._config.range_half_width,
                active.bin_id + self._config.range_half_width,
            )
        return TickResult(ManagedState.with_position(position_id), TickOutcome.CREATED)

    # =========================================================================
    # Retried actions
    # =========================================================================

    async def _swap(self, plan: RebalancePlan) -> ActionResult:
        if plan.direction is RebalanceDirection.A_TO_B:
            input_mint, output_mint = self._balances.mint_a, self._balances.mint_b
        else:
            input_mint, output_mint = self._balances.mint_b, self._balances.mint_a

        async def action() -> str:
            quote = await self._swaps.quote(
                input_mint,
                output_mint,
                plan.amount,
                self._config.swap_slippage_bps,
            )
            tx = await self._swaps.build_signed_swap(quote, self._signer)
            return await self._chain.send_and_confirm(tx)

        return await self._retry.execute(
            f"swap_{plan.direction.value}", action, self._config.swap_retry
        )

    async def _create(self, amount_a: int, amount_b: int) -> ActionResult:
        async def action() -> str:
            prepared = await self._pool.create_position(
                self._config.range_half_width,
                amount_a,
                amount_b,
                self._config.position_slippage,
                self._config.strategy,
            )
            if prepared.position_id is None:
                raise ValueError("Pool adapter returned a create transaction without position id")

            await self._submit(prepared)
            return prepared.position_id

        return await self._retry.execute("create_position", action, self._config.create_retry)

    async def _remove(self, position_id: str) -> ActionResult:
        attempts = 0

        async def action() -> int:
            nonlocal attempts
            attempts += 1

            # A previous attempt may have landed without being confirmed
            if attempts > 1 and await self._pool.bin_range_of(position_id) is None:
                logger.info(f"Position {position_id} already closed")
                return 0

            prepared = await self._pool.remove_position(
                position_id,
                bps=FULL_WITHDRAWAL_BPS,
                claim_and_close=True,
            )
            transactions = _as_list(prepared)
            for index, tx in enumerate(transactions, start=1):
                logger.debug(f"Submitting removal {index}/{len(transactions)} for {position_id}")
                await self._submit(tx)
            return len(transactions)

        return await self._retry.execute("remove_position", action, self._config.remove_retry)

    async def _submit(self, prepared: PreparedTransaction) -> str:
        signature = await self._chain.send_and_confirm(
            prepared.transaction,
            signers=(self._signer, *prepared.signers),
        )
        if prepared.description:
            logger.info(f"{prepared.description}: {signature}")
        return signature

    async def _record_failure(self, result: ActionResult) -> None:
        self._stats.failed_actions += 1
        if self._alerts and result.error is not None:
            await self._notify(
                self._alerts.alert_action_failed,
                result.operation,
                result.attempts,
                str(result.error.last_error),
            )

    def _on_attempt_failed(self, operation: str, attempt: int, error: Exception) -> None:
        self._stats.failed_attempts += 1

    async def _notify(self, send: Callable[..., Any], *args: Any) -> None:
        # Telegram delivery is a blocking HTTP call; keep it off the event loop
        await asyncio.to_thread(send, *args)

    # =========================================================================
    # Loop
    # =========================================================================

    async def run(
        self,
        initial_state: Optional[ManagedState] = None,
        max_ticks: Optional[int] = None,
    ) -> ManagedState:
        """
        Run the polling loop.

        Args:
            initial_state: Starting state; discovered from chain when None
            max_ticks: Stop after this many ticks (None = run until stop())

        Returns:
            The state after the last tick
        """
        state = initial_state if initial_state is not None else await self.discover()
        self._state = state
        self._running = True
        ticks_run = 0

        logger.info(
            f"Position manager started: state={state} "
            f"interval={self._config.poll_interval_seconds}s"
        )

        try:
            while self._running:
                if max_ticks is not None and ticks_run >= max_ticks:
                    break

                await self._clock.sleep(self._config.poll_interval_seconds)
                if not self._running:
                    break

                state = await self._run_tick(state)
                ticks_run += 1
        finally:
            self._running = False

        return state

    def stop(self) -> None:
        """Stop the loop after the current tick."""
        self._running = False

    async def _run_tick(self, state: ManagedState) -> ManagedState:
        self._stats.ticks += 1
        try:
            result = await self.tick(state)
        except Exception as e:
            self._stats.tick_errors += 1
            logger.exception(f"Tick failed, state unchanged ({state}): {e}")
            return state

        if result.state != state:
            logger.info(f"State: {state} -> {result.state} ({result.outcome.value})")
        self._state = result.state

        interval = self._config.stats_log_interval_ticks
        if interval > 0 and self._stats.ticks % interval == 0:
            self._log_stats()

        return result.state

    def _log_stats(self) -> None:
        stats = self._stats
        logger.info(
            f"Stats: ticks={stats.ticks}, gas_gated={stats.gas_gated_ticks}, "
            f"swaps={stats.swaps_executed}, created={stats.positions_created}, "
            f"removed={stats.positions_removed}, adopted={stats.positions_adopted}, "
            f"failed={stats.failed_actions}, failed_attempts={stats.failed_attempts}, "
            f"errors={stats.tick_errors}"
        )


def _as_list(prepared: Any) -> List[PreparedTransaction]:
    if isinstance(prepared, PreparedTransaction):
        return [prepared]
    return list(prepared)
