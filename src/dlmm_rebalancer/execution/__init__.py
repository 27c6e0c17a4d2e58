"""
Execution Layer - Balance reads, rebalance planning, retries, and the
position lifecycle loop.

This module provides:
    - BalanceTracker: Native and token balance reads
    - plan_rebalance: Pure 50/50 value rebalance planner
    - RetryExecutor: Bounded retries with an injectable clock
    - PositionManager: NoPosition / HasPosition state machine
"""

from .balance_tracker import BalanceTracker, WalletSnapshot
from .planner import (
    NO_REBALANCE,
    REBALANCE_THRESHOLD,
    RebalanceDirection,
    RebalancePlan,
    plan_rebalance,
)
from .position_manager import (
    ManagedState,
    ManagerStats,
    PositionManager,
    PositionManagerConfig,
    StartupError,
    TickOutcome,
    TickResult,
)
from .retry import (
    ActionResult,
    AsyncioClock,
    Clock,
    ManualClock,
    RetryExecutor,
    RetryExhaustedError,
    RetryPolicy,
)

__all__ = [
    # Balances
    "BalanceTracker",
    "WalletSnapshot",
    # Planner
    "NO_REBALANCE",
    "REBALANCE_THRESHOLD",
    "RebalanceDirection",
    "RebalancePlan",
    "plan_rebalance",
    # Position manager
    "ManagedState",
    "ManagerStats",
    "PositionManager",
    "PositionManagerConfig",
    "StartupError",
    "TickOutcome",
    "TickResult",
    # Retry
    "ActionResult",
    "AsyncioClock",
    "Clock",
    "ManualClock",
    "RetryExecutor",
    "RetryExhaustedError",
    "RetryPolicy",
]
