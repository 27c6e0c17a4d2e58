"""
Rebalance Planner.

Decides whether, and how much, to swap so that the two tracked tokens hold
equal value before a new position is opened. Pure function of its inputs:
no I/O, no state.

Algorithm (token A priced in token B at `rate`):
    value_a = ui_a * rate, value_b = ui_b, total = value_a + value_b
    target  = total / 2
    (value_a - value_b) / total > 5%  ->  sell (value_a - target) / rate of A
    (value_b - value_a) / total > 5%  ->  sell (value_b - target) of B
    otherwise                         ->  no swap
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Optional

from dlmm_rebalancer.chain.models import Balance

# Fixed policy constant
REBALANCE_THRESHOLD = Decimal("0.05")


class RebalanceDirection(str, Enum):
    """Which way to swap."""

    A_TO_B = "a_to_b"
    B_TO_A = "b_to_a"
    NONE = "none"


@dataclass(frozen=True)
class RebalancePlan:
    """
    Outcome of imbalance evaluation.

    amount is in the smallest unit of the token being sold
    (token A for A_TO_B, token B for B_TO_A).
    """

    direction: RebalanceDirection
    amount: int = 0

    @property
    def needs_swap(self) -> bool:
        return self.direction is not RebalanceDirection.NONE and self.amount > 0


NO_REBALANCE = RebalancePlan(RebalanceDirection.NONE, 0)


def _ui(balance: Optional[Balance]) -> Decimal:
    return balance.ui_amount if balance is not None else Decimal("0")


def _to_smallest_unit(amount: Decimal, decimals: int) -> int:
    scaled = amount * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def plan_rebalance(
    balance_a: Optional[Balance],
    balance_b: Optional[Balance],
    rate: Decimal,
) -> RebalancePlan:
    """
    Plan the swap that brings both holdings to equal value.

    Args:
        balance_a: Token A balance (None if the wallet has no account)
        balance_b: Token B balance (None if the wallet has no account)
        rate: Price of one token A in token B (UI units)

    Returns:
        RebalancePlan; direction NONE when balanced within the threshold,
        when there is nothing to rebalance, or when the amount rounds to zero

    Raises:
        ValueError: If rate is not positive
    """
    if rate <= 0:
        raise ValueError(f"Exchange rate must be positive, got {rate}")

    value_a = _ui(balance_a) * rate
    value_b = _ui(balance_b)
    total = value_a + value_b

    if total == 0:
        return NO_REBALANCE

    target = total / 2

    if (value_a - value_b) / total > REBALANCE_THRESHOLD:
        # balance_a is necessarily present here: value_a > 0
        excess_a = (value_a - target) / rate
        plan = RebalancePlan(
            RebalanceDirection.A_TO_B,
            _to_smallest_unit(excess_a, balance_a.decimals),
        )
    elif (value_b - value_a) / total > REBALANCE_THRESHOLD:
        excess_b = value_b - target
        plan = RebalancePlan(
            RebalanceDirection.B_TO_A,
            _to_smallest_unit(excess_b, balance_b.decimals),
        )
    else:
        return NO_REBALANCE

    return plan if plan.amount > 0 else NO_REBALANCE
