"""
Domain models shared by the chain client, pool adapters and the core loop.

All records are immutable snapshots: they are produced fresh on every query
and replaced, never mutated.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Tuple

LAMPORTS_PER_SOL = 10**9


@dataclass(frozen=True)
class Balance:
    """Holding of one token by the wallet."""

    raw_amount: int
    ui_amount: Decimal
    decimals: int

    @classmethod
    def from_raw(cls, raw_amount: int, decimals: int) -> "Balance":
        """Build a balance from a smallest-unit amount."""
        ui_amount = Decimal(raw_amount) / (Decimal(10) ** decimals)
        return cls(raw_amount=raw_amount, ui_amount=ui_amount, decimals=decimals)


@dataclass(frozen=True)
class ActiveBin:
    """The pool's current price bucket."""

    bin_id: int
    price: Decimal  # per smallest unit, as reported by the pool


@dataclass(frozen=True)
class BinRange:
    """Inclusive bin range covered by a position."""

    lower_bin_id: int
    upper_bin_id: int

    def contains(self, bin_id: int) -> bool:
        return self.lower_bin_id <= bin_id <= self.upper_bin_id


@dataclass(frozen=True)
class Position:
    """An open liquidity deposit spanning a contiguous bin range."""

    id: str
    lower_bin_id: int
    upper_bin_id: int

    @property
    def bin_range(self) -> BinRange:
        return BinRange(self.lower_bin_id, self.upper_bin_id)


@dataclass(frozen=True)
class PreparedTransaction:
    """
    A transaction built by a collaborator, ready for submission.

    signers holds the extra keypairs the transaction needs besides the
    wallet (e.g. the fresh position keypair on create). position_id is set
    when the transaction opens a new position.
    """

    transaction: Any
    signers: Tuple[Any, ...] = field(default_factory=tuple)
    position_id: Optional[str] = None
    description: str = ""


def lamports_to_sol(lamports: int) -> Decimal:
    """Convert lamports to SOL."""
    return Decimal(lamports) / Decimal(LAMPORTS_PER_SOL)
