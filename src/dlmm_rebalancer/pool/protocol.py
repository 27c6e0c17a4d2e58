"""
Pool adapter protocol.

The core loop never talks to a pool SDK directly. It consumes only the
operations below, so any bin-based pool implementation (live SDK bridge,
paper simulation, test double) can be swapped in without touching the
position manager.
"""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Optional, Protocol, Sequence, Union, runtime_checkable

from dlmm_rebalancer.chain.models import (
    ActiveBin,
    BinRange,
    Position,
    PreparedTransaction,
)

FULL_WITHDRAWAL_BPS = 10_000


class StrategyKind(str, Enum):
    """Liquidity distribution shape across the position's bins."""

    SPOT_BALANCED = "spot_balanced"
    SPOT_IMBALANCED = "spot_imbalanced"
    CURVE = "curve"
    BID_ASK = "bid_ask"


RemoveResult = Union[PreparedTransaction, Sequence[PreparedTransaction]]


@runtime_checkable
class PoolAdapter(Protocol):
    """
    Protocol that all pool adapters must implement.

    An adapter is bound to one pool and one wallet at construction.

    Example implementation:
        class MyPoolAdapter:
            async def active_bin(self) -> ActiveBin:
                state = await self._sdk.get_active_bin()
                return ActiveBin(bin_id=state.bin_id, price=Decimal(state.price))

            def price_from_bin(self, price: Decimal) -> Decimal:
                return price * self._decimal_scale
            ...
    """

    async def active_bin(self) -> ActiveBin:
        """Current active bin of the pool."""
        ...

    def price_from_bin(self, price: Decimal) -> Decimal:
        """Convert a bin price to token A priced in token B (UI units)."""
        ...

    async def positions_for_wallet(self) -> list[Position]:
        """Open positions of the wallet in this pool, in the adapter's order."""
        ...

    async def create_position(
        self,
        range_half_width: int,
        amount_a: int,
        amount_b: int,
        slippage: Decimal,
        strategy: StrategyKind = StrategyKind.SPOT_IMBALANCED,
    ) -> PreparedTransaction:
        """
        Build a create-position transaction around the current active bin.

        The range is [active - range_half_width, active + range_half_width].
        Amounts are in smallest units. The returned transaction carries the
        new position's id.
        """
        ...

    async def remove_position(
        self,
        position_id: str,
        bps: int = FULL_WITHDRAWAL_BPS,
        claim_and_close: bool = True,
    ) -> RemoveResult:
        """
        Build remove-liquidity transaction(s) for a position.

        May return several transactions when the removal does not fit in one.
        """
        ...

    async def bin_range_of(self, position_id: str) -> Optional[BinRange]:
        """Bin range of a position, or None if it no longer exists."""
        ...
