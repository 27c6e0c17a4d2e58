"""
Paper trading simulation of the chain, the pool and the swap service.

Dry-run mode wires the real PositionManager to these in-memory collaborators,
so the full lifecycle (rebalance, create, range check, remove) runs against
a simulated wallet without submitting anything.

    ledger = PaperLedger(mint_a, mint_b, decimals_a=6, decimals_b=6, price=Decimal("4.2"))
    ledger.fund(mint_a, 100_000_000)
    chain = PaperChainClient(ledger)
    pool = PaperPoolAdapter(ledger)
    swaps = PaperSwapClient(ledger)

Transactions are PaperTransaction objects whose effect is applied to the
ledger when PaperChainClient.send_and_confirm() is called. Failures can be
injected with ledger.fail_next(n).
"""
from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence

from solders.keypair import Keypair

from dlmm_rebalancer.chain.client import TransactionError
from dlmm_rebalancer.chain.models import (
    ActiveBin,
    Balance,
    BinRange,
    Position,
    PreparedTransaction,
)
from dlmm_rebalancer.pool.protocol import FULL_WITHDRAWAL_BPS, StrategyKind
from dlmm_rebalancer.swap.client import QuoteRecord

logger = logging.getLogger(__name__)

PAPER_ADAPTER_NAME = "paper"

# Flat fee charged per submitted transaction
PAPER_FEE_LAMPORTS = 5_000

# Bins a single removal transaction may cover before it is split
DEFAULT_MAX_BINS_PER_TX = 70


@dataclass
class PaperPosition:
    """Simulated open position holding deposited token amounts."""

    id: str
    lower_bin_id: int
    upper_bin_id: int
    amount_a: int
    amount_b: int
    remaining_bins: int = 0

    def __post_init__(self) -> None:
        if self.remaining_bins == 0:
            self.remaining_bins = self.upper_bin_id - self.lower_bin_id + 1


@dataclass
class PaperTransaction:
    """A simulated transaction: a description plus its ledger effect."""

    description: str
    effect: Callable[["PaperLedger"], None]


@dataclass
class PaperLedger:
    """
    In-memory wallet and pool state.

    price is the active bin's price per smallest unit (smallest B per
    smallest A) at base_bin_id. Moving the active bin scales it by
    (1 + bin_step_bps / 10000) per bin.
    """

    mint_a: str
    mint_b: str
    decimals_a: int = 6
    decimals_b: int = 6
    price: Decimal = Decimal("1")
    native_lamports: int = 10**9
    active_bin_id: int = 0
    base_bin_id: int = 0
    bin_step_bps: int = 10
    max_bins_per_tx: int = DEFAULT_MAX_BINS_PER_TX

    accounts: Dict[str, int] = field(default_factory=dict)
    positions: Dict[str, PaperPosition] = field(default_factory=dict)
    submitted: List[str] = field(default_factory=list)
    _failures: List[Exception] = field(default_factory=list, repr=False)
    _counter: Any = field(default_factory=lambda: itertools.count(1), repr=False)

    # -------------------------------------------------------------------------
    # Setup and scenario control
    # -------------------------------------------------------------------------

    def fund(self, mint: str, raw_amount: int) -> None:
        """Credit a token account, creating it if needed."""
        self.accounts[mint] = self.accounts.get(mint, 0) + raw_amount

    def decimals_of(self, mint: str) -> int:
        if mint == self.mint_a:
            return self.decimals_a
        if mint == self.mint_b:
            return self.decimals_b
        raise KeyError(f"Unknown mint: {mint}")

    def move_active_bin(self, delta: int) -> int:
        """Shift the active bin, returning the new bin id."""
        self.active_bin_id += delta
        return self.active_bin_id

    def price_at(self, bin_id: int) -> Decimal:
        step = Decimal(1) + Decimal(self.bin_step_bps) / Decimal(10_000)
        return self.price * step ** (bin_id - self.base_bin_id)

    def fail_next(self, count: int = 1, error: Optional[Exception] = None) -> None:
        """Make the next `count` submissions fail with `error`."""
        for _ in range(count):
            self._failures.append(error or TransactionError("Simulated transaction failure"))

    # -------------------------------------------------------------------------
    # Effects
    # -------------------------------------------------------------------------

    def next_signature(self) -> str:
        return f"paper-{next(self._counter)}"

    def debit(self, mint: str, raw_amount: int) -> None:
        held = self.accounts.get(mint, 0)
        if raw_amount > held:
            raise TransactionError(f"Insufficient {mint} balance: have {held}, need {raw_amount}")
        self.accounts[mint] = held - raw_amount

    def apply(self, tx: PaperTransaction) -> str:
        """Apply a transaction's effect, charging the fee. Returns its signature."""
        if self._failures:
            raise self._failures.pop(0)
        if self.native_lamports < PAPER_FEE_LAMPORTS:
            raise TransactionError("Insufficient native balance for fee")

        tx.effect(self)
        self.native_lamports -= PAPER_FEE_LAMPORTS

        signature = self.next_signature()
        self.submitted.append(tx.description)
        return signature

    def withdraw_bins(self, position_id: str, bins: int, close: bool) -> None:
        position = self.positions.get(position_id)
        if position is None:
            raise TransactionError(f"Position {position_id} not found")

        bins = min(bins, position.remaining_bins)
        out_a = position.amount_a * bins // position.remaining_bins
        out_b = position.amount_b * bins // position.remaining_bins

        position.amount_a -= out_a
        position.amount_b -= out_b
        position.remaining_bins -= bins
        self.fund(self.mint_a, out_a)
        self.fund(self.mint_b, out_b)

        if close and position.remaining_bins == 0:
            del self.positions[position_id]


class PaperChainClient:
    """Chain client over a PaperLedger. Same surface as SolanaChainClient."""

    def __init__(self, ledger: PaperLedger) -> None:
        self.ledger = ledger

    async def __aenter__(self) -> "PaperChainClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        pass

    async def is_connected(self) -> bool:
        return True

    async def get_native_balance(self, owner: Any) -> int:
        return self.ledger.native_lamports

    async def get_token_balance(self, owner: Any, mint: str) -> Optional[Balance]:
        if mint not in self.ledger.accounts:
            return None
        return Balance.from_raw(self.ledger.accounts[mint], self.ledger.decimals_of(mint))

    async def send_and_confirm(self, transaction: Any, signers: Sequence[Any] = ()) -> str:
        if not isinstance(transaction, PaperTransaction):
            raise TransactionError(
                f"Paper chain cannot submit {type(transaction).__name__}"
            )
        signature = self.ledger.apply(transaction)
        logger.info(f"[PAPER] {transaction.description} -> {signature}")
        return signature


class PaperPoolAdapter:
    """PoolAdapter over a PaperLedger."""

    def __init__(self, ledger: PaperLedger) -> None:
        self._ledger = ledger

    async def active_bin(self) -> ActiveBin:
        bin_id = self._ledger.active_bin_id
        return ActiveBin(bin_id=bin_id, price=self._ledger.price_at(bin_id))

    def price_from_bin(self, price: Decimal) -> Decimal:
        return price * Decimal(10) ** (self._ledger.decimals_a - self._ledger.decimals_b)

    async def positions_for_wallet(self) -> list[Position]:
        return [
            Position(p.id, p.lower_bin_id, p.upper_bin_id)
            for p in self._ledger.positions.values()
        ]

    async def create_position(
        self,
        range_half_width: int,
        amount_a: int,
        amount_b: int,
        slippage: Decimal,
        strategy: StrategyKind = StrategyKind.SPOT_IMBALANCED,
    ) -> PreparedTransaction:
        position_keypair = Keypair()
        position_id = str(position_keypair.pubkey())
        active = self._ledger.active_bin_id
        lower, upper = active - range_half_width, active + range_half_width

        def effect(ledger: PaperLedger) -> None:
            # The active bin may have moved between build and submit
            if abs(ledger.active_bin_id - active) > _slippage_bins(slippage, ledger.bin_step_bps):
                raise TransactionError(
                    f"Active bin moved from {active} to {ledger.active_bin_id}"
                )
            ledger.debit(ledger.mint_a, amount_a)
            ledger.debit(ledger.mint_b, amount_b)
            ledger.positions[position_id] = PaperPosition(
                position_id, lower, upper, amount_a, amount_b
            )

        return PreparedTransaction(
            transaction=PaperTransaction(
                f"create {strategy.value} position [{lower}, {upper}]", effect
            ),
            signers=(position_keypair,),
            position_id=position_id,
            description=f"Create position {position_id}",
        )

    async def remove_position(
        self,
        position_id: str,
        bps: int = FULL_WITHDRAWAL_BPS,
        claim_and_close: bool = True,
    ) -> List[PreparedTransaction]:
        if bps != FULL_WITHDRAWAL_BPS:
            raise ValueError("Paper pool supports full withdrawal only")

        position = self._ledger.positions.get(position_id)
        if position is None:
            raise TransactionError(f"Position {position_id} not found")

        chunk = self._ledger.max_bins_per_tx
        count = max(1, math.ceil(position.remaining_bins / chunk))
        transactions = []
        for index in range(count):
            is_last = index == count - 1

            def effect(ledger: PaperLedger, close: bool = is_last and claim_and_close) -> None:
                ledger.withdraw_bins(position_id, chunk, close)

            transactions.append(
                PreparedTransaction(
                    transaction=PaperTransaction(
                        f"remove {position_id} part {index + 1}/{count}", effect
                    ),
                    description=f"Remove position {position_id} ({index + 1}/{count})",
                )
            )
        return transactions

    async def bin_range_of(self, position_id: str) -> Optional[BinRange]:
        position = self._ledger.positions.get(position_id)
        if position is None:
            return None
        return BinRange(position.lower_bin_id, position.upper_bin_id)


class PaperSwapClient:
    """Swap service filling at the ledger's active-bin price."""

    def __init__(self, ledger: PaperLedger) -> None:
        self._ledger = ledger

    async def __aenter__(self) -> "PaperSwapClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        pass

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
    ) -> QuoteRecord:
        price = self._ledger.price_at(self._ledger.active_bin_id)
        if input_mint == self._ledger.mint_a and output_mint == self._ledger.mint_b:
            out = Decimal(amount) * price
        elif input_mint == self._ledger.mint_b and output_mint == self._ledger.mint_a:
            out = Decimal(amount) / price
        else:
            raise ValueError(f"No paper route {input_mint} -> {output_mint}")

        out_amount = int(out.to_integral_value(rounding=ROUND_FLOOR))
        threshold = out_amount * (10_000 - slippage_bps) // 10_000
        return QuoteRecord(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=amount,
            out_amount=out_amount,
            slippage_bps=slippage_bps,
            other_amount_threshold=threshold,
        )

    async def build_signed_swap(self, quote: QuoteRecord, signer: Any) -> PaperTransaction:
        def effect(ledger: PaperLedger) -> None:
            ledger.debit(quote.input_mint, quote.in_amount)
            ledger.fund(quote.output_mint, quote.out_amount)

        return PaperTransaction(
            f"swap {quote.in_amount} {quote.input_mint[:6]} -> "
            f"{quote.out_amount} {quote.output_mint[:6]}",
            effect,
        )


def paper_adapter_factory(chain_client: Any, keypair: Any, config: Any) -> PaperPoolAdapter:
    """Adapter factory for the registry. Requires a PaperChainClient."""
    ledger = getattr(chain_client, "ledger", None)
    if ledger is None:
        raise TypeError("The paper pool adapter needs a PaperChainClient")
    return PaperPoolAdapter(ledger)


def _slippage_bins(slippage: Decimal, bin_step_bps: int) -> int:
    """Bins of price movement a position slippage tolerates (at least 1)."""
    if bin_step_bps <= 0:
        return 0
    return max(1, int(Decimal(slippage) * Decimal(10_000) / Decimal(bin_step_bps)))
