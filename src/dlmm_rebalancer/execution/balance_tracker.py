"""
Balance Tracker for the gas asset and the two tracked tokens.

Thin facade over the chain client. Every call hits the chain: balances are
never cached, because the loop re-reads them right after swaps and position
changes and a stale read would size the next deposit wrongly.

Failures propagate as NetworkError. Retries belong to the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from dlmm_rebalancer.chain.models import Balance, lamports_to_sol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletSnapshot:
    """Native and tracked token balances read in one pass."""

    native: Decimal
    token_a: Optional[Balance]
    token_b: Optional[Balance]

    @property
    def raw_a(self) -> int:
        return self.token_a.raw_amount if self.token_a else 0

    @property
    def raw_b(self) -> int:
        return self.token_b.raw_amount if self.token_b else 0


class BalanceTracker:
    """
    Reads wallet balances.

    Usage:
        tracker = BalanceTracker(chain_client, owner, mint_a, mint_b)

        sol = await tracker.native_balance()
        usdc = await tracker.token_balance(mint_b)  # None if no token account

        snapshot = await tracker.snapshot()
    """

    def __init__(
        self,
        chain_client: Any,
        owner: Any,
        mint_a: str,
        mint_b: str,
    ) -> None:
        """
        Initialize the balance tracker.

        Args:
            chain_client: Chain client (SolanaChainClient or paper equivalent)
            owner: Wallet public key
            mint_a: Mint of tracked token A
            mint_b: Mint of tracked token B
        """
        self._chain = chain_client
        self._owner = owner
        self._mint_a = mint_a
        self._mint_b = mint_b

    @property
    def mint_a(self) -> str:
        return self._mint_a

    @property
    def mint_b(self) -> str:
        return self._mint_b

    async def native_balance(self) -> Decimal:
        """Native gas balance in SOL."""
        lamports = await self._chain.get_native_balance(self._owner)
        return lamports_to_sol(lamports)

    async def token_balance(self, mint: str) -> Optional[Balance]:
        """
        Balance of a token, or None when the wallet has no account for it.

        Absence is a valid outcome, not an error.
        """
        return await self._chain.get_token_balance(self._owner, mint)

    async def token_a(self) -> Optional[Balance]:
        return await self.token_balance(self._mint_a)

    async def token_b(self) -> Optional[Balance]:
        return await self.token_balance(self._mint_b)

    async def snapshot(self) -> WalletSnapshot:
        """Read native, token A and token B balances."""
        native = await self.native_balance()
        token_a = await self.token_a()
        token_b = await self.token_b()

        logger.debug(
            f"Balances: native={native} "
            f"a={token_a.ui_amount if token_a else None} "
            f"b={token_b.ui_amount if token_b else None}"
        )
        return WalletSnapshot(native=native, token_a=token_a, token_b=token_b)
