"""
DLMM Rebalancer.

An autonomous capital-management loop for a single liquidity position in a
bin-based AMM pool. The bot watches a wallet's two tracked tokens and its gas
balance, withdraws the position when the active bin leaves its range,
rebalances the holdings toward equal value and re-opens a position centered
on the current price.
"""

__version__ = "0.1.0"
