"""
Swap Layer - Aggregator quotes and swap transactions for rebalancing.

This module provides:
    - JupiterSwapClient: GET quote, POST swap, local signing
    - QuoteRecord: Parsed quote
    - SwapAPIError / RateLimitError: API failures
"""

from .client import (
    JupiterSwapClient,
    QuoteRecord,
    RateLimitError,
    SwapAPIError,
)

__all__ = [
    "JupiterSwapClient",
    "QuoteRecord",
    "RateLimitError",
    "SwapAPIError",
]
