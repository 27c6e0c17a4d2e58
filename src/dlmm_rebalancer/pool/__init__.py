"""
Pool Layer - Narrow interface to a bin-based AMM pool.

This module provides:
    - PoolAdapter: Protocol with the operations the core loop consumes
    - StrategyKind: Liquidity distribution shape for new positions
    - AdapterRegistry: Name / dotted-path lookup of adapter factories

Design Principle:
    The position manager depends only on PoolAdapter. Live SDK bridges and
    the paper simulation are interchangeable behind it.
"""

from .protocol import (
    FULL_WITHDRAWAL_BPS,
    PoolAdapter,
    RemoveResult,
    StrategyKind,
)
from .registry import (
    AdapterFactory,
    AdapterNotFoundError,
    AdapterRegistry,
    DuplicateAdapterError,
    get_default_registry,
    register_adapter,
)

__all__ = [
    # Protocol
    "PoolAdapter",
    "StrategyKind",
    "RemoveResult",
    "FULL_WITHDRAWAL_BPS",
    # Registry
    "AdapterFactory",
    "AdapterRegistry",
    "AdapterNotFoundError",
    "DuplicateAdapterError",
    "get_default_registry",
    "register_adapter",
]
