"""
Tests for the pool adapter registry and protocol.
"""
import pytest
from unittest.mock import MagicMock

from dlmm_rebalancer.paper import PaperLedger, PaperPoolAdapter, paper_adapter_factory
from dlmm_rebalancer.pool import (
    AdapterNotFoundError,
    AdapterRegistry,
    DuplicateAdapterError,
    PoolAdapter,
    StrategyKind,
    get_default_registry,
)


@pytest.fixture
def registry():
    return AdapterRegistry()


class TestRegistration:

    def test_register_and_get(self, registry):
        factory = MagicMock()

        registry.register("bridge", factory)

        assert registry.get("bridge") is factory
        assert "bridge" in registry
        assert len(registry) == 1

    def test_duplicate_name_rejected(self, registry):
        registry.register("bridge", MagicMock())

        with pytest.raises(DuplicateAdapterError):
            registry.register("bridge", MagicMock())

    def test_unknown_name_lists_available(self, registry):
        registry.register("paper", MagicMock())
        registry.register("bridge", MagicMock())

        with pytest.raises(AdapterNotFoundError, match="Available: bridge, paper"):
            registry.get("meteora")

    def test_unregister(self, registry):
        registry.register("bridge", MagicMock())

        assert registry.unregister("bridge") is True
        assert registry.unregister("bridge") is False
        assert "bridge" not in registry

    def test_default_registry_is_shared(self):
        assert get_default_registry() is get_default_registry()


class TestResolve:

    def test_resolves_registered_name(self, registry):
        factory = MagicMock()
        registry.register("bridge", factory)

        assert registry.resolve("bridge") is factory

    def test_resolves_dotted_path(self, registry):
        factory = registry.resolve("dlmm_rebalancer.paper:paper_adapter_factory")

        assert factory is paper_adapter_factory

    def test_unimportable_module(self, registry):
        with pytest.raises(AdapterNotFoundError, match="Cannot import"):
            registry.resolve("no_such_package.adapter:create")

    def test_missing_attribute(self, registry):
        with pytest.raises(AdapterNotFoundError, match="no callable"):
            registry.resolve("dlmm_rebalancer.paper:no_such_factory")

    def test_non_callable_attribute(self, registry):
        with pytest.raises(AdapterNotFoundError, match="no callable"):
            registry.resolve("dlmm_rebalancer.paper:PAPER_ADAPTER_NAME")


class TestProtocol:

    def test_paper_adapter_satisfies_protocol(self):
        adapter = PaperPoolAdapter(PaperLedger("mint_a", "mint_b"))

        assert isinstance(adapter, PoolAdapter)

    def test_strategy_kinds(self):
        assert StrategyKind("spot_imbalanced") is StrategyKind.SPOT_IMBALANCED
        assert {k.value for k in StrategyKind} == {
            "spot_balanced",
            "spot_imbalanced",
            "curve",
            "bid_ask",
        }
