"""
Integration tests for the DLMM rebalancer.

These tests verify that components work together correctly against the
paper simulation.

Run with:
    pytest tests/integration/ -v -m integration

Skip with:
    pytest -m "not integration"
"""
