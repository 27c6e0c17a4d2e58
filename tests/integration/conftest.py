"""
Integration test fixtures.

These tests drive the full position lifecycle through the paper
simulation. No network access is needed.
"""
import pytest

# Mark all tests in this directory as integration tests
pytestmark = pytest.mark.integration
