"""
Pytest Configuration and Shared Fixtures
=========================================

This module configures pytest for the studygraph test suite.
It provides:
- Path setup for importing studygraph modules
- Custom markers for test categorization
- Shared fixtures: temporary documents, stores and a fixed clock

Test Categories (markers):
- @pytest.mark.unit: Fast, isolated unit tests
- @pytest.mark.integration: Component interaction tests
- @pytest.mark.mcp: Tests that need the mcp package

Usage:
    # Run only unit tests
    pytest -m unit

    # Skip the MCP server tests
    pytest -m "not mcp"
"""

import os
import sys

import pytest


# =============================================================================
# PATH SETUP
# =============================================================================

# Ensure the studygraph package is importable from any test directory
_repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _repo_root not in sys.path:
    sys.path.insert(0, _repo_root)


# =============================================================================
# PYTEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Fast, isolated unit tests (< 1s each)"
    )
    config.addinivalue_line(
        "markers", "integration: Component interaction tests"
    )
    config.addinivalue_line(
        "markers", "mcp: Tests that need the mcp package"
    )


# =============================================================================
# SHARED FIXTURES
# =============================================================================

from tests.fixtures.sample_graph import FIXED_NOW, FIXED_TODAY  # noqa: E402


@pytest.fixture
def config(tmp_path):
    """Configuration pointing both documents into a temporary directory."""
    from studygraph.config import StudyGraphConfig
    return StudyGraphConfig(
        memory_file_path=tmp_path / "memory.json",
        sessions_file_path=tmp_path / "sessions.json",
    )


@pytest.fixture
def store(config):
    """Empty graph store."""
    from studygraph.graph import GraphStore
    return GraphStore(config.memory_file_path)


@pytest.fixture
def sessions(config):
    """Empty session store."""
    from studygraph.sessions import SessionStore
    return SessionStore(config.sessions_file_path)


@pytest.fixture
def seeded_store(store):
    """Graph store holding the sample semester (see tests/fixtures/sample_graph.py)."""
    from tests.fixtures.sample_graph import populate
    populate(store)
    return store


@pytest.fixture
def queries(seeded_store, config):
    """Query layer over the sample semester, frozen at FIXED_NOW."""
    from studygraph.graph import GraphQueries
    return GraphQueries(seeded_store, now=lambda: FIXED_NOW, config=config)


@pytest.fixture
def workflow(seeded_store, sessions):
    """End-session workflow over the sample semester, dated FIXED_TODAY."""
    from studygraph.sessions import EndSessionWorkflow
    return EndSessionWorkflow(seeded_store, sessions, today=lambda: FIXED_TODAY)


# =============================================================================
# TEST COLLECTION HOOKS
# =============================================================================

def pytest_collection_modifyitems(config, items):
    """
    Automatically mark tests based on their location.

    Tests in tests/unit/ get @pytest.mark.unit, etc.
    """
    for item in items:
        test_path = str(item.fspath)

        if '/unit/' in test_path or '\\unit\\' in test_path:
            item.add_marker(pytest.mark.unit)
        elif '/integration/' in test_path or '\\integration\\' in test_path:
            item.add_marker(pytest.mark.integration)
