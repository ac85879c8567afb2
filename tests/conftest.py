"""Shared pytest fixtures."""

import sys
from pathlib import Path

# Add src directory to Python path for runs without an installed package
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

import pytest

from adaptive_agents.capability_registry import CapabilityRegistry
from adaptive_agents.stubs import StubAgentFactory


@pytest.fixture
def factory():
    return StubAgentFactory()


@pytest.fixture
def registry():
    return CapabilityRegistry()
