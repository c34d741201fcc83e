"""
Shared test fixtures for volshrink tests.

This module provides common fixtures used across all test modules:
- Sample constraint sets (the H1/H2 fleet)
- Fake partition clients with scripted constraints and failures
- Renderers writing to an in-memory console
"""

import io

import pytest
from fakes import MB, FakePartitionClient
from rich.console import Console

from volshrink.display import ReportRenderer
from volshrink.models import ResourceConstraint


@pytest.fixture
def h1_h2_constraints():
    """Two hosts: H1 100000MB/50000MB, H2 80000MB/60000MB."""
    return {
        "H1": ResourceConstraint(current_size=100000 * MB, minimum_size=50000 * MB),
        "H2": ResourceConstraint(current_size=80000 * MB, minimum_size=60000 * MB),
    }


@pytest.fixture
def fake_client(h1_h2_constraints):
    return FakePartitionClient(constraints=h1_h2_constraints)


@pytest.fixture
def console_output():
    return io.StringIO()


@pytest.fixture
def renderer(console_output):
    return ReportRenderer(Console(file=console_output, width=160, color_system=None))
