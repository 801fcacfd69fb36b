"""
Root conftest.py for the neural network interpreter tests.

This file contains shared fixtures and pytest configuration
that applies to all test modules.
"""

import os
import sys
import tempfile
from pathlib import Path

import numpy as np
import pytest

# Ensure the project root is in the path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

# Keep settings reads/writes away from the user's home folder; must happen
# before the api package creates its global config manager.
os.environ.setdefault("NNI_CONFIG", tempfile.mkdtemp(prefix="nni-test-config-"))

from api.shared.ingest import parse_csv  # noqa: E402


# ============================================================================
# Pytest Hooks
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "websocket: mark test as involving WebSocket communication",
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow running (trains a real network)",
    )


def pytest_collection_modifyitems(config, items):
    """Mark tests with 'websocket' in their name."""
    for item in items:
        if "websocket" in item.name.lower():
            item.add_marker(pytest.mark.websocket)


# ============================================================================
# CSV Builders
# ============================================================================


def make_abc_csv(rows: int = 20, seed: int = 0) -> str:
    """x1,x2,label with labels cycling A, B, C (first occurrence order A, B, C)."""
    rng = np.random.default_rng(seed)
    labels = ["A", "B", "C"]
    lines = ["x1,x2,label"]
    for i in range(rows):
        label = labels[i % 3]
        center = {"A": 0.0, "B": 5.0, "C": 10.0}[label]
        x1 = center + rng.normal(0, 0.5)
        x2 = -center + rng.normal(0, 0.5)
        lines.append(f"{x1:.4f},{x2:.4f},{label}")
    return "\n".join(lines) + "\n"


def make_regression_csv(rows: int = 1000, distinct: int = 500, seed: int = 0) -> str:
    """feature,target with ``distinct`` different target values over ``rows`` rows."""
    rng = np.random.default_rng(seed)
    lines = ["feature,target"]
    for i in range(rows):
        target = float(i % distinct) * 0.5 + 3.0
        feature = target * 2.0 + rng.normal(0, 0.1)
        lines.append(f"{feature:.4f},{target}")
    return "\n".join(lines) + "\n"


# ============================================================================
# Shared Fixtures
# ============================================================================


@pytest.fixture
def abc_csv() -> str:
    return make_abc_csv()


@pytest.fixture
def abc_table(abc_csv):
    return parse_csv(abc_csv)


@pytest.fixture
def regression_csv() -> str:
    return make_regression_csv()


@pytest.fixture
def regression_table(regression_csv):
    return parse_csv(regression_csv)


@pytest.fixture
def mixed_csv() -> str:
    """Numeric and categorical features with a numeric 0/1 target."""
    return (
        "age,color,score,passed\n"
        "21,red,3.5,1\n"
        "34,blue,2.0,0\n"
        "45,red,4.5,1\n"
        "23,green,1.5,0\n"
        "52,blue,5.0,1\n"
        "31,green,2.5,0\n"
    )


@pytest.fixture
def mixed_table(mixed_csv):
    return parse_csv(mixed_csv)


@pytest.fixture
def one_first_table():
    """x,y with 40 rows and a 0/1 target whose first row is 1."""
    return parse_csv("x,y\n" + "".join(f"{i},{(i + 1) % 2}\n" for i in range(40)))
