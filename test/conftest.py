import pytest

from config.feature_flags import set_flag
from sketcher.sketch import Sketch


def pytest_configure(config):
    """Registers the custom markers."""
    config.addinivalue_line(
        "markers", "solver: Tests des Constraint-Solvers (LM-Treiber und Backends)"
    )
    config.addinivalue_line(
        "markers", "fast: Schnelle Unit-Tests ohne Rendering"
    )


# Global Feature Flag Defaults - Single Source of Truth for Test Isolation
# ========================================================================
# Every test starts with clean feature flags.
# These defaults must be kept in sync with config/feature_flags.py.
FEATURE_FLAG_DEFAULTS = {
    # Debug modes
    "solver_debug": False,
    "sketch_debug": False,

    # Solver configuration
    "solver_backend": "lm",
}


@pytest.fixture(autouse=True)
def _global_feature_flag_isolation():
    """
    Global feature flag isolation.

    Resets every flag before and after each test so flag mutations cannot
    leak across test modules.
    """
    for key, value in FEATURE_FLAG_DEFAULTS.items():
        set_flag(key, value)

    yield

    for key, value in FEATURE_FLAG_DEFAULTS.items():
        set_flag(key, value)


# ============================================================================
# Sketch fixtures
# ============================================================================

@pytest.fixture
def empty_sketch():
    return Sketch("empty")


@pytest.fixture
def anchored_pair():
    """Fixed point at the origin plus a free point at (3, 1)."""
    sketch = Sketch("anchored_pair")
    anchor = sketch.add_point(0.0, 0.0, fixed=True)
    free = sketch.add_point(3.0, 1.0)
    return sketch, anchor, free


@pytest.fixture
def slanted_line():
    """A single slanted line whose start point is fixed."""
    sketch = Sketch("slanted_line")
    line = sketch.add_line(0.0, 0.0, 8.0, 3.0)
    sketch.fix_point(line.start)
    return sketch, line
