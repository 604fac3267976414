"""
MashCad - Feature Flags
=======================

Feature flags allow incremental rollouts and easy rollback.
New features are introduced behind a flag and enabled after validation.

This file only contains the flags still used by the sketch solver.
"""

from typing import Any, Dict

# Feature Flag Registry
# =====================
# Values are usually bool; "solver_backend" holds the backend name.

FEATURE_FLAGS: Dict[str, Any] = {
    # Debug modes
    "solver_debug": False,  # Per-iteration LM trace ([Solver] residual/lambda)
    "sketch_debug": False,  # Sketch editing trace ([Sketch] add/delete)

    # Solver configuration
    "solver_backend": "lm",  # "lm" (default) or "scipy_trf" (reference cross-check)
}


def is_enabled(flag: str) -> bool:
    """
    Checks whether a feature flag is enabled.

    Args:
        flag: Name of the feature flag

    Returns:
        True if enabled, False if disabled or unknown
    """
    return bool(FEATURE_FLAGS.get(flag, False))


def get_flag(flag: str, default: Any = None) -> Any:
    """Returns the raw value of a flag (for non-bool flags like solver_backend)."""
    return FEATURE_FLAGS.get(flag, default)


def set_flag(flag: str, value: Any) -> None:
    """
    Sets a feature flag at runtime.
    Useful for tests and debugging.

    Args:
        flag: Name of the feature flag
        value: New value
    """
    FEATURE_FLAGS[flag] = value


def get_all_flags() -> Dict[str, Any]:
    """Returns a copy of all feature flags."""
    return FEATURE_FLAGS.copy()
