"""
MashCad - Configuration Module
==============================

Central configuration for solver tolerances and feature flags.
"""

from .tolerances import (
    Tolerances, solver_tolerance, finite_difference_epsilon, degenerate_length_sq,
    validate_tolerances,
)
from .feature_flags import is_enabled, get_flag, set_flag, get_all_flags, FEATURE_FLAGS
