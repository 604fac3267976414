"""
MashCad Sketcher - Solver abstraction layer.

Provides a unified interface for selectable solver backends while keeping
backend selection and fallback behavior explicit in the returned result.
The hand-written Levenberg-Marquardt driver is the default and reference
backend; the SciPy backend exists for cross-checking.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from loguru import logger

from .solver import ConstraintSolver, SolverConfig, SolverResult


class SolverBackendType(Enum):
    """Available solver backends."""

    LM = "lm"
    SCIPY_TRF = "scipy_trf"


class ISolverBackend(ABC):
    """Common backend contract."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name used for diagnostics."""
        ...

    @abstractmethod
    def solve(self, sketch, config: Optional[SolverConfig] = None) -> SolverResult:
        """Solve the given sketch in place."""
        ...

    def can_solve(self, sketch) -> Tuple[bool, str]:
        """Return whether this backend can solve the sketch."""
        return True, ""


class LevenbergMarquardtBackend(ISolverBackend):
    """Backend wrapper around ConstraintSolver."""

    @property
    def name(self) -> str:
        return SolverBackendType.LM.value

    def solve(self, sketch, config: Optional[SolverConfig] = None) -> SolverResult:
        return ConstraintSolver(config).solve(sketch)


class SciPyBackend(ISolverBackend):
    """Backend wrapper around the SciPy reference solver."""

    @property
    def name(self) -> str:
        return SolverBackendType.SCIPY_TRF.value

    def solve(self, sketch, config: Optional[SolverConfig] = None) -> SolverResult:
        from .solver_scipy import SciPyTRFBackend

        return SciPyTRFBackend(config).solve(sketch)


class SolverBackendRegistry:
    """Registry of available solver backends."""

    _backends: Dict[str, ISolverBackend] = {}

    @classmethod
    def register(cls, backend_type: SolverBackendType, backend: ISolverBackend):
        cls._backends[backend_type.value] = backend

    @classmethod
    def get(cls, backend_type: Union[str, SolverBackendType]) -> Optional[ISolverBackend]:
        if isinstance(backend_type, SolverBackendType):
            backend_type = backend_type.value
        return cls._backends.get(backend_type)

    @classmethod
    def get_default(cls) -> ISolverBackend:
        return cls._backends.get(SolverBackendType.LM.value) or LevenbergMarquardtBackend()

    @classmethod
    def list_available(cls) -> List[str]:
        return list(cls._backends.keys())


class UnifiedConstraintSolver:
    """Selects the configured solver backend and makes fallbacks explicit."""

    def __init__(self, backend: Optional[ISolverBackend] = None):
        self._backend = backend

    def _read_configured_backend_name(self) -> Tuple[str, str]:
        from config.feature_flags import get_flag

        backend_name = str(get_flag("solver_backend", SolverBackendType.LM.value) or "").strip()
        if not backend_name:
            return SolverBackendType.LM.value, "empty solver_backend flag"
        return backend_name, ""

    def _select_backend(self, sketch) -> Tuple[ISolverBackend, str, str]:
        if self._backend is not None:
            return self._backend, self._backend.name, "backend injected explicitly"

        backend_name, config_note = self._read_configured_backend_name()
        selection_notes: List[str] = []
        if config_note:
            selection_notes.append(config_note)

        backend = SolverBackendRegistry.get(backend_name)
        if backend is not None:
            can_solve, reason = backend.can_solve(sketch)
            if can_solve:
                return backend, backend_name, "; ".join(selection_notes)
            selection_notes.append(f"requested backend '{backend_name}' cannot solve: {reason}")
            logger.warning(f"[Solver] Backend '{backend_name}' cannot solve: {reason}")
        else:
            selection_notes.append(f"requested backend '{backend_name}' is not registered")
            logger.warning(f"[Solver] Backend '{backend_name}' is not registered")

        default_backend = SolverBackendRegistry.get_default()
        selection_notes.append(f"fell back to '{default_backend.name}'")
        return default_backend, backend_name, "; ".join(selection_notes)

    def solve(self, sketch, config: Optional[SolverConfig] = None) -> SolverResult:
        backend, requested_backend, selection_detail = self._select_backend(sketch)

        result = backend.solve(sketch, config)
        result.backend_used = backend.name
        result.requested_backend = requested_backend
        result.selection_detail = selection_detail

        if selection_detail:
            base_message = str(result.message or "").strip()
            if selection_detail not in base_message:
                result.message = f"{base_message} | {selection_detail}" if base_message else selection_detail

        return result


def _register_backends():
    """Register all available solver backends."""
    SolverBackendRegistry.register(SolverBackendType.LM, LevenbergMarquardtBackend())
    SolverBackendRegistry.register(SolverBackendType.SCIPY_TRF, SciPyBackend())


_register_backends()
