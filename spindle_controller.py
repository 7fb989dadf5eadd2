# -*- coding: utf-8 -*-
"""
Spindle: Spinning polarization states across the Poincaré sphere
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: spindle_controller.py — Convergence state machine for the
Jacobian controller.

All mutable controller data (retardances, step counter, error history,
convergence flag) lives in an immutable ConvergenceState owned by the
caller.  Every transition is a plain function returning the next state:

    IDLE ──start──▶ RUNNING ──stop──▶ STOPPED ──start──▶ RUNNING
                      │
                      └─ error < tolerance ─▶ CONVERGED   (terminal until reset)

    reset  : any phase ─▶ IDLE with random retardances and a fresh history

Steps are strictly serialised: ``advance`` takes the committed state and
returns the next one, so no step can start from stale retardances.
Timing is not handled here; a UI calls ``advance`` (or
``IterationDriver.tick``) from its own timer.
"""

from __future__ import annotations

import threading
import warnings
from dataclasses import dataclass, replace
from enum import Enum
from typing import Final, NamedTuple, Optional, Tuple, Union

import numpy as np

from spindle_chain import PLATE_COUNT, RetardanceLike, as_retardances
from spindle_jacobian import (
    CONVERGENCE_TOLERANCE,
    JACOBIAN_EPSILON,
    InverseMode,
    JacobianMethod,
    JacobianStepResult,
    compute_output,
    is_converged,
    jacobian_step,
    random_retardances,
    resolve_target,
    stokes_error,
)
from spindle_stokes import StokesLike, StokesVector, as_stokes

__all__ = [
    "HISTORY_LIMIT",
    "ControllerPhase",
    "ControllerStateError",
    "ConvergenceWarning",
    "HistoryEntry",
    "ControllerSettings",
    "ConvergenceState",
    "append_history",
    "initial_state",
    "reset_state",
    "start_iteration",
    "stop_iteration",
    "advance",
    "IterationDriver",
]

HISTORY_LIMIT: Final[int] = 200


class ControllerPhase(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    CONVERGED = "converged"


class ControllerStateError(RuntimeError):
    """A transition was requested that the current phase does not allow."""


class ConvergenceWarning(RuntimeWarning):
    """The step budget ran out before the error fell below tolerance."""


class HistoryEntry(NamedTuple):
    step: int
    error: float


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class ControllerSettings:
    """
    Tunables of the gradient-projection loop.

    Attributes
    ----------
    mu : float
        Step size, must lie in (0, 1].
    epsilon : float
        Central-difference step for the numeric Jacobian.
    tolerance : float
        Error below which the controller reports convergence.
    history_limit : int
        Number of (step, error) entries kept in the rolling history.
    method : {"numeric", "analytic"}
        Jacobian evaluation.
    inverse : {"tangent", "gram"}
        Pseudo-inverse form, see spindle_jacobian.
    """
    mu: float = 0.5
    epsilon: float = JACOBIAN_EPSILON
    tolerance: float = CONVERGENCE_TOLERANCE
    history_limit: int = HISTORY_LIMIT
    method: JacobianMethod = "numeric"
    inverse: InverseMode = "tangent"

    def __post_init__(self) -> None:
        if not 0.0 < self.mu <= 1.0:
            raise ValueError(f"mu must lie in (0, 1], got {self.mu}")
        if self.epsilon <= 0.0:
            raise ValueError(f"epsilon must be positive, got {self.epsilon}")
        if self.tolerance <= 0.0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if self.history_limit < 1:
            raise ValueError(f"history_limit must be >= 1, got {self.history_limit}")
        if self.method not in ("numeric", "analytic"):
            raise ValueError(f"Unknown Jacobian method '{self.method}'")
        if self.inverse not in ("tangent", "gram"):
            raise ValueError(f"Unknown inverse mode '{self.inverse}'")


_DEFAULT_SETTINGS: Final[ControllerSettings] = ControllerSettings()


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class ConvergenceState:
    """Caller-owned snapshot of the controller."""
    phase:       ControllerPhase = ControllerPhase.IDLE
    retardances: Tuple[float, ...] = (0.0,) * PLATE_COUNT
    step_count:  int = 0
    history:     Tuple[HistoryEntry, ...] = ()
    converged:   bool = False
    error:       Optional[float] = None

    @property
    def running(self) -> bool:
        return self.phase is ControllerPhase.RUNNING

    def retardance_array(self) -> np.ndarray:
        return np.array(self.retardances, dtype=np.float64)


def _as_tuple(retardances: RetardanceLike) -> Tuple[float, ...]:
    return tuple(float(v) for v in as_retardances(retardances))


def append_history(
    history: Tuple[HistoryEntry, ...],
    entry: HistoryEntry,
    limit: int = HISTORY_LIMIT,
) -> Tuple[HistoryEntry, ...]:
    """Append *entry*, silently dropping the oldest entries beyond *limit*."""
    extended = history + (entry,)
    if len(extended) > limit:
        extended = extended[-limit:]
    return extended


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def initial_state(retardances: Optional[RetardanceLike] = None) -> ConvergenceState:
    """Idle state with no history (zero retardances unless given)."""
    if retardances is None:
        return ConvergenceState()
    return ConvergenceState(retardances=_as_tuple(retardances))


def reset_state(
    stokes_in: StokesLike,
    target: Union[str, StokesLike],
    rng: Optional[np.random.Generator] = None,
) -> ConvergenceState:
    """
    Fresh Idle state: random retardances in [0, π] and a one-entry history
    seeded with the initial error.
    """
    s_in = as_stokes(stokes_in)
    s_target = resolve_target(target)
    r = random_retardances(rng)
    err = stokes_error(compute_output(s_in, r), s_target)
    return ConvergenceState(
        phase=ControllerPhase.IDLE,
        retardances=_as_tuple(r),
        step_count=0,
        history=(HistoryEntry(0, err),),
        converged=False,
        error=err,
    )


def start_iteration(state: ConvergenceState) -> ConvergenceState:
    """Idle/Stopped → Running.  A converged state is left untouched."""
    if state.phase in (ControllerPhase.IDLE, ControllerPhase.STOPPED):
        return replace(state, phase=ControllerPhase.RUNNING)
    return state


def stop_iteration(state: ConvergenceState) -> ConvergenceState:
    """Running → Stopped.  Recorded history is kept."""
    if state.phase is ControllerPhase.RUNNING:
        return replace(state, phase=ControllerPhase.STOPPED)
    return state


def advance(
    state: ConvergenceState,
    stokes_in: StokesLike,
    target: Union[str, StokesLike],
    settings: Optional[ControllerSettings] = None,
) -> Tuple[ConvergenceState, JacobianStepResult]:
    """
    Perform one Jacobian step from *state* and return the committed state.

    A manual step outside RUNNING leaves the controller STOPPED (paused,
    resumable).  Reaching the tolerance moves it to CONVERGED.

    Raises:
        ControllerStateError: if *state* has already converged.
    """
    if state.converged:
        raise ControllerStateError(
            "Controller has converged; reset before stepping again."
        )
    cfg = _DEFAULT_SETTINGS if settings is None else settings

    result = jacobian_step(
        stokes_in,
        state.retardances,
        resolve_target(target),
        cfg.mu,
        epsilon=cfg.epsilon,
        method=cfg.method,
        inverse=cfg.inverse,
    )

    step = state.step_count + 1
    converged = is_converged(result.error, cfg.tolerance)
    if converged:
        phase = ControllerPhase.CONVERGED
    elif state.phase is ControllerPhase.RUNNING:
        phase = ControllerPhase.RUNNING
    else:
        phase = ControllerPhase.STOPPED

    new_state = ConvergenceState(
        phase=phase,
        retardances=_as_tuple(result.retardances),
        step_count=step,
        history=append_history(state.history, HistoryEntry(step, result.error),
                               cfg.history_limit),
        converged=converged,
        error=result.error,
    )
    return new_state, result


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------
class IterationDriver:
    """
    Thread-safe holder of one ConvergenceState for callers without their
    own state store.

    ``tick`` is meant to be called from an external timer (the reference
    UI uses an 80 ms period).  The lock serialises ticks against
    start / stop / reset, so a reset never interleaves with a step.
    """

    def __init__(
        self,
        stokes_in: StokesLike,
        target: Union[str, StokesLike] = "RHC",
        settings: Optional[ControllerSettings] = None,
        rng: Optional[np.random.Generator] = None,
        state: Optional[ConvergenceState] = None,
    ) -> None:
        self._lock = threading.RLock()
        self._input: StokesVector = as_stokes(stokes_in)
        self._target: StokesVector = resolve_target(target)
        self.settings: ControllerSettings = settings or _DEFAULT_SETTINGS
        self._rng = np.random.default_rng() if rng is None else rng
        self._state: ConvergenceState = state or initial_state()

    # -- accessors ---------------------------------------------------------
    @property
    def state(self) -> ConvergenceState:
        return self._state

    @property
    def input_state(self) -> StokesVector:
        return self._input.copy()

    @property
    def target(self) -> StokesVector:
        return self._target.copy()

    def set_input(self, stokes_in: StokesLike) -> None:
        """Swap the input state; the iteration continues from its retardances."""
        with self._lock:
            self._input = as_stokes(stokes_in)

    def set_target(self, target: Union[str, StokesLike]) -> ConvergenceState:
        """Change the target and reset, as the target defines a new problem."""
        with self._lock:
            self._target = resolve_target(target)
            return self.reset()

    # -- control signals ---------------------------------------------------
    def start(self) -> ConvergenceState:
        """Begin iterating; an untouched controller is reset first."""
        with self._lock:
            if self._state.phase is ControllerPhase.IDLE and not self._state.history:
                self.reset()
            self._state = start_iteration(self._state)
            return self._state

    def stop(self) -> ConvergenceState:
        with self._lock:
            self._state = stop_iteration(self._state)
            return self._state

    def reset(self) -> ConvergenceState:
        """Replace the state with a freshly randomised Idle one."""
        with self._lock:
            self._state = reset_state(self._input, self._target, self._rng)
            return self._state

    # -- stepping ----------------------------------------------------------
    def tick(self) -> Optional[JacobianStepResult]:
        """One step if RUNNING, otherwise nothing (returns None)."""
        with self._lock:
            if not self._state.running:
                return None
            self._state, result = advance(
                self._state, self._input, self._target, self.settings
            )
            return result

    def run(self, max_steps: int = HISTORY_LIMIT) -> ConvergenceState:
        """
        Start and tick until convergence, a stop, or *max_steps* steps.

        A ConvergenceWarning is emitted (and the driver stopped) when the
        budget runs out while still RUNNING.
        """
        self.start()
        for _ in range(max_steps):
            if self.tick() is None:
                break

        with self._lock:
            if self._state.running:
                self._state = stop_iteration(self._state)
                err = float("nan") if self._state.error is None else self._state.error
                warnings.warn(
                    f"No convergence after {max_steps} steps "
                    f"(error = {err:.4g}, "
                    f"tolerance = {self.settings.tolerance:g}).",
                    ConvergenceWarning,
                    stacklevel=2,
                )
            return self._state


# ═══════════════════════════════════════════════════════════════════════════════
# Self-Test
# ═══════════════════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import time

    from spindle_stokes import PRESETS

    print("=" * 70)
    print("Spindle Jacobian Controller — Self-Test")
    print("=" * 70)

    s_in = PRESETS[0].as_array()
    for name in ("RHC", "LHC"):
        driver = IterationDriver(s_in, target=name, rng=np.random.default_rng(7))
        t0 = time.perf_counter()
        final = driver.run(max_steps=200)
        dt = time.perf_counter() - t0
        print(f"  {name}: phase={final.phase.value:<9s} steps={final.step_count:3d} "
              f"error={final.error:.2e}  ({dt * 1e3:.1f} ms)")
        print(f"       retardances [rad] = "
              + ", ".join(f"{r:.4f}" for r in final.retardances))
