# -*- coding: utf-8 -*-
"""
Spindle: Spinning polarization states across the Poincaré sphere
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: spindle_chain.py — Fixed four-plate polarization controller chain.

Plate layout (fast-axis azimuths are structural constants):

    Plate 1:  θ = 0°     → rotation about  S₁
    Plate 2:  θ = +45°   → rotation about  S₂
    Plate 3:  θ = −45°   → rotation about −S₂
    Plate 4:  θ = 0°     → rotation about  S₁

Only the four retardances are adjustable.  The chain is rebuilt from
scratch whenever they change; PlateDef objects are immutable.

Each plate also yields an arc on the Poincaré sphere.  The arc is sampled
by re-applying the *same* Mueller transform with the retardance ramped
linearly from 0 to δ, so the samples follow the exact rotation path of the
plate (they are not, in general, a great circle through both endpoints).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, NamedTuple, Sequence, Tuple, TypeAlias, Union

import numpy as np
from numba import njit

from spindle_mueller import apply_wave_plate, rotate_polarised
from spindle_stokes import NORM_EPSILON, StokesLike, StokesVector, as_stokes

__all__ = [
    "PLATE_COUNT",
    "PLATE_THETAS",
    "PLATE_LABELS",
    "STATE_LABELS",
    "ARC_STEPS",
    "ARC_EPSILON",
    "Retardances",
    "RetardanceLike",
    "PlateDef",
    "SimulationResult",
    "as_retardances",
    "create_plates",
    "compute_arc_points",
    "simulate_plate_chain",
    "chain_output",
]

# ═══════════════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════════════

PLATE_COUNT: Final[int] = 4
PLATE_THETAS: Final[Tuple[float, ...]] = (0.0, np.pi / 4.0, -np.pi / 4.0, 0.0)
PLATE_LABELS: Final[Tuple[str, ...]] = (
    "Plate 1 (0°)",
    "Plate 2 (+45°)",
    "Plate 3 (-45°)",
    "Plate 4 (0°)",
)
STATE_LABELS: Final[Tuple[str, ...]] = (
    "Input", "After P1", "After P2", "After P3", "Output",
)

ARC_STEPS: Final[int] = 48
# Plates with less retardance than this trace no arc.
ARC_EPSILON: Final[float] = 1e-10

_THETAS: Final[np.ndarray] = np.array(PLATE_THETAS, dtype=np.float64)

Retardances: TypeAlias = np.ndarray                   # float64, shape (4,)
RetardanceLike = Union[Retardances, Sequence[float]]


# ═══════════════════════════════════════════════════════════════════════════════
# Data containers
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class PlateDef:
    """One wave plate of the chain."""
    theta: float   # fast-axis azimuth [rad], fixed per chain position
    delta: float   # retardance [rad], nominally in [0, π]
    label: str


class SimulationResult(NamedTuple):
    """
    Output of ``simulate_plate_chain``.

    states[0] is the input, states[k] the state after plate k.
    arcs[k] holds the sphere points swept by plate k + 1.
    """
    states: np.ndarray                 # float64, shape (n_plates + 1, 4)
    arcs: Tuple[np.ndarray, ...]       # n_plates × float64 (n_points, 3)


def as_retardances(values: RetardanceLike) -> Retardances:
    """Return *values* as a float64 array of shape (4,)."""
    arr = np.ascontiguousarray(values, dtype=np.float64)
    if arr.shape != (PLATE_COUNT,):
        raise ValueError(
            f"Expected {PLATE_COUNT} retardances, got shape {arr.shape}"
        )
    return arr


# ═══════════════════════════════════════════════════════════════════════════════
# Numba kernels
# ═══════════════════════════════════════════════════════════════════════════════

@njit(cache=True)
def chain_kernel(stokes, retardances, thetas):
    """Propagate *stokes* through all plates; returns the output (4,)."""
    p1 = stokes[1]
    p2 = stokes[2]
    p3 = stokes[3]
    for i in range(thetas.shape[0]):
        p1, p2, p3 = rotate_polarised(p1, p2, p3, retardances[i], thetas[i])

    out = np.empty(4, dtype=np.float64)
    out[0] = stokes[0]
    out[1] = p1
    out[2] = p2
    out[3] = p3
    return out


@njit(cache=True)
def _arc_kernel(stokes, delta, theta, num_points):
    """Sphere points for the retardance ramp 0 → delta (inclusive)."""
    if np.abs(delta) < ARC_EPSILON:
        out = np.zeros((1, 3), dtype=np.float64)
        norm = np.sqrt(stokes[1] ** 2 + stokes[2] ** 2 + stokes[3] ** 2)
        if norm >= NORM_EPSILON:
            out[0, 0] = stokes[1] / norm
            out[0, 1] = stokes[2] / norm
            out[0, 2] = stokes[3] / norm
        return out

    out = np.zeros((num_points + 1, 3), dtype=np.float64)
    for k in range(num_points + 1):
        partial = delta * (k / num_points)
        q1, q2, q3 = rotate_polarised(stokes[1], stokes[2], stokes[3],
                                      partial, theta)
        norm = np.sqrt(q1 * q1 + q2 * q2 + q3 * q3)
        if norm >= NORM_EPSILON:
            out[k, 0] = q1 / norm
            out[k, 1] = q2 / norm
            out[k, 2] = q3 / norm
    return out


# ═══════════════════════════════════════════════════════════════════════════════
# Python API
# ═══════════════════════════════════════════════════════════════════════════════

def create_plates(retardances: RetardanceLike) -> Tuple[PlateDef, ...]:
    """Bind the fixed chain azimuths to *retardances*, in order."""
    r = as_retardances(retardances)
    return tuple(
        PlateDef(theta=PLATE_THETAS[i], delta=float(r[i]), label=PLATE_LABELS[i])
        for i in range(PLATE_COUNT)
    )


def compute_arc_points(
    start: StokesLike,
    delta: float,
    theta: float,
    num_points: int = ARC_STEPS,
) -> np.ndarray:
    """
    Sample the rotation induced by one plate, starting at *start*.

    Returns:
        np.ndarray: (num_points + 1, 3) unit-sphere points, or a single
        point when |delta| < ARC_EPSILON.
    """
    if num_points < 1:
        raise ValueError(f"num_points must be >= 1, got {num_points}")
    s = as_stokes(start)
    return _arc_kernel(s, float(delta), float(theta), int(num_points))


def simulate_plate_chain(
    stokes_in: StokesLike,
    plates: Sequence[PlateDef],
    num_points: int = ARC_STEPS,
) -> SimulationResult:
    """
    Run *stokes_in* through *plates*, recording every state and arc.

    Args:
        stokes_in: Input Stokes vector.
        plates: Chain built by ``create_plates``.
        num_points: Arc subdivisions per plate.

    Returns:
        SimulationResult with len(plates) + 1 states and len(plates) arcs.
    """
    current = as_stokes(stokes_in)
    states = np.empty((len(plates) + 1, 4), dtype=np.float64)
    states[0] = current
    arcs = []

    for k, plate in enumerate(plates):
        arcs.append(compute_arc_points(current, plate.delta, plate.theta, num_points))
        current = apply_wave_plate(current, plate.delta, plate.theta)
        states[k + 1] = current

    return SimulationResult(states=states, arcs=tuple(arcs))


def chain_output(stokes_in: StokesLike, retardances: RetardanceLike) -> StokesVector:
    """Output of the fixed four-plate chain for the given retardances."""
    return chain_kernel(as_stokes(stokes_in), as_retardances(retardances), _THETAS)
