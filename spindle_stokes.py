# -*- coding: utf-8 -*-
"""
Spindle: Spinning polarization states across the Poincaré sphere
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: spindle_stokes.py — Stokes-vector conversions and input presets.

Conventions:
  S₀ = total intensity
  S₁ = horizontal (+) vs. vertical (−) linear preference
  S₂ = +45° (+) vs. −45° (−) linear preference
  S₃ = right (+) vs. left (−) circular preference

  A fully polarised state lies on the Poincaré sphere at
  (S₁, S₂, S₃) / S₀.  Degenerate (unpolarised) states have no sphere
  coordinate and are mapped to the origin instead of being divided by ~0.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Final, Optional, Sequence, Tuple, TypeAlias, Union

import numpy as np

__all__ = [
    "StokesVector",
    "StokesLike",
    "DegenerateStokesWarning",
    "PolarizationPreset",
    "PRESETS",
    "CUSTOM_LABEL",
    "NORM_EPSILON",
    "as_stokes",
    "stokes_to_cartesian",
    "normalize_stokes",
    "degree_of_polarization",
    "preset_labels",
    "resolve_input_state",
]

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------
StokesVector: TypeAlias = np.ndarray                  # float64, shape (4,)
StokesLike = Union[StokesVector, Sequence[float]]

# Below this polarised norm a state has no defined sphere coordinate.
NORM_EPSILON: Final[float] = 1e-12


class DegenerateStokesWarning(RuntimeWarning):
    """Custom input carried no polarised component; a sentinel was used."""


# ---------------------------------------------------------------------------
# Boundary conversion
# ---------------------------------------------------------------------------
def as_stokes(values: StokesLike) -> StokesVector:
    """
    Return *values* as a contiguous float64 array of shape (4,).

    Raises:
        ValueError: if *values* does not hold exactly four components.
    """
    arr = np.ascontiguousarray(values, dtype=np.float64)
    if arr.shape != (4,):
        raise ValueError(f"Expected a Stokes vector of shape (4,), got {arr.shape}")
    return arr


def _polarised_norm(s: StokesVector) -> float:
    return float(np.sqrt(s[1] * s[1] + s[2] * s[2] + s[3] * s[3]))


# ---------------------------------------------------------------------------
# Sphere coordinates
# ---------------------------------------------------------------------------
def stokes_to_cartesian(stokes: StokesLike) -> np.ndarray:
    """
    Project (S₁, S₂, S₃) onto the unit Poincaré sphere.

    Returns the origin for states whose polarised norm is below
    ``NORM_EPSILON``.
    """
    s = as_stokes(stokes)
    norm = _polarised_norm(s)
    if norm < NORM_EPSILON:
        return np.zeros(3, dtype=np.float64)
    return s[1:] / norm


def normalize_stokes(stokes: StokesLike) -> StokesVector:
    """
    Force a raw Stokes vector onto the unit sphere with S₀ = 1.

    Used to sanitise user-entered custom polarisations.  A vector without a
    polarised part is replaced by ``(1, 0, 0, 0)`` and a
    ``DegenerateStokesWarning`` is emitted.
    """
    s = as_stokes(stokes)
    norm = _polarised_norm(s)
    if norm < NORM_EPSILON:
        warnings.warn(
            f"Stokes vector {s.tolist()} has no polarised component; "
            "using the unpolarised sentinel (1, 0, 0, 0).",
            DegenerateStokesWarning,
            stacklevel=2,
        )
        return np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64)
    out = np.empty(4, dtype=np.float64)
    out[0] = 1.0
    out[1:] = s[1:] / norm
    return out


def degree_of_polarization(stokes: StokesLike) -> float:
    """‖(S₁, S₂, S₃)‖ / S₀, or 0.0 for a beam without intensity."""
    s = as_stokes(stokes)
    if s[0] <= NORM_EPSILON:
        return 0.0
    return _polarised_norm(s) / float(s[0])


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class PolarizationPreset:
    """A named, fully polarised input state."""
    label:  str
    stokes: Tuple[float, float, float, float]

    def as_array(self) -> StokesVector:
        return np.array(self.stokes, dtype=np.float64)


PRESETS: Final[Tuple[PolarizationPreset, ...]] = (
    PolarizationPreset("Linear H (0°)",  (1.0,  1.0,  0.0,  0.0)),
    PolarizationPreset("Linear V (90°)", (1.0, -1.0,  0.0,  0.0)),
    PolarizationPreset("Linear +45°",    (1.0,  0.0,  1.0,  0.0)),
    PolarizationPreset("Linear -45°",    (1.0,  0.0, -1.0,  0.0)),
    PolarizationPreset("Right Circular", (1.0,  0.0,  0.0,  1.0)),
    PolarizationPreset("Left Circular",  (1.0,  0.0,  0.0, -1.0)),
)

CUSTOM_LABEL: Final[str] = "Custom"


def preset_labels() -> Tuple[str, ...]:
    """Preset labels in display order, followed by the custom entry."""
    return tuple(p.label for p in PRESETS) + (CUSTOM_LABEL,)


def resolve_input_state(
    label: str,
    custom: Optional[StokesLike] = None,
) -> StokesVector:
    """
    Resolve a selector entry to the Stokes vector fed into the chain.

    ``Custom`` is sanitised through ``normalize_stokes``.  Unknown labels
    fall back to the first preset (horizontal linear).
    """
    if label == CUSTOM_LABEL:
        if custom is None:
            raise ValueError("The 'Custom' input state requires custom Stokes components.")
        return normalize_stokes(custom)

    for preset in PRESETS:
        if preset.label == label:
            return preset.as_array()
    return PRESETS[0].as_array()
