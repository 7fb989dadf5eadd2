# -*- coding: utf-8 -*-
"""
Spindle: Spinning polarization states across the Poincaré sphere
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: spindle_ellipse.py — Polarization ellipse geometry.

From the Stokes parameters:
    orientation angle   ψ = ½ · atan2(S₂, S₁)
    ellipticity angle   χ = ½ · asin(S₃ / ‖S‖)
    semi-axes           a = cos χ,  b = sin χ      (b > 0: right-handed)

The ellipse is traced parametrically in its own frame and rotated by ψ
into the (Ex, Ey) plane.  States without a polarised component fall back
to the zero-ellipticity sentinel ψ = χ = 0.
"""

from __future__ import annotations

from typing import Final, NamedTuple, Optional, Tuple

import numpy as np

from spindle_stokes import StokesLike, as_stokes

__all__ = [
    "ELLIPSE_EPSILON",
    "ELLIPSE_STEPS",
    "EllipseParameters",
    "ellipse_parameters",
    "ellipse_points",
    "handedness_marker",
]

ELLIPSE_EPSILON: Final[float] = 1e-10
ELLIPSE_STEPS: Final[int] = 72
# |b| below this is drawn as linear polarisation.
_LINEAR_TOL: Final[float] = 1e-9


class EllipseParameters(NamedTuple):
    psi: float          # orientation of the major axis [rad]
    chi: float          # ellipticity angle [rad], sign = handedness
    semi_major: float
    semi_minor: float   # signed
    handedness: str     # "right", "left", "linear" or "undefined"


def ellipse_parameters(stokes: StokesLike) -> EllipseParameters:
    """Orientation, ellipticity and semi-axes of the normalised ellipse."""
    s = as_stokes(stokes)
    norm = float(np.sqrt(s[1] ** 2 + s[2] ** 2 + s[3] ** 2))
    if norm < ELLIPSE_EPSILON:
        return EllipseParameters(0.0, 0.0, 1.0, 0.0, "undefined")

    psi = 0.5 * float(np.arctan2(s[2], s[1]))
    chi = 0.5 * float(np.arcsin(np.clip(s[3] / norm, -1.0, 1.0)))
    a = float(np.cos(chi))
    b = float(np.sin(chi))

    if abs(b) < _LINEAR_TOL:
        hand = "linear"
    elif b > 0.0:
        hand = "right"
    else:
        hand = "left"
    return EllipseParameters(psi, chi, a, b, hand)


def _rotate(ex: np.ndarray, ey: np.ndarray, psi: float) -> Tuple[np.ndarray, np.ndarray]:
    cp = np.cos(psi)
    sp = np.sin(psi)
    return ex * cp - ey * sp, ex * sp + ey * cp


def ellipse_points(stokes: StokesLike, steps: int = ELLIPSE_STEPS) -> np.ndarray:
    """
    Closed outline of the polarisation ellipse.

    Returns:
        np.ndarray: (steps + 1, 2) points (Ex, Ey) on the unit-amplitude
        ellipse, first and last point coincide.  Degenerate input yields
        an empty (0, 2) array.
    """
    params = ellipse_parameters(stokes)
    if params.handedness == "undefined":
        return np.empty((0, 2), dtype=np.float64)

    t = np.linspace(0.0, 2.0 * np.pi, steps + 1)
    x, y = _rotate(params.semi_major * np.cos(t), params.semi_minor * np.sin(t),
                   params.psi)
    return np.column_stack((x, y))


def handedness_marker(
    stokes: StokesLike,
    t: float = np.pi / 4.0,
) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    Position and unit tangent at parameter *t*, for a rotation-sense arrow.

    The tangent follows increasing *t*, i.e. counter-clockwise for a
    right-handed ellipse (b > 0).  Returns None for degenerate or linear
    states, which have no rotation sense.
    """
    params = ellipse_parameters(stokes)
    if params.handedness in ("undefined", "linear"):
        return None

    a, b, psi = params.semi_major, params.semi_minor, params.psi
    px, py = _rotate(np.array([a * np.cos(t)]), np.array([b * np.sin(t)]), psi)
    dx, dy = _rotate(np.array([-a * np.sin(t)]), np.array([b * np.cos(t)]), psi)

    tangent = np.array([dx[0], dy[0]])
    tangent /= np.linalg.norm(tangent)
    return np.array([px[0], py[0]]), tangent
