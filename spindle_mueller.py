# -*- coding: utf-8 -*-
"""
Spindle: Spinning polarization states across the Poincaré sphere
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: spindle_mueller.py — Mueller transform of an ideal linear retarder.

On the Poincaré sphere a wave plate at azimuth θ with retardance δ acts as
a rotation by δ about the equatorial axis at azimuth 2θ.  Instead of
composing R(−2θ) · M_ret(δ) · R(2θ) on every call, the 3×3 block is
written out in closed form:

    c = cos δ,  s = sin δ,  c2 = cos 2θ,  s2 = sin 2θ

        ┌ c2² + s2²·c     c2·s2·(1 − c)   −s2·s ┐
    M = │ c2·s2·(1 − c)   s2² + c2²·c      c2·s │
        └ s2·s            −c2·s            c    ┘

S₀ is passed through untouched (lossless element).  The block is
orthogonal, so the polarised norm is preserved for every (δ, θ).

Differentiating at δ = 0 gives the skew generator

        ┌ 0     0    −s2 ┐
    K = │ 0     0     c2 │ ,     dM/dδ = K · M = M · K
        └ s2   −c2    0  ┘

which the analytic Jacobian uses.

Sign convention: M equals the right-handed rotation by −δ about
(cos 2θ, sin 2θ, 0).
"""

from __future__ import annotations

import numpy as np
from numba import njit

from spindle_stokes import StokesLike, StokesVector, as_stokes

__all__ = [
    "rotate_polarised",
    "generator_apply",
    "apply_wave_plate",
    "mueller_matrix",
    "retarder_generator",
]


# ═══════════════════════════════════════════════════════════════════════════════
# Numba kernels (scalar, shared by the chain and Jacobian engines)
# ═══════════════════════════════════════════════════════════════════════════════

@njit(cache=True)
def rotate_polarised(p1, p2, p3, delta, theta):
    """
    Apply the 3×3 retarder block to the polarised components (S₁, S₂, S₃).

    Returns:
        tuple(float, float, float): the transformed components.
    """
    c = np.cos(delta)
    s = np.sin(delta)
    c2 = np.cos(2.0 * theta)
    s2 = np.sin(2.0 * theta)

    m11 = c2 * c2 + s2 * s2 * c
    m12 = c2 * s2 * (1.0 - c)
    m13 = -s2 * s
    m21 = m12
    m22 = s2 * s2 + c2 * c2 * c
    m23 = c2 * s
    m31 = s2 * s
    m32 = -c2 * s
    m33 = c

    q1 = m11 * p1 + m12 * p2 + m13 * p3
    q2 = m21 * p1 + m22 * p2 + m23 * p3
    q3 = m31 * p1 + m32 * p2 + m33 * p3
    return q1, q2, q3


@njit(cache=True)
def generator_apply(p1, p2, p3, theta):
    """K(θ) · (S₁, S₂, S₃): tangent of the retarder rotation at this state."""
    c2 = np.cos(2.0 * theta)
    s2 = np.sin(2.0 * theta)
    return -s2 * p3, c2 * p3, s2 * p1 - c2 * p2


# ═══════════════════════════════════════════════════════════════════════════════
# Python API
# ═══════════════════════════════════════════════════════════════════════════════

def apply_wave_plate(stokes: StokesLike, delta: float, theta: float) -> StokesVector:
    """
    Transform a Stokes vector through one ideal linear retarder.

    Args:
        stokes: (S₀, S₁, S₂, S₃) input state.
        delta: Retardance [rad].
        theta: Fast-axis azimuth [rad].

    Returns:
        StokesVector: the output state.  S₀ is copied unchanged.
    """
    s = as_stokes(stokes)
    q1, q2, q3 = rotate_polarised(s[1], s[2], s[3], float(delta), float(theta))
    return np.array([s[0], q1, q2, q3], dtype=np.float64)


def mueller_matrix(delta: float, theta: float) -> np.ndarray:
    """Full 4×4 Mueller matrix of the retarder (row/column 0 is identity)."""
    c = np.cos(delta)
    s = np.sin(delta)
    c2 = np.cos(2.0 * theta)
    s2 = np.sin(2.0 * theta)
    return np.array([
        [1.0, 0.0,                  0.0,                  0.0],
        [0.0, c2 * c2 + s2 * s2 * c, c2 * s2 * (1.0 - c), -s2 * s],
        [0.0, c2 * s2 * (1.0 - c),  s2 * s2 + c2 * c2 * c, c2 * s],
        [0.0, s2 * s,               -c2 * s,              c],
    ], dtype=np.float64)


def retarder_generator(theta: float) -> np.ndarray:
    """Skew 3×3 generator K with dM/dδ = K · M for a plate at *theta*."""
    c2 = np.cos(2.0 * theta)
    s2 = np.sin(2.0 * theta)
    return np.array([
        [0.0, 0.0, -s2],
        [0.0, 0.0,  c2],
        [s2,  -c2,  0.0],
    ], dtype=np.float64)
