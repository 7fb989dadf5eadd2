# -*- coding: utf-8 -*-
"""
Spindle: Spinning polarization states across the Poincaré sphere
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: spindle_jacobian.py — Local Jacobian gradient-projection engine.

Update rule (one step):

    S_cur  = chain(S_in, φ)
    ΔS     = S_target[1:] − S_cur[1:]
    J      = ∂S_out[1:] / ∂φ                  (3 × 4)
    Δφ     = μ · J⁺ · ΔS
    φ'     = clip(φ + Δφ, 0, π)
    error  = ‖chain(S_in, φ')[1:] − S_target[1:]‖₂

Pseudo-inverse:
    The right pseudo-inverse J⁺ = Jᵀ (J Jᵀ)⁻¹ is formed from the 3×3 Gram
    matrix, inverted through its adjugate.  |det| < 1e-12 is treated as
    singular and yields the 4×3 zero matrix: the step does not move.

    For a lossless chain the output is confined to the sphere of radius
    ‖S_in[1:]‖, so every column of J is tangent to the sphere at S_cur and
    J Jᵀ has the output direction n in its null space.  The Gram matrix is
    therefore always singular to rounding precision.  The default
    ("tangent") inverse adds n nᵀ before inverting:

        J⁺ = Jᵀ (J Jᵀ + n nᵀ)⁻¹ = Jᵀ (J Jᵀ)⁺      (because Jᵀ n = 0)

    which is exactly the Moore-Penrose inverse of the rank-2 Jacobian.
    The zero-update fallback is kept: it now fires only when the tangent
    rank drops below 2.  inverse="gram" selects the plain Gram form.

Jacobian:
    "numeric"  — per-axis central differences, 8 chain evaluations.
    "analytic" — closed form: column i is K(θᵢ) applied to the state after
                 plate i, propagated through the remaining plates.
"""

from __future__ import annotations

from typing import Dict, Final, Literal, NamedTuple, Optional, Tuple, Union

import numpy as np
from numba import njit

from spindle_chain import (
    PLATE_THETAS,
    RetardanceLike,
    Retardances,
    as_retardances,
    chain_kernel,
)
from spindle_mueller import generator_apply, rotate_polarised
from spindle_stokes import NORM_EPSILON, StokesLike, StokesVector, as_stokes

__all__ = [
    "JACOBIAN_EPSILON",
    "SINGULAR_DET",
    "CONVERGENCE_TOLERANCE",
    "RETARDANCE_MIN",
    "RETARDANCE_MAX",
    "TARGETS",
    "JacobianMethod",
    "InverseMode",
    "JacobianStepResult",
    "resolve_target",
    "compute_output",
    "compute_jacobian",
    "compute_jacobian_analytic",
    "invert_3x3",
    "pseudo_inverse_3x4",
    "tangent_pseudo_inverse_3x4",
    "clamp_retardances",
    "stokes_error",
    "is_converged",
    "random_retardances",
    "jacobian_step",
]

# ═══════════════════════════════════════════════════════════════════════════════
# Constants
# ═══════════════════════════════════════════════════════════════════════════════

JACOBIAN_EPSILON: Final[float] = 1e-4
SINGULAR_DET: Final[float] = 1e-12
CONVERGENCE_TOLERANCE: Final[float] = 0.01
RETARDANCE_MIN: Final[float] = 0.0
RETARDANCE_MAX: Final[float] = np.pi

TARGETS: Final[Dict[str, Tuple[float, float, float, float]]] = {
    "RHC": (1.0, 0.0, 0.0, 1.0),
    "LHC": (1.0, 0.0, 0.0, -1.0),
}

JacobianMethod = Literal["numeric", "analytic"]
InverseMode = Literal["tangent", "gram"]

_THETAS: Final[np.ndarray] = np.array(PLATE_THETAS, dtype=np.float64)


class JacobianStepResult(NamedTuple):
    """Outcome of one gradient-projection step."""
    retardances: Retardances     # clamped, shape (4,)
    output: StokesVector         # chain output at the new retardances
    error: float                 # ‖output[1:] − target[1:]‖₂


# ═══════════════════════════════════════════════════════════════════════════════
# Numba kernels
# ═══════════════════════════════════════════════════════════════════════════════

@njit(cache=True)
def _numeric_jacobian_kernel(stokes, retardances, thetas, epsilon):
    n = retardances.shape[0]
    jac = np.zeros((3, n), dtype=np.float64)
    r_plus = retardances.copy()
    r_minus = retardances.copy()
    inv_step = 1.0 / (2.0 * epsilon)

    for i in range(n):
        r_plus[i] = retardances[i] + epsilon
        r_minus[i] = retardances[i] - epsilon

        s_plus = chain_kernel(stokes, r_plus, thetas)
        s_minus = chain_kernel(stokes, r_minus, thetas)
        for j in range(3):
            jac[j, i] = (s_plus[j + 1] - s_minus[j + 1]) * inv_step

        r_plus[i] = retardances[i]
        r_minus[i] = retardances[i]
    return jac


@njit(cache=True)
def _analytic_jacobian_kernel(stokes, retardances, thetas):
    n = retardances.shape[0]

    # after[i] = polarised state after plate i
    after = np.empty((n, 3), dtype=np.float64)
    p1 = stokes[1]
    p2 = stokes[2]
    p3 = stokes[3]
    for i in range(n):
        p1, p2, p3 = rotate_polarised(p1, p2, p3, retardances[i], thetas[i])
        after[i, 0] = p1
        after[i, 1] = p2
        after[i, 2] = p3

    jac = np.empty((3, n), dtype=np.float64)
    for i in range(n):
        t1, t2, t3 = generator_apply(after[i, 0], after[i, 1], after[i, 2], thetas[i])
        for k in range(i + 1, n):
            t1, t2, t3 = rotate_polarised(t1, t2, t3, retardances[k], thetas[k])
        jac[0, i] = t1
        jac[1, i] = t2
        jac[2, i] = t3
    return jac


@njit(cache=True)
def _invert_3x3_kernel(m):
    """Adjugate inverse.  Returns (ok, inverse); inverse stays zero if not ok."""
    a, b, c = m[0, 0], m[0, 1], m[0, 2]
    d, e, f = m[1, 0], m[1, 1], m[1, 2]
    g, h, k = m[2, 0], m[2, 1], m[2, 2]

    inv = np.zeros((3, 3), dtype=np.float64)
    det = a * (e * k - f * h) - b * (d * k - f * g) + c * (d * h - e * g)
    ok = np.abs(det) >= SINGULAR_DET
    if ok:
        inv_det = 1.0 / det
        inv[0, 0] = (e * k - f * h) * inv_det
        inv[0, 1] = (c * h - b * k) * inv_det
        inv[0, 2] = (b * f - c * e) * inv_det
        inv[1, 0] = (f * g - d * k) * inv_det
        inv[1, 1] = (a * k - c * g) * inv_det
        inv[1, 2] = (c * d - a * f) * inv_det
        inv[2, 0] = (d * h - e * g) * inv_det
        inv[2, 1] = (b * g - a * h) * inv_det
        inv[2, 2] = (a * e - b * d) * inv_det
    return ok, inv


@njit(cache=True)
def _pseudo_inverse_kernel(jac, normal):
    """Jᵀ (J Jᵀ + n nᵀ)⁻¹ for a 3×m Jacobian; n = 0 gives the Gram form."""
    m = jac.shape[1]
    gram = np.empty((3, 3), dtype=np.float64)
    for i in range(3):
        for j in range(3):
            acc = normal[i] * normal[j]
            for k in range(m):
                acc += jac[i, k] * jac[j, k]
            gram[i, j] = acc

    ok, inv = _invert_3x3_kernel(gram)
    pinv = np.zeros((m, 3), dtype=np.float64)
    if not ok:
        return pinv

    for i in range(m):
        for j in range(3):
            acc = 0.0
            for k in range(3):
                acc += jac[k, i] * inv[k, j]
            pinv[i, j] = acc
    return pinv


# ═══════════════════════════════════════════════════════════════════════════════
# Python API
# ═══════════════════════════════════════════════════════════════════════════════

def resolve_target(target: Union[str, StokesLike]) -> StokesVector:
    """
    Accept a registered target name ("RHC", "LHC") or any Stokes vector.

    Raises:
        KeyError: for an unregistered name.
    """
    if isinstance(target, str):
        try:
            return np.array(TARGETS[target], dtype=np.float64)
        except KeyError:
            raise KeyError(
                f"Unknown target '{target}'. Known targets: {sorted(TARGETS)}"
            ) from None
    return as_stokes(target)


def compute_output(stokes_in: StokesLike, retardances: RetardanceLike) -> StokesVector:
    """Output Stokes vector after all four plates."""
    return chain_kernel(as_stokes(stokes_in), as_retardances(retardances), _THETAS)


def compute_jacobian(
    stokes_in: StokesLike,
    retardances: RetardanceLike,
    epsilon: float = JACOBIAN_EPSILON,
) -> np.ndarray:
    """
    3×4 Jacobian ∂(S₁, S₂, S₃)_out / ∂φᵢ by central finite differences.

    Each axis is perturbed by ±epsilon on its own, all others held fixed.
    """
    return _numeric_jacobian_kernel(
        as_stokes(stokes_in), as_retardances(retardances), _THETAS, float(epsilon)
    )


def compute_jacobian_analytic(
    stokes_in: StokesLike,
    retardances: RetardanceLike,
) -> np.ndarray:
    """Closed-form 3×4 Jacobian of the Mueller product."""
    return _analytic_jacobian_kernel(
        as_stokes(stokes_in), as_retardances(retardances), _THETAS
    )


def invert_3x3(matrix: np.ndarray) -> Tuple[bool, np.ndarray]:
    """
    Adjugate inverse of a 3×3 matrix.

    Returns:
        (ok, inverse): ok is False when |det| < SINGULAR_DET, in which case
        the inverse is the zero matrix.
    """
    m = np.ascontiguousarray(matrix, dtype=np.float64)
    if m.shape != (3, 3):
        raise ValueError(f"Expected a 3x3 matrix, got {m.shape}")
    ok, inv = _invert_3x3_kernel(m)
    return bool(ok), inv


def _as_jacobian(jac: np.ndarray) -> np.ndarray:
    arr = np.ascontiguousarray(jac, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[0] != 3:
        raise ValueError(f"Expected a Jacobian of shape (3, n), got {arr.shape}")
    return arr


def pseudo_inverse_3x4(jac: np.ndarray) -> np.ndarray:
    """
    Right pseudo-inverse J⁺ = Jᵀ (J Jᵀ)⁻¹.

    Returns the 4×3 zero matrix when the Gram matrix is singular.
    """
    return _pseudo_inverse_kernel(_as_jacobian(jac), np.zeros(3, dtype=np.float64))


def tangent_pseudo_inverse_3x4(jac: np.ndarray, normal: np.ndarray) -> np.ndarray:
    """
    Moore-Penrose inverse of a Jacobian whose columns are tangent to the
    Poincaré sphere at *normal*.

    *normal* is normalised here; a zero-length normal reduces this to
    ``pseudo_inverse_3x4``.
    """
    n = np.ascontiguousarray(normal, dtype=np.float64)
    if n.shape != (3,):
        raise ValueError(f"Expected a normal of shape (3,), got {n.shape}")
    norm = float(np.linalg.norm(n))
    n = n / norm if norm >= NORM_EPSILON else np.zeros(3, dtype=np.float64)
    return _pseudo_inverse_kernel(_as_jacobian(jac), n)


def clamp_retardances(retardances: RetardanceLike) -> Retardances:
    """Clip every retardance into [0, π]."""
    return np.clip(as_retardances(retardances), RETARDANCE_MIN, RETARDANCE_MAX)


def stokes_error(current: StokesLike, target: StokesLike) -> float:
    """Euclidean distance in (S₁, S₂, S₃); S₀ is ignored."""
    diff = as_stokes(current)[1:] - as_stokes(target)[1:]
    return float(np.sqrt(np.dot(diff, diff)))


def is_converged(error: float, tolerance: float = CONVERGENCE_TOLERANCE) -> bool:
    return error < tolerance


def random_retardances(rng: Optional[np.random.Generator] = None) -> Retardances:
    """Uniformly random retardances in [0, π] per plate."""
    rng = np.random.default_rng() if rng is None else rng
    return rng.uniform(RETARDANCE_MIN, RETARDANCE_MAX, size=len(PLATE_THETAS))


def jacobian_step(
    stokes_in: StokesLike,
    current_retardances: RetardanceLike,
    target: StokesLike,
    mu: float = 0.5,
    *,
    epsilon: float = JACOBIAN_EPSILON,
    method: JacobianMethod = "numeric",
    inverse: InverseMode = "tangent",
) -> JacobianStepResult:
    """
    One gradient-projection step Δφ = μ · J⁺ · (S_target − S_current).

    Args:
        stokes_in: Input Stokes vector (normalised by the caller).
        current_retardances: Retardances the step starts from.
        target: Target Stokes vector.
        mu: Step size in (0, 1].
        epsilon: Finite-difference step for method="numeric".
        method: "numeric" or "analytic" Jacobian.
        inverse: "tangent" (Moore-Penrose on the sphere) or "gram".

    Returns:
        JacobianStepResult with the clamped retardances, the new output and
        its error.  None of the arguments are modified.
    """
    s_in = as_stokes(stokes_in)
    phi = as_retardances(current_retardances)
    s_target = as_stokes(target)

    current_output = chain_kernel(s_in, phi, _THETAS)
    d_s = s_target[1:] - current_output[1:]

    if method == "numeric":
        jac = _numeric_jacobian_kernel(s_in, phi, _THETAS, float(epsilon))
    elif method == "analytic":
        jac = _analytic_jacobian_kernel(s_in, phi, _THETAS)
    else:
        raise ValueError(f"Unknown Jacobian method '{method}'")

    if inverse == "tangent":
        pinv = tangent_pseudo_inverse_3x4(jac, current_output[1:])
    elif inverse == "gram":
        pinv = pseudo_inverse_3x4(jac)
    else:
        raise ValueError(f"Unknown inverse mode '{inverse}'")

    d_phi = mu * (pinv @ d_s)
    new_phi = np.clip(phi + d_phi, RETARDANCE_MIN, RETARDANCE_MAX)
    new_output = chain_kernel(s_in, new_phi, _THETAS)

    return JacobianStepResult(
        retardances=new_phi,
        output=new_output,
        error=stokes_error(new_output, s_target),
    )
