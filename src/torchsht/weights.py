"""
Quadrature weights for the supported sampling theorems.

- ``gauss_legendre``: nodes and weights of the n-point Gauss-Legendre rule.
- ``dh_weight``: Driscoll-Healy colatitude weights (truncated sine series).
- ``mw_ring_weight``: frequency-domain kernel of the McEwen-Wiaux ring extension,
  ``w(p) = int_0^pi exp(i p theta) sin(theta) dtheta``.
"""

from __future__ import annotations

import math

import torch
from torch import Tensor

from .errors import PreconditionError
from .logging import logger
from .sampling import SamplingScheme, theta_samples

_GL_EPS = 1e-14
_GL_MAX_ITER = 100


def gauss_legendre(a: float, b: float, n: int) -> tuple[Tensor, Tensor]:
    """
    Abscissas and weights of the n-point Gauss-Legendre rule on ``[a, b]``.

    Roots of P_n are refined by Newton iteration until successive estimates
    agree to 1e-14. Only the first half is iterated; the second half is the
    mirror image, so the rule is exactly symmetric about ``(a + b) / 2``.
    Nodes are returned in increasing order.
    """
    n = int(n)
    if n < 1:
        raise PreconditionError("gauss_legendre", f"number of nodes n={n} must be positive")
    half = (n + 1) // 2
    xm = 0.5 * (b + a)
    xl = 0.5 * (b - a)

    i = torch.arange(1, half + 1, dtype=torch.float64)
    z = torch.cos(math.pi * (i - 0.25) / (n + 0.5))
    for _ in range(_GL_MAX_ITER):
        p1 = torch.ones_like(z)
        p2 = torch.zeros_like(z)
        for j in range(1, n + 1):
            p3 = p2
            p2 = p1
            p1 = ((2.0 * j - 1.0) * z * p2 - (j - 1.0) * p3) / j
        # derivative of P_n from the last two recurrence terms
        pp = n * (z * p1 - p2) / (z * z - 1.0)
        z1 = z
        z = z1 - p1 / pp
        if float(torch.max(torch.abs(z - z1))) <= _GL_EPS:
            break
    else:
        logger.warning(f"gauss_legendre: Newton iteration did not reach {_GL_EPS} for n={n}")

    w_half = 2.0 * xl / ((1.0 - z * z) * pp * pp)
    nodes = torch.empty(n, dtype=torch.float64)
    weights = torch.empty(n, dtype=torch.float64)
    nodes[:half] = xm - xl * z
    weights[:half] = w_half
    nodes[n - half :] = torch.flip(xm + xl * z, dims=(0,))
    weights[n - half :] = torch.flip(w_half, dims=(0,))
    return nodes, weights


def gl_thetas_weights(L: int) -> tuple[Tensor, Tensor]:
    """Gauss-Legendre colatitudes ``arccos(x_t)`` (north to south) and weights for band-limit ``L``."""
    nodes, weights = gauss_legendre(-1.0, 1.0, L)
    # increasing x is decreasing theta
    return torch.flip(torch.arccos(nodes), dims=(0,)), torch.flip(weights, dims=(0,))


def dh_weight(theta: Tensor | float, L: int) -> Tensor:
    """
    Driscoll-Healy weight ``(2/L) sin(theta) sum_k sin((2k+1) theta) / (2k+1)``, k < L.

    The series is kept truncated at ``L`` terms: the discrete orthogonality of
    the sampling theorem depends on it.
    """
    if int(L) < 1:
        raise PreconditionError("dh_weight", f"band-limit L={L} must be positive")
    theta_t = torch.as_tensor(theta, dtype=torch.float64)
    odd = 2.0 * torch.arange(int(L), dtype=torch.float64) + 1.0
    series = torch.sin(theta_t.unsqueeze(-1) * odd) / odd
    return (2.0 / float(L)) * torch.sin(theta_t) * series.sum(dim=-1)


def dh_weights(L: int) -> Tensor:
    """Weights for every ring of the Driscoll-Healy grid."""
    return dh_weight(theta_samples(SamplingScheme.DH, L), L)


def mw_ring_weight(p: int) -> complex:
    """Weight of frequency ``p`` for the McEwen-Wiaux toroidal extension."""
    if p == 1:
        return 1j * math.pi / 2.0
    if p == -1:
        return -1j * math.pi / 2.0
    if p % 2 == 0:
        return complex(2.0 / (1.0 - p * p))
    return 0j


def mw_ring_weights(L: int) -> Tensor:
    """Kernel ``w(p)`` for ``p`` in ``[-(2L-2), 2L-2]``; entry ``p`` is at offset ``p + 2L - 2``."""
    span = 2 * int(L) - 2
    return torch.tensor([mw_ring_weight(p) for p in range(-span, span + 1)], dtype=torch.complex128)


def quadrature_weights(scheme: SamplingScheme | str, L: int) -> Tensor:
    """Per-ring weights (DH, GL) or the frequency-domain ring kernel (MW)."""
    scheme = SamplingScheme.parse(scheme)
    if scheme is SamplingScheme.DH:
        return dh_weights(L)
    if scheme is SamplingScheme.GL:
        return gl_thetas_weights(L)[1]
    return mw_ring_weights(L)
