"""Sample positions for the supported sampling theorems and harmonic index relations."""

from __future__ import annotations

import math
from enum import Enum

import torch
from torch import Tensor

from .errors import ArgumentInvalidError, PreconditionError


class SamplingScheme(str, Enum):
    """Sampling theorem used to place samples on the sphere."""

    DH = "DH"
    MW = "MW"
    GL = "GL"

    @classmethod
    def parse(cls, value: "SamplingScheme | str") -> "SamplingScheme":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            raise ArgumentInvalidError("sampling", f"Invalid method {value!r}") from exc


def _check_band_limit(scheme: SamplingScheme, L: int) -> int:
    L = int(L)
    min_l = 2 if scheme is SamplingScheme.MW else 1
    if L < min_l:
        raise PreconditionError("sampling", f"band-limit L={L} must be >= {min_l} for {scheme.value}")
    return L


# ---------------------------------------------------------------------------
# Harmonic index relations
# ---------------------------------------------------------------------------


def elm2ind(el: int, m: int) -> int:
    """Return the flat coefficient index ``el**2 + el + m`` for mode ``(el, m)``."""
    if el < 0 or abs(m) > el:
        raise PreconditionError("elm2ind", f"(el={el}, m={m}) requires 0 <= el and -el <= m <= el")
    return el * el + el + m


def ind2elm(ind: int) -> tuple[int, int]:
    """Inverse of :func:`elm2ind`, exact at square boundaries."""
    if ind < 0:
        raise PreconditionError("ind2elm", f"index {ind} must be non-negative")
    el = math.isqrt(int(ind))
    return el, int(ind) - el * el - el


def coefficient_count(L: int) -> int:
    """Number of harmonic coefficients for band-limit ``L``."""
    if L < 0:
        raise PreconditionError("coefficient_count", "L must be non-negative")
    return int(L) * int(L)


def elm2ind_array(el: Tensor, m: Tensor) -> Tensor:
    """Vectorised :func:`elm2ind` over integer tensors."""
    el = torch.as_tensor(el, dtype=torch.int64)
    m = torch.as_tensor(m, dtype=torch.int64)
    if torch.any(el < 0) or torch.any(m.abs() > el):
        raise PreconditionError("elm2ind_array", "every (el, m) must satisfy 0 <= el and |m| <= el")
    return el * el + el + m


def ind2elm_array(ind: Tensor) -> tuple[Tensor, Tensor]:
    """Vectorised :func:`ind2elm`; the float sqrt estimate is corrected to the exact isqrt."""
    ind = torch.as_tensor(ind, dtype=torch.int64)
    if torch.any(ind < 0):
        raise PreconditionError("ind2elm_array", "indices must be non-negative")
    el = torch.floor(torch.sqrt(ind.to(torch.float64))).to(torch.int64)
    el = torch.where(el * el > ind, el - 1, el)
    el = torch.where((el + 1) * (el + 1) <= ind, el + 1, el)
    return el, ind - el * el - el


def ell_m_arrays(L: int) -> tuple[Tensor, Tensor]:
    """Degree and order of every slot of a length ``L**2`` coefficient array."""
    return ind2elm_array(torch.arange(coefficient_count(L), dtype=torch.int64))


# ---------------------------------------------------------------------------
# Sampling relations
# ---------------------------------------------------------------------------


def mw_t2theta(t: int, L: int) -> float:
    """Colatitude of ring ``t`` for McEwen-Wiaux sampling; ``t = L-1`` is the south pole."""
    return (2.0 * t + 1.0) * math.pi / (2.0 * L - 1.0)


def mw_p2phi(p: int, L: int) -> float:
    """Azimuth of sample ``p`` in ``[0, 2L-2]``."""
    return 2.0 * p * math.pi / (2.0 * L - 1.0)


def dh_t2theta(t: int, L: int) -> float:
    """Colatitude of ring ``t`` in ``[0, 2L-1]`` for Driscoll-Healy sampling."""
    return (2.0 * t + 1.0) * math.pi / (4.0 * L)


def ntheta(scheme: SamplingScheme | str, L: int) -> int:
    """Number of colatitude rings stored in the sample array (MW excludes the south pole)."""
    scheme = SamplingScheme.parse(scheme)
    L = _check_band_limit(scheme, L)
    if scheme is SamplingScheme.DH:
        return 2 * L
    if scheme is SamplingScheme.MW:
        return L - 1
    return L


def nphi(scheme: SamplingScheme | str, L: int) -> int:
    scheme = SamplingScheme.parse(scheme)
    return 2 * _check_band_limit(scheme, L) - 1


def sample_shape(scheme: SamplingScheme | str, L: int) -> tuple[int, int]:
    return ntheta(scheme, L), nphi(scheme, L)


def theta_samples(scheme: SamplingScheme | str, L: int) -> Tensor:
    """Colatitudes of the stored rings, north to south."""
    scheme = SamplingScheme.parse(scheme)
    n = ntheta(scheme, L)
    t = torch.arange(n, dtype=torch.float64)
    if scheme is SamplingScheme.DH:
        return (2.0 * t + 1.0) * math.pi / (4.0 * L)
    if scheme is SamplingScheme.MW:
        return (2.0 * t + 1.0) * math.pi / (2.0 * L - 1.0)
    from .weights import gl_thetas_weights

    thetas, _ = gl_thetas_weights(L)
    return thetas


def phi_samples(scheme: SamplingScheme | str, L: int) -> Tensor:
    """Equally spaced azimuths ``2 p pi / (2L-1)``."""
    n = nphi(scheme, L)
    return 2.0 * math.pi * torch.arange(n, dtype=torch.float64) / float(n)
