"""
Forward and inverse spin spherical harmonic transforms.

Sample arrays have shape ``(ntheta, 2L-1)`` in (colatitude, azimuth) order and
coefficient arrays have length ``L**2`` ordered by ``elm2ind``. McEwen-Wiaux
grids exclude the south pole ring; its value ``f_sp`` (sampled at azimuth
``phi_sp``) travels next to the sample array.

Every call moves through the stages Idle -> GridReady -> WeightsReady ->
BasisReady -> Accumulating -> Done; nothing survives the call except tables
kept by the optional cache (see ``torchsht.cache``). The basis is never held
for the whole grid: it is evaluated over blocks of colatitudes while
accumulating, so its footprint is ``(2L-1) * L * _THETA_BLOCK`` doubles.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Literal

import torch
from torch import Tensor

from .cache import get_table_cache
from .errors import ArgumentInvalidError, PreconditionError
from .logging import log_performance, logger
from .sampling import SamplingScheme, coefficient_count, ell_m_arrays, sample_shape, theta_samples
from .weights import dh_weights, gl_thetas_weights, mw_ring_weights
from .wigner import spin_basis


class Stage(Enum):
    IDLE = "Idle"
    GRID_READY = "GridReady"
    WEIGHTS_READY = "WeightsReady"
    BASIS_READY = "BasisReady"
    ACCUMULATING = "Accumulating"
    DONE = "Done"


# Colatitudes per basis evaluation block.
_THETA_BLOCK = 8


def _advance(op: str, stage: Stage):
    logger.debug(f"{op}: {stage.value}")


@dataclass(frozen=True)
class TransformTables:
    """Read-only tables for one (scheme, L, spin, real) combination."""

    scheme: SamplingScheme
    L: int
    spin: int
    orders: Tensor
    theta: Tensor
    weights: Tensor

    @property
    def nbytes(self) -> int:
        return sum(
            int(t.numel() * t.element_size()) for t in (self.orders, self.theta, self.weights)
        )


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def _basis_theta(scheme: SamplingScheme, L: int) -> Tensor:
    if scheme is SamplingScheme.MW:
        # stored rings plus the south pole
        t = torch.arange(L, dtype=torch.float64)
        return (2.0 * t + 1.0) * math.pi / (2.0 * L - 1.0)
    return theta_samples(scheme, L)


def _mw_kernel(L: int) -> Tensor:
    """Ring-extension convolution matrix ``W[j, k] = w(k - j)`` for ``j, k`` in ``[-(L-1), L-1]``."""
    w = mw_ring_weights(L)
    n = 2 * L - 1
    idx = torch.arange(n).unsqueeze(0) - torch.arange(n).unsqueeze(1) + (2 * L - 2)
    return w[idx]


def _build_tables(op: str, scheme: SamplingScheme, L: int, spin: int, real: bool) -> TransformTables:
    if real:
        orders = torch.arange(L, dtype=torch.int64)
    else:
        orders = torch.arange(-(L - 1), L, dtype=torch.int64)
    theta = _basis_theta(scheme, L)
    _advance(op, Stage.GRID_READY)

    if scheme is SamplingScheme.DH:
        weights = dh_weights(L)
    elif scheme is SamplingScheme.GL:
        weights = gl_thetas_weights(L)[1]
    else:
        weights = _mw_kernel(L)
    _advance(op, Stage.WEIGHTS_READY)
    return TransformTables(scheme, L, spin, orders, theta, weights)


def _get_tables(op: str, scheme: SamplingScheme, L: int, spin: int, real: bool) -> TransformTables:
    key = (scheme.value, int(L), int(spin), bool(real))
    return get_table_cache().get_or_build(
        key,
        lambda: _build_tables(op, scheme, int(L), int(spin), bool(real)),
        lambda tables: tables.nbytes,
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _check_spin(spin, where: str) -> int:
    try:
        spin_i = int(spin)
    except (TypeError, ValueError) as exc:
        raise ArgumentInvalidError(where, "spin must be an integer") from exc
    if float(spin_i) != float(spin):
        raise ArgumentInvalidError(where, "spin must be an integer")
    return spin_i


def _samples_tensor(f, scheme: SamplingScheme, L: int, real: bool, where: str) -> Tensor:
    expected = sample_shape(scheme, L)
    t = torch.as_tensor(f)
    if tuple(t.shape) != expected:
        raise PreconditionError(where, f"sample array shape {tuple(t.shape)} does not match {expected}")
    if real:
        if t.is_complex():
            raise ArgumentInvalidError(where, "real transform requires real-valued samples")
        return t.to(dtype=torch.float64)
    return t.to(dtype=torch.complex128)


def _coefficients_tensor(flm, L: int, where: str) -> Tensor:
    if int(L) < 1:
        raise PreconditionError(where, f"band-limit L={L} must be positive")
    t = torch.as_tensor(flm)
    n = coefficient_count(L)
    if t.ndim != 1 or int(t.shape[0]) != n:
        raise PreconditionError(where, f"coefficient array shape {tuple(t.shape)} does not match ({n},)")
    return t.to(dtype=torch.complex128)


# ---------------------------------------------------------------------------
# Azimuthal FFT passes and accumulation
# ---------------------------------------------------------------------------


def _azimuthal_modes(f: Tensor) -> Tensor:
    """``G_m(theta_t) = (2 pi / N) sum_p f(t, p) exp(-i m phi_p)`` with m ordered ``-(L-1) .. L-1``."""
    n = f.shape[-1]
    return torch.fft.fftshift(torch.fft.fft(f, dim=-1), dim=-1) * (2.0 * math.pi / n)


def _azimuthal_modes_real(f: Tensor) -> Tensor:
    n = f.shape[-1]
    return torch.fft.rfft(f, dim=-1) * (2.0 * math.pi / n)


def _azimuthal_synthesis(F: Tensor) -> Tensor:
    """``f(t, p) = sum_m F_m(theta_t) exp(i m phi_p)``."""
    return torch.fft.ifft(torch.fft.ifftshift(F, dim=-1), dim=-1, norm="forward")


def _azimuthal_synthesis_real(F: Tensor, n: int) -> Tensor:
    return torch.fft.irfft(F, n=n, dim=-1, norm="forward")


def _project(basis: Tensor, rings: Tensor) -> Tensor:
    """Sum over colatitude: ``[M, L, T] x [T, M] -> [M, L]``."""
    basis = basis.to(device=rings.device)
    re = torch.einsum("mlt,tm->ml", basis, rings.real.contiguous())
    im = torch.einsum("mlt,tm->ml", basis, rings.imag.contiguous())
    return torch.complex(re, im)


def _synthesise(basis: Tensor, flm_ml: Tensor) -> Tensor:
    """Sum over degree: ``[M, L, T] x [M, L] -> [T, M]``."""
    basis = basis.to(device=flm_ml.device)
    re = torch.einsum("mlt,ml->tm", basis, flm_ml.real.contiguous())
    im = torch.einsum("mlt,ml->tm", basis, flm_ml.imag.contiguous())
    return torch.complex(re, im)


def _basis_blocks(op: str, tables: TransformTables):
    """Yield ``(start, stop, basis)`` with the basis evaluated on ``theta[start:stop]`` only."""
    n = int(tables.theta.shape[0])
    for start in range(0, n, _THETA_BLOCK):
        stop = min(start + _THETA_BLOCK, n)
        basis = spin_basis(tables.L, tables.spin, tables.theta[start:stop], orders=tables.orders)
        if start == 0:
            _advance(op, Stage.BASIS_READY)
            _advance(op, Stage.ACCUMULATING)
        yield start, stop, basis


def _project_blocks(op: str, tables: TransformTables, rings: Tensor) -> Tensor:
    """``_project`` summed over colatitude blocks."""
    out = torch.zeros((tables.orders.shape[0], tables.L), dtype=torch.complex128, device=rings.device)
    for start, stop, basis in _basis_blocks(op, tables):
        out += _project(basis, rings[start:stop])
    return out


def _synthesise_blocks(op: str, tables: TransformTables, flm_ml: Tensor) -> Tensor:
    """``_synthesise`` one colatitude block at a time."""
    out = torch.empty(
        (tables.theta.shape[0], tables.orders.shape[0]), dtype=torch.complex128, device=flm_ml.device
    )
    for start, stop, basis in _basis_blocks(op, tables):
        out[start:stop] = _synthesise(basis, flm_ml)
    return out


def _pack(flm_ml: Tensor, L: int) -> Tensor:
    el, m = ell_m_arrays(L)
    return flm_ml[(m + L - 1).to(flm_ml.device), el.to(flm_ml.device)]


def _unpack(flm: Tensor, L: int) -> Tensor:
    el, m = ell_m_arrays(L)
    out = torch.zeros((2 * L - 1, L), dtype=torch.complex128, device=flm.device)
    out[(m + L - 1).to(flm.device), el.to(flm.device)] = flm
    return out


def _pack_real(flm_pos: Tensor, L: int) -> Tensor:
    """Fill every order from ``m >= 0`` using ``f_{el,-m} = (-1)^m conj(f_{el,m})``."""
    el, m = ell_m_arrays(L)
    el = el.to(flm_pos.device)
    m = m.to(flm_pos.device)
    vals = flm_pos[m.abs(), el]
    sign = 1.0 - 2.0 * torch.remainder(m.abs(), 2).to(torch.float64)
    conj = torch.complex(vals.real, -vals.imag)
    return torch.where(m < 0, sign * conj, vals)


def _unpack_real(flm: Tensor, L: int) -> Tensor:
    el, m = ell_m_arrays(L)
    keep = m >= 0
    out = torch.zeros((L, L), dtype=torch.complex128, device=flm.device)
    out[m[keep].to(flm.device), el[keep].to(flm.device)] = flm[keep.to(flm.device)]
    return out


# ---------------------------------------------------------------------------
# McEwen-Wiaux ring extension
# ---------------------------------------------------------------------------


def _order_parity(orders: Tensor, spin: int) -> Tensor:
    """``(-1)^(m+s)`` per order as a column-broadcastable row."""
    parity = torch.remainder(orders + spin, 2).to(torch.float64)
    return (1.0 - 2.0 * parity).unsqueeze(0)


def _mw_pole_modes(orders: Tensor, spin: int, f_sp: complex, phi_sp: float) -> Tensor:
    """
    Azimuthal modes of the south pole ring.

    A band-limited spin-s signal at theta = pi is ``f_sp exp(i s (phi - phi_sp))``,
    so only order ``m = s`` survives.
    """
    out = torch.zeros(orders.shape[0], dtype=torch.complex128)
    hit = (orders == spin).nonzero()
    if hit.numel():
        out[int(hit[0, 0])] = 2.0 * math.pi * complex(f_sp) * complex(math.cos(spin * phi_sp), -math.sin(spin * phi_sp))
    return out


def _mw_weighted_rings(modes: Tensor, pole: Tensor, orders: Tensor, spin: int, L: int, kernel: Tensor) -> Tensor:
    """
    Weighted rings ``H[t, m]`` such that ``f_elm = sum_t H[t, m] Lambda_el^{m,s}(theta_t)``.

    The ``L`` rings (south pole last) are extended to ``2L-1`` colatitudes on
    ``[0, 2 pi)`` with ``G_m(2 pi - theta) = (-1)^(m+s) G_m(theta)``, transformed
    over colatitude, convolved with the ring weights ``w(p)``, and brought back
    to the extended samples. The extended half is folded onto the original
    colatitudes with the same parity.
    """
    n = 2 * L - 1
    device = modes.device
    parity = _order_parity(orders, spin).to(device)
    full = torch.cat([modes, pole.to(device).unsqueeze(0)], dim=0)
    ext = torch.cat([full, parity * torch.flip(full[: L - 1], dims=(0,))], dim=0)

    k = torch.arange(-(L - 1), L, dtype=torch.float64, device=device)
    # theta_t = 2 pi t / n + pi / n
    shift = torch.exp(torch.complex(torch.zeros_like(k), -k * math.pi / n)).unsqueeze(1)
    coeffs = torch.fft.fftshift(torch.fft.fft(ext, dim=0), dim=0) * shift / n
    weighted = kernel.to(device) @ coeffs
    back = torch.fft.ifft(torch.fft.ifftshift(weighted * torch.conj(shift), dim=0), dim=0, norm="forward")

    folded = torch.cat([back[: L - 1] + parity * torch.flip(back[L:], dims=(0,)), back[L - 1 : L]], dim=0)
    return folded / n


# ---------------------------------------------------------------------------
# Driscoll-Healy and Gauss-Legendre (ring quadrature)
# ---------------------------------------------------------------------------


def _quadrature_forward(op: str, scheme: SamplingScheme, f, L: int, spin: int) -> Tensor:
    _advance(op, Stage.IDLE)
    samples = _samples_tensor(f, scheme, L, False, op)
    tables = _get_tables(op, scheme, L, spin, False)
    rings = _azimuthal_modes(samples) * tables.weights.to(samples.device).unsqueeze(1)
    flm = _pack(_project_blocks(op, tables, rings), L)
    _advance(op, Stage.DONE)
    return flm


def _quadrature_inverse(op: str, scheme: SamplingScheme, flm, L: int, spin: int) -> Tensor:
    _advance(op, Stage.IDLE)
    coeffs = _coefficients_tensor(flm, L, op)
    sample_shape(scheme, L)
    tables = _get_tables(op, scheme, L, spin, False)
    f = _azimuthal_synthesis(_synthesise_blocks(op, tables, _unpack(coeffs, L)))
    _advance(op, Stage.DONE)
    return f


def _quadrature_forward_real(op: str, scheme: SamplingScheme, f, L: int) -> Tensor:
    _advance(op, Stage.IDLE)
    samples = _samples_tensor(f, scheme, L, True, op)
    tables = _get_tables(op, scheme, L, 0, True)
    rings = _azimuthal_modes_real(samples) * tables.weights.to(samples.device).unsqueeze(1)
    flm = _pack_real(_project_blocks(op, tables, rings), L)
    _advance(op, Stage.DONE)
    return flm


def _quadrature_inverse_real(op: str, scheme: SamplingScheme, flm, L: int) -> Tensor:
    _advance(op, Stage.IDLE)
    coeffs = _coefficients_tensor(flm, L, op)
    _, n_phi = sample_shape(scheme, L)
    tables = _get_tables(op, scheme, L, 0, True)
    f = _azimuthal_synthesis_real(_synthesise_blocks(op, tables, _unpack_real(coeffs, L)), n_phi)
    _advance(op, Stage.DONE)
    return f


@log_performance
def dh_forward(f, L: int, spin: int = 0) -> Tensor:
    """Forward transform of a ``(2L, 2L-1)`` Driscoll-Healy sample array."""
    return _quadrature_forward("dh_forward", SamplingScheme.DH, f, L, _check_spin(spin, "dh_forward"))


@log_performance
def dh_inverse(flm, L: int, spin: int = 0) -> Tensor:
    """Inverse transform onto the ``(2L, 2L-1)`` Driscoll-Healy grid."""
    return _quadrature_inverse("dh_inverse", SamplingScheme.DH, flm, L, _check_spin(spin, "dh_inverse"))


@log_performance
def dh_forward_real(f, L: int) -> Tensor:
    return _quadrature_forward_real("dh_forward_real", SamplingScheme.DH, f, L)


@log_performance
def dh_inverse_real(flm, L: int) -> Tensor:
    return _quadrature_inverse_real("dh_inverse_real", SamplingScheme.DH, flm, L)


@log_performance
def gl_forward(f, L: int, spin: int = 0) -> Tensor:
    """Forward transform of an ``(L, 2L-1)`` Gauss-Legendre sample array."""
    return _quadrature_forward("gl_forward", SamplingScheme.GL, f, L, _check_spin(spin, "gl_forward"))


@log_performance
def gl_inverse(flm, L: int, spin: int = 0) -> Tensor:
    return _quadrature_inverse("gl_inverse", SamplingScheme.GL, flm, L, _check_spin(spin, "gl_inverse"))


@log_performance
def gl_forward_real(f, L: int) -> Tensor:
    return _quadrature_forward_real("gl_forward_real", SamplingScheme.GL, f, L)


@log_performance
def gl_inverse_real(flm, L: int) -> Tensor:
    return _quadrature_inverse_real("gl_inverse_real", SamplingScheme.GL, flm, L)


# ---------------------------------------------------------------------------
# McEwen-Wiaux
# ---------------------------------------------------------------------------


@log_performance
def mw_forward(f, L: int, spin: int = 0, *, f_sp: complex = 0.0, phi_sp: float = 0.0) -> Tensor:
    """
    Forward transform of an ``(L-1, 2L-1)`` McEwen-Wiaux sample array.

    ``f_sp`` is the south pole sample taken at azimuth ``phi_sp``.
    """
    op = "mw_forward"
    spin = _check_spin(spin, op)
    _advance(op, Stage.IDLE)
    samples = _samples_tensor(f, SamplingScheme.MW, L, False, op)
    tables = _get_tables(op, SamplingScheme.MW, L, spin, False)
    pole = _mw_pole_modes(tables.orders, spin, complex(f_sp), float(phi_sp))
    rings = _mw_weighted_rings(_azimuthal_modes(samples), pole, tables.orders, spin, L, tables.weights)
    flm = _pack(_project_blocks(op, tables, rings), L)
    _advance(op, Stage.DONE)
    return flm


@log_performance
def mw_inverse(flm, L: int, spin: int = 0, *, phi_sp: float = 0.0) -> tuple[Tensor, Tensor]:
    """
    Inverse transform onto the McEwen-Wiaux grid.

    Returns ``(f, f_sp)``: the ``(L-1, 2L-1)`` samples and the south pole value
    at azimuth ``phi_sp``.
    """
    op = "mw_inverse"
    spin = _check_spin(spin, op)
    _advance(op, Stage.IDLE)
    coeffs = _coefficients_tensor(flm, L, op)
    sample_shape(SamplingScheme.MW, L)
    tables = _get_tables(op, SamplingScheme.MW, L, spin, False)
    rings = _synthesise_blocks(op, tables, _unpack(coeffs, L))
    f = _azimuthal_synthesis(rings[: L - 1])
    orders = tables.orders.to(device=rings.device, dtype=torch.float64)
    phase = torch.exp(torch.complex(torch.zeros_like(orders), orders * float(phi_sp)))
    f_sp = torch.sum(rings[L - 1] * phase)
    _advance(op, Stage.DONE)
    return f, f_sp


@log_performance
def mw_forward_real(f, L: int, *, f_sp: float = 0.0) -> Tensor:
    """Forward transform of a real spin-0 McEwen-Wiaux sample array with real pole value ``f_sp``."""
    op = "mw_forward_real"
    _advance(op, Stage.IDLE)
    samples = _samples_tensor(f, SamplingScheme.MW, L, True, op)
    tables = _get_tables(op, SamplingScheme.MW, L, 0, True)
    pole = _mw_pole_modes(tables.orders, 0, float(f_sp), 0.0)
    rings = _mw_weighted_rings(
        _azimuthal_modes_real(samples), pole, tables.orders, 0, L, tables.weights
    )
    flm = _pack_real(_project_blocks(op, tables, rings), L)
    _advance(op, Stage.DONE)
    return flm


@log_performance
def mw_inverse_real(flm, L: int) -> tuple[Tensor, Tensor]:
    """Real inverse transform; returns the real samples and the real south pole value."""
    op = "mw_inverse_real"
    _advance(op, Stage.IDLE)
    coeffs = _coefficients_tensor(flm, L, op)
    _, n_phi = sample_shape(SamplingScheme.MW, L)
    tables = _get_tables(op, SamplingScheme.MW, L, 0, True)
    rings = _synthesise_blocks(op, tables, _unpack_real(coeffs, L))
    f = _azimuthal_synthesis_real(rings[: L - 1], n_phi)
    # only m = 0 is non-zero at the pole for spin 0
    f_sp = rings[L - 1, 0].real
    _advance(op, Stage.DONE)
    return f, f_sp


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def forward(
    f,
    L: int,
    spin: int = 0,
    *,
    method: SamplingScheme | str = SamplingScheme.MW,
    f_sp: complex = 0.0,
    phi_sp: float = 0.0,
) -> Tensor:
    """Forward transform for any sampling scheme; ``f_sp``/``phi_sp`` only apply to MW."""
    scheme = SamplingScheme.parse(method)
    if scheme is SamplingScheme.DH:
        return dh_forward(f, L, spin)
    if scheme is SamplingScheme.GL:
        return gl_forward(f, L, spin)
    return mw_forward(f, L, spin, f_sp=f_sp, phi_sp=phi_sp)


def inverse(
    flm,
    L: int,
    spin: int = 0,
    *,
    method: SamplingScheme | str = SamplingScheme.MW,
    phi_sp: float = 0.0,
) -> Tensor | tuple[Tensor, Tensor]:
    """Inverse transform for any sampling scheme; MW returns ``(f, f_sp)``."""
    scheme = SamplingScheme.parse(method)
    if scheme is SamplingScheme.DH:
        return dh_inverse(flm, L, spin)
    if scheme is SamplingScheme.GL:
        return gl_inverse(flm, L, spin)
    return mw_inverse(flm, L, spin, phi_sp=phi_sp)


def forward_real(f, L: int, *, method: SamplingScheme | str = SamplingScheme.MW, f_sp: float = 0.0) -> Tensor:
    """Spin-0 forward transform of real samples."""
    scheme = SamplingScheme.parse(method)
    if scheme is SamplingScheme.DH:
        return dh_forward_real(f, L)
    if scheme is SamplingScheme.GL:
        return gl_forward_real(f, L)
    return mw_forward_real(f, L, f_sp=f_sp)


def inverse_real(flm, L: int, *, method: SamplingScheme | str = SamplingScheme.MW) -> Tensor | tuple[Tensor, Tensor]:
    """Spin-0 inverse transform to real samples; MW returns ``(f, f_sp)``."""
    scheme = SamplingScheme.parse(method)
    if scheme is SamplingScheme.DH:
        return dh_inverse_real(flm, L)
    if scheme is SamplingScheme.GL:
        return gl_inverse_real(flm, L)
    return mw_inverse_real(flm, L)


def check_arguments(method: SamplingScheme | str, spin: int, reality: bool) -> tuple[SamplingScheme, int]:
    """Validate a (method, spin, reality) combination; returns the parsed scheme and spin."""
    spin = _check_spin(spin, "transform")
    if reality and spin != 0:
        raise ArgumentInvalidError("transform", "Reality flag may only be set for spin 0 signals")
    return SamplingScheme.parse(method), spin


def transform(
    data,
    L: int,
    *,
    direction: Literal["forward", "inverse"],
    method: SamplingScheme | str = SamplingScheme.MW,
    spin: int = 0,
    reality: bool = False,
    f_sp: complex = 0.0,
    phi_sp: float = 0.0,
):
    """
    Validate the argument combination, then run one transform.

    Argument errors (spin with reality, unknown method or direction) are raised
    before any buffer is allocated. Forward returns the coefficients; inverse
    returns ``(f, f_sp)``, with ``f_sp`` equal to 0 for grids without a pole sample.
    """
    scheme, spin = check_arguments(method, spin, reality)
    if direction not in ("forward", "inverse"):
        raise ArgumentInvalidError("transform", f"Invalid direction {direction!r}")
    logger.info(
        f"{direction} transform: method={scheme.value} L={L} spin={spin} reality={int(bool(reality))}"
    )

    if direction == "forward":
        if reality:
            return forward_real(data, L, method=scheme, f_sp=complex(f_sp).real)
        return forward(data, L, spin, method=scheme, f_sp=f_sp, phi_sp=phi_sp)

    if reality:
        out = inverse_real(data, L, method=scheme)
        zero = torch.zeros((), dtype=torch.float64)
    else:
        out = inverse(data, L, spin, method=scheme, phi_sp=phi_sp)
        zero = torch.zeros((), dtype=torch.complex128)
    if isinstance(out, tuple):
        return out
    return out, zero
