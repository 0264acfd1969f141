"""
Spin-weighted basis functions evaluated by recursion in degree.

The basis is ``Lambda_el^{m,s}(theta) = (-1)^s sqrt((2 el + 1) / 4 pi) d^el_{m,-s}(theta)``
so that ``sY_elm(theta, phi) = Lambda_el^{m,s}(theta) exp(i m phi)``. For spin 0
this is the usual ``Y_elm`` with the Condon-Shortley phase.
"""

from __future__ import annotations

import math

import torch
from torch import Tensor

from .cache import check_allocation

# Renormalisation threshold for the scaled recursion.
_RESCALE = 1e100
_LOG_RESCALE = math.log(_RESCALE)


def _seed_log(orders: Tensor, n: int, theta: Tensor) -> tuple[Tensor, Tensor, Tensor]:
    """
    ``d^j_{m,n}(theta)`` at the minimal degree ``j = max(|m|, |n|)`` as ``sign * exp(log_mag)``.

    At the minimal degree Wigner's sum collapses to the single term ``k = max(0, n - m)``.
    Returns ``(j, sign, log_mag)`` with shapes ``[M]``, ``[M]`` and ``[M, T]``.
    """
    a = orders.to(torch.float64)
    b = float(n)
    j = torch.maximum(orders.abs(), torch.full_like(orders, abs(int(n))))
    k = torch.clamp(int(n) - orders, min=0)
    jf = j.to(torch.float64)
    kf = k.to(torch.float64)

    log_coeff = 0.5 * (
        torch.lgamma(jf + a + 1.0)
        + torch.lgamma(jf - a + 1.0)
        + torch.lgamma(jf + b + 1.0)
        + torch.lgamma(jf - b + 1.0)
    ) - (
        torch.lgamma(jf + b - kf + 1.0)
        + torch.lgamma(kf + 1.0)
        + torch.lgamma(a - b + kf + 1.0)
        + torch.lgamma(jf - a - kf + 1.0)
    )
    parity = torch.remainder(orders - int(n) + k, 2)
    sign = 1.0 - 2.0 * parity.to(torch.float64)

    p_cos = (2 * j + int(n) - orders - 2 * k).to(torch.float64).unsqueeze(1)
    p_sin = (orders - int(n) + 2 * k).to(torch.float64).unsqueeze(1)
    log_cos = torch.log(torch.cos(0.5 * theta)).unsqueeze(0)
    log_sin = torch.log(torch.sin(0.5 * theta)).unsqueeze(0)
    # 0 * log(0) is taken as 0 (exact poles)
    term_cos = torch.where(p_cos == 0, torch.zeros_like(p_cos * log_cos), p_cos * log_cos)
    term_sin = torch.where(p_sin == 0, torch.zeros_like(p_sin * log_sin), p_sin * log_sin)
    return j, sign, log_coeff.unsqueeze(1) + term_cos + term_sin


def wigner_d_table(orders: Tensor | list[int], n: int, L: int, theta: Tensor) -> Tensor:
    """
    Reduced Wigner functions ``d^el_{m,n}(theta)`` for ``el < L`` and every ``m`` in ``orders``.

    Output shape is ``[len(orders), L, len(theta)]``; entries with ``el < max(|m|, |n|)`` are 0.

    The recursion is the three-term relation

        (K_l / l) d^l = (2l - 1) (x - m n / (l (l-1))) d^{l-1} - (K_{l-1} / (l-1)) d^{l-2},
        K_l = sqrt((l^2 - m^2)(l^2 - n^2)),

    run on scaled values ``d = scaled * exp(log_scale)`` per (order, colatitude).
    Seeds that underflow double precision therefore still propagate, and the
    scaled values are renormalised before they can overflow.
    """
    orders_t = torch.as_tensor(orders, dtype=torch.int64).reshape(-1)
    theta_t = torch.as_tensor(theta, dtype=torch.float64).reshape(-1)
    n_ord = int(orders_t.shape[0])
    n_theta = int(theta_t.shape[0])
    L = int(L)
    out = torch.zeros((n_ord, L, n_theta), dtype=torch.float64)
    if n_ord == 0 or L == 0 or n_theta == 0:
        return out

    j, sign, log_seed = _seed_log(orders_t, n, theta_t)
    a = orders_t.to(torch.float64).unsqueeze(1)
    b = float(n)
    x = torch.cos(theta_t).unsqueeze(0)
    j_col = j.unsqueeze(1)

    prev1 = torch.zeros((n_ord, n_theta), dtype=torch.float64)
    prev2 = torch.zeros_like(prev1)
    log_scale = torch.zeros_like(prev1)

    for el in range(L):
        seed_here = j_col == el
        active = j_col < el
        if bool(active.any()):
            lf = float(el)
            k_l = torch.sqrt(torch.clamp((lf * lf - a * a) * (lf * lf - b * b), min=0.0))
            k_lm1 = torch.sqrt(torch.clamp(((lf - 1.0) ** 2 - a * a) * ((lf - 1.0) ** 2 - b * b), min=0.0))
            safe_k = torch.where(k_l > 0, k_l, torch.ones_like(k_l))
            pre = lf / safe_k
            shift = a * b / (lf * (lf - 1.0)) if el > 1 else torch.zeros_like(a)
            back = k_lm1 / (lf - 1.0) if el > 1 else torch.zeros_like(a)
            cur = pre * ((2.0 * lf - 1.0) * (x - shift) * prev1 - back * prev2)
        else:
            cur = torch.zeros_like(prev1)

        seeded = sign.unsqueeze(1).expand_as(prev1)
        new1 = torch.where(active, cur, torch.where(seed_here, seeded, torch.zeros_like(prev1)))
        new2 = torch.where(active, prev1, torch.zeros_like(prev1))
        log_scale = torch.where(seed_here, log_seed, log_scale)

        big = new1.abs() > _RESCALE
        if bool(big.any()):
            new1 = torch.where(big, new1 / _RESCALE, new1)
            new2 = torch.where(big, new2 / _RESCALE, new2)
            log_scale = torch.where(big, log_scale + _LOG_RESCALE, log_scale)

        prev1, prev2 = new1, new2
        out[:, el, :] = torch.sign(prev1) * torch.exp(torch.log(prev1.abs()) + log_scale)

    return out


def wigner_d_sequence(m: int, n: int, L: int, theta: Tensor) -> Tensor:
    """``d^el_{m,n}(theta)`` for ``el = 0 .. L-1``, shape ``[L, len(theta)]``."""
    return wigner_d_table([int(m)], n, L, theta)[0]


def basis_nbytes(n_orders: int, L: int, n_theta: int) -> int:
    return int(n_orders) * int(L) * int(n_theta) * 8


def spin_basis(L: int, spin: int, theta: Tensor, orders: Tensor | None = None) -> Tensor:
    """
    Normalised spin-weighted basis ``Lambda_el^{m,s}(theta_t)``.

    By default every order ``m = -(L-1) .. L-1`` is evaluated and the result is
    indexed ``[m + L - 1, el, t]``.
    """
    L = int(L)
    if orders is None:
        orders = torch.arange(-(L - 1), L, dtype=torch.int64)
    orders = torch.as_tensor(orders, dtype=torch.int64).reshape(-1)
    theta_t = torch.as_tensor(theta, dtype=torch.float64).reshape(-1)
    check_allocation(basis_nbytes(orders.shape[0], L, theta_t.shape[0]), "spin_basis")

    d = wigner_d_table(orders, -int(spin), L, theta_t)
    el = torch.arange(L, dtype=torch.float64)
    norm = torch.sqrt((2.0 * el + 1.0) / (4.0 * math.pi))
    spin_sign = -1.0 if (int(spin) & 1) else 1.0
    return (spin_sign * norm).view(1, L, 1) * d


def spin_basis_nonneg(L: int, theta: Tensor) -> Tensor:
    """Spin-0 basis restricted to ``m = 0 .. L-1``, indexed ``[m, el, t]``."""
    return spin_basis(L, 0, theta, orders=torch.arange(int(L), dtype=torch.int64))
