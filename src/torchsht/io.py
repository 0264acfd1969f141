"""
Text files for samples and harmonic coefficients.

Every record is written with the Fortran edit descriptor ``(2d25.15)``: up to
two values per line, each right-justified in a 25-character field with 15
mantissa digits and a ``D`` exponent, e.g. ``    0.100000000000000D+01``.
Readers accept ``D`` and ``E`` exponents.

Sample files start with two header lines, ``phi_sp`` then ``f_sp`` (one real
value for real signals, ``re im`` otherwise), followed by ``ntheta * (2L-1)``
records in row-major ``(t, p)`` order. Coefficient files hold ``L**2``
``re im`` records ordered by ``elm2ind``. Output files must not exist yet.
"""

from __future__ import annotations

import io
import math
import os
from typing import Union

import numpy as np
import torch
from torch import Tensor

from .errors import PreconditionError
from .logging import log_errors, logger
from .sampling import SamplingScheme, coefficient_count, sample_shape

PathLike = Union[str, os.PathLike]

_FIELD_WIDTH = 25
_DIGITS = 15


def format_d(value: float) -> str:
    """Format one real value as a Fortran ``d25.15`` field."""
    value = float(value)
    if not math.isfinite(value):
        return str(value).rjust(_FIELD_WIDTH)
    if value == 0.0:
        return f"0.{'0' * _DIGITS}D+00".rjust(_FIELD_WIDTH)
    # d.dddE+xx -> 0.ddddD+(xx+1)
    mantissa, exponent = f"{abs(value):.{_DIGITS - 1}E}".split("E")
    digits = mantissa.replace(".", "")
    sign = "-" if value < 0 else ""
    return f"{sign}0.{digits}D{int(exponent) + 1:+03d}".rjust(_FIELD_WIDTH)


def format_record(*values: float) -> str:
    return "".join(format_d(v) for v in values)


def _parse_records(lines: list[str], columns: int, where: str) -> np.ndarray:
    text = "\n".join(line.replace("D", "E").replace("d", "e") for line in lines)
    if not text.strip():
        return np.zeros((0, columns), dtype=np.float64)
    try:
        table = np.loadtxt(io.StringIO(text), dtype=np.float64, ndmin=2)
    except ValueError as exc:
        raise PreconditionError(where, f"malformed record: {exc}") from exc
    if table.shape[1] != columns:
        raise PreconditionError(where, f"expected {columns} value(s) per record, found {table.shape[1]}")
    return table


def _read_lines(path: PathLike) -> list[str]:
    with open(path, "r") as fh:
        return [line for line in fh.read().splitlines() if line.strip()]


def _write_lines(path: PathLike, lines: list[str]):
    # "x" refuses to overwrite an existing file
    with open(path, "x") as fh:
        fh.write("\n".join(lines))
        fh.write("\n")


@log_errors
def read_samples(
    path: PathLike, method: SamplingScheme | str, L: int, *, reality: bool = False
) -> tuple[Tensor, complex | float, float]:
    """
    Read a sample file for the given grid.

    Returns ``(f, f_sp, phi_sp)``. ``f`` is float64 when ``reality`` is set and
    complex128 otherwise; ``f_sp`` is a float or complex to match.
    """
    shape = sample_shape(method, L)
    lines = _read_lines(path)
    columns = 1 if reality else 2
    n_expected = shape[0] * shape[1]
    if len(lines) != n_expected + 2:
        raise PreconditionError(
            "read_samples", f"{path}: expected {n_expected + 2} records for {shape} samples, found {len(lines)}"
        )

    phi_sp = float(_parse_records(lines[:1], 1, "read_samples")[0, 0])
    pole = _parse_records(lines[1:2], columns, "read_samples")[0]
    body = _parse_records(lines[2:], columns, "read_samples")

    if reality:
        f = torch.from_numpy(body[:, 0].reshape(shape).copy())
        f_sp: complex | float = float(pole[0])
    else:
        f = torch.from_numpy((body[:, 0] + 1j * body[:, 1]).reshape(shape))
        f_sp = complex(pole[0], pole[1])
    logger.debug(f"Read {shape} samples from {path}")
    return f, f_sp, phi_sp


@log_errors
def write_samples(path: PathLike, f, *, f_sp: complex | float = 0.0, phi_sp: float = 0.0):
    """Write a 2-D sample array; real arrays get one value per record."""
    samples = torch.as_tensor(f).detach().cpu()
    if samples.ndim != 2:
        raise PreconditionError("write_samples", f"sample array must be 2-D, got shape {tuple(samples.shape)}")

    lines = [format_record(float(phi_sp))]
    values = samples.reshape(-1).numpy()
    if samples.is_complex():
        f_sp = complex(f_sp)
        lines.append(format_record(f_sp.real, f_sp.imag))
        lines.extend(format_record(v.real, v.imag) for v in values)
    else:
        lines.append(format_record(complex(f_sp).real))
        lines.extend(format_record(v) for v in values)
    _write_lines(path, lines)
    logger.debug(f"Wrote {tuple(samples.shape)} samples to {path}")


@log_errors
def read_coefficients(path: PathLike, L: int) -> Tensor:
    """Read ``L**2`` harmonic coefficients."""
    n = coefficient_count(L)
    lines = _read_lines(path)
    if len(lines) != n:
        raise PreconditionError("read_coefficients", f"{path}: expected {n} records for L={L}, found {len(lines)}")
    body = _parse_records(lines, 2, "read_coefficients")
    return torch.from_numpy(body[:, 0] + 1j * body[:, 1])


@log_errors
def write_coefficients(path: PathLike, flm):
    coeffs = torch.as_tensor(flm).detach().cpu().to(torch.complex128).reshape(-1)
    root = math.isqrt(int(coeffs.shape[0]))
    if root * root != int(coeffs.shape[0]):
        raise PreconditionError("write_coefficients", f"{coeffs.shape[0]} coefficients is not a square count")
    _write_lines(path, [format_record(v.real, v.imag) for v in coeffs.numpy()])
    logger.debug(f"Wrote {coeffs.shape[0]} coefficients to {path}")
