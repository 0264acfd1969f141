"""
torchsht: spin spherical harmonic transforms for PyTorch

Forward and inverse transforms of spin-weighted signals sampled on
Driscoll-Healy, McEwen-Wiaux or Gauss-Legendre grids, with real-signal fast
paths, fixed-width text I/O and command-line programs.
"""

from .cache import clear_cache, configure_cache, get_cache_stats
from .core import (
    check_arguments,
    dh_forward,
    dh_forward_real,
    dh_inverse,
    dh_inverse_real,
    forward,
    forward_real,
    gl_forward,
    gl_forward_real,
    gl_inverse,
    gl_inverse_real,
    inverse,
    inverse_real,
    mw_forward,
    mw_forward_real,
    mw_inverse,
    mw_inverse_real,
    transform,
)
from .errors import AllocationError, ArgumentInvalidError, ErrorKind, PreconditionError, SHTError
from .io import read_coefficients, read_samples, write_coefficients, write_samples
from .logging import set_log_level, set_verbosity
from .sampling import (
    SamplingScheme,
    coefficient_count,
    dh_t2theta,
    elm2ind,
    ind2elm,
    mw_p2phi,
    mw_t2theta,
    nphi,
    ntheta,
    phi_samples,
    sample_shape,
    theta_samples,
)
from .weights import dh_weight, gauss_legendre, mw_ring_weight, quadrature_weights
from .wigner import spin_basis, wigner_d_sequence

__version__ = "0.1.0"
__all__ = [
    # Transforms
    "forward", "inverse", "forward_real", "inverse_real", "transform", "check_arguments",
    "dh_forward", "dh_inverse", "dh_forward_real", "dh_inverse_real",
    "mw_forward", "mw_inverse", "mw_forward_real", "mw_inverse_real",
    "gl_forward", "gl_inverse", "gl_forward_real", "gl_inverse_real",
    # Sampling and indexing
    "SamplingScheme", "elm2ind", "ind2elm", "coefficient_count",
    "mw_t2theta", "mw_p2phi", "dh_t2theta",
    "ntheta", "nphi", "sample_shape", "theta_samples", "phi_samples",
    # Quadrature and basis
    "gauss_legendre", "dh_weight", "mw_ring_weight", "quadrature_weights",
    "spin_basis", "wigner_d_sequence",
    # File I/O
    "read_samples", "write_samples", "read_coefficients", "write_coefficients",
    # Errors
    "SHTError", "ErrorKind", "ArgumentInvalidError", "AllocationError", "PreconditionError",
    # Utility functions
    "configure_cache", "get_cache_stats", "clear_cache", "set_log_level", "set_verbosity",
]
