"""
Command-line programs ``torchsht-forward`` and ``torchsht-inverse``.

Both take single-dash flags::

    torchsht-forward -inp samples.txt -out flm.txt -method MW -L 64 -spin 2
    torchsht-inverse -inp flm.txt -out samples.txt -method DH -L 64 -reality 1

Unknown flags are reported and ignored. Engine and file errors are logged and
terminate with exit status 1.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from .core import check_arguments, transform
from .errors import SHTError
from .io import read_coefficients, read_samples, write_coefficients, write_samples
from .logging import logger, set_verbosity


def _build_parser(prog: str, description: str, inp: str, out: str) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog=prog, description=description, add_help=False, allow_abbrev=False)
    p.add_argument("-help", action="help", help="Display usage information.")
    p.add_argument("-inp", dest="filename_in", required=True, help=f"Input {inp} file.")
    p.add_argument("-out", dest="filename_out", required=True, help=f"Output {out} file (must not exist).")
    p.add_argument("-method", default="MW", help="Sampling method (DH, MW or GL).")
    p.add_argument("-L", dest="L", type=int, required=True, help="Harmonic band-limit.")
    p.add_argument("-spin", type=int, default=0, help="Spin number.")
    p.add_argument("-reality", type=int, choices=(0, 1), default=0, help="Reality flag (0=false; 1=true).")
    p.add_argument("-verbosity", type=int, default=0, help="Verbosity level from 0 to 5; larger values act as 5.")
    return p


def _parse(parser: argparse.ArgumentParser, argv: Optional[Sequence[str]]) -> argparse.Namespace:
    args, unknown = parser.parse_known_args(argv)
    set_verbosity(args.verbosity)
    for opt in unknown:
        if opt.startswith("-"):
            logger.warning(f"unknown option {opt} ignored")
    return args


def _check_output(path: str):
    if Path(path).exists():
        raise FileExistsError(f"output file {path} already exists")


def forward_main(argv: Optional[Sequence[str]] = None) -> int:
    """Read samples, compute harmonic coefficients and write them."""
    parser = _build_parser(
        "torchsht-forward",
        "Compute the forward spin spherical harmonic transform of a sampled signal.",
        "sample",
        "coefficient",
    )
    args = _parse(parser, argv)
    try:
        check_arguments(args.method, args.spin, bool(args.reality))
        _check_output(args.filename_out)
        f, f_sp, phi_sp = read_samples(args.filename_in, args.method, args.L, reality=bool(args.reality))
        flm = transform(
            f,
            args.L,
            direction="forward",
            method=args.method,
            spin=args.spin,
            reality=bool(args.reality),
            f_sp=f_sp,
            phi_sp=phi_sp,
        )
        write_coefficients(args.filename_out, flm)
    except (SHTError, OSError) as e:
        logger.error(f"torchsht-forward: {e}")
        return 1
    logger.info(f"Forward transform written to {args.filename_out}")
    return 0


def inverse_main(argv: Optional[Sequence[str]] = None) -> int:
    """Read harmonic coefficients, synthesise the signal and write its samples."""
    parser = _build_parser(
        "torchsht-inverse",
        "Compute the inverse spin spherical harmonic transform of harmonic coefficients.",
        "coefficient",
        "sample",
    )
    args = _parse(parser, argv)
    try:
        check_arguments(args.method, args.spin, bool(args.reality))
        _check_output(args.filename_out)
        flm = read_coefficients(args.filename_in, args.L)
        f, f_sp = transform(
            flm,
            args.L,
            direction="inverse",
            method=args.method,
            spin=args.spin,
            reality=bool(args.reality),
        )
        write_samples(args.filename_out, f, f_sp=f_sp.item(), phi_sp=0.0)
    except (SHTError, OSError) as e:
        logger.error(f"torchsht-inverse: {e}")
        return 1
    logger.info(f"Inverse transform written to {args.filename_out}")
    return 0


def forward_entry():
    sys.exit(forward_main())


def inverse_entry():
    sys.exit(inverse_main())
