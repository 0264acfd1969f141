#!/usr/bin/env python3
"""Benchmark forward and inverse spin transforms across sampling schemes."""

from __future__ import annotations

import argparse
import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path

import numpy as np
import torch

import torchsht


@dataclass
class Row:
    op: str
    method: str
    L: int
    spin: int
    cached: bool
    time_s: float
    mcoeff_s: float


def _time_many(fn, runs: int) -> float:
    fn()
    vals: list[float] = []
    for _ in range(runs):
        t0 = time.perf_counter()
        fn()
        vals.append(time.perf_counter() - t0)
    return float(np.median(vals))


def _random_flm(L: int, spin: int, seed: int) -> torch.Tensor:
    rng = np.random.default_rng(seed)
    flm = rng.normal(size=L * L) + 1j * rng.normal(size=L * L)
    flm[: spin * spin] = 0.0
    return torch.from_numpy(flm)


def main() -> int:
    p = argparse.ArgumentParser(description=__doc__)
    p.add_argument("--L", type=int, nargs="+", default=[32, 64, 128])
    p.add_argument("--spin", type=int, default=2)
    p.add_argument("--methods", nargs="+", default=["DH", "MW", "GL"])
    p.add_argument("--runs", type=int, default=3)
    p.add_argument("--seed", type=int, default=42)
    p.add_argument("--cache", action="store_true", help="Keep sampling and weight tables between calls")
    p.add_argument("--json-out", type=Path, default=Path("bench_results/transforms.json"))
    args = p.parse_args()

    torchsht.configure_cache(enabled=args.cache)
    torchsht.set_log_level("WARNING")

    rows: list[Row] = []
    print("op        method     L  spin   mcoeff/s   time(s)", flush=True)
    for L in args.L:
        flm = _random_flm(L, args.spin, args.seed)
        for method in args.methods:
            f, f_sp = torchsht.transform(flm, L, direction="inverse", method=method, spin=args.spin)

            t = _time_many(
                lambda: torchsht.transform(flm, L, direction="inverse", method=method, spin=args.spin),
                runs=args.runs,
            )
            rows.append(Row("inverse", method, L, args.spin, args.cache, t, L * L / t / 1e6))

            t = _time_many(
                lambda: torchsht.transform(
                    f, L, direction="forward", method=method, spin=args.spin, f_sp=f_sp
                ),
                runs=args.runs,
            )
            rows.append(Row("forward", method, L, args.spin, args.cache, t, L * L / t / 1e6))

            for row in rows[-2:]:
                print(
                    f"{row.op:<9} {row.method:<6} {row.L:>5} {row.spin:>5} {row.mcoeff_s:>10.3f} {row.time_s:>9.4f}",
                    flush=True,
                )

    args.json_out.parent.mkdir(parents=True, exist_ok=True)
    args.json_out.write_text(json.dumps([asdict(r) for r in rows], indent=2))
    print(f"Wrote {args.json_out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
