"""
scripts/bench_conv_partial_sum.py

Benchmark script (NOT a unit test) comparing the two ways dagnet reduces
convolution filter gradients:

1) untiled: one product over every output position
2) tiled: per-tile partial sums (``partial_sum`` positions per tile), then a
   sum over tiles

It also times a full graph step (forward + backward) for a small
conv -> pool -> rnorm -> cost stack with and without tiling.

Usage examples
--------------
# Default shapes
python scripts/bench_conv_partial_sum.py

# One custom shape
python scripts/bench_conv_partial_sum.py --N 32 --C 3 --img 32 --filter 5 --F 16 --partial-sum 64

Notes
-----
- Timings include Python call overhead; they measure the API level.
- Both variants produce the same gradient; the script checks this before
  timing.
"""

from __future__ import annotations

import argparse
import statistics
import time
from typing import Callable

import numpy as np

from dagnet import PassType, graph_from_config
from dagnet.infrastructure.ops.conv_cpu import conv_backward_weights, conv_output_size


def _time_one(fn: Callable[[], None], *, warmup: int, repeats: int) -> list[float]:
    for _ in range(warmup):
        fn()

    times: list[float] = []
    for _ in range(repeats):
        t0 = time.perf_counter()
        fn()
        times.append(time.perf_counter() - t0)
    return times


def _fmt_seconds(x: float) -> str:
    if x < 1e-3:
        return f"{x*1e6:.2f} µs"
    if x < 1:
        return f"{x*1e3:.2f} ms"
    return f"{x:.3f} s"


def _print_row(name: str, untiled_s: float, tiled_s: float) -> None:
    ratio = (untiled_s / tiled_s) if tiled_s > 0 else float("inf")
    print(
        f"{name:<18}  "
        f"untiled(median)={_fmt_seconds(untiled_s):>10}  "
        f"tiled(median)={_fmt_seconds(tiled_s):>10}  "
        f"ratio={ratio:>6.2f}x"
    )


def _stack(*, C: int, img: int, filter_size: int, F: int, partial_sum: int):
    return graph_from_config(
        [
            {"name": "img", "type": "data", "outputs": C * img * img},
            {
                "name": "conv",
                "type": "conv",
                "inputs": ["img"],
                "channels": C,
                "filter_size": filter_size,
                "num_filters": F,
                "padding": filter_size // 2,
                "partial_sum": partial_sum,
                "activation": "relu",
            },
            {"name": "pool", "type": "pool", "inputs": ["conv"], "pool": "max", "channels": F, "size_x": 2},
            {"name": "norm", "type": "rnorm", "inputs": ["pool"], "channels": F, "size": 5},
            {"name": "cost", "type": "cost.sum2", "inputs": ["norm"]},
        ]
    )


def bench_one(
    *,
    N: int,
    C: int,
    img: int,
    filter_size: int,
    F: int,
    partial_sum: int,
    warmup: int,
    repeats: int,
) -> None:
    rng = np.random.default_rng(0)
    padding = filter_size // 2
    modules_x = conv_output_size(img, filter_size, padding, 1)
    geom = dict(
        channels=C,
        img_size=img,
        filter_size=filter_size,
        padding=padding,
        stride=1,
        modules_x=modules_x,
    )
    x = rng.standard_normal((N, C * img * img))
    g = rng.standard_normal((N, F * modules_x * modules_x))

    full, _ = conv_backward_weights(x, g, num_filters=F, **geom)
    tiled, _ = conv_backward_weights(x, g, num_filters=F, partial_sum=partial_sum, **geom)
    np.testing.assert_allclose(tiled, full, rtol=1e-9, atol=1e-9)

    t_untiled = _time_one(
        lambda: conv_backward_weights(x, g, num_filters=F, **geom),
        warmup=warmup,
        repeats=repeats,
    )
    t_tiled = _time_one(
        lambda: conv_backward_weights(x, g, num_filters=F, partial_sum=partial_sum, **geom),
        warmup=warmup,
        repeats=repeats,
    )

    graphs = {
        ps: _stack(C=C, img=img, filter_size=filter_size, F=F, partial_sum=ps)
        for ps in (0, partial_sum)
    }

    def step(ps: int) -> Callable[[], None]:
        def run() -> None:
            graph = graphs[ps]
            graph.run_forward([x], PassType.TRAIN)
            graph.run_backward(PassType.TRAIN)

        return run

    s_untiled = _time_one(step(0), warmup=warmup, repeats=repeats)
    s_tiled = _time_one(step(partial_sum), warmup=warmup, repeats=repeats)

    print("\n" + "=" * 90)
    print(
        f"Shape: N={N} C={C} img={img} filter={filter_size} F={F} "
        f"positions={modules_x * modules_x} partial_sum={partial_sum}  "
        f"(warmup={warmup}, repeats={repeats})"
    )
    print("-" * 90)
    _print_row("filter_gradient", statistics.median(t_untiled), statistics.median(t_tiled))
    _print_row("graph_step", statistics.median(s_untiled), statistics.median(s_tiled))


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--N", type=int, default=None)
    ap.add_argument("--C", type=int, default=3)
    ap.add_argument("--img", type=int, default=16)
    ap.add_argument("--filter", type=int, default=5)
    ap.add_argument("--F", type=int, default=16)
    ap.add_argument("--partial-sum", type=int, default=16)
    ap.add_argument("--warmup", type=int, default=2)
    ap.add_argument("--repeats", type=int, default=10)
    args = ap.parse_args()

    if args.N is not None:
        shapes = [(args.N, args.C, args.img, args.filter, args.F, args.partial_sum)]
    else:
        shapes = [
            (16, 3, 16, 5, 16, 16),
            (32, 3, 24, 5, 32, 48),
            (8, 16, 12, 3, 32, 12),
        ]

    for N, C, img, filter_size, F, partial_sum in shapes:
        bench_one(
            N=N,
            C=C,
            img=img,
            filter_size=filter_size,
            F=F,
            partial_sum=partial_sum,
            warmup=args.warmup,
            repeats=args.repeats,
        )


if __name__ == "__main__":
    main()
