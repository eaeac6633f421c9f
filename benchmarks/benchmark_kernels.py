# Copyright (c) 2025, Lanegrid Authors
"""Wall-clock comparison of the grid interpreter against the PyTorch references.

The interpreter runs every lane as a Python generator, so it is orders of
magnitude slower than the references. The numbers show how launch cost
scales with block size and schedule.

    python benchmarks/benchmark_kernels.py --kernel matmul_int8 --schedule threaded
"""

import argparse
import time

import torch

from lanegrid.grid import LaunchConfig, SCHEDULES
from lanegrid.kernels.layer_norm import layer_norm_
from lanegrid.kernels.layer_norm.ref import layer_norm_pytorch
from lanegrid.kernels.matmul_int8 import QuantizedMatrix, matmul_int8
from lanegrid.kernels.matmul_int8.ref import matmul_int8_pytorch
from lanegrid.kernels.utils.pack import pack2x16float


def time_ms(func, *args, repeats=3):
    func(*args)
    start = time.perf_counter()
    for _ in range(repeats):
        func(*args)
    return (time.perf_counter() - start) * 1e3 / repeats


def layer_norm_configs():
    for B, T, C in [(1, 1, 256), (1, 4, 512), (2, 4, 1024)]:
        x = torch.randn(B, T, C)
        w = pack2x16float(torch.randn(C))
        b = pack2x16float(torch.randn(C))
        yield f"B={B}, T={T}, C={C}", (x, w, b)


def matmul_int8_configs():
    for B, T, C, R in [(1, 1, 64, 16), (1, 2, 256, 32), (2, 2, 512, 64)]:
        q = QuantizedMatrix.from_codes(
            torch.randint(0, 256, (R, C), dtype=torch.int64).to(torch.uint8),
            col_mean=torch.randn(C) * 0.1,
            col_range=torch.rand(C),
            row_mean=torch.randn(R) * 0.1,
            row_range=torch.rand(R),
        )
        yield f"B={B}, T={T}, C={C}, R={R}", (torch.randn(B, T, C), q)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--kernel", type=str, default="layer_norm", choices=["layer_norm", "matmul_int8"])
    parser.add_argument("--block-size", type=int, default=128)
    parser.add_argument("--schedule", type=str, default="sequential", choices=list(SCHEDULES))
    parser.add_argument("--repeats", type=int, default=3)
    args = parser.parse_args()

    config = LaunchConfig(block_size=args.block_size, schedule=args.schedule)
    if args.kernel == "layer_norm":
        ops = {
            "PyTorch": lambda x, w, b: layer_norm_pytorch(x, w, b),
            "Grid": lambda x, w, b: layer_norm_(x.clone(), w, b, config=config),
        }
        configs = layer_norm_configs()
    else:
        ops = {
            "PyTorch": lambda x, q: matmul_int8_pytorch(x, q),
            "Grid": lambda x, q: matmul_int8(x, q, config=config),
        }
        configs = matmul_int8_configs()

    print(f"\n{'=' * 20} {args.kernel} (P={args.block_size}, {args.schedule}) {'=' * 20}")
    print(f"{'Config':<28} | {'Provider':<10} | {'Time (ms)':<12}")
    print("-" * 56)
    for name, inputs in configs:
        for provider, func in ops.items():
            ms = time_ms(func, *inputs, repeats=args.repeats)
            print(f"{name:<28} | {provider:<10} | {ms:<12.3f}")


if __name__ == "__main__":
    main()
