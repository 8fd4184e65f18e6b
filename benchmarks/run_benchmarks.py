"""Benchmark torchnac.simulate_copula for each family and tree shape.

Generates timing plots and raw results saved to benchmarks/ folder.
"""
import time
import json
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

import torchnac as tn


# ── Copulas under test ───────────────────────────────────────────────────────

LEAF_PARAMS = {
    "clayton": 2.0,
    "amh":     0.7,
    "frank":   5.0,
    "gumbel":  2.0,
}

NESTED_PARAMS = {
    "clayton": ((2.0, 3.0), 1.1),
    "amh":     ((0.6, 0.8), 0.3),
    "frank":   ((4.0, 6.0), 2.0),
    "gumbel":  ((3.0, 4.0), 1.5),
}

SAMPLE_SIZES = [100, 1_000, 10_000, 100_000]
N_REPEATS = 5


def _time_simulate(cop, n, controls=None):
    tn.simulate_copula(n, cop, seeds=[0], controls=controls)  # warmup
    t0 = time.perf_counter()
    for r in range(N_REPEATS):
        tn.simulate_copula(n, cop, seeds=[r + 1], controls=controls)
    return (time.perf_counter() - t0) / N_REPEATS * 1000


def bench_leaf():
    """Plain Archimedean copulas (d=5) for all families."""
    results = {}
    for fam, th in LEAF_PARAMS.items():
        cop = tn.LeafCopula(fam, 5, th)
        results[fam] = [_time_simulate(cop, n) for n in SAMPLE_SIZES]
    return results


def bench_nested():
    """Single-level nested copulas (two children of size 2 plus one parent marginal)."""
    results = {}
    for fam, (phis, th) in NESTED_PARAMS.items():
        cop = tn.NestedCopula([tn.LeafCopula(fam, 2, p) for p in phis], th, m=1)
        results[fam] = [_time_simulate(cop, n) for n in SAMPLE_SIZES]
    return results


def bench_gumbel_deep():
    """Doubly nested Gumbel and hierarchical chains of growing length."""
    left = tn.NestedCopula([tn.LeafCopula("gumbel", 2, 3.0), tn.LeafCopula("gumbel", 2, 4.0)], 2.0, m=1)
    right = tn.NestedCopula([tn.LeafCopula("gumbel", 3, 2.5)], 2.0, m=1)
    shapes = {
        "double-nested (d=9)": tn.DoubleNestedCopula([left, right], 1.5),
        "chain (d=4)": tn.HierarchicalChain([5.0, 4.0, 3.0]),
        "chain (d=16)": tn.HierarchicalChain([16.0 - 0.9 * i for i in range(15)]),
    }
    return {name: [_time_simulate(cop, n) for n in SAMPLE_SIZES] for name, cop in shapes.items()}


def bench_threads():
    """Nested Frank copula at the largest size with 1, 2 and 4 sampling threads."""
    phis, th = NESTED_PARAMS["frank"]
    cop = tn.NestedCopula([tn.LeafCopula("frank", 2, p) for p in phis], th, m=1)
    threads = [1, 2, 4]
    n = SAMPLE_SIZES[-1]
    times = [
        _time_simulate(cop, n, tn.SimulationControls(chunk_size=n // 8, num_threads=k))
        for k in threads
    ]
    return {"threads": threads, "times": times}


# ── Plotting ──────────────────────────────────────────────────────────────────

def plot_scaling(results, title, filename):
    """Plot line chart of simulation time against sample size, one line per entry."""
    fig, ax = plt.subplots(figsize=(7, 4.5))
    for name, times in results.items():
        ax.plot(SAMPLE_SIZES, times, "o-", label=name, linewidth=2, markersize=6)
    ax.set_xscale("log")
    ax.set_yscale("log")
    ax.set_xlabel("Sample Size", fontsize=11)
    ax.set_ylabel("Time (ms)", fontsize=11)
    ax.set_title(title, fontsize=13, fontweight="bold")
    ax.legend(fontsize=9)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    fig.savefig(filename, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"  Saved: {filename}")


def plot_threads(res, filename):
    fig, ax = plt.subplots(figsize=(6, 4))
    x = np.arange(len(res["threads"]))
    ax.bar(x, res["times"], 0.5, color="#FF9800", alpha=0.85)
    ax.set_xticks(x)
    ax.set_xticklabels([str(k) for k in res["threads"]])
    ax.set_xlabel("Threads", fontsize=11)
    ax.set_ylabel("Time (ms)", fontsize=11)
    ax.set_title(f"Nested Frank, n={SAMPLE_SIZES[-1]:,}", fontsize=13, fontweight="bold")
    ax.grid(True, axis="y", alpha=0.3)
    fig.tight_layout()
    fig.savefig(filename, dpi=150, bbox_inches="tight")
    plt.close(fig)
    print(f"  Saved: {filename}")


def main():
    import os
    os.makedirs("benchmarks", exist_ok=True)
    print(f"Device: {tn.get_device()}")

    all_results = {}

    print("Running leaf copula benchmark...")
    all_results["leaf"] = bench_leaf()
    plot_scaling(all_results["leaf"], "Archimedean copulas (d=5)", "benchmarks/leaf_simulate_benchmark.png")

    print("Running nested copula benchmark...")
    all_results["nested"] = bench_nested()
    plot_scaling(all_results["nested"], "Nested copulas (d=5)", "benchmarks/nested_simulate_benchmark.png")

    print("Running deep Gumbel benchmark...")
    all_results["gumbel_deep"] = bench_gumbel_deep()
    plot_scaling(all_results["gumbel_deep"], "Deep Gumbel trees", "benchmarks/gumbel_deep_benchmark.png")

    print("Running thread scaling benchmark...")
    all_results["threads"] = bench_threads()
    plot_threads(all_results["threads"], "benchmarks/thread_scaling_benchmark.png")

    all_results["sizes"] = SAMPLE_SIZES
    with open("benchmarks/results.json", "w") as f:
        json.dump(all_results, f, indent=2)
    print("  Saved: benchmarks/results.json")

    print("\nDone! All benchmark results saved to benchmarks/")


if __name__ == "__main__":
    main()
