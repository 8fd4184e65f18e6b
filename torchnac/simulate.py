"""Simulation entry points: fill a caller-owned (t, n) buffer or return a fresh one."""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Sequence

import numpy as np
import torch

from . import laws
from .controls import SimulationControls
from .sampler import sample_rows
from .stats import open_unit
from .validation import check_output_shape

logger = logging.getLogger(__name__)


def _root_seed_sequence(seeds: Sequence[int], generator: torch.Generator | None) -> np.random.SeedSequence:
    # seeds take precedence; a generator contributes one draw; otherwise OS entropy.
    if seeds:
        return np.random.SeedSequence([int(s) for s in seeds])
    if generator is not None:
        base = torch.randint(0, 2**62, (1,), generator=generator, device=generator.device)
        return np.random.SeedSequence(int(base.item()))
    return np.random.SeedSequence()


def _chunk_generators(root: np.random.SeedSequence, n_chunks: int, device) -> list[torch.Generator]:
    gens = []
    for child in root.spawn(n_chunks):
        g = torch.Generator(device=device)
        g.manual_seed(int(child.generate_state(1, np.uint64)[0]))
        gens.append(g)
    return gens


def simulate_copula_(
    out,
    copula,
    *,
    seeds: Sequence[int] = (),
    generator: torch.Generator | None = None,
    controls: SimulationControls | None = None,
):
    """Fill ``out`` (torch tensor or NumPy array of shape (t, copula.n)) with copula samples.

    Rows are split into blocks of ``controls.chunk_size``; each block has its own
    generator spawned from the call's seed, so a fixed seed gives bit-identical
    output whatever ``controls.num_threads`` is. Raises ShapeMismatch before any
    random draw if the buffer does not have ``copula.n`` columns.
    """
    if controls is None:
        controls = SimulationControls()
    target = torch.from_numpy(out) if isinstance(out, np.ndarray) else out
    if not torch.is_tensor(target):
        raise TypeError(f"out must be a torch.Tensor or numpy.ndarray, got {type(out).__name__}")
    tree = copula.tree
    check_output_shape(tuple(target.shape), tree.d)
    if not target.dtype.is_floating_point:
        raise TypeError(f"out must have a floating point dtype, got {target.dtype}")

    t = int(target.shape[0])
    if t == 0:
        return out
    chunk = int(controls.chunk_size)
    bounds = [(s, min(s + chunk, t)) for s in range(0, t, chunk)]
    gens = _chunk_generators(_root_seed_sequence(seeds, generator), len(bounds), target.device)
    logger.debug(
        "simulating %d rows of a %s copula (n=%d, depth=%d) in %d chunks on %d threads",
        t, tree.family.value, tree.d, tree.depth, len(bounds), controls.num_threads,
    )

    def _fill(args):
        (start, stop), g = args
        rows = sample_rows(tree, stop - start, generator=g, device=target.device, controls=controls)
        target[start:stop].copy_(open_unit(rows.to(target.dtype)))

    num_workers = min(int(controls.num_threads), len(bounds))
    if num_workers > 1:
        with concurrent.futures.ThreadPoolExecutor(max_workers=num_workers) as executor:
            list(executor.map(_fill, zip(bounds, gens)))
    else:
        for args in zip(bounds, gens):
            _fill(args)
    return out


def simulate_copula(
    t: int,
    copula,
    *,
    seeds: Sequence[int] = (),
    generator: torch.Generator | None = None,
    controls: SimulationControls | None = None,
    device=None,
    dtype: torch.dtype = torch.float64,
) -> torch.Tensor:
    """Return a fresh (t, copula.n) tensor of samples."""
    t = int(t)
    if t < 0:
        raise ValueError(f"t must be >= 0, got {t}")
    out = torch.empty((t, copula.n), dtype=dtype, device=device)
    return simulate_copula_(out, copula, seeds=seeds, generator=generator, controls=controls)


def simulate_uniform(
    n: int,
    d: int,
    *,
    seeds: Sequence[int] = (),
    generator: torch.Generator | None = None,
    device=None,
    dtype: torch.dtype = torch.float64,
) -> torch.Tensor:
    """(n, d) independent uniforms on (0, 1) from the same seeding scheme (one stream)."""
    g = _chunk_generators(_root_seed_sequence(seeds, generator), 1, device)[0]
    return laws.uniform((int(n), int(d)), generator=g, dtype=dtype, device=device)
