"""Row-block sampler for compiled copula trees.

Trees of depth <= 2 (a leaf, or a nested copula over leaves) use the
single-level frailty algorithm for every family. Deeper trees are Gumbel
only and are sampled by one bottom-up pass over the arena: each node's
column span, child spans included, goes through the Gumbel step relative to
its parent's parameter (1 above the root), so no recursion is needed.
"""

from __future__ import annotations

import torch

from . import laws
from .controls import SimulationControls
from .families import ArchimedeanFamily
from .stats import open_unit
from .steps import draw_frailty, family_step, gumbel_step, outer_inversion
from .structure import CopulaTree


def _single_level(tree: CopulaTree, t: int, *, generator, dtype, device, controls) -> torch.Tensor:
    fam = tree.family
    root = tree.root
    v0 = draw_frailty(fam, root.theta, t, generator=generator, dtype=dtype, device=device, controls=controls)
    x = laws.uniform((t, tree.d), generator=generator, dtype=dtype, device=device)
    for ci in root.children:
        child = tree.nodes[ci]
        span = slice(child.start, child.stop)
        x[:, span] = family_step(
            fam, x[:, span], child.theta, root.theta, v0, generator=generator, controls=controls,
        )
    # parent-only columns stay raw uniforms; every column gets the same outer inversion
    return outer_inversion(fam, x, v0, root.theta)


def _gumbel_bottom_up(tree: CopulaTree, t: int, *, generator, dtype, device, controls) -> torch.Tensor:
    x = laws.uniform((t, tree.d), generator=generator, dtype=dtype, device=device)
    for i in tree.bottom_up():
        node = tree.nodes[i]
        span = slice(node.start, node.stop)
        x[:, span] = gumbel_step(x[:, span], node.theta, tree.parent_theta(i), generator=generator)
    return x


def sample_rows(
    tree: CopulaTree,
    t: int,
    *,
    generator: torch.Generator | None = None,
    dtype: torch.dtype = torch.float64,
    device=None,
    controls: SimulationControls | None = None,
) -> torch.Tensor:
    """Draw ``t`` i.i.d. rows of the copula described by ``tree``; returns (t, d)."""
    if controls is None:
        controls = SimulationControls()
    t = int(t)
    kw = dict(generator=generator, dtype=dtype, device=device, controls=controls)
    if tree.depth <= 2:
        x = _single_level(tree, t, **kw)
    elif tree.family is ArchimedeanFamily.gumbel:
        x = _gumbel_bottom_up(tree, t, **kw)
    else:
        raise ValueError(f"nesting deeper than one level is only available for the Gumbel family, got {tree.family.value}")
    return open_unit(x)
