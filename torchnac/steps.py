"""Per-family frailty draws and step functions of nested Archimedean sampling.

A single-level nested copula C_theta(C_phi_1(...), ..., C_phi_k(...), u_1..u_m)
is sampled in three moves (McNeil 2008, Alg. 5; Hofert 2011):

1. draw the parent frailty V0 from the law whose Laplace transform is psi_theta;
2. transform each child's independent uniforms with the family step function,
   conditionally on V0, into the child block;
3. map every entry x (child blocks and the m raw uniforms alike) through the
   outer inversion psi_theta(-log(x) / V0).

All functions act on blocks of rows: ``u`` has shape (t, n_i) and ``v0`` has
shape (t,). Frailty and auxiliary draws are made per row and never reused.
"""

from __future__ import annotations

import math
from typing import Callable

import torch

from . import laws
from .controls import SimulationControls
from .families import ArchimedeanFamily, frank_log_inner, family_descriptor


def _clayton_frailty(theta, t, *, generator, dtype, device, controls):
    u = laws.uniform(t, generator=generator, dtype=dtype, device=device)
    v0 = laws.gamma_quantile(1.0 / theta, u, steps=controls.gamma_bisection_steps)
    return v0.clamp_min(torch.finfo(dtype).tiny)


def _amh_frailty(theta, t, *, generator, dtype, device, controls):
    u = laws.uniform(t, generator=generator, dtype=dtype, device=device)
    return laws.shifted_geometric(theta, u)


def _frank_frailty(theta, t, *, generator, dtype, device, controls):
    return laws.logseries(theta, t, generator=generator, dtype=dtype, device=device, controls=controls)


def _gumbel_frailty(theta, t, *, generator, dtype, device, controls):
    return laws.positive_stable(1.0 / theta, t, generator=generator, dtype=dtype, device=device)


_FRAILTY = {
    ArchimedeanFamily.clayton: _clayton_frailty,
    ArchimedeanFamily.amh: _amh_frailty,
    ArchimedeanFamily.frank: _frank_frailty,
    ArchimedeanFamily.gumbel: _gumbel_frailty,
}


def draw_frailty(
    fam: ArchimedeanFamily,
    theta: float,
    t: int,
    *,
    generator: torch.Generator | None = None,
    dtype: torch.dtype = torch.float64,
    device=None,
    controls: SimulationControls | None = None,
) -> torch.Tensor:
    """Top-level frailty V0 (one per row): Gamma(1/theta) for Clayton,
    1 + Geometric(1 - theta) for AMH, Log(1 - exp(-theta)) for Frank and
    the positive (1/theta)-stable law for Gumbel."""
    if controls is None:
        controls = SimulationControls()
    return _FRAILTY[fam](float(theta), int(t), generator=generator, dtype=dtype, device=device, controls=controls)


# ---------------------------------------------------------------------------
# Step functions: (u, phi, theta, v0) -> child block conditioned on V0
# ---------------------------------------------------------------------------

def gumbel_step(u, phi, theta, v0=None, *, generator=None, controls=None):
    """x = exp(-(-log(u) / S)^(theta/phi)), S positive (theta/phi)-stable.

    Used with (phi, theta) = (theta_node, theta_parent) on any Gumbel subtree;
    V0 is not needed.
    """
    alpha = float(theta) / float(phi)
    s = laws.positive_stable(alpha, u.shape[0], generator=generator, dtype=u.dtype, device=u.device)
    e = -torch.log(u) / s[:, None]
    return torch.exp(-torch.pow(e, alpha))


def clayton_step(u, phi, theta, v0, *, generator=None, controls=None):
    # x = exp(V0 - V0 * (1 + e)^(theta/phi)) with e = -log(u) / S~
    alpha = float(theta) / float(phi)
    s = laws.tilted_stable(alpha, v0, generator=generator, controls=controls)
    e = -torch.log(u) / s[:, None]
    return torch.exp(-v0[:, None] * torch.expm1(alpha * torch.log1p(e)))


def frank_step(u, phi, theta, v0, *, generator=None, controls=None):
    # x = ((1 - (1 - exp(-e) (1 - exp(-phi)))^(theta/phi)) / (1 - exp(-theta)))^V0
    phi, theta = float(phi), float(theta)
    alpha = theta / phi
    w = laws.frank_inner(theta, phi, v0, generator=generator, controls=controls)
    e = -torch.log(u) / w[:, None]
    num = -torch.expm1(alpha * frank_log_inner(e, phi))
    x = num / (-math.expm1(-theta))
    return torch.pow(x, v0[:, None])


def amh_step(u, phi, theta, v0, *, generator=None, controls=None):
    """x = (((exp(e) - phi)(1 - theta) + theta(1 - phi)) / (1 - phi))^(-V0), e = -log(u) / (V0 + W).

    W ~ NB(V0, (1 - phi) / (1 - theta)). The expression is evaluated as
    written, so it loses precision for types wider than float64.
    """
    phi, theta = float(phi), float(theta)
    p = laws.amh_success_probability(theta, phi)
    w = laws.negative_binomial(v0, p, generator=generator, controls=controls)
    e = -torch.log(u) / (v0 + w)[:, None]
    x = ((torch.exp(e) - phi) * (1.0 - theta) + theta * (1.0 - phi)) / (1.0 - phi)
    return torch.pow(x, -v0[:, None])


_STEPS: dict[ArchimedeanFamily, Callable[..., torch.Tensor]] = {
    ArchimedeanFamily.clayton: clayton_step,
    ArchimedeanFamily.amh: amh_step,
    ArchimedeanFamily.frank: frank_step,
    ArchimedeanFamily.gumbel: gumbel_step,
}


def family_step(
    fam: ArchimedeanFamily,
    u: torch.Tensor,
    phi: float,
    theta: float,
    v0: torch.Tensor,
    *,
    generator: torch.Generator | None = None,
    controls: SimulationControls | None = None,
) -> torch.Tensor:
    """Turn a child's independent uniforms ``u`` (t, n) into the child block given V0."""
    if controls is None:
        controls = SimulationControls()
    return _STEPS[fam](u, phi, theta, v0, generator=generator, controls=controls)


def outer_inversion(fam: ArchimedeanFamily, x: torch.Tensor, v0: torch.Tensor, theta: float) -> torch.Tensor:
    """psi_theta(-log(x) / V0), applied to every column of ``x``."""
    return family_descriptor(fam).generator(-torch.log(x) / v0[:, None], float(theta))
