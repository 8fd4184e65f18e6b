"""Conversion between family parameters and pairwise Kendall's tau / Spearman's rho."""

from __future__ import annotations

import math
from enum import Enum
from typing import Callable

import numpy as np
import torch

from .errors import DomainError
from .families import ArchimedeanFamily, family_descriptor, log1mexp, normalize_family


class CorrelationKind(str, Enum):
    kendall = "kendall"
    spearman = "spearman"


def normalize_kind(kind: str | CorrelationKind) -> CorrelationKind:
    if isinstance(kind, CorrelationKind):
        return kind
    try:
        return CorrelationKind(str(kind).lower())
    except Exception as e:
        raise ValueError(f"Unknown CorrelationKind: {kind!r}") from e


_NODES, _WEIGHTS = np.polynomial.legendre.leggauss(48)


def _gauss_legendre(a: float, b: float, panels: int) -> tuple[torch.Tensor, torch.Tensor]:
    # Composite rule on [a, b]: nodes and weights as float64 tensors.
    edges = np.linspace(a, b, panels + 1)
    half = 0.5 * np.diff(edges)
    mid = 0.5 * (edges[:-1] + edges[1:])
    x = (mid[:, None] + half[:, None] * _NODES[None, :]).reshape(-1)
    w = (half[:, None] * _WEIGHTS[None, :]).reshape(-1)
    return torch.from_numpy(x), torch.from_numpy(w)


def _debye1(x: float) -> float:
    # Integral of t / (e^t - 1) over [0, x].
    if x <= 0.0:
        return 0.0
    t, w = _gauss_legendre(0.0, x, max(1, int(math.ceil(x / 8.0))))
    f = torch.where(t > 0, t / torch.expm1(t), torch.ones_like(t))
    return float((f * w).sum().item())


def _kendall_clayton(theta: float) -> float:
    return theta / (theta + 2.0)


def _kendall_gumbel(theta: float) -> float:
    return 1.0 - 1.0 / theta


def _kendall_frank(theta: float) -> float:
    if theta < 1e-4:
        return theta / 9.0
    return 1.0 - 4.0 / theta + 4.0 * _debye1(theta) / (theta * theta)


def _kendall_amh(theta: float) -> float:
    if theta < 1e-3:
        return 2.0 * theta / 9.0 + theta * theta / 18.0
    return 1.0 - 2.0 * (theta + (1.0 - theta) ** 2 * math.log1p(-theta)) / (3.0 * theta * theta)


_KENDALL: dict[ArchimedeanFamily, Callable[[float], float]] = {
    ArchimedeanFamily.clayton: _kendall_clayton,
    ArchimedeanFamily.amh: _kendall_amh,
    ArchimedeanFamily.frank: _kendall_frank,
    ArchimedeanFamily.gumbel: _kendall_gumbel,
}


def _log_clayton(theta: float, u: torch.Tensor, v: torch.Tensor) -> torch.Tensor:
    # log C = -log(u^-theta + v^-theta - 1) / theta
    a = -theta * torch.log(u)
    b = -theta * torch.log(v)
    small = torch.log1p(torch.expm1(a) + torch.expm1(b))
    large = torch.logaddexp(a, b + log1mexp(b))
    return -torch.where(torch.maximum(a, b) < 1.0, small, large) / theta


def _log_amh(theta: float, u: torch.Tensor, v: torch.Tensor) -> torch.Tensor:
    return torch.log(u) + torch.log(v) - torch.log1p(-theta * (1.0 - u) * (1.0 - v))


def _log_frank(theta: float, u: torch.Tensor, v: torch.Tensor) -> torch.Tensor:
    if theta <= 1.0:
        c = -torch.log1p(torch.expm1(-theta * u) * torch.expm1(-theta * v) / math.expm1(-theta)) / theta
        return torch.log(c)
    # C = -(log N - log(1 - e^-t)) / t, N = e^-tu (1 - e^-tv) + e^-tv (1 - e^-t(1-v))
    log_n = torch.logaddexp(
        -theta * u + log1mexp(theta * v),
        -theta * v + log1mexp(theta * (1.0 - v)),
    )
    log_d = math.log(-math.expm1(-theta))
    return torch.log(-(log_n - log_d) / theta)


def _log_gumbel(theta: float, u: torch.Tensor, v: torch.Tensor) -> torch.Tensor:
    # log C = -((-log u)^theta + (-log v)^theta)^(1/theta)
    s = torch.logaddexp(theta * torch.log(-torch.log(u)), theta * torch.log(-torch.log(v)))
    return -torch.exp(s / theta)


_LOG_COPULA: dict[ArchimedeanFamily, Callable[[float, torch.Tensor, torch.Tensor], torch.Tensor]] = {
    ArchimedeanFamily.clayton: _log_clayton,
    ArchimedeanFamily.amh: _log_amh,
    ArchimedeanFamily.frank: _log_frank,
    ArchimedeanFamily.gumbel: _log_gumbel,
}


def _spearman(fam: ArchimedeanFamily, theta: float, *, panels: int = 8) -> float:
    # rho_S = 12 * int int C(u, v) du dv - 3, with C evaluated in log space.
    x, w = _gauss_legendre(0.0, 1.0, panels)
    c = torch.exp(_LOG_COPULA[fam](float(theta), x[:, None], x[None, :]))
    integral = float((w[:, None] * w[None, :] * c).sum().item())
    return 12.0 * integral - 3.0


# Search ranges (lo, hi) for numeric inversion, bisected in log(theta).
_SEARCH: dict[ArchimedeanFamily, tuple[float, float]] = {
    ArchimedeanFamily.clayton: (1e-8, 1e4),
    ArchimedeanFamily.amh: (1e-8, 1.0 - 1e-12),
    ArchimedeanFamily.frank: (1e-8, 1e4),
    ArchimedeanFamily.gumbel: (1.0, 1e4),
}


def correlation_from_parameter(
    family: str | ArchimedeanFamily,
    theta: float,
    kind: str | CorrelationKind = CorrelationKind.kendall,
) -> float:
    """Pairwise Kendall's tau or Spearman's rho induced by ``theta``."""
    fam = normalize_family(family)
    kind = normalize_kind(kind)
    th = float(theta)
    if not family_descriptor(fam).in_domain(th):
        raise DomainError(f"{fam.value} parameter must lie in {family_descriptor(fam).domain_str()}, got {th!r}")
    if kind is CorrelationKind.kendall:
        return float(_KENDALL[fam](th))
    if fam is ArchimedeanFamily.gumbel and th == 1.0:
        return 0.0
    return float(_spearman(fam, th))


def _invert_monotone_1d(target: float, f: Callable[[float], float], *, lo: float, hi: float, max_iter: int = 80) -> float:
    # Bisection for increasing f on [lo, hi].
    a = float(lo)
    b = float(hi)
    for _ in range(max_iter):
        m = 0.5 * (a + b)
        if f(m) < target:
            a = m
        else:
            b = m
    return 0.5 * (a + b)


def parameter_from_correlation(
    family: str | ArchimedeanFamily,
    rho: float,
    kind: str | CorrelationKind = CorrelationKind.kendall,
) -> float:
    """Unique family parameter inducing pairwise correlation ``rho`` > 0.

    Kendall's tau is inverted in closed form for Clayton and Gumbel; the other
    cases are bisected in log(theta). Raises DomainError when ``rho`` is not
    attainable by the family (e.g. AMH tau >= 1/3).
    """
    fam = normalize_family(family)
    kind = normalize_kind(kind)
    r = float(rho)
    if not 0.0 < r < 1.0:
        raise DomainError(f"correlation must lie in (0, 1), got {r!r}")
    if kind is CorrelationKind.kendall:
        if fam is ArchimedeanFamily.clayton:
            return 2.0 * r / (1.0 - r)
        if fam is ArchimedeanFamily.gumbel:
            return 1.0 / (1.0 - r)

    def f(log_th: float) -> float:
        return correlation_from_parameter(fam, math.exp(log_th), kind)

    lo, hi = (math.log(v) for v in _SEARCH[fam])
    r_lo, r_hi = f(lo), f(hi)
    if not r_lo < r < r_hi:
        raise DomainError(
            f"{kind.value} correlation {r!r} is not attainable by the {fam.value} family "
            f"(range ({r_lo:.6g}, {r_hi:.6g}))"
        )
    th = math.exp(_invert_monotone_1d(r, f, lo=lo, hi=hi))
    if fam is ArchimedeanFamily.amh:
        th = min(th, _SEARCH[fam][1])
    return th
