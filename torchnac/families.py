"""ArchimedeanFamily enum and per-family descriptors (domain, generator, inverse)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import torch


class ArchimedeanFamily(str, Enum):
    clayton = "clayton"
    amh = "amh"
    frank = "frank"
    gumbel = "gumbel"


def normalize_family(fam: str | ArchimedeanFamily) -> ArchimedeanFamily:
    if isinstance(fam, ArchimedeanFamily):
        return fam
    try:
        return ArchimedeanFamily(str(fam).lower())
    except Exception as e:
        raise ValueError(f"Unknown ArchimedeanFamily: {fam!r}") from e


def _tiny(x: torch.Tensor) -> float:
    return torch.finfo(x.dtype).tiny


# Generators psi(t; theta) map [0, inf) onto (0, 1]; the inverses map back.

def _clayton_psi(t: torch.Tensor, theta: float) -> torch.Tensor:
    return torch.pow(1.0 + t, -1.0 / theta)


def _clayton_psi_inv(u: torch.Tensor, theta: float) -> torch.Tensor:
    return torch.expm1(-theta * torch.log(u.clamp_min(_tiny(u))))


def _amh_psi(t: torch.Tensor, theta: float) -> torch.Tensor:
    return (1.0 - theta) / (torch.exp(t) - theta)


def _amh_psi_inv(u: torch.Tensor, theta: float) -> torch.Tensor:
    return torch.log((1.0 - theta) / u.clamp_min(_tiny(u)) + theta)


def log1mexp(x: torch.Tensor) -> torch.Tensor:
    """log(1 - exp(-x)) for x > 0, accurate at both ends (Maechler 2012)."""
    return torch.where(x < math.log(2.0), torch.log(-torch.expm1(-x)), torch.log1p(-torch.exp(-x)))


def frank_log_inner(t: torch.Tensor, theta: float) -> torch.Tensor:
    # log(1 - y) with y = (1 - exp(-theta)) exp(-t); for y near 1 it is taken
    # as log((1 - exp(-t)) + exp(-theta - t)).
    y = -math.expm1(-theta) * torch.exp(-t)
    near = torch.log(-torch.expm1(-t) + torch.exp(-theta - t))
    return torch.where(y < 0.5, torch.log1p(-y), near)


def _frank_psi(t: torch.Tensor, theta: float) -> torch.Tensor:
    return -frank_log_inner(t, theta) / theta


def _frank_psi_inv(u: torch.Tensor, theta: float) -> torch.Tensor:
    log_p = math.log(-math.expm1(-theta))
    return log_p - log1mexp(theta * u.clamp_min(_tiny(u)))


def _gumbel_psi(t: torch.Tensor, theta: float) -> torch.Tensor:
    return torch.exp(-torch.pow(t.clamp_min(0.0), 1.0 / theta))


def _gumbel_psi_inv(u: torch.Tensor, theta: float) -> torch.Tensor:
    return torch.pow((-torch.log(u.clamp_min(_tiny(u)))).clamp_min(0.0), theta)


@dataclass(frozen=True)
class FamilyDescriptor:
    """Constants of one Archimedean family.

    ``generator`` is the Laplace transform psi_theta used to couple marginals,
    C(u) = psi(sum_i psi^{-1}(u_i)); ``inverse_generator`` is its inverse.
    """

    family: ArchimedeanFamily
    lower: float
    upper: float
    lower_closed: bool
    upper_closed: bool
    generator: Callable[[torch.Tensor, float], torch.Tensor]
    inverse_generator: Callable[[torch.Tensor, float], torch.Tensor]

    def in_domain(self, theta: float) -> bool:
        th = float(theta)
        if math.isnan(th):
            return False
        above = th >= self.lower if self.lower_closed else th > self.lower
        below = th <= self.upper if self.upper_closed else th < self.upper
        return above and below

    def compatible(self, theta_parent: float, theta_child: float) -> bool:
        # Sufficient nesting condition, identical for the four families.
        return float(theta_parent) <= float(theta_child)

    def domain_str(self) -> str:
        lb = "[" if self.lower_closed else "("
        ub = "]" if self.upper_closed else ")"
        hi = "inf" if math.isinf(self.upper) else f"{self.upper:g}"
        return f"{lb}{self.lower:g}, {hi}{ub}"


_DESCRIPTORS = {
    ArchimedeanFamily.clayton: FamilyDescriptor(
        ArchimedeanFamily.clayton, 0.0, math.inf, False, False, _clayton_psi, _clayton_psi_inv,
    ),
    ArchimedeanFamily.amh: FamilyDescriptor(
        ArchimedeanFamily.amh, 0.0, 1.0, False, False, _amh_psi, _amh_psi_inv,
    ),
    ArchimedeanFamily.frank: FamilyDescriptor(
        ArchimedeanFamily.frank, 0.0, math.inf, False, False, _frank_psi, _frank_psi_inv,
    ),
    ArchimedeanFamily.gumbel: FamilyDescriptor(
        ArchimedeanFamily.gumbel, 1.0, math.inf, True, False, _gumbel_psi, _gumbel_psi_inv,
    ),
}


def family_descriptor(fam: str | ArchimedeanFamily) -> FamilyDescriptor:
    return _DESCRIPTORS[normalize_family(fam)]
