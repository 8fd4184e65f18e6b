"""Auxiliary law samplers driving nested Archimedean sampling.

Every sampler here consumes only Uniform(0,1) draws from an explicit
``torch.Generator``; none keeps state between calls except the read-only
logarithmic-series tables, which are cached per parameter value and shared.

References: Kanter (1975) for the positive stable law; M. Hofert,
"Sampling Archimedean copulas", CSDA 52 (2008) and "Efficiently sampling
nested Archimedean copulas", CSDA 55 (2011) for the tilted stable and the
nested Frank laws; Kemp (1981) for the logarithmic series law.
"""

from __future__ import annotations

import logging
import math
import threading
from collections import OrderedDict
from typing import Callable

import torch

from .controls import SimulationControls
from .errors import DomainError
from .families import log1mexp

logger = logging.getLogger(__name__)


def uniform(
    shape: int | tuple[int, ...],
    *,
    generator: torch.Generator | None = None,
    dtype: torch.dtype = torch.float64,
    device=None,
) -> torch.Tensor:
    """Uniform draws on the open interval (0, 1)."""
    if isinstance(shape, int):
        shape = (shape,)
    u = torch.rand(shape, generator=generator, dtype=dtype, device=device)
    return u.clamp_min(torch.finfo(dtype).tiny)


# ---------------------------------------------------------------------------
# Positive stable and exponentially tilted stable laws
# ---------------------------------------------------------------------------

def _kanter(alpha: float, u1: torch.Tensor, u2: torch.Tensor) -> torch.Tensor:
    # log S = log sin(a p) - log sin(p) / a + (1-a)/a * (log sin((1-a) p) - log W),
    # with p = pi * u1 and W = -log(u2) ~ Exp(1).
    p = math.pi * u1
    w = -torch.log(u2)
    log_s = (
        torch.log(torch.sin(alpha * p))
        - torch.log(torch.sin(p)) / alpha
        + (1.0 - alpha) / alpha * (torch.log(torch.sin((1.0 - alpha) * p)) - torch.log(w))
    )
    return torch.exp(log_s)


def positive_stable(
    alpha: float,
    size: int,
    *,
    generator: torch.Generator | None = None,
    dtype: torch.dtype = torch.float64,
    device=None,
) -> torch.Tensor:
    """Exact draws S with Laplace transform E[exp(-tS)] = exp(-t^alpha), alpha in (0, 1].

    Closed-form transform of two uniforms per draw; alpha = 1 is the point mass at 1.
    """
    a = float(alpha)
    if not 0.0 < a <= 1.0:
        raise DomainError(f"stability index must lie in (0, 1], got {a!r}")
    u1 = uniform(size, generator=generator, dtype=dtype, device=device)
    u2 = uniform(size, generator=generator, dtype=dtype, device=device)
    if a == 1.0:
        return torch.ones_like(u1)
    return _kanter(a, u1, u2)


def _row_chunks(counts: torch.Tensor, max_pieces: int):
    # Yield (start, stop) row ranges whose piece counts sum to at most max_pieces
    # (a single row with more pieces forms its own range).
    n = int(counts.numel())
    csum = torch.cumsum(counts, 0).cpu()
    start = 0
    offset = 0
    while start < n:
        limit = torch.tensor([offset + max_pieces], dtype=csum.dtype)
        stop = int(torch.searchsorted(csum, limit, right=True)[0].item())
        stop = max(stop, start + 1)
        yield start, stop
        offset = int(csum[stop - 1].item())
        start = stop


def _sum_of_pieces(
    counts: torch.Tensor,
    draw: Callable[[torch.Tensor], torch.Tensor],
    *,
    dtype: torch.dtype,
    max_pieces: int,
) -> torch.Tensor:
    """Per-row sums of ``counts[i]`` i.i.d. pieces; ``draw(owner)`` returns one piece per owner row."""
    counts = counts.to(torch.long)
    out = torch.zeros(counts.shape, dtype=dtype, device=counts.device)
    rows = torch.arange(counts.numel(), device=counts.device)
    for start, stop in _row_chunks(counts, int(max_pieces)):
        owner = torch.repeat_interleave(rows[start:stop], counts[start:stop])
        if owner.numel() == 0:
            continue
        out.index_add_(0, owner, draw(owner))
    return out


def tilted_stable(
    alpha: float,
    v0: torch.Tensor,
    *,
    h: float = 1.0,
    generator: torch.Generator | None = None,
    controls: SimulationControls | None = None,
) -> torch.Tensor:
    """Draws with Laplace transform exp(-V0 * ((h + t)^alpha - h^alpha)), one per entry of ``v0``.

    This is the alpha-stable law scaled by V0^(1/alpha) and exponentially tilted
    by h. Each draw is the sum of m = max(1, round(V0 * h^alpha)) i.i.d. pieces,
    each obtained by standard rejection: propose S from the stable law with
    Laplace transform exp(-(V0/m) t^alpha), accept with probability exp(-h S).
    The acceptance rate per piece stays above exp(-1.5) whatever V0 is.

    alpha = 1 returns V0 itself; h = 0 with V0 = 1 is the plain positive stable law.
    """
    a = float(alpha)
    if not 0.0 < a <= 1.0:
        raise DomainError(f"stability index must lie in (0, 1], got {a!r}")
    if h < 0.0:
        raise DomainError(f"tilting parameter must be >= 0, got {h!r}")
    if controls is None:
        controls = SimulationControls()
    v0 = torch.as_tensor(v0)
    if a == 1.0:
        return v0.clone()
    dtype, device = v0.dtype, v0.device
    m = torch.round(v0 * (float(h) ** a)).clamp_min(1.0)
    scale = torch.pow(v0 / m, 1.0 / a)

    def draw(owner: torch.Tensor) -> torch.Tensor:
        out = torch.empty(owner.shape, dtype=dtype, device=device)
        pending = torch.arange(owner.numel(), device=device)
        while pending.numel() > 0:
            k = int(pending.numel())
            s = scale[owner[pending]] * positive_stable(a, k, generator=generator, dtype=dtype, device=device)
            u = uniform(k, generator=generator, dtype=dtype, device=device)
            ok = u <= torch.exp(-float(h) * s)
            out[pending[ok]] = s[ok]
            pending = pending[~ok]
        return out

    return _sum_of_pieces(m, draw, dtype=dtype, max_pieces=controls.max_pieces)


# ---------------------------------------------------------------------------
# Logarithmic series law (Frank)
# ---------------------------------------------------------------------------

class LogSeriesTable:
    """Cumulative table of the logarithmic law with p = 1 - exp(-theta).

    pmf(k) = p^k / (k * theta), k = 1, 2, ...; the table is stored in float64
    on the CPU and grown lazily (under a lock) until it covers the largest
    uniform requested. Published tables are never modified in place.
    """

    def __init__(self, theta: float, *, max_terms: int = 1 << 24):
        th = float(theta)
        if not th > 0.0:
            raise DomainError(f"logarithmic series parameter must be > 0, got {th!r}")
        self.theta = th
        self.max_terms = int(max_terms)
        self._log_p = math.log(-math.expm1(-th))
        self._log_theta = math.log(th)
        self._cdf = torch.empty(0, dtype=torch.float64)
        self._exhausted = False
        self._lock = threading.Lock()

    @property
    def p(self) -> float:
        return math.exp(self._log_p)

    def __len__(self) -> int:
        return int(self._cdf.numel())

    def cdf(self, upto: float = 0.0) -> torch.Tensor:
        """Return a table whose last entry exceeds ``upto`` (unless capped)."""
        cdf = self._cdf
        if cdf.numel() > 0 and (float(cdf[-1]) > upto or self._exhausted):
            return cdf
        with self._lock:
            self._extend(float(upto))
            return self._cdf

    def _extend(self, upto: float) -> None:
        cdf = self._cdf
        chunk = max(1024, int(cdf.numel()))
        parts = [cdf]
        last = float(cdf[-1]) if cdf.numel() > 0 else 0.0
        k0 = int(cdf.numel())
        while not self._exhausted and not last > upto:
            n = min(chunk, self.max_terms - k0)
            if n <= 0:
                self._exhausted = True
                logger.warning(
                    "log-series table for theta=%g capped at %d terms (cdf=%.17g < %.17g)",
                    self.theta, k0, last, upto,
                )
                break
            k = torch.arange(k0 + 1, k0 + n + 1, dtype=torch.float64)
            pmf = torch.exp(k * self._log_p - torch.log(k) - self._log_theta)
            block = last + torch.cumsum(pmf, 0)
            parts.append(block)
            new_last = float(block[-1])
            if new_last == last:
                # float64 accumulation saturated below upto
                self._exhausted = True
            last = new_last
            k0 += n
            chunk *= 2
        self._cdf = torch.cat(parts)
        logger.debug("log-series table for theta=%g has %d terms", self.theta, self._cdf.numel())

    def sample(self, u: torch.Tensor) -> torch.Tensor:
        """Smallest k whose cumulative probability exceeds each uniform in ``u``."""
        u64 = u.detach().to(device="cpu", dtype=torch.float64)
        upto = float(u64.max()) if u64.numel() > 0 else 0.0
        cdf = self.cdf(upto)
        idx = torch.searchsorted(cdf, u64, right=True).clamp_max(cdf.numel() - 1)
        return (idx + 1).to(device=u.device, dtype=u.dtype)


_LOGSERIES_CACHE_MAX = 64
_LOGSERIES_TABLES: OrderedDict[float, LogSeriesTable] = OrderedDict()
_LOGSERIES_LOCK = threading.Lock()


def logseries_table(theta: float, *, max_terms: int = 1 << 24) -> LogSeriesTable:
    """Shared table for parameter ``theta``.

    At most ``_LOGSERIES_CACHE_MAX`` tables are kept; the least recently used
    one is dropped first.
    """
    th = float(theta)
    with _LOGSERIES_LOCK:
        table = _LOGSERIES_TABLES.get(th)
        if table is not None:
            _LOGSERIES_TABLES.move_to_end(th)
            return table
        table = LogSeriesTable(th, max_terms=max_terms)
        _LOGSERIES_TABLES[th] = table
        while len(_LOGSERIES_TABLES) > _LOGSERIES_CACHE_MAX:
            evicted, _ = _LOGSERIES_TABLES.popitem(last=False)
            logger.debug("evicted log-series table for theta=%g", evicted)
        logger.debug("created log-series table for theta=%g", th)
    return table


def logseries_kemp(theta: float, u2: torch.Tensor, u3: torch.Tensor) -> torch.Tensor:
    """Kemp's LK algorithm for the logarithmic law with p = 1 - exp(-theta).

    Exact for every theta > 0 and costs two uniforms per draw. With
    q = 1 - exp(-theta * u3): V = 1 if u2 > p or u2 > q, V = 2 if q^2 < u2 <= q,
    otherwise V = floor(1 + log(u2) / log(q)).
    """
    th = float(theta)
    if not th > 0.0:
        raise DomainError(f"logarithmic series parameter must be > 0, got {th!r}")
    log_p = math.log(-math.expm1(-th))
    log_u = torch.log(u2)
    log_q = log1mexp(th * u3).clamp_max(-torch.finfo(u2.dtype).tiny)
    tail = torch.floor(1.0 + log_u / log_q)
    short = torch.where(log_u > log_q, torch.ones_like(tail), torch.full_like(tail, 2.0))
    v = torch.where(log_u < 2.0 * log_q, tail, short)
    return torch.where(log_u > log_p, torch.ones_like(v), v)


def logseries(
    theta: float,
    size: int,
    *,
    generator: torch.Generator | None = None,
    dtype: torch.dtype = torch.float64,
    device=None,
    controls: SimulationControls | None = None,
) -> torch.Tensor:
    """Draws from the logarithmic law with p = 1 - exp(-theta).

    Up to ``controls.logseries_table_max_theta`` the shared cdf table is
    inverted (one uniform per draw); above it, where the law is too heavy
    tailed to tabulate, Kemp's LK algorithm is used (two uniforms per draw).
    """
    if controls is None:
        controls = SimulationControls()
    th = float(theta)
    if th > float(controls.logseries_table_max_theta):
        u2 = uniform(size, generator=generator, dtype=dtype, device=device)
        u3 = uniform(size, generator=generator, dtype=dtype, device=device)
        return logseries_kemp(th, u2, u3)
    u = uniform(size, generator=generator, dtype=dtype, device=device)
    return logseries_table(th, max_terms=controls.logseries_max_terms).sample(u)


def frank_inner(
    theta_parent: float,
    theta_child: float,
    v0: torch.Tensor,
    *,
    generator: torch.Generator | None = None,
    controls: SimulationControls | None = None,
) -> torch.Tensor:
    """Inner frailty of nested Frank copulas given the integer parent frailty V0.

    Laplace transform ((1 - (1 - exp(-t) p1)^alpha) / p0)^V0 with alpha = theta/phi,
    p0 = 1 - exp(-theta), p1 = 1 - exp(-phi). Sampled as a sum of V0 i.i.d.
    pieces; each piece is drawn from Log(p1) and accepted with probability
    Gamma(k - alpha) / (Gamma(k) Gamma(1 - alpha)), so about theta / p0
    proposals are needed per piece.
    """
    theta, phi = float(theta_parent), float(theta_child)
    if controls is None:
        controls = SimulationControls()
    v0 = torch.as_tensor(v0)
    alpha = theta / phi
    if alpha >= 1.0:
        return v0.clone()
    dtype, device = v0.dtype, v0.device
    lg_one_minus_alpha = math.lgamma(1.0 - alpha)

    def draw(owner: torch.Tensor) -> torch.Tensor:
        out = torch.empty(owner.shape, dtype=dtype, device=device)
        pending = torch.arange(owner.numel(), device=device)
        while pending.numel() > 0:
            n = int(pending.numel())
            k = logseries(phi, n, generator=generator, dtype=dtype, device=device, controls=controls)
            u = uniform(n, generator=generator, dtype=dtype, device=device)
            log_acc = torch.lgamma(k - alpha) - torch.lgamma(k) - lg_one_minus_alpha
            ok = torch.log(u) <= log_acc
            out[pending[ok]] = k[ok]
            pending = pending[~ok]
        return out

    return _sum_of_pieces(torch.round(v0), draw, dtype=dtype, max_pieces=controls.max_pieces)


# ---------------------------------------------------------------------------
# Geometric / negative binomial laws (AMH) and the gamma quantile (Clayton)
# ---------------------------------------------------------------------------

def shifted_geometric(theta: float, u: torch.Tensor) -> torch.Tensor:
    """1 + Geometric(1 - theta) by inversion: P(V = k) = (1 - theta) theta^(k-1), k >= 1."""
    th = float(theta)
    if not 0.0 < th < 1.0:
        raise DomainError(f"geometric parameter must lie in (0, 1), got {th!r}")
    return torch.ceil(torch.log1p(-u) / math.log(th)).clamp_min(1.0)


def amh_success_probability(theta_parent: float, theta_child: float) -> float:
    """(1 - phi) / (1 - theta), the negative binomial success probability of nested AMH."""
    p = (1.0 - float(theta_child)) / (1.0 - float(theta_parent))
    if not 0.0 < p <= 1.0:
        raise DomainError(
            f"negative binomial probability (1-phi)/(1-theta) = {p!r} is outside (0, 1]; "
            f"need theta <= phi < 1 (theta={float(theta_parent)!r}, phi={float(theta_child)!r})"
        )
    return p


def negative_binomial(
    r: torch.Tensor,
    p: float,
    *,
    generator: torch.Generator | None = None,
    controls: SimulationControls | None = None,
) -> torch.Tensor:
    """Number of failures before ``r`` successes (success probability ``p`` in (0, 1]).

    Each draw is the sum of r geometric pieces floor(log U / log(1 - p)).
    """
    p = float(p)
    if not 0.0 < p <= 1.0:
        raise DomainError(f"negative binomial probability must lie in (0, 1], got {p!r}")
    if controls is None:
        controls = SimulationControls()
    r = torch.as_tensor(r)
    dtype, device = r.dtype, r.device
    if p == 1.0:
        return torch.zeros_like(r)
    log_q = math.log1p(-p)

    def draw(owner: torch.Tensor) -> torch.Tensor:
        u = uniform(int(owner.numel()), generator=generator, dtype=dtype, device=device)
        return torch.floor(torch.log(u) / log_q)

    return _sum_of_pieces(torch.round(r), draw, dtype=dtype, max_pieces=controls.max_pieces)


def gamma_quantile(shape: float, u: torch.Tensor, *, steps: int = 64) -> torch.Tensor:
    """Quantile of Gamma(shape, 1) at ``u`` by bisection on log(x) over torch.special.gammainc."""
    a = float(shape)
    if not a > 0.0:
        raise DomainError(f"gamma shape must be > 0, got {a!r}")
    a_t = torch.full_like(u, a)
    lo = torch.full_like(u, math.log(torch.finfo(u.dtype).tiny))
    hi = torch.full_like(u, math.log(a + 40.0 * math.sqrt(a) + 40.0))
    for _ in range(int(steps)):
        mid = 0.5 * (lo + hi)
        below = torch.special.gammainc(a_t, torch.exp(mid)) < u
        lo = torch.where(below, mid, lo)
        hi = torch.where(below, hi, mid)
    return torch.exp(0.5 * (lo + hi))
