"""Parameter-domain and nesting checks, run once when a copula is built."""

from __future__ import annotations

import warnings
from typing import Sequence

from .controls import NestingControls
from .errors import DegenerateWarning, DomainError, NestingViolation, ShapeMismatch
from .families import ArchimedeanFamily, family_descriptor, normalize_family


def validate_domain(fam: str | ArchimedeanFamily, theta: float) -> float:
    """Return ``theta`` as a float, or raise DomainError if it is outside the family's domain."""
    desc = family_descriptor(fam)
    th = float(theta)
    if not desc.in_domain(th):
        raise DomainError(
            f"{desc.family.value} parameter must lie in {desc.domain_str()}, got {th!r}"
        )
    return th


def validate_nesting(
    fam: str | ArchimedeanFamily,
    theta_parent: float,
    theta_children: Sequence[float],
    *,
    controls: NestingControls | None = None,
) -> None:
    """Check the sufficient nesting condition theta_parent <= min(theta_children).

    For Clayton a DegenerateWarning is emitted (construction still succeeds)
    when max(theta_children) reaches the configured threshold, by default
    theta + 2 theta^2 + 750 theta^5.
    """
    fam = normalize_family(fam)
    desc = family_descriptor(fam)
    phis = [float(p) for p in theta_children]
    if not phis:
        raise ValueError("at least one child parameter is required")
    if not all(desc.compatible(theta_parent, p) for p in phis):
        raise NestingViolation(
            f"violated sufficient nesting condition: parent parameter {float(theta_parent)!r} "
            f"exceeds min(children) = {min(phis)!r}"
        )
    if controls is None:
        controls = NestingControls()
    if fam is ArchimedeanFamily.clayton and controls.warn_degenerate:
        limit = controls.clayton_threshold(theta_parent)
        if max(phis) >= limit:
            warnings.warn(
                f"Clayton child parameter {max(phis)!r} is much larger than the parent "
                f"parameter {float(theta_parent)!r} (threshold {limit:.6g}); "
                "marginals may not be uniform",
                DegenerateWarning,
                stacklevel=3,
            )


def validate_descending(thetas: Sequence[float]) -> None:
    """Raise NestingViolation unless ``thetas`` is strictly descending."""
    ths = [float(t) for t in thetas]
    for a, b in zip(ths[:-1], ths[1:]):
        if not a > b:
            raise NestingViolation(
                f"violated sufficient nesting condition, parameters must be strictly descending: {ths}"
            )


def check_output_shape(shape: Sequence[int], d: int) -> None:
    if len(shape) != 2:
        raise ShapeMismatch(f"output must be 2-D (t, {d}), got shape {tuple(shape)}")
    if int(shape[1]) != int(d):
        raise ShapeMismatch(
            f"number of marginals in the output ({int(shape[1])}) and the copula ({int(d)}) differ"
        )
