"""Exception and warning types raised by torchnac."""

from __future__ import annotations


class CopulaError(Exception):
    """Base class for copula model errors."""


class DomainError(CopulaError, ValueError):
    """A parameter, correlation or derived probability is outside its range."""


class NestingViolation(CopulaError, ValueError):
    """A parent parameter exceeds the smallest of its children's parameters."""


class ShapeMismatch(CopulaError, ValueError):
    """An output buffer does not match the copula's number of marginals."""


class DegenerateWarning(UserWarning):
    """Advisory: the requested model may produce non-uniform marginals."""
