"""Nested Archimedean copula structures and their arena representation.

User-facing types are immutable:

- ``LeafCopula``: one unnested block of ``n`` marginals sharing ``theta``.
- ``NestedCopula``: C_theta(C_phi_1(...), ..., C_phi_k(...), u_1, ..., u_m).
- ``DoubleNestedCopula`` (Gumbel): C_theta(N_1, ..., N_k) over nested copulas.
- ``HierarchicalChain`` (Gumbel): C_theta_{k-1}(... C_theta_2(C_theta_1(u_1, u_2), u_3) ..., u_k).

Each one compiles at construction into a ``CopulaTree``: a flat tuple of
``TreeNode`` records addressed by index (parents before children, root at 0)
built by grafting already-validated subtrees, so validation and traversal
never recurse and every node is validated exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import torch

from .controls import NestingControls, SimulationControls
from .errors import DomainError
from .families import ArchimedeanFamily, normalize_family
from .validation import validate_descending, validate_domain, validate_nesting


@dataclass(frozen=True)
class TreeNode:
    parent: int  # -1 for the root
    theta: float
    children: tuple[int, ...]
    n_free: int  # marginals modelled by this node only (after the child spans)
    start: int  # output column span [start, stop)
    stop: int


@dataclass(frozen=True)
class CopulaTree:
    family: ArchimedeanFamily
    nodes: tuple[TreeNode, ...]
    depth: int

    @property
    def d(self) -> int:
        return self.nodes[0].stop - self.nodes[0].start

    @property
    def root(self) -> TreeNode:
        return self.nodes[0]

    def parent_theta(self, index: int) -> float:
        """Parameter of the node's parent; 1.0 (independence) above the root."""
        p = self.nodes[index].parent
        return 1.0 if p < 0 else self.nodes[p].theta

    def bottom_up(self):
        """Node indices with every child before its parent."""
        return range(len(self.nodes) - 1, -1, -1)

    @staticmethod
    def leaf(fam: ArchimedeanFamily, theta: float, n: int) -> "CopulaTree":
        return CopulaTree(fam, (TreeNode(-1, float(theta), (), int(n), 0, int(n)),), 1)

    @staticmethod
    def compose(
        fam: ArchimedeanFamily,
        theta: float,
        subtrees: Sequence["CopulaTree"],
        n_free: int = 0,
    ) -> "CopulaTree":
        """Graft validated ``subtrees`` (left to right) under a new root with ``n_free`` own marginals."""
        nodes: list[TreeNode] = [TreeNode(-1, float(theta), (), int(n_free), 0, 0)]
        root_children: list[int] = []
        col = 0
        for sub in subtrees:
            offset = len(nodes)
            shift = col - sub.root.start
            root_children.append(offset)
            for nd in sub.nodes:
                nodes.append(
                    TreeNode(
                        parent=0 if nd.parent < 0 else nd.parent + offset,
                        theta=nd.theta,
                        children=tuple(c + offset for c in nd.children),
                        n_free=nd.n_free,
                        start=nd.start + shift,
                        stop=nd.stop + shift,
                    )
                )
            col += sub.d
        nodes[0] = TreeNode(-1, float(theta), tuple(root_children), int(n_free), 0, col + int(n_free))
        depth = 1 + max((s.depth for s in subtrees), default=0)
        return CopulaTree(fam, tuple(nodes), depth)


class _Simulable:
    """Simulation conveniences shared by the copula types."""

    @property
    def depth(self) -> int:
        return self.tree.depth

    def simulate(
        self,
        t: int,
        *,
        seeds=(),
        generator: torch.Generator | None = None,
        controls: SimulationControls | None = None,
        device=None,
        dtype: torch.dtype = torch.float64,
    ) -> torch.Tensor:
        """Return a fresh (t, n) tensor of samples."""
        from .simulate import simulate_copula

        return simulate_copula(
            t, self, seeds=seeds, generator=generator, controls=controls, device=device, dtype=dtype,
        )

    def simulate_(self, out, *, seeds=(), generator=None, controls=None):
        """Fill the caller-owned (t, n) buffer ``out`` in place and return it."""
        from .simulate import simulate_copula_

        return simulate_copula_(out, self, seeds=seeds, generator=generator, controls=controls)


def _theta_from_correlation(fam, rho, kind) -> float:
    from .dependence import parameter_from_correlation

    return parameter_from_correlation(fam, rho, kind)


@dataclass(frozen=True)
class LeafCopula(_Simulable):
    family: ArchimedeanFamily
    n: int
    theta: float
    tree: CopulaTree = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        fam = normalize_family(self.family)
        if int(self.n) < 1:
            raise ValueError(f"n must be >= 1, got {self.n}")
        th = validate_domain(fam, self.theta)
        object.__setattr__(self, "family", fam)
        object.__setattr__(self, "n", int(self.n))
        object.__setattr__(self, "theta", th)
        object.__setattr__(self, "tree", CopulaTree.leaf(fam, th, int(self.n)))

    @classmethod
    def from_correlation(cls, family, n: int, rho: float, kind="kendall") -> "LeafCopula":
        """Leaf whose pairwise Kendall/Spearman correlation equals ``rho``."""
        fam = normalize_family(family)
        return cls(fam, n, _theta_from_correlation(fam, rho, kind))


@dataclass(frozen=True)
class NestedCopula(_Simulable):
    children: tuple[LeafCopula, ...]
    theta: float
    m: int = 0
    controls: NestingControls | None = field(default=None, repr=False, compare=False)
    tree: CopulaTree = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        children = tuple(self.children)
        if not children:
            raise ValueError("NestedCopula needs at least one child copula")
        for ch in children:
            if not isinstance(ch, LeafCopula):
                raise TypeError(f"children must be LeafCopula instances, got {type(ch).__name__}")
        fam = children[0].family
        if any(ch.family is not fam for ch in children):
            raise ValueError("parent and children copulas must belong to the same family")
        if int(self.m) < 0:
            raise DomainError(f"m must be >= 0, got {self.m}")
        th = validate_domain(fam, self.theta)
        validate_nesting(fam, th, [ch.theta for ch in children], controls=self.controls)
        object.__setattr__(self, "children", children)
        object.__setattr__(self, "theta", th)
        object.__setattr__(self, "m", int(self.m))
        object.__setattr__(self, "tree", CopulaTree.compose(fam, th, [ch.tree for ch in children], int(self.m)))

    @property
    def family(self) -> ArchimedeanFamily:
        return self.tree.family

    @property
    def n(self) -> int:
        return self.tree.d

    @classmethod
    def from_correlation(cls, children, rho: float, m: int = 0, kind="kendall", controls=None) -> "NestedCopula":
        children = tuple(children)
        if not children:
            raise ValueError("NestedCopula needs at least one child copula")
        return cls(children, _theta_from_correlation(children[0].family, rho, kind), m, controls)


@dataclass(frozen=True)
class DoubleNestedCopula(_Simulable):
    children: tuple[NestedCopula, ...]
    theta: float
    tree: CopulaTree = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        children = tuple(self.children)
        if not children:
            raise ValueError("DoubleNestedCopula needs at least one child copula")
        for ch in children:
            if not isinstance(ch, NestedCopula):
                raise TypeError(f"children must be NestedCopula instances, got {type(ch).__name__}")
            if ch.family is not ArchimedeanFamily.gumbel:
                raise ValueError("double nesting is only available for the Gumbel family")
        fam = ArchimedeanFamily.gumbel
        th = validate_domain(fam, self.theta)
        validate_nesting(fam, th, [ch.theta for ch in children])
        object.__setattr__(self, "children", children)
        object.__setattr__(self, "theta", th)
        object.__setattr__(self, "tree", CopulaTree.compose(fam, th, [ch.tree for ch in children]))

    @property
    def family(self) -> ArchimedeanFamily:
        return ArchimedeanFamily.gumbel

    @property
    def n(self) -> int:
        return self.tree.d

    @classmethod
    def from_correlation(cls, children, rho: float, kind="kendall") -> "DoubleNestedCopula":
        return cls(tuple(children), _theta_from_correlation(ArchimedeanFamily.gumbel, rho, kind))


@dataclass(frozen=True)
class HierarchicalChain(_Simulable):
    """Gumbel chain with strictly descending parameters theta_1 > ... > theta_{k-1} >= 1.

    theta_1 couples the first two marginals; every further parameter adds one
    marginal. The chain is closed by the independence copula, so n = len(thetas) + 1.
    """

    thetas: tuple[float, ...]
    tree: CopulaTree = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        thetas = tuple(float(t) for t in self.thetas)
        if not thetas:
            raise ValueError("HierarchicalChain needs at least one parameter")
        fam = ArchimedeanFamily.gumbel
        for th in thetas:
            validate_domain(fam, th)
        validate_descending(thetas)
        tree = CopulaTree.leaf(fam, thetas[0], 2)
        for th in thetas[1:]:
            tree = CopulaTree.compose(fam, th, [tree], 1)
        object.__setattr__(self, "thetas", thetas)
        object.__setattr__(self, "tree", tree)

    @property
    def family(self) -> ArchimedeanFamily:
        return ArchimedeanFamily.gumbel

    @property
    def n(self) -> int:
        return len(self.thetas) + 1

    @classmethod
    def from_correlation(cls, rhos: Sequence[float], kind="kendall") -> "HierarchicalChain":
        return cls(tuple(_theta_from_correlation(ArchimedeanFamily.gumbel, r, kind) for r in rhos))
