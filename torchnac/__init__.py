"""torchnac: nested Archimedean copula sampling in PyTorch.

Clayton, AMH, Frank and Gumbel copulas, single-level nested copulas of all
four families, and doubly nested copulas and hierarchical chains (Gumbel).
"""

from __future__ import annotations

__version__ = "0.1.0"

from .families import ArchimedeanFamily, FamilyDescriptor, family_descriptor, normalize_family
from .errors import CopulaError, DomainError, NestingViolation, ShapeMismatch, DegenerateWarning
from .controls import NestingControls, SimulationControls
from .validation import validate_domain, validate_nesting, validate_descending
from .structure import (
    CopulaTree, TreeNode, LeafCopula, NestedCopula, DoubleNestedCopula, HierarchicalChain,
)
from .simulate import simulate_copula, simulate_copula_, simulate_uniform
from .dependence import CorrelationKind, correlation_from_parameter, parameter_from_correlation
from .stats import kendall_tau, spearman_rho, pearson_cor, kendall_matrix

import torch


def get_device(verbose: bool = False) -> torch.device:
    """Return the best available device (CUDA if available, else CPU)."""
    if torch.cuda.is_available():
        dev = torch.device("cuda")
    else:
        dev = torch.device("cpu")
    if verbose:
        print(f"torchnac: using device '{dev}'")
    return dev


# ---------------------------------------------------------------------------
# Family shortcut names
# ---------------------------------------------------------------------------
clayton = ArchimedeanFamily.clayton
amh = ArchimedeanFamily.amh
frank = ArchimedeanFamily.frank
gumbel = ArchimedeanFamily.gumbel

archimedean = list(ArchimedeanFamily)
# families supporting more than one nesting level
multilevel = [ArchimedeanFamily.gumbel]


__all__ = [
    "ArchimedeanFamily",
    "FamilyDescriptor",
    "family_descriptor",
    "normalize_family",
    # Errors
    "CopulaError",
    "DomainError",
    "NestingViolation",
    "ShapeMismatch",
    "DegenerateWarning",
    # Controls and validation
    "NestingControls",
    "SimulationControls",
    "validate_domain",
    "validate_nesting",
    "validate_descending",
    # Structures
    "CopulaTree",
    "TreeNode",
    "LeafCopula",
    "NestedCopula",
    "DoubleNestedCopula",
    "HierarchicalChain",
    # Simulation
    "simulate_copula",
    "simulate_copula_",
    "simulate_uniform",
    "get_device",
    # Dependence
    "CorrelationKind",
    "correlation_from_parameter",
    "parameter_from_correlation",
    "kendall_tau",
    "spearman_rho",
    "pearson_cor",
    "kendall_matrix",
    # Family shortcut names and lists
    "clayton",
    "amh",
    "frank",
    "gumbel",
    "archimedean",
    "multilevel",
]
