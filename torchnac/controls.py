"""Construction and simulation controls for nested Archimedean copulas."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class NestingControls:
    warn_degenerate: bool = True
    # Clayton advisory threshold sum(coef * theta**power); default theta + 2 theta^2 + 750 theta^5.
    clayton_warning_terms: tuple[tuple[float, int], ...] = ((1.0, 1), (2.0, 2), (750.0, 5))

    def __post_init__(self):
        terms = tuple((float(c), int(p)) for c, p in self.clayton_warning_terms)
        if not terms:
            raise ValueError("clayton_warning_terms must not be empty")
        for c, p in terms:
            if c < 0.0:
                raise ValueError("clayton_warning_terms coefficients must be >= 0")
            if p < 0:
                raise ValueError("clayton_warning_terms powers must be >= 0")
        self.clayton_warning_terms = terms

    def clayton_threshold(self, theta: float) -> float:
        th = float(theta)
        return sum(c * th**p for c, p in self.clayton_warning_terms)

    def str(self) -> str:
        """Human-readable summary."""
        poly = " + ".join(f"{c:g}*theta^{p}" for c, p in self.clayton_warning_terms)
        parts = [
            f"Warn on degenerate Clayton nesting: {self.warn_degenerate}",
            f"Clayton warning threshold: {poly}",
        ]
        return "\n".join(parts)


@dataclass
class SimulationControls:
    chunk_size: int = 65536  # rows per independently seeded block
    num_threads: int = 1  # parallel block sampling threads (1 = sequential)
    max_pieces: int = 1 << 22  # flattened auxiliary draws materialised at once
    logseries_max_terms: int = 1 << 24
    # Frank parameters above this use Kemp's direct sampler instead of a cdf table.
    logseries_table_max_theta: float = 10.0
    gamma_bisection_steps: int = 64

    def __post_init__(self):
        if int(self.chunk_size) <= 0:
            raise ValueError("chunk_size must be positive")
        if int(self.num_threads) < 1:
            raise ValueError("num_threads must be >= 1")
        if int(self.max_pieces) <= 0:
            raise ValueError("max_pieces must be positive")
        if int(self.logseries_max_terms) < 2:
            raise ValueError("logseries_max_terms must be >= 2")
        if not float(self.logseries_table_max_theta) > 0.0:
            raise ValueError("logseries_table_max_theta must be > 0")
        if int(self.gamma_bisection_steps) < 1:
            raise ValueError("gamma_bisection_steps must be >= 1")

    def str(self) -> str:
        """Human-readable summary."""
        parts = [
            f"Chunk size: {self.chunk_size}",
            f"Number of threads: {self.num_threads}",
            f"Max auxiliary pieces: {self.max_pieces}",
            f"Log-series table cap: {self.logseries_max_terms}",
            f"Log-series table up to theta: {self.logseries_table_max_theta:g}",
            f"Gamma bisection steps: {self.gamma_bisection_steps}",
        ]
        return "\n".join(parts)
