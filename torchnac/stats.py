"""Empirical diagnostics for generated samples: rank correlations and unit-interval clamping."""

from __future__ import annotations

import torch


def _as_tensor(x, *, device=None, dtype=None):
    if torch.is_tensor(x):
        t = x
        if device is not None:
            t = t.to(device=device)
        if dtype is not None:
            t = t.to(dtype=dtype)
        return t
    return torch.as_tensor(x, device=device, dtype=dtype)


def open_unit(u: torch.Tensor) -> torch.Tensor:
    """Clamp to the open interval (0, 1) at the resolution of ``u``'s dtype."""
    fi = torch.finfo(u.dtype)
    return u.clamp(min=fi.tiny, max=1.0 - fi.eps / 2.0)


def pearson_cor(x: torch.Tensor, y: torch.Tensor) -> float:
    x = _as_tensor(x).reshape(-1)
    y = _as_tensor(y, device=x.device, dtype=x.dtype).reshape(-1)
    if x.numel() != y.numel():
        raise ValueError("x and y must have the same length")
    if x.numel() == 0:
        return float("nan")
    xc = x - x.mean()
    yc = y - y.mean()
    num = (xc * yc).sum()
    den = torch.sqrt((xc * xc).sum() * (yc * yc).sum()).clamp_min(torch.finfo(x.dtype).tiny)
    return float((num / den).clamp(-1.0, 1.0).item())


def _count_inversions_merge(ranks_list: list[int], n: int) -> int:
    """Count inversions via iterative bottom-up merge sort, O(n log n)."""
    a = list(ranks_list)
    buf = [0] * n
    inv = 0
    width = 1
    while width < n:
        for start in range(0, n, 2 * width):
            mid = min(start + width, n)
            end = min(start + 2 * width, n)
            i, j, k = start, mid, start
            while i < mid and j < end:
                if a[i] <= a[j]:
                    buf[k] = a[i]
                    i += 1
                else:
                    buf[k] = a[j]
                    inv += mid - i
                    j += 1
                k += 1
            while i < mid:
                buf[k] = a[i]
                i += 1
                k += 1
            while j < end:
                buf[k] = a[j]
                j += 1
                k += 1
        a, buf = buf, a
        width *= 2
    return inv


def kendall_tau(x: torch.Tensor, y: torch.Tensor) -> float:
    """Kendall's tau for continuous data.

    O(n^2) vectorised for small n, O(n log n) merge-sort inversion count otherwise.
    """
    x = _as_tensor(x).reshape(-1)
    y = _as_tensor(y, device=x.device, dtype=x.dtype).reshape(-1)
    n = int(x.numel())
    if n != int(y.numel()):
        raise ValueError("x and y must have the same length")
    if n < 2:
        return float("nan")

    if n <= 200:
        s = torch.sign(x.unsqueeze(1) - x.unsqueeze(0)) * torch.sign(y.unsqueeze(1) - y.unsqueeze(0))
        iu = torch.triu_indices(n, n, offset=1, device=x.device)
        s_upper = s[iu[0], iu[1]]
        c = int((s_upper > 0).sum().item())
        d = int((s_upper < 0).sum().item())
        return 0.0 if c + d == 0 else (c - d) / (c + d)

    # Sort by x, count inversions in y-ranks
    y_sorted = y[torch.argsort(x)]
    order = torch.argsort(y_sorted, stable=True)
    ranks = torch.empty_like(order)
    ranks[order] = torch.arange(1, n + 1, device=x.device, dtype=order.dtype)
    inv = _count_inversions_merge(ranks.tolist(), n)
    tau = 1.0 - 4.0 * float(inv) / (float(n) * float(n - 1))
    return float(max(-1.0, min(1.0, tau)))


def _rank(x: torch.Tensor) -> torch.Tensor:
    idx = torch.argsort(x)
    ranks = torch.empty_like(x)
    ranks[idx] = torch.arange(1, x.numel() + 1, device=x.device, dtype=x.dtype)
    return ranks


def spearman_rho(x: torch.Tensor, y: torch.Tensor) -> float:
    """Spearman's rank correlation (Pearson correlation of the ranks)."""
    x = _as_tensor(x).reshape(-1)
    y = _as_tensor(y, device=x.device, dtype=x.dtype).reshape(-1)
    n = int(x.numel())
    if n != int(y.numel()):
        raise ValueError("x and y must have the same length")
    if n < 2:
        return float("nan")
    return pearson_cor(_rank(x), _rank(y))


def kendall_matrix(u: torch.Tensor) -> torch.Tensor:
    """Pairwise Kendall's tau of the columns of a (t, d) sample."""
    u = _as_tensor(u)
    if u.dim() != 2:
        raise ValueError("u must be a 2-D (t, d) sample")
    d = int(u.shape[1])
    out = torch.eye(d, dtype=torch.float64)
    for i in range(d):
        for j in range(i + 1, d):
            out[i, j] = out[j, i] = kendall_tau(u[:, i], u[:, j])
    return out
