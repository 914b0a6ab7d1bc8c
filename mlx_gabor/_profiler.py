"""
Lightweight profiling for mlx-gabor.

Records per-call wall time of the transform entry points, NumPy/MLX
buffer transfers around the FFT stages, and hit/miss counts of the kernel
spectrum cache. Everything is a no-op until enable_profiling() is called.
"""

from __future__ import annotations

import functools
import time
from collections import defaultdict
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

import mlx.core as mx
import numpy as np


@dataclass
class ProfileMetrics:
    """Metrics collected for a single profiled call."""

    function_name: str
    wall_time_ms: float
    samples: int = 0


@dataclass
class ProfilerState:
    """Global profiler state."""

    enabled: bool = False
    metrics: list[ProfileMetrics] = field(default_factory=list)
    transfer_log: list[tuple[str, str, int]] = field(default_factory=list)
    cache_stats: dict[str, dict[str, int]] = field(
        default_factory=lambda: defaultdict(lambda: {"hits": 0, "misses": 0})
    )


_profiler = ProfilerState()


def enable_profiling() -> None:
    """Enable the profiler and clear previous data."""
    _profiler.enabled = True
    clear_profiling_data()


def disable_profiling() -> None:
    """Disable the profiler."""
    _profiler.enabled = False


def is_profiling_enabled() -> bool:
    return _profiler.enabled


def get_metrics() -> list[ProfileMetrics]:
    return _profiler.metrics.copy()


def get_transfer_log() -> list[tuple[str, str, int]]:
    return _profiler.transfer_log.copy()


def get_cache_stats() -> dict[str, dict[str, int]]:
    """Get cache hit/miss statistics keyed by cache name."""
    return {name: dict(stats) for name, stats in _profiler.cache_stats.items()}


def clear_profiling_data() -> None:
    """Clear all profiling data without disabling."""
    _profiler.metrics.clear()
    _profiler.transfer_log.clear()
    _profiler.cache_stats.clear()


@contextmanager
def profile_section(name: str) -> Generator[None, None, None]:
    """
    Time a code section.

    Examples
    --------
    >>> with profile_section("analyze chunk"):
    ...     analyzer.analyze(chunk, t0, coefs)
    """
    if not _profiler.enabled:
        yield
        return

    start = time.perf_counter()
    yield
    _profiler.metrics.append(
        ProfileMetrics(function_name=name, wall_time_ms=(time.perf_counter() - start) * 1000)
    )


def log_transfer(direction: str, context: str, size_bytes: int) -> None:
    """
    Log a NumPy/MLX buffer transfer.

    Parameters
    ----------
    direction : str
        "to_mlx" or "to_numpy"
    context : str
        Where the transfer occurred.
    size_bytes : int
        Size of the transferred buffer.
    """
    if _profiler.enabled:
        _profiler.transfer_log.append((direction, context, size_bytes))


def log_cache_access(cache_name: str, hit: bool) -> None:
    """Count one cache access as a hit or miss."""
    if _profiler.enabled:
        _profiler.cache_stats[cache_name]["hits" if hit else "misses"] += 1


def to_mlx(array: np.ndarray, context: str) -> mx.array:
    """Convert a NumPy buffer to mx.array, logging the transfer."""
    log_transfer("to_mlx", context, array.nbytes)
    return mx.array(array)


def to_numpy(array: mx.array, context: str) -> np.ndarray:
    """Convert an mx.array to NumPy, logging the transfer."""
    log_transfer("to_numpy", context, array.nbytes)
    return np.array(array)


def profile(func: Callable | None = None, *, samples_arg: int | None = None) -> Callable:
    """
    Decorator recording the wall time of each call.

    Parameters
    ----------
    func : Callable
        Function to profile.
    samples_arg : int, optional
        Position of a sized argument whose length is recorded as the
        number of samples processed by the call.

    Examples
    --------
    >>> @profile(samples_arg=1)
    ... def analyze(self, signal, t0, coefs):
    ...     ...
    """

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not _profiler.enabled:
                return fn(*args, **kwargs)

            start = time.perf_counter()
            result = fn(*args, **kwargs)
            end = time.perf_counter()

            samples = 0
            if samples_arg is not None and len(args) > samples_arg:
                try:
                    samples = len(args[samples_arg])
                except TypeError:
                    samples = 0
            _profiler.metrics.append(
                ProfileMetrics(
                    function_name=fn.__qualname__,
                    wall_time_ms=(end - start) * 1000,
                    samples=samples,
                )
            )
            return result

        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


def generate_text_report() -> str:
    """
    Generate a text summary of profiling results.

    Returns
    -------
    str
        Formatted text report.
    """
    lines = ["=" * 80, "mlx-gabor - Performance Profile Report", "=" * 80]

    metrics = get_metrics()
    if metrics:
        lines.append("\n## Function Timings")
        lines.append("-" * 40)

        timing_map: dict[str, list[ProfileMetrics]] = defaultdict(list)
        for m in metrics:
            timing_map[m.function_name].append(m)

        for name, calls in sorted(
            timing_map.items(), key=lambda x: -sum(m.wall_time_ms for m in x[1])
        ):
            total = sum(m.wall_time_ms for m in calls)
            samples = sum(m.samples for m in calls)
            line = (
                f"{name:40} total={total:8.2f}ms  avg={total / len(calls):6.2f}ms  "
                f"calls={len(calls)}"
            )
            if samples and total > 0:
                line += f"  rate={samples / total * 1000:,.0f} samples/s"
            lines.append(line)

    transfers = get_transfer_log()
    if transfers:
        lines.append("\n## NumPy/MLX Transfers")
        lines.append("-" * 40)
        context_totals: dict[tuple[str, str], list[int]] = defaultdict(lambda: [0, 0])
        for direction, context, size in transfers:
            entry = context_totals[(direction, context)]
            entry[0] += 1
            entry[1] += size
        for (direction, context), (count, total) in sorted(
            context_totals.items(), key=lambda x: -x[1][1]
        ):
            lines.append(f"  {direction:9} {context}: {count}x, {total / 1024**2:.2f} MB")

    cache_stats = get_cache_stats()
    if cache_stats:
        lines.append("\n## Cache Statistics")
        lines.append("-" * 40)
        for cache_name, stats in cache_stats.items():
            hits = stats["hits"]
            misses = stats["misses"]
            total = hits + misses
            hit_rate = hits / total * 100 if total > 0 else 0
            lines.append(
                f"{cache_name:30} hits={hits:4}  misses={misses:4}  "
                f"hit_rate={hit_rate:.1f}%"
            )

    lines.append("\n" + "=" * 80)
    return "\n".join(lines)


def export_json() -> dict[str, Any]:
    """Export profiling data as a JSON-serializable dictionary."""
    return {
        "metrics": [
            {
                "function_name": m.function_name,
                "wall_time_ms": m.wall_time_ms,
                "samples": m.samples,
            }
            for m in get_metrics()
        ],
        "transfers": get_transfer_log(),
        "cache_stats": get_cache_stats(),
    }
