"""
Sparse coefficient storage and the range protocol.

A Coefs store holds complex64 coefficients keyed by (band, sample_time).
Each band keeps its own local time axis: local index ``n`` of a band with
decimation ``D`` sits at global sample time ``n * D``. Ranges passed to the
read/write/process/fill operations are always in global samples and are
visited in ascending band order, then ascending time within a band.
"""

from __future__ import annotations

import bisect
import enum
import logging
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from numbers import Integral
from typing import TYPE_CHECKING, Any

import mlx.core as mx
import numpy as np

from ._validation import validate_band
from .errors import BoundMismatch

if TYPE_CHECKING:
    from .analyzer import Analyzer

logger = logging.getLogger(__name__)

# Local indices per storage block; forget_before releases whole blocks
_BLOCK_SIZE = 256

COEF_META_DTYPE = np.dtype([("band", np.int32), ("sample_time", np.int64)])


@dataclass(frozen=True, order=True)
class CoefMeta:
    """Coordinate of one coefficient: band number and global sample time."""

    band: int
    sample_time: int


class WriteCoefficientsMode(enum.Enum):
    """How write operations treat coordinates that do not exist yet."""

    FILL = "fill"
    ONLY_OVERWRITE = "only_overwrite"


Visitor = Callable[[CoefMeta, complex], complex]


def ceil_div(a: int, b: int) -> int:
    """Integer ceiling of a / b for positive b."""
    return -((-a) // b)


def as_sample_time(value: Any, name: str) -> int:
    """Coerce an integer-like sample time to int."""
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    return int(value)


def _as_values(values: Any) -> np.ndarray:
    if isinstance(values, mx.array):
        values = np.array(values)
    values = np.asarray(values, dtype=np.complex64)
    if values.ndim != 1:
        raise ValueError(f"coefficient values must be 1D, got {values.ndim}D")
    return values


def _as_meta_columns(meta: Any) -> tuple[np.ndarray, np.ndarray]:
    """Split meta into (band, sample_time) int64 columns."""
    if isinstance(meta, np.ndarray) and meta.dtype.names is not None:
        return meta["band"].astype(np.int64), meta["sample_time"].astype(np.int64)

    rows = [
        (m.band, m.sample_time) if isinstance(m, CoefMeta) else tuple(m)
        for m in meta
    ]
    table = np.array(rows, dtype=np.int64).reshape(-1, 2)
    return table[:, 0], table[:, 1]


class _BandCoefs:
    """
    Coefficients of one band, stored in fixed-size blocks.

    Blocks live in dicts keyed by block number with a sorted key list for
    ordered traversal. Absent entries always hold zero, so dense gathers
    need no masking.
    """

    __slots__ = ("_values", "_present", "_keys")

    def __init__(self) -> None:
        self._values: dict[int, np.ndarray] = {}
        self._present: dict[int, np.ndarray] = {}
        self._keys: list[int] = []

    def __len__(self) -> int:
        return sum(int(p.sum()) for p in self._present.values())

    @property
    def nbytes(self) -> int:
        return sum(
            self._values[k].nbytes + self._present[k].nbytes for k in self._keys
        )

    def _block(self, key: int) -> tuple[np.ndarray, np.ndarray]:
        values = self._values.get(key)
        if values is None:
            values = np.zeros(_BLOCK_SIZE, dtype=np.complex64)
            self._values[key] = values
            self._present[key] = np.zeros(_BLOCK_SIZE, dtype=bool)
            # Streaming appends land at the end
            if not self._keys or key > self._keys[-1]:
                self._keys.append(key)
            else:
                bisect.insort(self._keys, key)
        return values, self._present[key]

    def _drop(self, key: int) -> None:
        del self._values[key]
        del self._present[key]
        del self._keys[bisect.bisect_left(self._keys, key)]

    def _spans(
        self, start: int, stop: int, create: bool
    ) -> Iterator[tuple[int, int, int, int]]:
        """Yield (key, lo, hi, offset) for each block overlapping [start, stop)."""
        if stop <= start:
            return
        first, last = start // _BLOCK_SIZE, (stop - 1) // _BLOCK_SIZE
        if create:
            keys: Sequence[int] = range(first, last + 1)
        else:
            keys = self._keys[
                bisect.bisect_left(self._keys, first) : bisect.bisect_right(self._keys, last)
            ]
        for key in keys:
            base = key * _BLOCK_SIZE
            lo = max(start, base)
            hi = min(stop, base + _BLOCK_SIZE)
            yield key, lo - base, hi - base, lo - start

    def accumulate(self, start: int, values: np.ndarray) -> None:
        """Add values at local indices [start, start + len(values))."""
        for key, lo, hi, offset in self._spans(start, start + len(values), True):
            block, present = self._block(key)
            block[lo:hi] += values[offset : offset + hi - lo]
            present[lo:hi] = True

    def gather(self, start: int, stop: int) -> np.ndarray:
        """Dense values for [start, stop), zero where absent."""
        out = np.zeros(max(stop - start, 0), dtype=np.complex64)
        for key, lo, hi, offset in self._spans(start, stop, False):
            out[offset : offset + hi - lo] = self._values[key][lo:hi]
        return out

    def indices(self, start: int, stop: int) -> np.ndarray:
        """Ascending local indices of existing coefficients in [start, stop)."""
        found = [
            np.nonzero(self._present[key][lo:hi])[0] + key * _BLOCK_SIZE + lo
            for key, lo, hi, _ in self._spans(start, stop, False)
        ]
        if not found:
            return np.zeros(0, dtype=np.int64)
        return np.concatenate(found).astype(np.int64)

    def take(self, indices: np.ndarray) -> np.ndarray:
        """Values at existing local indices (as returned by indices())."""
        out = np.empty(len(indices), dtype=np.complex64)
        for key, lo, hi in self._groups(indices):
            out[lo:hi] = self._values[key][indices[lo:hi] - key * _BLOCK_SIZE]
        return out

    def assign(self, indices: np.ndarray, values: np.ndarray) -> None:
        """Store values at ascending local indices, creating them as needed."""
        for key, lo, hi in self._groups(indices):
            block, present = self._block(key)
            local = indices[lo:hi] - key * _BLOCK_SIZE
            block[local] = values[lo:hi]
            present[local] = True

    @staticmethod
    def _groups(indices: np.ndarray) -> Iterator[tuple[int, int, int]]:
        """Yield (key, lo, hi) runs of ascending indices sharing a block."""
        if len(indices) == 0:
            return
        keys = indices // _BLOCK_SIZE
        starts = np.flatnonzero(np.diff(keys)) + 1
        bounds = [0, *starts.tolist(), len(indices)]
        for lo, hi in zip(bounds[:-1], bounds[1:]):
            yield int(keys[lo]), lo, hi

    def forget_before(self, first_kept: int, clean_cut: bool) -> int:
        """Release coefficients below local index first_kept; return count."""
        removed = 0
        cut = bisect.bisect_left(self._keys, first_kept // _BLOCK_SIZE)
        for key in self._keys[:cut]:
            removed += int(self._present[key].sum())
            del self._values[key]
            del self._present[key]
        del self._keys[:cut]

        key = first_kept // _BLOCK_SIZE
        if clean_cut and key in self._values:
            local = first_kept - key * _BLOCK_SIZE
            present = self._present[key]
            removed += int(present[:local].sum())
            self._values[key][:local] = 0
            present[:local] = False
            if not present.any():
                self._drop(key)
        return removed

    def bounds(self) -> tuple[int, int] | None:
        """First and last existing local index, or None if empty."""
        first = last = None
        for key in self._keys:
            hits = np.flatnonzero(self._present[key])
            if len(hits):
                first = key * _BLOCK_SIZE + int(hits[0])
                break
        for key in reversed(self._keys):
            hits = np.flatnonzero(self._present[key])
            if len(hits):
                last = key * _BLOCK_SIZE + int(hits[-1])
                break
        if first is None:
            return None
        return first, last


class Coefs:
    """
    Sparse store of complex coefficients bound to one Analyzer.

    Parameters
    ----------
    analyzer : Analyzer
        Filterbank whose band layout this store follows for its lifetime.

    Notes
    -----
    A store is not thread-safe: analyze, forget_before, process, fill and
    write need exclusive access; reads may run concurrently with each other
    only. Visitors passed to process/fill must not modify the store.

    Examples
    --------
    >>> coefs = Coefs(analyzer)
    >>> analyzer.analyze(signal, 0, coefs)
    >>> values, meta = coefs.read_with_meta(0, analyzer.n_bands, 0, 4096)
    """

    def __init__(self, analyzer: Analyzer):
        from .analyzer import Analyzer

        if not isinstance(analyzer, Analyzer):
            raise TypeError(f"analyzer must be Analyzer, got {type(analyzer).__name__}")
        self._analyzer = analyzer
        self._decimation = tuple(
            analyzer.band_decimation(band) for band in range(analyzer.n_bands)
        )
        self._bands = [_BandCoefs() for _ in range(analyzer.n_bands)]

    @property
    def analyzer(self) -> Analyzer:
        """The analyzer this store was created for."""
        return self._analyzer

    def __len__(self) -> int:
        return sum(len(band) for band in self._bands)

    def __repr__(self) -> str:
        return f"Coefs(n_bands={len(self._bands)}, count={len(self)})"

    @property
    def nbytes(self) -> int:
        """Bytes held by coefficient blocks."""
        return sum(band.nbytes for band in self._bands)

    def band_time_range(self, band: int) -> tuple[int, int] | None:
        """
        Global sample times of the first and last existing coefficient.

        Returns None when the band holds no coefficients.
        """
        validate_band(band, len(self._bands))
        bounds = self._bands[band].bounds()
        if bounds is None:
            return None
        decimation = self._decimation[band]
        return bounds[0] * decimation, bounds[1] * decimation

    def require_bound(self, analyzer: Analyzer) -> None:
        """
        Check that analyzer has the band layout this store was created for.

        Raises
        ------
        BoundMismatch
            If the analyzer was built from different parameters.
        """
        if analyzer is self._analyzer:
            return
        if getattr(analyzer, "params", None) != self._analyzer.params:
            raise BoundMismatch(
                f"coefficients were created for {self._analyzer.params}, "
                f"not {getattr(analyzer, 'params', analyzer)}"
            )

    # Transform access, in local band indices

    def _accumulate(self, band: int, start: int, values: np.ndarray) -> None:
        self._bands[band].accumulate(start, values)

    def _gather(self, band: int, start: int, stop: int) -> np.ndarray:
        return self._bands[band].gather(start, stop)

    # Retention

    def forget_before(self, limit: int, clean_cut: bool = False) -> None:
        """
        Discard coefficients whose sample time is before limit.

        Parameters
        ----------
        limit : int
            Global sample time. Nothing at or after it is touched.
        clean_cut : bool, default=False
            If False, only storage blocks lying entirely before limit are
            released, so up to one block per band of older coefficients may
            survive. If True, every coefficient before limit is removed.
        """
        limit = as_sample_time(limit, "limit")
        removed = 0
        for band, decimation in zip(self._bands, self._decimation):
            removed += band.forget_before(ceil_div(limit, decimation), clean_cut)
        logger.debug(
            "forget_before(%d, clean_cut=%s) released %d coefficients",
            limit,
            clean_cut,
            removed,
        )

    # Range protocol

    def _spans(
        self, from_band: int, to_band: int, from_sample_time: int, to_sample_time: int
    ) -> Iterator[tuple[int, int, int, int]]:
        """Yield (band, decimation, n_lo, n_hi) in traversal order."""
        from_band = int(from_band)
        to_band = int(to_band)
        from_sample_time = as_sample_time(from_sample_time, "from_sample_time")
        to_sample_time = as_sample_time(to_sample_time, "to_sample_time")

        for band in range(max(from_band, 0), min(to_band, len(self._bands))):
            decimation = self._decimation[band]
            n_lo = ceil_div(from_sample_time, decimation)
            n_hi = ceil_div(to_sample_time, decimation)
            if n_lo < n_hi:
                yield band, decimation, n_lo, n_hi

    def _targets(self, band: int, n_lo: int, n_hi: int, mode: WriteCoefficientsMode) -> np.ndarray:
        if mode is WriteCoefficientsMode.FILL:
            return np.arange(n_lo, n_hi, dtype=np.int64)
        if mode is WriteCoefficientsMode.ONLY_OVERWRITE:
            return self._bands[band].indices(n_lo, n_hi)
        raise TypeError(f"mode must be WriteCoefficientsMode, got {mode!r}")

    def read(
        self, from_band: int, to_band: int, from_sample_time: int, to_sample_time: int
    ) -> np.ndarray:
        """
        Read existing coefficients in traversal order.

        Returns
        -------
        np.ndarray
            complex64 array, one value per existing coefficient.
        """
        return self.read_with_meta(from_band, to_band, from_sample_time, to_sample_time)[0]

    def read_with_meta(
        self, from_band: int, to_band: int, from_sample_time: int, to_sample_time: int
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Read existing coefficients and their coordinates in traversal order.

        Returns
        -------
        values : np.ndarray
            complex64 coefficient values.
        meta : np.ndarray
            Records of COEF_META_DTYPE, parallel to values.
        """
        values, bands, times = [], [], []
        for band, decimation, n_lo, n_hi in self._spans(
            from_band, to_band, from_sample_time, to_sample_time
        ):
            store = self._bands[band]
            indices = store.indices(n_lo, n_hi)
            if len(indices) == 0:
                continue
            values.append(store.take(indices))
            bands.append(np.full(len(indices), band, dtype=np.int32))
            times.append(indices * decimation)

        if not values:
            return np.zeros(0, dtype=np.complex64), np.zeros(0, dtype=COEF_META_DTYPE)
        meta = np.empty(sum(len(v) for v in values), dtype=COEF_META_DTYPE)
        meta["band"] = np.concatenate(bands)
        meta["sample_time"] = np.concatenate(times)
        return np.concatenate(values), meta

    def _visit(
        self,
        from_band: int,
        to_band: int,
        from_sample_time: int,
        to_sample_time: int,
        visit: Visitor,
        mode: WriteCoefficientsMode,
    ) -> None:
        if not callable(visit):
            raise TypeError(f"visit must be callable, got {type(visit).__name__}")
        for band, decimation, n_lo, n_hi in self._spans(
            from_band, to_band, from_sample_time, to_sample_time
        ):
            store = self._bands[band]
            indices = self._targets(band, n_lo, n_hi, mode)
            if len(indices) == 0:
                continue
            if mode is WriteCoefficientsMode.FILL:
                current = store.gather(n_lo, n_hi)
            else:
                current = store.take(indices)
            updated = np.empty(len(indices), dtype=np.complex64)
            for k, (n, value) in enumerate(zip(indices.tolist(), current.tolist())):
                updated[k] = visit(CoefMeta(band, n * decimation), value)
            store.assign(indices, updated)

    def process(
        self,
        from_band: int,
        to_band: int,
        from_sample_time: int,
        to_sample_time: int,
        visit: Visitor,
    ) -> None:
        """
        Replace every existing coefficient in range with visit(meta, value).

        Coordinates that do not exist are neither visited nor created.

        Examples
        --------
        >>> coefs.process(0, analyzer.n_bands, 0, 48000, lambda meta, c: 0.5 * c)
        """
        self._visit(
            from_band, to_band, from_sample_time, to_sample_time,
            visit, WriteCoefficientsMode.ONLY_OVERWRITE,
        )

    def fill(
        self,
        from_band: int,
        to_band: int,
        from_sample_time: int,
        to_sample_time: int,
        visit: Visitor,
    ) -> None:
        """
        Like process, but also visit missing coordinates with value 0.

        Every coordinate in range exists afterwards, even if visit returned
        zero for it. The range must be finite.
        """
        self._visit(
            from_band, to_band, from_sample_time, to_sample_time,
            visit, WriteCoefficientsMode.FILL,
        )

    def write(
        self,
        from_band: int,
        to_band: int,
        from_sample_time: int,
        to_sample_time: int,
        values: Any,
        mode: WriteCoefficientsMode = WriteCoefficientsMode.FILL,
    ) -> None:
        """
        Write values positionally in traversal order.

        With ONLY_OVERWRITE only existing coordinates are visited and consume
        values; with FILL every coordinate in range does. Coordinates visited
        after values run out are set to zero.
        """
        values = _as_values(values)
        cursor = 0
        for band, _, n_lo, n_hi in self._spans(
            from_band, to_band, from_sample_time, to_sample_time
        ):
            indices = self._targets(band, n_lo, n_hi, mode)
            count = len(indices)
            if count == 0:
                continue
            chunk = np.zeros(count, dtype=np.complex64)
            supplied = values[cursor : cursor + count]
            chunk[: len(supplied)] = supplied
            cursor += count
            self._bands[band].assign(indices, chunk)

    def write_with_meta(
        self,
        from_band: int,
        to_band: int,
        from_sample_time: int,
        to_sample_time: int,
        values: Any,
        meta: Any,
        mode: WriteCoefficientsMode = WriteCoefficientsMode.FILL,
    ) -> bool:
        """
        Write values positionally, checking each position against meta.

        Values and meta are consumed in lockstep, one position per visited
        coordinate. The first position whose meta does not name the
        coordinate being written ends the input: it and every later visited
        coordinate are written as zero, the same as positions past the end of
        either sequence.

        Returns
        -------
        bool
            True if every visited coordinate matched its meta entry.
        """
        values = _as_values(values)
        meta_band, meta_time = _as_meta_columns(meta)
        available = min(len(values), len(meta_band))

        ok = True
        cursor = 0
        for band, decimation, n_lo, n_hi in self._spans(
            from_band, to_band, from_sample_time, to_sample_time
        ):
            indices = self._targets(band, n_lo, n_hi, mode)
            count = len(indices)
            if count == 0:
                continue
            chunk = np.zeros(count, dtype=np.complex64)
            usable = min(max(available - cursor, 0), count)
            if usable < count:
                ok = False
            if usable:
                window = slice(cursor, cursor + usable)
                match = (meta_band[window] == band) & (
                    meta_time[window] == indices[:usable] * decimation
                )
                mismatches = np.flatnonzero(~match)
                if len(mismatches):
                    ok = False
                    usable = int(mismatches[0])
                    available = cursor + usable
                chunk[:usable] = values[cursor:cursor + usable]
            cursor += count
            self._bands[band].assign(indices, chunk)
        return ok
