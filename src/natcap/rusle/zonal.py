"""Per-region statistics computed tile by tile from commutative partials."""
import collections
import dataclasses
import logging
import math

import numpy

from . import evaluation
from . import raster
from .unit_registry import SQUARE_METERS_TO_HECTARES

LOGGER = logging.getLogger(__name__)

REDUCERS = ('mean', 'median', 'stddev', 'min', 'max', 'sum', 'count')
DEFAULT_BIN_WIDTH = 0.01


class PartialStatistics:
    """Mergeable summary of the valid pixels of one or more tiles.

    Mean and variance use Welford's accumulators combined with Chan's
    parallel formula. The median comes from a histogram of fixed-width
    bins with exact integer counts, so it is exact to ``bin_width`` and
    does not depend on how the pixels were split into tiles.
    """

    def __init__(self, bin_width=DEFAULT_BIN_WIDTH):
        self.bin_width = bin_width
        self.count = 0
        self.mean = 0.0
        self.m2 = 0.0
        self.min = math.inf
        self.max = -math.inf
        self.sum = 0.0
        self.histogram = collections.Counter()

    @classmethod
    def from_values(cls, values, bin_width=DEFAULT_BIN_WIDTH):
        """Summarize the non-NaN entries of ``values``."""
        partial = cls(bin_width)
        valid = values[~numpy.isnan(values)]
        if valid.size == 0:
            return partial
        partial.count = int(valid.size)
        partial.mean = float(valid.mean())
        partial.m2 = float(((valid - partial.mean) ** 2).sum())
        partial.min = float(valid.min())
        partial.max = float(valid.max())
        partial.sum = float(valid.sum())
        bin_ids, bin_counts = numpy.unique(
            numpy.floor(valid / bin_width).astype(numpy.int64),
            return_counts=True)
        partial.histogram.update(
            dict(zip(bin_ids.tolist(), bin_counts.tolist())))
        return partial

    def merge(self, other):
        """Return the summary of the union of both partials' pixels."""
        if other.bin_width != self.bin_width:
            raise ValueError('Cannot merge statistics with different bins')
        merged = PartialStatistics(self.bin_width)
        merged.count = self.count + other.count
        if merged.count == 0:
            return merged
        delta = other.mean - self.mean
        merged.mean = self.mean + delta * other.count / merged.count
        merged.m2 = (self.m2 + other.m2 +
                     delta ** 2 * self.count * other.count / merged.count)
        merged.min = min(self.min, other.min)
        merged.max = max(self.max, other.max)
        merged.sum = self.sum + other.sum
        merged.histogram = self.histogram + other.histogram
        return merged

    def _bin_at_rank(self, rank):
        seen = 0
        for bin_id in sorted(self.histogram):
            seen += self.histogram[bin_id]
            if seen > rank:
                return bin_id
        raise IndexError(rank)

    def median(self):
        # center of the bin holding the middle value(s)
        lower = self._bin_at_rank((self.count - 1) // 2)
        upper = self._bin_at_rank(self.count // 2)
        return ((lower + upper) / 2 + 0.5) * self.bin_width

    def result(self, reducer):
        """Finalize one reducer. Returns NaN for an empty summary."""
        if reducer == 'count':
            return self.count
        if self.count == 0:
            return math.nan
        if reducer == 'mean':
            return self.mean
        if reducer == 'median':
            return self.median()
        if reducer == 'stddev':
            return math.sqrt(self.m2 / self.count)
        if reducer == 'min':
            return self.min
        if reducer == 'max':
            return self.max
        if reducer == 'sum':
            return self.sum
        raise ValueError(f'Unknown reducer {reducer}')


@dataclasses.dataclass(frozen=True)
class ZonalResult:
    """Statistics of one raster over one region.

    Attributes:
        region (str): region name.
        statistics (dict): reducer name to value.
        class_areas (dict): class id to area in hectares.
        pixel_count (int): number of valid pixels reduced.
        degraded (bool): whether a coarser scale than requested was used.
        effective_scale (float): the pixel size the values were computed at.
    """
    region: str
    statistics: dict
    class_areas: dict
    pixel_count: int
    degraded: bool = False
    effective_scale: float = None

    def as_records(self):
        """Yield ``((region, key), value)`` for every statistic and class."""
        for reducer, value in self.statistics.items():
            yield (self.region, reducer), value
        for class_id, area in self.class_areas.items():
            yield (self.region, class_id), area


@dataclasses.dataclass(frozen=True)
class NoCoverage:
    """The explicit result of reducing over a region with no data."""
    region: str
    reason: str

    def __bool__(self):
        return False

    def as_records(self):
        return iter(())


def _request_grid(handle, region, scale):
    scale = scale or handle.scale
    if scale is None:
        raise ValueError(f'{handle} has no nominal scale; pass one')
    bounds = region.bounds
    if handle.extent is not None:
        bounds = raster.intersect_bounds(handle.extent, region.bounds)
    if bounds is None:
        return None
    return raster.Grid.from_bounds(region.crs, bounds, scale)


def _check_single_band(handle):
    if handle.is_series or len(handle.band_names) != 1:
        raise ValueError(
            f'Zonal reduction needs a static single-band raster, got '
            f'{handle}')


def reduce(handle, region, reducers, executor, scale=None,
           class_handle=None, scheme=None, bin_width=DEFAULT_BIN_WIDTH):
    """Reduce the pixels of ``handle`` whose centers fall in ``region``.

    Args:
        handle (RasterHandle): static single-band raster.
        region (Region): the zone.
        reducers (iterable): any of ``REDUCERS``.
        executor (TileExecutor): evaluates the request.
        scale (float): pixel size to reduce at; defaults to the handle's.
        class_handle (RasterHandle): optional class raster; the area of
            each class of ``scheme`` inside the region is reported.
        scheme (ClassificationScheme): required with ``class_handle``.
        bin_width (float): histogram bin width used for the median.

    Returns:
        ``ZonalResult``, or ``NoCoverage`` when the region doesn't intersect
        the raster or contains no valid pixels.
    """
    reducers = tuple(reducers)
    unknown = set(reducers) - set(REDUCERS)
    if unknown:
        raise ValueError(f'Unknown reducers: {sorted(unknown)}')
    _check_single_band(handle)
    if class_handle is not None and scheme is None:
        raise ValueError('A classification scheme is needed for class areas')

    grid = _request_grid(handle, region, scale)
    if grid is None:
        LOGGER.info(f'region {region.name} does not intersect {handle}')
        return NoCoverage(region.name, 'region does not intersect the raster')

    values_handle = raster.clip(handle, region)
    classes_handle = None
    class_ids = ()
    depth = handle.depth
    if class_handle is not None:
        classes_handle = raster.clip(class_handle, region)
        class_ids = scheme.class_ids
        depth = max(depth, class_handle.depth)

    def tile_func(tile):
        memo = {}
        values = evaluation.evaluate(values_handle, tile.grid, memo)
        partial = PartialStatistics.from_values(values, bin_width)
        areas = {}
        if classes_handle is not None:
            classes = evaluation.evaluate(classes_handle, tile.grid, memo)
            for class_id in class_ids:
                areas[class_id] = (
                    numpy.count_nonzero(classes == class_id) *
                    tile.grid.pixel_area)
        return partial, areas

    def merge(accumulator, tile, tile_result):
        statistics, areas = accumulator
        tile_statistics, tile_areas = tile_result
        for class_id, area in tile_areas.items():
            areas[class_id] += area
        return statistics.merge(tile_statistics), areas

    result = executor.execute(
        grid, tile_func, merge,
        lambda g: (PartialStatistics(bin_width), dict.fromkeys(class_ids, 0.0)),
        depth=depth)
    statistics, areas = result.value
    if statistics.count == 0:
        LOGGER.info(f'region {region.name} has no valid pixels of {handle}')
        return NoCoverage(region.name, 'region contains no valid pixels')

    return ZonalResult(
        region=region.name,
        statistics={r: statistics.result(r) for r in reducers},
        class_areas={
            class_id: area * SQUARE_METERS_TO_HECTARES
            for class_id, area in areas.items()},
        pixel_count=statistics.count,
        degraded=result.degraded,
        effective_scale=result.effective_scale)


@dataclasses.dataclass(frozen=True)
class ValueHistogram:
    """Pixel counts of a raster in equal-width buckets over a region."""
    region: str
    edges: tuple
    counts: tuple
    degraded: bool = False
    effective_scale: float = None


def histogram(handle, region, executor, bins=40, value_range=(0, 150),
              scale=None):
    """Count pixels of ``handle`` in ``region`` per equal-width bucket.

    Only values in ``[value_range[0], value_range[1])`` are counted.

    Returns:
        ``ValueHistogram`` or ``NoCoverage``.
    """
    _check_single_band(handle)
    low, high = value_range
    if high <= low or bins < 1:
        raise ValueError(f'Invalid histogram range {value_range} / {bins}')
    grid = _request_grid(handle, region, scale)
    if grid is None:
        return NoCoverage(region.name, 'region does not intersect the raster')
    values_handle = raster.clip(handle, region)

    def tile_func(tile):
        values = evaluation.evaluate(values_handle, tile.grid, {})
        values = values[(values >= low) & (values < high)]
        counts, _ = numpy.histogram(values, bins=bins, range=(low, high))
        return counts

    def merge(total, tile, counts):
        return total + counts

    result = executor.execute(
        grid, tile_func, merge,
        lambda g: numpy.zeros(bins, dtype=numpy.int64), depth=handle.depth)
    if result.value.sum() == 0:
        return NoCoverage(region.name, 'region contains no pixels in range')
    return ValueHistogram(
        region=region.name,
        edges=tuple(numpy.linspace(low, high, bins + 1).tolist()),
        counts=tuple(int(c) for c in result.value),
        degraded=result.degraded,
        effective_scale=result.effective_scale)
