"""Lazily evaluated raster handles and the algebra graph built from them.

A ``RasterHandle`` never holds pixels. It references an ``Operation`` whose
operands are other handles, so a chain of per-pixel arithmetic is a directed
acyclic graph that is only realized when an executor asks for the values over
a finite ``Grid`` (see ``natcap.rusle.evaluation`` and
``natcap.rusle.executor``).

Example::

    precip = raster.load(provider, 'precipitation', time_range=window)
    annual = raster.temporal_sum(precip, divisor=window.n_years)
    wet = annual.gte(1500)
"""
import dataclasses
import datetime
import functools
import hashlib
import logging
import math

import numpy
from osgeo import osr

LOGGER = logging.getLogger(__name__)

RESAMPLE_METHODS = ('nearest', 'bilinear')
UNARY_FUNCTIONS = (
    'negative', 'abs', 'exp', 'log', 'sqrt', 'sin', 'cos', 'radians',
    'degrees', 'not')
BINARY_FUNCTIONS = (
    'add', 'subtract', 'multiply', 'divide', 'power', 'maximum', 'minimum',
    'lt', 'lte', 'gt', 'gte', 'eq', 'neq', 'and', 'or')


class DataUnavailable(Exception):
    """Raised when a data provider has no coverage for a request."""


class IncompatibleOperands(ValueError):
    """Raised when handles cannot be combined into a single operation.

    This is detected while the graph is built, never during evaluation.
    """


@dataclasses.dataclass(frozen=True)
class TimeRange:
    """An inclusive range of calendar dates."""
    start: datetime.date
    end: datetime.date

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(
                f'Time range ends ({self.end}) before it starts '
                f'({self.start})')

    @classmethod
    def from_years(cls, start_year, end_year):
        """Cover January 1 of ``start_year`` to December 31 of ``end_year``."""
        return cls(datetime.date(int(start_year), 1, 1),
                   datetime.date(int(end_year), 12, 31))

    @property
    def n_years(self):
        return self.end.year - self.start.year + 1

    def contains(self, date):
        return self.start <= date <= self.end


@dataclasses.dataclass(frozen=True)
class Grid:
    """A north-up pixel grid with square pixels.

    Attributes:
        crs (str): coordinate reference identifier (EPSG code or WKT).
        origin_x, origin_y (float): upper-left corner of the grid.
        scale (float): pixel size in the linear units of ``crs``.
        n_rows, n_cols (int): grid dimensions.
    """
    crs: str
    origin_x: float
    origin_y: float
    scale: float
    n_rows: int
    n_cols: int

    @classmethod
    def from_bounds(cls, crs, bounds, scale):
        """Create the smallest grid at ``scale`` that covers ``bounds``.

        Args:
            crs (str): coordinate reference identifier.
            bounds (tuple): ``(minx, miny, maxx, maxy)``.
            scale (float): pixel size, must be positive.

        Returns:
            ``Grid`` anchored at ``(minx, maxy)``.
        """
        scale = float(scale)
        if not scale > 0:
            raise ValueError(f'Grid scale must be positive, got {scale}')
        minx, miny, maxx, maxy = bounds
        if maxx <= minx or maxy <= miny:
            raise ValueError(f'Bounds {bounds} have no area')
        # tolerate float noise so exact multiples don't gain a column
        n_cols = max(1, int(math.ceil((maxx - minx) / scale - 1e-9)))
        n_rows = max(1, int(math.ceil((maxy - miny) / scale - 1e-9)))
        return cls(crs, float(minx), float(maxy), scale, n_rows, n_cols)

    @property
    def bounds(self):
        return (self.origin_x,
                self.origin_y - self.n_rows * self.scale,
                self.origin_x + self.n_cols * self.scale,
                self.origin_y)

    @property
    def shape(self):
        return (self.n_rows, self.n_cols)

    @property
    def n_pixels(self):
        return self.n_rows * self.n_cols

    @property
    def pixel_area(self):
        return self.scale * self.scale

    def window(self, row_offset, col_offset, n_rows, n_cols):
        """Return the sub-grid starting at the given pixel offset."""
        return Grid(
            self.crs,
            self.origin_x + col_offset * self.scale,
            self.origin_y - row_offset * self.scale,
            self.scale, int(n_rows), int(n_cols))

    def expanded(self, n_pixels):
        """Grow the grid by ``n_pixels`` on every side."""
        return self.window(
            -n_pixels, -n_pixels,
            self.n_rows + 2 * n_pixels, self.n_cols + 2 * n_pixels)

    def rescaled(self, scale):
        """Cover the same bounds at a different pixel size."""
        return Grid.from_bounds(self.crs, self.bounds, scale)

    def pixel_centers(self):
        """Return ``(xs, ys)``: 1D arrays of column and row center coords."""
        xs = self.origin_x + (numpy.arange(self.n_cols) + 0.5) * self.scale
        ys = self.origin_y - (numpy.arange(self.n_rows) + 0.5) * self.scale
        return xs, ys


def intersect_bounds(bounds_a, bounds_b):
    """Intersect two ``(minx, miny, maxx, maxy)`` boxes.

    Returns:
        The intersection, or ``None`` if the boxes share no area.
    """
    minx = max(bounds_a[0], bounds_b[0])
    miny = max(bounds_a[1], bounds_b[1])
    maxx = min(bounds_a[2], bounds_b[2])
    maxy = min(bounds_a[3], bounds_b[3])
    if maxx <= minx or maxy <= miny:
        return None
    return (minx, miny, maxx, maxy)


def union_bounds(bounds_list):
    """Return the bounding box of every box in ``bounds_list``."""
    bounds_list = list(bounds_list)
    return (min(b[0] for b in bounds_list),
            min(b[1] for b in bounds_list),
            max(b[2] for b in bounds_list),
            max(b[3] for b in bounds_list))


def _spatial_reference(crs):
    srs = osr.SpatialReference()
    try:
        error = srs.SetFromUserInput(crs)
    except RuntimeError as err:
        raise ValueError(f'Could not interpret CRS "{crs}"') from err
    if error:
        raise ValueError(f'Could not interpret CRS "{crs}"')
    return srs


@functools.lru_cache(maxsize=None)
def same_crs(crs_a, crs_b):
    """Whether two CRS identifiers describe the same reference system."""
    if crs_a == crs_b:
        return True
    return bool(_spatial_reference(crs_a).IsSame(_spatial_reference(crs_b)))


@functools.lru_cache(maxsize=None)
def crs_to_wkt(crs):
    """Convert an EPSG code, PROJ string or WKT to WKT."""
    return _spatial_reference(crs).ExportToWkt()


def _freeze(value):
    """Convert ``value`` to a hashable value with a deterministic repr."""
    if isinstance(value, dict):
        return tuple(sorted((k, _freeze(v)) for k, v in value.items()))
    if isinstance(value, (set, frozenset)):
        return tuple(sorted(value))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, numpy.generic):
        return value.item()
    return value


@dataclasses.dataclass(frozen=True, eq=False)
class Operation:
    """A node of the algebra graph.

    Attributes:
        kind (str): operation type, one of the kernels registered in
            ``natcap.rusle.evaluation``.
        operands (tuple): the ``RasterHandle`` inputs.
        params (tuple): sorted ``(name, value)`` scalar parameters.
        key (str): content hash over ``kind``, ``params`` and the operand
            keys. Two operations with equal keys produce equal pixels.
    """
    kind: str
    operands: tuple = ()
    params: tuple = ()
    key: str = dataclasses.field(init=False, repr=False)

    def __post_init__(self):
        digest = hashlib.sha1(self.kind.encode('utf-8'))
        digest.update(repr(self.params).encode('utf-8'))
        for operand in self.operands:
            digest.update(operand.operation.key.encode('utf-8'))
        object.__setattr__(self, 'key', digest.hexdigest())

    def param(self, name):
        return dict(self.params)[name]


@dataclasses.dataclass(frozen=True, eq=False, repr=False)
class RasterHandle:
    """An immutable reference to a lazily evaluated raster.

    Attributes:
        operation (Operation): how the pixels are produced.
        band_names (tuple): one name per band; only ``stack`` produces
            more than one.
        crs (str): coordinate reference identifier, ``None`` for constants.
        scale (float): nominal pixel size, ``None`` for constants.
        extent (tuple): ``(minx, miny, maxx, maxy)`` or ``None`` when
            unbounded.
        dtype (str): numpy dtype name the values represent.
        dates (tuple): ``datetime.date`` per layer of a time series, or
            ``None`` for a static raster.
        depth (int): largest number of stacked layers carried by any node
            in this handle's graph, used to size tiles.
    """
    operation: Operation
    band_names: tuple
    crs: str = None
    scale: float = None
    extent: tuple = None
    dtype: str = 'float64'
    dates: tuple = None
    depth: int = 1

    def __repr__(self):
        return (f'RasterHandle(bands={self.band_names}, '
                f'kind={self.operation.kind}, key={self.key[:12]})')

    @property
    def key(self):
        return self.operation.key

    @property
    def is_series(self):
        return self.dates is not None

    def rename(self, *band_names):
        """Return a handle with the same pixels and new band names."""
        if len(band_names) != len(self.band_names):
            raise ValueError(
                f'Expected {len(self.band_names)} band names, got '
                f'{len(band_names)}')
        return dataclasses.replace(self, band_names=tuple(band_names))

    def _binary(self, function, other):
        return combine('binary', self, other, function=function)

    def _reflected(self, function, other):
        return combine('binary', other, self, function=function)

    def add(self, other):
        return self._binary('add', other)

    def subtract(self, other):
        return self._binary('subtract', other)

    def multiply(self, other):
        return self._binary('multiply', other)

    def divide(self, other):
        return self._binary('divide', other)

    def pow(self, other):
        return self._binary('power', other)

    def max(self, other):
        return self._binary('maximum', other)

    def min(self, other):
        return self._binary('minimum', other)

    def lt(self, other):
        return self._binary('lt', other)

    def lte(self, other):
        return self._binary('lte', other)

    def gt(self, other):
        return self._binary('gt', other)

    def gte(self, other):
        return self._binary('gte', other)

    def eq(self, other):
        return self._binary('eq', other)

    def neq(self, other):
        return self._binary('neq', other)

    def and_(self, other):
        return self._binary('and', other)

    def or_(self, other):
        return self._binary('or', other)

    def not_(self):
        return combine('unary', self, function='not')

    def exp(self):
        return combine('unary', self, function='exp')

    def sin(self):
        return combine('unary', self, function='sin')

    def abs(self):
        return combine('unary', self, function='abs')

    def radians(self):
        return combine('unary', self, function='radians')

    def where(self, condition, value):
        """Replace pixels where ``condition`` is true with ``value``."""
        return where(condition, value, self)

    __add__ = add
    __sub__ = subtract
    __mul__ = multiply
    __truediv__ = divide
    __pow__ = pow

    def __radd__(self, other):
        return self._reflected('add', other)

    def __rsub__(self, other):
        return self._reflected('subtract', other)

    def __rmul__(self, other):
        return self._reflected('multiply', other)

    def __rtruediv__(self, other):
        return self._reflected('divide', other)

    def __rpow__(self, other):
        return self._reflected('power', other)

    def __neg__(self):
        return combine('unary', self, function='negative')


def constant(value):
    """An unbounded raster with ``value`` at every pixel."""
    return RasterHandle(
        Operation('constant', params=_freeze({'value': float(value)})),
        band_names=('constant',))


def pixel_area():
    """An unbounded raster holding each pixel's area in square units."""
    return RasterHandle(Operation('pixel_area'), band_names=('area',))


def _as_handle(value):
    if isinstance(value, RasterHandle):
        return value
    if isinstance(value, (int, float, numpy.number)):
        return constant(value)
    raise TypeError(f'Cannot use {value!r} as a raster operand')


def combine(kind, *operands, **params):
    """Build a graph node applying ``kind`` to ``operands``.

    Nothing is computed. Operands are checked for compatibility: every
    bounded operand must share a CRS, stacked handles can't be elementwise
    operands, time series must share their date axis and bounded extents
    must overlap.

    Args:
        kind (str): the operation type.
        *operands: ``RasterHandle`` objects or numbers (wrapped as
            constants).
        **params: scalar parameters of the operation.

    Returns:
        A new ``RasterHandle``.

    Raises:
        IncompatibleOperands if the operands can't be combined.
    """
    if kind == 'unary' and params.get('function') not in UNARY_FUNCTIONS:
        raise ValueError(f'Unknown unary function {params.get("function")}')
    if kind == 'binary' and params.get('function') not in BINARY_FUNCTIONS:
        raise ValueError(f'Unknown binary function {params.get("function")}')

    handles = tuple(_as_handle(operand) for operand in operands)

    crs = None
    for handle in handles:
        if handle.crs is None:
            continue
        if crs is None:
            crs = handle.crs
        elif not same_crs(crs, handle.crs):
            raise IncompatibleOperands(
                f'Operands of {kind} have different coordinate systems: '
                f'{crs} and {handle.crs}')

    for handle in handles:
        if len(handle.band_names) > 1:
            raise IncompatibleOperands(
                f'Stacked handle {handle.band_names} cannot be an operand '
                f'of {kind}')

    date_axes = []
    for handle in handles:
        if handle.dates is not None and handle.dates not in date_axes:
            date_axes.append(handle.dates)
    if len(date_axes) > 1:
        raise IncompatibleOperands(
            f'Time series operands of {kind} have different date axes')

    extent = None
    for handle in handles:
        if handle.extent is None:
            continue
        if extent is None:
            extent = handle.extent
            continue
        extent = intersect_bounds(extent, handle.extent)
        if extent is None:
            raise IncompatibleOperands(
                f'Operands of {kind} do not overlap spatially')

    scales = [handle.scale for handle in handles if handle.scale]
    band_names = handles[0].band_names if handles else (kind,)
    return RasterHandle(
        Operation(kind, handles, _freeze(params)),
        band_names=band_names,
        crs=crs,
        scale=min(scales) if scales else None,
        extent=extent,
        dates=date_axes[0] if date_axes else None,
        depth=max([h.depth for h in handles], default=1))


def load(provider, dataset_id, band=None, time_range=None, region=None,
         resample='nearest'):
    """Reference a provider dataset, optionally clipped to a region.

    Args:
        provider: a data provider (see ``natcap.rusle.providers``).
        dataset_id (str): the dataset to load.
        band (str): band of the dataset; defaults to ``dataset_id``.
        time_range (TimeRange): restrict a time series to this range.
        region (Region): if given, the handle is clipped to this polygon.
        resample (str): ``'nearest'`` or ``'bilinear'``, used whenever the
            dataset is sampled at a scale other than its own.

    Returns:
        ``RasterHandle``

    Raises:
        DataUnavailable if the provider has no coverage for the dataset and
            time range, or the coverage doesn't intersect ``region``.
    """
    if resample not in RESAMPLE_METHODS:
        raise ValueError(
            f'Resample method must be one of {RESAMPLE_METHODS}, '
            f'got {resample}')
    band = band or dataset_id
    coverage = provider.coverage(dataset_id, band, time_range)
    extent = coverage.bounds
    if region is not None:
        if not same_crs(region.crs, coverage.crs):
            raise IncompatibleOperands(
                f'Region {region.name} is not in the coordinate system of '
                f'{dataset_id}')
        extent = intersect_bounds(extent, region.bounds)
        if extent is None:
            raise DataUnavailable(
                f'Dataset {dataset_id} has no coverage over region '
                f'{region.name}')

    # providers may share a provider_id, the key names the provider object
    operation = Operation('load', params=_freeze({
        'provider': provider,
        'provider_object': id(provider),
        'dataset_id': dataset_id,
        'band': band,
        'time_range': time_range,
        'resample': resample,
    }))
    handle = RasterHandle(
        operation,
        band_names=(band,),
        crs=coverage.crs,
        scale=coverage.scale,
        extent=extent,
        dates=coverage.dates,
        depth=len(coverage.dates) if coverage.dates else 1)
    LOGGER.debug(f'loaded {dataset_id}/{band} as {handle}')
    if region is not None:
        handle = clip(handle, region)
    return handle


def where(condition, true_value, false_value):
    """Select ``true_value`` where ``condition`` is nonzero, else the other.

    Pixels where ``condition`` is no-data are no-data in the result.
    """
    return combine('where', condition, true_value, false_value)


def isin(handle, values):
    """1 where the pixel equals one of ``values``, 0 elsewhere."""
    return combine('isin', handle, values=frozenset(values))


def remap(handle, mapping, default):
    """Map each pixel value through ``mapping``.

    Args:
        handle (RasterHandle): categorical raster.
        mapping (dict): source value to target value. Dict keys are unique,
            so every category maps to exactly one value.
        default (float): value for categories not in ``mapping``.
    """
    return combine('remap', handle, mapping=dict(mapping),
                   default=float(default))


def bands(handle, edges, values):
    """Piecewise-constant lookup over half-open ``[low, high)`` intervals.

    ``values[0]`` applies below ``edges[0]``, ``values[i]`` to
    ``[edges[i-1], edges[i])`` and ``values[-1]`` from ``edges[-1]`` up.
    """
    edges = tuple(float(edge) for edge in edges)
    values = tuple(float(value) for value in values)
    if len(values) != len(edges) + 1:
        raise ValueError(
            f'Expected {len(edges) + 1} values for {len(edges)} edges, '
            f'got {len(values)}')
    if any(high <= low for low, high in zip(edges, edges[1:])):
        raise ValueError(f'Band edges must increase strictly: {edges}')
    return combine('bands', handle, edges=edges, values=values)


def temporal_sum(handle, months=None, divisor=1.0):
    """Collapse a time series by summing its layers.

    Args:
        handle (RasterHandle): a time series.
        months (iterable): if given, only layers dated in these calendar
            months (1-12) are summed.
        divisor (float): the sum is divided by this, e.g. the number of
            years to get an annual mean.

    Returns:
        A static ``RasterHandle``. A pixel that is no-data in any layer of
        the series is no-data in the result.
    """
    if not handle.is_series:
        raise IncompatibleOperands(
            f'{handle} is not a time series and cannot be summed over time')
    if months is not None:
        months = frozenset(int(month) for month in months)
        if not months.issubset(range(1, 13)):
            raise ValueError(f'Months must be within 1..12: {sorted(months)}')
    result = combine('temporal_sum', handle, months=months,
                     divisor=float(divisor))
    return dataclasses.replace(result, dates=None)


def slope(handle):
    """Terrain slope in degrees from an elevation raster."""
    if handle.is_series:
        raise IncompatibleOperands('Slope requires a static elevation raster')
    return combine('slope', handle).rename('slope')


def clip(handle, region):
    """Mask pixels whose centers fall outside ``region``."""
    if handle.crs is not None and not same_crs(handle.crs, region.crs):
        raise IncompatibleOperands(
            f'Region {region.name} is not in the coordinate system of '
            f'{handle}')
    result = combine('clip', handle, region=region)
    extent = region.bounds
    if result.extent is not None:
        extent = intersect_bounds(result.extent, region.bounds)
        if extent is None:
            raise IncompatibleOperands(
                f'Region {region.name} does not overlap {handle}')
    return dataclasses.replace(result, extent=extent, crs=region.crs
                               if result.crs is None else result.crs)


def stack(*handles):
    """Combine static single-band handles into one multi-band handle."""
    for handle in handles:
        if handle.is_series:
            raise IncompatibleOperands(
                f'Time series {handle} cannot be stacked')
    result = combine('stack', *handles)
    band_names = tuple(h.band_names[0] for h in handles)
    if len(set(band_names)) != len(band_names):
        raise ValueError(f'Stacked band names must be unique: {band_names}')
    return dataclasses.replace(
        result, band_names=band_names,
        depth=max(len(handles), result.depth))
