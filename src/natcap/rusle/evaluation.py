"""Evaluate raster handles into numpy arrays over a pixel grid.

Every kernel returns float64 arrays with NaN marking no-data: static rasters
are ``(n_rows, n_cols)``, time series ``(n_dates, n_rows, n_cols)`` and
stacks ``(n_bands, n_rows, n_cols)``. Results are memoized per request on
``(operation key, grid)`` so a node shared by several branches of a graph is
computed once.
"""
import logging

import numpy

from . import regions

LOGGER = logging.getLogger(__name__)

_UNARY = {
    'negative': numpy.negative,
    'abs': numpy.abs,
    'exp': numpy.exp,
    'log': numpy.log,
    'sqrt': numpy.sqrt,
    'sin': numpy.sin,
    'cos': numpy.cos,
    'radians': numpy.radians,
    'degrees': numpy.degrees,
}

_ARITHMETIC = {
    'add': numpy.add,
    'subtract': numpy.subtract,
    'multiply': numpy.multiply,
    'divide': numpy.divide,
    'power': numpy.power,
    'maximum': numpy.maximum,
    'minimum': numpy.minimum,
}

_PREDICATES = {
    'lt': numpy.less,
    'lte': numpy.less_equal,
    'gt': numpy.greater,
    'gte': numpy.greater_equal,
    'eq': numpy.equal,
    'neq': numpy.not_equal,
    'and': lambda a, b: (a != 0) & (b != 0),
    'or': lambda a, b: (a != 0) | (b != 0),
}


def evaluate(handle, grid, memo=None):
    """Compute the pixel values of ``handle`` over ``grid``.

    Args:
        handle (RasterHandle): the raster to compute.
        grid (Grid): pixel grid to sample the raster on.
        memo (dict): optional cache shared between calls in one request.

    Returns:
        A float64 numpy array (see module docstring for its shape).
    """
    if memo is None:
        memo = {}
    memo_key = (handle.operation.key, grid)
    if memo_key not in memo:
        kernel = _KERNELS[handle.operation.kind]
        memo[memo_key] = kernel(handle, grid, memo)
    return memo[memo_key]


def _operand_values(handle, grid, memo):
    return [evaluate(operand, grid, memo)
            for operand in handle.operation.operands]


def _with_nodata(result, *operands):
    """Set ``result`` to NaN wherever any operand is NaN."""
    invalid = numpy.zeros(result.shape, dtype=bool)
    for operand in operands:
        invalid |= numpy.isnan(operand)
    return numpy.where(invalid, numpy.nan, result)


def _load(handle, grid, memo):
    op = handle.operation
    return op.param('provider').fetch(
        op.param('dataset_id'), op.param('band'), op.param('time_range'),
        grid, op.param('resample'))


def _constant(handle, grid, memo):
    return numpy.full(grid.shape, handle.operation.param('value'),
                      dtype=numpy.float64)


def _pixel_area(handle, grid, memo):
    return numpy.full(grid.shape, grid.pixel_area, dtype=numpy.float64)


def _unary(handle, grid, memo):
    (values,) = _operand_values(handle, grid, memo)
    function = handle.operation.param('function')
    if function == 'not':
        return _with_nodata((values == 0).astype(numpy.float64), values)
    with numpy.errstate(all='ignore'):
        return _UNARY[function](values)


def _binary(handle, grid, memo):
    left, right = _operand_values(handle, grid, memo)
    function = handle.operation.param('function')
    with numpy.errstate(all='ignore'):
        if function in _ARITHMETIC:
            return _ARITHMETIC[function](left, right)
        result = _PREDICATES[function](left, right).astype(numpy.float64)
    return _with_nodata(result, left, right)


def _where(handle, grid, memo):
    condition, true_value, false_value = _operand_values(handle, grid, memo)
    result = numpy.where(condition != 0, true_value, false_value)
    return numpy.where(numpy.isnan(condition), numpy.nan, result)


def _isin(handle, grid, memo):
    (values,) = _operand_values(handle, grid, memo)
    members = list(handle.operation.param('values'))
    result = numpy.isin(values, members).astype(numpy.float64)
    return _with_nodata(result, values)


def _remap(handle, grid, memo):
    (values,) = _operand_values(handle, grid, memo)
    op = handle.operation
    result = numpy.full(values.shape, op.param('default'),
                        dtype=numpy.float64)
    for source, target in op.param('mapping'):
        result[values == source] = target
    return _with_nodata(result, values)


def _bands(handle, grid, memo):
    (values,) = _operand_values(handle, grid, memo)
    op = handle.operation
    band_values = numpy.array(op.param('values'), dtype=numpy.float64)
    index = numpy.searchsorted(
        numpy.array(op.param('edges')), values, side='right')
    index = numpy.clip(index, 0, len(band_values) - 1)
    return _with_nodata(band_values[index], values)


def _classify(handle, grid, memo):
    (values,) = _operand_values(handle, grid, memo)
    op = handle.operation
    class_ids = numpy.array(op.param('class_ids'), dtype=numpy.float64)
    index = numpy.searchsorted(
        numpy.array(op.param('lows')), values, side='right') - 1
    # values below the first lower bound belong to the first class
    index = numpy.clip(index, 0, len(class_ids) - 1)
    return numpy.where(
        numpy.isnan(values), op.param('nodata'), class_ids[index])


def _temporal_sum(handle, grid, memo):
    (series,) = handle.operation.operands
    values = evaluate(series, grid, memo)
    months = handle.operation.param('months')
    if months is None:
        selected = values
    else:
        keep = [i for i, date in enumerate(series.dates)
                if date.month in months]
        selected = values[keep]
    result = selected.sum(axis=0) / handle.operation.param('divisor')
    # a pixel missing from any layer has no meaningful total
    return numpy.where(numpy.isnan(selected).any(axis=0), numpy.nan, result)


def _slope(handle, grid, memo):
    """Horn's 3x3 slope in degrees.

    The elevation operand is evaluated on the grid grown by one pixel so
    edge pixels of a tile see their true neighbours. Missing neighbours
    are replaced by the center value.
    """
    (dem_handle,) = handle.operation.operands
    dem = evaluate(dem_handle, grid.expanded(1), memo)
    center = dem[1:-1, 1:-1]

    def neighbour(row, col):
        window = dem[row:row + grid.n_rows, col:col + grid.n_cols]
        return numpy.where(numpy.isnan(window), center, window)

    z1, z2, z3 = neighbour(0, 0), neighbour(0, 1), neighbour(0, 2)
    z4, z6 = neighbour(1, 0), neighbour(1, 2)
    z7, z8, z9 = neighbour(2, 0), neighbour(2, 1), neighbour(2, 2)
    dz_dx = ((z3 + 2 * z6 + z9) - (z1 + 2 * z4 + z7)) / (8 * grid.scale)
    dz_dy = ((z7 + 2 * z8 + z9) - (z1 + 2 * z2 + z3)) / (8 * grid.scale)
    slope_degrees = numpy.degrees(
        numpy.arctan(numpy.sqrt(dz_dx ** 2 + dz_dy ** 2)))
    return numpy.where(numpy.isnan(center), numpy.nan, slope_degrees)


def _clip(handle, grid, memo):
    (values,) = _operand_values(handle, grid, memo)
    mask = regions.region_mask(handle.operation.param('region'), grid)
    return numpy.where(mask, values, numpy.nan)


def _stack(handle, grid, memo):
    return numpy.stack(_operand_values(handle, grid, memo))


_KERNELS = {
    'load': _load,
    'constant': _constant,
    'pixel_area': _pixel_area,
    'unary': _unary,
    'binary': _binary,
    'where': _where,
    'isin': _isin,
    'remap': _remap,
    'bands': _bands,
    'classify': _classify,
    'temporal_sum': _temporal_sum,
    'slope': _slope,
    'clip': _clip,
    'stack': _stack,
}
