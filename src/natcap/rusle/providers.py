"""Data and boundary providers feeding the raster algebra.

A data provider answers two questions: what does a dataset cover
(``coverage``), and what are its values on a given grid (``fetch``).
``fetch`` warps the source onto the requested grid with GDAL using nearest
or bilinear sampling and returns NaN wherever the source has no data.
"""
import collections
import dataclasses
import datetime
import logging
import os

import numpy
import pandas
import pygeoprocessing
import shapely.ops
import shapely.wkb
from osgeo import gdal

from . import raster
from . import regions
from . import utils

LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Coverage:
    """What a provider holds for one dataset band.

    Attributes:
        bounds (tuple): ``(minx, miny, maxx, maxy)`` of the data.
        crs (str): coordinate reference identifier.
        scale (float): native pixel size.
        dates (tuple): sorted dates of a time series, ``None`` if static.
    """
    bounds: tuple
    crs: str
    scale: float
    dates: tuple = None


@dataclasses.dataclass(frozen=True)
class _Layer:
    grid: raster.Grid
    date: datetime.date
    source: object


# value of pixels gdal.Warp leaves without data
_WARP_NODATA = float(numpy.finfo(numpy.float32).min)


def _create_mem_raster(grid):
    """Create a one band float64 MEM raster on ``grid``, filled with nodata."""
    raster_obj = gdal.GetDriverByName('MEM').Create(
        '', grid.n_cols, grid.n_rows, 1, gdal.GDT_Float64)
    raster_obj.SetGeoTransform(
        [grid.origin_x, grid.scale, 0.0, grid.origin_y, 0.0, -grid.scale])
    raster_obj.SetProjection(raster.crs_to_wkt(grid.crs))
    band = raster_obj.GetRasterBand(1)
    band.SetNoDataValue(_WARP_NODATA)
    band.Fill(_WARP_NODATA)
    band = None
    return raster_obj


def warp_to_grid(source_raster, source_crs, target_grid, method='nearest'):
    """Warp the first band of a GDAL raster onto ``target_grid``.

    Args:
        source_raster (gdal.Dataset): the raster to sample. Its band nodata
            value marks missing pixels.
        source_crs (str): coordinate reference of ``source_raster``.
        target_grid (Grid): grid to sample onto, same CRS as the source.
        method (str): ``'nearest'`` or ``'bilinear'``.

    Returns:
        2D float64 array shaped like ``target_grid``; NaN where the source
        has no data and where the target pixel center is outside the
        source footprint.
    """
    if method not in raster.RESAMPLE_METHODS:
        raise ValueError(
            f'Resample method must be one of {raster.RESAMPLE_METHODS}, '
            f'got {method}')
    if not raster.same_crs(source_crs, target_grid.crs):
        raise raster.IncompatibleOperands(
            f'Cannot sample {source_crs} data onto {target_grid.crs}; '
            f'reprojection is not supported')
    target_raster = _create_mem_raster(target_grid)
    gdal.Warp(
        target_raster, source_raster,
        resampleAlg=method,
        dstNodata=_WARP_NODATA)
    values = target_raster.GetRasterBand(1).ReadAsArray().astype(
        numpy.float64)
    target_raster = None
    values[values == _WARP_NODATA] = numpy.nan
    return values


def warp_array(source, source_grid, target_grid, method='nearest'):
    """Sample ``source`` (on ``source_grid``) onto ``target_grid``.

    Args:
        source (numpy.ndarray): 2D float array, NaN for no-data.
        source_grid (Grid): grid of ``source``.
        target_grid (Grid): grid to sample onto, same CRS.
        method (str): ``'nearest'`` or ``'bilinear'``.

    Returns:
        2D float64 array shaped like ``target_grid``.
    """
    source_raster = _create_mem_raster(source_grid)
    source_raster.GetRasterBand(1).WriteArray(
        numpy.where(numpy.isnan(source), _WARP_NODATA, source))
    try:
        return warp_to_grid(
            source_raster, source_grid.crs, target_grid, method)
    finally:
        source_raster = None


class DataProvider:
    """Base class for providers of gridded datasets.

    Subclasses register ``_Layer`` objects keyed on ``(dataset_id, band)``
    and implement ``_read_layer``.
    """

    def __init__(self, provider_id):
        self.provider_id = provider_id
        self._layers = collections.defaultdict(list)

    def __repr__(self):
        return f'{type(self).__name__}({self.provider_id!r})'

    def _add_layer(self, dataset_id, band, layer):
        layers = self._layers[(dataset_id, band)]
        if layers and (layers[0].date is None) != (layer.date is None):
            raise ValueError(
                f'{dataset_id}/{band} mixes dated and undated layers')
        if any(existing.date == layer.date for existing in layers):
            raise ValueError(
                f'{dataset_id}/{band} already has a layer dated {layer.date}')
        if layers and not raster.same_crs(layers[0].grid.crs, layer.grid.crs):
            raise ValueError(
                f'Layers of {dataset_id}/{band} must share a coordinate '
                f'system')
        layers.append(layer)
        layers.sort(key=lambda layer_: layer_.date or datetime.date.min)

    def datasets(self):
        return sorted(self._layers)

    def _select(self, dataset_id, band, time_range):
        layers = self._layers.get((dataset_id, band))
        if not layers:
            raise raster.DataUnavailable(
                f'{self} has no dataset {dataset_id} with band {band}')
        if layers[0].date is None or time_range is None:
            return layers
        selected = [
            layer for layer in layers if time_range.contains(layer.date)]
        if not selected:
            raise raster.DataUnavailable(
                f'{self} has no {dataset_id}/{band} data between '
                f'{time_range.start} and {time_range.end}')
        return selected

    def coverage(self, dataset_id, band, time_range=None):
        """Describe the data for a dataset band within ``time_range``.

        Raises:
            DataUnavailable if there is none.
        """
        layers = self._select(dataset_id, band, time_range)
        dates = None
        if layers[0].date is not None:
            dates = tuple(layer.date for layer in layers)
        return Coverage(
            bounds=raster.union_bounds(layer.grid.bounds for layer in layers),
            crs=layers[0].grid.crs,
            scale=min(layer.grid.scale for layer in layers),
            dates=dates)

    def fetch(self, dataset_id, band, time_range, grid, resample='nearest'):
        """Sample a dataset band onto ``grid``.

        Returns:
            float64 array ``(rows, cols)``, or ``(dates, rows, cols)`` for a
            time series.
        """
        layers = self._select(dataset_id, band, time_range)
        values = [self._read_layer(layer, grid, resample) for layer in layers]
        if layers[0].date is None:
            return values[0]
        return numpy.stack(values)

    def _read_layer(self, layer, grid, resample):
        raise NotImplementedError


class ArrayDataProvider(DataProvider):
    """Serve numpy arrays held in memory.

    Example::

        provider = ArrayDataProvider('EPSG:32643')
        provider.add('dem', dem_array, origin=(500000, 2000000), scale=30)
    """

    def __init__(self, crs, provider_id='memory'):
        super().__init__(provider_id)
        self.crs = crs

    def add(self, dataset_id, array, origin, scale, band=None, dates=None):
        """Register a 2D array, or a 3D array with one date per layer."""
        band = band or dataset_id
        array = numpy.asarray(array, dtype=numpy.float64)
        if dates is None:
            if array.ndim != 2:
                raise ValueError(
                    f'A static dataset needs a 2D array, got {array.shape}')
            arrays, dates = [array], [None]
        else:
            if array.ndim != 3 or array.shape[0] != len(dates):
                raise ValueError(
                    f'A time series needs one 2D layer per date, got '
                    f'{array.shape} for {len(dates)} dates')
            arrays = list(array)
        for layer_array, date in zip(arrays, dates):
            grid = raster.Grid(
                self.crs, float(origin[0]), float(origin[1]), float(scale),
                layer_array.shape[0], layer_array.shape[1])
            self._add_layer(dataset_id, band, _Layer(grid, date, layer_array))

    def _read_layer(self, layer, grid, resample):
        return warp_array(layer.source, layer.grid, grid, resample)


class GDALDataProvider(DataProvider):
    """Serve GDAL rasters listed in a catalog table.

    The table has the columns ``dataset_id``, ``band`` and ``path``, an
    optional ``date`` (ISO date, blank for static datasets) and an optional
    ``band_index`` (1-based, default 1). Relative paths are relative to the
    table. Rasters must be north-up with square pixels.
    """

    REQUIRED_COLUMNS = ('dataset_id', 'band', 'path')

    def __init__(self, provider_id='gdal'):
        super().__init__(provider_id)

    @classmethod
    def from_table(cls, table_path):
        """Create a provider from a catalog CSV."""
        table = utils.read_csv_to_dataframe(table_path)
        for column in cls.REQUIRED_COLUMNS:
            if column not in table.columns:
                raise ValueError(
                    f'The dataset table {table_path} is missing the column '
                    f'"{column}"')
        provider = cls(provider_id=os.path.abspath(table_path))
        base_dir = os.path.dirname(os.path.abspath(table_path))
        for row_index, row in table.iterrows():
            path = str(row['path']).strip()
            if not os.path.isabs(path):
                path = os.path.join(base_dir, path)
            date = None
            if 'date' in table.columns and not pandas.isna(row['date']):
                try:
                    date = pandas.Timestamp(row['date']).date()
                except ValueError as error:
                    raise ValueError(
                        f'Could not parse date "{row["date"]}" in row '
                        f'{row_index} of {table_path}') from error
            band_index = 1
            if 'band_index' in table.columns and not pandas.isna(
                    row['band_index']):
                band_index = int(row['band_index'])
            provider.add(
                str(row['dataset_id']).strip(), path,
                band=str(row['band']).strip(), date=date,
                band_index=band_index)
        return provider

    def add(self, dataset_id, path, band=None, date=None, band_index=1):
        """Register one band of the raster at ``path``."""
        band = band or dataset_id
        raster_info = pygeoprocessing.get_raster_info(path)
        geotransform = raster_info['geotransform']
        if geotransform[2] != 0 or geotransform[4] != 0:
            raise ValueError(f'Raster {path} is rotated; rasters must be '
                             f'north-up')
        if geotransform[5] > 0:
            raise ValueError(f'Raster {path} is south-up; rasters must be '
                             f'north-up')
        if not 1 <= band_index <= raster_info['n_bands']:
            raise ValueError(
                f'Raster {path} has {raster_info["n_bands"]} bands, band '
                f'{band_index} was requested')
        scale, _ = utils.mean_pixel_size_and_area(raster_info['pixel_size'])
        n_cols, n_rows = raster_info['raster_size']
        grid = raster.Grid(
            raster_info['projection_wkt'], geotransform[0], geotransform[3],
            scale, n_rows, n_cols)
        self._add_layer(
            dataset_id, band, _Layer(grid, date, (path, band_index)))

    def _read_layer(self, layer, grid, resample):
        path, band_index = layer.source
        if raster.intersect_bounds(layer.grid.bounds, grid.bounds) is None:
            return numpy.full(grid.shape, numpy.nan)

        source_raster = gdal.OpenEx(path, gdal.OF_RASTER)
        try:
            if band_index != 1:
                source_raster = gdal.Translate(
                    '', source_raster, format='VRT', bandList=[band_index])
            return warp_to_grid(
                source_raster, layer.grid.crs, grid, resample)
        finally:
            source_raster = None


class VectorBoundaryProvider:
    """Administrative boundaries read from an OGR vector.

    Args:
        vector_path (str): path to any vector GDAL can open.
        level_fields (dict): admin level to the field naming that level,
            GAUL's ``ADM1_NAME``/``ADM2_NAME`` by default.
        simplify_tolerance (float): passed on to every ``Region``.
    """

    def __init__(self, vector_path, level_fields=None, simplify_tolerance=0.0):
        self.vector_path = vector_path
        self.level_fields = level_fields or {1: 'ADM1_NAME', 2: 'ADM2_NAME'}
        self.simplify_tolerance = simplify_tolerance

    def regions(self, admin_level, filter_name=None, parent_name=None):
        """Load the regions of an administrative level.

        Args:
            admin_level (int): a key of ``level_fields``.
            filter_name (str): if given, only regions with this name.
            parent_name (str): if given, only regions whose parent level
                (``admin_level - 1``) field has this value.

        Returns:
            list of ``Region`` in feature order. Features of the same name
            are merged into one region.
        """
        if admin_level not in self.level_fields:
            raise ValueError(
                f'No name field configured for admin level {admin_level}')
        name_field = self.level_fields[admin_level]
        parent_field = self.level_fields.get(admin_level - 1)
        if parent_name is not None and parent_field is None:
            raise ValueError(
                f'No parent field configured for admin level {admin_level}')

        vector = gdal.OpenEx(self.vector_path, gdal.OF_VECTOR)
        layer = vector.GetLayer()
        crs = layer.GetSpatialRef().ExportToWkt()
        layer_fields = [
            field.GetName() for field in layer.schema]
        for field_name in (name_field, parent_field):
            if field_name is not None and field_name not in layer_fields and (
                    field_name == name_field or parent_name is not None):
                raise ValueError(
                    f'Field "{field_name}" not found in {self.vector_path}')

        geometries = collections.OrderedDict()
        attributes = {}
        for feature in layer:
            name = feature.GetField(name_field)
            if filter_name is not None and name != filter_name:
                continue
            if parent_name is not None and (
                    feature.GetField(parent_field) != parent_name):
                continue
            geometry_ref = feature.GetGeometryRef()
            if geometry_ref is None:
                LOGGER.warning(
                    f'Feature {feature.GetFID()} ({name}) has no geometry '
                    f'and is skipped')
                continue
            geometries.setdefault(name, []).append(
                shapely.wkb.loads(bytes(geometry_ref.ExportToWkb())))
            attributes.setdefault(name, feature.items())
        layer = None
        vector = None

        result = []
        for name, parts in geometries.items():
            geometry = parts[0] if len(parts) == 1 else shapely.ops.unary_union(
                parts)
            result.append(regions.Region(
                name, geometry, crs, self.simplify_tolerance,
                attributes[name]))
        LOGGER.info(
            f'loaded {len(result)} level {admin_level} regions from '
            f'{self.vector_path}')
        return result
