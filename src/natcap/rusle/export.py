"""Stream raster handles into GeoTIFFs one tile at a time."""
import dataclasses
import logging
import os

import numpy
from osgeo import gdal

from . import evaluation
from . import raster

LOGGER = logging.getLogger(__name__)

DEFAULT_GTIFF_CREATION_OPTIONS = (
    'TILED=YES', 'BIGTIFF=YES', 'COMPRESS=LZW',
    'BLOCKXSIZE=256', 'BLOCKYSIZE=256')
_FLOAT_NODATA = float(numpy.finfo(numpy.float32).min)
_GDAL_TYPES = {
    'uint8': gdal.GDT_Byte,
    'float32': gdal.GDT_Float32,
    'float64': gdal.GDT_Float32,
}


def write_raster(handle, grid, executor, target_path, nodata=None,
                 creation_options=DEFAULT_GTIFF_CREATION_OPTIONS):
    """Evaluate ``handle`` over ``grid`` and write it to a GeoTIFF.

    One band is written per band name and each band is described by its
    name. Tiles are written as they are computed so the full extent is
    never held in memory. If the executor had to degrade, the file is at
    the coarser scale and its ``DEGRADED``/``EFFECTIVE_SCALE`` metadata
    say so. If the request fails no file is left at ``target_path``.

    Args:
        handle (RasterHandle): a static raster or a stack.
        grid (Grid): extent and scale to write.
        executor (TileExecutor): evaluates the tiles.
        target_path (str): path to the GeoTIFF to create.
        nodata (number): nodata value; defaults to the float32 minimum, or
            255 for byte rasters.
        creation_options (sequence): GTiff creation options.

    Returns:
        ``ExecutionResult`` whose value is ``target_path``.
    """
    if handle.is_series:
        raise ValueError(
            f'{handle} is a time series; reduce it over time before export')
    gdal_type = _GDAL_TYPES.get(handle.dtype, gdal.GDT_Float32)
    if nodata is None:
        nodata = 255 if gdal_type == gdal.GDT_Byte else _FLOAT_NODATA
    projection_wkt = raster.crs_to_wkt(grid.crs)
    driver = gdal.GetDriverByName('GTiff')
    n_bands = len(handle.band_names)
    attempt_rasters = []

    def discard_attempt():
        # the dataset of an abandoned attempt is closed and its file removed
        attempt_rasters.clear()
        if os.path.exists(target_path):
            os.remove(target_path)

    def create(attempt_grid):
        discard_attempt()
        LOGGER.info(
            f'writing {target_path} at scale {attempt_grid.scale} '
            f'({attempt_grid.n_cols} x {attempt_grid.n_rows})')
        target_raster = driver.Create(
            target_path, attempt_grid.n_cols, attempt_grid.n_rows, n_bands,
            gdal_type, options=list(creation_options))
        target_raster.SetProjection(projection_wkt)
        target_raster.SetGeoTransform([
            attempt_grid.origin_x, attempt_grid.scale, 0,
            attempt_grid.origin_y, 0, -attempt_grid.scale])
        for band_index, band_name in enumerate(handle.band_names, start=1):
            band = target_raster.GetRasterBand(band_index)
            band.SetNoDataValue(nodata)
            band.SetDescription(band_name)
        band = None
        attempt_rasters.append(target_raster)
        return target_raster

    def tile_func(tile):
        values = evaluation.evaluate(handle, tile.grid, {})
        return numpy.where(numpy.isnan(values), nodata, values)

    def merge(target_raster, tile, values):
        if values.ndim == 2:
            values = values[numpy.newaxis]
        for band_index in range(n_bands):
            target_raster.GetRasterBand(band_index + 1).WriteArray(
                values[band_index], xoff=tile.col_offset,
                yoff=tile.row_offset)
        return target_raster

    try:
        result = executor.execute(
            grid, tile_func, merge, create, depth=handle.depth)
    except Exception:
        LOGGER.error(f'removing incomplete raster {target_path}')
        discard_attempt()
        raise
    target_raster = result.value
    attempt_rasters.clear()
    result = dataclasses.replace(result, value=target_path)
    target_raster.SetMetadata({
        'DEGRADED': str(result.degraded),
        'EFFECTIVE_SCALE': str(result.effective_scale),
    })
    target_raster.FlushCache()
    target_raster = None
    return result
