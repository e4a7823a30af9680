"""Sample data shared by the natcap.rusle tests."""
import datetime
import os

import numpy
import pygeoprocessing
import shapely.geometry
from osgeo import ogr
from osgeo import osr

# 10 x 10 pixels of 100 m with the upper-left corner at (500000, 2001000)
ORIGIN = (500000.0, 2001000.0)
PIXEL_SIZE = 100.0
SHAPE = (10, 10)
BOUNDS = (ORIGIN[0], ORIGIN[1] - SHAPE[0] * PIXEL_SIZE,
          ORIGIN[0] + SHAPE[1] * PIXEL_SIZE, ORIGIN[1])
NODATA = -1.0


def projection_wkt(epsg=32643):
    """WKT of a UTM zone 43N projection."""
    srs = osr.SpatialReference()
    srs.ImportFromEPSG(epsg)
    return srs.ExportToWkt()


def monthly_dates(start_year, end_year):
    """The 15th of every month from ``start_year`` through ``end_year``."""
    return [datetime.date(year, month, 15)
            for year in range(start_year, end_year + 1)
            for month in range(1, 13)]


def tilted_elevation(drop_per_pixel=10.0):
    """Elevation rising ``drop_per_pixel`` m per column to the east."""
    return numpy.tile(
        numpy.arange(SHAPE[1], dtype=numpy.float64) * drop_per_pixel,
        (SHAPE[0], 1))


def sample_arrays():
    """Arrays of every input dataset of the soil loss model.

    Precipitation is 1000 mm a year spread evenly over the months of 2020,
    the soil is 40% sand, 40% silt, 20% clay with 1% organic carbon (in the
    SoilGrids units of g/kg and dg/kg), the terrain is a plane with a 0.1
    gradient and the land cover is cropland except for a built-up last
    column.
    """
    land_cover = numpy.full(SHAPE, 40, dtype=numpy.float64)
    land_cover[:, -1] = 50
    return {
        'precipitation': numpy.full(
            (12,) + SHAPE, 1000.0 / 12, dtype=numpy.float64),
        'elevation': tilted_elevation(),
        'land_cover': land_cover,
        'sand': numpy.full(SHAPE, 400.0),
        'silt': numpy.full(SHAPE, 400.0),
        'clay': numpy.full(SHAPE, 200.0),
        'organic_carbon': numpy.full(SHAPE, 100.0),
    }


def write_raster(array, target_path, wkt=None, origin=ORIGIN,
                 pixel_size=PIXEL_SIZE, nodata=NODATA):
    """Write a single band float32 GeoTIFF."""
    pygeoprocessing.numpy_array_to_raster(
        array.astype(numpy.float32), nodata, (pixel_size, -pixel_size),
        origin, wkt or projection_wkt(), target_path)


def write_dataset_table(workspace_dir, arrays=None):
    """Write every sample array as a raster and list them in a table.

    Precipitation layers are written one file per month. Paths in the table
    are relative to it.

    Returns:
        path to the dataset table CSV.
    """
    arrays = arrays or sample_arrays()
    data_dir = os.path.join(workspace_dir, 'data')
    os.makedirs(data_dir, exist_ok=True)
    rows = ['dataset_id,band,path,date']
    for dataset_id, array in arrays.items():
        if array.ndim == 3:
            dates = monthly_dates(2020, 2020)
            for layer, date in zip(array, dates):
                filename = f'{dataset_id}_{date:%Y%m}.tif'
                write_raster(layer, os.path.join(data_dir, filename))
                rows.append(
                    f'{dataset_id},{dataset_id},data/{filename},{date}')
        else:
            filename = f'{dataset_id}.tif'
            write_raster(array, os.path.join(data_dir, filename))
            rows.append(f'{dataset_id},{dataset_id},data/{filename},')
    table_path = os.path.join(workspace_dir, 'datasets.csv')
    with open(table_path, 'w') as table_file:
        table_file.write('\n'.join(rows) + '\n')
    return table_path


def district_geometries():
    """Two districts splitting the sample extent into west and east."""
    minx, miny, maxx, maxy = BOUNDS
    middle = (minx + maxx) / 2
    return {
        'West': shapely.geometry.box(minx, miny, middle, maxy),
        'East': shapely.geometry.box(middle, miny, maxx, maxy),
    }


def write_boundaries(target_path, geometries=None, state='Karnataka',
                     wkt=None):
    """Write districts as a GAUL style vector with ADM1/ADM2 names."""
    geometries = geometries or district_geometries()
    pygeoprocessing.shapely_geometry_to_vector(
        list(geometries.values()), target_path, wkt or projection_wkt(),
        'GPKG',
        fields={'ADM1_NAME': ogr.OFTString, 'ADM2_NAME': ogr.OFTString},
        attribute_list=[
            {'ADM1_NAME': state, 'ADM2_NAME': name} for name in geometries],
        ogr_geom_type=ogr.wkbPolygon)
    return target_path


def sample_args(workspace_dir):
    """A complete args dict for ``natcap.rusle.soil_loss``."""
    input_dir = os.path.join(workspace_dir, 'input')
    os.makedirs(input_dir, exist_ok=True)
    return {
        'workspace_dir': os.path.join(workspace_dir, 'output'),
        'results_suffix': '',
        'n_workers': -1,
        'dataset_table_path': write_dataset_table(input_dir),
        'boundaries_vector_path': write_boundaries(
            os.path.join(input_dir, 'districts.gpkg')),
        'admin_level': 2,
        'parent_region_name': 'Karnataka',
        'start_year': 2020,
        'end_year': 2020,
        'compute_scale': PIXEL_SIZE,
        'export_scale': PIXEL_SIZE,
    }


def assert_complete_execute(raw_args, model_spec, **kwargs):
    """Assert that every output created for these args exists.

    Args:
        raw_args (dict): the args dict passed to ``execute``
        model_spec (natcap.rusle.spec.ModelSpec): the model's specification
        kwargs (dict): kwargs that were passed to ``model_spec.execute``.

    Raises:
        AssertionError if expected files do not exist.
    """
    from natcap.rusle import utils as rusle_utils

    args = model_spec.preprocess_inputs(raw_args)
    for output in model_spec.outputs:
        if output.id == 'taskgraph_cache':
            continue
        if not rusle_utils.evaluate_expression(
                f'{output.created_if}', args):
            continue
        path, extension = os.path.splitext(output.path)
        output_path = os.path.join(
            args['workspace_dir'], path + args['results_suffix'] + extension)
        if not os.path.exists(output_path):
            raise AssertionError(f'output {output.id} does not exist')
    if kwargs.get('save_file_registry'):
        if not os.path.exists(
                os.path.join(args['workspace_dir'],
                             f'file_registry{args["results_suffix"]}.json')):
            raise AssertionError('file registry json file does not exist')
