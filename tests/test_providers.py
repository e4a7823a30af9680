"""Tests for data and boundary providers."""
import os
import shutil
import tempfile
import unittest

import numpy
import shapely.geometry
from osgeo import gdal

from . import utils

gdal.UseExceptions()

CRS = 'EPSG:32643'


class WarpTests(unittest.TestCase):
    """Tests for natcap.rusle.providers.warp_array."""

    def setUp(self):
        from natcap.rusle import raster
        self.source = numpy.arange(16, dtype=float).reshape((4, 4))
        self.source_grid = raster.Grid(CRS, 0, 4, 1, 4, 4)
        self.target_grid = raster.Grid(CRS, 0, 4, 2, 2, 2)

    def test_nearest(self):
        """Providers: nearest takes the source pixel under each center."""
        from natcap.rusle import providers
        numpy.testing.assert_array_equal(
            providers.warp_array(
                self.source, self.source_grid, self.target_grid),
            [[5, 7], [13, 15]])

    def test_bilinear(self):
        """Providers: bilinear interpolates between source centers."""
        from natcap.rusle import providers
        from natcap.rusle import raster

        # centers of this grid fall on the corners of source pixels
        half_shifted = raster.Grid(CRS, 0.5, 3.5, 1, 3, 3)
        numpy.testing.assert_allclose(
            providers.warp_array(
                self.source, self.source_grid, half_shifted, 'bilinear'),
            [[2.5, 3.5, 4.5], [6.5, 7.5, 8.5], [10.5, 11.5, 12.5]])

    def test_outside_and_nodata(self):
        """Providers: pixels outside the source or without data are NaN."""
        from natcap.rusle import providers
        from natcap.rusle import raster

        shifted = raster.Grid(CRS, 2, 4, 2, 2, 2)
        numpy.testing.assert_array_equal(
            providers.warp_array(self.source, self.source_grid, shifted),
            [[7, numpy.nan], [15, numpy.nan]])

        source = self.source.copy()
        source[1, 1] = numpy.nan
        numpy.testing.assert_array_equal(
            providers.warp_array(
                source, self.source_grid, self.target_grid),
            [[numpy.nan, 7], [13, 15]])

        with self.assertRaises(raster.IncompatibleOperands):
            providers.warp_array(
                self.source, self.source_grid,
                raster.Grid('EPSG:4326', 0, 4, 2, 2, 2))
        with self.assertRaises(ValueError):
            providers.warp_array(
                self.source, self.source_grid, self.target_grid, 'cubic')


class ArrayDataProviderTests(unittest.TestCase):
    """Tests for natcap.rusle.providers.ArrayDataProvider."""

    def test_coverage_and_fetch(self):
        """Providers: series layers are sorted and selected by date."""
        import datetime

        from natcap.rusle import providers
        from natcap.rusle import raster

        provider = providers.ArrayDataProvider(CRS)
        dates = [datetime.date(2021, 1, 1), datetime.date(2020, 1, 1)]
        provider.add('p', numpy.stack([numpy.full((2, 2), 2.0),
                                       numpy.full((2, 2), 1.0)]),
                     origin=(0, 200), scale=100, dates=dates)
        coverage = provider.coverage('p', 'p')
        self.assertEqual(coverage.dates, tuple(sorted(dates)))
        self.assertEqual(coverage.bounds, (0, 0, 200, 200))
        self.assertEqual(coverage.scale, 100)

        grid = raster.Grid(CRS, 0, 200, 100, 2, 2)
        values = provider.fetch('p', 'p', None, grid)
        self.assertEqual(values.shape, (2, 2, 2))
        numpy.testing.assert_array_equal(values[0], 1)

        just_2021 = provider.fetch(
            'p', 'p', raster.TimeRange.from_years(2021, 2021), grid)
        self.assertEqual(just_2021.shape, (1, 2, 2))
        numpy.testing.assert_array_equal(just_2021[0], 2)

    def test_invalid_layers(self):
        """Providers: shapes, dates and CRSs of layers must be consistent."""
        import datetime

        from natcap.rusle import providers
        from natcap.rusle import raster

        provider = providers.ArrayDataProvider(CRS)
        with self.assertRaises(ValueError):
            provider.add('a', numpy.ones((2, 2, 2)), (0, 0), 1)
        with self.assertRaises(ValueError):
            provider.add('a', numpy.ones((2, 2)), (0, 0), 1,
                         dates=[datetime.date(2020, 1, 1)])
        provider.add('a', numpy.ones((2, 2)), (0, 0), 1)
        with self.assertRaises(ValueError):
            provider.add('a', numpy.ones((2, 2)), (0, 0), 1)
        with self.assertRaises(raster.DataUnavailable):
            provider.coverage('a', 'other band')


class GDALDataProviderTests(unittest.TestCase):
    """Tests for natcap.rusle.providers.GDALDataProvider."""

    def setUp(self):
        self.workspace_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.workspace_dir)

    def test_from_table(self):
        """Providers: rasters listed in a table are served by id and date."""
        from natcap.rusle import providers
        from natcap.rusle import raster

        table_path = utils.write_dataset_table(self.workspace_dir)
        provider = providers.GDALDataProvider.from_table(table_path)
        self.assertIn(('precipitation', 'precipitation'), provider.datasets())

        coverage = provider.coverage('precipitation', 'precipitation')
        self.assertEqual(len(coverage.dates), 12)
        self.assertEqual(coverage.bounds, utils.BOUNDS)
        self.assertEqual(coverage.scale, utils.PIXEL_SIZE)
        self.assertTrue(raster.same_crs(coverage.crs, CRS))

        grid = raster.Grid(
            coverage.crs, utils.ORIGIN[0], utils.ORIGIN[1],
            utils.PIXEL_SIZE, 10, 10)
        numpy.testing.assert_allclose(
            provider.fetch('elevation', 'elevation', None, grid),
            utils.tilted_elevation())

        # a coarser grid straddling the east edge
        coarse = raster.Grid(
            coverage.crs, utils.ORIGIN[0] + 800, utils.ORIGIN[1], 200, 1, 2)
        numpy.testing.assert_allclose(
            provider.fetch('elevation', 'elevation', None, coarse),
            [[90, numpy.nan]])

        # bilinear halfway between columns of a ramp rising 10 m per column
        half_shifted = raster.Grid(
            coverage.crs, utils.ORIGIN[0] + 50, utils.ORIGIN[1] - 50,
            utils.PIXEL_SIZE, 9, 9)
        numpy.testing.assert_allclose(
            provider.fetch(
                'elevation', 'elevation', None, half_shifted, 'bilinear'),
            numpy.tile(numpy.arange(9) * 10.0 + 5, (9, 1)))

    def test_nodata_is_nan(self):
        """Providers: the raster nodata value is read as NaN."""
        from natcap.rusle import providers
        from natcap.rusle import raster

        array = numpy.ones(utils.SHAPE)
        array[0, 0] = utils.NODATA
        path = os.path.join(self.workspace_dir, 'holes.tif')
        utils.write_raster(array, path)
        provider = providers.GDALDataProvider()
        provider.add('holes', path)
        coverage = provider.coverage('holes', 'holes')
        values = provider.fetch(
            'holes', 'holes', None,
            raster.Grid(coverage.crs, utils.ORIGIN[0], utils.ORIGIN[1],
                        utils.PIXEL_SIZE, 2, 2))
        numpy.testing.assert_array_equal(values, [[numpy.nan, 1], [1, 1]])

        with self.assertRaises(ValueError):
            provider.add('holes', path, band='two', band_index=2)

    def test_bad_tables(self):
        """Providers: tables missing columns or with bad dates fail."""
        from natcap.rusle import providers

        table_path = os.path.join(self.workspace_dir, 'table.csv')
        with open(table_path, 'w') as table_file:
            table_file.write('dataset_id,path\na,a.tif\n')
        with self.assertRaises(ValueError):
            providers.GDALDataProvider.from_table(table_path)

        utils.write_raster(
            numpy.ones(utils.SHAPE), os.path.join(self.workspace_dir, 'a.tif'))
        with open(table_path, 'w') as table_file:
            table_file.write('dataset_id,band,path,date\na,a,a.tif,someday\n')
        with self.assertRaises(ValueError):
            providers.GDALDataProvider.from_table(table_path)


class VectorBoundaryProviderTests(unittest.TestCase):
    """Tests for natcap.rusle.providers.VectorBoundaryProvider."""

    def setUp(self):
        self.workspace_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.workspace_dir)

    def test_regions(self):
        """Providers: districts are filtered by name and by state."""
        from natcap.rusle import providers

        geometries = utils.district_geometries()
        vector_path = utils.write_boundaries(
            os.path.join(self.workspace_dir, 'districts.gpkg'), geometries)
        boundaries = providers.VectorBoundaryProvider(vector_path)

        districts = boundaries.regions(2)
        self.assertEqual([r.name for r in districts], ['West', 'East'])
        self.assertTrue(districts[0].geometry.equals(geometries['West']))
        self.assertEqual(districts[0].attributes['ADM1_NAME'], 'Karnataka')

        self.assertEqual(
            [r.name for r in boundaries.regions(2, filter_name='East')],
            ['East'])
        self.assertEqual(
            boundaries.regions(2, parent_name='Kerala'), [])

        states = boundaries.regions(1)
        self.assertEqual(len(states), 1)
        self.assertAlmostEqual(
            states[0].area,
            shapely.geometry.box(*utils.BOUNDS).area)

        with self.assertRaises(ValueError):
            boundaries.regions(3)
        with self.assertRaises(ValueError):
            boundaries.regions(1, parent_name='India')
