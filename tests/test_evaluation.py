"""Tests for evaluating raster handle graphs over pixel grids."""
import datetime
import math
import unittest

import numpy
import shapely.geometry
from osgeo import gdal

gdal.UseExceptions()

CRS = 'EPSG:32643'


def _provider_with(**arrays):
    """Register 2D arrays on a 100 m grid with its corner at (0, 1000)."""
    from natcap.rusle import providers

    provider = providers.ArrayDataProvider(CRS)
    for dataset_id, array in arrays.items():
        provider.add(dataset_id, array, origin=(0, 1000), scale=100)
    return provider


def _grid(n_rows, n_cols):
    from natcap.rusle import raster
    return raster.Grid(CRS, 0, 1000, 100, n_rows, n_cols)


class EvaluationTests(unittest.TestCase):
    """Tests for the operation kernels."""

    def test_arithmetic_propagates_nodata(self):
        """Evaluation: arithmetic keeps NaN where an input is NaN."""
        from natcap.rusle import evaluation
        from natcap.rusle import raster

        values = numpy.array([[1, numpy.nan], [3, 4]])
        handle = raster.load(_provider_with(a=values), 'a')

        numpy.testing.assert_allclose(
            evaluation.evaluate(handle * 2 + 1, _grid(2, 2)),
            [[3, numpy.nan], [7, 9]])
        numpy.testing.assert_allclose(
            evaluation.evaluate(1 / handle, _grid(2, 2)),
            [[1, numpy.nan], [1 / 3, 0.25]])
        numpy.testing.assert_allclose(
            evaluation.evaluate((-handle).abs().max(2), _grid(2, 2)),
            [[2, numpy.nan], [3, 4]])

    def test_comparisons(self):
        """Evaluation: comparisons give 1 or 0, and NaN on no-data."""
        from natcap.rusle import evaluation
        from natcap.rusle import raster

        values = numpy.array([[1, numpy.nan], [3, 4]])
        handle = raster.load(_provider_with(a=values), 'a')
        grid = _grid(2, 2)

        numpy.testing.assert_array_equal(
            evaluation.evaluate(handle.gt(2), grid), [[0, numpy.nan], [1, 1]])
        numpy.testing.assert_array_equal(
            evaluation.evaluate(handle.gt(2).and_(handle.lt(4)), grid),
            [[0, numpy.nan], [1, 0]])
        numpy.testing.assert_array_equal(
            evaluation.evaluate(handle.eq(1).not_(), grid),
            [[0, numpy.nan], [1, 1]])
        numpy.testing.assert_array_equal(
            evaluation.evaluate(raster.isin(handle, (1, 4)), grid),
            [[1, numpy.nan], [0, 1]])

    def test_where(self):
        """Evaluation: where selects per pixel."""
        from natcap.rusle import evaluation
        from natcap.rusle import raster

        values = numpy.array([[1, numpy.nan], [3, 4]])
        handle = raster.load(_provider_with(a=values), 'a')
        numpy.testing.assert_array_equal(
            evaluation.evaluate(
                raster.where(handle.gt(2), 10, handle), _grid(2, 2)),
            [[1, numpy.nan], [10, 10]])
        numpy.testing.assert_array_equal(
            evaluation.evaluate(handle.where(handle.eq(3), 0), _grid(2, 2)),
            [[1, numpy.nan], [0, 4]])

    def test_remap(self):
        """Evaluation: unlisted categories get the default."""
        from natcap.rusle import evaluation
        from natcap.rusle import raster

        land_cover = numpy.array([[10, 40], [99, numpy.nan]])
        handle = raster.load(_provider_with(lc=land_cover), 'lc')
        numpy.testing.assert_allclose(
            evaluation.evaluate(
                raster.remap(handle, {10: 0.001, 40: 0.2}, 0.35), _grid(2, 2)),
            [[0.001, 0.2], [0.35, numpy.nan]])

    def test_bands(self):
        """Evaluation: band lookups use half-open intervals."""
        from natcap.rusle import evaluation
        from natcap.rusle import raster

        slope = numpy.array([[0, 1.99, 2, 4.99, 5, 25, numpy.nan]])
        handle = raster.load(_provider_with(s=slope), 's')
        numpy.testing.assert_allclose(
            evaluation.evaluate(
                raster.bands(handle, (2, 5), (0.1, 0.2, 0.3)), _grid(1, 7)),
            [[0.1, 0.1, 0.2, 0.2, 0.3, 0.3, numpy.nan]])

    def test_classify(self):
        """Evaluation: every value gets exactly one class."""
        from natcap.rusle import classification
        from natcap.rusle import evaluation
        from natcap.rusle import raster

        soil_loss = numpy.array(
            [[-1, 0, 4.99, 5, 10, 39.9, 40, 80, 1e6, numpy.nan]])
        handle = raster.load(_provider_with(a=soil_loss), 'a')
        classes = classification.classify(handle)
        self.assertEqual(classes.dtype, 'uint8')
        self.assertEqual(classes.band_names, ('erosion_class',))
        numpy.testing.assert_array_equal(
            evaluation.evaluate(classes, _grid(1, 10)),
            [[1, 1, 1, 2, 3, 4, 5, 6, 6, 255]])

    def test_temporal_sum(self):
        """Evaluation: sums over selected months, no-data if any is missing."""
        from natcap.rusle import evaluation
        from natcap.rusle import providers
        from natcap.rusle import raster

        series = numpy.ones((24, 1, 2))
        series[:, 0, 0] = numpy.arange(24)
        series[3, 0, 1] = numpy.nan
        dates = [datetime.date(year, month, 15)
                 for year in (2020, 2021) for month in range(1, 13)]
        provider = providers.ArrayDataProvider(CRS)
        provider.add('p', series, origin=(0, 1000), scale=100, dates=dates)
        handle = raster.load(provider, 'p')

        total = evaluation.evaluate(
            raster.temporal_sum(handle, divisor=2), _grid(1, 2))
        self.assertAlmostEqual(total[0, 0], numpy.arange(24).sum() / 2)
        self.assertTrue(numpy.isnan(total[0, 1]))

        july = evaluation.evaluate(
            raster.temporal_sum(handle, months=(7,)), _grid(1, 2))
        self.assertAlmostEqual(july[0, 0], 6 + 18)
        # the missing April layer doesn't affect a July total
        self.assertAlmostEqual(july[0, 1], 2)

    def test_slope_of_a_plane(self):
        """Evaluation: a 0.1 gradient is a slope of about 5.71 degrees."""
        from natcap.rusle import evaluation
        from natcap.rusle import raster

        elevation = numpy.tile(numpy.arange(8, dtype=float) * 10, (6, 1))
        handle = raster.slope(
            raster.load(_provider_with(dem=elevation), 'dem'))
        slope = evaluation.evaluate(handle, _grid(6, 8))
        numpy.testing.assert_allclose(
            slope[1:-1, 1:-1], math.degrees(math.atan(0.1)), rtol=1e-9)
        # missing neighbors beyond the data take the center value
        numpy.testing.assert_allclose(
            slope[1:-1, 0], math.degrees(math.atan(0.05)), rtol=1e-9)

        flat = raster.slope(
            raster.load(_provider_with(dem=numpy.ones((4, 4))), 'dem'))
        numpy.testing.assert_array_equal(
            evaluation.evaluate(flat, _grid(4, 4)), numpy.zeros((4, 4)))

    def test_clip(self):
        """Evaluation: pixels centered outside a region are masked."""
        from natcap.rusle import evaluation
        from natcap.rusle import raster
        from natcap.rusle import regions

        handle = raster.load(_provider_with(a=numpy.ones((4, 4))), 'a')
        west = regions.Region(
            'west', shapely.geometry.box(0, 0, 200, 1000), CRS)
        clipped = evaluation.evaluate(raster.clip(handle, west), _grid(4, 4))
        numpy.testing.assert_array_equal(clipped[:, :2], 1)
        self.assertTrue(numpy.isnan(clipped[:, 2:]).all())

    def test_stack_and_pixel_area(self):
        """Evaluation: stacks have one layer per band."""
        from natcap.rusle import evaluation
        from natcap.rusle import raster

        handle = raster.load(_provider_with(a=numpy.ones((3, 3))), 'a')
        stacked = raster.stack(
            handle.rename('one'), (handle * 2).rename('two'),
            (handle * raster.pixel_area()).rename('area'))
        values = evaluation.evaluate(stacked, _grid(3, 3))
        self.assertEqual(values.shape, (3, 3, 3))
        numpy.testing.assert_array_equal(values[1], 2)
        numpy.testing.assert_array_equal(values[2], 100 * 100)

    def test_shared_nodes_are_evaluated_once(self):
        """Evaluation: a node used twice in a request is computed once."""
        from natcap.rusle import evaluation
        from natcap.rusle import providers
        from natcap.rusle import raster

        class CountingProvider(providers.ArrayDataProvider):
            def __init__(self, crs):
                super().__init__(crs)
                self.n_fetches = 0

            def fetch(self, *args, **kwargs):
                self.n_fetches += 1
                return super().fetch(*args, **kwargs)

        provider = CountingProvider(CRS)
        provider.add('a', numpy.ones((3, 3)), origin=(0, 1000), scale=100)
        handle = raster.load(provider, 'a')
        graph = handle * handle + handle.exp()

        evaluation.evaluate(graph, _grid(3, 3))
        self.assertEqual(provider.n_fetches, 1)

        memo = {}
        evaluation.evaluate(graph, _grid(3, 3), memo)
        evaluation.evaluate(handle.sin(), _grid(3, 3), memo)
        self.assertEqual(provider.n_fetches, 2)

        # a different grid is a different request
        evaluation.evaluate(graph, _grid(2, 2), memo)
        self.assertEqual(provider.n_fetches, 3)
