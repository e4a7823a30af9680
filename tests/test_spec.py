import json
import os
import shutil
import tempfile
import textwrap
import unittest

import pandas
from natcap.rusle import spec
from natcap.rusle.unit_registry import u
from osgeo import gdal

gdal.UseExceptions()


class SpecUtilsUnitTests(unittest.TestCase):
    """Unit tests for natcap.rusle.spec."""

    def test_format_unit(self):
        """spec: test converting units to strings with format_unit."""
        for unit_name, expected in [
                ('meter', 'm'),
                ('meter / second', 'm/s'),
        ]:
            unit = spec.u.Unit(unit_name)
            actual = spec.format_unit(unit)
            self.assertEqual(expected, actual)
        self.assertEqual(spec.format_unit(u.none), 'unitless')
        self.assertEqual(spec.format_unit(None), '')

    def test_format_unit_raises_error(self):
        """spec: format_unit raises TypeError if not a pint.Unit."""
        with self.assertRaises(TypeError):
            spec.format_unit({})

    def test_check_headers(self):
        """spec: headers are matched case-insensitively and exactly once."""
        self.assertIsNone(
            spec.check_headers(['dataset_id', 'path'],
                               ['Dataset_ID', 'PATH', 'extra']))
        self.assertIn(
            'Expected the column "band" but did not find it',
            spec.check_headers(['band'], ['path'], 'column'))
        self.assertIn(
            'only once but found it 2 times',
            spec.check_headers(['path'], ['path', 'Path']))

    def test_permissions_string(self):
        """spec: permissions may only use r, w and x once each."""
        self.assertEqual(spec.validate_permissions_string('rwx'), 'rwx')
        with self.assertRaises(ValueError):
            spec.validate_permissions_string('rr')
        with self.assertRaises(ValueError):
            spec.validate_permissions_string('rq')


class ResultsSuffixTests(unittest.TestCase):
    """Tests for natcap.rusle.spec.ResultsSuffixInput."""

    def test_suffix_string(self):
        """Utils: test suffix_string."""
        self.assertEqual(spec.SUFFIX.preprocess('suff'), '_suff')

    def test_suffix_string_underscore(self):
        """Utils: test suffix_string underscore."""
        self.assertEqual(spec.SUFFIX.preprocess('_suff'), '_suff')

    def test_suffix_string_empty(self):
        """Utils: test empty suffix_string."""
        self.assertEqual(spec.SUFFIX.preprocess(''), '')

    def test_suffix_string_no_entry(self):
        """Utils: test no suffix entry in args."""
        self.assertEqual(spec.SUFFIX.preprocess(None), '')


class InputTests(unittest.TestCase):
    """Tests for natcap.rusle.spec.Input and subclasses."""

    def test_vector_input_preprocess(self):
        """Test VectorInput.preprocess method"""
        vector_input = spec.VectorInput(
            id="foo",
            geometry_types={"POLYGON"},
            fields=[])
        self.assertEqual(
            vector_input.preprocess('foo/bar.gpkg'), 'foo/bar.gpkg')
        self.assertEqual(vector_input.preprocess(''), None)
        self.assertEqual(vector_input.preprocess(None), None)

    def test_vector_input_projection_units(self):
        """Test that projection units require a projected vector."""
        with self.assertRaises(ValueError):
            spec.VectorInput(
                id="foo", geometry_types={"POLYGON"}, fields=[],
                projection_units=u.meter)

    def test_csv_input_preprocess(self):
        """Test CSVInput.preprocess method"""
        csv_input = spec.CSVInput(id="foo")
        self.assertEqual(csv_input.preprocess('foo/bar.csv'), 'foo/bar.csv')
        self.assertEqual(csv_input.preprocess(''), None)
        self.assertEqual(csv_input.preprocess(None), None)

    def test_number_input_preprocess(self):
        """Test NumberInput.preprocess method"""
        number_input = spec.NumberInput(id='foo', units=None)
        self.assertEqual(number_input.preprocess(1.5), 1.5)
        self.assertEqual(number_input.preprocess('1.5'), 1.5)
        self.assertEqual(number_input.preprocess(0), 0)
        self.assertEqual(number_input.preprocess(''), None)
        self.assertEqual(number_input.preprocess(None), None)

    def test_integer_input_preprocess(self):
        """Test IntegerInput.preprocess method"""
        integer_input = spec.IntegerInput(id='foo')
        self.assertEqual(integer_input.preprocess(1), 1)
        self.assertEqual(integer_input.preprocess('1'), 1)
        self.assertEqual(integer_input.preprocess('2.0'), 2)
        self.assertEqual(integer_input.preprocess(''), None)
        self.assertEqual(integer_input.preprocess(None), None)

    def test_n_workers_input_preprocess(self):
        """Test that a missing n_workers runs synchronously."""
        self.assertEqual(spec.N_WORKERS.preprocess(None), -1)
        self.assertEqual(spec.N_WORKERS.preprocess(''), -1)
        self.assertEqual(spec.N_WORKERS.preprocess('4'), 4)

    def test_boolean_input_preprocess(self):
        """Test BooleanInput.preprocess method"""
        boolean_input = spec.BooleanInput(id='foo')
        self.assertEqual(boolean_input.preprocess(False), False)
        self.assertEqual(boolean_input.preprocess(True), True)
        self.assertEqual(boolean_input.preprocess(''), None)
        self.assertEqual(boolean_input.preprocess(None), None)

    def test_string_input_preprocess(self):
        """Test StringInput.preprocess method"""
        string_input = spec.StringInput(id='foo')
        self.assertEqual(string_input.preprocess('foo'), 'foo')
        self.assertEqual(string_input.preprocess(1), '1')
        self.assertEqual(string_input.preprocess(''), None)
        self.assertEqual(string_input.preprocess(None), None)

    def test_string_input_bad_regexp(self):
        """Test that an uncompilable regexp is rejected."""
        with self.assertRaises(ValueError):
            spec.StringInput(id='foo', regexp='[a-z')


class CSVInputTests(unittest.TestCase):
    """Tests for reading tables through a CSVInput."""

    def setUp(self):
        self.workspace_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.workspace_dir)

    def _csv_input(self):
        return spec.CSVInput(
            id='biophysical_table_path',
            index_col='lucode',
            columns=[
                spec.IntegerInput(id='lucode'),
                spec.StringInput(id='name', required=False),
                spec.RatioInput(id='usle_c'),
                spec.FileInput(id='path', required=False),
            ])

    def _write(self, text):
        csv_path = os.path.join(self.workspace_dir, 'table.csv')
        with open(csv_path, 'w') as csv_file:
            csv_file.write(textwrap.dedent(text))
        return csv_path

    def test_get_validated_dataframe(self):
        """spec: columns are cast, paths expanded, and indexed."""
        csv_path = self._write(
            """\
            LUCODE,Name,usle_c,path,ignored
            1, forest ,0.003,forest.tif,x
            2,crop,0.3,,y
            """)
        df = self._csv_input().get_validated_dataframe(csv_path)
        self.assertEqual(list(df.index), [1, 2])
        self.assertEqual(list(df.columns), ['name', 'usle_c', 'path'])
        self.assertEqual(df.loc[1, 'name'], 'forest')
        self.assertEqual(df.loc[2, 'usle_c'], 0.3)
        self.assertEqual(
            df.loc[1, 'path'],
            os.path.join(os.path.abspath(self.workspace_dir), 'forest.tif'))
        self.assertTrue(pandas.isna(df.loc[2, 'path']))

    def test_missing_column(self):
        """spec: a missing required column is reported."""
        csv_path = self._write(
            """\
            lucode,name
            1,forest
            """)
        message = self._csv_input().validate(csv_path)
        self.assertIn('Expected the column "usle_c"', message)

    def test_duplicate_index(self):
        """spec: duplicate index values are reported."""
        csv_path = self._write(
            """\
            lucode,usle_c
            1,0.1
            1,0.2
            """)
        with self.assertRaises(ValueError) as cm:
            self._csv_input().get_validated_dataframe(csv_path)
        self.assertIn('must be unique', str(cm.exception))

    def test_bad_values(self):
        """spec: values that can't be cast to the column type are reported."""
        csv_path = self._write(
            """\
            lucode,usle_c
            forest,0.1
            """)
        with self.assertRaises(ValueError) as cm:
            self._csv_input().get_validated_dataframe(csv_path)
        self.assertIn('could not be interpreted as IntegerInputs',
                      str(cm.exception))

    def test_index_col_must_be_a_column(self):
        """spec: the index column has to be one of the columns."""
        with self.assertRaises(ValueError):
            spec.CSVInput(
                id='foo', index_col='bar',
                columns=[spec.IntegerInput(id='lucode')])


class ModelSpecTests(unittest.TestCase):
    """Tests for natcap.rusle.spec.ModelSpec."""

    def setUp(self):
        self.workspace_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.workspace_dir)

    def _model_spec(self, **kwargs):
        return spec.ModelSpec(**{
            'model_id': 'foo',
            'model_title': 'Foo',
            'module_name': 'natcap.rusle.soil_loss',
            'input_field_order': [['workspace_dir', 'results_suffix']],
            'inputs': [spec.WORKSPACE, spec.SUFFIX, spec.N_WORKERS],
            'outputs': [
                spec.FileOutput(id='a', path='intermediate/a.tif'),
                spec.FileOutput(
                    id='b', path='optional/b.tif',
                    created_if='results_suffix'),
                spec.TASKGRAPH_CACHE,
            ],
            **kwargs})

    def test_input_field_order(self):
        """spec: every visible input appears once in the field order."""
        with self.assertRaises(ValueError):
            self._model_spec(input_field_order=[['workspace_dir']])
        with self.assertRaises(ValueError):
            self._model_spec(input_field_order=[
                ['workspace_dir', 'results_suffix'], ['workspace_dir']])
        with self.assertRaises(ValueError):
            self._model_spec(input_field_order=[
                ['workspace_dir', 'results_suffix', 'n_workers']])

    def test_get_input_and_output(self):
        """spec: inputs and outputs are looked up by id."""
        model_spec = self._model_spec()
        self.assertEqual(
            model_spec.get_input('results_suffix').regexp, spec.SUFFIX.regexp)
        self.assertEqual(model_spec.get_output('a').path, 'intermediate/a.tif')
        with self.assertRaises(KeyError):
            model_spec.get_input('missing')

    def test_preprocess_inputs(self):
        """spec: every input is present after preprocessing."""
        args = self._model_spec().preprocess_inputs(
            {'workspace_dir': self.workspace_dir, 'unknown': 1})
        self.assertEqual(args, {
            'workspace_dir': self.workspace_dir,
            'results_suffix': '',
            'n_workers': -1,
        })

    def test_setup(self):
        """spec: setup creates directories, a registry and a graph."""
        model_spec = self._model_spec()
        workspace = os.path.join(self.workspace_dir, 'workspace')
        args, file_registry, graph = model_spec.setup(
            {'workspace_dir': workspace, 'results_suffix': ''})
        try:
            self.assertTrue(
                os.path.isdir(os.path.join(workspace, 'intermediate')))
            self.assertTrue(
                os.path.isdir(os.path.join(workspace, 'taskgraph_cache')))
            # created_if evaluates false without a suffix
            self.assertFalse(
                os.path.exists(os.path.join(workspace, 'optional')))
            self.assertEqual(
                file_registry['a'],
                os.path.join(workspace, 'intermediate', 'a.tif'))
        finally:
            graph.close()
            graph.join()

    def test_to_json(self):
        """spec: the model spec serializes with args keyed by id."""
        spec_dict = json.loads(self._model_spec().to_json())
        self.assertEqual(spec_dict['model_id'], 'foo')
        self.assertEqual(
            sorted(spec_dict['args']),
            ['n_workers', 'results_suffix', 'workspace_dir'])
        self.assertEqual(spec_dict['args']['workspace_dir']['type'],
                         'directory')
        self.assertEqual(spec_dict['args']['n_workers']['units'], 'unitless')
        self.assertEqual(spec_dict['outputs']['a']['path'],
                         'intermediate/a.tif')

    def test_soil_loss_spec_serializes(self):
        """spec: the soil loss model spec serializes to JSON."""
        from natcap.rusle import soil_loss

        spec_dict = json.loads(soil_loss.MODEL_SPEC.to_json())
        self.assertEqual(spec_dict['model_id'], 'soil_loss')
        self.assertEqual(
            spec_dict['args']['biophysical_table_path']['type'], 'csv')
