import contextlib
import importlib
import json
import logging
import os
import queue
import re
import threading
import types
import typing
import warnings

from osgeo import gdal
from osgeo import ogr
from osgeo import osr
import pandas
import pint
from pygeoprocessing.geoprocessing_core import GDALUseExceptions
from pydantic import AfterValidator, BaseModel, ConfigDict, \
    field_validator, model_validator
import taskgraph

from natcap.rusle.file_registry import FileRegistry
from natcap.rusle import utils
from natcap.rusle.validation import get_message
from .unit_registry import u


LOGGER = logging.getLogger(__name__)


# accessing a file could take a long time if it's in a file streaming service
# to prevent validation from hanging, set a timeout for these functions.
def timeout(func, timeout=5):
    """Stop a function after a given amount of time.

    Args:
        func (function): function to apply the timeout to
        timeout (number): how many seconds to allow the function to run.
            Defaults to 5.

    Returns:
        A string warning message if the thread completed in time and returned
        warnings, ``None`` otherwise.
    """
    # the target function puts the return value from `func` into shared memory
    message_queue = queue.Queue()

    def wrapper(*args, **kwargs):
        def put_fn():
            message_queue.put(func(*args, **kwargs))
        thread = threading.Thread(target=put_fn)
        LOGGER.debug(f'Starting file checking thread with timeout={timeout}')
        thread.start()
        thread.join(timeout=timeout)
        if thread.is_alive():
            # the first arg after self is the path
            warnings.warn(
                f'Validation of file {args[1]} timed out. If this file '
                'is stored in a file streaming service, it may be taking a long '
                'time to download. Try storing it locally instead.')
        else:
            LOGGER.debug('File checking thread completed.')
            return message_queue.get()

    return wrapper


def check_headers(expected_headers, actual_headers, header_type='header'):
    """Validate that expected headers are in a list of actual headers.

    - Each expected header should be found exactly once.
    - Actual headers may contain extra headers that are not expected.
    - Headers are converted to lowercase before matching.

    Returns:
        None, if validation passes; or a string describing the problem, if a
        validation rule is broken.
    """
    actual_headers = [header.lower() for header in actual_headers]
    for expected in expected_headers:
        count = actual_headers.count(expected)
        if count == 0:
            return get_message('MATCHED_NO_HEADERS').format(
                header=header_type,
                header_name=expected)
        elif count > 1:
            return get_message('DUPLICATE_HEADER').format(
                header=header_type,
                header_name=expected,
                number=count)


def _check_projection(srs, projected, projection_units):
    """Validate a GDAL projection.

    Args:
        srs (osr.SpatialReference): the spatial reference of a dataset.
        projected (bool): Whether the spatial reference must be projected in
            linear units.
        projection_units (pint.Unit): The projection's required linear units.

    Returns:
        A string error message if an error was found. ``None`` otherwise.
    """
    with GDALUseExceptions():
        empty_srs = osr.SpatialReference()
        if srs is None or srs.IsSame(empty_srs):
            return get_message('INVALID_PROJECTION')

        if projected and not srs.IsProjected():
            return get_message('NOT_PROJECTED')

        if projection_units:
            layer_units_name = srs.GetLinearUnitsName().lower().replace(' ', '_')
            try:
                layer_units = u.Unit(layer_units_name)
                if projection_units != layer_units:
                    return get_message('WRONG_PROJECTION_UNIT').format(
                        unit_a=projection_units, unit_b=layer_units_name)
            except pint.errors.UndefinedUnitError:
                return get_message('WRONG_PROJECTION_UNIT').format(
                    unit_a=projection_units, unit_b=layer_units_name)


def validate_permissions_string(permissions):
    """Validate an rwx-style permissions string.

    Raises:
        ValueError if it has any letters besides 'r', 'w', 'x', or if it has
        any of those letters more than once
    """
    valid_letters = {'r', 'w', 'x'}
    used_letters = set()
    for letter in permissions:
        if letter not in valid_letters:
            raise ValueError('permissions contains a letter other than r,w,x')
        if letter in used_letters:
            raise ValueError('permissions contains a duplicate letter')
        used_letters.add(letter)
    return permissions


def format_unit(unit):
    """Represent a pint Unit as short unicode text."""
    if unit is None:
        return ''
    if not isinstance(unit, pint.Unit):
        raise TypeError(
            f'{unit} is of type {type(unit)}. '
            f'It should be an instance of pint.Unit')
    if unit == u.none:
        return 'unitless'
    return f'{unit:~P}'


class Input(BaseModel):
    """A data input, or parameter, of a model.

    This does not store the value of the parameter for a specific run of the
    model.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)
    """Allow fields to have arbitrary types (that don't inherit from BaseModel).
    Needed for pint.Unit."""

    id: str
    """Input identifier that should be unique within a model"""

    name: typing.Union[str, None] = None
    """The user-facing name of the input, all lower-case."""

    about: typing.Union[str, None] = None
    """User-facing description of the input"""

    required: typing.Union[bool, str] = True
    """Whether the input is required to be provided. Provide a string
    expression that evaluates to a boolean if the input is conditionally
    required."""

    hidden: bool = False
    """Whether to hide the input from the model's input listing."""

    def preprocess(self, value):
        """Base preprocessing function.

        Override this when specific preprocessing is needed.
        """
        return value


class Output(BaseModel):
    """A data output, or result, of a model."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    """Output identifier that should be unique within a model"""

    about: typing.Union[str, None] = None
    """User-facing description of the output"""

    created_if: typing.Union[bool, str] = True
    """Defaults to True. If the output is only created under a certain
    condition, provide a string expression that evaluates to a boolean to
    describe this condition."""


class FileInput(Input):
    """A generic file input, or parameter, of a model."""
    permissions: typing.Annotated[str, AfterValidator(
        validate_permissions_string)] = 'r'
    """A string that includes the lowercase characters ``r``, ``w`` and/or
    ``x``, indicating read, write, and execute permissions (respectively)
    required for this file."""

    type: typing.ClassVar[str] = 'file'

    @timeout
    def validate(self, filepath: str):
        """Validate a file against the requirements for this input.

        Returns:
            A string error message if an error was found.  ``None`` otherwise.
        """
        if not os.path.exists(filepath):
            return get_message('FILE_NOT_FOUND')

        for letter, mode, descriptor in (
                ('r', os.R_OK, 'read'),
                ('w', os.W_OK, 'write'),
                ('x', os.X_OK, 'execute')):
            if letter in self.permissions and not os.access(filepath, mode):
                return get_message('NEED_PERMISSION_FILE').format(
                    permission=descriptor)

    @staticmethod
    def format_column(col: pandas.Series, base_path: str) -> pandas.Series:
        """Format a column of a pandas dataframe that contains file paths.

        Relative paths are expanded to absolute paths relative to the
        directory of ``base_path``. NA values remain NA.
        """
        base_dir = os.path.dirname(os.path.abspath(base_path))

        def format_path(p):
            if pandas.isna(p):
                return p
            p = str(p).strip()
            if os.path.isabs(p):
                return p
            return os.path.abspath(os.path.join(base_dir, p))

        return col.apply(format_path).astype(pandas.StringDtype())

    def preprocess(self, value):
        return value if value else None


class VectorInput(FileInput):
    """A vector input of a model. Only the first layer is used."""
    geometry_types: set
    """A set of geometry type(s) that are allowed for this vector"""

    fields: list[Input]
    """`Input`s representing the fields that this vector is expected to
    have."""

    projected: typing.Union[bool, None] = None
    """Set to True if a projected coordinate system is required."""

    projection_units: typing.Union[pint.Unit, None] = None
    """If `projected` is `True`, the required linear unit."""

    type: typing.ClassVar[str] = 'vector'

    @model_validator(mode='after')
    def check_projected_projection_units(self):
        if self.projection_units and not self.projected:
            raise ValueError(
                'Cannot specify projection_units when projected is None')
        return self

    @timeout
    def validate(self, filepath: str):
        """Validate a vector file against the requirements for this input.

        Returns:
            A string error message if an error was found.  ``None`` otherwise.
        """
        with GDALUseExceptions():
            if not os.path.exists(filepath):
                return get_message('FILE_NOT_FOUND')
            try:
                gdal_dataset = gdal.OpenEx(filepath, gdal.OF_VECTOR)
            except RuntimeError:
                return get_message('NOT_GDAL_VECTOR')

            geom_map = {
                'POLYGON': [ogr.wkbPolygon, ogr.wkbPolygonM,
                            ogr.wkbPolygonZM, ogr.wkbPolygon25D],
                'MULTIPOLYGON': [ogr.wkbMultiPolygon, ogr.wkbMultiPolygonM,
                                 ogr.wkbMultiPolygonZM, ogr.wkbMultiPolygon25D]
            }
            allowed_geom_types = []
            for geom in self.geometry_types:
                allowed_geom_types += geom_map[geom]

            layer = gdal_dataset.GetLayer()
            if layer.GetGeomType() not in allowed_geom_types:
                return get_message('WRONG_GEOM_TYPE').format(
                    allowed=self.geometry_types)

            if self.fields:
                field_patterns = [
                    spec.id for spec in self.fields if spec.required is True]
                fieldnames = [defn.GetName() for defn in layer.schema]
                required_field_warning = check_headers(
                    field_patterns, fieldnames, 'field')
                if required_field_warning:
                    return required_field_warning

            srs = layer.GetSpatialRef()
            return _check_projection(
                srs, self.projected, self.projection_units)


class CSVInput(FileInput):
    """A CSV table input of a model, described by its columns."""
    columns: typing.Union[list[Input], None] = None
    """`Input`s representing the columns that this CSV is expected to have.
    The `id` of each input must match the corresponding column header."""

    index_col: typing.Union[str, None] = None
    """The header name of the column to use as the index. Index values must
    be unique."""

    type: typing.ClassVar[str] = 'csv'

    @model_validator(mode='after')
    def check_index_col_in_columns(self):
        if (self.index_col is not None and
                self.index_col not in [s.id for s in self.columns]):
            raise ValueError(f'index_col {self.index_col} not found in columns')
        return self

    def get_column(self, key: str) -> Input:
        return {col.id: col for col in self.columns}[key]

    @timeout
    def validate(self, filepath: str):
        """Validate a CSV file against the requirements for this input.

        Returns:
            A string error message if an error was found.  ``None`` otherwise.
        """
        if not os.path.exists(filepath):
            return get_message('FILE_NOT_FOUND')
        if self.columns:
            try:
                self.get_validated_dataframe(filepath)
            except Exception as e:
                return str(e)

    def get_validated_dataframe(self, csv_path: str, read_csv_kwargs={}):
        """Read a CSV into a dataframe that is guaranteed to match the columns.

        Column headers are matched case-insensitively, values are cast to the
        type of their column and relative paths are expanded.

        Raises:
            ValueError if a required column is missing, if the values in a
            column cannot be interpreted as the expected type, or if the
            index column has duplicate values.
        """
        if not self.columns:
            raise ValueError('columns must be provided')

        df = utils.read_csv_to_dataframe(csv_path, **read_csv_kwargs)
        expected = [column.id.lower() for column in self.columns]
        df = df[[col for col in df.columns if col in expected]]
        # drop any empty rows
        df = df.dropna(how="all").reset_index(drop=True)

        for col_spec in self.columns:
            col = col_spec.id.lower()
            if col not in df.columns:
                if col_spec.required is True:
                    raise ValueError(get_message('MATCHED_NO_HEADERS').format(
                        header='column', header_name=col_spec.id))
                continue
            try:
                df[col] = col_spec.format_column(df[col], csv_path)
            except Exception as err:
                raise ValueError(
                    f'Value(s) in the "{col}" column could not be interpreted '
                    f'as {type(col_spec).__name__}s. Original error: {err}')

        if self.index_col is not None:
            index_col = self.index_col.lower()
            duplicated = df[index_col][df[index_col].duplicated()]
            if not duplicated.empty:
                raise ValueError(get_message('DUPLICATE_VALUES').format(
                    header='column', header_name=index_col,
                    values=sorted(set(duplicated.tolist()))))
            df = df.set_index(index_col)

        return df


class DirectoryInput(Input):
    """A directory input, such as the workspace."""
    permissions: typing.Annotated[str, AfterValidator(
        validate_permissions_string)] = ''
    """A string that includes the lowercase characters ``r``, ``w`` and/or
    ``x``, indicating the permissions required for this directory."""

    must_exist: bool = True
    """Set to False if the directory will be created."""

    type: typing.ClassVar[str] = 'directory'

    @timeout
    def validate(self, dirpath: str):
        """Validate a directory path against the requirements for this input.

        Returns:
            A string error message if an error was found.  ``None`` otherwise.
        """
        if self.must_exist and not os.path.exists(dirpath):
            return get_message('DIR_NOT_FOUND')

        if os.path.exists(dirpath):
            if not os.path.isdir(dirpath):
                return get_message('NOT_A_DIR')
        else:
            # find the parent directory that does exist and check permissions
            child = dirpath
            parent = os.path.normcase(os.path.abspath(dirpath))
            while child:
                parent, child = os.path.split(parent)
                if os.path.exists(parent):
                    dirpath = parent
                    break

        MESSAGE_KEY = 'NEED_PERMISSION_DIRECTORY'

        if 'r' in self.permissions:
            try:
                os.scandir(dirpath).close()
            except OSError:
                return get_message(MESSAGE_KEY).format(permission='read')

        # Check for x access before checking for w,
        # since w operations to a dir are dependent on x access
        if 'x' in self.permissions:
            try:
                cwd = os.getcwd()
                os.chdir(dirpath)
            except OSError:
                return get_message(MESSAGE_KEY).format(permission='execute')
            finally:
                os.chdir(cwd)

        if 'w' in self.permissions:
            try:
                temp_path = os.path.join(
                    dirpath, 'temp__workspace_validation.txt')
                with open(temp_path, 'w') as temp:
                    temp.close()
                    os.remove(temp_path)
            except OSError:
                return get_message(MESSAGE_KEY).format(permission='write')


class NumberInput(Input):
    """A floating-point number input, or parameter, of a model."""
    units: typing.Union[pint.Unit, None]
    """The units of measurement for this numeric value"""

    expression: typing.Union[str, None] = None
    """A string expression over ``value`` that must evaluate true, e.g.
    ``"(value >= 0) & (value <= 1)"``."""

    type: typing.ClassVar[str] = 'number'

    def validate(self, value):
        """Validate a numeric value against the requirements for this input.

        Returns:
            A string error message if an error was found.  ``None`` otherwise.
        """
        try:
            float(value)
        except (TypeError, ValueError):
            return get_message('NOT_A_NUMBER').format(value=value)

        if self.expression:
            if 'value' not in self.expression:
                raise AssertionError(
                    'The variable name value is not found in the '
                    f'expression: {self.expression}')

            result = utils.evaluate_expression(
                self.expression, {'value': float(value)})
            if not result:
                return get_message('INVALID_VALUE').format(
                    condition=self.expression)

    @staticmethod
    def format_column(col, *args):
        """Cast a dataframe column of NumberInput values to float."""
        return col.astype(float)

    def preprocess(self, value):
        return None if value in {None, ''} else float(value)


class IntegerInput(NumberInput):
    """An integer input, or parameter, of a model."""
    type: typing.ClassVar[str] = 'integer'

    units: typing.Union[pint.Unit, None] = None

    def validate(self, value):
        message = super().validate(value)
        if message:
            return message

        # must first cast to float, to handle both string and float inputs
        if not float(value).is_integer():
            return get_message('NOT_AN_INTEGER').format(value=value)

    @staticmethod
    def format_column(col, *args):
        """Cast a dataframe column of IntegerInput values to ``Int64``."""
        return col.astype(pandas.Int64Dtype())

    def preprocess(self, value):
        # cast to float first to handle strings and floats
        return None if value in {None, ''} else int(float(value))


class NWorkersInput(IntegerInput):

    def preprocess(self, value):
        # unlike other numeric inputs, we allow n_workers to be None or an
        # empty string, and default to single process mode in that case
        if value is None or value == '':
            return -1
        return super().preprocess(value)


class RatioInput(NumberInput):
    """A proportion from 0 to 1."""
    type: typing.ClassVar[str] = 'ratio'

    units: typing.Union[pint.Unit, None] = None

    def validate(self, value):
        message = super().validate(value)
        if message:
            return message
        as_float = float(value)
        if as_float < 0 or as_float > 1:
            return get_message('NOT_WITHIN_RANGE').format(
                value=as_float,
                range='[0, 1]')


class BooleanInput(Input):
    """A boolean input, or parameter, of a model."""
    type: typing.ClassVar[str] = 'boolean'

    def validate(self, value):
        if not isinstance(value, bool):
            return get_message('NOT_BOOLEAN').format(value=value)

    def preprocess(self, value):
        return None if value in {None, ''} else bool(value)


class StringInput(Input):
    """A textual input. Do not use this for numeric or file inputs."""
    regexp: typing.Union[str, None] = None
    """An optional regex pattern which the text value must match"""

    type: typing.ClassVar[str] = 'string'

    @field_validator('regexp', mode='after')
    @classmethod
    def check_regexp(cls, regexp: typing.Union[str, None]) -> typing.Union[str, None]:
        if regexp is not None:
            try:
                re.compile(regexp)
            except Exception:
                raise ValueError(f'Failed to compile regexp {regexp}')
        return regexp

    def validate(self, value):
        if self.regexp:
            matches = re.fullmatch(self.regexp, str(value))
            if not matches:
                return get_message('REGEXP_MISMATCH').format(regexp=self.regexp)

    @staticmethod
    def format_column(col, *args):
        """Cast a dataframe column to stripped strings. NA values remain NA."""
        return col.apply(
            lambda s: s if pandas.isna(s) else str(s).strip()
        ).astype(pandas.StringDtype())

    def preprocess(self, value):
        return None if value in {None, ''} else str(value)


class ResultsSuffixInput(StringInput):

    def preprocess(self, value):
        value = super().preprocess(value)
        if value is None:
            return ''
        # suffix should always start with an underscore
        if (value and not value.startswith('_')):
            value = '_' + value
        return value


class FileOutput(Output):
    """A generic file output of a model."""
    path: str
    """Path to the output file within the workspace directory"""


class SingleBandRasterOutput(FileOutput):
    """A single-band raster output of a model."""
    data_type: typing.Type = float
    """float or int"""

    units: typing.Union[pint.Unit, None] = None
    """units of measurement of the raster values"""


class RasterBand(BaseModel):
    """One band of a multi-band raster output."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    band_id: typing.Union[int, str] = 1
    """band index or description used to access the raster band"""

    units: typing.Union[pint.Unit, None] = None
    """units of measurement of the raster band values"""


class RasterOutput(FileOutput):
    """A raster output of a model which may have multiple bands."""
    bands: list[RasterBand]
    """The bands expected to be in the raster."""


class CSVOutput(FileOutput):
    """A CSV table output of a model."""
    columns: typing.Union[list[Input], None] = None
    """`Input`s describing the table's columns."""

    index_col: typing.Union[str, None] = None
    """The header name of the column that is the index of the table."""


class ModelSpec(BaseModel):
    """Specification of a model describing metadata, inputs, and outputs."""

    model_id: str
    """The unique identifier for the model, in snake case."""

    model_title: str
    """The user-facing title for the model."""

    input_field_order: list[list[str]]
    """The order and grouping of model inputs. Each key of a non-hidden
    ``Input`` must appear exactly once."""

    inputs: list[Input]
    """A list of the data inputs, or parameters, to the model."""

    outputs: list[Output]
    """A list of the data outputs, or results, of the model."""

    aliases: set = set()
    """Alternative names by which the model can be called from the command
    line interface, in addition to the ``model_id``."""

    module_name: str
    """The importable module name of the model e.g. ``natcap.rusle.soil_loss``."""

    @model_validator(mode='after')
    def check_inputs_in_field_order(self):
        """Check that all inputs either appear in `input_field_order`,
        or are marked as hidden."""
        found_keys = set()
        for group in self.input_field_order:
            for key in group:
                if key in found_keys:
                    raise ValueError(
                        f'Key {key} appears more than once in input_field_order')
                found_keys.add(key)
        for _input in self.inputs:
            if _input.hidden is True:
                if _input.id in found_keys:
                    raise ValueError(
                        f'Input {_input.id} is hidden but appears in input_field_order')
                found_keys.add(_input.id)
        if found_keys != set([s.id for s in self.inputs]):
            raise ValueError(
                'Mismatch between keys in inputs and input_field_order')
        return self

    def get_input(self, key: str) -> Input:
        """Get an Input of this model by its key."""
        return {_input.id: _input for _input in self.inputs}[key]

    def get_output(self, key: str) -> Output:
        """Get an Output of this model by its key."""
        return {_output.id: _output for _output in self.outputs}[key]

    def to_json(self):
        """Serialize the model spec to a JSON string.

        Raises:
            TypeError if any object type within the model spec is not handled by
            json.dumps or by the fallback serializer.
        """

        def fallback_serializer(obj):
            """Serialize objects that are otherwise not JSON serializeable."""
            if isinstance(obj, pint.Unit):
                return format_unit(obj)
            elif isinstance(obj, set):
                return str(obj)
            elif isinstance(obj, types.FunctionType):
                return str(obj)
            elif obj is int:
                return 'integer'
            elif obj is float:
                return 'number'
            elif isinstance(obj, BaseModel):
                as_dict = obj.model_dump()
                # type is a ClassVar, so it won't be included in the default dump
                if hasattr(obj, 'type'):
                    as_dict['type'] = obj.type
                return as_dict
            raise TypeError(f'fallback serializer is missing for {type(obj)}')

        spec_dict = self.__dict__.copy()
        # rename 'inputs' to 'args' to match the args dict of execute
        spec_dict.pop('inputs')
        spec_dict['args'] = {_input.id: _input for _input in self.inputs}
        spec_dict['outputs'] = {_output.id: _output for _output in self.outputs}
        return json.dumps(
            spec_dict, default=fallback_serializer, ensure_ascii=False)

    def preprocess_inputs(self, input_values):
        """Preprocess a dictionary of input values.

        The resulting dict will contain exactly the input keys in the model
        spec. Inputs which were not provided will have a value of None. Each
        provided input value is passed through the corresponding
        Input.preprocess method.
        """
        values = {}
        for _input in self.inputs:
            values[_input.id] = _input.preprocess(
                input_values.get(_input.id, None))
        return values

    def create_output_directories(self, args):
        """Create the output directories needed for a set of args."""
        outputs_to_be_created = set([
            output.id for output in self.outputs if bool(
                utils.evaluate_expression(
                    expression=f'{output.created_if}',
                    variable_map=args
                )
            ) is True
        ])
        for output in self.outputs:
            if output.id in outputs_to_be_created:
                os.makedirs(os.path.join(
                    args['workspace_dir'], os.path.split(output.path)[0]
                ), exist_ok=True)

    def setup(self, args, taskgraph_key='taskgraph_cache'):
        """Perform boilerplate setup needed in a model's execute function.

        Returns:
            Tuple of ``(args, file_registry, graph)`` where ``args`` is the
            result of passing the input args through ``self.preprocess_inputs``,
            ``file_registry`` is a ``FileRegistry``, and ``graph`` is a
            ``TaskGraph``.
        """
        args = self.preprocess_inputs(args)
        self.create_output_directories(args)
        file_registry = FileRegistry(
            outputs=self.outputs,
            workspace_dir=args['workspace_dir'],
            file_suffix=args['results_suffix'])
        graph = taskgraph.TaskGraph(
            os.path.dirname(file_registry[taskgraph_key]),
            n_workers=args['n_workers'])
        return args, file_registry, graph

    def execute(self, args, create_logfile=False, log_level=logging.NOTSET,
                save_file_registry=False):
        """Model execute function wrapper.

        GDAL exceptions are enabled for the duration of the run.

        Args:
            args (dict): the raw user input args dictionary
            create_logfile (bool): Defaults to False. If True, all logging
                from the execute function will be written to a logfile in
                the workspace.
            log_level (int): The logging threshold for the log file.
            save_file_registry (bool): Defaults to False. If True, the
                file registry dictionary will be saved to the workspace
                as a JSON file after execution completes.

        Returns:
            file registry dictionary
        """
        if create_logfile:
            cm = utils.prepare_workspace(args['workspace_dir'],
                                         model_id=self.model_id,
                                         logging_level=log_level)
        else:  # null context manager, has no effect
            cm = contextlib.nullcontext()

        with GDALUseExceptions(), cm:
            LOGGER.log(
                100,  # define high log level so it should always show in logs
                'Starting model with parameters: \n' +
                utils.format_args_dict(args, self.model_id))

            model_module = importlib.import_module(self.module_name)
            registry = model_module.execute(args)

            if save_file_registry:
                preprocessed_args = self.preprocess_inputs(args)
                file_registry_path = os.path.join(
                    preprocessed_args['workspace_dir'],
                    f'file_registry{preprocessed_args["results_suffix"]}.json')
                with open(file_registry_path, 'w') as json_file:
                    json.dump(registry, json_file, indent=4)

            return registry


# Specs for common arg types ##################################################
WORKSPACE = DirectoryInput(
    id="workspace_dir",
    name="workspace",
    about=(
        "The folder where all the model's output files will be written."
        " If this folder does not exist, it will be created. If data"
        " already exists in the folder, it will be overwritten."
    ),
    permissions="rwx",
    must_exist=False,
)
SUFFIX = ResultsSuffixInput(
    id="results_suffix",
    name="file suffix",
    about=(
        "Suffix that will be appended to all output file names. Useful to"
        " differentiate between model runs."
    ),
    required=False,
    regexp="[a-zA-Z0-9_-]*"
)
N_WORKERS = NWorkersInput(
    id="n_workers",
    name="taskgraph n_workers parameter",
    about=(
        "The n_workers parameter to provide to taskgraph and to the tile"
        " executor. -1 will cause all jobs to run synchronously. 0 will run"
        " all jobs in the same process, but scheduling will take place"
        " asynchronously. Any other positive integer will cause that many"
        " workers to execute tasks and tiles."
    ),
    required=False,
    hidden=True,
    units=u.none,
)
TASKGRAPH_CACHE = FileOutput(
    id="taskgraph_cache",
    path="taskgraph_cache/taskgraph.db",
    about=(
        "Cache that stores data between model runs. This directory contains no"
        " human-readable data and you may ignore it."
    )
)
