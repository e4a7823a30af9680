"""Validation of model arguments against a ModelSpec."""
import copy
import inspect
import importlib
import logging
import pprint

import numpy
import pygeoprocessing
from osgeo import osr

from . import utils

LOGGER = logging.getLogger(__name__)

MESSAGES = {
    'MISSING_KEY': 'Key is missing from the args dict',
    'MISSING_VALUE': 'Input is required but has no value',
    'MATCHED_NO_HEADERS': (
        'Expected the {header} "{header_name}" but did not find it'),
    'DUPLICATE_VALUES': (
        'Values in the {header} "{header_name}" must be unique; found '
        'duplicates of {values}'),
    'NOT_A_NUMBER': 'Value "{value}" could not be interpreted as a number',
    'UNEXPECTED_ERROR': 'An unexpected error occurred in validation',
    'DIR_NOT_FOUND': 'Directory not found',
    'NOT_A_DIR': 'Path must be a directory',
    'FILE_NOT_FOUND': 'File not found',
    'NOT_GDAL_VECTOR': 'File could not be opened as a GDAL vector',
    'NOT_PROJECTED': 'Dataset must be projected in linear units.',
    'NO_PROJECTION': 'Spatial file {filepath} has no projection',
    'REGEXP_MISMATCH': 'Value did not match expected pattern {regexp}',
    'INVALID_VALUE': 'Value does not meet condition {condition}',
    'NOT_WITHIN_RANGE': 'Value {value} is not in the range {range}',
    'NOT_AN_INTEGER': 'Value "{value}" does not represent an integer',
    'NOT_BOOLEAN': 'Value must be either True or False, not {value}',
    'BBOX_NOT_INTERSECT': (
        'Not all of the spatial layers overlap each '
        'other. All bounding boxes must intersect: {bboxes}'),
    'NEED_PERMISSION_DIRECTORY': (
        'You must have {permission} access to this directory'),
    'NEED_PERMISSION_FILE': 'You must have {permission} access to this file',
    'WRONG_GEOM_TYPE': 'Geometry type must be one of {allowed}',
    'YEARS_OUT_OF_ORDER': 'The start year must not be after the end year',
    'MISSING_DATASETS': 'The table does not list the datasets {datasets}',
    'INVALID_PROJECTION': 'Dataset must have a valid projection.',
    'WRONG_PROJECTION_UNIT': (
        'Layer must be projected in this unit: "{unit_a}" but found this '
        'unit: "{unit_b}".'),
    'DUPLICATE_HEADER': (
        'Expected the {header} "{header_name}" only once but found it '
        '{number} times'),
}


def get_message(key):
    return MESSAGES[key]


def get_invalid_keys(validation_warnings):
    """Get the set of args keys named by a validation warnings list."""
    invalid_keys = set()
    for affected_keys, error_msg in validation_warnings:
        invalid_keys.update(affected_keys)
    return invalid_keys


def check_spatial_overlap(spatial_filepaths_list):
    """Check that the given spatial files' bounding boxes overlap.

    All bounding boxes are compared in WGS84.

    Args:
        spatial_filepaths_list (list): paths GDAL can open as a raster or
            vector.

    Returns:
        A string error message if an error is found.  ``None`` otherwise.
    """
    wgs84_srs = osr.SpatialReference()
    wgs84_srs.ImportFromEPSG(4326)
    wgs84_wkt = wgs84_srs.ExportToWkt()

    bounding_boxes = []
    checked_file_list = []
    for filepath in spatial_filepaths_list:
        try:
            info = pygeoprocessing.get_raster_info(filepath)
        except (ValueError, RuntimeError):
            info = pygeoprocessing.get_vector_info(filepath)

        if info['projection_wkt'] is None:
            return get_message('NO_PROJECTION').format(filepath=filepath)

        try:
            bounding_box = pygeoprocessing.transform_bounding_box(
                info['bounding_box'], info['projection_wkt'], wgs84_wkt)
        except (ValueError, RuntimeError) as err:
            LOGGER.debug(err)
            LOGGER.warning(
                f'Skipping spatial overlap check for {filepath}. '
                'Bounding box cannot be transformed to EPSG:4326')
            continue

        if all(numpy.isinf(coord) for coord in bounding_box):
            LOGGER.warning(
                f'Skipping spatial overlap check for {filepath} '
                f'because of infinite bounding box {bounding_box}')
            continue

        bounding_boxes.append(bounding_box)
        checked_file_list.append(filepath)

    try:
        pygeoprocessing.merge_bounding_box_list(bounding_boxes, 'intersection')
    except ValueError as error:
        LOGGER.debug(error)
        formatted_lists = ' | '.join(
            f'{path}: {bbox}' for path, bbox in zip(
                checked_file_list, bounding_boxes))
        return get_message('BBOX_NOT_INTERSECT').format(bboxes=formatted_lists)
    return None


def validate(args, model_spec):
    """Validate an args dict against a model spec.

    Args:
        args (dict): The model args dict to validate.
        model_spec (ModelSpec): The model spec to validate against.

    Returns:
        A list of tuples where the first element of the tuple is an iterable of
        keys affected by the error in question and the second element of the
        tuple is the string message of the error.  If no validation errors were
        found, an empty list is returned.
    """
    validation_warnings = []

    # Phase 1: Check whether an input is required and has a value
    missing_keys = set()
    required_keys_with_no_value = set()
    expression_values = {
        input_spec.id: args.get(input_spec.id, False)
        for input_spec in model_spec.inputs}
    keys_with_falsey_values = set()
    for parameter_spec in model_spec.inputs:
        key = parameter_spec.id
        required = parameter_spec.required

        if isinstance(required, str):
            required = bool(utils.evaluate_expression(
                expression=f'{parameter_spec.required}',
                variable_map=expression_values))

        if required:
            if key not in args:
                missing_keys.add(key)
            elif args[key] in ('', None):
                required_keys_with_no_value.add(key)
        elif not expression_values[key]:
            # Don't validate falsey values or missing (None, "") values.
            keys_with_falsey_values.add(key)

    if missing_keys:
        validation_warnings.append(
            (sorted(missing_keys), get_message('MISSING_KEY')))

    if required_keys_with_no_value:
        validation_warnings.append(
            (sorted(required_keys_with_no_value),
             get_message('MISSING_VALUE')))

    # Phase 2: Check whether any input with a value validates with its
    # type-specific check function.
    insufficient_keys = (
        missing_keys | required_keys_with_no_value | keys_with_falsey_values)
    for key in set(args.keys()) - insufficient_keys:
        try:
            parameter_spec = copy.deepcopy(model_spec.get_input(key))
        except KeyError:
            LOGGER.debug(f'Provided key {key} does not exist in MODEL_SPEC')
            continue

        try:
            warning_msg = parameter_spec.validate(args[key])
            if warning_msg:
                validation_warnings.append(([key], warning_msg))
        except Exception:
            LOGGER.exception(
                f'Error when validating key {key} with value {args[key]}')
            validation_warnings.append(([key], get_message('UNEXPECTED_ERROR')))

    # sort warnings alphabetically by key name
    return sorted(validation_warnings, key=lambda w: w[0][0])


def args_validator(validate_func):
    """Decorator to enforce characteristics of validation inputs and outputs.

    * ``args`` must be a ``dict`` with string keys
    * ``limit_to`` must be ``None`` or a key of ``args``; when given only
      that input is validated
    * the decorated function returns a list of ``([keys], message)`` tuples

    Raises:
        AssertionError when an invalid format is found.

    Example::

        from natcap.rusle import validation
        @validation.args_validator
        def validate(args, limit_to=None):
            # do your validation here
    """
    def _wrapped_validate_func(args, limit_to=None):
        validate_func_args = inspect.getfullargspec(validate_func)
        assert validate_func_args.args == ['args', 'limit_to'], (
            f'validate has invalid parameters: parameters are: '
            f'{validate_func_args.args}.')

        assert isinstance(args, dict), 'args parameter must be a dictionary.'
        assert limit_to is None or isinstance(limit_to, str), (
            'limit_to parameter must be either a string key or None.')
        if limit_to is not None:
            assert limit_to in args, (
                f'limit_to key "{limit_to}" must exist in args.')

        for key in args:
            assert isinstance(key, str), 'All args keys must be strings.'

        if limit_to is None:
            LOGGER.info('Starting whole-model validation with MODEL_SPEC')
            warnings_ = validate_func(args)
        else:
            LOGGER.info('Starting single-input validation with MODEL_SPEC')
            model_module = importlib.import_module(validate_func.__module__)
            args_key_spec = model_module.MODEL_SPEC.get_input(limit_to)

            args_value = args[limit_to]
            error_msg = None
            if args_key_spec.required is True and args_value in ('', None):
                error_msg = get_message('MISSING_VALUE')
            if args_value not in ('', None):
                error_msg = args_key_spec.validate(args_value)

            warnings_ = [] if error_msg is None else [([limit_to], error_msg)]

        LOGGER.debug(f'Validation warnings: {pprint.pformat(warnings_)}')
        return warnings_

    return _wrapped_validate_func
