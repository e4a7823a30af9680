"""Logging, workspace and table helpers shared across natcap.rusle."""
import ast
import contextlib
import logging
import os
import time
from datetime import datetime

import numpy
import pandas
from osgeo import gdal

import natcap.rusle

LOGGER = logging.getLogger(__name__)
_OSGEO_LOGGER = logging.getLogger('osgeo')
LOG_FMT = (
    "%(asctime)s "
    "(%(name)s) "
    "%(module)s.%(funcName)s(%(lineno)d) "
    "%(levelname)s %(message)s")

# GDAL has 5 error levels, python's logging has 6.  We skip logging.INFO.
GDAL_ERROR_LEVELS = {
    gdal.CE_None: logging.NOTSET,
    gdal.CE_Debug: logging.DEBUG,
    gdal.CE_Warning: logging.WARNING,
    gdal.CE_Failure: logging.ERROR,
    gdal.CE_Fatal: logging.CRITICAL,
}


def _log_gdal_errors(err_level, err_no, err_msg):
    """Forward a GDAL error message to the ``osgeo`` logger.

    Args:
        err_level (int): The GDAL error level (e.g. ``gdal.CE_Failure``)
        err_no (int): The GDAL error number.
        err_msg (string): The error string.

    Returns:
        ``None``
    """
    _OSGEO_LOGGER.log(
        level=GDAL_ERROR_LEVELS[err_level],
        msg=f'[errno {err_no}] {err_msg.replace(chr(10), "")}')


@contextlib.contextmanager
def capture_gdal_logging():
    """Context manager for logging GDAL errors with python logging.

    GDAL messages that are not raised as exceptions are logged with the
    ``osgeo`` logger at a level matching their GDAL severity.
    """
    gdal.PushErrorHandler(_log_gdal_errors)
    try:
        yield
    finally:
        gdal.PopErrorHandler()


def _format_time(seconds):
    """Render the integer number of seconds as a string. Returns a string."""
    hours, remainder = divmod(seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    hours = int(hours)
    minutes = int(minutes)

    if hours > 0:
        return "%sh %sm %ss" % (hours, minutes, seconds)

    if minutes > 0:
        return "%sm %ss" % (minutes, seconds)
    return "%ss" % seconds


@contextlib.contextmanager
def prepare_workspace(workspace, model_id, logging_level=logging.NOTSET):
    """Create the workspace and log everything in this context to a file.

    Args:
        workspace (string): directory for the logfile; created if missing.
        model_id (string): model identifier used in the logfile name.
        logging_level (int): threshold for messages written to the logfile.

    Yields:
        ``None``
    """
    if not os.path.exists(workspace):
        os.makedirs(workspace)

    logfile = os.path.join(
        workspace,
        f'{model_id}-log-{datetime.now().strftime("%Y-%m-%d--%H_%M_%S")}.txt')

    with capture_gdal_logging(), log_to_file(
            logfile, logging_level=logging_level):
        logging.captureWarnings(True)
        LOGGER.log(100, f'Writing log messages to [{logfile}]')
        start_time = time.time()
        try:
            yield
        except Exception:
            LOGGER.exception(f'Exception while executing {model_id}')
            raise
        finally:
            LOGGER.info(
                f'Elapsed time: {_format_time(round(time.time() - start_time, 2))}')
            logging.captureWarnings(False)
            LOGGER.info(
                f'Execution finished; version: {natcap.rusle.__version__}')


@contextlib.contextmanager
def log_to_file(logfile, logging_level=logging.NOTSET, log_fmt=LOG_FMT,
                date_fmt=None):
    """Log all messages within this context to a file.

    Args:
        logfile (string): The path to where the logfile will be written.
            If there is already a file at this location, it will be
            overwritten.
        logging_level=logging.NOTSET (int): The logging threshold.  Log
            messages with a level less than this will be excluded from the
            logfile.
        log_fmt=LOG_FMT (string): The logging format string to use.
        date_fmt (string): The logging date format string to use.
            If not provided, ISO8601 format will be used.

    Yields:
        ``handler``: the ``logging.FileHandler`` writing to ``logfile``.
    """
    if os.path.exists(logfile):
        LOGGER.warning(f'Logfile {logfile} exists and will be overwritten')

    handler = logging.FileHandler(logfile, 'w', encoding='UTF-8')
    formatter = logging.Formatter(log_fmt, date_fmt)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.NOTSET)
    root_logger.addHandler(handler)
    handler.setFormatter(formatter)
    handler.setLevel(logging_level)

    try:
        yield handler
    finally:
        handler.close()
        root_logger.removeHandler(handler)


def read_csv_to_dataframe(path, **kwargs):
    """Return a dataframe representation of the CSV.

    Column names are lowercased and stripped of whitespace and columns
    without a header are dropped. The separator is sniffed by the python
    engine and a UTF-8 BOM is tolerated; any of these defaults may be
    overridden with ``kwargs``.

    Args:
        path (str): path to a CSV file
        **kwargs: additional kwargs will be passed to ``pandas.read_csv``

    Returns:
        pandas.DataFrame with the contents of the given CSV
    """
    try:
        df = pandas.read_csv(
            path,
            **{
                'index_col': False,
                'sep': None,
                'engine': 'python',
                'encoding': 'utf-8-sig',
                **kwargs
            })
    except UnicodeDecodeError:
        raise ValueError(
            f'The file {path} must be encoded as UTF-8 or ASCII')

    df = df[[col for col in df.columns if not pandas.isna(col)]]
    df.columns = df.columns.astype(str).str.strip().str.lower()
    return df


def mean_pixel_size_and_area(pixel_size_tuple):
    """Convert to mean and raise Exception if they are not close.

    Parameter:
        pixel_size_tuple (tuple): a 2 tuple indicating the x/y size of a
            pixel.

    Returns:
        tuple of (mean absolute average of pixel_size, area of pixel size)

    Raises:
        ValueError if the dimensions of pixel_size_tuple are not almost
            square.

    """
    x_size, y_size = abs(pixel_size_tuple[0]), abs(pixel_size_tuple[1])
    if not numpy.isclose(x_size, y_size):
        raise ValueError(
            "pixel size is not square. dimensions: %s" % repr(
                pixel_size_tuple))

    return (x_size, x_size*y_size)


def evaluate_expression(expression, variable_map):
    """Evaluate a python expression such as ``value > 0``.

    Args:
        expression (string): A string expression that returns a value.
        variable_map (dict): A dict mapping string variable names to their
            python object values.

    Returns:
        Whatever value is returned from evaluating ``expression``.

    Raises:
        AssertionError if the expression names a variable that is neither a
        builtin nor a key of ``variable_map``.
    """
    if not isinstance(__builtins__, dict):
        builtins = __builtins__.__dict__
    else:
        builtins = __builtins__

    active_symbols = set()
    for tree_node in ast.walk(ast.parse(expression)):
        if isinstance(tree_node, ast.Name):
            active_symbols.add(tree_node.id)

    missing_symbols = (
        active_symbols - set(variable_map).union(set(builtins)))
    if missing_symbols:
        raise AssertionError(
            'Identifiers expected in the expression "%s" are missing: %s' % (
                expression, ', '.join(sorted(missing_symbols))))

    # Don't run untrusted code!!!
    return eval(expression, builtins, variable_map)


def format_args_dict(args_dict, model_id):
    """Format an args dict as two left-aligned columns, sorted by key.

    Args:
        args_dict (dict): The args dictionary to format.
        model_id (string): The model ID (e.g. soil_loss)

    Returns:
        A formatted string.
    """
    sorted_args = sorted(args_dict.items(), key=lambda x: x[0])

    max_key_width = 0
    if len(sorted_args) > 0:
        max_key_width = max(len(x[0]) for x in sorted_args)

    format_str = f"%-{max_key_width}s %s"

    args_string = '\n'.join([format_str % (arg) for arg in sorted_args])
    return (
        f"Arguments for {model_id} {natcap.rusle.__version__}:"
        f"\n{args_string}\n")
