"""init module for natcap.rusle."""
import importlib.metadata
import logging

LOGGER = logging.getLogger('natcap.rusle')
LOGGER.addHandler(logging.NullHandler())
__all__ = ['__version__']

try:
    __version__ = importlib.metadata.version('natcap.rusle')
except importlib.metadata.PackageNotFoundError:
    # package is not installed.  Log the exception for debugging.
    LOGGER.exception('Could not load natcap.rusle version information')
    __version__ = 'unknown'
