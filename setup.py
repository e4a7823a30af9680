from setuptools import find_namespace_packages
from setuptools import setup

# Read in requirements.txt and populate the python readme with the
# non-comment, non-environment-specifier contents.
_REQUIREMENTS = [req.split(';')[0].split('#')[0].strip() for req in
                 open('requirements.txt').readlines()
                 if (not req.startswith(('#', 'hg+', 'git+'))
                     and len(req.strip()) > 0)]
_TEST_REQUIREMENTS = [req.split(';')[0].split('#')[0].strip() for req in
                      open('requirements-dev.txt').readlines()
                      if (not req.startswith(('#', 'hg+', 'git+'))
                          and len(req.strip()) > 0)]


setup(
    name='natcap.rusle',
    version='0.1.0',
    description=(
        'Regional soil erosion estimates with the Revised Universal Soil '
        'Loss Equation'),
    python_requires='>=3.9',
    package_dir={'': 'src'},
    packages=find_namespace_packages(
        where='src', include=['natcap.rusle', 'natcap.rusle.*']),
    install_requires=_REQUIREMENTS,
    extras_require={
        'test': _TEST_REQUIREMENTS,
    },
    entry_points={
        'console_scripts': [
            'rusle = natcap.rusle.cli:main',
        ],
    },
)
