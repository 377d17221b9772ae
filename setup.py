#!/usr/bin/env python3

from setuptools import setup, find_packages

# Dependencies for plotfrag itself
install_deps = [
    'numpy>=1.21',
    'sympy>=1.9',           # Used for parsing deferred expressions
    'ruamel.yaml>=0.17',
    'yayaml>=0.3',          # YAML object, tags and file I/O
    'paramspace>=2.8',      # Used for recursive_collect
    ]

# Dependencies for the tests
test_deps = ['pytest>=6.0', 'pytest-cov>=2.5.1', 'pandas>=1.3']

# .............................................................................

DESCRIPTION = "Composes declarative plot specifications from fragments"
LONG_DESCRIPTION = """
With plotfrag, plots are declared by composing small, immutable fragments:
layers, channel mappings, scales, coordinate systems, facet specifications and
theme settings. Fragments can be produced by ordinary functions, returned in
(nested) lists, and switched off by absent markers; the composer flattens such
sequences and applies them in order, last write wins.

Channel mappings are deferred expressions: they are written down when the plot
is declared but only resolved once the data and the plot's scope chain are
known, which allows writing reusable, parameterized plotting functions.
"""


# .............................................................................

# A function to extract version number from __init__.py
def find_version(*file_paths) -> str:
    """Tries to extract a version from the given path sequence"""
    import os, re, codecs

    def read(*parts):
        """Reads a file from the given path sequence, relative to this file"""
        here = os.path.abspath(os.path.dirname(__file__))
        with codecs.open(os.path.join(here, *parts), 'r') as fp:
            return fp.read()

    # Read the file and match the __version__ string
    file = read(*file_paths)
    match = re.search(r"^__version__\s?=\s?['\"]([^'\"]*)['\"]", file, re.M)
    if match:
        return match.group(1)
    raise RuntimeError("Unable to find version string in " + str(file_paths))


# .............................................................................

setup(
    name='plotfrag',
    #
    # Set the version from plotfrag.__version__
    version=find_version('plotfrag', '__init__.py'),
    #
    # Project info
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    #
    author="plotfrag developers",
    license='LGPL-3.0-or-later',
    classifiers=[
        'Intended Audience :: Science/Research',
        'Programming Language :: Python :: 3',
        'Topic :: Scientific/Engineering :: Visualization',
        'License :: OSI Approved :: GNU Lesser General Public License v3 or later (LGPLv3+)'
    ],
    #
    # Distribution details, dependencies, ...
    packages=find_packages(exclude=["tests.*", "tests"]),
    python_requires='>=3.8',
    install_requires=install_deps,
    extras_require=dict(test_deps=test_deps)
)
