#! /usr/bin/env python

import os
from setuptools import setup

# Deduce the version from the __init__.py file:
version = None
with open(os.path.join(os.path.dirname(__file__), 'lmtf', '__init__.py'), 'r') as fid:
    for line in (line.strip() for line in fid):
        if line.startswith('__version__'):
            version = line.split('=')[1].strip().strip('\'')
            break
if version is None: raise ValueError('No version found in lmtf/__init__.py!')

setup(
    name='lmtf',
    version=version,
    description='Fitting of luminance and red-green temporal contrast sensitivity across the '
                'visual field',
    keywords='psychophysics vision contrast-sensitivity temporal-frequency model-fitting',
    long_description='''
                     See the README.md file in the source distribution of this package.
                     ''',
    license='GPLv3',
    classifiers=['Development Status :: 3 - Alpha',
                 'Intended Audience :: Science/Research',
                 'Intended Audience :: Developers',
                 'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',
                 'Programming Language :: Python :: 3',
                 'Topic :: Software Development :: Libraries :: Python Modules',
                 'Topic :: Scientific/Engineering',
                 'Topic :: Scientific/Engineering :: Information Analysis',
                 'Operating System :: POSIX',
                 'Operating System :: Unix',
                 'Operating System :: MacOS'],
    packages=['lmtf',
              'lmtf.util',
              'lmtf.models',
              'lmtf.optimize',
              'lmtf.fit',
              'lmtf.plans',
              'lmtf.test'],
    install_requires=['numpy>=1.17',
                      'scipy>=1.1',
                      'pyrsistent>=0.11',
                      'pimms>=0.3',
                      'six>=1.10'],
    extras_require={
        'test': ['pytest>=6']})
