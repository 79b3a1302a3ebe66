#!/usr/bin/env python3

from os import path

from setuptools import setup

from git_grove import __version__

this_directory = path.abspath(path.dirname(__file__))
with open(path.join(this_directory, 'README.md'), mode="r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name='git-grove',
    version=__version__,
    description='Feature branch workflows (hack, sync, kill, pull requests) that can be continued or aborted after a conflict',
    long_description=long_description,
    long_description_content_type='text/markdown',
    license='MIT',
    keywords='git',
    packages=['git_grove', 'git_grove.planners'],
    entry_points={
        'console_scripts': [
            'git-grove = git_grove.cli:main'
        ]
    },
    extras_require={
        'test': ['pytest', 'pytest-mock']
    },
    python_requires='>=3.6, <4',
    classifiers=[
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Environment :: Console',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent'
    ],
    # This is a pure-Python but NOT universal wheel:
    # https://realpython.com/python-wheels/#different-types-of-wheels
    options={'bdist_wheel': {'universal': False}}
)
