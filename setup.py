#!/usr/bin/env python
import os
import sys

from setuptools import setup, find_packages
from setuptools.command.install import install

VERSION = '0.3.0'

class VerifyVersionCommand(install):
    """Custom command to verify that the git tag matches our version"""
    description = 'verify that the git tag matches our version'

    def run(self):
        tag = os.getenv('CIRCLE_TAG', '')
        tag = tag.lstrip('v')

        if tag != VERSION:
            info = f"Git tag: {tag} does not match the version of this app: {VERSION}"
            sys.exit(info)

setup(
    name='knowledge',
    version=VERSION,
    description='An entity knowledge layer: schema validated entities and relationships stored in LMDB.',
    python_requires='>=3.9',
    packages=find_packages(include=['knowledge', 'knowledge.*']),
    include_package_data=True,
    install_requires=[
        'lmdb>=1.2.1',
        'msgpack>=1.0.5',
        'fastjsonschema>=2.18.0',
        'pyyaml>=5.4',
        'regex>=2022.9.11',
        'msgspec>=0.18.5',
        'pytz>=2023.3',
    ],
    extras_require={
        'dev': [
            'pytest>=7.2.0',
            'pytest-cov>=4.0.0',
        ],
    },
    cmdclass={
        'verify': VerifyVersionCommand,
    },
)
