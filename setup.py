#
# (c) Copyright 2022 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
#
# Avalanche app on a Ledger: python support library
#
import re

# To use this command to install and yet be able to edit the code (here). Great for dev:
#
#   pip install --editable .
#
# with cli dependencies
#
#   pip install --editable '.[cli]'
#
# with test dependencies
#
#   pip install --editable '.[test]'
#
from setuptools import setup

# package imports its dependencies, so read version without importing it
with open("avaxledger/__init__.py", "r") as fh:
    __version__ = re.search(r"^__version__ = '([^']+)'", fh.read(), re.M).group(1)

# these minimum versions are tested, some earlier values would probably work too.
requirements = [
    'coincurve>=18.0.0',
    'bech32>=1.2.0',
    'ripemd-hash>=1.0.0',
    'ledgerblue>=0.1.48',
]

# for hosts that only derive addresses from a known xpub, no USB access
offline_requirements = [r for r in requirements if 'ledgerblue' not in r]

cli_requirements = [
    'click>=8.0.3',
]

test_requirements = [
    'pytest>=7.0',
    # emulator has a click interface
    'click>=8.0.3',
]

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='avalanche-ledger-protocol',
    version=__version__,
    packages=[ 'avaxledger' ],
    python_requires='>=3.7',
    install_requires=requirements,
    extras_require={
        'cli': cli_requirements,
        'test': test_requirements,
        'offline': offline_requirements,
    },
    author='Coinkite Inc.',
    author_email='support@coinkite.com',
    description="Get addresses and signatures from the Avalanche app on a Ledger using Python",
    long_description=long_description,
    long_description_content_type="text/markdown",
    entry_points='''
        [console_scripts]
        avaxledger=avaxledger.cli:main
    ''',
    classifiers=[
        'Operating System :: POSIX :: Linux',
        'Operating System :: Microsoft :: Windows',
        'Operating System :: MacOS :: MacOS X',
    ],
)
