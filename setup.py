#!/usr/bin/python3
# Setup file for kloon
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

setup(
    name="kloon",
    version="0.1.0",
    description="Pure-Python git object store, pack decoder and smart HTTP clone client",
    license="Apache-2.0 OR GPL-2.0-or-later",
    python_requires=">=3.10",
    packages=["kloon"],
    package_data={"": ["py.typed"]},
    install_requires=["urllib3>=2.2.2"],
    entry_points={"console_scripts": ["kloon=kloon.cli:_main"]},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX",
        "Topic :: Software Development :: Version Control",
    ],
)
