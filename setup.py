#!/usr/bin/env python

from pathlib import Path

from setuptools import find_packages, setup

this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

setup(
    name="rydpair",
    version="0.1.0",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*", "docs", "examples"]),
    keywords="simulation rydberg-atoms pair-potential stark-map",
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "scipy",
        "pint",
        "sympy",
        "importlib_resources",
    ],
    extras_require={"test": ["pytest"]},
    package_data={"rydpair": ["data_files/*.json"]},
    include_package_data=True,
    long_description=long_description,
    long_description_content_type="text/markdown",
)

# Build with:
# python setup.py sdist
#
# Local install with:
# pip install dist/*.tar.gz --user
