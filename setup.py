# File: setup.py
# Location: topconfects/setup.py
"""
Setup script for topconfects.

This file configures how the package is built, installed, and what
dependencies are required.
"""

import os
from setuptools import setup, find_packages

# Load version from version.py without importing the module
version = {}
with open(os.path.join("topconfects", "version.py")) as f:
    exec(f.read(), version)

# Read the README for the long description
this_dir = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_dir, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="topconfects",
    version=version["__version__"],
    description="Rank features by confident effect size with FDR control.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "scipy",
        "statsmodels",
        "pandas",
        "packaging",
    ],
    extras_require={
        "r": ["rpy2>=3.5.0"],
        "test": ["pytest"],
    },
    entry_points={"console_scripts": ["topconfects=topconfects.cli:main"]},
    include_package_data=True,
    package_data={"topconfects": ["config.json"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
    ],
)
