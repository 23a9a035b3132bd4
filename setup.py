#!/usr/bin/env python3
"""
Setup script for synchmc package.

Thermal synchrotron photon emission for Monte Carlo radiative transfer.
"""

from setuptools import setup, find_packages

# Read the long description from README.md
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="synchmc",
    version="0.1.0",
    description="Thermal synchrotron photon emission for Monte Carlo radiative transfer",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="synchmc contributors",
    author_email="",
    url="",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Astronomy",
        "Topic :: Scientific/Engineering :: Physics",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: POSIX :: Linux",
        "Operating System :: Microsoft :: Windows",
        "Operating System :: MacOS",
    ],
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.26",
        "scipy>=1.11",
        "torch>=2.2",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4",
        ],
    },
    include_package_data=True,
    package_data={
        "synchmc": [
            "config/data/*.yaml",
        ],
    },
    keywords=[
        "monte-carlo", "radiative-transfer", "synchrotron", "astrophysics",
        "gamma-ray-bursts", "python"
    ],
)
