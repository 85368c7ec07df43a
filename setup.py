# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Setup script for the roundtable round orchestration engine."""

from setuptools import find_packages, setup

setup(
    name="roundtable",
    version="0.1.0",
    description="Round orchestration engine for multi-participant AI conversations",
    author="Roundtable contributors",
    license="MIT",
    packages=find_packages(
        include=[
            "roundtable_rounds",
            "roundtable_rounds.*",
            "roundtable_logging",
            "roundtable_metrics",
            "roundtable_error_reporting",
            "roundtable_config",
        ]
    ),
    package_data={
        "roundtable_rounds": ["schemas/*.json"],
    },
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "jsonschema>=4.18.0",
        "referencing>=0.30.0",
        "prometheus-client>=0.17.0",
    ],
    extras_require={
        "dev": [
            "pytest>=8.0.0",
            "pytest-cov>=6.0.0",
            "pytest-asyncio>=0.21.0",
            "hypothesis>=6.0.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
