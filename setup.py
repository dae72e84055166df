"""
fal-progress — build script.

Usage:
    # Development install:
    pip install -e .

    # Run the tests:
    python3 -m unittest discover -s tests
"""

from setuptools import setup, find_namespace_packages

APP_NAME = "fal-progress"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Smoothed, monotonic progress for fal queue jobs",
    packages=find_namespace_packages(include=["falprogress", "falprogress.*"]),
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
)
