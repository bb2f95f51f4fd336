"""
RecScribe: setuptools build script.

Usage:
    # Development install:
    pip install -e .[test]

    # Run the worker:
    recscribe --help
"""

from setuptools import setup, find_namespace_packages

APP_NAME = "recscribe"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Recording transcription worker: convert, chunk, transcribe, merge and analyse",
    packages=find_namespace_packages(include=["recscribe", "recscribe.*"]),
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": ["recscribe=main:main"],
    },
)
