#!/usr/bin/env python3
"""
setup.py shim for tooling that still invokes it directly.
Packaging metadata for provision-hardware lives in pyproject.toml.
"""

from setuptools import setup

if __name__ == "__main__":
    setup()
