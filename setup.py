#!/usr/bin/env python3
# Install for development with: pip install -e ".[dev]"

from __future__ import annotations

import re
from pathlib import Path

from setuptools import setup, find_packages

_HERE = Path(__file__).resolve().parent


def _read_version() -> str:
    text = (_HERE / "tracefacts" / "__init__.py").read_text(encoding="utf-8")
    match = re.search(r'^__version__\s*=\s*"([^"]+)"', text, re.MULTILINE)
    if match is None:
        raise RuntimeError("tracefacts/__init__.py defines no __version__")
    return match.group(1)


def _read_requirements() -> list[str]:
    lines = (_HERE / "requirements.txt").read_text(encoding="utf-8").splitlines()
    return [ln.strip() for ln in lines if ln.strip() and not ln.startswith("#")]


setup(
    name="tracefacts",
    version=_read_version(),
    description=(
        "Flow facts (block frequencies, loop bounds, call targets, timing) "
        "from machine-code execution traces."
    ),
    license="MIT",
    python_requires=">=3.10",
    packages=find_packages(include=["tracefacts", "tracefacts.*"]),
    install_requires=_read_requirements(),
    extras_require={
        "dev": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "tracefacts=tracefacts.main:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Topic :: Software Development :: Testing",
    ],
    zip_safe=False,
)
