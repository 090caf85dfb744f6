#!/usr/bin/env python3
"""
tracefacts/__main__.py
======================

Entry point for ``python -m tracefacts``; see :mod:`tracefacts.main`.
"""

from tracefacts.main import main

if __name__ == "__main__":
    raise SystemExit(main())
