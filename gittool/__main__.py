#!/usr/bin/env python3
"""
Entry point for gittool when run as a module.
"""

from .cli import main

if __name__ == "__main__":
    exit(main())
