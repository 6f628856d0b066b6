# robustvcov/core/__init__.py
"""Core computational modules for robustvcov."""
from . import grouping, linalg

__all__ = ["grouping", "linalg"]
