"""
Agent network package initializer.

This package exposes the primary function ``run_pipeline`` for external
usage.  Other internal modules (e.g. scheduler, API) should be imported
explicitly from their respective files.
"""

from .pipeline import run_pipeline  # noqa: F401

__all__ = ["run_pipeline"]
