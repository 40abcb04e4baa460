"""Shared models, constants, and utilities for the MEAN app pipeline.

This package is the foundational layer for ``pipeline_controller`` and
``container_ops``. It has no dependency on either of them.
"""

__version__ = "1.0.0"
