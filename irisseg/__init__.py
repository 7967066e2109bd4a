"""Iris segmentation workbench."""

from .core.constants import VERSION

__version__ = VERSION
