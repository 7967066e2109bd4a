"""UI components package."""

from .iris_canvas import IrisCanvas
from .adjustment_panel import AdjustmentPanel

__all__ = [
    'IrisCanvas',
    'AdjustmentPanel'
]
