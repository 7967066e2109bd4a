"""Adjustment controls for the overlay editor."""

import tkinter as tk
from tkinter import ttk
from typing import Callable, Dict, Optional

from ...core.entities import AdjustmentMode, Circle
from ...utils.result_formatter import format_adjustment_summary, summarize_adjustment
from ..overlay_editor import OverlayEditor


class AdjustmentPanel(ttk.Frame):
    """Mode and selection buttons, radius entries and a reset button."""

    def __init__(self, parent, editor: OverlayEditor, on_change: Optional[Callable[[], None]] = None):
        super().__init__(parent)
        self._editor = editor
        self.on_change = on_change
        self._radius_vars: Dict[Circle, tk.StringVar] = {}
        self._build_ui()

    def _build_ui(self):
        """Build the panel UI."""
        # Adjustment mode
        mode_frame = ttk.LabelFrame(self, text="Mode")
        mode_frame.pack(fill='x', pady=(0, 8))
        self.mode_var = tk.StringVar(value=AdjustmentMode.POSITION.value)
        ttk.Radiobutton(mode_frame, text="Move Center", value=AdjustmentMode.POSITION.value,
                        variable=self.mode_var, command=self._on_mode).pack(anchor='w')
        ttk.Radiobutton(mode_frame, text="Adjust Radius", value=AdjustmentMode.RADIUS.value,
                        variable=self.mode_var, command=self._on_mode).pack(anchor='w')

        # Circle selection
        select_frame = ttk.LabelFrame(self, text="Select")
        select_frame.pack(fill='x', pady=(0, 8))
        ttk.Button(select_frame, text="Select Iris",
                   command=lambda: self._on_select(Circle.IRIS)).pack(fill='x')
        ttk.Button(select_frame, text="Select Pupil",
                   command=lambda: self._on_select(Circle.PUPIL)).pack(fill='x')

        # Numeric radius entry
        radius_frame = ttk.LabelFrame(self, text="Radius")
        radius_frame.pack(fill='x', pady=(0, 8))
        for row, (circle, label) in enumerate(((Circle.IRIS, "Iris"), (Circle.PUPIL, "Pupil"))):
            var = tk.StringVar()
            ttk.Label(radius_frame, text=label).grid(row=row, column=0, sticky='w', padx=(0, 6))
            entry = ttk.Entry(radius_frame, textvariable=var, width=8)
            entry.grid(row=row, column=1, sticky='ew')
            entry.bind('<Return>', lambda _e, c=circle: self._on_radius_entry(c))
            entry.bind('<FocusOut>', lambda _e, c=circle: self._on_radius_entry(c))
            self._radius_vars[circle] = var
        radius_frame.columnconfigure(1, weight=1)

        ttk.Button(self, text="Reset to Original", command=self._on_reset).pack(fill='x', pady=(0, 8))

        self.summary_var = tk.StringVar(value="")
        ttk.Label(self, textvariable=self.summary_var, justify='left').pack(anchor='w')

    def refresh(self):
        """Sync entries and the adjustment summary with the editor state."""
        state = self._editor.state
        if state is None:
            for var in self._radius_vars.values():
                var.set("")
            self.summary_var.set("")
            return

        self.mode_var.set(state.mode.value)
        for circle, var in self._radius_vars.items():
            var.set(f"{state.geometry.circle(circle)[2]:g}")

        baseline = self._editor.baseline
        if baseline is not None and state.geometry != baseline:
            self.summary_var.set(format_adjustment_summary(summarize_adjustment(baseline, state.geometry)))
        else:
            self.summary_var.set("")

    def _on_mode(self):
        self._editor.set_mode(AdjustmentMode(self.mode_var.get()))
        self._changed()

    def _on_select(self, circle: Circle):
        self._editor.select(circle)
        self._changed()

    def _on_radius_entry(self, circle: Circle):
        if self._editor.set_radius(circle, self._radius_vars[circle].get()) is not None:
            self._changed()

    def _on_reset(self):
        if self._editor.reset() is not None:
            self._changed()

    def _changed(self):
        self.refresh()
        if self.on_change is not None:
            self.on_change()
