"""Editor window: analyze an eye image and adjust the detected circles."""

import asyncio
import logging
import threading
import tkinter as tk
from pathlib import Path
from tkinter import filedialog, messagebox, ttk
from typing import Optional

import cv2
import numpy as np

from ..core.constants import APP_NAME, SUPPORTED_IMAGE_FORMATS
from ..core.context import AppContext
from ..core.entities import DetectionResult, ImagePayload
from ..core.exceptions import AnalysisError
from ..services.dispatch_adapter import DispatchAdapter
from ..utils.result_formatter import format_analysis_error, format_confidence, format_result
from .components.adjustment_panel import AdjustmentPanel
from .components.iris_canvas import IrisCanvas
from .overlay_editor import OverlayEditor

logger = logging.getLogger(__name__)


class EditorWindow:
    """Main window wiring the dispatch adapter, editor, canvas and panel."""

    def __init__(self, root: tk.Tk, context: AppContext):
        self.root = root
        self.context = context
        self.adapter = DispatchAdapter(context)
        self.editor = OverlayEditor(observer=self._on_commit, margin=context.config.overlay_margin)

        self._image: Optional[np.ndarray] = None
        self._image_path: Optional[Path] = None
        self._worker: Optional[threading.Thread] = None

        self._setup_window()
        self._build_ui()

    def _setup_window(self):
        self.root.title(APP_NAME)
        self.root.geometry("1100x750")
        self.root.minsize(800, 600)
        self.root.grid_rowconfigure(1, weight=1)
        self.root.grid_columnconfigure(0, weight=1)

    def _build_ui(self):
        """Build toolbar, canvas, side panel and status bar."""
        toolbar = ttk.Frame(self.root, padding=5)
        toolbar.grid(row=0, column=0, columnspan=2, sticky='ew')
        ttk.Button(toolbar, text="Open Image", command=self._on_open).pack(side='left', padx=(0, 5))
        self.analyze_button = ttk.Button(toolbar, text="Analyze", command=self._on_analyze, state='disabled')
        self.analyze_button.pack(side='left')

        self.canvas = IrisCanvas(self.root, self.editor, bg='#202020', highlightthickness=0,
                                 on_change=self._on_canvas_change)
        self.canvas.grid(row=1, column=0, sticky='nsew')

        self.panel = AdjustmentPanel(self.root, self.editor, on_change=self.canvas.redraw)
        self.panel.grid(row=1, column=1, sticky='ns', padx=10, pady=10)

        self.status_var = tk.StringVar(value="Open an eye image to begin")
        ttk.Label(self.root, textvariable=self.status_var, padding=5).grid(
            row=2, column=0, columnspan=2, sticky='ew')

    def open_image(self, path: Path) -> bool:
        """Load an image from disk and show it without an overlay."""
        image = cv2.imread(str(path))
        if image is None:
            messagebox.showerror("Error", f"Could not load image file: {path}")
            return False

        self._image = image
        self._image_path = Path(path)
        self.editor.clear()
        self.canvas.set_image(image)
        self.panel.refresh()
        self.analyze_button.configure(state='normal')
        self._update_status(f"Loaded: {self._image_path.name}")
        return True

    def analyze(self):
        """Run the analysis on a worker thread."""
        if self._image_path is None or (self._worker and self._worker.is_alive()):
            return

        try:
            payload = ImagePayload.from_file(self._image_path)
        except (OSError, ValueError) as e:
            messagebox.showerror("Error", f"Failed to read image: {e}")
            return

        self.analyze_button.configure(state='disabled')
        self._update_status("Processing image...")
        self._worker = threading.Thread(target=self._analysis_worker, args=(payload,), daemon=True)
        self._worker.start()

    def _analysis_worker(self, payload: ImagePayload):
        """Background thread worker owning its own event loop."""
        try:
            result = asyncio.run(self.adapter.process_image(payload))
        except AnalysisError as e:
            self.root.after(0, self._on_analysis_failed, e)
            return
        except Exception as e:
            logger.exception("Unexpected error during analysis")
            self.root.after(0, self._on_analysis_crashed, e)
            return
        self.root.after(0, self._on_analysis_done, result)

    def _on_analysis_done(self, result: DetectionResult):
        self.analyze_button.configure(state='normal')
        h, w = self._image.shape[:2]
        self.editor.load(result, image_size=(w, h))
        self.canvas.redraw()
        self.panel.refresh()

        confidence = format_confidence(result.eye_confidence, self.context.config.low_confidence_threshold)
        self._update_status(confidence.body if confidence else "Analysis complete")
        logger.info(f"Analysis complete:\n{format_result(result)}")

    def _on_analysis_failed(self, error: AnalysisError):
        self.analyze_button.configure(state='normal')
        message = format_analysis_error(error)
        self._update_status(message.title)
        if message.severity == "warning":
            messagebox.showwarning(message.title, message.as_text())
        else:
            messagebox.showerror(message.title, message.as_text())

    def _on_analysis_crashed(self, error: Exception):
        self.analyze_button.configure(state='normal')
        self._update_status("Analysis failed")
        messagebox.showerror("Analysis Error", f"Unexpected error while analyzing the image:\n{error}")

    def _on_commit(self, result: DetectionResult):
        logger.debug(f"Overlay committed:\n{format_result(result)}")

    def _on_canvas_change(self):
        self.panel.refresh()

    def _on_open(self):
        patterns = " ".join(f"*{ext}" for ext in SUPPORTED_IMAGE_FORMATS)
        file_path = filedialog.askopenfilename(
            title="Select Eye Image",
            filetypes=[("Image files", patterns), ("All files", "*.*")]
        )
        if file_path:
            self.open_image(Path(file_path))

    def _on_analyze(self):
        self.analyze()

    def _update_status(self, message: str):
        self.status_var.set(message)
