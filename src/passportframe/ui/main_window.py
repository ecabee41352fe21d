from __future__ import annotations

import logging
import os
import tkinter as tk
from tkinter import filedialog, messagebox, ttk
from typing import Optional

from passportframe.app.controller import PipelineController
from passportframe.app.export import export_filename
from passportframe.app.state import PipelineState
from passportframe.core.bitmap import bitmap_to_pil, load_bitmap
from passportframe.core.errors import PassportFrameError
from passportframe.core.models import BACKGROUND_PALETTE, OUTPUT_SPECS, ProcessingParams, color_to_hex
from passportframe.ui.image_canvas import ImageCanvas
from passportframe.validation.validator import format_report_text, validate_final_image

logger = logging.getLogger(__name__)

# Drag and slider events arriving within this window share one preview render.
PREVIEW_DELAY_MS = 40


class PassportFrameApp(ttk.Frame):
    """Upload a portrait, adjust the crop, export a print-ready photo."""

    def __init__(self, master: tk.Tk, params: ProcessingParams):
        super().__init__(master)
        self.master = master
        self.controller = PipelineController(
            params=params,
            dispatch=lambda fn: self.master.after(0, fn),
        )
        self.controller.add_listener(lambda _c: self._refresh())
        self.validation_report = None
        self._shown_bitmap = None
        self._preview_job: Optional[str] = None

        self._build_style()
        self._build_layout()
        self._bind_shortcuts()

        self._refresh()

    # ---------- UI construction ----------

    def _build_style(self) -> None:
        style = ttk.Style(self.master)
        if "clam" in style.theme_names():
            style.theme_use("clam")

    def _build_layout(self) -> None:
        self.pack(fill="both", expand=True)
        params = self.controller.params

        # Top toolbar
        toolbar = ttk.Frame(self, padding=(10, 8))
        toolbar.pack(side="top", fill="x")

        self.btn_upload = ttk.Button(toolbar, text="Upload", command=self.on_upload)
        self.btn_retry = ttk.Button(toolbar, text="Retry background removal", command=self.on_retry)
        self.btn_validate = ttk.Button(toolbar, text="Validate", command=self.on_validate)
        self.btn_export = ttk.Button(toolbar, text="Export", command=self.on_export)
        self.btn_reset = ttk.Button(toolbar, text="Reset", command=self.on_reset)

        self.btn_upload.pack(side="left")
        ttk.Separator(toolbar, orient="vertical").pack(side="left", fill="y", padx=8)
        self.btn_retry.pack(side="left")
        self.btn_validate.pack(side="left", padx=(6, 0))
        self.btn_export.pack(side="left", padx=(6, 0))
        self.btn_reset.pack(side="left", padx=(12, 0))

        self.progress = ttk.Progressbar(toolbar, mode="indeterminate", length=120)
        self.progress.pack(side="right")

        # Main split area
        main = ttk.PanedWindow(self, orient="horizontal")
        main.pack(side="top", fill="both", expand=True, padx=10, pady=(0, 10))

        # Left pane: composite with crop rectangle
        left = ttk.Frame(main)
        main.add(left, weight=3)

        lf_comp = ttk.LabelFrame(left, text="Photo (drag to move the crop)", padding=8)
        lf_comp.pack(fill="both", expand=True)

        self.composite_canvas = ImageCanvas(lf_comp)
        self.composite_canvas.pack(fill="both", expand=True)
        self.composite_canvas.on_drag(self.on_drag)

        self.composite_meta = ttk.Label(lf_comp, text="No file loaded.")
        self.composite_meta.pack(side="bottom", anchor="w", pady=(6, 0))

        # Right pane: Notebook
        right = ttk.Frame(main)
        main.add(right, weight=2)

        nb = ttk.Notebook(right)
        nb.pack(fill="both", expand=True)

        # Preview tab
        tab_preview = ttk.Frame(nb, padding=8)
        nb.add(tab_preview, text="Preview")

        prev_paned = ttk.PanedWindow(tab_preview, orient="vertical")
        prev_paned.pack(fill="both", expand=True)

        prev_frame = ttk.LabelFrame(prev_paned, text="Final photo", padding=8)
        self.preview_canvas = ImageCanvas(prev_frame, placeholder="Nothing to preview")
        self.preview_canvas.pack(fill="both", expand=True)
        self.preview_meta = ttk.Label(prev_frame, text="")
        self.preview_meta.pack(side="bottom", anchor="w", pady=(6, 0))
        prev_paned.add(prev_frame, weight=3)

        settings = ttk.LabelFrame(prev_paned, text="Settings", padding=8)
        prev_paned.add(settings, weight=1)
        settings.columnconfigure(1, weight=1)

        ttk.Label(settings, text="Standard:").grid(row=0, column=0, sticky="w", pady=3)
        self.var_spec = tk.StringVar(value=params.spec_id)
        spec_row = ttk.Frame(settings)
        spec_row.grid(row=0, column=1, sticky="w", pady=3)
        for spec in OUTPUT_SPECS.values():
            ttk.Radiobutton(
                spec_row, text=spec.label, value=spec.id, variable=self.var_spec, command=self.on_spec_changed
            ).pack(side="left", padx=(0, 8))

        ttk.Label(settings, text="Background:").grid(row=1, column=0, sticky="w", pady=3)
        self.var_background = tk.StringVar(value=self._palette_name(params.background))
        self.combo_background = ttk.Combobox(
            settings, textvariable=self.var_background, values=list(BACKGROUND_PALETTE), width=14
        )
        self.combo_background.grid(row=1, column=1, sticky="w", pady=3)
        self.combo_background.bind("<<ComboboxSelected>>", lambda e: self.on_background_changed())
        self.combo_background.bind("<Return>", lambda e: self.on_background_changed())

        ttk.Label(settings, text="Edge feather (px):").grid(row=2, column=0, sticky="w", pady=3)
        self.var_feather = tk.DoubleVar(value=params.feather_radius)
        self.spin_feather = ttk.Spinbox(
            settings, from_=0, to=20, increment=0.5, textvariable=self.var_feather, width=6,
            command=self.on_feather_changed,
        )
        self.spin_feather.grid(row=2, column=1, sticky="w", pady=3)
        self.spin_feather.bind("<Return>", lambda e: self.on_feather_changed())

        ttk.Label(settings, text="Zoom:").grid(row=3, column=0, sticky="w", pady=3)
        self.var_zoom = tk.DoubleVar(value=params.zoom_min)
        self.scale_zoom = ttk.Scale(
            settings, from_=params.zoom_min, to=params.zoom_max, variable=self.var_zoom,
            orient="horizontal", command=lambda _v: self.on_zoom_changed(),
        )
        self.scale_zoom.grid(row=3, column=1, sticky="ew", pady=3)

        # Validation tab
        tab_val = ttk.Frame(nb, padding=8)
        nb.add(tab_val, text="Validation")

        tab_val.columnconfigure(0, weight=1)
        tab_val.rowconfigure(0, weight=1)

        columns = ("rule", "status", "details")
        self.tree = ttk.Treeview(tab_val, columns=columns, show="headings", height=10)
        self.tree.heading("rule", text="Rule")
        self.tree.heading("status", text="Status")
        self.tree.heading("details", text="Details")
        self.tree.column("rule", width=120, stretch=False)
        self.tree.column("status", width=60, stretch=False)
        self.tree.column("details", width=360, stretch=True)
        self.tree.grid(row=0, column=0, sticky="nsew")

        btn_row = ttk.Frame(tab_val)
        btn_row.grid(row=1, column=0, sticky="ew", pady=(8, 0))
        self.btn_copy_report = ttk.Button(btn_row, text="Copy report", command=self.on_copy_report)
        self.btn_copy_report.pack(side="left")

        # Status bar
        status = ttk.Frame(self, padding=(10, 6))
        status.pack(side="bottom", fill="x")

        self.status_var = tk.StringVar(value="Ready.")
        ttk.Label(status, textvariable=self.status_var).pack(side="left")

    def _bind_shortcuts(self) -> None:
        self.master.bind_all("<Control-o>", lambda e: self.on_upload())
        self.master.bind_all("<Command-o>", lambda e: self.on_upload())

        self.master.bind_all("<Control-s>", lambda e: self.on_export())
        self.master.bind_all("<Command-s>", lambda e: self.on_export())

    # ---------- Utilities ----------

    @staticmethod
    def _palette_name(color) -> str:
        try:
            hex_value = color_to_hex(color)
        except PassportFrameError:
            return str(color)
        for name, value in BACKGROUND_PALETTE.items():
            if value.lower() == hex_value:
                return name
        return hex_value

    def set_status(self, text: str) -> None:
        self.status_var.set(text)

    def _set_state(self, widget: ttk.Widget, enabled: bool) -> None:
        widget.state(["!disabled"] if enabled else ["disabled"])

    def _refresh(self) -> None:
        """Sync buttons and canvases with the controller."""
        c = self.controller
        s = c.session
        pending = c.state is PipelineState.MASK_PENDING

        if pending:
            self.progress.start(12)
        else:
            self.progress.stop()

        self._set_state(self.btn_upload, not pending)
        self._set_state(self.btn_export, c.can_export)
        self._set_state(self.btn_validate, c.can_export)
        self._set_state(
            self.btn_retry,
            c.state is PipelineState.READY and s.segmentation_failed and not s.segmentation_retried,
        )
        self._set_state(self.btn_copy_report, self.validation_report is not None)

        shown = s.composite if s.composite is not None else s.source
        if shown is not self._shown_bitmap:
            # Only re-scale the photo when the bitmap itself changed; pan/zoom just move the overlay.
            self._shown_bitmap = shown
            if shown is None:
                self.composite_canvas.clear()
            else:
                self.composite_canvas.set_image(bitmap_to_pil(shown))
        self.composite_canvas.set_crop(c.crop_rectangle)

        self._schedule_preview()

    def _schedule_preview(self) -> None:
        if self._preview_job is not None:
            self.after_cancel(self._preview_job)
        self._preview_job = self.after(PREVIEW_DELAY_MS, self._refresh_preview)

    def _refresh_preview(self) -> None:
        self._preview_job = None
        c = self.controller
        try:
            final = c.preview()
        except PassportFrameError as e:
            logger.warning("Preview failed: %s", e)
            self.preview_canvas.clear()
            self.preview_meta.configure(text=str(e))
            return
        if final is None:
            self.preview_canvas.clear()
            self.preview_meta.configure(text=c.export_blocker or "")
            return
        self.preview_canvas.set_image(bitmap_to_pil(final))
        spec = c.output_spec
        self.preview_meta.configure(text=f"{spec.label}   {spec.width_px}x{spec.height_px} px @ {spec.dpi} dpi")

    def _invalidate_report(self) -> None:
        self.validation_report = None
        for iid in self.tree.get_children():
            self.tree.delete(iid)

    def _render_validation_report(self) -> None:
        for iid in self.tree.get_children():
            self.tree.delete(iid)
        report = self.validation_report
        if report is None:
            return
        for r in report.results:
            status = "✅" if r.passed else "❌"
            self.tree.insert("", "end", values=(r.rule_id, status, r.message))

    def _segmentation_done(self, future) -> None:
        # Runs on the worker; the controller already scheduled its own update via after().
        if future.exception() is not None:
            logger.error("Segmentation pipeline failed", exc_info=future.exception())
            self.master.after(0, lambda: messagebox.showerror("Processing failed", str(future.exception())))
            return
        self.master.after(0, self._announce_composite)

    def _announce_composite(self) -> None:
        s = self.controller.session
        if s.composite is None:
            return
        name = os.path.basename(s.input_name or "")
        h, w = s.composite.shape[:2]
        self.composite_meta.configure(text=f"File: {name}   Size: {w}x{h}")
        if s.segmentation_failed:
            self.set_status("Background removal unavailable; using the photo as-is. You can retry once.")
        else:
            self.set_status("Background replaced. Drag and zoom to frame the face, then export.")

    # ---------- Upload ----------

    def on_upload(self) -> None:
        path = filedialog.askopenfilename(
            title="Select a photo",
            filetypes=[
                ("Image files", "*.jpg *.jpeg *.png *.bmp *.tif *.tiff *.webp"),
                ("All files", "*.*"),
            ],
        )
        if not path:
            return

        try:
            bitmap = load_bitmap(path)
        except (OSError, PassportFrameError) as e:
            messagebox.showerror("Upload failed", f"Could not open image.\n\n{e}")
            self.set_status("Upload failed.")
            return

        self._invalidate_report()
        self.var_zoom.set(self.controller.params.zoom_min)
        self.composite_meta.configure(text=f"File: {os.path.basename(path)}   Size: {bitmap.shape[1]}x{bitmap.shape[0]}")
        self.set_status("Removing background…")
        future = self.controller.upload(bitmap, name=path)
        future.add_done_callback(self._segmentation_done)

    def on_retry(self) -> None:
        future = self.controller.retry_segmentation()
        if future is None:
            return
        self.set_status("Retrying background removal…")
        future.add_done_callback(self._segmentation_done)

    # ---------- Settings + crop ----------

    def on_spec_changed(self) -> None:
        self._invalidate_report()
        self.controller.set_output_spec(self.var_spec.get())

    def on_background_changed(self) -> None:
        try:
            self.controller.set_background(self.var_background.get())
        except PassportFrameError as e:
            messagebox.showwarning("Background", str(e))
            self.var_background.set(self._palette_name(self.controller.params.background))
            return
        self._invalidate_report()

    def on_feather_changed(self) -> None:
        try:
            radius = float(self.var_feather.get())
            self.controller.set_feather_radius(radius)
        except (tk.TclError, ValueError) as e:
            self.set_status(f"Invalid feather radius: {e}")
            self.var_feather.set(self.controller.params.feather_radius)
            return
        self._invalidate_report()

    def on_zoom_changed(self) -> None:
        self.controller.set_zoom(float(self.var_zoom.get()))

    def on_drag(self, dx: float, dy: float) -> None:
        # Dragging the photo right moves the crop window left over it.
        self.controller.pan(-dx, -dy)

    # ---------- Validate + export ----------

    def on_validate(self) -> None:
        c = self.controller
        if not c.can_export:
            messagebox.showwarning("Not ready", c.export_blocker or "Upload a photo first.")
            return
        final = c.render_final()
        self.validation_report = validate_final_image(final, c.output_spec, c.params.background)
        self._render_validation_report()
        self._set_state(self.btn_copy_report, True)
        if self.validation_report.passed:
            self.set_status("Validation complete. All checks passed.")
        else:
            self.set_status("Validation complete (some checks failed).")

    def on_copy_report(self) -> None:
        if self.validation_report is None:
            messagebox.showinfo("No report", "Run Validate first.")
            return
        self.master.clipboard_clear()
        self.master.clipboard_append(format_report_text(self.validation_report))
        self.set_status("Copied validation report.")

    def on_export(self) -> None:
        c = self.controller
        if not c.can_export:
            self.set_status(c.export_blocker or "Nothing to export.")
            return

        path = filedialog.asksaveasfilename(
            title="Export photo",
            initialfile=export_filename(c.output_spec),
            defaultextension=".jpg",
            filetypes=[("JPEG", "*.jpg *.jpeg"), ("PNG", "*.png")],
        )
        if not path:
            return

        try:
            written = c.export(path)
        except (OSError, PassportFrameError) as e:
            messagebox.showerror("Export failed", str(e))
            self.set_status("Export failed.")
            return
        self.set_status(f"Saved {written}")

    def on_reset(self) -> None:
        self.controller.reset()
        self._invalidate_report()
        self.var_zoom.set(self.controller.params.zoom_min)
        self.composite_meta.configure(text="No file loaded.")
        self.set_status("Reset complete.")

    def destroy(self) -> None:
        if self._preview_job is not None:
            self.after_cancel(self._preview_job)
            self._preview_job = None
        self.controller.close()
        super().destroy()


def run(params: Optional[ProcessingParams] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    root = tk.Tk()
    root.title("PassportFrame")
    root.geometry("1200x760")
    root.minsize(900, 600)

    PassportFrameApp(root, params or ProcessingParams.from_env())

    root.mainloop()


if __name__ == "__main__":
    run()
