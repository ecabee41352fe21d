from __future__ import annotations

import tkinter as tk
from tkinter import ttk
from typing import Callable, Optional, Tuple

from PIL import Image, ImageTk

from passportframe.core.crop import head_guide_rectangle
from passportframe.core.models import CropRectangle

DragCallback = Callable[[float, float], None]


class ImageCanvas(ttk.Frame):
    """
    A resizable canvas that shows a PIL image scaled to fit.

    Optionally draws a crop rectangle (in image pixels) with a head-position oval over the
    image, and reports mouse drags as image-pixel deltas, which is how the user pans
    the crop.
    """

    def __init__(self, master, *, bg: str = "#f3f3f3", placeholder: str = "No image loaded"):
        super().__init__(master)
        self._canvas = tk.Canvas(self, highlightthickness=0, bg=bg)
        self._canvas.pack(fill="both", expand=True)

        self._photo: Optional[ImageTk.PhotoImage] = None
        self._pil: Optional[Image.Image] = None
        self._crop: Optional[CropRectangle] = None

        # Image placement on the canvas: offset and scale of the last redraw.
        self._origin: Tuple[int, int] = (0, 0)
        self._scale: float = 1.0

        self._on_drag: Optional[DragCallback] = None
        self._drag_last: Optional[Tuple[int, int]] = None

        self._canvas.bind("<Configure>", self._on_resize)
        self._canvas.bind("<ButtonPress-1>", self._on_press)
        self._canvas.bind("<B1-Motion>", self._on_motion)
        self._canvas.bind("<ButtonRelease-1>", self._on_release)

        self._placeholder_id = self._canvas.create_text(
            10, 10, anchor="nw",
            text=placeholder,
            fill="#555",
            font=("TkDefaultFont", 11),
        )

    def set_image(self, pil: Optional[Image.Image], crop: Optional[CropRectangle] = None) -> None:
        self._pil = pil
        self._crop = crop
        self._redraw()

    def set_crop(self, crop: Optional[CropRectangle]) -> None:
        self._crop = crop
        self._draw_crop()

    def set_placeholder(self, text: str) -> None:
        self._canvas.itemconfigure(self._placeholder_id, text=text)

    def clear(self) -> None:
        self.set_image(None)

    def on_drag(self, callback: Optional[DragCallback]) -> None:
        """Call `callback(dx, dy)` in image pixels while the user drags the image."""
        self._on_drag = callback

    def _on_resize(self, _evt) -> None:
        self._redraw()

    def _on_press(self, evt) -> None:
        self._drag_last = (evt.x, evt.y)

    def _on_motion(self, evt) -> None:
        if self._drag_last is None or self._on_drag is None or self._pil is None:
            return
        dx = (evt.x - self._drag_last[0]) / self._scale
        dy = (evt.y - self._drag_last[1]) / self._scale
        self._drag_last = (evt.x, evt.y)
        self._on_drag(dx, dy)

    def _on_release(self, _evt) -> None:
        self._drag_last = None

    def _fit_size(self, img_w: int, img_h: int, box_w: int, box_h: int) -> Tuple[int, int]:
        if img_w <= 0 or img_h <= 0 or box_w <= 2 or box_h <= 2:
            return (1, 1)
        scale = min(box_w / img_w, box_h / img_h)
        new_w = max(1, int(img_w * scale))
        new_h = max(1, int(img_h * scale))
        return new_w, new_h

    def _redraw(self) -> None:
        self._canvas.delete("img")
        self._canvas.delete("crop")
        if self._pil is None:
            self._canvas.itemconfigure(self._placeholder_id, state="normal")
            return

        self._canvas.itemconfigure(self._placeholder_id, state="hidden")

        w = max(1, self._canvas.winfo_width())
        h = max(1, self._canvas.winfo_height())

        pil = self._pil
        new_w, new_h = self._fit_size(pil.width, pil.height, w, h)
        resized = pil.resize((new_w, new_h), Image.LANCZOS)

        self._photo = ImageTk.PhotoImage(resized)
        x = (w - new_w) // 2
        y = (h - new_h) // 2
        self._origin = (x, y)
        self._scale = new_w / pil.width
        self._canvas.create_image(x, y, anchor="nw", image=self._photo, tags=("img",))
        self._draw_crop()

    def _draw_crop(self) -> None:
        self._canvas.delete("crop")
        if self._crop is None or self._pil is None:
            return
        ox, oy = self._origin
        s = self._scale
        c = self._crop
        self._canvas.create_rectangle(
            ox + c.x * s, oy + c.y * s, ox + c.right * s, oy + c.bottom * s,
            outline="#ff3b30", width=2, dash=(6, 3), tags=("crop",),
        )
        g = head_guide_rectangle(c)
        self._canvas.create_oval(
            ox + g.x * s, oy + g.y * s, ox + g.right * s, oy + g.bottom * s,
            outline="#ffffff", width=2, tags=("crop",),
        )
