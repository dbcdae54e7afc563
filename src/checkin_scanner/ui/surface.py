from __future__ import annotations

from typing import Any, Callable

import customtkinter as ctk

from checkin_scanner.models import Rect
from checkin_scanner.services.surface import Unsubscribe


class TkScanSurface:
    """Expose a preview frame to the camera manager and dimension watcher.

    Resize notifications come from the toplevel's ``<Configure>`` events. A
    desktop window has no orientation sensor, so a flip between landscape and
    portrait window shapes is reported as an orientation change.
    """

    def __init__(self, frame: ctk.CTkFrame) -> None:
        self._frame = frame
        self._toplevel = frame.winfo_toplevel()
        self._resize_listeners: list[Callable[[], None]] = []
        self._orientation_listeners: list[Callable[[], None]] = []
        self._last_landscape: bool | None = None
        self._closed = False
        # CTk binds <Configure> on the root itself, so this binding is never removed.
        self._toplevel.bind("<Configure>", self._handle_configure, add="+")

    def ensure_visible(self, *, min_height: int) -> None:
        if not self._frame.winfo_ismapped():
            self._frame.grid()
        if self._frame.winfo_height() < min_height:
            self._frame.configure(height=min_height)
        self._frame.update_idletasks()

    def bounding_rect(self) -> Rect:
        return Rect(width=self._frame.winfo_width(), height=self._frame.winfo_height())

    def viewport_width(self) -> float:
        return float(self._toplevel.winfo_width())

    def add_resize_listener(self, callback: Callable[[], None]) -> Unsubscribe:
        return self._add(self._resize_listeners, callback)

    def add_orientation_listener(self, callback: Callable[[], None]) -> Unsubscribe:
        return self._add(self._orientation_listeners, callback)

    def close(self) -> None:
        self._closed = True
        self._resize_listeners.clear()
        self._orientation_listeners.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _add(listeners: list[Callable[[], None]], callback: Callable[[], None]) -> Unsubscribe:
        listeners.append(callback)

        def _remove() -> None:
            if callback in listeners:
                listeners.remove(callback)

        return _remove

    def _handle_configure(self, event: Any) -> None:
        if self._closed or event.widget is not self._toplevel:
            return

        landscape = event.width >= event.height
        for callback in list(self._resize_listeners):
            callback()

        if self._last_landscape is not None and landscape != self._last_landscape:
            for callback in list(self._orientation_listeners):
                callback()
        self._last_landscape = landscape
