from __future__ import annotations

from typing import Callable, Protocol

from checkin_scanner.models import Rect

Unsubscribe = Callable[[], None]


class ScanSurface(Protocol):
    """The widget the camera preview renders into."""

    def ensure_visible(self, *, min_height: int) -> None:
        """Show the surface with a non-zero, responsive size before the camera starts."""

    def bounding_rect(self) -> Rect: ...

    def viewport_width(self) -> float: ...

    def add_resize_listener(self, callback: Callable[[], None]) -> Unsubscribe: ...

    def add_orientation_listener(self, callback: Callable[[], None]) -> Unsubscribe: ...
