from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol, Sequence

from checkin_scanner.errors import CameraError, CameraErrorKind
from checkin_scanner.models import CameraConstraints, CameraDevice, CameraHandle, Rect, ScanBox
from checkin_scanner.services.surface import ScanSurface

logger = logging.getLogger(__name__)

MIN_SCAN_BOX = 200
DESKTOP_MAX_SCAN_BOX = 350
MOBILE_SIZE_RATIO = 0.85
DESKTOP_SIZE_RATIO = 0.70
MOBILE_MAX_RATIO = 0.9
MOBILE_VIEWPORT_BREAKPOINT = 768
FALLBACK_MOBILE_BOX = 280
FALLBACK_DESKTOP_BOX = 300
MIN_SURFACE_HEIGHT = 400

FACING_ENVIRONMENT = "environment"
FACING_USER = "user"


class CameraStream(Protocol):
    def stop(self) -> None: ...


class CameraSource(Protocol):
    def list_devices(self) -> Sequence[CameraDevice]: ...

    def start(self, constraints: CameraConstraints, on_decoded: Callable[[str], None]) -> CameraStream: ...

    def stop(self, stream: CameraStream) -> None: ...


def is_mobile_viewport(viewport_width: float) -> bool:
    return viewport_width < MOBILE_VIEWPORT_BREAKPOINT


def compute_scan_box_size(container: Rect, is_mobile: bool) -> ScanBox:
    """Size of the decode hit-box for a preview container.

    ``clamp(min(w, h) * pct, 200, MAX)`` where ``pct`` is 0.85 on mobile and
    0.70 otherwise, and ``MAX`` is ``min(w, h) * 0.9`` on mobile or 350.
    """

    if container.is_empty:
        fallback = FALLBACK_MOBILE_BOX if is_mobile else FALLBACK_DESKTOP_BOX
        return ScanBox(width=fallback, height=fallback)

    shortest = min(container.width, container.height)
    ratio = MOBILE_SIZE_RATIO if is_mobile else DESKTOP_SIZE_RATIO
    max_size = shortest * MOBILE_MAX_RATIO if is_mobile else DESKTOP_MAX_SCAN_BOX

    size = max(MIN_SCAN_BOX, min(shortest * ratio, max_size))
    return ScanBox(width=size, height=size)


def select_device(devices: Sequence[CameraDevice], preferred_id: Optional[str] = None) -> Optional[CameraDevice]:
    if not devices:
        return None
    if preferred_id is not None:
        for device in devices:
            if device.id == preferred_id:
                return device
    for device in devices:
        if device.is_rear_facing:
            return device
    return devices[0]


class CameraResourceManager:
    """Sole owner of the camera stream.

    At most one handle is held at a time and at most one acquisition runs at
    a time; ``release`` is idempotent.
    """

    def __init__(self, source: CameraSource, *, preferred_device_id: Optional[str] = None) -> None:
        self._source = source
        self._handle: Optional[CameraHandle] = None
        self._opening = False
        self._devices: list[CameraDevice] = []
        self._current_device_id = preferred_device_id
        self._facing_mode = FACING_ENVIRONMENT
        self._lock = threading.Lock()

    @property
    def handle(self) -> Optional[CameraHandle]:
        return self._handle

    @property
    def devices(self) -> list[CameraDevice]:
        return list(self._devices)

    @property
    def current_device_id(self) -> Optional[str]:
        return self._current_device_id

    @property
    def facing_mode(self) -> str:
        return self._facing_mode

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------
    def prepare(self, surface: ScanSurface) -> tuple[ScanBox, Rect]:
        """Make the surface renderable and size the scan box; call on the UI thread."""

        surface.ensure_visible(min_height=MIN_SURFACE_HEIGHT)
        rect = surface.bounding_rect()
        box = compute_scan_box_size(rect, is_mobile_viewport(surface.viewport_width()))
        return box, rect

    def open(
        self,
        qrbox: ScanBox,
        viewport: Rect,
        on_decoded: Callable[[str], None],
        *,
        device_id: Optional[str] = None,
    ) -> CameraHandle:
        """Start the camera stream. Blocking; safe to call from a worker thread."""

        with self._lock:
            if self._handle is not None:
                raise RuntimeError("A camera handle is already acquired; release it first.")
            if self._opening:
                raise RuntimeError("A camera acquisition is already in progress.")
            self._opening = True

        try:
            try:
                constraints = self._build_constraints(qrbox, viewport, device_id)
                logger.info(
                    "Starting camera (device=%s, facing=%s, qrbox=%.0f)",
                    constraints.device_id,
                    constraints.facing_mode,
                    qrbox.width,
                )
                stream = self._source.start(constraints, on_decoded)
            except CameraError:
                raise
            except Exception as exc:
                raise CameraError(CameraErrorKind.UNKNOWN, str(exc) or None) from exc

            handle = CameraHandle(stream=stream, constraints=constraints)
            with self._lock:
                self._handle = handle
                if constraints.device_id is not None:
                    self._current_device_id = constraints.device_id
            return handle
        finally:
            with self._lock:
                self._opening = False

    def acquire(
        self,
        surface: ScanSurface,
        on_decoded: Callable[[str], None],
        *,
        device_id: Optional[str] = None,
    ) -> CameraHandle:
        qrbox, viewport = self.prepare(surface)
        return self.open(qrbox, viewport, on_decoded, device_id=device_id)

    def release(self, handle: Optional[CameraHandle]) -> None:
        if handle is None or handle.released:
            return

        handle.released = True
        with self._lock:
            if self._handle is handle:
                self._handle = None

        try:
            self._source.stop(handle.stream)
        except Exception:
            logger.exception("Error stopping camera stream; handle released anyway")
        else:
            logger.info("Camera released (device=%s)", handle.device_id)

    # ------------------------------------------------------------------
    # Device selection
    # ------------------------------------------------------------------
    @property
    def can_switch(self) -> bool:
        """False when exactly one camera is listed; there is nothing to switch to."""

        return len(self._devices) != 1

    def next_device_id(self) -> Optional[str]:
        """Advance to the next camera for a switch.

        Without any listed devices the facing mode flips instead and ``None``
        is returned.
        """

        ids = [device.id for device in self._devices]
        if not ids:
            self._facing_mode = FACING_USER if self._facing_mode == FACING_ENVIRONMENT else FACING_ENVIRONMENT
            self._current_device_id = None
            return None

        index = ids.index(self._current_device_id) + 1 if self._current_device_id in ids else 0
        self._current_device_id = ids[index % len(ids)]
        return self._current_device_id

    def _build_constraints(self, qrbox: ScanBox, viewport: Rect, device_id: Optional[str]) -> CameraConstraints:
        devices = list(self._source.list_devices())
        self._devices = devices

        device = select_device(devices, device_id or self._current_device_id)
        if device is None:
            return CameraConstraints(qrbox=qrbox, viewport=viewport, facing_mode=self._facing_mode)
        return CameraConstraints(qrbox=qrbox, viewport=viewport, device_id=device.id)
