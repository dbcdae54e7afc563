from __future__ import annotations

import logging
import threading
import time
from contextlib import suppress
from pathlib import Path
from typing import Any, Callable, Optional

from checkin_scanner.models import CameraConstraints, CameraDevice
from checkin_scanner.errors import CameraError, CameraErrorKind
from checkin_scanner.services.payload_parser import normalize_text

logger = logging.getLogger(__name__)

DEDUP_INTERVAL_SECONDS = 0.8
PREVIEW_INTERVAL_SECONDS = 0.07
PREVIEW_MAX_WIDTH = 480
STOP_JOIN_TIMEOUT_SECONDS = 1.5
VIDEO4LINUX_ROOT = Path("/sys/class/video4linux")


def _load_backends() -> tuple[Any, Any]:
    try:
        import cv2  # type: ignore[import-not-found]
        import zxingcpp  # type: ignore[import-not-found]
    except ImportError as exc:
        raise CameraError(
            CameraErrorKind.UNKNOWN,
            "Missing QR scanner dependencies. Install OpenCV (cv2) and zxing-cpp to enable scanning.",
        ) from exc
    return cv2, zxingcpp


def crop_to_scan_box(frame: Any, constraints: CameraConstraints) -> Any:
    """Crop the centre of ``frame`` to the share of the viewport the scan box covers."""

    viewport = constraints.viewport
    if viewport.is_empty:
        return frame

    height, width = frame.shape[:2]
    share = min(1.0, constraints.qrbox.width / min(viewport.width, viewport.height))
    side = int(min(width, height) * share)
    if side <= 0 or side >= min(width, height):
        return frame

    top = (height - side) // 2
    left = (width - side) // 2
    return frame[top : top + side, left : left + side]


class CaptureStream:
    def __init__(self, capture: Any, constraints: CameraConstraints) -> None:
        self.capture = capture
        self.constraints = constraints
        self.stop_event = threading.Event()
        self.thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def stop(self) -> None:
        self.stop_event.set()
        if self.thread and self.thread.is_alive() and self.thread is not threading.current_thread():
            self.thread.join(timeout=STOP_JOIN_TIMEOUT_SECONDS)
        self.thread = None


class OpenCVCameraSource:
    """Camera source reading frames with OpenCV and decoding them with zxing-cpp."""

    def __init__(self, default_index: int = 0, *, probe_limit: int = 4) -> None:
        self._default_index = default_index
        self._probe_limit = probe_limit
        self._frame_listener: Optional[Callable[[Any], None]] = None

    def set_frame_listener(self, listener: Optional[Callable[[Any], None]]) -> None:
        self._frame_listener = listener

    # ------------------------------------------------------------------
    # CameraSource
    # ------------------------------------------------------------------
    def list_devices(self) -> list[CameraDevice]:
        if VIDEO4LINUX_ROOT.is_dir():
            return self._list_video4linux_devices()

        cv2_module, _ = _load_backends()
        devices: list[CameraDevice] = []
        for index in range(self._probe_limit):
            capture = self._open_capture(cv2_module, index)
            if capture is None:
                continue
            with suppress(Exception):
                capture.release()
            devices.append(CameraDevice(id=str(index), label=f"Camera {index}"))
        return devices

    def start(self, constraints: CameraConstraints, on_decoded: Callable[[str], None]) -> CaptureStream:
        cv2_module, zxing_module = _load_backends()

        index = self._resolve_index(constraints)
        capture = self._open_capture(cv2_module, index)
        if capture is None:
            raise CameraError(CameraErrorKind.DEVICE_NOT_FOUND)

        ok, _ = capture.read()
        if not ok:
            with suppress(Exception):
                capture.release()
            raise CameraError(CameraErrorKind.DEVICE_BUSY)

        stream = CaptureStream(capture, constraints)

        def _runner() -> None:
            self._run_loop(stream, on_decoded, cv2_module, zxing_module)

        stream.thread = threading.Thread(target=_runner, name=f"camera-{index}", daemon=True)
        stream.thread.start()
        return stream

    def stop(self, stream: CaptureStream) -> None:
        stream.stop()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _resolve_index(self, constraints: CameraConstraints) -> int:
        if constraints.device_id is not None:
            try:
                return int(constraints.device_id)
            except ValueError as exc:
                raise CameraError(CameraErrorKind.DEVICE_NOT_FOUND) from exc
        return self._default_index

    def _list_video4linux_devices(self) -> list[CameraDevice]:
        devices: list[CameraDevice] = []
        for entry in sorted(VIDEO4LINUX_ROOT.glob("video*")):
            suffix = entry.name[len("video") :]
            if not suffix.isdigit():
                continue
            # Metadata nodes share the card name; index 0 is the capture node.
            index_file = entry / "index"
            with suppress(OSError, ValueError):
                if int(index_file.read_text(encoding="utf-8").strip()) != 0:
                    continue
            name_file = entry / "name"
            label = f"Camera {suffix}"
            with suppress(OSError):
                label = name_file.read_text(encoding="utf-8").strip() or label
            devices.append(CameraDevice(id=suffix, label=label))
        return devices

    @staticmethod
    def _open_capture(cv2_module: Any, index: int) -> Any:
        backend_preferences = [getattr(cv2_module, "CAP_DSHOW", None), getattr(cv2_module, "CAP_ANY", None)]

        for backend in backend_preferences:
            if backend is None:
                capture = cv2_module.VideoCapture(index)
            else:
                capture = cv2_module.VideoCapture(index, backend)

            if capture.isOpened():
                return capture

            capture.release()

        return None

    def _run_loop(
        self,
        stream: CaptureStream,
        on_decoded: Callable[[str], None],
        cv2_module: Any,
        zxing_module: Any,
    ) -> None:
        constraints = stream.constraints
        interval = 1.0 / max(1, constraints.fps)
        last_payload: Optional[str] = None
        last_timestamp = 0.0
        last_preview = 0.0

        try:
            while not stream.stop_event.is_set():
                ok, frame = stream.capture.read()
                if not ok:
                    stream.stop_event.wait(interval)
                    continue

                if not constraints.disable_flip:
                    with suppress(Exception):
                        frame = cv2_module.flip(frame, 1)

                now = time.time()
                listener = self._frame_listener
                if listener is not None and (now - last_preview) >= PREVIEW_INTERVAL_SECONDS:
                    preview_frame = frame
                    if PREVIEW_MAX_WIDTH and preview_frame.shape[1] > PREVIEW_MAX_WIDTH:
                        scale = PREVIEW_MAX_WIDTH / float(preview_frame.shape[1])
                        height = int(preview_frame.shape[0] * scale)
                        preview_frame = cv2_module.resize(preview_frame, (PREVIEW_MAX_WIDTH, height))
                    try:
                        listener(preview_frame.copy())
                    except Exception:  # pragma: no cover - preview is best effort
                        logger.debug("Preview listener failed", exc_info=True)
                    last_preview = now

                try:
                    decoded = zxing_module.read_barcodes(
                        crop_to_scan_box(frame, constraints),
                        formats=zxing_module.BarcodeFormat.QRCode,
                        try_rotate=True,
                        try_downscale=True,
                        text_mode=zxing_module.TextMode.HRI,
                    )
                except Exception:
                    logger.debug("Frame decode failed", exc_info=True)
                    decoded = []

                for obj in decoded:
                    if hasattr(obj, "valid") and not obj.valid:
                        continue
                    if getattr(obj, "error", None):
                        continue

                    payload = normalize_text(getattr(obj, "text", ""))
                    if not payload:
                        payload_bytes = getattr(obj, "bytes", b"") or b""
                        if not isinstance(payload_bytes, (bytes, bytearray)):
                            payload_bytes = bytes(payload_bytes)
                        payload = normalize_text(bytes(payload_bytes))
                    if not payload:
                        continue

                    if last_payload == payload and (now - last_timestamp) < DEDUP_INTERVAL_SECONDS:
                        continue

                    last_payload = payload
                    last_timestamp = now
                    on_decoded(payload)

                stream.stop_event.wait(interval)
        except Exception:
            logger.exception("Camera capture loop crashed")
        finally:
            with suppress(Exception):
                stream.capture.release()
