from __future__ import annotations

from enum import Enum


class CameraErrorKind(str, Enum):
    PERMISSION_DENIED = "PermissionDenied"
    DEVICE_NOT_FOUND = "DeviceNotFound"
    DEVICE_BUSY = "DeviceBusy"
    INSECURE_CONTEXT = "InsecureContext"
    UNKNOWN = "Unknown"


_OPERATOR_HINTS = {
    CameraErrorKind.PERMISSION_DENIED: "Please allow camera access and try again.",
    CameraErrorKind.DEVICE_NOT_FOUND: "No camera found. Please connect a camera and try again.",
    CameraErrorKind.DEVICE_BUSY: "Camera is already in use by another application.",
    CameraErrorKind.INSECURE_CONTEXT: "Camera access requires a secure context.",
    CameraErrorKind.UNKNOWN: "Please check permissions and try again.",
}


class CameraError(RuntimeError):
    """Raised when the camera stream cannot be acquired."""

    def __init__(self, kind: CameraErrorKind, detail: str | None = None) -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(self.operator_message)

    @property
    def operator_message(self) -> str:
        hint = self.detail if self.kind is CameraErrorKind.UNKNOWN and self.detail else _OPERATOR_HINTS[self.kind]
        return f"Failed to access camera. {hint}"
