from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union

from checkin_scanner.errors import CameraError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Rect:
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


@dataclass(frozen=True, slots=True)
class ScanBox:
    width: float
    height: float


@dataclass(frozen=True, slots=True)
class CameraDimensions:
    width: float
    height: float
    captured_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class CameraDevice:
    id: str
    label: str = ""

    @property
    def is_rear_facing(self) -> bool:
        label = self.label.lower()
        return "back" in label or "rear" in label or "environment" in label


@dataclass(frozen=True, slots=True)
class CameraConstraints:
    qrbox: ScanBox
    viewport: Rect
    device_id: Optional[str] = None
    facing_mode: Optional[str] = None
    fps: int = 10
    aspect_ratio: float = 1.0
    disable_flip: bool = False


@dataclass(slots=True)
class CameraHandle:
    """An acquired camera stream. Only the camera manager creates or releases these."""

    stream: Any
    constraints: CameraConstraints
    released: bool = False

    @property
    def device_id(self) -> Optional[str]:
        return self.constraints.device_id


@dataclass(frozen=True, slots=True)
class DecodedPayload:
    raw_text: str
    event_attendance_id: Optional[str] = None
    checking_in_account_id: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.event_attendance_id) and bool(self.checking_in_account_id)


@dataclass(frozen=True, slots=True)
class ConfirmationResult:
    success: bool
    message: str
    payload: Optional[DecodedPayload] = None
    timestamp: datetime = field(default_factory=_utcnow)


# ----------------------------------------------------------------------
# Session states
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Idle:
    result: Optional[ConfirmationResult] = None


@dataclass(frozen=True, slots=True)
class Starting:
    reason: str = "start"


@dataclass(frozen=True, slots=True)
class Scanning:
    handle: CameraHandle

    def __post_init__(self) -> None:
        if self.handle is None:
            raise ValueError("Scanning requires an acquired camera handle.")


@dataclass(frozen=True, slots=True)
class Resolving:
    payload: Optional[DecodedPayload] = None
    result: Optional[ConfirmationResult] = None


@dataclass(frozen=True, slots=True)
class ErrorState:
    error: CameraError


SessionState = Union[Idle, Starting, Scanning, Resolving, ErrorState]


@dataclass(slots=True)
class ScanSession:
    state: SessionState = field(default_factory=Idle)
    last_scanned_payload: Optional[str] = None
    qr_box_size: Optional[ScanBox] = None

    @property
    def camera_handle(self) -> Optional[CameraHandle]:
        if isinstance(self.state, Scanning):
            return self.state.handle
        return None

    @property
    def state_name(self) -> str:
        return type(self.state).__name__

    @property
    def result(self) -> Optional[ConfirmationResult]:
        if isinstance(self.state, (Idle, Resolving)):
            return self.state.result
        return None
