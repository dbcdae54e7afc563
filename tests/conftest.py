"""Shared test fixtures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

import pytest

from checkin_scanner.models import CameraConstraints, CameraDevice, Rect
from checkin_scanner.services import (
    AttendanceConfirmationCoordinator,
    CameraResourceManager,
    ConfirmationError,
    DimensionWatcher,
    ManualScheduler,
    ScanSessionStateMachine,
)


@dataclass(eq=False)
class FakeStream:
    constraints: CameraConstraints
    on_decoded: Callable[[str], None]
    stopped: bool = False

    def stop(self) -> None:
        self.stopped = True


@dataclass
class FakeCameraSource:
    """Camera source that records every start and stop."""

    devices: list[CameraDevice] = field(default_factory=list)
    error: Optional[Exception] = None
    streams: list[FakeStream] = field(default_factory=list)
    max_active: int = 0

    @property
    def start_count(self) -> int:
        return len(self.streams)

    @property
    def active(self) -> list[FakeStream]:
        return [stream for stream in self.streams if not stream.stopped]

    def list_devices(self) -> list[CameraDevice]:
        return list(self.devices)

    def start(self, constraints: CameraConstraints, on_decoded: Callable[[str], None]) -> FakeStream:
        if self.error is not None:
            raise self.error
        stream = FakeStream(constraints=constraints, on_decoded=on_decoded)
        self.streams.append(stream)
        self.max_active = max(self.max_active, len(self.active))
        return stream

    def stop(self, stream: FakeStream) -> None:
        stream.stop()

    def emit(self, raw_text: str) -> None:
        """Deliver a decode from the most recently started stream, live or not."""
        self.streams[-1].on_decoded(raw_text)


@dataclass
class FakeSurface:
    """Preview surface with a settable size."""

    rect: Rect = field(default_factory=lambda: Rect(width=640, height=480))
    viewport: float = 1280
    visible_calls: int = 0
    destroyed: bool = False
    resize_listeners: list[Callable[[], None]] = field(default_factory=list)
    orientation_listeners: list[Callable[[], None]] = field(default_factory=list)

    def ensure_visible(self, *, min_height: int) -> None:
        self.visible_calls += 1

    def bounding_rect(self) -> Rect:
        return self.rect

    def viewport_width(self) -> float:
        return self.viewport

    def add_resize_listener(self, callback: Callable[[], None]) -> Callable[[], None]:
        self.resize_listeners.append(callback)
        return lambda: self._remove(self.resize_listeners, callback)

    def add_orientation_listener(self, callback: Callable[[], None]) -> Callable[[], None]:
        self.orientation_listeners.append(callback)
        return lambda: self._remove(self.orientation_listeners, callback)

    def _remove(self, listeners: list[Callable[[], None]], callback: Callable[[], None]) -> None:
        listeners.remove(callback)
        if self.destroyed:
            raise RuntimeError("widget already destroyed")

    def resize(self, width: float, height: float) -> None:
        self.rect = Rect(width=width, height=height)
        for callback in list(self.resize_listeners):
            callback()

    def rotate(self, width: float, height: float) -> None:
        self.viewport = width
        self.rect = Rect(width=width, height=height)
        for callback in list(self.orientation_listeners):
            callback()
        for callback in list(self.resize_listeners):
            callback()


@dataclass
class FakeConfirmationClient:
    """Confirmation client that answers from a preset outcome."""

    message: str = "Attendance confirmed successfully!"
    failure: Optional[str] = None
    calls: list[tuple[str, str]] = field(default_factory=list)

    def confirm(self, event_attendance_id: str, checking_in_account_id: str) -> str:
        self.calls.append((event_attendance_id, checking_in_account_id))
        if self.failure is not None:
            raise ConfirmationError(self.failure)
        return self.message


@dataclass
class ScannerHarness:
    machine: ScanSessionStateMachine
    scheduler: ManualScheduler
    source: FakeCameraSource
    surface: FakeSurface
    client: FakeConfirmationClient
    camera: CameraResourceManager
    watcher: DimensionWatcher
    coordinator: AttendanceConfirmationCoordinator


def build_harness(
    *,
    source: Optional[FakeCameraSource] = None,
    surface: Optional[FakeSurface] = None,
    client: Optional[FakeConfirmationClient] = None,
    defer_work: bool = False,
) -> ScannerHarness:
    scheduler = ManualScheduler(defer_work=defer_work)
    source = source or FakeCameraSource()
    surface = surface or FakeSurface()
    client = client or FakeConfirmationClient()
    camera = CameraResourceManager(source)
    watcher = DimensionWatcher(scheduler)
    coordinator = AttendanceConfirmationCoordinator(client, scheduler)
    machine = ScanSessionStateMachine(camera, watcher, coordinator, scheduler, surface)
    return ScannerHarness(machine, scheduler, source, surface, client, camera, watcher, coordinator)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def camera_source() -> FakeCameraSource:
    return FakeCameraSource()


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()


@pytest.fixture
def client() -> FakeConfirmationClient:
    return FakeConfirmationClient()


@pytest.fixture
def harness() -> ScannerHarness:
    return build_harness()


@pytest.fixture
def make_harness() -> Callable[..., ScannerHarness]:
    return build_harness
