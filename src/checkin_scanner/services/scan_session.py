from __future__ import annotations

import itertools
import logging
from typing import Callable, Optional

from checkin_scanner.errors import CameraError, CameraErrorKind
from checkin_scanner.models import (
    CameraHandle,
    ConfirmationResult,
    ErrorState,
    Idle,
    Resolving,
    Scanning,
    ScanSession,
    SessionState,
    Starting,
)
from checkin_scanner.services.camera_manager import CameraResourceManager
from checkin_scanner.services.confirmation import AttendanceConfirmationCoordinator
from checkin_scanner.services.decode_router import DecodeEventRouter, RoutedScan
from checkin_scanner.services.dimension_watcher import DimensionWatcher
from checkin_scanner.services.scheduling import ScheduledTask, Scheduler
from checkin_scanner.services.surface import ScanSurface

logger = logging.getLogger(__name__)

RESTART_DELAY_MS = 500
BUSY_MESSAGE = "A previous check-in is still being confirmed. Try again in a moment."

SessionListener = Callable[[ScanSession], None]


class ScanSessionStateMachine:
    """Drive one check-in scanning session.

    States: ``Idle -> Starting -> Scanning -> Resolving`` and back, plus
    ``ErrorState`` when the camera cannot be acquired. Every operator action
    and every callback from the camera, the watcher or the coordinator comes
    through here; nothing else mutates the session.

    Camera acquisitions are tagged with a generation number. Stopping clears
    the current generation, so an acquisition or decode event that completes
    after the session moved on is released or dropped instead of applied.
    """

    def __init__(
        self,
        camera: CameraResourceManager,
        watcher: DimensionWatcher,
        coordinator: AttendanceConfirmationCoordinator,
        scheduler: Scheduler,
        surface: ScanSurface,
        *,
        router: Optional[DecodeEventRouter] = None,
        restart_delay_ms: int = RESTART_DELAY_MS,
    ) -> None:
        self._camera = camera
        self._watcher = watcher
        self._coordinator = coordinator
        self._scheduler = scheduler
        self._surface = surface
        self._router = router or DecodeEventRouter()
        self._restart_delay_ms = restart_delay_ms

        self._session = ScanSession()
        self._listeners: list[SessionListener] = []
        self._tags = itertools.count(1)
        self._generation: Optional[int] = None
        self._acquiring: Optional[int] = None
        self._restart_pending = False
        self._restart_task: Optional[ScheduledTask] = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def session(self) -> ScanSession:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def restart_pending(self) -> bool:
        return self._restart_pending

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------
    def start(self) -> bool:
        if not isinstance(self.state, (Idle, ErrorState)):
            logger.debug("Ignoring start while %s", self._session.state_name)
            return False
        self._acquire_or_adopt("start")
        return True

    def retry(self) -> bool:
        if not isinstance(self.state, ErrorState):
            return False
        self._acquire_or_adopt("retry")
        return True

    def stop(self) -> None:
        handle = self._session.camera_handle
        self._generation = None
        try:
            self._cancel_restart()
            self._coordinator.abandon()
            self._watcher.unobserve()
        finally:
            try:
                self._camera.release(handle)
            finally:
                self._session.last_scanned_payload = None
                self._transition(Idle())

    def teardown(self) -> None:
        try:
            self.stop()
        finally:
            self._listeners.clear()

    def submit_manual(self, text: str) -> bool:
        """Feed operator-typed text through the same parse and confirm pipeline."""

        if isinstance(self.state, (Starting, Resolving)):
            logger.debug("Ignoring manual entry while %s", self._session.state_name)
            return False

        handle = self._session.camera_handle
        self._enter_resolving(self._router.parse(text), handle)
        return True

    @property
    def can_switch_camera(self) -> bool:
        return isinstance(self.state, Scanning) and not self._restart_pending and self._camera.can_switch

    def switch_camera(self) -> bool:
        if not self.can_switch_camera:
            return False
        device_id = self._camera.next_device_id()
        self._restart_camera("switch", device_id)
        return True

    # ------------------------------------------------------------------
    # Camera lifecycle
    # ------------------------------------------------------------------
    def _acquire_or_adopt(self, reason: str) -> None:
        if self._acquiring is None:
            self._begin_acquire(reason)
            return

        # A stop interrupted this acquisition before it finished; take it back.
        self._generation = self._acquiring
        self._transition(Starting(reason))

    def _begin_acquire(self, reason: str, device_id: Optional[str] = None) -> None:
        generation = next(self._tags)
        self._generation = generation
        if self.state != Starting(reason):
            self._transition(Starting(reason))

        try:
            qrbox, viewport = self._camera.prepare(self._surface)
        except Exception as exc:
            self._acquire_failed(generation, exc)
            return
        self._session.qr_box_size = qrbox

        def _on_decoded(raw_text: str) -> None:
            self._scheduler.call_soon(lambda: self._handle_decoded(generation, raw_text))

        self._acquiring = generation
        self._scheduler.submit(
            lambda: self._camera.open(qrbox, viewport, _on_decoded, device_id=device_id),
            lambda handle: self._acquired(generation, handle),
            lambda error: self._acquire_failed(generation, error),
        )

    def _acquired(self, generation: int, handle: CameraHandle) -> None:
        if self._acquiring == generation:
            self._acquiring = None

        if generation != self._generation or not isinstance(self.state, Starting):
            logger.info("Releasing camera from a superseded start")
            self._camera.release(handle)
            return

        self._restart_pending = False
        self._transition(Scanning(handle))
        if not self._watcher.is_observing:
            self._watcher.observe(self._surface, self._handle_restart_needed)

    def _acquire_failed(self, generation: int, error: BaseException) -> None:
        if self._acquiring == generation:
            self._acquiring = None
        if generation != self._generation:
            logger.debug("Ignoring failure of a superseded camera start: %s", error)
            return

        if isinstance(error, CameraError):
            camera_error = error
        else:
            logger.error("Unexpected error acquiring camera", exc_info=error)
            camera_error = CameraError(CameraErrorKind.UNKNOWN, str(error) or None)

        logger.warning("Camera unavailable (%s): %s", camera_error.kind.value, camera_error.operator_message)
        self._restart_pending = False
        self._watcher.unobserve()
        self._transition(ErrorState(camera_error))

    def _handle_restart_needed(self) -> None:
        if self._session.camera_handle is None or self._restart_pending:
            logger.debug("Skipping dimension restart while %s", self._session.state_name)
            return
        self._restart_camera("restart")

    def _restart_camera(self, reason: str, device_id: Optional[str] = None) -> None:
        handle = self._session.camera_handle
        self._restart_pending = True
        self._generation = None
        self._transition(Starting(reason))
        self._camera.release(handle)

        def _reacquire() -> None:
            self._restart_task = None
            self._begin_acquire(reason, device_id)

        self._restart_task = self._scheduler.call_later(self._restart_delay_ms, _reacquire)

    def _cancel_restart(self) -> None:
        if self._restart_task is not None:
            self._restart_task.cancel()
            self._restart_task = None
        self._restart_pending = False

    # ------------------------------------------------------------------
    # Decode and confirmation
    # ------------------------------------------------------------------
    def _handle_decoded(self, generation: int, raw_text: str) -> None:
        if generation != self._generation:
            return

        routed = self._router.route(self._session, raw_text)
        if routed is None:
            return

        self._session.last_scanned_payload = raw_text
        self._enter_resolving(routed, self._session.camera_handle)

    def _enter_resolving(self, routed: RoutedScan, handle: Optional[CameraHandle]) -> None:
        self._cancel_restart()
        self._watcher.unobserve()
        self._transition(Resolving(payload=routed.payload))
        self._camera.release(handle)

        if routed.error is not None:
            self._transition(
                Idle(
                    ConfirmationResult(
                        success=False,
                        message=str(routed.error),
                        payload=getattr(routed.error, "payload", None),
                    )
                )
            )
            return

        if self._coordinator.in_flight:
            logger.warning("Scan accepted while an earlier confirmation is still outstanding")
            self._transition(Idle(ConfirmationResult(success=False, message=BUSY_MESSAGE, payload=routed.payload)))
            return

        self._coordinator.confirm(routed.payload, self._handle_confirmation, self._resume_scanning)

    def _handle_confirmation(self, result: ConfirmationResult) -> None:
        state = self.state
        if not isinstance(state, Resolving):
            return

        if result.success:
            self._transition(Resolving(payload=state.payload, result=result))
        else:
            self._transition(Idle(result))

    def _resume_scanning(self) -> None:
        if not isinstance(self.state, Resolving):
            return
        self._session.last_scanned_payload = None
        self._acquire_or_adopt("resume")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _transition(self, state: SessionState) -> None:
        previous = self._session.state_name
        self._session.state = state
        logger.debug("Scan session %s -> %s", previous, self._session.state_name)

        for listener in list(self._listeners):
            try:
                listener(self._session)
            except Exception:
                logger.exception("Scan session listener failed")
