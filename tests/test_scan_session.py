import pytest

from checkin_scanner import errors
from checkin_scanner.models import CameraDevice, ErrorState, Idle, Rect, Resolving, Scanning, Starting
from checkin_scanner.services import CameraError, CameraErrorKind
from checkin_scanner.services.scan_session import BUSY_MESSAGE

from conftest import FakeCameraSource, FakeSurface, build_harness

TICKET = '{"eventAttendanceId":"att-1","checkingInAccountId":"acc-9"}'
OTHER_TICKET = "att-2:acc-3"


def _start(h):
    assert h.machine.start()
    h.scheduler.run_work()
    h.scheduler.advance(0)


def _record_states(machine):
    states = []
    machine.subscribe(lambda session: states.append(session.state))
    return states


def test_end_to_end_check_in_and_rotation():
    surface = FakeSurface(rect=Rect(375, 667), viewport=375)
    h = build_harness(surface=surface)
    states = _record_states(h.machine)

    _start(h)
    assert [type(s) for s in states] == [Starting, Scanning]

    h.source.emit(TICKET)
    h.scheduler.advance(0)

    state = h.machine.state
    assert isinstance(state, Resolving)
    assert state.result is not None and state.result.success
    assert state.payload.event_attendance_id == "att-1"
    assert h.client.calls == [("att-1", "acc-9")]
    assert h.source.active == []

    h.scheduler.advance(1999)
    assert isinstance(h.machine.state, Resolving)

    h.scheduler.advance(1)
    assert isinstance(h.machine.state, Scanning)
    assert h.machine.session.last_scanned_payload is None
    assert h.source.start_count == 2

    states.clear()
    surface.rotate(667, 375)
    h.scheduler.advance(5000)

    restarts = [s for s in states if isinstance(s, Starting)]
    assert [s.reason for s in restarts] == ["restart"]
    assert isinstance(h.machine.state, Scanning)
    assert h.source.start_count == 3
    assert h.source.max_active == 1
    assert len(h.source.active) == 1
    assert h.machine.session.qr_box_size.width == pytest.approx(375 * 0.85)


def test_failed_confirmation_stays_out_of_scanning(make_harness):
    h = make_harness()
    h.client.failure = "Ticket already used."
    _start(h)

    h.source.emit(TICKET)
    h.scheduler.advance(0)
    state = h.machine.state
    assert isinstance(state, Idle)
    assert state.result.success is False
    assert state.result.message == "Ticket already used."

    h.scheduler.advance(5000)
    assert isinstance(h.machine.state, Idle)
    assert len(h.client.calls) == 1
    assert h.source.start_count == 1
    assert h.source.active == []


def test_duplicate_scan_is_not_reprocessed(make_harness):
    h = make_harness()
    h.client.failure = "Ticket already used."
    _start(h)

    h.source.emit(TICKET)
    h.scheduler.advance(0)

    _start(h)
    h.source.emit(TICKET)
    h.source.emit(TICKET)
    h.scheduler.advance(0)

    assert isinstance(h.machine.state, Scanning)
    assert len(h.client.calls) == 1

    h.client.failure = None
    h.source.emit(OTHER_TICKET)
    h.scheduler.advance(0)
    assert h.client.calls[-1] == ("att-2", "acc-3")


def test_stop_clears_last_scanned_payload(make_harness):
    h = make_harness()
    h.client.failure = "Ticket already used."
    _start(h)
    h.source.emit(TICKET)
    h.scheduler.advance(0)

    h.machine.stop()
    _start(h)
    h.source.emit(TICKET)
    h.scheduler.advance(0)

    assert len(h.client.calls) == 2


def test_decodes_are_ignored_while_resolving(make_harness):
    h = make_harness(defer_work=True)
    _start(h)

    h.source.emit(TICKET)
    h.scheduler.advance(0)
    assert isinstance(h.machine.state, Resolving)

    h.source.emit(OTHER_TICKET)
    h.scheduler.advance(0)
    h.scheduler.run_work()
    h.scheduler.advance(0)

    assert h.client.calls == [("att-1", "acc-9")]


def test_stop_while_resolving_ignores_late_response(make_harness):
    h = make_harness(defer_work=True)
    _start(h)
    h.source.emit(TICKET)
    h.scheduler.advance(0)

    h.machine.stop()
    assert isinstance(h.machine.state, Idle)

    h.scheduler.run_work()
    h.scheduler.advance(5000)

    assert isinstance(h.machine.state, Idle)
    assert h.machine.session.result is None
    assert h.source.start_count == 1


def test_scan_during_outstanding_confirmation_is_refused(make_harness):
    h = make_harness(defer_work=True)
    _start(h)
    h.source.emit(TICKET)
    h.scheduler.advance(0)
    h.machine.stop()

    h.scheduler.defer_work = False
    h.machine.start()
    h.scheduler.advance(0)
    h.source.emit(OTHER_TICKET)
    h.scheduler.advance(0)

    state = h.machine.state
    assert isinstance(state, Idle)
    assert state.result.message == BUSY_MESSAGE

    h.scheduler.run_work()
    h.scheduler.advance(0)
    assert len(h.client.calls) == 1
    assert h.machine.state is state


def test_invalid_payload_reports_failure_without_backend_call(make_harness):
    h = make_harness()
    _start(h)

    h.source.emit("att-1")
    h.scheduler.advance(0)

    state = h.machine.state
    assert isinstance(state, Idle)
    assert not state.result.success
    assert "account" in state.result.message
    assert h.client.calls == []
    assert h.source.active == []


def test_camera_error_then_retry():
    source = FakeCameraSource(error=CameraError(CameraErrorKind.DEVICE_BUSY))
    h = build_harness(source=source)

    _start(h)
    state = h.machine.state
    assert isinstance(state, ErrorState)
    assert state.error.kind is CameraErrorKind.DEVICE_BUSY
    assert state.error.operator_message.startswith("Failed to access camera.")
    assert not h.watcher.is_observing

    source.error = None
    states = _record_states(h.machine)
    assert h.machine.retry()
    h.scheduler.advance(0)
    assert states[0] == Starting("retry")
    assert isinstance(h.machine.state, Scanning)


def test_start_is_ignored_unless_idle_or_error(make_harness):
    h = make_harness()
    _start(h)

    assert not h.machine.start()
    assert not h.machine.retry()
    assert h.source.start_count == 1


def test_stop_during_start_releases_late_handle(make_harness):
    h = make_harness(defer_work=True)
    h.machine.start()
    h.machine.stop()

    h.scheduler.run_work()
    h.scheduler.advance(0)

    assert isinstance(h.machine.state, Idle)
    assert h.source.start_count == 1
    assert h.source.active == []
    assert h.camera.handle is None


def test_restart_after_stop_adopts_pending_acquisition(make_harness):
    h = make_harness(defer_work=True)
    h.machine.start()
    h.machine.stop()
    h.machine.start()

    h.scheduler.run_work()
    h.scheduler.advance(0)

    assert isinstance(h.machine.state, Scanning)
    assert h.source.start_count == 1


def test_stale_stream_decodes_are_dropped_after_restart(make_harness):
    h = make_harness()
    _start(h)
    stale = h.source.streams[-1]

    h.surface.resize(300, 480)
    h.scheduler.advance(1300)
    assert isinstance(h.machine.state, Scanning)
    assert h.source.start_count == 2

    stale.on_decoded(TICKET)
    h.scheduler.advance(0)
    assert isinstance(h.machine.state, Scanning)
    assert h.client.calls == []


def test_switch_camera_cycles_devices():
    source = FakeCameraSource(devices=[CameraDevice("0", "Front"), CameraDevice("1", "Back camera")])
    h = build_harness(source=source)
    _start(h)
    assert h.machine.state.handle.device_id == "1"

    assert h.machine.switch_camera()
    assert isinstance(h.machine.state, Starting)
    assert not h.machine.switch_camera()

    h.scheduler.advance(500)
    assert isinstance(h.machine.state, Scanning)
    assert h.machine.state.handle.device_id == "0"
    assert source.max_active == 1


def test_manual_entry_from_idle_confirms_and_resumes(make_harness):
    h = make_harness()

    assert h.machine.submit_manual(" att-7:acc-1 ")
    h.scheduler.advance(0)
    assert isinstance(h.machine.state, Resolving)
    assert h.client.calls == [("att-7", "acc-1")]

    h.scheduler.advance(2000)
    assert isinstance(h.machine.state, Scanning)


def test_manual_entry_is_rejected_while_resolving(make_harness):
    h = make_harness(defer_work=True)

    assert h.machine.submit_manual(OTHER_TICKET)
    assert not h.machine.submit_manual(TICKET)


def test_teardown_releases_camera_and_listeners(make_harness):
    h = make_harness()
    states = _record_states(h.machine)
    _start(h)

    h.machine.teardown()
    assert h.source.active == []
    assert h.camera.handle is None

    count = len(states)
    h.machine.start()
    h.scheduler.advance(0)
    assert len(states) == count


def test_scanning_requires_a_handle():
    with pytest.raises(ValueError):
        Scanning(None)


def test_manual_check_in_resumes_into_interrupted_acquisition(make_harness):
    h = make_harness(defer_work=True)
    h.machine.start()
    h.machine.stop()

    h.scheduler.defer_work = False
    assert h.machine.submit_manual(OTHER_TICKET)
    h.scheduler.advance(0)
    assert isinstance(h.machine.state, Resolving)

    h.scheduler.advance(2000)
    assert h.machine.state == Starting("resume")
    assert h.source.start_count == 0
    assert h.scheduler.pending_work == 1

    h.scheduler.run_work()
    h.scheduler.advance(0)
    assert isinstance(h.machine.state, Scanning)
    assert h.source.start_count == 1
    assert h.source.max_active == 1


def test_single_camera_offers_no_switch():
    source = FakeCameraSource(devices=[CameraDevice("0", "Integrated Webcam")])
    h = build_harness(source=source)
    _start(h)

    assert not h.machine.can_switch_camera
    assert not h.machine.switch_camera()
    h.scheduler.advance(1000)
    assert isinstance(h.machine.state, Scanning)
    assert source.start_count == 1


def test_stop_releases_camera_when_surface_is_gone(make_harness):
    h = make_harness()
    _start(h)
    h.surface.destroyed = True

    with pytest.raises(RuntimeError):
        h.machine.stop()

    assert h.source.active == []
    assert h.camera.handle is None
    assert isinstance(h.machine.state, Idle)
    assert not h.watcher.is_observing

    h.surface.destroyed = False
    _start(h)
    assert isinstance(h.machine.state, Scanning)
    assert len(h.source.active) == 1


def test_teardown_releases_camera_when_surface_is_gone(make_harness):
    h = make_harness()
    states = _record_states(h.machine)
    _start(h)
    h.surface.destroyed = True

    with pytest.raises(RuntimeError):
        h.machine.teardown()

    assert h.source.active == []
    assert h.camera.handle is None
    assert isinstance(h.machine.state, Idle)

    count = len(states)
    h.machine.start()
    assert len(states) == count


def test_camera_errors_are_reported_with_the_shared_error_type():
    source = FakeCameraSource(error=errors.CameraError(errors.CameraErrorKind.PERMISSION_DENIED))
    h = build_harness(source=source)
    _start(h)

    state = h.machine.state
    assert isinstance(state, ErrorState)
    assert type(state.error) is errors.CameraError
    assert CameraError is errors.CameraError
    assert state.error.kind is CameraErrorKind.PERMISSION_DENIED
