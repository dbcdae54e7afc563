from checkin_scanner.errors import CameraError, CameraErrorKind

from .attendance_api import AttendanceApiClient, ConfirmationClient, ConfirmationError
from .camera_manager import (
	CameraResourceManager,
	CameraSource,
	compute_scan_box_size,
)
from .confirmation import AttendanceConfirmationCoordinator, ConfirmationInFlightError
from .decode_router import DecodeEventRouter, RoutedScan
from .dimension_watcher import DimensionWatcher
from .payload_parser import (
	IncompletePayloadError,
	MalformedPayloadError,
	PayloadError,
	parse_payload,
	validate_payload,
)
from .scan_session import ScanSessionStateMachine
from .scheduling import ManualScheduler, Scheduler, TkScheduler

__all__ = [
	"AttendanceApiClient",
	"AttendanceConfirmationCoordinator",
	"CameraError",
	"CameraErrorKind",
	"CameraResourceManager",
	"CameraSource",
	"ConfirmationClient",
	"ConfirmationError",
	"ConfirmationInFlightError",
	"DecodeEventRouter",
	"DimensionWatcher",
	"IncompletePayloadError",
	"MalformedPayloadError",
	"ManualScheduler",
	"PayloadError",
	"RoutedScan",
	"ScanSessionStateMachine",
	"Scheduler",
	"TkScheduler",
	"compute_scan_box_size",
	"parse_payload",
	"validate_payload",
]
