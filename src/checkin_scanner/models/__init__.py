from .scan import (
	CameraConstraints,
	CameraDevice,
	CameraDimensions,
	CameraHandle,
	ConfirmationResult,
	DecodedPayload,
	ErrorState,
	Idle,
	Rect,
	Resolving,
	ScanBox,
	Scanning,
	ScanSession,
	SessionState,
	Starting,
)

__all__ = [
	"CameraConstraints",
	"CameraDevice",
	"CameraDimensions",
	"CameraHandle",
	"ConfirmationResult",
	"DecodedPayload",
	"ErrorState",
	"Idle",
	"Rect",
	"Resolving",
	"ScanBox",
	"Scanning",
	"ScanSession",
	"SessionState",
	"Starting",
]
