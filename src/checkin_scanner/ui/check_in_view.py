from __future__ import annotations

import logging
from tkinter import StringVar
from typing import Any, Optional

import customtkinter as ctk
from PIL import Image, ImageOps

from checkin_scanner.config.settings import Settings
from checkin_scanner.config.user_settings_store import UserSettingsStore
from checkin_scanner.models import ConfirmationResult, ErrorState, Idle, Resolving, Scanning, ScanSession, Starting
from checkin_scanner.services import (
    AttendanceConfirmationCoordinator,
    CameraResourceManager,
    ConfirmationClient,
    DimensionWatcher,
    ScanSessionStateMachine,
    TkScheduler,
)
from checkin_scanner.services.opencv_camera import OpenCVCameraSource
from checkin_scanner.ui.surface import TkScanSurface
from checkin_scanner.ui.theme import (
    TONE_COLORS,
    VS_ACCENT,
    VS_ACCENT_HOVER,
    VS_BG,
    VS_BORDER,
    VS_CARD,
    VS_DIVIDER,
    VS_STOP,
    VS_STOP_HOVER,
    VS_SUCCESS,
    VS_SURFACE_ALT,
    VS_TEXT,
    VS_TEXT_MUTED,
    VS_WARNING,
)
from checkin_scanner.ui.utils import play_feedback_async
from checkin_scanner.utils import format_relative_time

logger = logging.getLogger(__name__)

STARTING_MESSAGES = {
    "start": "Starting scanner…",
    "retry": "Retrying camera…",
    "resume": "Ready for the next ticket…",
    "restart": "Adjusting camera to the new layout…",
    "switch": "Switching camera…",
}


class CheckInView(ctk.CTkFrame):
    def __init__(
        self,
        master,
        *,
        camera_source: OpenCVCameraSource,
        confirmation_client: ConfirmationClient,
        app_settings: Settings,
        user_store: UserSettingsStore,
    ) -> None:
        super().__init__(master, fg_color=VS_BG)
        self._camera_source = camera_source
        self._user_store = user_store

        self._status_var = StringVar(value="Scanner idle")
        self._result_var = StringVar(value="")
        self._manual_var = StringVar()
        self._manual_status_var = StringVar(value="Paste or type a ticket code.")

        self._control_button: ctk.CTkButton | None = None
        self._switch_button: ctk.CTkButton | None = None
        self._status_label: ctk.CTkLabel | None = None
        self._result_label: ctk.CTkLabel | None = None
        self._manual_status_label: ctk.CTkLabel | None = None
        self._preview_frame: ctk.CTkFrame | None = None
        self._preview_label: ctk.CTkLabel | None = None
        self._preview_image: ctk.CTkImage | None = None
        self._preview_size: tuple[int, int] = (420, 420)
        placeholder_source = Image.new("RGB", self._preview_size, color=(24, 24, 24))
        self._preview_placeholder = ctk.CTkImage(
            light_image=placeholder_source,
            dark_image=placeholder_source.copy(),
            size=self._preview_size,
        )
        self._preview_busy = False
        self._last_result: Optional[ConfirmationResult] = None

        self._build_widgets()

        scheduler = TkScheduler(self)
        self._surface = TkScanSurface(self._preview_frame)
        self._camera = CameraResourceManager(camera_source, preferred_device_id=app_settings.preferred_camera_id)
        self._machine = ScanSessionStateMachine(
            self._camera,
            DimensionWatcher(
                scheduler,
                debounce_ms=app_settings.restart_debounce_ms,
                settle_ms=app_settings.orientation_settle_ms,
            ),
            AttendanceConfirmationCoordinator(
                confirmation_client,
                scheduler,
                auto_resume_ms=app_settings.auto_resume_ms,
            ),
            scheduler,
            self._surface,
            restart_delay_ms=app_settings.restart_delay_ms,
        )
        self._machine.subscribe(self._render_session)
        self._camera_source.set_frame_listener(self._queue_frame)
        self._render_session(self._machine.session)

    @property
    def machine(self) -> ScanSessionStateMachine:
        return self._machine

    # ------------------------------------------------------------------
    # Layout construction
    # ------------------------------------------------------------------
    def _build_widgets(self) -> None:
        self.grid_columnconfigure(0, weight=3)
        self.grid_columnconfigure(1, weight=2)
        self.grid_rowconfigure(0, weight=1)

        scanner_card = ctk.CTkFrame(self, corner_radius=16, fg_color=VS_SURFACE_ALT)
        scanner_card.grid(row=0, column=0, padx=(20, 10), pady=20, sticky="nsew")
        self._build_scanner_panel(scanner_card)

        manual_card = ctk.CTkFrame(self, corner_radius=16, fg_color=VS_SURFACE_ALT)
        manual_card.grid(row=0, column=1, padx=(10, 20), pady=20, sticky="nsew")
        self._build_manual_panel(manual_card)

    def _build_scanner_panel(self, frame: ctk.CTkFrame) -> None:
        frame.grid_columnconfigure(0, weight=1)
        frame.grid_rowconfigure(2, weight=1)
        header_font = ctk.CTkFont(size=20, weight="bold")
        message_font = ctk.CTkFont(size=18)
        preview_width = self._preview_size[0]

        header_row = ctk.CTkFrame(frame, fg_color=VS_SURFACE_ALT)
        header_row.grid(row=0, column=0, padx=20, pady=(20, 12), sticky="ew")
        header_row.grid_columnconfigure(0, weight=1)

        ctk.CTkLabel(header_row, text="Ticket scanner", font=header_font, text_color=VS_TEXT).grid(
            row=0, column=0, sticky="w"
        )

        self._switch_button = ctk.CTkButton(
            header_row,
            text="Switch camera",
            command=self._handle_switch_camera,
            width=140,
            fg_color=VS_CARD,
            hover_color=VS_BORDER,
            text_color=VS_TEXT,
        )
        self._switch_button.grid(row=0, column=1, padx=(0, 8), sticky="e")

        self._control_button = ctk.CTkButton(
            header_row,
            text="Start scanner",
            command=self._handle_toggle_scanner,
            width=180,
            fg_color=VS_ACCENT,
            hover_color=VS_ACCENT_HOVER,
            text_color=VS_TEXT,
        )
        self._control_button.grid(row=0, column=2, sticky="e")

        self._status_label = ctk.CTkLabel(
            frame,
            textvariable=self._status_var,
            text_color=VS_TEXT,
            font=message_font,
            justify="center",
            wraplength=preview_width,
        )
        self._status_label.grid(row=1, column=0, padx=16, pady=(0, 8), sticky="ew")

        self._preview_frame = ctk.CTkFrame(
            frame,
            corner_radius=18,
            fg_color=VS_CARD,
            border_width=3,
            border_color=VS_DIVIDER,
        )
        self._preview_frame.grid(row=2, column=0, padx=16, pady=(0, 16), sticky="nsew")
        self._preview_frame.grid_propagate(False)
        self._preview_frame.configure(width=self._preview_size[0], height=self._preview_size[1])

        self._preview_label = ctk.CTkLabel(
            self._preview_frame,
            text="Camera preview inactive",
            text_color=VS_TEXT_MUTED,
            font=ctk.CTkFont(size=16),
            justify="center",
            image=self._preview_placeholder,
            compound="center",
        )
        self._preview_label.pack(expand=True, fill="both", padx=12, pady=12)

        self._result_label = ctk.CTkLabel(
            frame,
            textvariable=self._result_var,
            text_color=VS_TEXT_MUTED,
            font=message_font,
            justify="left",
            wraplength=preview_width,
        )
        self._result_label.grid(row=3, column=0, padx=20, pady=(0, 20), sticky="w")

    def _build_manual_panel(self, frame: ctk.CTkFrame) -> None:
        frame.grid_columnconfigure(0, weight=1)
        header_font = ctk.CTkFont(size=20, weight="bold")
        label_font = ctk.CTkFont(size=16)

        ctk.CTkLabel(frame, text="Manual entry", font=header_font, text_color=VS_TEXT).grid(
            row=0, column=0, padx=20, pady=(20, 12), sticky="w"
        )
        ctk.CTkLabel(
            frame,
            text="Accepts the same codes as the scanner: JSON, attendance:account, or an attendance id.",
            justify="left",
            wraplength=320,
            font=label_font,
            text_color=VS_TEXT_MUTED,
        ).grid(row=1, column=0, padx=20, pady=(0, 12), sticky="w")

        entry = ctk.CTkEntry(
            frame,
            textvariable=self._manual_var,
            font=label_font,
            fg_color=VS_BG,
            border_color=VS_BORDER,
            text_color=VS_TEXT,
            placeholder_text_color=VS_TEXT_MUTED,
        )
        entry.grid(row=2, column=0, padx=20, pady=6, sticky="ew")
        entry.bind("<Return>", lambda _event: self._handle_manual_submit())

        ctk.CTkButton(
            frame,
            text="Check in",
            command=self._handle_manual_submit,
            fg_color=VS_ACCENT,
            hover_color=VS_ACCENT_HOVER,
            text_color=VS_TEXT,
        ).grid(row=3, column=0, padx=20, pady=(6, 12), sticky="e")

        self._manual_status_label = ctk.CTkLabel(
            frame,
            textvariable=self._manual_status_var,
            text_color=VS_TEXT_MUTED,
            font=label_font,
            justify="left",
            wraplength=320,
        )
        self._manual_status_label.grid(row=4, column=0, padx=20, pady=(0, 20), sticky="w")

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------
    def _handle_toggle_scanner(self) -> None:
        state = self._machine.state
        if isinstance(state, ErrorState):
            self._machine.retry()
        elif isinstance(state, Idle):
            self._machine.start()
        else:
            self._machine.stop()

    def _handle_switch_camera(self) -> None:
        if self._machine.switch_camera():
            self._user_store.update(preferred_camera_id=self._camera.current_device_id)

    def _handle_manual_submit(self) -> None:
        text = self._manual_var.get().strip()
        if not text:
            self._set_manual_status("Enter a ticket code first.", tone="warning")
            return
        if not self._machine.submit_manual(text):
            self._set_manual_status("Wait for the current check-in to finish.", tone="warning")
            return
        self._manual_var.set("")
        self._set_manual_status("Checking ticket…", tone="active")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def _render_session(self, session: ScanSession) -> None:
        if not self.winfo_exists():
            return

        state = session.state
        running = isinstance(state, (Starting, Scanning, Resolving))
        self._configure_control(running=running, error=isinstance(state, ErrorState))
        if self._switch_button is not None:
            self._switch_button.configure(state="normal" if self._machine.can_switch_camera else "disabled")

        if isinstance(state, Starting):
            self._set_status(STARTING_MESSAGES.get(state.reason, "Starting scanner…"), tone="active")
            self._show_placeholder("Waiting for camera…")
        elif isinstance(state, Scanning):
            self._set_status("Scanner active. Hold the ticket inside the frame.", tone="success")
        elif isinstance(state, Resolving):
            if state.result is None:
                self._set_status("Checking ticket…", tone="active")
            else:
                self._set_status("Checked in. Resuming shortly…", tone="success")
            self._show_placeholder("Camera paused")
        elif isinstance(state, ErrorState):
            self._set_status(state.error.operator_message, tone="warning")
            self._show_placeholder("Camera unavailable")
        else:
            self._set_status("Scanner idle")
            self._show_placeholder("Camera preview inactive")

        self._render_result(session.result)

    def _render_result(self, result: Optional[ConfirmationResult]) -> None:
        if result is self._last_result:
            return
        self._last_result = result

        if result is None:
            self._result_var.set("")
            self._set_preview_border(None)
            return

        attendance_id = result.payload.event_attendance_id if result.payload else None
        headline = "Checked in" if result.success else "Not checked in"
        details = [f"{headline}: {result.message}"]
        if attendance_id:
            details.append(f"Attendance {attendance_id} · {format_relative_time(result.timestamp)}")
        self._result_var.set("\n".join(details))

        color = VS_SUCCESS if result.success else VS_WARNING
        if self._result_label is not None:
            self._result_label.configure(text_color=color)
        self._set_preview_border(color)
        self._set_manual_status(result.message, tone="success" if result.success else "warning")
        play_feedback_async(result.success)

    def _configure_control(self, *, running: bool, error: bool) -> None:
        if self._control_button is None:
            return
        if running:
            self._control_button.configure(
                text="Stop scanner",
                fg_color=VS_STOP,
                hover_color=VS_STOP_HOVER,
            )
        else:
            self._control_button.configure(
                text="Retry camera" if error else "Start scanner",
                fg_color=VS_ACCENT,
                hover_color=VS_ACCENT_HOVER,
            )

    def _set_status(self, message: str, tone: str = "info") -> None:
        self._status_var.set(message)
        if self._status_label is not None:
            self._status_label.configure(text_color=TONE_COLORS.get(tone, VS_TEXT_MUTED))

    def _set_manual_status(self, message: str, tone: str = "info") -> None:
        self._manual_status_var.set(message)
        if self._manual_status_label is not None:
            self._manual_status_label.configure(text_color=TONE_COLORS.get(tone, VS_TEXT_MUTED))

    def _set_preview_border(self, color: str | None) -> None:
        if self._preview_frame is not None:
            self._preview_frame.configure(border_color=color or VS_DIVIDER)

    def _show_placeholder(self, text: str) -> None:
        if self._preview_label is None:
            return
        self._preview_label.configure(image=self._preview_placeholder, text=text)
        self._preview_image = None

    # ------------------------------------------------------------------
    # Preview frames
    # ------------------------------------------------------------------
    def _queue_frame(self, frame: Any) -> None:
        # Runs on the capture thread.
        try:
            self.after(0, lambda f=frame: self._handle_frame(f))
        except RuntimeError:
            logger.debug("Preview frame dropped after shutdown")

    def _handle_frame(self, frame: Any) -> None:
        if not self.winfo_exists() or self._preview_label is None or self._preview_busy:
            return
        if not isinstance(self._machine.state, Scanning) or frame is None:
            return

        self._preview_busy = True
        try:
            import cv2  # type: ignore[import-not-found]

            rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            pil_image = Image.fromarray(rgb_frame)
            square_image = ImageOps.fit(
                pil_image,
                self._preview_size,
                method=Image.Resampling.LANCZOS,
                centering=(0.5, 0.5),
            )
            self._preview_image = ctk.CTkImage(
                light_image=square_image,
                dark_image=square_image,
                size=self._preview_size,
            )
            self._preview_label.configure(image=self._preview_image, text="")
        finally:
            self._preview_busy = False

    def destroy(self) -> None:  # pragma: no cover - lifecycle hook
        self._camera_source.set_frame_listener(None)
        try:
            self._machine.teardown()
        finally:
            self._surface.close()
            super().destroy()
