from __future__ import annotations

import logging

import customtkinter as ctk

from checkin_scanner.config.settings import settings, user_settings_store
from checkin_scanner.services import AttendanceApiClient
from checkin_scanner.services.opencv_camera import OpenCVCameraSource
from checkin_scanner.ui.check_in_view import CheckInView
from checkin_scanner.ui.theme import VS_BG

logger = logging.getLogger(__name__)


class CheckInApp:
    def __init__(self) -> None:
        try:
            from ctypes import windll
            windll.shcore.SetProcessDpiAwareness(1)
        except (ImportError, AttributeError):
            pass

        ctk.set_appearance_mode("dark")

        self._root = ctk.CTk()
        event_name = user_settings_store.get("event_name")
        self._root.title(f"{settings.app_name} · {event_name}" if event_name else settings.app_name)
        self._root.geometry("1100x680")
        self._root.minsize(860, 560)
        self._root.configure(fg_color=VS_BG)
        self._root.grid_rowconfigure(0, weight=1)
        self._root.grid_columnconfigure(0, weight=1)

        logger.info("Starting with %s", settings.describe())

        self._api_client = AttendanceApiClient(
            settings.api_base_url,
            token=settings.api_token,
            confirm_path=settings.confirm_path,
            timeout=settings.confirm_timeout_seconds,
        )
        self._camera_source = OpenCVCameraSource(
            settings.qr_camera_index,
            probe_limit=settings.qr_camera_probe_limit,
        )

        self._view = CheckInView(
            self._root,
            camera_source=self._camera_source,
            confirmation_client=self._api_client,
            app_settings=settings,
            user_store=user_settings_store,
        )
        self._view.grid(row=0, column=0, sticky="nsew")

        self._root.protocol("WM_DELETE_WINDOW", self._on_close)

    def _on_close(self) -> None:
        try:
            self._view.destroy()
        finally:
            self._api_client.close()
            self._root.destroy()

    def run(self) -> None:
        self._root.mainloop()
