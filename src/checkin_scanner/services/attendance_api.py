from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import requests

logger = logging.getLogger(__name__)

DEFAULT_CONFIRM_PATH = "/api/v1/event-attendances/confirm"
GENERIC_FAILURE_MESSAGE = "Failed to confirm attendance. Please try again."


class ConfirmationError(RuntimeError):
    """Raised when the backend rejects or fails a check-in confirmation."""


class ConfirmationClient(Protocol):
    def confirm(self, event_attendance_id: str, checking_in_account_id: str) -> str:
        """Confirm a check-in and return the backend's message."""


class AttendanceApiClient:
    """Thin client for the marketplace's attendance confirmation endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        confirm_path: str = DEFAULT_CONFIRM_PATH,
        timeout: float | None = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._confirm_path = "/" + confirm_path.lstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if token:
            self._session.headers.update({"Authorization": f"Bearer {token}"})

    @property
    def confirm_url(self) -> str:
        return f"{self._base_url}{self._confirm_path}"

    def confirm(self, event_attendance_id: str, checking_in_account_id: str) -> str:
        body = {
            "eventAttendanceId": event_attendance_id,
            "checkingInAccountId": checking_in_account_id,
        }
        try:
            response = self._session.post(self.confirm_url, json=body, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.warning("Confirmation request failed: %s", exc)
            raise ConfirmationError(GENERIC_FAILURE_MESSAGE) from exc

        envelope = self._read_envelope(response)
        message = str(envelope.get("message") or "")

        if response.status_code == 401:
            logger.error("Authentication error confirming attendance; check API_TOKEN.")
        if not response.ok or envelope.get("success") is False:
            logger.info("Backend rejected confirmation (status=%s): %s", response.status_code, message)
            raise ConfirmationError(message or GENERIC_FAILURE_MESSAGE)

        return message or "Attendance confirmed successfully!"

    def close(self) -> None:
        self._session.close()

    @staticmethod
    def _read_envelope(response: requests.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
