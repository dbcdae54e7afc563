from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from checkin_scanner.models import ConfirmationResult, DecodedPayload
from checkin_scanner.services.attendance_api import GENERIC_FAILURE_MESSAGE, ConfirmationClient, ConfirmationError
from checkin_scanner.services.scheduling import ScheduledTask, Scheduler

logger = logging.getLogger(__name__)

AUTO_RESUME_MS = 2000

_ticket_ids = itertools.count(1)


class ConfirmationInFlightError(RuntimeError):
    """Raised when a confirmation is requested while another is outstanding."""


@dataclass(frozen=True, slots=True)
class ConfirmationTicket:
    id: int
    payload: DecodedPayload


class AttendanceConfirmationCoordinator:
    """Send one confirmation at a time and decide what happens afterwards.

    A success schedules ``on_resume`` after ``auto_resume_ms``. A failure
    schedules nothing; the operator has to start scanning again. Failed
    confirmations are never retried here.

    ``abandon`` detaches the session from an outstanding call: the request
    is not cancelled, but its response is dropped when it arrives.
    """

    def __init__(
        self,
        client: ConfirmationClient,
        scheduler: Scheduler,
        *,
        auto_resume_ms: int = AUTO_RESUME_MS,
    ) -> None:
        self._client = client
        self._scheduler = scheduler
        self._auto_resume_ms = auto_resume_ms
        self._in_flight: Optional[ConfirmationTicket] = None
        self._abandoned: set[int] = set()
        self._resume_task: Optional[ScheduledTask] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def resume_pending(self) -> bool:
        return self._resume_task is not None and self._resume_task.active

    def confirm(
        self,
        payload: DecodedPayload,
        on_result: Callable[[ConfirmationResult], None],
        on_resume: Callable[[], None],
    ) -> ConfirmationTicket:
        if self._in_flight is not None:
            raise ConfirmationInFlightError("A check-in confirmation is already in progress.")

        self.cancel_resume()
        ticket = ConfirmationTicket(id=next(_ticket_ids), payload=payload)
        self._in_flight = ticket
        logger.info("Confirming attendance %s", payload.event_attendance_id)

        def _work() -> str:
            return self._client.confirm(payload.event_attendance_id, payload.checking_in_account_id)

        def _on_success(message: str) -> None:
            if self._settle(ticket):
                return
            logger.info("Attendance %s confirmed", payload.event_attendance_id)
            on_result(ConfirmationResult(success=True, message=message, payload=payload))
            self._schedule_resume(on_resume)

        def _on_failure(error: BaseException) -> None:
            if self._settle(ticket):
                return
            on_result(self._failure_result(error, payload))

        self._scheduler.submit(_work, _on_success, _on_failure)
        return ticket

    def abandon(self) -> None:
        self.cancel_resume()
        if self._in_flight is not None:
            logger.info(
                "Abandoning confirmation for %s; its response will be ignored",
                self._in_flight.payload.event_attendance_id,
            )
            self._abandoned.add(self._in_flight.id)

    def cancel_resume(self) -> None:
        if self._resume_task is not None:
            self._resume_task.cancel()
            self._resume_task = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _settle(self, ticket: ConfirmationTicket) -> bool:
        """Clear the in-flight slot; True when the response should be dropped."""

        if self._in_flight is ticket:
            self._in_flight = None
        if ticket.id in self._abandoned:
            self._abandoned.discard(ticket.id)
            logger.info("Ignoring late confirmation response for %s", ticket.payload.event_attendance_id)
            return True
        return False

    def _schedule_resume(self, on_resume: Callable[[], None]) -> None:
        def _resume() -> None:
            self._resume_task = None
            on_resume()

        self._resume_task = self._scheduler.call_later(self._auto_resume_ms, _resume)

    @staticmethod
    def _failure_result(error: BaseException, payload: DecodedPayload) -> ConfirmationResult:
        if isinstance(error, ConfirmationError):
            message = str(error) or GENERIC_FAILURE_MESSAGE
        elif isinstance(error, requests.RequestException):
            message = GENERIC_FAILURE_MESSAGE
        else:
            logger.error("Unexpected confirmation failure", exc_info=error)
            message = GENERIC_FAILURE_MESSAGE
        logger.info("Attendance %s not confirmed: %s", payload.event_attendance_id, message)
        return ConfirmationResult(success=False, message=message, payload=payload)
