from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from checkin_scanner.models import DecodedPayload, Scanning, ScanSession
from checkin_scanner.services.payload_parser import PayloadError, parse_and_validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RoutedScan:
    raw_text: str
    payload: Optional[DecodedPayload] = None
    error: Optional[PayloadError] = None

    @property
    def ok(self) -> bool:
        return self.payload is not None and self.error is None


class DecodeEventRouter:
    """Filter raw decode events before they reach the parser.

    Events are dropped unless the session is scanning, and text equal to the
    session's ``last_scanned_payload`` is dropped until the session clears it.
    """

    def __init__(self, parser: Callable[[str], DecodedPayload] = parse_and_validate) -> None:
        self._parser = parser
        self.dropped_duplicates = 0

    def accepts(self, session: ScanSession, raw_text: str) -> bool:
        if not isinstance(session.state, Scanning):
            return False
        if raw_text == session.last_scanned_payload:
            self.dropped_duplicates += 1
            return False
        return True

    def route(self, session: ScanSession, raw_text: str) -> Optional[RoutedScan]:
        if not self.accepts(session, raw_text):
            return None
        return self.parse(raw_text)

    def parse(self, raw_text: str) -> RoutedScan:
        try:
            payload = self._parser(raw_text)
        except PayloadError as exc:
            logger.info("Rejected QR payload (%s): %s", exc.kind, exc)
            return RoutedScan(raw_text=raw_text, error=exc)
        return RoutedScan(raw_text=raw_text, payload=payload)
