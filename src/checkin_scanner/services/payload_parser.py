from __future__ import annotations

import json
import unicodedata
from typing import Any, Mapping, Optional

from checkin_scanner.models import DecodedPayload

SEPARATOR = ":"
ATTENDANCE_KEYS: tuple[str, ...] = ("eventAttendanceId", "id")
ACCOUNT_KEYS: tuple[str, ...] = ("checkingInAccountId", "accountId")


class PayloadError(ValueError):
    """Base class for QR payloads that cannot be confirmed."""

    kind = "PayloadError"

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class MalformedPayloadError(PayloadError):
    """Raised when decoded text matches none of the ticket formats."""

    kind = "MalformedPayload"


class IncompletePayloadError(PayloadError):
    """Raised when a payload parsed but is missing one of its ids."""

    kind = "IncompletePayload"

    def __init__(self, message: str, payload: DecodedPayload) -> None:
        super().__init__(message, payload.raw_text)
        self.payload = payload


def normalize_text(raw: bytes | str) -> str:
    if not raw:
        return ""

    if isinstance(raw, str):
        decoded = raw
    else:
        try:
            decoded = raw.decode("utf-8")
        except UnicodeDecodeError:
            decoded = raw.decode("utf-8", errors="ignore")

    return unicodedata.normalize("NFC", decoded).strip()


def _clean_id(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (str, int)):
        text = str(value).strip()
        return text or None
    raise TypeError(f"Unsupported id value: {value!r}")


def _first_present(data: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if data.get(key) not in (None, ""):
            return data[key]
    return None


def _parse_structured(text: str, raw_text: str) -> Optional[DecodedPayload]:
    try:
        data = json.loads(text)
    except ValueError:
        if text.startswith("{"):
            raise MalformedPayloadError("QR code contains invalid JSON.", raw_text) from None
        return None

    if not isinstance(data, dict):
        return None

    if not any(key in data for key in ATTENDANCE_KEYS + ACCOUNT_KEYS):
        raise MalformedPayloadError("QR code JSON has no attendance fields.", raw_text)

    try:
        attendance_id = _clean_id(_first_present(data, ATTENDANCE_KEYS))
        account_id = _clean_id(_first_present(data, ACCOUNT_KEYS))
    except TypeError as exc:
        raise MalformedPayloadError("QR code JSON has invalid id values.", raw_text) from exc

    return DecodedPayload(
        raw_text=raw_text,
        event_attendance_id=attendance_id,
        checking_in_account_id=account_id,
    )


def parse_payload(raw_text: str) -> DecodedPayload:
    """Parse decoded QR text into a payload.

    Formats are tried in order: a JSON object, ``attendanceId:accountId``,
    then the bare attendance id. Raises ``MalformedPayloadError`` when the
    text fits none of them.
    """

    text = normalize_text(raw_text)
    if not text:
        raise MalformedPayloadError("QR code is empty.", raw_text)

    structured = _parse_structured(text, raw_text)
    if structured is not None:
        return structured

    if SEPARATOR in text:
        parts = [part.strip() for part in text.split(SEPARATOR)]
        if len(parts) != 2:
            raise MalformedPayloadError(
                "QR code must contain exactly one attendance id and one account id.", raw_text
            )
        attendance_id, account_id = parts
        return DecodedPayload(
            raw_text=raw_text,
            event_attendance_id=attendance_id or None,
            checking_in_account_id=account_id or None,
        )

    return DecodedPayload(raw_text=raw_text, event_attendance_id=text)


def validate_payload(payload: DecodedPayload) -> DecodedPayload:
    if not payload.event_attendance_id:
        raise IncompletePayloadError("QR code is missing the attendance id.", payload)
    if not payload.checking_in_account_id:
        raise IncompletePayloadError("QR code is missing the checking-in account id.", payload)
    return payload


def parse_and_validate(raw_text: str) -> DecodedPayload:
    return validate_payload(parse_payload(raw_text))
