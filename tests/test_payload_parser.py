import pytest

from checkin_scanner.services.payload_parser import (
    IncompletePayloadError,
    MalformedPayloadError,
    normalize_text,
    parse_and_validate,
    parse_payload,
)


def test_parse_json_payload():
    payload = parse_payload('{"eventAttendanceId":"att-1","checkingInAccountId":"acc-9"}')

    assert payload.event_attendance_id == "att-1"
    assert payload.checking_in_account_id == "acc-9"
    assert payload.is_complete


def test_parse_json_payload_with_alternate_keys_and_numbers():
    payload = parse_payload('{"id": 42, "accountId": 7}')

    assert payload.event_attendance_id == "42"
    assert payload.checking_in_account_id == "7"


def test_parse_separator_payload():
    payload = parse_payload("  att-1:acc-9 \n")

    assert payload.event_attendance_id == "att-1"
    assert payload.checking_in_account_id == "acc-9"
    assert payload.raw_text == "  att-1:acc-9 \n"


def test_bare_attendance_id_is_incomplete():
    payload = parse_payload("att-1")
    assert payload.event_attendance_id == "att-1"
    assert payload.checking_in_account_id is None

    with pytest.raises(IncompletePayloadError) as excinfo:
        parse_and_validate("att-1")
    assert excinfo.value.kind == "IncompletePayload"
    assert excinfo.value.payload.event_attendance_id == "att-1"


def test_missing_account_in_json_is_incomplete():
    with pytest.raises(IncompletePayloadError):
        parse_and_validate('{"eventAttendanceId":"att-1"}')


def test_empty_side_of_separator_is_incomplete():
    with pytest.raises(IncompletePayloadError):
        parse_and_validate(":acc-9")


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        '{"eventAttendanceId": "att-1"',
        '{"unrelated": true}',
        '{"eventAttendanceId": ["att-1"], "checkingInAccountId": "acc-9"}',
        "a:b:c",
    ],
)
def test_malformed_payloads(raw):
    with pytest.raises(MalformedPayloadError) as excinfo:
        parse_payload(raw)
    assert excinfo.value.kind == "MalformedPayload"


def test_json_scalar_is_treated_as_bare_id():
    assert parse_payload("12345").event_attendance_id == "12345"


def test_normalize_text_decodes_bytes():
    assert normalize_text(b" att-1:acc-9 ") == "att-1:acc-9"
    assert normalize_text(b"") == ""
