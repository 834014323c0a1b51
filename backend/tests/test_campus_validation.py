from __future__ import annotations

from datetime import datetime, timezone

import pytest

from backend.campus.errors import CampusError, Conflict, ValidationError, translate_db_error
from backend.campus.validation import (
    as_datetime,
    non_negative_int,
    page_meta,
    pagination,
    parse_day,
    positive_int,
    require_id,
    require_text,
)

VALID_ID = "3f1c2a9e-7b64-4d2e-9c1a-0f5e6d7c8b9a"


def test_require_id_accepts_uuid_and_rejects_garbage():
    assert require_id({"classId": VALID_ID}, "classId") == VALID_ID
    with pytest.raises(ValidationError, match="classId is required"):
        require_id({}, "classId")
    with pytest.raises(ValidationError, match="classId must be a valid id"):
        require_id({"classId": "1; drop table"}, "classId")


def test_require_text_trims_and_bounds():
    assert require_text({"title": "  Sports day "}, "title") == "Sports day"
    with pytest.raises(ValidationError):
        require_text({"title": "   "}, "title")
    with pytest.raises(ValidationError, match="under 5"):
        require_text({"title": "abcdefg"}, "title", max_len=5)


@pytest.mark.parametrize("value", [0, 85, 100.0])
def test_non_negative_int_accepts_integral_numbers(value):
    assert non_negative_int(value, "marksObtained") == int(value)


@pytest.mark.parametrize("value", [-1, 1.5, "85", True, None])
def test_non_negative_int_rejects(value):
    with pytest.raises(ValidationError):
        non_negative_int(value, "marksObtained")


def test_positive_int_rejects_zero():
    with pytest.raises(ValidationError):
        positive_int(0, "maxMarks")


def test_parse_day():
    assert parse_day("2026-03-01") == "2026-03-01"
    assert parse_day(None) == datetime.now(timezone.utc).date().isoformat()
    with pytest.raises(ValidationError):
        parse_day("01/03/2026")


def test_as_datetime_handles_zulu_and_naive_values():
    assert as_datetime("2026-03-01T10:00:00Z") == datetime(2026, 3, 1, 10, tzinfo=timezone.utc)
    assert as_datetime("2026-03-01T10:00:00").tzinfo is not None
    assert as_datetime("not a date") is None


def test_pagination_clamps_and_computes_offset():
    assert pagination(None, None) == (1, 10, 0)
    assert pagination("3", "20") == (3, 20, 40)
    assert pagination("0", "1000") == (1, 100, 0)
    with pytest.raises(ValidationError):
        pagination("first", None)
    assert page_meta(21, 2, 10) == {"total": 21, "page": 2, "limit": 10, "totalPages": 3}


class _DriverError(Exception):
    def __init__(self, sqlstate):
        super().__init__("duplicate key value violates unique constraint marks_pkey")
        self.sqlstate = sqlstate


def test_translate_db_error_uses_sqlstate_and_custom_message():
    err = translate_db_error(_DriverError("23505"), conflict_message="Mark already exists")
    assert isinstance(err, Conflict)
    assert err.to_envelope() == {"success": False, "error": {"message": "Mark already exists", "statusCode": 409}}


def test_translate_db_error_passes_campus_errors_through():
    original = ValidationError("bad")
    assert translate_db_error(original) is original
    assert isinstance(translate_db_error(_DriverError(None)), CampusError)
