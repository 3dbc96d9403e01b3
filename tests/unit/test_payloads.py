"""
Tests for admissions API payload decoding.
"""

import pytest
from pydantic import ValidationError

from vstupcore.extractor import (
    ApiRedirect,
    ApplicantRow,
    ApplicationsPayload,
    ApplicationsRequest,
    decode_application_rows,
)
from vstupcore.extractor.payloads import decode_application_row


@pytest.mark.unit
class TestApplicationsRequest:
    def test_form_fields_from_request_parameter(self):
        request = ApplicationsRequest.from_request_parameter("y24/x/UNI1/SPEC7")
        assert request == ApplicationsRequest(year="24", university_token="UNI1", speciality_token="SPEC7")
        assert request.form_fields() == {"action": "requests", "y": "24", "uid": "UNI1", "sid": "SPEC7", "last": "10"}

    def test_leading_and_trailing_slashes(self):
        request = ApplicationsRequest.from_request_parameter("/y2024/r27/174/1183213/")
        assert request.form_fields(last=25) == {
            "action": "requests",
            "y": "2024",
            "uid": "174",
            "sid": "1183213",
            "last": "25",
        }

    @pytest.mark.parametrize("parameter", [None, "", "bad", "y24/x/UNI1", "//y24//x//", "y/x/UNI1/SPEC7"])
    def test_malformed(self, parameter):
        assert ApplicationsRequest.from_request_parameter(parameter) is None


@pytest.mark.unit
class TestApplicationRows:
    def test_name_and_grade(self):
        assert decode_application_row([1, "a", "b", 2, "  Іван Петренко ", 187.25]) == ApplicantRow("Іван Петренко", 187.25)

    @pytest.mark.parametrize("grade", ["187.5", None, True, [1]])
    def test_non_numeric_grade_defaults_to_zero(self, grade):
        assert decode_application_row([0, 0, 0, 0, "Name", grade]).grade == 0.0

    def test_missing_grade(self):
        assert decode_application_row([0, 0, 0, 0, "Name"]) == ApplicantRow("Name", 0.0)

    def test_integer_grade(self):
        assert decode_application_row([0, 0, 0, 0, "Name", 190]).grade == 190.0

    @pytest.mark.parametrize("row", [[], [0, 0, 0, 0], [0, 0, 0, 0, None, 1.0], [0, 0, 0, 0, "   ", 1.0]])
    def test_rows_without_name_are_skipped(self, row):
        assert decode_application_row(row) is None

    def test_decode_rows_keeps_order(self):
        rows = [[0, 0, 0, 0, "B", 1], [0, 0, 0, 0, ""], [0, 0, 0, 0, "A", 2.5]]
        assert decode_application_rows(rows) == [ApplicantRow("B", 1.0), ApplicantRow("A", 2.5)]


@pytest.mark.unit
class TestPayloadModels:
    def test_redirect_field_is_case_insensitive(self):
        assert ApiRedirect.model_validate({"Url": "/lists/1.json"}).url == "/lists/1.json"
        assert ApiRedirect.model_validate({"URL": "/lists/2.json"}).url == "/lists/2.json"
        assert ApiRedirect.model_validate({}).url is None

    def test_unknown_fields_ignored(self):
        payload = ApplicationsPayload.model_validate({"Requests": [[1]], "Total": 1})
        assert payload.requests == [[1]]

    def test_wrong_shape(self):
        with pytest.raises(ValidationError):
            ApplicationsPayload.model_validate({"requests": [1, 2]})
