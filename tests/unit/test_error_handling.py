"""
Unit tests for the error hierarchy and JSON error responses.
"""

import json

import pytest

from docsmith.utils.error_handling import (
    ConversionFailedError,
    ErrorCode,
    InvalidDocumentError,
    InvalidOptionError,
    NotAcceptableError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
    WorkspaceError,
    create_error_response,
    error_response_for,
)


def body(response):
    return json.loads(response.body)


@pytest.mark.parametrize("error, status", [
    (UnsupportedMediaTypeError("text/plain"), 415),
    (InvalidDocumentError("application/rtf"), 415),
    (InvalidOptionError("language", "bad"), 400),
    (NotAcceptableError("application/json"), 406),
    (PayloadTooLargeError(10), 413),
    (ConversionFailedError("tool crashed"), 500),
    (WorkspaceError("disk full"), 500),
])
def test_status_codes(error, status):
    assert error.status_code == status
    assert error_response_for(error).status_code == status


def test_create_error_response_format():
    response = create_error_response(ErrorCode.INVALID_PARAMETER, "bad value", field="language")
    data = body(response)

    assert response.status_code == 400
    assert data["error"] == "INVALID_PARAMETER"
    assert data["message"] == "bad value"
    assert data["status_code"] == 400
    assert data["severity"] == "low"
    assert data["field"] == "language"
    assert data["timestamp"].endswith("Z")


def test_unsupported_media_type_names_detected_type():
    data = body(error_response_for(UnsupportedMediaTypeError("application/pdf")))
    assert data["message"] == "Unsupported Media Type: application/pdf"
    assert data["detected"] == "application/pdf"


def test_missing_payload():
    assert UnsupportedMediaTypeError(None).detected == "missing"


def test_server_errors_hide_details(caplog):
    error = ConversionFailedError(
        "pdftotext failed with return code 99",
        command=["/usr/bin/pdftotext", "/tmp/docsmith/docsmith_pdf-to-txt_abc.pdf", "-"],
    )

    with caplog.at_level("ERROR", logger="docsmith"):
        response = error_response_for(error)

    text = response.body.decode()
    assert response.status_code == 500
    assert body(response)["message"] == "Document conversion failed"
    assert "/usr/bin" not in text
    assert "pdftotext" not in text
    assert "return code 99" in caplog.text


def test_rejected_declared_type_is_not_reported_as_detected():
    error = UnsupportedMediaTypeError(declared="application/json")
    data = body(error_response_for(error))

    assert error.detected is None
    assert data["message"] == "Unsupported Media Type: declared application/json"
    assert data["declared"] == "application/json"
    assert "detected" not in data
