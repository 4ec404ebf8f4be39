# tests/test_exceptions.py
"""Tests for the error hierarchy."""
from enote.exceptions import (
    ConfigurationError,
    ENoteError,
    ErrorCode,
    InternalError,
    StorageError,
    ValidationError,
)


def test_to_dict():
    error = ValidationError("Page 9 is out of range", field="page_index", code=ErrorCode.INVALID_PAGE_PARAM)
    assert error.to_dict() == {
        "error": "ValidationError",
        "code": 7002,
        "code_name": "INVALID_PAGE_PARAM",
        "message": "Page 9 is out of range",
        "details": {"field": "page_index"},
    }


def test_str_includes_code_and_details():
    error = ValidationError("Title is too long", field="title")
    assert str(error) == "[VALIDATION_FAILED] Title is too long (field=title)"
    assert str(ENoteError("plain")) == "[VALIDATION_FAILED] plain"


def test_validation_value_is_truncated():
    error = ValidationError("bad", field="content", value="x" * 500)
    assert len(error.details["value"]) == 100


def test_non_sensitive_response_keeps_message():
    response = ValidationError("Title is too long", field="title").to_response()
    assert response == {
        "code": 7001,
        "codeName": "VALIDATION_FAILED",
        "message": "Title is too long",
        "details": {"field": "title"},
    }


def test_sensitive_response_is_masked():
    error = StorageError(
        "Failed to create note",
        operation="create note",
        code=ErrorCode.STORAGE_WRITE_FAILED,
        original_error=RuntimeError("database is locked"),
    )

    masked = error.to_response()
    exposed = error.to_response(debug=True)

    assert masked["message"] == StorageError.public_message
    assert masked["details"] is None
    assert masked["code"] == 4002
    assert exposed["message"] == "Failed to create note"
    assert exposed["details"]["original_error"] == "database is locked"


def test_sensitive_types():
    assert StorageError("x").is_sensitive
    assert ConfigurationError("x").is_sensitive
    assert InternalError("x").is_sensitive
    assert not ValidationError("x").is_sensitive


def test_internal_error_code():
    error = InternalError("boom", original_error=KeyError("k"))
    assert error.code == ErrorCode.INTERNAL_ERROR
    assert "k" in error.details["original_error"]
