"""Tests for field-level error formatting."""

import pytest
from pydantic import ValidationError

from structured_client.errors import (
    ErrorType,
    errors_from_exception,
    format_validation_error,
    summarize_errors,
)
from structured_client.providers.base import ServerError, StructuredOutputError

from .conftest import Person


def _validation_error(payload) -> ValidationError:
    with pytest.raises(ValidationError) as exc_info:
        Person.model_validate(payload)
    return exc_info.value


def test_format_validation_error_fields():
    errors = format_validation_error(_validation_error({"name": 42, "age": -1}))

    by_field = {error.field: error for error in errors}
    assert set(by_field) == {"name", "age"}
    assert by_field["name"].code == "string_type"
    assert by_field["name"].value == 42
    assert by_field["name"].message.startswith("name: ")
    assert by_field["age"].code == "greater_than_equal"
    assert by_field["age"].context == {"schema": "Person"}


def test_missing_field():
    errors = format_validation_error(_validation_error({"name": "Ada"}))
    assert [(error.field, error.code) for error in errors] == [("age", "missing")]


def test_root_error_path():
    errors = format_validation_error(_validation_error("not an object"))
    assert errors[0].field == "root"


def test_wrapped_validation_error_keeps_detail():
    try:
        try:
            Person.model_validate({"name": "Ada"})
        except ValidationError as e:
            raise StructuredOutputError("Output does not match Person", "openai") from e
    except StructuredOutputError as wrapped:
        errors = errors_from_exception(wrapped, ErrorType.VALIDATION)

    assert [error.field for error in errors] == ["age"]


def test_other_errors_become_root_entry():
    errors = errors_from_exception(ServerError("503 Service Unavailable", "openai"), ErrorType.SERVER_ERROR)
    assert len(errors) == 1
    assert errors[0].field == "root"
    assert errors[0].code == "server_error"
    assert errors[0].message == "503 Service Unavailable"
    assert errors[0].to_dict() == {
        "field": "root",
        "message": "503 Service Unavailable",
        "code": "server_error",
        "value": None,
    }


def test_summarize_errors():
    summary = summarize_errors(format_validation_error(_validation_error({"name": 1, "age": -5})))
    assert summary["total_errors"] == 2
    assert set(summary["field_errors"]) == {"name", "age"}
    assert summary["summary"] == "Generation failed with 2 errors across 2 fields"
