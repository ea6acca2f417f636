"""Test assertion helpers."""

import pytest
from assertions import assert_schema_status, extract_response_data

from models import DatabaseSchemaStatus


def test_extract_response_data_invalid_type() -> None:
    """Test that extract_response_data raises TypeError for invalid input."""
    with pytest.raises(TypeError, match="Expected CallToolResult with content"):
        extract_response_data("invalid_input")


def test_extract_response_data_invalid_list() -> None:
    """Test that extract_response_data raises TypeError for a bare content list."""
    with pytest.raises(TypeError, match="Expected CallToolResult with content"):
        extract_response_data([])


def test_assert_schema_status_checks_validity() -> None:
    """Test that a status claiming validity with missing fields is rejected."""
    inconsistent = DatabaseSchemaStatus(is_valid=True, missing_fields=["Date"])
    with pytest.raises(AssertionError):
        assert_schema_status(inconsistent, missing_fields=["Date"])
