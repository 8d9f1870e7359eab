"""
Unit tests for custom exceptions.
"""
from core.exceptions import (
    BudgetToolException,
    ConfigurationError,
    DataNotFoundError,
    ExportError,
    FileProcessingError,
    ParsingError,
    RestoreError,
    SessionBusyError,
    UnsupportedSchemaError,
    ValidationError,
)


def test_base_exception():
    """Test base exception class."""
    exc = BudgetToolException("Test error", details={"key": "value"})
    assert str(exc) == "Test error"
    assert exc.message == "Test error"
    assert exc.details == {"key": "value"}


def test_exception_hierarchy():
    """Test exception inheritance."""
    for cls in (
        FileProcessingError,
        ValidationError,
        ParsingError,
        DataNotFoundError,
        RestoreError,
        ExportError,
        ConfigurationError,
        SessionBusyError,
    ):
        assert issubclass(cls, BudgetToolException)
    assert issubclass(UnsupportedSchemaError, RestoreError)


def test_exception_with_details():
    """Test exception with details dictionary."""
    exc = ParsingError("Unable to read the spreadsheet", details={"file_name": "budget.xlsx", "error": "bad zip"})
    assert exc.message == "Unable to read the spreadsheet"
    assert exc.details["file_name"] == "budget.xlsx"
    assert exc.details["error"] == "bad zip"


def test_exception_without_details():
    """Test exception without details."""
    exc = ExportError("Report failed")
    assert exc.message == "Report failed"
    assert exc.details == {}
