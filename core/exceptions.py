"""
Custom exceptions for better error handling.
"""
from typing import Any, Dict, Optional


class BudgetToolException(Exception):
    """Base exception for all budget expense reporting errors."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception.
        
        Args:
            message: Human-readable error message
            details: Additional error details (underlying cause under "error")
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class FileProcessingError(BudgetToolException):
    """Raised when a processing pipeline fails."""
    pass


class ValidationError(BudgetToolException):
    """Raised when caller input is invalid."""
    pass


class ParsingError(BudgetToolException):
    """Raised when a budget workbook cannot be read."""
    pass


class DataNotFoundError(BudgetToolException):
    """Raised when required data is not found."""
    pass


class RestoreError(BudgetToolException):
    """Raised when a saved session cannot be restored."""
    pass


class UnsupportedSchemaError(RestoreError):
    """Raised when a saved payload has an unknown schema version or kind."""
    pass


class ExportError(BudgetToolException):
    """Raised when generating an output document fails."""
    pass


class ConfigurationError(BudgetToolException):
    """Raised when configuration is invalid."""
    pass


class SessionBusyError(BudgetToolException):
    """Raised when a pipeline is requested while another is in flight."""
    pass
