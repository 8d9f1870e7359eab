"""
Core processing modules for budget expense reporting.

This package contains:
- config: Application configuration and settings
- exceptions: Custom exception classes
- logger: Logging configuration
- normalize: Amount parsing and expense name composition
- identity: Stable expense identifiers
- matching: Header row detection for free-form layouts
- parsing: Workbook reading and template extraction
- schema: Pydantic models for records and the save-state wire format
- session: In-memory expense session aggregate
- exporters: PDF report composition and download naming
- savestate: Shared save-state conversion and codec base class
- savepoint: Zip save-point codec
- progress_pdf: PDF-embedded progress codec
"""
