"""
Service layer for business logic.

This package contains the session service that orchestrates budget
loading, attachment handling, report generation and save points.
"""
