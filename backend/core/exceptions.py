"""
Custom Exception Classes for the DistrictRadar API.

Provides standardized HTTP exceptions with consistent error messages
across all API endpoints.
"""
from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Exception raised when a requested resource is not found."""

    def __init__(self, resource: str, id: str = None):
        detail = f"{resource} not found" + (f": {id}" if id else "")
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ValidationError(HTTPException):
    """Exception raised when request validation fails."""

    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


class ServiceUnavailableError(HTTPException):
    """Exception raised when an upstream dependency cannot serve the request."""

    def __init__(self, message: str = "Ranking unavailable. Please try again later."):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)
