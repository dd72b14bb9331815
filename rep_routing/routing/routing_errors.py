"""
Custom exceptions for the routing module.
"""

from typing import Optional


class RoutingError(Exception):
    """Base exception for route geometry failures."""
    pass


class RoutingUnavailableError(RoutingError):
    """Raised when the routing service cannot produce a route."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
