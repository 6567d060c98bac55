"""Errors raised by the dispatch services."""

from contextlib import contextmanager

from django.db import InterfaceError, OperationalError


class DispatchServiceError(Exception):
    """Base class for dispatch service errors."""
    pass


class ConnectivityError(DispatchServiceError):
    """Raised when the store cannot be reached. Nothing from the call is kept."""
    pass


class DispatchNotFoundError(DispatchServiceError):
    """Raised when no dispatch matches a driver/client pair."""
    pass


class NoEligibleEntityError(DispatchServiceError):
    """Raised when an area has no open requests or no available drivers."""
    pass


class ConflictError(DispatchServiceError):
    """Raised when a concurrent dispatch claimed a driver or request first."""
    pass


class UnknownPlaceError(DispatchServiceError):
    """Raised when a request names a place missing from the registry."""
    pass


@contextmanager
def store_errors():
    """Re-raise database connectivity failures as ConnectivityError."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        raise ConnectivityError(f"Store unavailable: {exc}") from exc
