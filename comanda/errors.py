# comanda/errors.py
from __future__ import annotations


class ComandaError(Exception):
    """Base class for engine failures surfaced to the caller."""

    status_code = 400


class NotFoundError(ComandaError):
    status_code = 404


class InvalidStateError(ComandaError):
    status_code = 409


class InvalidTransitionError(ComandaError):
    status_code = 409


class InvalidInputError(ComandaError, ValueError):
    """Argument outside the accepted domain (quantity, queue filter)."""

    status_code = 422


class ConsistencyError(ComandaError):
    """Cached order total disagrees with its lines. Always a bug."""

    status_code = 500
