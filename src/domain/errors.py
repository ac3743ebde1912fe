"""
Error taxonomy for route computation and map rendering.

Every error carries a user-facing message and a ``retryable`` flag so the
API layer can offer a retry action where one makes sense (route
calculation, map load) without having to know each error type.
"""

from __future__ import annotations

from typing import Optional


class RouteServiceError(Exception):
    """Base class for all domain errors."""

    retryable: bool = False

    def __init__(self, message: str, *, retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class InvalidDistance(RouteServiceError):
    """Normalised distance is not a positive number."""


class InvalidCostInput(RouteServiceError):
    """Distance or cost per km is not positive."""


class RouteUnavailable(RouteServiceError):
    """The routing backend could not produce a route."""

    retryable = True


class NoValidWaypoints(RouteServiceError):
    """Every waypoint lacked a resolved place identifier."""


class PlaceResolutionFailed(RouteServiceError):
    """Place autocomplete or details lookup failed."""

    retryable = True


class MapRenderFailed(RouteServiceError):
    """Both static map providers failed to deliver an image."""

    retryable = True


class ValidationFailed(RouteServiceError):
    """Field-scoped validation errors; never clears entered data."""

    def __init__(self, errors: dict[str, str], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = dict(errors)


class InvalidStateTransition(Exception):
    """Raised when a state change violates a state machine."""


class RoutingBackendError(Exception):
    """Transport or payload error talking to the routing backend."""


class MapImageLoadError(Exception):
    """A static map image could not be loaded from its provider."""
