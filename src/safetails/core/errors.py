"""
Error taxonomy for proximity queries.

- `InputError`: bad coordinates / radius / pagination. Raised before any store call (HTTP 400).
- `GeoIndexUnavailable`: the store cannot evaluate a spatial predicate. The query
  service recovers by re-running without the spatial clause.
- `StoreUnavailable`: connection failures and timeouts (HTTP 500). Never retried here.
"""

from __future__ import annotations


class SafeTailsError(Exception):
    """Base class for errors raised by this package."""


class InputError(SafeTailsError, ValueError):
    """Client supplied an invalid query parameter."""


class InvalidCoordinates(InputError):
    """Longitude/latitude missing, non-finite or out of range."""


class GeoIndexUnavailable(SafeTailsError):
    """Spatial predicate could not be evaluated (missing or broken geo index)."""


class StoreUnavailable(SafeTailsError):
    """Document store unreachable or the query timed out."""
