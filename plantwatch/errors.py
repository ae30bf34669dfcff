"""Error types raised by the cache layer and its callers."""

from __future__ import annotations


class PlantWatchError(Exception):
    """Base class for PlantWatch errors."""


class InvalidArgument(PlantWatchError, ValueError):
    """Rejected input (empty key, non-positive TTL, malformed pattern, unknown domain)."""


class ComputationFailed(PlantWatchError):
    """A cache miss recomputation failed; `cause` holds the original exception."""

    def __init__(self, key: str, cause: BaseException) -> None:
        self.key = key
        self.cause = cause
        super().__init__(f"Computation for cache key '{key}' failed: {cause!r}")


class EquipmentNotFound(PlantWatchError, LookupError):
    """No equipment with the requested id exists in the record source."""

    def __init__(self, equipment_id: str) -> None:
        self.equipment_id = equipment_id
        super().__init__(f"Unknown equipment '{equipment_id}'")
