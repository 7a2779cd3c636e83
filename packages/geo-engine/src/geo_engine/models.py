from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class InvalidCoordinateError(ValueError):
    """Raised when a latitude/longitude pair is non-finite or out of range."""


def _validate_coordinate(name: str, value: Any, limit: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidCoordinateError(f"{name} must be a number")
    try:
        finite = math.isfinite(value)
    except OverflowError as exc:
        raise InvalidCoordinateError(f"{name} is too large") from exc
    if not finite:
        raise InvalidCoordinateError(f"{name} must be finite")
    if not (-limit <= value <= limit):
        raise InvalidCoordinateError(f"{name} must be between {-limit:g} and {limit:g}")


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def __post_init__(self) -> None:
        _validate_coordinate("lat", self.lat, 90.0)
        _validate_coordinate("lng", self.lng, 180.0)


class FacilityKind(str, Enum):
    SHELTER = "shelter"
    HAZARD_MARKER = "hazard_marker"


@dataclass(frozen=True)
class Facility:
    id: str
    point: GeoPoint
    kind: FacilityKind
    attributes: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        # frozen copy so cached snapshots cannot be mutated through a caller's dict
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))


@dataclass(frozen=True)
class DistanceMeasurement:
    facility_id: str
    meters: float


@dataclass(frozen=True)
class RankedEntry:
    facility: Facility
    measurement: DistanceMeasurement


@dataclass(frozen=True)
class RankedResult:
    entries: tuple[RankedEntry, ...] = ()
    stale: bool = False

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def head(self) -> RankedEntry | None:
        return self.entries[0] if self.entries else None

    def facility_ids(self) -> list[str]:
        return [entry.facility.id for entry in self.entries]
