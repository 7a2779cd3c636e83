from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from geo_engine.distance import haversine_distance_meters
from geo_engine.models import GeoPoint, InvalidCoordinateError

from proximity_service.errors import InvalidSampleError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionSample:
    lat: float
    lng: float
    accuracy_meters: float | None = None
    timestamp: datetime | None = None


@dataclass(frozen=True)
class ObserverState:
    last_known_point: GeoPoint
    last_updated_at: datetime
    accuracy_meters: float | None = None


@dataclass(frozen=True)
class LocationChanged:
    state: ObserverState
    sequence: int


LocationListener = Callable[[LocationChanged], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocationStreamAdapter:
    """Turns a noisy stream of position samples into ``LocationChanged`` events.

    Writers are serialized by a lock and the observer state is an immutable
    value replaced wholesale, so readers never see a half-updated point.
    Listeners run under the same lock, which keeps event delivery in
    acceptance order.
    """

    def __init__(
        self,
        min_movement_meters: float = 0.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if min_movement_meters < 0 or not math.isfinite(min_movement_meters):
            raise ValueError("min_movement_meters must be a finite value >= 0")
        self._min_movement_meters = min_movement_meters
        self._clock = clock
        self._lock = threading.Lock()
        self._state: ObserverState | None = None
        self._sequence = 0
        self._listeners: list[LocationListener] = []

    @property
    def state(self) -> ObserverState | None:
        return self._state

    @property
    def sequence(self) -> int:
        return self._sequence

    def latest(self) -> LocationChanged | None:
        """Most recent accepted location with its sequence, read as one value."""
        with self._lock:
            if self._state is None:
                return None
            return LocationChanged(state=self._state, sequence=self._sequence)

    def add_listener(self, listener: LocationListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: LocationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def submit(self, sample: PositionSample) -> bool:
        point = self._validate(sample)
        timestamp = sample.timestamp or self._clock()
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        with self._lock:
            current = self._state
            if current is not None and not self._is_meaningful(current, point, timestamp):
                return False
            state = ObserverState(
                last_known_point=point,
                last_updated_at=timestamp,
                accuracy_meters=sample.accuracy_meters,
            )
            self._state = state
            self._sequence += 1
            event = LocationChanged(state=state, sequence=self._sequence)
            logger.debug(
                "location_accepted",
                extra={"component": "location", "sequence": event.sequence, "lat": point.lat, "lng": point.lng},
            )
            for listener in list(self._listeners):
                listener(event)
        return True

    def reset(self) -> None:
        with self._lock:
            self._state = None

    def _validate(self, sample: PositionSample) -> GeoPoint:
        try:
            point = GeoPoint(lat=sample.lat, lng=sample.lng)
        except InvalidCoordinateError as exc:
            raise InvalidSampleError(str(exc)) from exc
        accuracy = sample.accuracy_meters
        if accuracy is not None:
            if isinstance(accuracy, bool) or not isinstance(accuracy, (int, float)):
                raise InvalidSampleError("accuracy_meters must be a number")
            try:
                finite = math.isfinite(accuracy)
            except OverflowError as exc:
                raise InvalidSampleError("accuracy_meters is too large") from exc
            if not finite or accuracy < 0:
                raise InvalidSampleError("accuracy_meters must be a finite value >= 0")
        return point

    def _is_meaningful(self, current: ObserverState, point: GeoPoint, timestamp: datetime) -> bool:
        if timestamp < current.last_updated_at:
            logger.debug("location_out_of_order", extra={"component": "location"})
            return False
        previous = current.last_known_point
        if self._min_movement_meters == 0:
            return point != previous
        return haversine_distance_meters(previous, point) > self._min_movement_meters
