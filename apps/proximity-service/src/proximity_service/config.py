from __future__ import annotations

from devkit.config import ServiceSettings, load_settings
from pydantic import Field

SERVICE_NAME = "proximity-service"


class ProximitySettings(ServiceSettings):
    CATALOG_BASE_URL: str | None = None
    CATALOG_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    CATALOG_REFRESH_INTERVAL_SECONDS: float = Field(default=60.0, gt=0)
    CATALOG_MAX_AGE_SECONDS: float = Field(default=180.0, ge=0)

    DIRECTIONS_BASE_URL: str = "https://api.mapbox.com"
    DIRECTIONS_ACCESS_TOKEN: str | None = None
    DIRECTIONS_PROFILE: str = "driving"
    ROUTE_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    ROUTE_RETRY_BACKOFF_SECONDS: float = Field(default=0.2, ge=0)
    ROAD_RANK_LIMIT: int = Field(default=10, ge=1)

    # 0 means any coordinate change counts as movement
    MIN_MOVEMENT_METERS: float = Field(default=0.0, ge=0)
    SHELTER_RADIUS_METERS: float | None = Field(default=50_000.0, ge=0)
    HAZARD_RADIUS_METERS: float | None = Field(default=10_000.0, ge=0)
    SUBSCRIBER_QUEUE_SIZE: int = Field(default=16, ge=1)
    STOPPED_SESSION_RETENTION: int = Field(default=10_000, ge=0)


def load_proximity_settings() -> ProximitySettings:
    return load_settings(SERVICE_NAME, ProximitySettings)
