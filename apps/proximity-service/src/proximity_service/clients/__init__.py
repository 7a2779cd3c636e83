"""Upstream HTTP clients."""

from proximity_service.clients.catalog_client import FacilityCatalogClient
from proximity_service.clients.directions_client import DirectionsClient, ProviderRoute

__all__ = ["DirectionsClient", "FacilityCatalogClient", "ProviderRoute"]
