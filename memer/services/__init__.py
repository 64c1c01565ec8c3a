"""Services that orchestrate refreshing and delivery."""

from memer.services.delivery_service import (
    Delivered,
    DeliveryService,
    NothingToDeliver,
    RateLimited,
    UnknownGroupError,
)
from memer.services.engine import Engine
from memer.services.refresh_service import RefreshCoordinator

__all__ = [
    "Delivered",
    "DeliveryService",
    "Engine",
    "NothingToDeliver",
    "RateLimited",
    "RefreshCoordinator",
    "UnknownGroupError",
]
