"""Shared FastAPI dependencies.

Routers resolve collaborators through these functions so tests can swap them
with ``app.dependency_overrides``.
"""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends

from ..config import Settings, settings
from ..core.errors import ConfigurationError
from ..core.registry import NetworkRegistry
from ..core.status.correlator import PacketCorrelator
from ..core.status.poller import StatusTracker
from ..core.status.reconciler import StatusReconciler
from ..providers.aggregator import AggregatorProvider
from ..providers.layerzero_scan import LayerZeroScanProvider


logger = logging.getLogger(__name__)


def get_settings() -> Settings:
    return settings


@lru_cache(maxsize=1)
def _cached_registry() -> NetworkRegistry:
    return NetworkRegistry.from_settings(settings)


def get_registry() -> NetworkRegistry:
    """Raises ``ConfigurationError`` when no network is configured."""
    return _cached_registry()


def get_aggregator() -> Optional[AggregatorProvider]:
    return AggregatorProvider.from_settings(settings)


def get_scanner() -> LayerZeroScanProvider:
    return LayerZeroScanProvider.from_settings(settings)


def get_correlator(registry: NetworkRegistry = Depends(get_registry)) -> PacketCorrelator:
    return PacketCorrelator(registry, timeout_s=settings.request_timeout_seconds)


def _build_reconciler() -> StatusReconciler:
    correlator = None
    if settings.status_use_onchain:
        try:
            correlator = get_correlator(get_registry())
        except ConfigurationError as exc:
            # Aggregator and scanner still work without networks
            logger.warning("On-chain status disabled: %s", exc)
    return StatusReconciler(
        aggregator=get_aggregator(),
        correlator=correlator,
        scanner=get_scanner() if settings.status_use_scanner else None,
    )


_tracker: Optional[StatusTracker] = None


def get_tracker() -> StatusTracker:
    global _tracker
    if _tracker is None:
        _tracker = StatusTracker(
            _build_reconciler,
            interval_seconds=settings.status_poll_seconds,
            max_active=settings.status_max_tracked,
            retention_seconds=settings.status_retention_seconds,
            max_age_seconds=settings.status_max_age_seconds,
        )
    return _tracker


async def shutdown_tracker() -> None:
    if _tracker is not None:
        await _tracker.stop_all()
