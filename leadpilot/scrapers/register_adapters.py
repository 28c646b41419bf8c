"""Register all source adapters with the factory.

Called during application startup, and by the scheduler before it runs.
"""

from typing import Optional

import structlog

from leadpilot.scrapers.adapters import IdealistaAdapter, ImmobiliareAdapter, ZillowAdapter
from leadpilot.scrapers.factory import AdapterFactory, get_adapter_factory

logger = structlog.get_logger(__name__)

ADAPTERS = [
    ("idealista", IdealistaAdapter),
    ("immobiliare", ImmobiliareAdapter),
    ("zillow", ZillowAdapter),
]


def register_all_adapters(factory: Optional[AdapterFactory] = None) -> AdapterFactory:
    """Register all available adapters.

    Args:
        factory: Factory to populate (default: the global one)

    Returns:
        The populated factory
    """
    factory = factory or get_adapter_factory()

    for platform, adapter_class in ADAPTERS:
        try:
            factory.register_adapter(platform, adapter_class)
        except ValueError as e:
            logger.error(
                "adapter_registration_failed",
                platform=platform,
                error=str(e),
                exc_info=True,
            )

    logger.info(
        "all_adapters_registered",
        count=len(factory.get_registered_platforms()),
        platforms=factory.get_registered_platforms(),
    )
    return factory
