"""Factory for creating and managing source adapter instances."""

from typing import Dict, Optional, Type

import httpx
import structlog

from leadpilot.config import settings
from leadpilot.core.retry import ResilientCaller
from leadpilot.scrapers.base import BaseSourceAdapter
from leadpilot.scrapers.utils import PolitenessPacer


logger = structlog.get_logger(__name__)



class AdapterFactory:
    """Factory for creating and configuring adapter instances.

    Injects the shared politeness pacer, ResilientCaller and HTTP client
    into every adapter it creates.
    """

    def __init__(
        self,
        pacer: Optional[PolitenessPacer] = None,
        caller: Optional[ResilientCaller] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the adapter factory.

        Args:
            pacer: Shared per-domain pacer (default: scaled by POLITENESS_SCALE)
            caller: Shared ResilientCaller for page fetches
            http_client: Shared httpx client; created lazily when omitted
        """
        self.pacer = pacer or PolitenessPacer()
        self.caller = caller or ResilientCaller(
            timeout=settings.SCRAPE_TIMEOUT_SECONDS,
            max_retries=settings.SCRAPE_MAX_RETRIES,
        )
        self.http_client = http_client
        self._owns_client = http_client is None

        # Registry of adapter classes
        self._adapter_registry: Dict[str, Type[BaseSourceAdapter]] = {}

    def register_adapter(self, platform: str, adapter_class: Type[BaseSourceAdapter]) -> None:
        """Register an adapter class for a platform.

        Args:
            platform: Platform identifier (e.g., "idealista")
            adapter_class: Adapter class (must inherit from BaseSourceAdapter)
        """
        if not issubclass(adapter_class, BaseSourceAdapter):
            raise ValueError(f"Adapter class must inherit from BaseSourceAdapter: {adapter_class}")

        self._adapter_registry[platform] = adapter_class
        logger.debug("adapter_registered", platform=platform, adapter_class=adapter_class.__name__)

    def _get_http_client(self) -> httpx.AsyncClient:
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=httpx.Timeout(settings.SCRAPE_TIMEOUT_SECONDS),
            )
        return self.http_client

    def create_adapter(self, platform: str) -> Optional[BaseSourceAdapter]:
        """Create and configure an adapter instance.

        Args:
            platform: Platform identifier

        Returns:
            Configured adapter instance, or None if no adapter exists for it
        """
        adapter_class = self._adapter_registry.get(platform)
        if not adapter_class:
            logger.warning("adapter_not_found", platform=platform)
            return None

        adapter = adapter_class()

        # Inject dependencies
        adapter.pacer = self.pacer
        adapter.caller = self.caller
        adapter.http_client = self._get_http_client()

        return adapter

    def resolve_for_url(self, url: str) -> Optional[BaseSourceAdapter]:
        """Create the adapter whose domains match a listing URL.

        Args:
            url: Listing or search URL

        Returns:
            Configured adapter, or None if no registered adapter handles the host
        """
        for platform, adapter_class in self._adapter_registry.items():
            if adapter_class.matches_url(url):
                return self.create_adapter(platform)
        logger.warning("adapter_not_found_for_url", url=url)
        return None

    def get_registered_platforms(self) -> list[str]:
        """Get list of registered platform identifiers."""
        return list(self._adapter_registry.keys())

    async def close(self) -> None:
        """Close the shared HTTP client if this factory created it."""
        if self.http_client is not None and self._owns_client:
            await self.http_client.aclose()
            self.http_client = None


# Global factory instance
adapter_factory = AdapterFactory()


def get_adapter_factory() -> AdapterFactory:
    """Get the global adapter factory instance."""
    return adapter_factory
