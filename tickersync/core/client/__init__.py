"""Remote API client."""

from tickersync.core.client.fetch import FetchClient

__all__ = ["FetchClient"]
