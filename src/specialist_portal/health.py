import logging
import re
import time
from typing import Callable, Optional

import httpx

from .config import settings

logger = logging.getLogger(__name__)

ASSET_PATTERN = re.compile(r"\.(css|js|png|jpg|jpeg|gif|ico|woff|woff2)$")


class BackendHealth:
    """Cached reachability probe for the remote API."""

    def __init__(
        self,
        backend_url: str = settings.BACKEND_URL,
        enabled: bool = settings.HEALTH_CHECK_ENABLED,
        cache_seconds: float = settings.HEALTH_CACHE_SECONDS,
        timeout: float = settings.HEALTH_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.backend_url = backend_url.rstrip("/")
        self.enabled = enabled
        self.cache_seconds = cache_seconds
        self.timeout = timeout
        self.clock = clock
        self.transport = transport
        self.is_up = True
        self.last_checked: Optional[float] = None

    @staticmethod
    def should_check(path: str) -> bool:
        return path != "/health" and not ASSET_PATTERN.search(path)

    async def check(self) -> bool:
        if not self.enabled:
            return True

        now = self.clock()
        # Only a healthy result is cached; a down backend is re-probed every time.
        if self.is_up and self.last_checked is not None and now - self.last_checked < self.cache_seconds:
            return True

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.backend_url}/health")
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(f"Backend server is DOWN: {exc}")
            self.is_up = False
            return False

        self.is_up = True
        self.last_checked = now
        return True
