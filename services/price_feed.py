"""USD price lookups against the Jupiter price API."""
import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)


class JupiterPriceFeed:
    """Per-mint USD prices with a short in-memory cache.

    ``get_price`` returns None when the API is unreachable or the mint is
    unknown; callers decide whether that is fatal.
    """

    def __init__(
        self,
        base_url: str = "https://lite-api.jup.ag",
        api_key: Optional[str] = None,
        cache_ttl_sec: float = 60.0,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.cache_ttl_sec = cache_ttl_sec
        self.timeout = timeout
        self._clock = clock
        self._cache: Dict[str, Tuple[Decimal, float]] = {}
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["x-api-key"] = self.api_key
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, headers=headers)
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _cached(self, mint: str) -> Optional[Decimal]:
        entry = self._cache.get(mint)
        if entry is None:
            return None
        price, ts = entry
        if self._clock() - ts > self.cache_ttl_sec:
            return None
        return price

    async def get_price(self, mint: str) -> Optional[Decimal]:
        cached = self._cached(mint)
        if cached is not None:
            return cached
        try:
            response = await self.client.get("/price/v3", params={"ids": mint})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(f"Price API HTTP error {e.response.status_code} for {mint}")
            return None
        except httpx.RequestError as e:
            logger.warning(f"Price API request error for {mint}: {e}")
            return None

        entry = payload.get(mint) if isinstance(payload, dict) else None
        raw = entry.get("usdPrice") if isinstance(entry, dict) else None
        if raw is None:
            logger.debug(f"Price API returned no usdPrice for {mint}")
            return None
        try:
            price = Decimal(str(raw))
        except InvalidOperation:
            logger.warning(f"Price API returned unparsable price {raw!r} for {mint}")
            return None
        if not price.is_finite() or price <= 0:
            return None
        self._cache[mint] = (price, self._clock())
        return price
