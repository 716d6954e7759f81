from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from .config import PolymarketConfig
from .exceptions import (
    PolymarketAPIError,
    PolymarketNotFoundError,
    PolymarketRateLimitError,
)
from .models import GammaMarket

logger = logging.getLogger(__name__)


class PolymarketClient:
    def __init__(
        self,
        config: PolymarketConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or PolymarketConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> PolymarketClient:
        limits = httpx.Limits(
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            limits=limits,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("Closed PolymarketClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "PolymarketClient must be used as async context manager"
            )
        return self._client

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        retry_count = 0
        last_error: Exception | None = None

        while retry_count < self.config.max_retries:
            try:
                response = await self.client.request(
                    method=method,
                    url=endpoint,
                    params=params,
                    timeout=timeout or self.config.timeout_seconds,
                )

                if response.status_code == 404:
                    raise PolymarketNotFoundError(
                        f"Resource not found: {endpoint}", status_code=404
                    )
                elif response.status_code == 429:
                    wait_time = 2 ** retry_count
                    logger.warning(f"Rate limited, waiting {wait_time}s...")
                    last_error = PolymarketRateLimitError(
                        "Rate limit exceeded", status_code=429
                    )
                    await asyncio.sleep(wait_time)
                    retry_count += 1
                    continue
                elif response.status_code >= 500:
                    wait_time = 2 ** retry_count
                    logger.warning(
                        f"Server error {response.status_code}, "
                        f"retrying in {wait_time}s..."
                    )
                    last_error = PolymarketAPIError(
                        f"Server error {response.status_code}",
                        status_code=response.status_code,
                    )
                    await asyncio.sleep(wait_time)
                    retry_count += 1
                    continue
                elif response.status_code >= 400:
                    raise PolymarketAPIError(
                        f"Request to {endpoint} rejected: {response.status_code}",
                        status_code=response.status_code,
                    )

                return response.json()

            except httpx.TimeoutException as e:
                last_error = e
                retry_count += 1
                if retry_count < self.config.max_retries:
                    logger.warning(f"Timeout, retrying ({retry_count})...")
                    await asyncio.sleep(1)

            except httpx.RequestError as e:
                last_error = e
                logger.error(f"Network error: {e}")
                break

        if isinstance(last_error, PolymarketRateLimitError):
            raise last_error
        raise PolymarketAPIError(
            f"Request failed after {retry_count} retries: {last_error}"
        )

    async def get_market_raw(self, market_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"markets/{market_id}")
        if not isinstance(data, dict):
            raise PolymarketAPIError(f"Unexpected payload for market {market_id}")
        return data

    async def get_market(self, market_id: str) -> GammaMarket:
        return GammaMarket.from_api(await self.get_market_raw(market_id))

    async def get_markets(
        self,
        limit: int = 0,
        active_only: bool = True,
        offset: int = 0,
    ) -> list[GammaMarket]:
        """List markets; a limit of 0 means one full page."""
        params: dict[str, Any] = {
            "limit": limit or self.config.default_page_size,
            "offset": offset,
        }
        if active_only:
            params["closed"] = "false"
            params["active"] = "true"

        data = await self._request(
            "GET",
            "markets",
            params=params,
            timeout=self.config.list_timeout_seconds,
        )
        if isinstance(data, dict):
            data = data.get("data", data.get("markets", []))

        markets: list[GammaMarket] = []
        for item in data or []:
            try:
                markets.append(GammaMarket.from_api(item))
            except ValueError as e:
                logger.warning(f"Skipping unparseable market {item.get('id')}: {e}")
        logger.info(f"Fetched {len(markets)} markets from Polymarket")
        return markets
