"""
Address search proxy (Geoapify).
Keeps the API key server-side. Network errors and 5xx responses are retried
three times before the failure is mapped to a client-facing status.
"""

import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional

import httpx

from ..config import GEOAPIFY_BASE_URL, REQUEST_TIMEOUT_SECONDS, USER_AGENT
from .errors import AppError, ConfigurationError, RateLimitedError, UpstreamError, ValidationError
from .retry import request_with_retry

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 2
DEFAULT_LIMIT = 5
MAX_LIMIT = 20
ATTEMPTS = 3


def _clean_text(text: Optional[str]) -> str:
    cleaned = (text or "").strip()
    if len(cleaned) < MIN_TEXT_LENGTH:
        raise ValidationError("Search text must be at least 2 characters long")
    return cleaned


def _map_error_status(status_code: int) -> AppError:
    if status_code == 401:
        return AppError("Authentication failed with geocoding service", status_code=500)
    if status_code == 429:
        return RateLimitedError("Rate limit exceeded. Please try again later.")
    if status_code >= 500:
        return UpstreamError("Geocoding service temporarily unavailable", status_code=503)
    return AppError("Failed to fetch address suggestions", status_code=500)


class GeocodingService:

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = GEOAPIFY_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key or os.environ.get("GEOAPIFY_API_KEY")
        self.base_url = base_url
        self._transport = transport
        self._sleep = sleep

    async def _get(self, path: str, params: dict) -> dict:
        if not self.api_key:
            logger.error("GEOAPIFY_API_KEY is not set")
            raise ConfigurationError("Geocoding service not configured")

        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=self._transport,
        ) as client:
            try:
                response = await request_with_retry(
                    client,
                    "GET",
                    path,
                    attempts=ATTEMPTS,
                    sleep=self._sleep,
                    params={**params, "apiKey": self.api_key},
                )
            except httpx.TimeoutException as e:
                raise AppError("Request timeout. Please try again.", status_code=408) from e
            except httpx.TransportError as e:
                raise UpstreamError("Network error. Please check your connection.", status_code=503) from e

        if response.status_code >= 400:
            logger.error(f"Geoapify {path} returned {response.status_code}")
            raise _map_error_status(response.status_code)

        data = response.json()
        if not isinstance(data, dict) or "features" not in data:
            logger.warning("Invalid response structure from Geoapify")
            raise AppError("Invalid response from geocoding service", status_code=500)

        logger.debug(f"Geoapify {path}: {len(data['features'] or [])} result(s)")
        return data

    async def search(self, text: Optional[str], limit: int = DEFAULT_LIMIT) -> dict:
        """Free-text address search. Returns the GeoJSON FeatureCollection."""
        cleaned = _clean_text(text)
        limit = max(1, min(int(limit or DEFAULT_LIMIT), MAX_LIMIT))
        return await self._get("/v1/geocode/search", {"text": cleaned, "limit": limit})

    async def autocomplete(
        self,
        text: Optional[str],
        limit: Optional[int] = None,
        type: Optional[str] = None,
        countrycode: Optional[str] = None,
    ) -> dict:
        cleaned = _clean_text(text)
        params = {"text": cleaned}
        if limit:
            params["limit"] = max(1, min(int(limit), MAX_LIMIT))
        if type:
            params["type"] = type
        if countrycode:
            params["filter"] = f"countrycode:{countrycode.lower()}"
        return await self._get("/v1/geocode/autocomplete", params)
