"""
Channel Transport - HTTP layer beneath the channel client.

The client depends only on ChannelTransport; AiohttpTransport is the
production implementation. Every failure leaves this module as a typed
NetworkError or InvalidResponseError.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import urlencode

import aiohttp

from telemetry_sources.exceptions import (
    InvalidResponseError,
    NetworkError,
    classify_http_error,
)
from telemetry_sources.logging_utils import mask_url


logger = logging.getLogger(__name__)


class ChannelTransport(ABC):
    """Performs one HTTP exchange and returns the decoded JSON body."""
    
    @abstractmethod
    async def get_json(
        self,
        url: str,
        params: dict[str, Any],
        timeout_seconds: float,
        channel_id: Optional[str] = None,
    ) -> Any:
        """
        GET url with query params.
        
        Raises:
            NetworkError: On connection failure, timeout or non-2xx status
            InvalidResponseError: If the body is not JSON
        """
        pass
    
    @abstractmethod
    async def post_json(
        self,
        url: str,
        body: dict[str, Any],
        timeout_seconds: float,
        channel_id: Optional[str] = None,
    ) -> Any:
        """POST a JSON body to url. Same error contract as get_json()."""
        pass
    
    async def close(self) -> None:
        """Release resources."""
        pass


class AiohttpTransport(ChannelTransport):
    """
    aiohttp implementation with a lazily created, reusable session.
    
    A session passed in by the caller is never closed by the transport.
    """
    
    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        user_agent: str = "TelemetrySources/1.0",
    ) -> None:
        self._session = session
        self._owns_session = session is None
        self._user_agent = user_agent
    
    async def get_json(
        self,
        url: str,
        params: dict[str, Any],
        timeout_seconds: float,
        channel_id: Optional[str] = None,
    ) -> Any:
        return await self._request(
            "GET", url, timeout_seconds, channel_id, params=params,
        )
    
    async def post_json(
        self,
        url: str,
        body: dict[str, Any],
        timeout_seconds: float,
        channel_id: Optional[str] = None,
    ) -> Any:
        return await self._request(
            "POST", url, timeout_seconds, channel_id, json_body=body,
        )
    
    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._get_default_headers())
            self._owns_session = True
        return self._session
    
    def _get_default_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": self._user_agent,
        }
    
    async def _request(
        self,
        method: str,
        url: str,
        timeout_seconds: float,
        channel_id: Optional[str],
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Make HTTP request with error handling."""
        session = await self._get_session()
        safe_url = mask_url(f"{url}?{urlencode(params)}" if params else url)
        query = {key: str(value) for key, value in params.items()} if params else None
        
        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                params=query,
                json=json_body,
                timeout=aiohttp.ClientTimeout(total=timeout_seconds),
            ) as response:
                latency_ms = (time.time() - start_time) * 1000
                
                if response.status >= 400:
                    body = await response.text()
                    raise classify_http_error(
                        response.status,
                        body=body[:1000],
                        request_url=safe_url,
                        channel_id=channel_id,
                        retry_after=response.headers.get("Retry-After"),
                    )
                
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise InvalidResponseError(
                        "Response body is not valid JSON",
                        channel_id=channel_id,
                        original_error=e,
                    ) from e
                
                logger.debug(f"[transport] {method} {safe_url} completed in {latency_ms:.1f}ms")
                return data
        
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Request timed out after {timeout_seconds}s",
                channel_id,
                request_url=safe_url,
                original_error=e,
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Connection error: {e}",
                channel_id,
                request_url=safe_url,
                original_error=e,
            ) from e
    
    async def close(self) -> None:
        """Close the session if this transport created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
