"""
HTTP exchange used by the resolvers and the pagination engine.

Anything with an ``async exchange(request) -> bytes`` method that raises
``NetworkError`` on failure can stand in for ``AiohttpTransport``.
Cancellation is plain asyncio task cancellation: cancelling the calling
task aborts the in-flight request.
"""

import logging
from dataclasses import dataclass, field
from typing import Protocol

import aiohttp

from config import settings
from scrapers.errors import NetworkError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    url: str
    headers: dict = field(default_factory=dict)
    body: dict | None = None


class Transport(Protocol):
    async def exchange(self, request: RequestDescriptor) -> bytes: ...


class AiohttpTransport:
    """Transport over a shared ``aiohttp.ClientSession``.

    Safe for concurrent use by independent calls. Owns the session only
    when it created it.
    """

    def __init__(self, session: aiohttp.ClientSession | None = None, timeout: float | None = None):
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout or settings.REQUEST_TIMEOUT)

    async def __aenter__(self):
        self._ensure_session()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=10, keepalive_timeout=30)
            self._session = aiohttp.ClientSession(
                headers={
                    "User-Agent": settings.USER_AGENT,
                    "Accept-Language": "en-US,en;q=0.9",
                },
                connector=connector,
            )
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def exchange(self, request: RequestDescriptor) -> bytes:
        session = self._ensure_session()
        try:
            async with session.request(
                request.method, request.url,
                json=request.body, headers=request.headers,
                timeout=self._timeout,
            ) as resp:
                if resp.status == 429:
                    logger.warning("Rate limited by %s", request.url)
                if not 200 <= resp.status < 300:
                    raise NetworkError(request.url, resp.status)
                return await resp.read()
        except aiohttp.ClientError as e:
            raise NetworkError(request.url, message=str(e) or type(e).__name__) from e
        except TimeoutError as e:
            raise NetworkError(request.url, message="request timed out") from e
