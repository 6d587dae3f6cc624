"""HTTP transport and the pool of reusable transport instances.

The pool hands out one transport per (contract, base address) key and
creates it lazily on first use. Creation is guarded by double-checked
locking so concurrent first calls for the same key share one instance.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import aiohttp
from yarl import URL

from .errors import TransportError
from .models import RequestDescriptor, ResponseOutcome


class Transport(ABC):
    """Sends one request and reports what came back"""

    @abstractmethod
    async def send(self, request: RequestDescriptor) -> ResponseOutcome:
        """Send a request

        Raises:
            TransportError: If no response was received (network error or timeout)
        """

    async def close(self) -> None:
        pass


class AiohttpTransport(Transport):
    """Transport backed by a single, lazily created aiohttp session

    Args:
        base_address: Base address this transport serves (for logging)
        connection_limit: Maximum simultaneous connections for the session
    """

    def __init__(self, base_address: str = "", connection_limit: int = 100):
        self.base_address = base_address
        self.connection_limit = connection_limit
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=self.connection_limit)
            # Pooled sessions serve many callers; cookies come only from the request descriptor
            self._session = aiohttp.ClientSession(connector=connector, cookie_jar=aiohttp.DummyCookieJar())
        return self._session

    async def send(self, request: RequestDescriptor) -> ResponseOutcome:
        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=request.timeout)
        try:
            async with session.request(
                request.method.value,
                URL(request.url, encoded=True),
                headers=request.headers,
                cookies=request.cookies or None,
                data=request.body,
                timeout=timeout,
            ) as response:
                body = await response.read()
                return ResponseOutcome.from_status(response.status, body, dict(response.headers))
        except asyncio.TimeoutError as e:
            logging.error(
                f"[Transport] {request.method.value} {request.url} timed out after {request.timeout} seconds"
            )
            raise TransportError(e, timeout=True) from e
        except aiohttp.ClientError as e:
            logging.error(f"[Transport] {request.method.value} {request.url} failed: {e}")
            raise TransportError(e) from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


@dataclass(frozen=True)
class PoolKey:
    contract: str
    base_address: str


def default_transport_factory(key: PoolKey) -> Transport:
    return AiohttpTransport(key.base_address)


class TransportPool:
    """Lazily created transports, one per contract and base address

    Args:
        factory: Builds a transport for a key (defaults to AiohttpTransport)
    """

    def __init__(self, factory: Callable[[PoolKey], Transport] = None):
        self.factory = factory or default_transport_factory
        self._transports: Dict[PoolKey, Transport] = {}
        self._lock = asyncio.Lock()
        self.created = 0

    async def get(self, key: PoolKey) -> Transport:
        transport = self._transports.get(key)
        if transport is None:
            async with self._lock:
                transport = self._transports.get(key)
                if transport is None:
                    transport = self.factory(key)
                    self._transports[key] = transport
                    self.created += 1
                    logging.info(f"[TransportPool] Created transport for '{key.contract}' at {key.base_address}")
        return transport

    def __len__(self) -> int:
        return len(self._transports)

    def __contains__(self, key: PoolKey) -> bool:
        return key in self._transports

    async def close(self) -> None:
        """Close and forget every pooled transport"""
        async with self._lock:
            transports = list(self._transports.items())
            self._transports.clear()
        for key, transport in transports:
            try:
                await transport.close()
            except Exception as e:
                logging.warning(f"[TransportPool] Error closing transport for '{key.contract}': {e}")
        if transports:
            logging.info(f"[TransportPool] Closed {len(transports)} transport(s)")


__all__ = [
    "Transport",
    "AiohttpTransport",
    "PoolKey",
    "TransportPool",
    "default_transport_factory",
]
