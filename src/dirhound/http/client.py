"""
Request clients - the only network capability the scan engine needs.

RequestClient is the abstract "send request, get outcome or error"
interface. AiohttpClient implements it on top of a pooled aiohttp session
with fixed auth, proxy and timeout, plus an optional retry wrapper.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional

import aiohttp
import structlog

from ..core.config import DEFAULT_USER_AGENT, AuthConfig, ScanConfig
from ..core.errors import TransportError
from ..core.models import ProbeOutcome


class RequestClient(ABC):
    """
    Abstract request capability.

    Implementations send one GET request and return a ProbeOutcome, or
    raise TransportError if no response could be obtained.
    """

    @abstractmethod
    async def send(self, url: str, headers: Dict[str, str]) -> ProbeOutcome:
        """
        Send a request.

        Args:
            url: Absolute request URL
            headers: Per-request headers (already rotated)

        Returns:
            Outcome of the request

        Raises:
            TransportError: If the request failed at the network level
        """
        pass

    async def close(self):
        """Release network resources"""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


class AiohttpClient(RequestClient):
    """
    RequestClient backed by aiohttp.

    Retries (off by default) cover transport errors, 429 and 5xx responses
    with a linear back-off of `retry_delay * attempt` seconds.

    Example:
        >>> async with AiohttpClient(timeout=5, proxy="http://127.0.0.1:8080") as client:
        ...     outcome = await client.send("https://example.com/admin", {})
    """

    def __init__(
        self,
        timeout: float = 5.0,
        proxy: Optional[str] = None,
        auth: Optional[AuthConfig] = None,
        verify_tls: bool = True,
        follow_redirects: bool = False,
        cookie_jar: bool = False,
        retries: int = 0,
        retry_delay: float = 1.0,
        connections: int = 20,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        """
        Initialize the client.

        Args:
            timeout: Total timeout per request in seconds
            proxy: HTTP proxy URL
            auth: Credentials sent with every request
            verify_tls: Verify server certificates
            follow_redirects: Follow 3xx responses instead of reporting them
            cookie_jar: Keep cookies set by the server and send them back
            retries: Extra attempts for failed requests
            retry_delay: Base back-off between attempts in seconds
            connections: Connection pool size
            user_agent: Default User-Agent (overridden by rotated headers)
        """
        self.timeout = timeout
        self.proxy = proxy
        self.auth = auth or AuthConfig()
        self.verify_tls = verify_tls
        self.follow_redirects = follow_redirects
        self.cookie_jar = cookie_jar
        self.retries = retries
        self.retry_delay = retry_delay
        self.connections = connections
        self.user_agent = user_agent

        self.session: Optional[aiohttp.ClientSession] = None
        self._basic_auth: Optional[aiohttp.BasicAuth] = None
        self._auth_headers: Dict[str, str] = {}

        if self.auth.basic:
            username, password = self.auth.basic.split(":", 1)
            self._basic_auth = aiohttp.BasicAuth(username, password)
        elif self.auth.bearer:
            self._auth_headers["Authorization"] = f"Bearer {self.auth.bearer}"
        elif self.auth.header:
            self._auth_headers["Authorization"] = self.auth.header

        self.request_count = 0
        self.retry_count = 0

        self.logger = structlog.get_logger(__name__)

    @classmethod
    def from_config(cls, config: ScanConfig) -> "AiohttpClient":
        return cls(
            timeout=config.timeout,
            proxy=config.proxy,
            auth=config.auth,
            verify_tls=config.verify_tls,
            follow_redirects=config.follow_redirects,
            cookie_jar=config.cookie_jar,
            retries=config.retries,
            connections=config.threads,
        )

    async def start(self):
        """Create the pooled session"""
        if self.session is not None:
            return

        connector = aiohttp.TCPConnector(
            limit=self.connections,
            ssl=self.verify_tls,
            ttl_dns_cache=300,
        )
        # unsafe=True also keeps cookies from targets addressed by IP
        jar = aiohttp.CookieJar(unsafe=True) if self.cookie_jar else aiohttp.DummyCookieJar()
        self.session = aiohttp.ClientSession(
            connector=connector,
            cookie_jar=jar,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={"User-Agent": self.user_agent},
        )
        self.logger.debug(
            "http_session_started",
            connections=self.connections,
            proxy=self.proxy,
            verify_tls=self.verify_tls,
            cookie_jar=self.cookie_jar,
        )

    async def close(self):
        if self.session is not None:
            await self.session.close()
            self.session = None

    async def __aenter__(self):
        await self.start()
        return self

    async def send(self, url: str, headers: Dict[str, str]) -> ProbeOutcome:
        if self.session is None:
            await self.start()

        request_headers = {**headers, **self._auth_headers}

        for attempt in range(self.retries + 1):
            self.request_count += 1
            start_time = time.perf_counter()
            try:
                async with self.session.get(
                    url,
                    headers=request_headers,
                    proxy=self.proxy,
                    auth=self._basic_auth,
                    allow_redirects=self.follow_redirects,
                ) as response:
                    body = await response.read()
                    status = response.status
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                reason = str(e) or e.__class__.__name__
                if attempt < self.retries:
                    await self._retry_pause(url, attempt, reason)
                    continue
                raise TransportError(url, reason) from e

            elapsed = time.perf_counter() - start_time

            if (status == 429 or status >= 500) and attempt < self.retries:
                await self._retry_pause(url, attempt, f"status {status}")
                continue

            return ProbeOutcome.from_body(status, body, elapsed)

        # range() always yields at least one attempt
        raise TransportError(url, "Max retries exceeded")

    async def _retry_pause(self, url: str, attempt: int, reason: str):
        self.retry_count += 1
        delay = self.retry_delay * (attempt + 1)
        self.logger.debug("request_retry", url=url, attempt=attempt + 1, reason=reason, delay=delay)
        await asyncio.sleep(delay)

    def get_statistics(self) -> Dict[str, int]:
        return {
            "requests": self.request_count,
            "retries": self.retry_count,
        }
