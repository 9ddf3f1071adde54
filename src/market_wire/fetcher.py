"""HTTP GET with failover across independent DNS resolver paths.

Each :class:`NetworkPath` owns its own resolver (a fixed pair of public
nameservers), DNS cache and keep-alive connection pool.  A fetch walks the
paths in order.  Transient network failures (name resolution, reset,
timeout) move on to the next path; an origin that answers with a non-2xx
status is not retried, since a different resolver reaches the same origin.

Sessions are created lazily inside the running event loop.  Use the fetcher
as an async context manager, or call :meth:`ResilientFetcher.close`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

import aiohttp

from .config import DEFAULT_USER_AGENT, Settings
from .errors import FetchError, OriginRejectedError, TransientNetworkError
from .logging_utils import get_logger

log = get_logger("fetcher")

ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# Connection-level failures that a different resolver path may get around.
# ClientConnectorError covers DNS failures (ClientConnectorDNSError on newer
# aiohttp); ServerDisconnectedError and ClientOSError cover resets, and
# ClientPayloadError a reset part-way through the body.
_TRANSIENT = (
    asyncio.TimeoutError,
    aiohttp.ClientConnectorError,
    aiohttp.ServerDisconnectedError,
    aiohttp.ClientOSError,
    aiohttp.ClientPayloadError,
)


@dataclass(frozen=True)
class FetchResult:
    body: str
    final_url: str
    status: int = 200


class FetchPath(Protocol):
    name: str

    async def get(self, url: str) -> FetchResult: ...

    async def close(self) -> None: ...


class NetworkPath:
    def __init__(
        self,
        nameservers: Sequence[str],
        timeout: float = 20.0,
        dns_cache_ttl: int = 60,
        verify_tls: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.nameservers = list(nameservers)
        self.name = ",".join(self.nameservers)
        self.timeout = timeout
        self.dns_cache_ttl = dns_cache_ttl
        self.verify_tls = verify_tls
        self.user_agent = user_agent
        self.session: Optional[aiohttp.ClientSession] = None

    def _open(self) -> aiohttp.ClientSession:
        resolver = aiohttp.AsyncResolver(nameservers=self.nameservers)
        connector = aiohttp.TCPConnector(
            resolver=resolver,
            use_dns_cache=True,
            ttl_dns_cache=self.dns_cache_ttl,
            keepalive_timeout=60,
            ssl=None if self.verify_tls else False,
        )
        return aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={"User-Agent": self.user_agent, "Accept": ACCEPT},
        )

    async def get(self, url: str) -> FetchResult:
        if self.session is None or self.session.closed:
            self.session = self._open()
        try:
            async with self.session.get(url) as resp:
                if not 200 <= resp.status < 300:
                    raise OriginRejectedError(url, resp.status)
                body = await resp.text(errors="replace")
                return FetchResult(body=body, final_url=str(resp.url), status=resp.status)
        except _TRANSIENT as e:
            raise TransientNetworkError(
                url, f"transient_network err={e.__class__.__name__}", e
            ) from e
        except aiohttp.ClientError as e:
            raise FetchError(url, f"request_failed err={e.__class__.__name__}", e) from e

    async def close(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None


class ResilientFetcher:
    def __init__(self, paths: Sequence[FetchPath], max_retries: int = 3):
        self.paths: List[FetchPath] = list(paths)
        self.max_retries = max_retries

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResilientFetcher":
        paths = [
            NetworkPath(
                servers,
                timeout=settings.fetch_timeout_seconds,
                dns_cache_ttl=settings.dns_cache_ttl,
                verify_tls=settings.fetch_verify_tls,
                user_agent=settings.user_agent,
            )
            for servers in settings.resolver_pairs
        ]
        log.info("fetcher_paths count=%d max_retries=%d", len(paths), settings.fetch_max_retries)
        return cls(paths, max_retries=settings.fetch_max_retries)

    async def fetch(self, url: str) -> FetchResult:
        """GET ``url``, trying up to ``min(max_retries, len(paths))`` paths.

        Raises the last :class:`TransientNetworkError` when every attempted
        path failed, or the first non-transient :class:`FetchError`.
        """
        attempts = min(self.max_retries, len(self.paths))
        if attempts <= 0:
            raise FetchError(url, "no_network_paths")

        last_error: Optional[FetchError] = None
        for path in self.paths[:attempts]:
            try:
                result = await path.get(url)
            except TransientNetworkError as e:
                last_error = e
                log.warning(
                    "fetch_path_failed path=%s url=%s err=%s",
                    path.name,
                    url,
                    e.cause.__class__.__name__ if e.cause else "unknown",
                )
                continue
            if last_error is not None:
                log.info("fetch_failover_ok path=%s url=%s", path.name, url)
            return result

        raise last_error or FetchError(url, "fetch_failed")

    async def close(self) -> None:
        for path in self.paths:
            try:
                await path.close()
            except Exception as e:
                log.warning("fetch_path_close_error path=%s err=%s", path.name, str(e))

    async def __aenter__(self) -> "ResilientFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
