"""HTTP client construction for upstream providers and event exporters."""

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
import structlog


if TYPE_CHECKING:
    from llmchat.config.settings import Settings


logger = structlog.get_logger(__name__)


class HTTPClientFactory:
    """Factory for configured ``httpx.AsyncClient`` instances.

    Clients share one policy for timeouts, connection limits, proxy and SSL
    environment variables, and compression headers.
    """

    @staticmethod
    def create_client(
        *,
        settings: "Settings | None" = None,
        timeout_connect: float = 5.0,
        timeout_read: float = 240.0,
        timeout_write: float = 30.0,
        max_keepalive_connections: int = 100,
        max_connections: int = 1000,
        http2: bool | None = None,
        verify: bool | str = True,
        **kwargs: Any,
    ) -> httpx.AsyncClient:
        """Create an HTTP client.

        Args:
            settings: Optional settings providing HTTP defaults
            timeout_connect: Connection timeout in seconds
            timeout_read: Read timeout in seconds (long for streaming)
            timeout_write: Write timeout in seconds
            max_keepalive_connections: Max keep-alive connections for reuse
            max_connections: Max total concurrent connections
            http2: Enable HTTP/2; defaults to ``settings.http.http2``
            verify: SSL verification (True/False or path to CA bundle)
            **kwargs: Additional httpx.AsyncClient arguments

        Returns:
            Configured httpx.AsyncClient instance
        """
        proxy = _get_proxy_url()

        if isinstance(verify, bool) and verify:
            verify = _get_ssl_context()

        if http2 is None:
            http2 = settings.http.http2 if settings else False

        timeout = httpx.Timeout(
            connect=timeout_connect,
            read=timeout_read,
            write=timeout_write,
            pool=30.0,
        )

        limits = httpx.Limits(
            max_keepalive_connections=max_keepalive_connections,
            max_connections=max_connections,
        )

        transport = httpx.AsyncHTTPTransport(
            limits=limits,
            http2=http2,
            verify=verify,
            proxy=proxy,
        )

        default_headers: dict[str, str] = {}
        if settings is not None:
            if not settings.http.compression_enabled:
                default_headers["accept-encoding"] = "identity"
            elif settings.http.accept_encoding:
                default_headers["accept-encoding"] = settings.http.accept_encoding

        if "headers" in kwargs:
            default_headers.update(kwargs["headers"])
            kwargs["headers"] = default_headers
        elif default_headers:
            kwargs["headers"] = default_headers

        logger.debug(
            "http_client_created",
            timeout_connect=timeout_connect,
            timeout_read=timeout_read,
            max_connections=max_connections,
            http2=http2,
            has_proxy=proxy is not None,
            accept_encoding=default_headers.get("accept-encoding", "httpx default"),
            category="http",
        )

        return httpx.AsyncClient(timeout=timeout, transport=transport, **kwargs)

    @staticmethod
    def create_upstream_client(settings: "Settings") -> httpx.AsyncClient:
        """Client for provider calls; the read timeout covers long streams."""
        return HTTPClientFactory.create_client(
            settings=settings,
            timeout_read=settings.http.stream_read_timeout,
        )

    @staticmethod
    def create_exporter_client(timeout: float = 10.0) -> httpx.AsyncClient:
        """Client for event exporters with a short bounded timeout."""
        return HTTPClientFactory.create_client(
            timeout_connect=min(5.0, timeout),
            timeout_read=timeout,
            timeout_write=timeout,
            max_keepalive_connections=10,
            max_connections=50,
        )

    @staticmethod
    @asynccontextmanager
    async def managed_client(
        settings: "Settings | None" = None, **kwargs: Any
    ) -> AsyncGenerator[httpx.AsyncClient, None]:
        """Create an HTTP client that is closed on exit.

        Example:
            async with HTTPClientFactory.managed_client() as client:
                response = await client.get("https://api.example.com")
        """
        client = HTTPClientFactory.create_client(settings=settings, **kwargs)
        try:
            yield client
        finally:
            await client.aclose()


def _get_proxy_url() -> str | None:
    """Proxy URL from HTTPS_PROXY, ALL_PROXY or HTTP_PROXY."""
    https_proxy = os.environ.get("HTTPS_PROXY") or os.environ.get("https_proxy")
    all_proxy = os.environ.get("ALL_PROXY")
    http_proxy = os.environ.get("HTTP_PROXY") or os.environ.get("http_proxy")

    proxy_url = https_proxy or all_proxy or http_proxy

    if proxy_url:
        logger.debug("proxy_configured", proxy_url=proxy_url, category="http")

    return proxy_url


def _get_ssl_context() -> str | bool:
    """SSL verification from the environment.

    Returns:
        Path to a CA bundle, ``False`` when verification is disabled via
        ``SSL_VERIFY``, otherwise ``True``
    """
    ca_bundle = os.environ.get("REQUESTS_CA_BUNDLE") or os.environ.get("SSL_CERT_FILE")
    ssl_verify = os.environ.get("SSL_VERIFY", "true").lower()

    if ca_bundle and Path(ca_bundle).exists():
        logger.info("ssl_ca_bundle_configured", ca_bundle_path=ca_bundle, category="http")
        return ca_bundle
    elif ssl_verify in ("false", "0", "no"):
        logger.warning(
            "ssl_verification_disabled",
            ssl_verify_value=ssl_verify,
            security_warning=True,
            category="http",
        )
        return False
    else:
        return True
