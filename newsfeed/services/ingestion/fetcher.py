"""
Retrieving fetcher: direct request first, then an ordered list of public relays.

Publisher servers are frequently slow, geo-blocked or reject unknown clients,
so every URL is tried against a fixed list of targets until one of them
returns a usable body. There are no retries beyond that list.
"""

import asyncio
import logging
from typing import Optional
from urllib.parse import quote, urlparse

import httpx

from newsfeed.config import FetchSettings
from newsfeed.services.ingestion.base import FetchAttempt, FetchResult
from newsfeed.services.ingestion.errors import FetchAttemptError

logger = logging.getLogger(__name__)


def looks_like_markup(body: bytes) -> bool:
    """True when the body, ignoring a BOM and leading whitespace, starts with '<'."""
    return body.removeprefix(b"\xef\xbb\xbf").lstrip().startswith(b"<")


class RetrievingFetcher:
    """
    Fetches a URL through direct and proxied attempts.

    The client is shared across calls. Pass one in to control transport
    and lifetime (tests use httpx.MockTransport); otherwise the fetcher
    creates its own and closes it in aclose().
    """

    def __init__(
        self,
        settings: Optional[FetchSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or FetchSettings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)

    async def __aenter__(self) -> "RetrievingFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def targets(self, url: str) -> list[tuple[str, str]]:
        """Ordered (request URL, via) pairs for one fetch."""
        targets = []
        if self.settings.direct:
            targets.append((url, "direct"))
        encoded = quote(url, safe="")
        for template in self.settings.proxy_templates:
            targets.append((template.replace("{url}", encoded), urlparse(template).hostname or template))
        return targets

    async def fetch(
        self,
        url: str,
        timeout: Optional[float] = None,
        *,
        expect_markup: bool = True,
    ) -> FetchResult:
        """
        Fetch a URL, walking the target list until one attempt succeeds.

        Args:
            url: Absolute URL to retrieve
            timeout: Per-attempt timeout in seconds (feed timeout by default)
            expect_markup: Require the body to start with '<'

        Returns:
            FetchResult with the body of the first successful attempt, or
            ok=False and every attempt's error joined in error_detail
        """
        timeout = timeout or self.settings.feed_timeout
        attempts: list[FetchAttempt] = []

        for target, via in self.targets(url):
            body, error = await self._attempt(target, timeout, expect_markup)
            attempts.append(FetchAttempt(target=target, via=via, error=error))
            if error is None:
                return FetchResult(body=body, ok=True, attempts=attempts)
            logger.debug(f"Fetch of {url} via {via} failed: {error}")

        result = FetchResult(ok=False, attempts=attempts)
        result.error_detail = ", ".join(result.attempt_errors)
        return result

    async def _attempt(
        self,
        target: str,
        timeout: float,
        expect_markup: bool,
    ) -> tuple[bytes, Optional[FetchAttemptError]]:
        """Run one request. Never raises."""
        try:
            response = await asyncio.wait_for(
                self._client.get(
                    target,
                    headers={"User-Agent": self.settings.user_agent},
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return b"", FetchAttemptError.timeout()
        except Exception as e:
            return b"", FetchAttemptError.unknown(str(e) or type(e).__name__)

        if not response.is_success:
            return b"", FetchAttemptError.http_status(response.status_code)

        body = response.content
        if not body.strip() or (expect_markup and not looks_like_markup(body)):
            return b"", FetchAttemptError.invalid_content()

        return body, None
