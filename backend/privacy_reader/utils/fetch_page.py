"""Download a page by URL, choosing between plain HTTP and a headless browser.

Sites known to render their policies client-side (or to block plain HTTP
clients) go straight to the browser; everything else tries HTTP first and
falls back to the browser exactly once.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Literal, Protocol

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from privacy_reader.cache import HTML_NAMESPACE, PolicyCache, cache_key
from privacy_reader.core.errors import FetchError
from privacy_reader.utils.url_utils import get_hostname, host_matches, validate_url

logger = logging.getLogger(__name__)

FetchMethod = Literal["auto", "http", "browser"]

COMPLEX_DOMAINS: tuple[str, ...] = (
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "linkedin.com",
    "tiktok.com",
    "snapchat.com",
)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)

BROWSER_HEADERS: dict[str, str] = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
    "Referer": "https://www.google.com/",
}

# Markers of interstitial / challenge pages served instead of the real document.
_BLOCK_PATTERNS = re.compile(
    r"(cf-browser-verification|challenge-platform|cf-chl-|attention required! \| cloudflare"
    r"|<title>\s*access denied\s*</title>|please enable javascript and cookies to continue"
    r"|are you a robot|g-recaptcha|h-captcha|px-captcha|distil_r_captcha)",
    re.IGNORECASE,
)

VIEWPORT = {"width": 1366, "height": 768}
SETTLE_DELAY_MS = 1_000
SCROLL_STEP_PX = 100
SCROLL_INTERVAL_MS = 100
MAX_SCROLL_STEPS = 300

_STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
window.chrome = window.chrome || { runtime: {} };
"""

_AUTO_SCROLL_SCRIPT = """
async ([step, interval, maxSteps]) => {
    await new Promise((resolve) => {
        let total = 0;
        let steps = 0;
        const timer = setInterval(() => {
            const scrollHeight = document.body ? document.body.scrollHeight : 0;
            window.scrollBy(0, step);
            total += step;
            steps += 1;
            if (total >= scrollHeight - window.innerHeight || steps >= maxSteps) {
                clearInterval(timer);
                resolve();
            }
        }, interval);
    });
}
"""


@dataclass
class FetchResult:
    url: str
    html: str
    method: str
    status: int | None = None
    from_cache: bool = False


class FetchStrategy(Protocol):
    name: str

    async def fetch(self, url: str) -> tuple[str, int | None]:
        """Return ``(html, status)`` or raise FetchError."""
        ...


def looks_blocked(html: str) -> bool:
    """True when the body looks like an anti-bot challenge rather than content."""
    return bool(_BLOCK_PATTERNS.search(html[:20_000]))


class HttpFetchStrategy:
    """Plain GET with a realistic browser header set."""

    name = "http"

    def __init__(
        self,
        *,
        timeout: float = 15.0,
        max_redirects: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_redirects = max_redirects
        self._transport = transport

    async def fetch(self, url: str) -> tuple[str, int | None]:
        try:
            async with httpx.AsyncClient(
                headers=BROWSER_HEADERS,
                timeout=self._timeout,
                follow_redirects=True,
                max_redirects=self._max_redirects,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeError) as e:
            raise FetchError(f"HTTP fetch failed: {e}", url=url) from e

        if response.status_code >= 400:
            raise FetchError(
                f"HTTP fetch failed with status {response.status_code}",
                url=url,
                status=response.status_code,
            )
        body = response.text
        if not body.strip():
            raise FetchError("HTTP fetch returned an empty body", url=url, status=response.status_code)
        if looks_blocked(body):
            raise FetchError("HTTP fetch was blocked by an anti-bot challenge", url=url, status=response.status_code)
        return body, response.status_code


class BrowserFetchStrategy:
    """Headless Chromium with automation fingerprints masked; scrolls to trigger lazy content."""

    name = "browser"

    def __init__(self, *, timeout: float = 30.0, settle_delay_ms: int = SETTLE_DELAY_MS) -> None:
        self._timeout_ms = int(timeout * 1000)
        self._settle_delay_ms = settle_delay_ms

    async def fetch(self, url: str) -> tuple[str, int | None]:
        try:
            async with async_playwright() as p:
                browser = await p.chromium.launch(
                    headless=True,
                    args=[
                        "--no-sandbox",
                        "--disable-setuid-sandbox",
                        "--disable-gpu",
                        "--disable-dev-shm-usage",
                        "--disable-accelerated-2d-canvas",
                        "--disable-blink-features=AutomationControlled",
                    ],
                )
                try:
                    context = await browser.new_context(
                        user_agent=USER_AGENT,
                        viewport=VIEWPORT,
                        locale="en-US",
                        java_script_enabled=True,
                        extra_http_headers={
                            "Accept-Language": BROWSER_HEADERS["Accept-Language"],
                            "Referer": BROWSER_HEADERS["Referer"],
                        },
                    )
                    await context.add_init_script(_STEALTH_INIT_SCRIPT)
                    page = await context.new_page()
                    response = await page.goto(url, wait_until="networkidle", timeout=self._timeout_ms)
                    await page.wait_for_timeout(self._settle_delay_ms)
                    await page.evaluate(_AUTO_SCROLL_SCRIPT, [SCROLL_STEP_PX, SCROLL_INTERVAL_MS, MAX_SCROLL_STEPS])
                    content = await page.content()
                finally:
                    await browser.close()
        except PlaywrightError as e:
            raise FetchError(f"Browser fetch failed: {e}", url=url) from e

        status = response.status if response is not None else None
        if status is not None and status >= 400:
            raise FetchError(f"Browser fetch failed with status {status}", url=url, status=status)
        if not content.strip():
            raise FetchError("Browser fetch returned an empty document", url=url, status=status)
        return content, status


class PageFetcher:
    """Cache-first page fetcher with HTTP -> browser fallback."""

    def __init__(
        self,
        cache: PolicyCache,
        *,
        http_strategy: FetchStrategy,
        browser_strategy: FetchStrategy,
        cache_ttl_seconds: int = 60 * 60 * 24,
        complex_domains: tuple[str, ...] = COMPLEX_DOMAINS,
    ) -> None:
        self._cache = cache
        self._http = http_strategy
        self._browser = browser_strategy
        self._ttl = cache_ttl_seconds
        self._complex_domains = complex_domains

    def requires_browser(self, url: str) -> bool:
        hostname = get_hostname(url)
        return any(host_matches(hostname, d) for d in self._complex_domains)

    async def fetch(self, url: str, *, skip_cache: bool = False, method: FetchMethod = "auto") -> FetchResult:
        url = validate_url(url)
        key = cache_key(HTML_NAMESPACE, url)

        if not skip_cache:
            cached = await self._cache.get(key)
            if isinstance(cached, dict) and cached.get("html"):
                logger.info("Using cached HTML for %s", url)
                return FetchResult(
                    url=url,
                    html=cached["html"],
                    method=cached.get("method", "http"),
                    status=cached.get("status"),
                    from_cache=True,
                )

        result = await self._fetch_live(url, method)

        if not skip_cache:
            await self._cache.set(
                key,
                {"html": result.html, "method": result.method, "status": result.status},
                self._ttl,
            )
        return result

    async def _fetch_live(self, url: str, method: FetchMethod) -> FetchResult:
        if method == "http":
            plan = [self._http]
        elif method == "browser" or self.requires_browser(url):
            plan = [self._browser]
        else:
            plan = [self._http, self._browser]

        errors: list[FetchError] = []
        for strategy in plan:
            logger.info("Fetching %s using %s", url, strategy.name)
            started = asyncio.get_running_loop().time()
            try:
                html, status = await strategy.fetch(url)
            except FetchError as e:
                logger.warning("%s fetch failed for %s: %s", strategy.name, url, e.message)
                errors.append(e)
                continue
            elapsed = asyncio.get_running_loop().time() - started
            logger.info("Fetched %s with %s in %.2fs (%d chars)", url, strategy.name, elapsed, len(html))
            return FetchResult(url=url, html=html, method=strategy.name, status=status)

        reasons = "; ".join(e.message for e in errors)
        last_status = next((e.status for e in reversed(errors) if e.status is not None), None)
        raise FetchError(f"Failed to fetch policy from {url}: {reasons}", url=url, status=last_status)
