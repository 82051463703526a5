"""Per-job browser sessions backed by Playwright or plain HTTP."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import httpx
from bs4 import BeautifulSoup
from playwright.sync_api import Error as PlaywrightError, sync_playwright

from .config import BrowserConfig, TimeoutConfig
from .errors import BrowserSessionError

LOGGER = logging.getLogger(__name__)

_MASK_AUTOMATION_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
"""

_MASK_AUTOMATION_ARGS = (
    "--disable-blink-features=AutomationControlled",
    "--disable-extensions",
    "--disable-default-apps",
    "--disable-component-extensions-with-background-pages",
)


class Page(Protocol):
    """The subset of the Playwright page API the strategies rely on."""

    def goto(self, url: str, *, wait_until: str = ..., timeout: float = ...): ...

    def wait_for_timeout(self, timeout: float) -> None: ...

    def content(self) -> str: ...

    def title(self) -> str: ...


@dataclass(frozen=True, slots=True)
class BrowserProfile:
    """Client fingerprint a strategy wants its session to present."""

    viewport: tuple[int, int] = (1366, 768)
    user_agent: str | None = None
    extra_headers: dict[str, str] = field(default_factory=dict)
    mask_automation: bool = False
    slow_mo_ms: int | None = None


class PlaywrightSession:
    """A Chromium browser, context and page owned by exactly one job."""

    def __init__(self, config: BrowserConfig, profile: BrowserProfile) -> None:
        self._config = config
        self._profile = profile
        self._playwright_cm = None
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def __enter__(self) -> "PlaywrightSession":
        args = list(self._config.launch_args)
        if self._profile.mask_automation:
            args.extend(_MASK_AUTOMATION_ARGS)
        slow_mo = self._profile.slow_mo_ms if self._profile.slow_mo_ms is not None else self._config.slow_mo_ms
        width, height = self._profile.viewport

        self._playwright_cm = sync_playwright()
        self._playwright = self._playwright_cm.__enter__()
        try:
            self._browser = self._playwright.chromium.launch(
                headless=self._config.headless,
                slow_mo=slow_mo,
                args=args,
            )
            self._context = self._browser.new_context(
                viewport={"width": width, "height": height},
                user_agent=self._profile.user_agent or self._config.user_agent,
                extra_http_headers=dict(self._profile.extra_headers) or None,
                locale="en-US",
            )
            if self._profile.mask_automation:
                self._context.add_init_script(_MASK_AUTOMATION_SCRIPT)
            self._page = self._context.new_page()
        except PlaywrightError as exc:
            self.close()
            raise BrowserSessionError(f"Failed to start browser: {exc}") from exc

        LOGGER.info(
            "Browser session ready (%s, viewport %dx%d)",
            "headless" if self._config.headless else "headed",
            width,
            height,
        )
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    @property
    def page(self) -> Page:
        if self._page is None:
            raise BrowserSessionError("Browser session must be used as a context manager")
        return self._page

    def close(self) -> None:
        try:
            if self._context is not None:
                self._context.close()
        finally:
            try:
                if self._browser is not None:
                    self._browser.close()
            finally:
                if self._playwright_cm is not None:
                    self._playwright_cm.__exit__(None, None, None)
                self._page = None
                self._context = None
                self._browser = None
                self._playwright = None
                self._playwright_cm = None
                LOGGER.debug("Browser session closed")


class HttpPage:
    """Serves static pages over HTTP with the page API used by the strategies."""

    def __init__(self, client: httpx.Client) -> None:
        self._client = client
        self._html = ""
        self.url = ""

    def goto(self, url: str, *, wait_until: str = "domcontentloaded", timeout: float = 30000) -> httpx.Response:
        try:
            response = self._client.get(url, timeout=timeout / 1000)
        except httpx.HTTPError as exc:
            raise BrowserSessionError(f"Request for {url} failed: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            raise BrowserSessionError(f"Unexpected status {response.status_code} for {url}")
        content_type = response.headers.get("content-type", "")
        if "html" not in content_type:
            raise BrowserSessionError(f"Unsupported content type '{content_type}' for {url}")

        self._html = response.text
        self.url = str(response.url)
        return response

    def wait_for_timeout(self, timeout: float) -> None:
        # Static documents have nothing left to render.
        return None

    def content(self) -> str:
        return self._html

    def title(self) -> str:
        soup = BeautifulSoup(self._html, "html.parser")
        if soup.title and soup.title.string:
            return soup.title.string.strip()
        return ""


class HttpSession:
    """Lightweight session for sources that render without JavaScript."""

    def __init__(self, config: BrowserConfig, profile: BrowserProfile, timeout: TimeoutConfig) -> None:
        self._config = config
        self._profile = profile
        self._timeout = timeout
        self._client: httpx.Client | None = None
        self._page: HttpPage | None = None

    def __enter__(self) -> "HttpSession":
        headers = {"User-Agent": self._profile.user_agent or self._config.user_agent}
        headers.update(self._profile.extra_headers)
        self._client = httpx.Client(
            timeout=self._timeout.request_timeout,
            headers=headers,
            follow_redirects=True,
        )
        self._page = HttpPage(self._client)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    @property
    def page(self) -> Page:
        if self._page is None:
            raise BrowserSessionError("HTTP session must be used as a context manager")
        return self._page

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._page = None


class SessionFactory:
    """Opens one session per job using the configured backend."""

    def __init__(self, config: BrowserConfig, timeout: TimeoutConfig | None = None) -> None:
        self._config = config
        self._timeout = timeout or TimeoutConfig()

    def __call__(self, profile: BrowserProfile):
        if self._config.backend == "http":
            return HttpSession(self._config, profile, self._timeout)
        return PlaywrightSession(self._config, profile)


__all__ = [
    "BrowserProfile",
    "HttpPage",
    "HttpSession",
    "Page",
    "PlaywrightSession",
    "SessionFactory",
]
