"""
Product page text collector using Playwright with stealth settings.

Opens a product page, expands collapsed composition/care sections and
returns the textContent of every element, in document order, for the
candidate-text selector.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from playwright.async_api import async_playwright, Browser, BrowserContext, Page
from playwright_stealth import stealth_async
from rich.console import Console

from config.settings import config, ScraperConfig

console = Console()

# Closed <details> whose text mentions one of these get opened before reading
DETAILS_KEYWORDS = ("fabric", "material", "composition", "care", "content")

EXPAND_DETAILS_SCRIPT = """
(keywords) => {
    let opened = 0;
    document.querySelectorAll('details:not([open])').forEach(details => {
        const text = (details.textContent || '').toLowerCase();
        if (keywords.some(k => text.includes(k))) {
            details.open = true;
            opened += 1;
        }
    });
    return opened;
}
"""

COLLECT_TEXT_SCRIPT = """
() => Array.from(document.querySelectorAll('*')).map(el => el.textContent || '')
"""


@dataclass
class PageSnapshot:
    """Text gathered from one product page."""

    url: str
    title: str
    blocks: list = field(default_factory=list)


def brand_from_url(url: str) -> str:
    """
    Derive a brand name from the store hostname.

    https://www.everlane.com/products/x -> "everlane"
    """
    host = urlparse(url).hostname or ""
    if host.startswith("www."):
        host = host[len("www."):]
    return host.split(".")[0]


class PageTextCollector:
    """Collects product-page text blocks using Playwright."""

    def __init__(
        self,
        scraper_config: Optional[ScraperConfig] = None,
        browser_type: str = "firefox",
    ):
        self.config = scraper_config or config.scraper
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.playwright = None
        self.browser_type = browser_type  # "firefox", "chromium", or "webkit"

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self) -> None:
        """Start the browser with stealth settings."""
        console.print(f"[bold blue]Starting {self.browser_type} browser...[/bold blue]")

        self.playwright = await async_playwright().start()

        browser_launchers = {
            "firefox": self.playwright.firefox,
            "chromium": self.playwright.chromium,
            "webkit": self.playwright.webkit,
        }
        launcher = browser_launchers.get(self.browser_type, self.playwright.firefox)

        self.browser = await launcher.launch(headless=self.config.headless)
        self.context = await self.browser.new_context(
            viewport={
                "width": self.config.viewport_width,
                "height": self.config.viewport_height,
            },
            user_agent=random.choice(self.config.user_agents),
            locale="en-US",
            timezone_id="America/New_York",
        )

        console.print("[bold green]Browser started successfully[/bold green]")

    async def close(self) -> None:
        """Close the browser."""
        if self.context:
            await self.context.close()
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()
        self.context = self.browser = self.playwright = None
        console.print("[bold blue]Browser closed[/bold blue]")

    async def _create_stealth_page(self) -> Page:
        """Create a new page with stealth settings."""
        if self.context is None:
            raise RuntimeError("Collector not started. Use async context manager.")
        page = await self.context.new_page()
        await stealth_async(page)
        return page

    async def collect(self, url: str) -> PageSnapshot:
        """
        Load a product page and read every element's text.

        Args:
            url: Product page URL

        Returns:
            PageSnapshot with the page title and raw text blocks in document order
        """
        console.print(f"[cyan]Collecting page text: {url}[/cyan]")

        page = await self._create_stealth_page()
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.config.timeout_ms)

            opened = await page.evaluate(EXPAND_DETAILS_SCRIPT, list(DETAILS_KEYWORDS))
            if opened:
                console.print(f"[dim]Expanded {opened} details section(s)[/dim]")
                await asyncio.sleep(self.config.settle_seconds)

            title = await page.title()
            blocks = await page.evaluate(COLLECT_TEXT_SCRIPT)
        finally:
            await page.close()

        console.print(f"[green]✓ Collected {len(blocks)} text blocks[/green]")
        return PageSnapshot(url=url, title=title, blocks=blocks)
