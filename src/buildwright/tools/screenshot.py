"""Screenshot capture of the running preview via headless Chromium."""

from __future__ import annotations

import logging

from buildwright.config import ScreenshotConfig

log = logging.getLogger(__name__)

# Console chatter from the dev tooling that never means the app is broken
_NOISE = (
    "favicon", "DevTools", "Download the React", "[HMR]", "[vite]",
    "react-refresh", "net::ERR_", "Failed to load resource",
)


class ScreenshotService:
    """Takes one screenshot per call and collects the page's console errors."""

    def __init__(self, config: ScreenshotConfig | None = None) -> None:
        self.config = config or ScreenshotConfig()
        self.console_errors: list[str] = []

    async def capture(self, url: str) -> bytes | None:
        """PNG bytes of *url*, or None when there's nothing to show yet.

        Browser console errors seen while loading are kept in
        ``console_errors`` until the next capture.
        """
        self.console_errors = []
        if not self.config.enabled:
            return None

        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import async_playwright

        errors: list[str] = []
        timeout_ms = int(self.config.timeout * 1000)
        try:
            async with async_playwright() as pw:
                browser = await pw.chromium.launch(headless=True)
                try:
                    page = await browser.new_page(
                        viewport={"width": self.config.width, "height": self.config.height},
                    )
                    page.on("console", lambda m: errors.append(m.text) if m.type == "error" else None)
                    page.on("pageerror", lambda e: errors.append(f"Uncaught {e}"))
                    # "load", not "networkidle": the HMR socket never goes idle
                    await page.goto(url, timeout=timeout_ms, wait_until="load")
                    await page.wait_for_timeout(500)
                    png = await page.screenshot(full_page=False)
                finally:
                    await browser.close()
        except PlaywrightError as e:
            log.warning("Screenshot of %s failed: %s", url, e)
            self.console_errors = _filter(errors)
            return None

        self.console_errors = _filter(errors)
        return png


def _filter(errors: list[str]) -> list[str]:
    return [e for e in errors if not any(n.lower() in e.lower() for n in _NOISE)]
