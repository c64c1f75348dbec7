"""promptqa UI Runner -- Playwright browser lifecycle and page interactions.

BrowserSession owns the Playwright / browser / context / page objects for a
run. UIDriver performs the page interactions prompt steps need; when a
SelfHealingLocator is attached every locator lookup goes through it,
otherwise a locator string is interpreted as XPath, CSS or visible text.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from promptqa.engine.context import VariableStore
from promptqa.engine.errors import AssertionFailedError, ResolutionExhaustedError
from promptqa.engine.self_healing import SelfHealingLocator
from promptqa.models import DEFAULT_ACTION_TIMEOUT_MS, DEFAULT_VIEWPORT

if TYPE_CHECKING:
    from playwright.sync_api import Locator, Page

logger = logging.getLogger("promptqa.engine.ui_runner")


class BrowserSession:
    """Launches Chromium and hands out a single page for the run."""

    def __init__(
        self,
        headless: bool = True,
        slow_mo: int = 0,
        viewport: tuple[int, int] = DEFAULT_VIEWPORT,
        timeout_ms: int = DEFAULT_ACTION_TIMEOUT_MS,
    ) -> None:
        self._headless = headless
        self._slow_mo = slow_mo
        self._viewport = viewport
        self._timeout_ms = timeout_ms

        # Managed browser lifecycle -- set by start()/stop()
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session not started -- call start() first")
        return self._page

    def start(self) -> Page:
        """Launch the browser and open the run's page."""
        from playwright.sync_api import sync_playwright

        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(
            headless=self._headless,
            slow_mo=self._slow_mo,
        )
        self._context = self._browser.new_context(
            viewport={"width": self._viewport[0], "height": self._viewport[1]},
        )
        self._context.set_default_timeout(self._timeout_ms)
        self._page = self._context.new_page()
        logger.info(
            "Browser started: headless=%s viewport=%dx%d",
            self._headless, self._viewport[0], self._viewport[1],
        )
        return self._page

    def stop(self) -> None:
        """Close the page's context, the browser and Playwright."""
        try:
            if self._context is not None:
                self._context.close()
        except Exception:
            pass
        try:
            if self._browser is not None:
                self._browser.close()
        except Exception:
            pass
        try:
            if self._playwright is not None:
                self._playwright.stop()
        except Exception:
            pass
        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None

    def __enter__(self) -> BrowserSession:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()


class UIDriver:
    """Page interactions used by UI steps."""

    def __init__(
        self,
        page: Page,
        store: VariableStore,
        healer: SelfHealingLocator | None = None,
        timeout_ms: int = DEFAULT_ACTION_TIMEOUT_MS,
        screenshot_dir: Path | None = None,
    ) -> None:
        self._page = page
        self._store = store
        self._healer = healer
        self._timeout_ms = timeout_ms
        self._screenshot_dir = screenshot_dir
        if healer is not None:
            logger.info("Self-healing enabled for this driver")

    @property
    def page(self) -> Page:
        return self._page

    @property
    def healer(self) -> SelfHealingLocator | None:
        return self._healer

    @property
    def self_healing(self) -> bool:
        return self._healer is not None

    def enable_self_healing(self, healer: SelfHealingLocator | None = None) -> SelfHealingLocator:
        """Route locator lookups through a SelfHealingLocator from now on."""
        if self._healer is None:
            self._healer = healer or SelfHealingLocator(self._page)
            logger.info("Self-healing enabled for this driver")
        return self._healer

    # -- Element lookup --------------------------------------------------

    def find(self, locator: str, description: str | None = None) -> Locator:
        """Return the element for *locator*, healing it when enabled."""
        if self._healer is not None:
            return self._healer.resolve(locator, description or locator)
        return self._get_element(locator)

    def _get_element(self, locator: str) -> Locator:
        # XPath
        if locator.startswith("//") or locator.startswith("(//"):
            return self._page.locator(locator)
        # CSS or other selector engines
        if any(ch in locator for ch in "#.[") or "=" in locator:
            return self._page.locator(locator)
        return self._page.get_by_text(locator, exact=False)

    # -- Actions ---------------------------------------------------------

    def navigate_to(self, url: str) -> None:
        logger.info("Navigating to: %s", url)
        self._page.goto(url, wait_until="domcontentloaded")
        self._page.wait_for_load_state("networkidle")

    def fill(self, locator: str, value: str) -> None:
        logger.info("Filling %s", locator)
        self.find(locator).fill(value)

    def click(self, locator: str) -> None:
        logger.info("Clicking: %s", locator)
        self.find(locator).click()

    def click_button(self, text: str) -> None:
        logger.info("Clicking button: %s", text)
        self._page.get_by_role("button", name=text).click(timeout=self._timeout_ms)

    def click_link(self, text: str) -> None:
        logger.info("Clicking link: %s", text)
        self._page.get_by_role("link", name=text).click(timeout=self._timeout_ms)

    # -- Reads -----------------------------------------------------------

    def get_text(self, locator: str) -> str:
        text = self.find(locator).text_content() or ""
        logger.info("Got text from %s: %s", locator, text)
        return text

    def get_attribute(self, locator: str, name: str) -> str | None:
        value = self.find(locator).get_attribute(name)
        logger.info("Attribute '%s' of %s: %s", name, locator, value)
        return value

    def get_input_value(self, locator: str) -> str:
        return self.find(locator).input_value()

    def is_visible(self, locator: str) -> bool:
        try:
            visible = self.find(locator).is_visible()
        except Exception:
            return False
        logger.info("%s is visible: %s", locator, visible)
        return visible

    def wait_for_element(self, locator: str, timeout_ms: int | None = None) -> None:
        logger.info("Waiting for element: %s", locator)
        self.find(locator).wait_for(state="visible", timeout=timeout_ms or self._timeout_ms)

    def store_value(self, name: str, locator: str) -> None:
        """Capture an element's text into the variable store."""
        self._store.set(name, self.get_text(locator))

    # -- Text checks -----------------------------------------------------

    def is_text_present(self, text: str) -> bool:
        logger.info("Checking if text is present: %s", text)
        try:
            return self._page.get_by_text(text, exact=False).first.is_visible()
        except Exception:
            return False

    def verify_text_present(self, text: str) -> None:
        """Wait for *text* to be visible; raise AssertionFailedError otherwise."""
        logger.info("Verifying text is present: %s", text)
        try:
            self._page.get_by_text(text, exact=False).first.wait_for(
                state="visible", timeout=self._timeout_ms,
            )
        except Exception as exc:
            raise AssertionFailedError(f'Expected text "{text}" not visible on page') from exc

    def verify_element_contains_text(self, locator: str, expected: str) -> None:
        logger.info("Verifying %s contains: %s", locator, expected)
        actual = self.get_text(locator)
        if expected not in actual:
            raise AssertionFailedError(
                f'Element {locator} does not contain "{expected}" (actual: "{actual.strip()}")'
            )

    def verify_element_visible(self, locator: str) -> None:
        logger.info("Verifying %s is visible", locator)
        try:
            self.wait_for_element(locator)
        except ResolutionExhaustedError:
            raise
        except Exception as exc:
            raise AssertionFailedError(f"Element {locator} is not visible") from exc

    # -- Tables ----------------------------------------------------------

    def get_table_rows(self, table_locator: str) -> list[Locator]:
        if self._healer is not None:
            table = self._healer.resolve(table_locator, table_locator)
        else:
            table = self._page.locator(table_locator)
        return table.locator("tr").all()

    def is_value_in_table(self, table_locator: str, value: str) -> bool:
        """True when any row of the table contains *value*.

        A table that cannot be found counts as "not in table" so callers can
        fall back to a page-wide search.
        """
        logger.info("Checking if %s exists in table", value)
        try:
            rows = self.get_table_rows(table_locator)
        except ResolutionExhaustedError:
            logger.info("No table matching %s on page", table_locator)
            return False
        for row in rows:
            text = row.text_content() or ""
            if value in text:
                logger.info("Found %s in table", value)
                return True
        logger.info("%s not found in table", value)
        return False

    # -- Evidence --------------------------------------------------------

    def take_screenshot(self, name: str) -> Path | None:
        """Save a full-page screenshot into the screenshot directory."""
        if self._screenshot_dir is None:
            logger.debug("No screenshot directory configured; skipping %s", name)
            return None
        self._screenshot_dir.mkdir(parents=True, exist_ok=True)
        safe_name = re.sub(r"[^\w.-]+", "-", name).strip("-") or "screenshot"
        path = self._screenshot_dir / f"{safe_name}.png"
        self._page.screenshot(path=str(path), full_page=True)
        logger.info("Screenshot saved: %s", path)
        return path
