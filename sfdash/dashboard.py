"""
DashboardPage: page object for the tabbed Lightning dashboard.

Composes the navigator, frame resolver, label matcher, scroll driver and
value extractor. The dashboard frame is cached between calls and dropped on
every tab switch or refresh, and whenever it is found detached.
"""

import re
import time
import logging

from playwright.sync_api import Page, Frame, Locator, expect, TimeoutError as PlaywrightTimeout

from sfdash.errors import LabelNotFoundError, MetricParseError, NavigationError
from sfdash.extractor import extract_value, find_container
from sfdash.frames import resolve_dashboard_frame
from sfdash.labels import find_label
from sfdash.navigator import ensure_on_home, switch_tab, WAIT_STRATEGY
from sfdash.scroller import scroll_into_view, scroll_to_top, is_in_view
from sfdash.utils import poll_until

logger = logging.getLogger("sfdash")

TITLE_SELECTOR = "h1, .slds-page-header__title"
TIMESTAMP_SELECTOR = "span.lastRefreshDate"
REFRESH_LIMIT_TEXT = "You can't refresh this dashboard more than once in a minute"

# read_metric_eventually backoff (ms)
_BACKOFF_START = 800
_BACKOFF_MAX = 3_200

# Failures a later attempt can recover from (lazy render, re-layout).
_RETRYABLE = (LabelNotFoundError, MetricParseError, PlaywrightTimeout)


class DashboardPage:
    def __init__(self, page: Page, config: dict):
        self.page = page
        self.config = config
        self.tab = None
        self._frame = None

    # ── Frame ───────────────────────────────────────────────────────

    @property
    def frame(self) -> Frame:
        """The dashboard frame, re-resolved when missing or detached."""
        if self._frame is None or self._frame.is_detached():
            self._frame = resolve_dashboard_frame(self.page, self.config, context=self.tab)
        return self._frame

    def wait_for_frame(self) -> Frame:
        self._frame = None
        return self.frame

    # ── Navigation ──────────────────────────────────────────────────

    def open_dashboard(self, tab: str = None) -> Frame:
        """
        Land on the dashboard and return its frame.

        Uses dashboard_url when configured, otherwise Lightning Home; then
        switches to tab when one is given.
        """
        if self.config.get("dashboard_url"):
            logger.info(f"Navigating to: {self.config['dashboard_url']}")
            self.page.goto(
                self.config["dashboard_url"],
                wait_until=WAIT_STRATEGY,
                timeout=self.config["nav_timeout"],
            )
        else:
            ensure_on_home(self.page, self.config)

        if tab:
            return self.switch_tab(tab)
        return self.wait_for_frame()

    def switch_tab(self, name: str) -> Frame:
        self._frame = None
        self._frame = switch_tab(self.page, name, self.config)
        self.tab = name
        return self._frame

    def verify_dashboard_title(self, expected: str = None, timeout: int = 8_000) -> str:
        """
        Check the dashboard heading, outside the frame first, then inside.

        Returns where it was found ("page" or "frame"); raises
        NavigationError when neither shows it within timeout.
        """
        expected = expected or self.config.get("app_title", "CSRO Dashboard")
        rx = re.compile(re.escape(expected), re.IGNORECASE)

        def _where():
            outer = self.page.locator(TITLE_SELECTOR).filter(has_text=rx).first
            if outer.is_visible():
                return "page"
            inner = self.frame.locator(TITLE_SELECTOR).filter(has_text=rx).first
            if inner.is_visible():
                return "frame"
            return None

        try:
            where = poll_until(
                _where,
                timeout_ms=timeout,
                interval_ms=self.config.get("poll_interval", 250),
                description=f'title "{expected}"',
                wait=self.page.wait_for_timeout,
            )
        except TimeoutError as e:
            raise NavigationError(f'Dashboard title "{expected}" not found') from e
        logger.info(f'Dashboard title "{expected}" visible ({where}).')
        return where

    # ── Refresh ─────────────────────────────────────────────────────

    def get_dashboard_timestamp(self) -> str:
        """Text of the last-refresh marker ("As of ..."), '' when absent."""
        stamp = self.frame.locator(TIMESTAMP_SELECTOR).first
        if not stamp.count():
            stamp = self.frame.get_by_text(re.compile(r"^\s*As of ", re.IGNORECASE)).first
        try:
            if stamp.count():
                return (stamp.text_content(timeout=2_000) or "").strip()
        except PlaywrightTimeout:
            pass
        return ""

    def _refresh_button(self) -> Locator:
        """Refresh in the frame, then via More Dashboard Actions, then on the page."""
        frame = self.frame
        in_frame = frame.get_by_role("button", name="Refresh", exact=True).first
        if in_frame.count() and in_frame.is_visible():
            return in_frame

        more = frame.get_by_role("button", name="More Dashboard Actions").first
        if more.count() and more.is_visible():
            more.click()
            item = frame.get_by_role("menuitem", name="Refresh").first
            try:
                item.wait_for(state="visible", timeout=3_000)
                return item
            except PlaywrightTimeout:
                logger.debug("  Refresh not in More Dashboard Actions menu")
                self.page.keyboard.press("Escape")

        on_page = self.page.get_by_role("button", name="Refresh", exact=True).first
        if on_page.count() and on_page.is_visible():
            return on_page
        raise NavigationError("No Refresh control found on the dashboard")

    def _refresh_limited(self) -> bool:
        """Detect and close the once-per-minute refresh toast."""
        for root in (self.page, self.frame):
            toast = root.get_by_text(REFRESH_LIMIT_TEXT).first
            if toast.count() and toast.is_visible():
                logger.warning("Dashboard refresh rate-limited (once per minute).")
                close_btn = root.locator(
                    '.slds-notify_toast button[title="Close"], .forceToastMessage button[title="Close"]'
                ).first
                try:
                    if close_btn.count():
                        close_btn.click(timeout=2_000)
                    else:
                        self.page.keyboard.press("Escape")
                except PlaywrightTimeout:
                    self.page.keyboard.press("Escape")
                return True
        return False

    def refresh_dashboard(self, timeout: int = 25_000) -> str:
        """
        Click Refresh once and wait for the last-refresh timestamp to move.

        A rate-limit toast ends the wait early; the old timestamp is returned.
        """
        before = self.get_dashboard_timestamp()
        logger.info(f"Refreshing dashboard (last: {before or 'unknown'})...")
        self._refresh_button().click()

        def _settled():
            if self._refresh_limited():
                return "limited"
            now = self.get_dashboard_timestamp()
            if now and now != before:
                return now
            return None

        try:
            result = poll_until(
                _settled,
                timeout_ms=timeout,
                interval_ms=600,
                description="refresh timestamp",
                wait=self.page.wait_for_timeout,
            )
        except TimeoutError as e:
            if before:
                raise NavigationError(f"Dashboard timestamp did not change after refresh ({before})") from e
            logger.warning("No refresh timestamp shown; continuing.")
            result = ""

        self._frame = None
        if result == "limited":
            return before
        logger.info(f"Dashboard refreshed: {result}")
        return result

    # ── Labels ──────────────────────────────────────────────────────

    def locate_label(self, label: str) -> Locator:
        """
        Find the visible header for label, scrolling the dashboard when the
        cascade finds nothing in view. Raises LabelNotFoundError.
        """
        frame = self.frame
        match = find_label(frame, label)
        if match is not None and is_in_view(match.locator):
            return match.locator

        try:
            scroll_into_view(frame, label, self.config)
        except LabelNotFoundError:
            # rendered but never reported in view (clipped by a fixed header)
            if match is None:
                raise
            logger.debug(f'  "{label}" found but not in view; using it anyway')
            return match.locator

        match = find_label(frame, label)
        if match is None:
            raise LabelNotFoundError(label, "lost after scrolling")
        return match.locator

    # ── Metrics ─────────────────────────────────────────────────────

    def get_metric_value(self, label: str) -> int:
        """Integer shown on the tile labelled label."""
        self.park_mouse()
        header = self.locate_label(label)
        value = extract_value(header, label, frame=self.frame)
        logger.info(f"  {label}: {value:,}")
        return value

    def get_metrics_map(self, labels) -> dict:
        return {label: self.get_metric_value(label) for label in labels}

    def read_metric_eventually(self, variants, timeout: int = None) -> int:
        """
        Poll every alias spelling until one reads a non-negative integer.

        Backs off from 800ms between rounds; the last failure is re-raised
        once timeout (metric_timeout by default) has elapsed.
        """
        if isinstance(variants, str):
            variants = [variants]
        timeout = timeout if timeout is not None else self.config["metric_timeout"]
        deadline = time.monotonic() + timeout / 1000.0
        backoff = _BACKOFF_START
        last_error = None
        attempt = 0

        while True:
            attempt += 1
            for label in variants:
                try:
                    value = self.get_metric_value(label)
                    if value >= 0:
                        if attempt > 1 or label != variants[0]:
                            logger.info(f'  "{variants[0]}" read as "{label}" on attempt {attempt}')
                        return value
                except _RETRYABLE as e:
                    last_error = e
                    logger.debug(f'  "{label}" attempt {attempt} failed: {e}')

            if time.monotonic() >= deadline:
                break
            logger.warning(
                f'"{variants[0]}" not readable yet (attempt {attempt}) — retrying in {backoff}ms'
            )
            self.page.wait_for_timeout(backoff)
            backoff = min(backoff * 2, _BACKOFF_MAX)

        if last_error is not None:
            raise last_error
        raise MetricParseError(variants[0])

    def collect_metrics(self, metric_variants=None) -> dict:
        """Read every configured metric; keys are the canonical labels."""
        metric_variants = metric_variants or self.config["metrics"]
        mapping = {}
        for variants in metric_variants:
            if isinstance(variants, str):
                variants = [variants]
            mapping[variants[0]] = self.read_metric_eventually(variants)
        return mapping

    # ── Interactions ────────────────────────────────────────────────

    def click_metric(self, label: str) -> None:
        self.locate_label(label).click()

    def click_metric_body(self, label: str) -> None:
        """Click the tile's chart area rather than its header."""
        header = self.locate_label(label)
        container = find_container(header)
        if container is None:
            raise LabelNotFoundError(label, "no tile container around the header")
        container.scroll_into_view_if_needed()
        body = container.locator(".ps-container > div, .ps-content > div, .slds-scrollable, div").first
        (body if body.count() else container).click()

    def expect_metric_visible(self, label: str, timeout: int = 10_000) -> None:
        expect(self.locate_label(label)).to_be_visible(timeout=timeout)

    def reset_dashboard_viewport(self) -> None:
        """Scroll the window and every inner scroller back to the top."""
        scroll_to_top(self.frame)

    def park_mouse(self) -> None:
        """Move the mouse to the frame's corner so hover tooltips stay closed."""
        box = self.frame.locator("body").bounding_box()
        if box:
            self.page.mouse.move(box["x"] + 1, box["y"] + 1)
