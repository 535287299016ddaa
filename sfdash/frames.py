"""
Frame resolver: find the dashboard document inside the active tab panel.

Lightning keeps one tab panel visible per workspace tab and renders the
dashboard in an iframe inside it. Some tabs wrap that iframe in a legacy
outer embed, so the search walks the frame tree depth-first and stops at the
first document carrying a dashboard signal. Frame references go stale on
every tab switch; callers must resolve again after switching.
"""

import logging
import time

from playwright.sync_api import Page, Frame, Locator, TimeoutError as PlaywrightTimeout

from sfdash.errors import FrameNotFoundError

logger = logging.getLogger("sfdash")

# Any one of these inside a document marks it as the dashboard.
DEFAULT_SIGNALS = [
    "span.lastRefreshDate",
    ".slds-page-header__title",
    "text=PAX Traveler Status Metrics",
    "text=Total Rows Imported",
]

# Titled dashboard iframes are tried before any other iframe in the panel.
_PREFERRED_IFRAMES = 'iframe[title="dashboard"], iframe[name^="sfxdash-"]'

_PANEL_VISIBLE_JS = """
(el) => {
    if (!el) return false;
    const s = getComputedStyle(el);
    const r = el.getBoundingClientRect();
    const notHidden = !el.hasAttribute("hidden")
        && el.getAttribute("aria-hidden") !== "true"
        && el.getAttribute("aria-expanded") !== "false";
    return notHidden && s.display !== "none" && s.visibility !== "hidden"
        && r.width > 2 && r.height > 2;
}
"""


def _panel_is_visible(panel: Locator) -> bool:
    try:
        return bool(panel.evaluate(_PANEL_VISIBLE_JS, timeout=1_000))
    except Exception:
        return False


def selected_tab_name(page: Page) -> str:
    """Accessible text of the selected tab, or '' when none is selected."""
    tab = page.get_by_role("tab", selected=True).first
    try:
        if tab.count():
            return tab.inner_text(timeout=2_000).strip()
    except PlaywrightTimeout:
        pass
    return ""


def current_panel(page: Page, timeout: int = 30_000) -> Locator:
    """
    Return the visible tab panel.

    The selected tab's aria-controls id is used first; without it every
    [role=tabpanel] is scanned for one that is unhidden and has a size.
    Pages without any tab panel fall back to the document body.
    """
    deadline = time.monotonic() + timeout / 1000.0

    while True:
        selected = page.get_by_role("tab", selected=True).first
        panel_id = None
        if selected.count():
            panel_id = selected.get_attribute("aria-controls")

        if panel_id:
            safe = panel_id.replace("\\", "\\\\").replace('"', '\\"')
            panel = page.locator(f'[id="{safe}"]')
            if panel.count() and _panel_is_visible(panel):
                return panel
        else:
            panels = page.locator('[role="tabpanel"]')
            count = panels.count()
            if count == 0:
                return page.locator("body")
            for i in range(count):
                if _panel_is_visible(panels.nth(i)):
                    return panels.nth(i)

        if time.monotonic() >= deadline:
            raise FrameNotFoundError("no visible tab panel", timeout)
        page.wait_for_timeout(100)


def frame_has_signals(frame: Frame, signals=None) -> bool:
    """True when the frame's document contains any dashboard signal."""
    if frame.is_detached():
        return False
    for selector in signals or DEFAULT_SIGNALS:
        try:
            if frame.locator(selector).count() > 0:
                return True
        except Exception as e:
            # navigating or detached mid-check
            logger.debug(f"  signal check '{selector}' failed: {e}")
            return False
    return False


def search_frame_tree(root: Frame, signals=None) -> Frame | None:
    """Depth-first search; the root itself is checked before its children."""
    if root is None or root.is_detached():
        return None
    if frame_has_signals(root, signals):
        return root
    for child in root.child_frames:
        found = search_frame_tree(child, signals)
        if found:
            return found
    return None


def _panel_frames(panel: Locator) -> list:
    """Content frames of the panel's iframes, titled dashboards first."""
    frames = []
    seen = set()
    for selector in (_PREFERRED_IFRAMES, "iframe"):
        for handle in panel.locator(selector).element_handles():
            frame = handle.content_frame()
            if frame is None or id(frame) in seen:
                continue
            seen.add(id(frame))
            frames.append(frame)
    return frames


def resolve_dashboard_frame(page: Page, config: dict, context: str = None) -> Frame:
    """
    Poll the visible panel's iframe tree until a signalled document appears.

    Raises FrameNotFoundError naming the tab (or given context) when
    frame_timeout elapses.
    """
    timeout = config.get("frame_timeout", 30_000)
    interval = config.get("poll_interval", 250)
    signals = config.get("frame_signals") or DEFAULT_SIGNALS
    deadline = time.monotonic() + timeout / 1000.0
    attempt = 0

    while True:
        attempt += 1
        remaining = max(0, int((deadline - time.monotonic()) * 1000))
        try:
            panel = current_panel(page, timeout=min(remaining, 2_000))
            for outer in _panel_frames(panel):
                found = search_frame_tree(outer, signals)
                if found:
                    depth = 0
                    f = found
                    while f is not outer and f.parent_frame is not None:
                        depth += 1
                        f = f.parent_frame
                    logger.debug(
                        f"  Dashboard frame resolved (attempt {attempt}, nesting {depth}): {found.url[:80]}"
                    )
                    return found
        except FrameNotFoundError:
            pass
        except Exception as e:
            # iframe swapped out during enumeration
            logger.debug(f"  Frame enumeration attempt {attempt} raised: {e}")

        if time.monotonic() >= deadline:
            break
        page.wait_for_timeout(interval)

    name = context or selected_tab_name(page) or "current panel"
    raise FrameNotFoundError(name, timeout)
