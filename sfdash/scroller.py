"""
Scroll driver: bring a tile label into the visible part of the dashboard.

Dashboards scroll inside custom containers (perfect-scrollbar, SLDS
scrollables) rather than the window, and Lightning renders widgets lazily,
so a label may not exist in the DOM until its area has been scrolled to.
"""

import logging

from playwright.sync_api import Frame, Locator

from sfdash.errors import LabelNotFoundError
from sfdash.labels import find_label

logger = logging.getLogger("sfdash")

SCROLLER_SELECTORS = [
    ".ps-container",
    ".ps",
    ".slds-scrollable_y",
    ".slds-scrollable",
    "main",
    "section",
    "div[role='main']",
]

# Scrolls the window and every overflowing inner scroller by px.
# Returns true when anything actually moved.
_SCROLL_BY_JS = """
([px, sels]) => {
    const win = window, doc = document;
    const isScrollable = (el) => {
        const s = win.getComputedStyle(el);
        return el.scrollHeight > el.clientHeight + 2 && /(auto|scroll)/.test(s.overflowY);
    };
    let scrollers = Array.from(doc.querySelectorAll(sels.join(","))).filter(isScrollable);
    if (!scrollers.length) {
        scrollers = Array.from(doc.querySelectorAll("body *")).filter(isScrollable);
    }
    let moved = false;
    const beforeY = win.scrollY;
    win.scrollBy(0, px);
    if (win.scrollY !== beforeY) moved = true;
    for (const el of scrollers) {
        const before = el.scrollTop;
        el.scrollTop = Math.max(0, Math.min(before + px, el.scrollHeight));
        if (el.scrollTop !== before) moved = true;
    }
    return moved;
}
"""

_SCROLL_TOP_JS = """
(sels) => {
    window.scrollTo(0, 0);
    for (const el of document.querySelectorAll(sels.join(","))) el.scrollTop = 0;
}
"""

# Visible inside the window and inside every clipping ancestor.
_IN_VIEW_JS = """
(el) => {
    const r = el.getBoundingClientRect();
    if (r.width <= 0 || r.height <= 0) return false;
    const win = el.ownerDocument.defaultView;
    if (r.bottom <= 0 || r.top >= win.innerHeight) return false;
    if (r.right <= 0 || r.left >= win.innerWidth) return false;
    for (let p = el.parentElement; p; p = p.parentElement) {
        const s = win.getComputedStyle(p);
        if (!/(auto|scroll|hidden)/.test(s.overflowY + s.overflowX)) continue;
        const pr = p.getBoundingClientRect();
        if (r.bottom <= pr.top || r.top >= pr.bottom) return false;
    }
    return true;
}
"""


def scroll_by(frame: Frame, pixels: int) -> bool:
    return bool(frame.evaluate(_SCROLL_BY_JS, [pixels, SCROLLER_SELECTORS]))


def scroll_to_top(frame: Frame) -> None:
    frame.evaluate(_SCROLL_TOP_JS, SCROLLER_SELECTORS)


def is_in_view(locator: Locator) -> bool:
    try:
        return bool(locator.evaluate(_IN_VIEW_JS, timeout=2_000))
    except Exception:
        return False


def _label_in_view(frame: Frame, label: str) -> Locator | None:
    match = find_label(frame, label)
    if match is not None and is_in_view(match.locator):
        return match.locator
    return None


def _settle_on_label(frame: Frame, label: str) -> Locator | None:
    """After a step: a rendered but clipped label gets a final nudge."""
    match = find_label(frame, label)
    if match is None:
        return None
    if not is_in_view(match.locator):
        try:
            match.locator.scroll_into_view_if_needed(timeout=2_000)
        except Exception:
            return None
    return match.locator if is_in_view(match.locator) else None


def scroll_into_view(frame: Frame, label: str, config: dict) -> int:
    """
    Scroll until label is in view; returns the number of scroll steps used.

    Scans forward first, then backwards (a tab switch can leave the scroller
    below the target). Each direction is bounded by max_scrolls and stops
    early once nothing moves. Raises LabelNotFoundError when both directions
    are exhausted.
    """
    step = config.get("scroll_step", 800)
    max_scrolls = config.get("max_scrolls", 40)
    settle = config.get("scroll_settle_ms", 120)

    if _label_in_view(frame, label) is not None:
        return 0

    steps = 0
    for direction in (1, -1):
        for _ in range(max_scrolls):
            moved = scroll_by(frame, direction * step)
            steps += 1
            frame.wait_for_timeout(settle)
            target = _settle_on_label(frame, label)
            if target is not None:
                logger.debug(f'  "{label}" in view after {steps} scroll step(s)')
                return steps
            if not moved:
                break

    raise LabelNotFoundError(
        label, f"not brought into view after {steps} scroll steps"
    )
