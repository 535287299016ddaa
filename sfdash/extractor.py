"""
Value extractor: read the integer a tile header belongs to.

Tiers, first success wins:
  a. next table cell after the header's cell
  b. "Record Count N" in a title / aria-label inside the widget
  c. layout scoring over the widget's visible text (metrics.score_nodes)
  d. the same scan on up to 8 ancestors of the header, footer filter off
  e. first qualifying number of the whole dashboard text, "As of ..." cut
"""

import logging
import re

from playwright.sync_api import Frame, Locator, Error as PlaywrightError

from sfdash import metrics
from sfdash.errors import MetricParseError

logger = logging.getLogger("sfdash")

# Nearest recognised widget ancestor, most specific first.
CONTAINER_XPATHS = [
    'xpath=ancestor::*[starts-with(@id,"widget-canvas-")][1]',
    'xpath=ancestor::*[contains(@class,"dashboardWidget")][1]',
    'xpath=ancestor::*[@role="group" or @role="region"][1]',
    'xpath=ancestor::*[self::th or self::td or self::tr][1]',
    'xpath=ancestor::*[contains(@class,"slds-card") or contains(@class,"slds-grid")'
    ' or contains(@class,"slds-p-around")][1]',
    "xpath=parent::*",
]

ANCESTOR_DEPTH = 8

_RECORD_COUNT_SELECTOR = '[title*="Record Count" i], [aria-label*="Record Count" i]'
_RECORD_COUNT_RE = re.compile(r"record count\D*?(\d{1,3}(?:,\d{3})+|\d+)", re.IGNORECASE)

# Shared snapshot routine: visible, non-empty elements under root.
_COLLECT_FN = """
const collect = (root) => {
    const isVisible = (el) => {
        const cs = getComputedStyle(el);
        if (cs.visibility === "hidden" || cs.display === "none"
            || parseFloat(cs.opacity || "1") === 0) return false;
        const r = el.getBoundingClientRect();
        return r.width > 3 && r.height > 3;
    };
    const nodes = [];
    for (const el of root.querySelectorAll("*:not(script):not(style)")) {
        if (!isVisible(el)) continue;
        const text = (el.innerText || "").trim();
        if (!text) continue;
        const r = el.getBoundingClientRect();
        nodes.push({
            text,
            fontSize: parseFloat(getComputedStyle(el).fontSize || "0"),
            width: r.width,
            height: r.height,
            bottom: r.bottom,
        });
    }
    return nodes;
};
"""

_SNAPSHOT_JS = "(root) => {" + _COLLECT_FN + """
    return { bottom: root.getBoundingClientRect().bottom, nodes: collect(root) };
}"""

_ANCESTORS_JS = "(el, depth) => {" + _COLLECT_FN + """
    const levels = [];
    let root = el;
    for (let i = 0; i < depth && root; i++) {
        levels.push(collect(root));
        root = root.parentElement;
    }
    return levels;
}"""

_SIBLING_CELL_JS = """
(el) => {
    const cell = el.closest("th, td");
    if (!cell) return null;
    const next = cell.nextElementSibling;
    return next ? (next.innerText || next.textContent || "") : null;
}
"""


def find_container(header: Locator) -> Locator | None:
    for xpath in CONTAINER_XPATHS:
        candidate = header.locator(xpath).first
        if candidate.count():
            return candidate
    return None


def read_sibling_cell(header: Locator) -> int | None:
    text = header.evaluate(_SIBLING_CELL_JS)
    if text and re.search(r"\d", text):
        return metrics.parse_int(text)
    return None


def read_record_count(container: Locator) -> int | None:
    node = container.locator(_RECORD_COUNT_SELECTOR).first
    if not node.count():
        return None
    for attr in ("title", "aria-label"):
        text = node.get_attribute(attr) or ""
        m = _RECORD_COUNT_RE.search(text)
        if m:
            return metrics.token_value(m.group(1))
    return None


def read_layout(container: Locator) -> int | None:
    snap = container.evaluate(_SNAPSHOT_JS)
    return metrics.pick_value(snap["nodes"], snap["bottom"])


def read_ancestors(header: Locator, depth: int = ANCESTOR_DEPTH) -> int | None:
    levels = header.evaluate(_ANCESTORS_JS, depth)
    for level, nodes in enumerate(levels):
        value = metrics.pick_value(nodes)
        if value is not None:
            logger.debug(f"  Ancestor walk hit at level {level}")
            return value
    return None


def read_document(frame: Frame) -> int | None:
    text = frame.locator("body").inner_text(timeout=5_000)
    return metrics.first_panel_number(text)


def extract_value(header: Locator, label: str, frame: Frame = None) -> int:
    """
    Run the tiers for a matched header. Raises MetricParseError naming label
    when none yields a number.
    """
    container = find_container(header)

    if container is not None:
        try:
            container.scroll_into_view_if_needed(timeout=5_000)
        except PlaywrightError:
            logger.debug(f'  "{label}" container could not be scrolled into view')

        value = read_sibling_cell(header)
        if value is not None:
            logger.debug(f'  "{label}" → {value} (table cell)')
            return value

        value = read_record_count(container)
        if value is not None:
            logger.debug(f'  "{label}" → {value} (record count)')
            return value

        value = read_layout(container)
        if value is not None:
            logger.debug(f'  "{label}" → {value} (layout)')
            return value

    value = read_ancestors(header)
    if value is not None:
        logger.debug(f'  "{label}" → {value} (ancestor walk)')
        return value

    if frame is not None:
        value = read_document(frame)
        if value is not None:
            logger.warning(f'  "{label}" → {value} read from whole dashboard text')
            return value

    raise MetricParseError(label)
