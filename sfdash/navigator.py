"""
Navigator module: reach Lightning Home and switch workspace (sub)tabs.

Lightning is an SPA; waits use DOM signals (URL, aria-selected, panel
visibility) instead of "networkidle".
"""

import logging
import re

from playwright.sync_api import Page, Frame, Locator, expect, Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from sfdash.errors import NavigationError
from sfdash.frames import resolve_dashboard_frame

logger = logging.getLogger("sfdash")

WAIT_STRATEGY = "domcontentloaded"
HOME_PATH = "/lightning/page/home"

_HOME_URL_RE = re.compile(r"/lightning/page/home\b", re.IGNORECASE)
_CLOSE_TAB_SELECTOR = (
    'button[title="Close Tab"], [title="Close Tab"], '
    'button[title="Close Subtab"], [title="Close Subtab"], '
    'button[aria-label="Close Tab"], button[aria-label="Close Subtab"]'
)
_DISCARD_RE = re.compile(r"^(Discard|Don.?t Save|Close without Saving)$", re.IGNORECASE)


def lightning_home_url(config: dict) -> str:
    """home_url may be the org base or already the full Home URL."""
    home = config["home_url"]
    if "/lightning/" in home:
        return home
    return f"{home}{HOME_PATH}"


def prevent_popouts(page: Page) -> None:
    """Make window.open navigate in place so dashboards never open a popup."""
    script = "window.open = (u) => { location.href = String(u); return null; };"
    page.add_init_script(script)
    try:
        page.evaluate(script)
    except PlaywrightError:
        logger.debug("  window.open patch deferred to next navigation")
    page.on("popup", lambda p: p.close())


def dismiss_overlays(page: Page) -> None:
    """Best-effort close of Lightning popovers / tooltips."""
    close_btn = page.locator('button[title="Close"]').first
    try:
        if close_btn.is_visible():
            close_btn.click(timeout=2_000)
    except PlaywrightTimeout:
        logger.debug("  Overlay close button did not respond")
    page.keyboard.press("Escape")


def close_all_workspace_tabs(page: Page, max_clicks: int = 30) -> int:
    """
    Close every open workspace tab/subtab so runs start from a clean bar.

    Unsaved-changes prompts are answered with Discard. Returns the number of
    tabs closed.
    """
    closed = 0
    for _ in range(max_clicks):
        close_btn = page.locator(_CLOSE_TAB_SELECTOR).first
        if not close_btn.count() or not close_btn.is_visible():
            break
        try:
            close_btn.click(timeout=1_500)
            closed += 1
        except PlaywrightTimeout:
            # detached mid-click; query again
            page.wait_for_timeout(150)
            continue

        discard = page.get_by_role("button", name=_DISCARD_RE).first
        try:
            if discard.is_visible(timeout=500):
                discard.click(timeout=2_000)
        except PlaywrightTimeout:
            pass
        page.wait_for_timeout(150)

    if closed:
        logger.info(f"Closed {closed} workspace tab(s).")
    return closed


def go_home(page: Page, config: dict) -> None:
    """
    Navigate to Lightning Home.

    Tries the Home link, then the navigation menu, then a direct URL.
    """
    if _HOME_URL_RE.search(page.url):
        return
    nav_timeout = config.get("nav_timeout", 60_000)

    home_link = page.get_by_role("link", name=re.compile(r"^Home$")).first
    if home_link.count() and home_link.is_visible():
        logger.info("Going Home via Home link...")
        home_link.click()
    else:
        menu_btn = page.get_by_role("button", name="Show Navigation Menu").first
        if menu_btn.count() and menu_btn.is_visible():
            logger.info("Going Home via navigation menu...")
            menu_btn.click()
            item = page.get_by_role("menuitem", name=re.compile(r"^Home$")).first
            try:
                item.click(timeout=5_000)
            except PlaywrightTimeout:
                logger.debug("  Home menu item not found")

    try:
        page.wait_for_url(_HOME_URL_RE, timeout=min(nav_timeout, 20_000))
        return
    except PlaywrightTimeout:
        pass

    target = lightning_home_url(config)
    logger.info(f"Navigating to: {target}")
    page.goto(target, wait_until=WAIT_STRATEGY, timeout=nav_timeout)
    try:
        page.wait_for_url(_HOME_URL_RE, timeout=nav_timeout)
    except PlaywrightTimeout as e:
        raise NavigationError(f"Lightning Home never loaded; landed on {page.url}") from e


def wait_home_subtabs(page: Page, config: dict) -> None:
    """Home is ready once any of the known sub-tabs is visible."""
    names = "|".join(re.escape(t) for t in config.get("tabs", []))
    any_tab = page.get_by_role("tab", name=re.compile(rf"^({names})$")).first
    try:
        any_tab.wait_for(state="visible", timeout=config.get("tab_timeout", 15_000))
    except PlaywrightTimeout as e:
        raise NavigationError(
            f"Home sub-tabs ({', '.join(config.get('tabs', []))}) never became visible"
        ) from e


def ensure_on_home(page: Page, config: dict) -> None:
    """Close stray tabs, land on Home and wait for the dashboard sub-tabs."""
    close_all_workspace_tabs(page)
    go_home(page, config)
    wait_home_subtabs(page, config)
    logger.info("Lightning Home ready.")


def visible_tab(page: Page, name: str) -> Locator:
    """The visible tab named name; prefers the visible tablist."""
    tablist = page.locator('[role="tablist"]:not([hidden])').first
    tabs = tablist.get_by_role("tab", name=name, exact=True)
    if tabs.count() == 0:
        tabs = page.get_by_role("tab", name=name, exact=True)

    for i in range(tabs.count()):
        tab = tabs.nth(i)
        if tab.is_visible():
            return tab
    return tabs.first


def is_tab_selected(tab: Locator) -> bool:
    return (tab.get_attribute("aria-selected") or "").lower() == "true"


def switch_tab(page: Page, name: str, config: dict) -> Frame:
    """
    Select workspace tab name and return its freshly resolved dashboard frame.

    Selecting the tab that is already active does not click. The click and
    the aria-selected wait are single-shot; a timeout raises NavigationError.
    """
    if name not in config.get("tabs", []):
        raise NavigationError(
            f"Unknown tab '{name}'; expected one of {', '.join(config.get('tabs', []))}"
        )
    tab_timeout = config.get("tab_timeout", 15_000)

    tab = visible_tab(page, name)
    try:
        tab.wait_for(state="visible", timeout=tab_timeout)
    except PlaywrightTimeout as e:
        raise NavigationError(f"Tab '{name}' not visible") from e

    if is_tab_selected(tab):
        logger.info(f"Tab '{name}' already selected.")
    else:
        logger.info(f"Switching to tab '{name}'...")
        old_panel = page.locator('[role="tabpanel"]:not([hidden])').first
        old_handle = old_panel.element_handle(timeout=1_000) if old_panel.count() else None

        try:
            tab.click(timeout=tab_timeout)
            expect(tab).to_have_attribute("aria-selected", "true", timeout=tab_timeout)
        except (PlaywrightTimeout, AssertionError) as e:
            raise NavigationError(f"Tab '{name}' did not become selected") from e

        # best-effort: some panel swaps show no hidden-state transition
        if old_handle is not None:
            try:
                old_handle.wait_for_element_state("hidden", timeout=10_000)
            except PlaywrightTimeout:
                logger.debug("  Previous panel never reported hidden")
        page.wait_for_timeout(config.get("settle_ms", 300))

    return resolve_dashboard_frame(page, config, context=name)


def open_list_view(page: Page, config: dict, object_name: str, list_name: str) -> Locator:
    """
    Open an object from the navigation menu and pick one of its list views.

    Returns the first grid row once the list has rendered.
    """
    nav_timeout = config.get("nav_timeout", 60_000)
    logger.info(f"Opening list view '{list_name}' of {object_name}...")

    page.get_by_role("button", name="Show Navigation Menu").first.click()
    page.get_by_role("menuitem", name=object_name, exact=True).first.click()

    picker = page.get_by_role(
        "button", name=re.compile(rf"Select a List View:\s*{re.escape(object_name)}", re.IGNORECASE)
    ).first
    picker.click(timeout=nav_timeout)

    option = page.get_by_role(
        "option", name=re.compile(rf"^{re.escape(list_name)}$", re.IGNORECASE)
    ).first
    # the clickable label is the option's second span in some orgs
    label = option.locator("span").nth(1)
    if label.count() and label.is_visible():
        label.click()
    else:
        option.click()

    first_row = page.locator('[role="grid"] tbody tr').first
    try:
        first_row.wait_for(state="visible", timeout=config.get("tab_timeout", 15_000) + 5_000)
    except PlaywrightTimeout as e:
        raise NavigationError(f"List view '{list_name}' rendered no rows") from e
    logger.info(f"List view '{list_name}' loaded.")
    return first_row
