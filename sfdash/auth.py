"""
Authentication module: Salesforce login and storage-state snapshots.
"""

import os
import re
import time
import logging

from filelock import FileLock
from playwright.sync_api import Browser, BrowserContext, Page, Error as PlaywrightError, TimeoutError as PlaywrightTimeout

from sfdash.errors import NavigationError
from sfdash.navigator import dismiss_overlays, lightning_home_url, WAIT_STRATEGY
from sfdash.utils import get_session_path, capture_diagnostics

logger = logging.getLogger("sfdash")

USERNAME_SELECTOR = 'input#username, input[name="username"]'
PASSWORD_SELECTOR = 'input#password, input[name="pw"]'
SUBMIT_SELECTOR = 'input#Login, input[name="Login"], input[type="submit"]'

_LIGHTNING_RE = re.compile(r"/lightning/")

# Snapshots older than this are re-created.
DEFAULT_MAX_AGE_HOURS = 8


def _is_login_url(url: str) -> bool:
    url = url.lower()
    return "/login" in url or "login." in url or "/secur/" in url


def is_session_valid(context: BrowserContext, config: dict, role: str = "default") -> bool:
    """
    Check if a saved session is still valid by opening Home and polling the
    URL until Lightning finishes routing.
    """
    session_path = get_session_path(config, role)
    if not os.path.exists(session_path):
        logger.info("No saved session found.")
        return False

    page = context.pages[0] if context.pages else context.new_page()
    logger.info("Checking if saved session is still valid...")

    try:
        page.goto(lightning_home_url(config), wait_until=WAIT_STRATEGY, timeout=config["nav_timeout"])

        # Lightning may bounce through frontdoor/login pages before settling
        for i in range(15):
            page.wait_for_timeout(1000)
            current_url = page.url
            logger.debug(f"  Session check {i+1}s: {current_url}")

            if "/lightning" in current_url and not _is_login_url(current_url):
                logger.info(f"Session is valid — landed on: {current_url}")
                return True
            if page.locator(USERNAME_SELECTOR).first.is_visible():
                break

        logger.info(f"Session expired — final URL: {page.url}")
        return False
    except PlaywrightError as e:
        logger.warning(f"Session check failed: {e}")
        return False


def login(page: Page, config: dict) -> None:
    """
    Fill the classic login form and wait for the Lightning redirect.

    Raises NavigationError when the form never appears or the redirect never
    reaches a /lightning/ URL.
    """
    nav_timeout = config["nav_timeout"]
    logger.info("Loading login page...")
    page.goto(config["login_url"], wait_until=WAIT_STRATEGY, timeout=nav_timeout)

    username = page.locator(USERNAME_SELECTOR).first
    try:
        username.wait_for(state="visible", timeout=config["tab_timeout"])
    except PlaywrightTimeout as e:
        capture_diagnostics(page, "login_form_missing")
        raise NavigationError(f"Login form did not appear at {page.url}") from e

    username.fill(config["username"])
    page.locator(PASSWORD_SELECTOR).first.fill(config["password"])
    logger.info(f"Credentials entered for: {config['username']}")
    page.locator(SUBMIT_SELECTOR).first.click()

    logger.info("Waiting for Lightning redirect...")
    try:
        page.wait_for_url(_LIGHTNING_RE, timeout=nav_timeout)
    except PlaywrightTimeout as e:
        logger.error(f"Final URL after login: {page.url}")
        capture_diagnostics(page, "login_failed")
        raise NavigationError(
            f"Login failed — no /lightning/ redirect within {nav_timeout}ms (at {page.url})"
        ) from e

    logger.info(f"Login successful! Landed on: {page.url}")
    dismiss_overlays(page)


def save_session(context: BrowserContext, config: dict, roles=("default",)) -> list:
    """Save browser storage state once per role; returns the written paths."""
    paths = []
    for role in roles:
        session_path = get_session_path(config, role)
        os.makedirs(os.path.dirname(session_path), exist_ok=True)
        context.storage_state(path=session_path)
        logger.info(f"Session saved to: {session_path}")
        paths.append(session_path)
    return paths


def _snapshot_fresh(path: str, max_age_hours: float) -> bool:
    if not os.path.exists(path):
        return False
    age_hours = (time.time() - os.path.getmtime(path)) / 3600.0
    return age_hours < max_age_hours


def ensure_session_snapshots(browser: Browser, config: dict, roles=("default",)) -> list:
    """
    Produce the storage-state snapshots for roles once per run.

    A file lock next to the snapshots serialises parallel workers; whoever
    takes the lock second finds fresh snapshots and reuses them.
    """
    max_age = config.get("session_max_age_hours", DEFAULT_MAX_AGE_HOURS)
    paths = [get_session_path(config, role) for role in roles]
    lock_path = os.path.join(config["state_dir"], ".state.lock")
    os.makedirs(config["state_dir"], exist_ok=True)

    with FileLock(lock_path, timeout=config["nav_timeout"] / 1000.0 * 3):
        if all(_snapshot_fresh(p, max_age) for p in paths):
            logger.info("Reusing existing session snapshots.")
            return paths

        logger.info(f"Creating session snapshots for: {', '.join(roles)}")
        context = browser.new_context()
        try:
            page = context.new_page()
            login(page, config)
            return save_session(context, config, roles)
        finally:
            context.close()


def authenticate(context: BrowserContext, config: dict, role: str = "default") -> Page:
    """
    Full auth flow:
    - Try to restore saved session
    - If expired, log in through the form
    - Save session for future runs
    Returns the authenticated page.
    """
    if is_session_valid(context, config, role):
        return context.pages[0]

    # Need fresh login: close old pages and open a new one
    for p in context.pages:
        p.close()
    page = context.new_page()
    login(page, config)
    save_session(context, config, (role,))
    return page
