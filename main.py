"""
Salesforce Dashboard Metrics Reader — Entry Point

Usage:
    python main.py
    python main.py --tab Monarch --tab Bluebird
    python main.py --metric "Total Rows Imported" --refresh
    python main.py --setup-only
    python main.py --config path/to/config.yaml
"""

import argparse
import logging
import os
import signal
import sys

from playwright.sync_api import sync_playwright

from sfdash.utils import setup_logging, load_config, get_session_path, capture_diagnostics, step
from sfdash.errors import ConfigError
from sfdash.auth import authenticate, ensure_session_snapshots
from sfdash.navigator import prevent_popouts
from sfdash.dashboard import DashboardPage
from sfdash.report import render_metrics_box


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Read KPI tiles from the tabbed Salesforce Lightning dashboard"
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to config.yaml (default: ./config.yaml)"
    )
    parser.add_argument(
        "--tab", "-t",
        action="append",
        default=[],
        help="Workspace tab to read (repeatable; default: whatever Home shows)"
    )
    parser.add_argument(
        "--metric", "-m",
        action="append",
        default=[],
        help="Metric label to read (repeatable; default: the configured metric list)"
    )
    parser.add_argument("--refresh", action="store_true", help="Refresh each dashboard before reading")
    parser.add_argument("--headless", action="store_true", help="Run Chromium headless")
    parser.add_argument(
        "--setup-only",
        action="store_true",
        help="Only create the session snapshot(s), then exit"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug output on the console")
    return parser.parse_args(argv)


def _log_config(logger, config: dict) -> None:
    logger.info("Configuration loaded:")
    logger.info(f"  Login URL:        {config['login_url']}")
    logger.info(f"  Home URL:         {config['home_url']}")
    logger.info(f"  User:             {config['username']}")
    logger.info(f"  App title:        {config['app_title']}")
    logger.info(f"  Tabs:             {', '.join(config['tabs'])}")
    logger.info(f"  Metrics:          {len(config['metrics'])}")
    logger.info(f"  Timeout x:        {config['timeout_multiplier']}")
    logger.info(f"  Headless:         {config['headless']}")


def run(args) -> int:
    # ── Setup ────────────────────────────────────────────────────────
    logger = setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    if args.headless:
        config["headless"] = True
    _log_config(logger, config)

    metric_variants = [[m] for m in args.metric] or config["metrics"]
    tabs = args.tab or [None]

    # ── Launch browser ───────────────────────────────────────────────
    is_headless = config["headless"]

    with sync_playwright() as p:
        launch_args: list[str] = []
        if is_headless:
            launch_args.append("--disable-blink-features=AutomationControlled")

        browser = p.chromium.launch(
            headless=is_headless,
            slow_mo=0 if is_headless else 100,
            args=launch_args or None,
        )
        page = None

        try:
            with step("Session snapshot"):
                ensure_session_snapshots(browser, config)
            if args.setup_only:
                logger.info("✅ Session snapshot ready.")
                return 0

            # ── Build context options ─────────────────────────────────
            ctx_opts: dict = {"viewport": {"width": 1920, "height": 1080}}
            session_path = get_session_path(config)
            if os.path.exists(session_path):
                logger.info("Loading saved session...")
                ctx_opts["storage_state"] = session_path

            context = browser.new_context(**ctx_opts)
            page = authenticate(context, config)
            prevent_popouts(page)

            dash = DashboardPage(page, config)
            with step("Open dashboard via Home"):
                dash.open_dashboard()
                dash.verify_dashboard_title()
                dash.reset_dashboard_viewport()

            for tab in tabs:
                name = tab or "Dashboard"
                if tab:
                    with step(f"Switch to {tab}"):
                        dash.switch_tab(tab)
                        dash.reset_dashboard_viewport()

                if args.refresh:
                    with step(f"Refresh {name}"):
                        dash.refresh_dashboard()

                with step(f"Read {name} metrics"):
                    mapping = dash.collect_metrics(metric_variants)
                print(render_metrics_box(mapping, title=f"{name} — Verified Metrics"))

            logger.info("\n✅ All tabs read!")
            return 0
        except Exception as e:
            logger.error(f"Run failed: {e.__class__.__name__}: {e}")
            if page is not None:
                capture_diagnostics(page, f"run_failed_{e.__class__.__name__}")
            return 1
        finally:
            logger.info("Closing browser...")
            browser.close()


def main(argv=None) -> int:
    return run(_parse_args(argv))


# Handle Ctrl+C at the top level too (e.g. mid-poll)
signal.signal(signal.SIGINT, lambda *_: (print("\n⚠ Ctrl+C pressed. Exiting..."), os._exit(130)))

if __name__ == "__main__":
    sys.exit(main())
