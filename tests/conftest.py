"""
Shared fixtures and synthetic-DOM builders.

Browser tests load a fake Lightning workspace with page.set_content(): a
tablist, one tab panel per tab, and srcdoc iframes holding the dashboard.
Selecting a tab rebuilds that panel's iframe, so frames of the previous
selection become detached the way they do in Lightning.
"""

import html
import json

import pytest

from sfdash.utils import load_config

TEST_ENV = {
    "SF_LOGIN_URL": "https://example.my.salesforce.com/",
    "SF_HOME_URL": "https://example.lightning.force.com",
    "SF_USER": "qa.user@example.com",
    "SF_PWD": "secret",
    "PW_FRAME_TIMEOUT": "5000",
    "PW_TAB_TIMEOUT": "5000",
    "PW_METRIC_TIMEOUT": "3000",
}


@pytest.fixture
def empty_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("", encoding="utf-8")
    return str(path)


@pytest.fixture
def config(empty_yaml, tmp_path):
    cfg = load_config(config_path=empty_yaml, env=dict(TEST_ENV))
    cfg["state_dir"] = str(tmp_path)
    cfg["scroll_step"] = 400
    cfg["max_scrolls"] = 15
    return cfg


# ── DOM builders ─────────────────────────────────────────────────────────

IFRAME_STYLE = "width:1000px;height:600px;border:0"


def tile(label: str, value: str = "", *, label_px: int = 14, value_px: int = 32,
         footer: str = "", extra: str = "") -> str:
    """A dashboard widget: label, value, optional footer line, 60px bottom padding."""
    value_html = f'<span class="value" style="display:block;font-size:{value_px}px">{value}</span>' if value else ""
    footer_html = f'<span class="footer" style="display:block;font-size:11px">{footer}</span>' if footer else ""
    return (
        '<div class="dashboardWidget" style="width:320px;padding:8px 8px 60px 8px;margin:8px">'
        f'<span class="title" style="display:block;font-size:{label_px}px">{label}</span>'
        f"{value_html}{extra}{footer_html}</div>"
    )


def dashboard_doc(body: str, stamp: str = "As of Jan 5, 2025, 3:10 PM") -> str:
    """Dashboard document carrying the lastRefreshDate signal."""
    return (
        "<!doctype html><html><body style='margin:0;font-family:sans-serif'>"
        f"{body}<div><span class='lastRefreshDate'>{stamp}</span></div></body></html>"
    )


def plain_doc(body: str) -> str:
    """A document without any dashboard signal (outer legacy embed)."""
    return f"<!doctype html><html><body style='margin:0'>{body}</body></html>"


def iframe(doc: str, title: str = "") -> str:
    title_attr = f' title="{title}"' if title else ""
    return f'<iframe{title_attr} style="{IFRAME_STYLE}" srcdoc="{html.escape(doc, quote=True)}"></iframe>'


def nested(inner_doc: str, outer_body: str = "<p>Loading analytics…</p>") -> str:
    """Outer document without signals wrapping an inner dashboard iframe."""
    return plain_doc(outer_body + iframe(inner_doc))


def workspace(docs: dict, selected: str) -> str:
    """
    Tabbed workspace page. docs maps tab name → iframe document html.

    window.clicks counts tab clicks; window.builds counts iframe rebuilds.
    """
    tabs = "".join(
        f'<button role="tab" id="tab-{name}" aria-controls="panel-{name}" '
        f'aria-selected="false">{name}</button>'
        for name in docs
    )
    panels = "".join(
        f'<div role="tabpanel" id="panel-{name}" hidden style="min-height:620px"></div>'
        for name in docs
    )
    payload = json.dumps(docs).replace("</", "<\\/")
    return f"""<!doctype html><html><body style="margin:0">
<div role="tablist">{tabs}</div>
{panels}
<script>
window.clicks = 0;
window.builds = 0;
const DOCS = {payload};
function selectTab(name) {{
    for (const tab of document.querySelectorAll('[role="tab"]')) {{
        tab.setAttribute("aria-selected", String(tab.textContent === name));
    }}
    for (const panel of document.querySelectorAll('[role="tabpanel"]')) {{
        const own = panel.id === "panel-" + name;
        panel.hidden = !own;
        if (own) {{
            panel.innerHTML = "";
            const frame = document.createElement("iframe");
            frame.title = "dashboard";
            frame.style.cssText = "{IFRAME_STYLE}";
            frame.srcdoc = DOCS[name];
            panel.appendChild(frame);
            window.builds++;
        }}
    }}
}}
for (const tab of document.querySelectorAll('[role="tab"]')) {{
    tab.addEventListener("click", () => {{
        window.clicks++;
        setTimeout(() => selectTab(tab.textContent), 50);
    }});
}}
selectTab({json.dumps(selected)});
</script>
</body></html>"""


@pytest.fixture
def load_workspace(page):
    """Load a workspace page; returns the page."""
    def _load(docs: dict, selected: str):
        page.set_content(workspace(docs, selected))
        return page
    return _load


@pytest.fixture
def load_dashboard(load_workspace):
    """Single Monarch tab whose dashboard holds body."""
    def _load(body: str, **kwargs):
        return load_workspace({"Monarch": dashboard_doc(body, **kwargs)}, "Monarch")
    return _load


def dashboard_frame(page):
    """Content frame of the visible panel's dashboard iframe, once rendered."""
    handle = page.wait_for_selector('[role="tabpanel"]:not([hidden]) iframe[title="dashboard"]')
    frame = handle.content_frame()
    frame.wait_for_selector("span.lastRefreshDate")
    return frame
