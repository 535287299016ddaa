"""
Frame resolver tests against synthetic workspaces.
"""

import pytest

from sfdash.errors import FrameNotFoundError
from sfdash.frames import current_panel, frame_has_signals, resolve_dashboard_frame, selected_tab_name

from conftest import dashboard_doc, iframe, nested, plain_doc, tile

pytestmark = pytest.mark.browser


class TestResolveDashboardFrame:

    def test_single_iframe(self, load_dashboard, config):
        page = load_dashboard(tile("Total Rows Imported", "4,213"))
        frame = resolve_dashboard_frame(page, config)
        assert frame.parent_frame == page.main_frame
        assert frame.locator("span.lastRefreshDate").count() == 1

    def test_descends_into_nested_embed(self, load_workspace, config):
        """Outer wrapper has no signal; the inner analytics embed does."""
        inner = dashboard_doc(tile("Total Rows Imported", "4,213"))
        page = load_workspace({"Monarch": nested(inner)}, "Monarch")

        frame = resolve_dashboard_frame(page, config)
        assert frame.parent_frame is not None
        assert frame.parent_frame.parent_frame == page.main_frame
        assert frame.get_by_text("Total Rows Imported").count() == 1

    def test_signalled_outer_frame_is_not_descended(self, load_workspace, config):
        inner = dashboard_doc(tile("Total Unique PAX", "9"))
        outer = dashboard_doc(tile("Total Rows Imported", "4,213") + iframe(inner))
        page = load_workspace({"Monarch": outer}, "Monarch")

        frame = resolve_dashboard_frame(page, config)
        assert frame.parent_frame == page.main_frame
        assert frame.get_by_text("Total Rows Imported").count() == 1

    def test_only_visible_panel_is_searched(self, load_workspace, config):
        docs = {
            "Monarch": dashboard_doc(tile("Total Rows Imported", "1")),
            "Tadpole": dashboard_doc(tile("Total Unique PAX", "2")),
        }
        page = load_workspace(docs, "Tadpole")
        frame = resolve_dashboard_frame(page, config)
        assert frame.get_by_text("Total Unique PAX").count() == 1
        assert selected_tab_name(page) == "Tadpole"

    def test_timeout_names_the_tab(self, load_workspace, config):
        config["frame_timeout"] = 1_000
        page = load_workspace({"Monarch": plain_doc("<p>Nothing here</p>")}, "Monarch")

        with pytest.raises(FrameNotFoundError) as exc:
            resolve_dashboard_frame(page, config)
        assert exc.value.context == "Monarch"
        assert "Monarch" in str(exc.value)


class TestHelpers:

    def test_current_panel_follows_aria_controls(self, load_workspace):
        docs = {"Monarch": plain_doc(""), "Bogart": plain_doc("")}
        page = load_workspace(docs, "Bogart")
        assert current_panel(page, timeout=2_000).get_attribute("id") == "panel-Bogart"

    def test_current_panel_without_panels(self, page):
        page.set_content("<main><p>no tabs</p></main>")
        assert current_panel(page, timeout=1_000).evaluate("el => el.tagName") == "BODY"

    def test_custom_signals(self, page):
        page.set_content("<div class='reportBody'>x</div>")
        assert not frame_has_signals(page.main_frame)
        assert frame_has_signals(page.main_frame, [".reportBody"])
