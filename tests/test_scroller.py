"""
Scroll-into-view driver tests with custom scroll containers.
"""

import pytest

from sfdash.errors import LabelNotFoundError
from sfdash.labels import find_label
from sfdash.scroller import is_in_view, scroll_into_view, scroll_to_top

from conftest import dashboard_frame, tile

pytestmark = pytest.mark.browser

SCROLLER = (
    '<div class="slds-scrollable_y" style="height:300px;overflow-y:auto">'
    '<div style="height:2000px">charts</div>{target}<div style="height:400px"></div>'
    "</div>"
)

# Inserts the target tile only once the scroller has been scrolled far enough.
LAZY = """
<div class="slds-scrollable_y" id="s" style="height:300px;overflow-y:auto">
  <div style="height:2400px">charts</div><div id="slot"></div><div style="height:400px"></div>
</div>
<script>
document.getElementById("s").addEventListener("scroll", (e) => {
    const slot = document.getElementById("slot");
    if (e.target.scrollTop > 1600 && !slot.children.length) {
        slot.innerHTML = '<div class="dashboardWidget"><span>P6 PAX Departed</span><span>77</span></div>';
    }
});
</script>
"""


class TestScrollIntoView:

    def test_label_below_the_fold(self, load_dashboard, config):
        body = SCROLLER.format(target=tile("P5 PAX Departure", "3,141"))
        frame = dashboard_frame(load_dashboard(body))
        label = find_label(frame, "P5 PAX Departure").locator
        assert not is_in_view(label)

        steps = scroll_into_view(frame, "P5 PAX Departure", config)

        assert 1 <= steps <= config["max_scrolls"]
        assert is_in_view(find_label(frame, "P5 PAX Departure").locator)

    def test_already_visible_is_a_no_op(self, load_dashboard, config):
        frame = dashboard_frame(load_dashboard(tile("Total Rows Imported", "4,213")))
        assert scroll_into_view(frame, "Total Rows Imported", config) == 0

    def test_lazily_rendered_label(self, load_dashboard, config):
        frame = dashboard_frame(load_dashboard(LAZY))
        assert find_label(frame, "P6 PAX Departed") is None

        steps = scroll_into_view(frame, "P6 PAX Departed", config)

        assert steps >= 4
        assert is_in_view(find_label(frame, "P6 PAX Departed").locator)

    def test_label_above_scroll_position(self, load_dashboard, config):
        body = (
            '<div class="slds-scrollable_y" id="s" style="height:300px;overflow-y:auto">'
            + tile("Total Unique PAX", "512")
            + '<div style="height:3000px">charts</div></div>'
        )
        frame = dashboard_frame(load_dashboard(body))
        frame.evaluate("document.getElementById('s').scrollTop = 2500")
        assert not is_in_view(find_label(frame, "Total Unique PAX").locator)

        scroll_into_view(frame, "Total Unique PAX", config)
        assert is_in_view(find_label(frame, "Total Unique PAX").locator)

    def test_missing_label_raises(self, load_dashboard, config):
        config["max_scrolls"] = 3
        frame = dashboard_frame(load_dashboard(SCROLLER.format(target="")))
        with pytest.raises(LabelNotFoundError) as exc:
            scroll_into_view(frame, "P7 Resettlement Stipend Paid", config)
        assert exc.value.label == "P7 Resettlement Stipend Paid"

    def test_scroll_to_top(self, load_dashboard):
        frame = dashboard_frame(load_dashboard(SCROLLER.format(target="")))
        frame.evaluate("document.querySelector('.slds-scrollable_y').scrollTop = 900")
        scroll_to_top(frame)
        assert frame.evaluate("document.querySelector('.slds-scrollable_y').scrollTop") == 0
