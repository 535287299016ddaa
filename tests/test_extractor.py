"""
Value extractor tests: one synthetic widget per DOM shape.
"""

import pytest

from sfdash.errors import MetricParseError
from sfdash.extractor import extract_value, find_container, read_ancestors, read_document, read_layout

from conftest import dashboard_frame, tile

pytestmark = pytest.mark.browser


def _extract(load_dashboard, body, label, **kwargs):
    frame = dashboard_frame(load_dashboard(body, **kwargs))
    header = frame.get_by_text(label, exact=True).first
    return extract_value(header, label, frame=frame)


class TestTiers:

    def test_single_unambiguous_number(self, load_dashboard):
        body = tile("Total Rows Imported", "12,480")
        assert _extract(load_dashboard, body, "Total Rows Imported") == 12480

    def test_bare_spans_in_widget(self, load_dashboard):
        """<span>label</span><span>4,213</span> with no layout hints."""
        body = '<div class="dashboardWidget"><span>Total Rows Imported</span><span>4,213</span></div>'
        assert _extract(load_dashboard, body, "Total Rows Imported") == 4213

    def test_bare_spans_with_p_label(self, load_dashboard):
        """The digit in "P2" belongs to the label, not the tile."""
        body = '<div class="dashboardWidget"><span>P2 PAX Initial Outreach</span><span>7</span></div>'
        assert _extract(load_dashboard, body, "P2 PAX Initial Outreach") == 7

    def test_table_cell(self, load_dashboard):
        body = (
            "<table><tr><th>Total Unique PAX</th><td>9</td></tr>"
            "<tr><th>Total Rows Imported</th><td>12,480</td></tr></table>"
        )
        assert _extract(load_dashboard, body, "Total Rows Imported") == 12480

    def test_record_count_attribute(self, load_dashboard):
        extra = '<div title="Record Count 8,765" style="width:200px;height:80px"></div>'
        body = tile("Total Unique PAX", extra=extra)
        assert _extract(load_dashboard, body, "Total Unique PAX") == 8765

    def test_widget_canvas_container(self, load_dashboard):
        body = (
            '<div id="widget-canvas-42" style="padding-bottom:60px">'
            '<span style="font-size:12px">P3 PAX Processing</span>'
            '<div style="font-size:30px">2,002</div></div>'
        )
        frame = dashboard_frame(load_dashboard(body))
        header = frame.get_by_text("P3 PAX Processing", exact=True)
        assert find_container(header).get_attribute("id") == "widget-canvas-42"
        assert extract_value(header, "P3 PAX Processing") == 2002


class TestNoise:

    def test_stray_comma_token_is_skipped(self, load_dashboard):
        body = tile("Total Rows Imported", ",100 1,250")
        assert _extract(load_dashboard, body, "Total Rows Imported") == 1250

    def test_percent_is_skipped_even_when_larger(self, load_dashboard):
        extra = '<span style="display:block;font-size:44px">87%</span>'
        body = tile("Total Rows Imported", "1,250", value_px=20, extra=extra)
        assert _extract(load_dashboard, body, "Total Rows Imported") == 1250

    def test_denylisted_text_never_wins(self, load_dashboard):
        extra = (
            '<span style="display:block;font-size:40px">As of Jan 5, 2025, 3:10 PM</span>'
            '<a style="display:block;font-size:40px">View Report</a>'
            '<button style="display:block;font-size:40px">Refresh 30</button>'
        )
        body = tile("Total Rows Imported", "4,213", value_px=18, extra=extra)
        assert _extract(load_dashboard, body, "Total Rows Imported") == 4213

    def test_footer_text_is_ignored(self, page):
        page.set_content(
            '<div class="dashboardWidget" style="width:300px;padding:4px">'
            '<span style="display:block;font-size:14px">Total Rows Imported</span>'
            '<span style="display:block;font-size:28px">4,213</span>'
            '<div style="height:80px"></div>'
            '<span style="display:block;font-size:40px">999</span>'
            "</div>"
        )
        container = page.locator(".dashboardWidget")
        assert read_layout(container) == 4213


class TestFailure:

    def test_label_without_number(self, load_dashboard):
        body = tile("Total Rows Imported")
        with pytest.raises(MetricParseError) as exc:
            _extract(load_dashboard, body, "Total Rows Imported")
        assert exc.value.label == "Total Rows Imported"
        assert "Total Rows Imported" in str(exc.value)

    def test_panel_text_last_resort(self, load_dashboard):
        body = "<h2>PAX Metrics</h2><p>87% complete</p><p>Grand total 31,337</p>"
        frame = dashboard_frame(load_dashboard(body))
        assert read_document(frame) == 31337


class TestAncestorWalk:
    """Header wrapped alone in plain divs; the value sits a few levels up."""

    BODY = (
        "<p>Batch 77</p>"
        "<section>"
        "<div><div><span>P5 PAX Departure</span></div></div>"
        '<div style="font-size:30px">5,150</div>'
        "</section>"
    )

    def test_value_found_above_the_wrapper(self, load_dashboard):
        frame = dashboard_frame(load_dashboard(self.BODY))
        header = frame.get_by_text("P5 PAX Departure", exact=True)

        assert read_layout(find_container(header)) is None
        assert read_ancestors(header) == 5150

    def test_extract_stops_before_document_text(self, load_dashboard):
        frame = dashboard_frame(load_dashboard(self.BODY))
        header = frame.get_by_text("P5 PAX Departure", exact=True)

        assert read_document(frame) == 77
        assert extract_value(header, "P5 PAX Departure", frame=frame) == 5150

    def test_walk_is_bounded_by_depth(self, load_dashboard):
        frame = dashboard_frame(load_dashboard(self.BODY))
        header = frame.get_by_text("P5 PAX Departure", exact=True)

        assert read_ancestors(header, depth=3) is None
