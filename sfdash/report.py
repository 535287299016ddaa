"""
Plain-text metrics report.
"""


def format_value(value) -> str:
    """Thousands-grouped integer; anything else as-is."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return str(value)
    return f"{int(value):,}"


def render_metrics_box(mapping: dict, title: str = "Verified Metrics") -> str:
    """
    Render label → value pairs inside a box-drawn frame.

    ┌──────────────────────────────┐
    │ Verified Metrics             │
    │ Total Rows Imported  : 4,213 │
    └──────────────────────────────┘
    """
    if not mapping:
        lines = ["(no metrics)"]
    else:
        pad = max(len(k) for k in mapping) + 2
        lines = [f"{k.ljust(pad)}: {format_value(v)}" for k, v in mapping.items()]

    width = max(len(title), *(len(line) for line in lines)) + 2
    out = [f"┌{'─' * width}┐", f"│ {title.ljust(width - 1)}│"]
    out.extend(f"│ {line.ljust(width - 1)}│" for line in lines)
    out.append(f"└{'─' * width}┘")
    return "\n".join(out)
