"""
Error types raised by the dashboard automation.

Structural failures (missing frame, missing label, unparseable value) carry
the name the caller asked for so a failed step can be triaged from the log
line alone.
"""


class SfdashError(RuntimeError):
    """Base class for all automation failures."""


class ConfigError(SfdashError, ValueError):
    """A required configuration value is missing or malformed."""


class NavigationError(SfdashError):
    """Login, redirect, or tab switch did not reach the expected state."""


class FrameNotFoundError(SfdashError):
    def __init__(self, context: str, timeout_ms: int):
        self.context = context
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Dashboard frame not found in '{context}' after {timeout_ms}ms"
        )


class LabelNotFoundError(SfdashError):
    def __init__(self, label: str, detail: str = ""):
        self.label = label
        msg = f'Label "{label}" not found'
        super().__init__(f"{msg}: {detail}" if detail else msg)


class MetricParseError(SfdashError):
    def __init__(self, label: str):
        self.label = label
        super().__init__(f'Could not parse metric value for "{label}"')
