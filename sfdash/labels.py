"""
Label matcher: locate the tile header that shows a given label.

Strategies, strictest first; a looser one is only tried when every stricter
one found nothing visible:

  exact     whitespace-collapsed, case-insensitive full-text match
  prefix    "P<n> <word>" head of the label  ("P0 PAX ..." survives
            wording drift after the category prefix)
  keywords  every significant word present, any order
"""

import logging
import re
from typing import List, NamedTuple, Optional

from playwright.sync_api import Frame, Locator

logger = logging.getLogger("sfdash")

STOPWORDS = {"the", "of", "and", "or", "for", "to", "a", "in", "on", "by", "with"}

_PREFIX_RE = re.compile(r"^\s*(P\d+\s+[^\s(]+)", re.IGNORECASE)

# Scan at most this many matches per strategy for a visible one.
_MAX_MATCHES = 25


class LabelMatch(NamedTuple):
    locator: Locator
    strategy: str


def exact_pattern(label: str) -> re.Pattern:
    words = [re.escape(w) for w in label.split()]
    return re.compile(r"^\s*" + r"\s+".join(words) + r"\s*$", re.IGNORECASE)


def prefix_pattern(label: str) -> Optional[re.Pattern]:
    """Pattern for the "P<n> <word>" head of the label, None if it has none."""
    m = _PREFIX_RE.match(label)
    if not m:
        return None
    words = [re.escape(w) for w in m.group(1).split()]
    return re.compile(r"^\s*" + r"\s+".join(words) + r"\b", re.IGNORECASE)


def keywords(label: str) -> List[str]:
    return [w for w in re.split(r"[^A-Za-z0-9]+", label) if w and w.lower() not in STOPWORDS]


def keyword_pattern(label: str) -> re.Pattern:
    """Lookahead per significant word; falls back to exact_pattern."""
    words = keywords(label)
    if not words:
        return exact_pattern(label)
    lookaheads = "".join(rf"(?=[\s\S]*\b{re.escape(w)}\b)" for w in words)
    return re.compile(r"^" + lookaheads + r"[\s\S]*$", re.IGNORECASE)


def strategies(label: str) -> list:
    """(name, pattern) pairs in cascade order."""
    cascade = [("exact", exact_pattern(label))]
    prefix = prefix_pattern(label)
    if prefix is not None:
        cascade.append(("prefix", prefix))
    cascade.append(("keywords", keyword_pattern(label)))
    return cascade


def _first_visible(matches: Locator) -> Optional[Locator]:
    count = min(matches.count(), _MAX_MATCHES)
    for i in range(count):
        candidate = matches.nth(i)
        try:
            if candidate.is_visible():
                return candidate
        except Exception:
            continue
    return None


def find_label(root: Frame, label: str) -> Optional[LabelMatch]:
    """First visible node for label under the cascade, or None."""
    for name, pattern in strategies(label):
        found = _first_visible(root.get_by_text(pattern))
        if found is not None:
            if name != "exact":
                logger.debug(f'  Label "{label}" matched by {name} strategy')
            return LabelMatch(found, name)
    return None
