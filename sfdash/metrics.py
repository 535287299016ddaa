"""
Numeric token grammar and candidate scoring for dashboard tiles.

Everything here is pure: the browser side (extractor.py) snapshots text and
layout for the elements of a widget, and these functions decide which number
belongs to the tile.

Token grammar:
  - comma-grouped thousands  "12,480"  or a plain digit run  "4213"
  - digits glued to letters are part of a word, not a value ("P0", "Q3")
  - a token whose previous non-space character is a comma is dropped
    (two adjacent values rendered as one string: "1,250,100")
  - a token immediately followed by "%" is dropped

Selection policy (selection_key):
  highest fontSize*1000 + renderedArea wins; on equal score a comma-grouped
  token beats a bare number; on a full tie the earlier node wins.
"""

import re
from typing import List, NamedTuple, Optional

NUMBER_RE = re.compile(r"(?<![A-Za-z0-9])(?:\d{1,3}(?:,\d{3})+|\d+)(?![A-Za-z0-9])")

MONTH_RE = re.compile(
    r"\b(jan(uary)?|feb(ruary)?|mar(ch)?|apr(il)?|may|june?|july?|aug(ust)?"
    r"|sep(t(ember)?)?|oct(ober)?|nov(ember)?|dec(ember)?)\b",
    re.IGNORECASE,
)
MERIDIEM_RE = re.compile(r"\d\s*(am|pm)\b|\b(am|pm)\b", re.IGNORECASE)
DENYLIST = ("as of", "view report", "more dashboard actions", "last refresh", "refresh")

AS_OF_RE = re.compile(r"as of .*$", re.IGNORECASE)
TRAILING_HUNDREDS_RE = re.compile(r"^(.*?),([1-9]00)$")

# Elements whose bottom edge sits this close to the widget's bottom edge are
# footer text ("View Report", "As of ...").
FOOTER_MARGIN_PX = 44


class Candidate(NamedTuple):
    value: int
    token: str
    score: float
    order: int

    @property
    def comma_grouped(self) -> bool:
        return "," in self.token


def selection_key(c: Candidate):
    return (c.score, c.comma_grouped, -c.order)


def normalize_space(text: str) -> str:
    """Collapse all whitespace (including NBSP) to single spaces."""
    return re.sub(r"\s+", " ", (text or "").replace("\u00a0", " ")).strip()


def is_denylisted(text: str) -> bool:
    """True for dates, timestamps and dashboard chrome that carry stray digits."""
    lower = (text or "").lower()
    if any(phrase in lower for phrase in DENYLIST):
        return True
    return bool(MONTH_RE.search(lower) or MERIDIEM_RE.search(lower))


def extract_tokens(text: str) -> List[str]:
    """Return the qualifying numeric tokens of text, in order."""
    s = (text or "").replace("\u00a0", " ")
    tokens = []
    for m in NUMBER_RE.finditer(s):
        j = m.start() - 1
        while j >= 0 and s[j].isspace():
            j -= 1
        if j >= 0 and s[j] == ",":
            continue
        k = m.end()
        while k < len(s) and s[k].isspace():
            k += 1
        if k < len(s) and s[k] == "%":
            continue
        tokens.append(m.group(0))
    return tokens


def token_value(token: str) -> int:
    return int(token.replace(",", ""))


def parse_int(text: str) -> Optional[int]:
    """First qualifying integer in text, or None."""
    tokens = extract_tokens(text)
    return token_value(tokens[0]) if tokens else None


def choose_token(tokens: List[str], known_tokens=None) -> str:
    """
    Pick the token that represents a node's value.

    The largest comma-grouped token wins, else the largest bare run; equal
    values keep the earlier token. When known_tokens is given, a chosen token
    ending in ",N00" is cut back to its prefix if that prefix also stands
    alone somewhere in the widget; this undoes a vendor artifact where a
    tooltip "100" is glued to the value.
    """
    grouped = [t for t in tokens if "," in t]
    chosen = max(grouped or tokens, key=token_value)
    if known_tokens is not None:
        tail = TRAILING_HUNDREDS_RE.match(chosen)
        if tail and tail.group(1) in known_tokens:
            chosen = tail.group(1)
    return chosen


def score_nodes(nodes: list, container_bottom: float = None, *,
                footer_margin: float = FOOTER_MARGIN_PX,
                correct_trailing: bool = True) -> List[Candidate]:
    """
    Turn element snapshots into scored candidates.

    Each node is a dict with keys text, fontSize, width, height, bottom
    (as produced by extractor._SNAPSHOT_JS). When container_bottom is None
    the footer filter is skipped.
    """
    known = None
    if correct_trailing:
        known = set()
        for node in nodes:
            known.update(extract_tokens(node.get("text", "")))

    candidates = []
    for order, node in enumerate(nodes):
        text = (node.get("text") or "").strip()
        if not text or is_denylisted(text):
            continue
        if container_bottom is not None:
            if container_bottom - node.get("bottom", 0) < footer_margin:
                continue
        tokens = extract_tokens(text)
        if not tokens:
            continue
        token = choose_token(tokens, known)
        score = float(node.get("fontSize") or 0) * 1000 + \
            float(node.get("width") or 0) * float(node.get("height") or 0)
        candidates.append(Candidate(token_value(token), token, score, order))
    return candidates


def select_best(candidates: List[Candidate]) -> Optional[Candidate]:
    """Apply selection_key; None when there is nothing to choose from."""
    if not candidates:
        return None
    return max(candidates, key=selection_key)


def pick_value(nodes: list, container_bottom: float = None, **kwargs) -> Optional[int]:
    best = select_best(score_nodes(nodes, container_bottom, **kwargs))
    return best.value if best else None


def strip_as_of(text: str) -> str:
    """Collapse whitespace and cut a trailing "As of <timestamp>" footer."""
    return AS_OF_RE.sub("", normalize_space(text)).strip()


def first_panel_number(text: str) -> Optional[int]:
    """Last-resort read: first qualifying token of the panel text."""
    return parse_int(strip_as_of(text))
