"""Citation handling for AI-generated text.

AI answers and period comparisons reference individual log records inline
as `[Log #<id>]`. This module finds those references and splits text into
literal and citation spans so a view can make each citation activatable.
"""

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Union

if TYPE_CHECKING:
    from .coordinator import Coordinator

# Matches: [Log #42]
CITATION_PATTERN = re.compile(r"\[Log #(?P<log_id>\d+)\]")

# Pictographs, dingbats, flags and the joiners/variation selectors that glue them together
DECORATIVE_SYMBOL_PATTERN = re.compile(
    "["
    "\U0001F000-\U0001FAFF"
    "\u2600-\u27BF"
    "\u2B00-\u2BFF"
    "\uFE0E\uFE0F"
    "\u200D"
    "\u20E3"
    "]"
)


@dataclass(frozen=True)
class TextSpan:
    """Literal text, rendered as-is."""

    text: str


@dataclass(frozen=True)
class CitationSpan:
    """An activatable reference to a log record."""

    log_id: str
    raw: str


Span = Union[TextSpan, CitationSpan]


def strip_decorative_symbols(text: str) -> str:
    """Remove emoji and similar decorative symbols, leaving everything else untouched."""
    return DECORATIVE_SYMBOL_PATTERN.sub("", text)


def extract_citation(text: str) -> Optional[str]:
    """Return the id of the first cited log, or None.

    Example:
        >>> extract_citation("See [Log #42] for detail")
        '42'
    """
    match = CITATION_PATTERN.search(text or "")
    return match.group("log_id") if match else None


def extract_citations(text: str) -> List[str]:
    """Ids of every cited log, in order of appearance (duplicates kept)."""
    return [match.group("log_id") for match in CITATION_PATTERN.finditer(text or "")]


def split_for_rendering(text: str, strip_symbols: bool = True) -> List[Span]:
    """Partition text into ordered literal and citation spans.

    Args:
        text: Raw AI output.
        strip_symbols: Apply strip_decorative_symbols() before splitting.

    Returns:
        Spans whose concatenation (citations contributing their raw marker)
        reproduces the (optionally stripped) input exactly. Empty literal
        spans are omitted.
    """
    text = text or ""
    if strip_symbols:
        text = strip_decorative_symbols(text)

    spans: List[Span] = []
    position = 0
    for match in CITATION_PATTERN.finditer(text):
        if match.start() > position:
            spans.append(TextSpan(text[position:match.start()]))
        spans.append(CitationSpan(log_id=match.group("log_id"), raw=match.group(0)))
        position = match.end()
    if position < len(text):
        spans.append(TextSpan(text[position:]))
    return spans


def join_spans(spans: List[Span]) -> str:
    """Inverse of split_for_rendering()."""
    return "".join(span.text if isinstance(span, TextSpan) else span.raw for span in spans)


def activate_citation(span: CitationSpan, coordinator: "Coordinator") -> int:
    """Highlight the cited log across views. Returns the new trigger counter."""
    return coordinator.set_highlight(span.log_id)
