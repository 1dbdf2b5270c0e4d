"""
Mention context extraction.

Candidate lookups receive only the mention text and its begin offset; these
helpers recover the text surrounding the mention from the document.
"""
import re
from typing import List, Tuple

_SENTENCE_BREAK = re.compile(r"[.!?]+\s+|\n\n+")
_FALLBACK_CHARS = 100


def sentence_spans(text: str) -> List[Tuple[int, int]]:
    """Character ranges of the sentences in ``text``, trailing break included."""
    spans = []
    begin = 0
    for brk in _SENTENCE_BREAK.finditer(text):
        spans.append((begin, brk.end()))
        begin = brk.end()
    if begin < len(text):
        spans.append((begin, len(text)))
    return spans


def extract_sentence_context(
    text: str,
    start: int,
    end: int,
    max_sentences: int = 0,
) -> str:
    """
    Extract the sentence containing the mention.

    Args:
        text: Full document text
        start: Mention begin offset
        end: Mention end offset
        max_sentences: Neighbouring sentences to include on each side

    Returns:
        The sentence(s) around the mention, or a 100 character window when
        the mention lies outside every detected sentence
    """
    spans = sentence_spans(text)
    if not spans:
        return text

    home = next((i for i, (lo, hi) in enumerate(spans) if lo <= start < hi), None)
    if home is None:
        lo, hi = max(0, start - _FALLBACK_CHARS), min(len(text), end + _FALLBACK_CHARS)
        return text[lo:hi].strip()

    lo = spans[max(0, home - max_sentences)][0]
    hi = spans[min(len(spans) - 1, home + max_sentences)][1]
    return text[lo:hi].strip()


def extract_window_context(
    text: str,
    start: int,
    end: int,
    window_chars: int = 150,
) -> str:
    """Extract a character window around the mention, trimmed to whole words."""
    lo = max(0, start - window_chars)
    hi = min(len(text), end + window_chars)

    # Drop a partial first or last word cut by the window edges
    if lo > 0:
        first_space = text.find(" ", lo, start)
        if first_space != -1:
            lo = first_space + 1
    if hi < len(text):
        last_space = text.rfind(" ", end, hi)
        if last_space != -1:
            hi = last_space

    return text[lo:hi].strip()


def extract_context(
    text: str,
    start: int,
    end: int,
    mode: str = "window",
    **kwargs,
) -> str:
    """Extract context around a mention using ``mode`` ("sentence" or "window")."""
    extractors = {
        "sentence": extract_sentence_context,
        "window": extract_window_context,
    }
    if mode not in extractors:
        raise ValueError(f"Unknown context mode: {mode}")
    return extractors[mode](text, start, end, **kwargs)
