"""Stop-word filtered token sets, the lexical half of the hybrid similarity."""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path

from structlog import get_logger

logger = get_logger()

DEFAULT_STOP_WORDS_PATH = Path(__file__).parent / "data" / "stopwords.txt"

# Tokens must be longer than this to count
MIN_TOKEN_LENGTH = 3

_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")
_SEPARATORS = re.compile(r"[\s,;.!?()\[\]{}\"']+")


def load_stop_words(path: Path | str | None = None) -> frozenset[str]:
    """Read a stop-word file: one word per line, '#' starts a comment line."""
    source = Path(path) if path is not None else DEFAULT_STOP_WORDS_PATH
    words = set()
    with source.open(encoding="utf-8") as f:
        for line in f:
            word = line.strip().lower()
            if word and not word.startswith("#"):
                words.add(word)

    logger.debug("Stop words loaded", path=str(source), count=len(words))
    return frozenset(words)


def normalize(text: str) -> str:
    """Lowercase, replace anything that is not a letter, digit or space, collapse spaces."""
    lowered = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


class Tokenizer:
    """Turns memory text into a set of content words.

    Frequency is deliberately discarded: two facts that share a word once or
    five times overlap the same amount.
    """

    def __init__(self, stop_words: Iterable[str] | None = None):
        if stop_words is None:
            self.stop_words = load_stop_words()
        else:
            self.stop_words = frozenset(word.lower() for word in stop_words)

    def tokenize(self, text: str) -> frozenset[str]:
        """Extract the token set of a text."""
        return frozenset(
            token
            for token in _SEPARATORS.split(normalize(text))
            if len(token) > MIN_TOKEN_LENGTH and token not in self.stop_words
        )


def jaccard(a: frozenset[str] | set[str], b: frozenset[str] | set[str]) -> float:
    """|A ∩ B| / |A ∪ B|, or 0.0 when either set is empty."""
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)
