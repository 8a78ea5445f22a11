"""Text similarity primitives used by duplicate-question detection.

Pure functions, no I/O:
- normalize: lowercase, strip diacritics and punctuation, collapse whitespace
- tokenize: normalized tokens of 3+ characters minus language stop-words
- jaccard: |A & B| / |A | B| over token sets
- ngram_dice: Dice coefficient over character n-gram multisets

normalize and tokenize are fixed points on their own output.
"""

import re
import unicodedata
from collections import Counter
from typing import FrozenSet, Iterable, List

STOPWORDS_IT: FrozenSet[str] = frozenset(
    {
        "che", "chi", "come", "con", "del", "della", "delle", "degli", "dei",
        "dello", "dopo", "fare", "fatto", "fra", "gli", "hai", "hanno", "ho",
        "il", "in", "la", "le", "lo", "ma", "mi", "nei", "nel", "nella",
        "nelle", "non", "per", "piu", "puoi", "quale", "quali", "quello",
        "questa", "questo", "se", "si", "sono", "su", "sul", "sulla", "tra",
        "tu", "un", "una", "uno",
    }
)  # fmt: skip

STOPWORDS_EN: FrozenSet[str] = frozenset(
    {
        "about", "an", "and", "are", "as", "at", "can", "could", "did", "do",
        "does", "for", "from", "how", "in", "is", "it", "of", "on", "or",
        "the", "this", "that", "to", "was", "were", "what", "when", "where",
        "which", "why", "with", "would", "you",
    }
)  # fmt: skip

MIN_TOKEN_LENGTH = 3

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def is_italian(language: str) -> bool:
    return (language or "").strip().lower().startswith("it")


def stopwords_for(language: str) -> FrozenSet[str]:
    """Stop-word set for a language code; anything not Italian uses English."""
    return STOPWORDS_IT if is_italian(language) else STOPWORDS_EN


def normalize(text: str) -> str:
    """Lowercase, strip diacritics and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize("NFD", text or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _NON_ALNUM.sub(" ", stripped.lower())
    return _WHITESPACE.sub(" ", cleaned).strip()


def tokenize(text: str, language: str) -> List[str]:
    """Informative tokens of text, in order (duplicates kept)."""
    stopwords = stopwords_for(language)
    return [
        token
        for token in normalize(text).split(" ")
        if len(token) >= MIN_TOKEN_LENGTH and token not in stopwords
    ]


def jaccard(tokens_a: Iterable[str], tokens_b: Iterable[str]) -> float:
    """Jaccard index over token sets; 0.0 when either side is empty."""
    set_a, set_b = set(tokens_a), set(tokens_b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)


def char_ngrams(text: str, n: int = 3) -> List[str]:
    """Character n-grams of the normalized text with whitespace removed.

    Text shorter than n yields no n-grams.
    """
    if n < 1:
        raise ValueError(f"n must be positive, got {n}")
    clean = normalize(text).replace(" ", "")
    if len(clean) < n:
        return []
    return [clean[i : i + n] for i in range(len(clean) - n + 1)]


def ngram_dice(text_a: str, text_b: str, n: int = 3) -> float:
    """Dice coefficient over character n-gram multisets.

    2 * |A & B| / (|A| + |B|) with multiset intersection; 0.0 when either
    side produces no n-grams.
    """
    grams_a = char_ngrams(text_a, n)
    grams_b = char_ngrams(text_b, n)
    if not grams_a or not grams_b:
        return 0.0
    overlap = sum((Counter(grams_a) & Counter(grams_b)).values())
    return 2.0 * overlap / (len(grams_a) + len(grams_b))


def shares_prefix(tokens_a: List[str], tokens_b: List[str], length: int) -> bool:
    """True when both token lists start with the same `length` tokens."""
    if len(tokens_a) < length or len(tokens_b) < length:
        return False
    return tokens_a[:length] == tokens_b[:length]
