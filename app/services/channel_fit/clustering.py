"""
Title clustering

Maps a free-text product title to a coarse, order-independent cluster key.
The same function groups a tenant's own listings and joins rows across
tenants, so keys always line up between the two.
"""
import re
import unicodedata
from typing import List

from app.services.channel_fit.types import UNCATEGORIZED_KEY

MAX_KEY_TOKENS = 4

# Anything that is not a letter, digit or whitespace becomes a separator.
# \w also admits "_", which is stripped separately.
_PUNCTUATION_RE = re.compile(r"[^\w\s]|_")

STOP_WORDS = frozenset([
    # prepositions / articles / connectors
    "of", "in", "on", "at", "to", "or", "an", "it", "is", "so",
    "no", "my", "up", "us", "do", "if", "as", "be", "by",
    # e-commerce filler
    "for", "with", "and", "the", "pack", "set", "pcs", "piece", "new",
    "best", "premium", "quality", "original", "genuine", "free",
    "shipping", "sale", "offer", "combo", "buy",
    # variant attributes
    "size", "color", "colour", "small", "medium", "large", "xl", "xxl", "xs",
    "red", "blue", "green", "black", "white", "pink", "yellow", "grey",
    "gray", "brown",
])


def normalize_title(title: str) -> List[str]:
    """
    Significant keywords of a title, first occurrence order, no duplicates.

    Two-character tokens survive ("tv", "pc", "4k"); single characters,
    stop words and pure numbers do not.
    """
    if not title:
        return []
    text = unicodedata.normalize("NFKC", title).lower()
    text = _PUNCTUATION_RE.sub(" ", text)

    seen = set()
    tokens = []
    for word in text.split():
        if len(word) < 2 or word in STOP_WORDS or word.isdigit():
            continue
        if word not in seen:
            seen.add(word)
            tokens.append(word)
    return tokens


def build_cluster_key(title: str) -> str:
    """Sorted first four keywords joined by spaces, or the uncategorized sentinel."""
    keywords = sorted(normalize_title(title))[:MAX_KEY_TOKENS]
    return " ".join(keywords) or UNCATEGORIZED_KEY


def cluster_keywords(title: str) -> List[str]:
    """Tokens of the cluster key (empty for uncategorized titles)."""
    key = build_cluster_key(title)
    if key == UNCATEGORIZED_KEY:
        return []
    return key.split(" ")
