"""
Validation - Keyword Sentiment.

Classifies headlines and post titles as bullish, bearish or neutral
from keyword hits. Used when a social source supplies raw posts
instead of a score, and for news headlines.
"""

import re
from enum import Enum
from typing import Dict, Iterable, List


class TextSentiment(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


BULLISH_KEYWORDS: List[str] = [
    "surge", "surges", "soar", "soars", "rally", "rallies", "gain", "gains",
    "bull", "bullish", "breakout", "all-time high", "ath", "record high",
    "moon", "pump", "adoption", "approval", "approved", "etf inflow",
    "accumulate", "accumulation", "buy", "buying", "upgrade", "partnership",
    "rise", "rises", "jump", "jumps", "recover", "recovery",
]

BEARISH_KEYWORDS: List[str] = [
    "crash", "crashes", "plunge", "plunges", "dump", "dumps", "sell-off",
    "selloff", "bear", "bearish", "drop", "drops", "fall", "falls", "decline",
    "hack", "hacked", "exploit", "lawsuit", "ban", "banned", "crackdown",
    "liquidation", "liquidations", "fraud", "scam", "outflow", "fear",
    "collapse", "sell", "selling", "slump", "tumble", "tumbles",
]

_WORD_RE = re.compile(r"[a-z][a-z\-]*")


def _count_hits(text: str, keywords: Iterable[str]) -> int:
    lowered = text.lower()
    words = set(_WORD_RE.findall(lowered))
    hits = 0
    for keyword in keywords:
        if " " in keyword:
            if keyword in lowered:
                hits += 1
        elif keyword in words:
            hits += 1
    return hits


def classify_text(text: str) -> TextSentiment:
    """Classify one headline by keyword majority."""
    bullish = _count_hits(text, BULLISH_KEYWORDS)
    bearish = _count_hits(text, BEARISH_KEYWORDS)
    if bullish > bearish:
        return TextSentiment.BULLISH
    if bearish > bullish:
        return TextSentiment.BEARISH
    return TextSentiment.NEUTRAL


def sentiment_breakdown(texts: Iterable[str]) -> Dict[TextSentiment, int]:
    counts = {s: 0 for s in TextSentiment}
    for text in texts:
        counts[classify_text(text)] += 1
    return counts


def sentiment_score(texts: Iterable[str]) -> float:
    """
    Score a batch of texts on the 0-100 scale, 50 being neutral.
    
    Neutral texts dilute the score towards 50.
    """
    counts = sentiment_breakdown(texts)
    total = sum(counts.values())
    if total == 0:
        return 50.0
    net = counts[TextSentiment.BULLISH] - counts[TextSentiment.BEARISH]
    return 50.0 + 50.0 * net / total
