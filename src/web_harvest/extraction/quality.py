"""
Content quality metrics: counts, Flesch reading ease, a heuristic
quality score and reading time.
"""

import math
import re
from dataclasses import dataclass
from typing import Any

MIN_WORDS_FOR_FLESCH = 5
FLESCH_BASE = 206.835
FLESCH_SENTENCE_FACTOR = 1.015
FLESCH_SYLLABLE_FACTOR = 84.6

_VOWELS = "aeiouy"
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_NON_ALPHA = re.compile(r"[^a-z]")


def count_syllables(word: str) -> int:
    """
    Estimate syllables in an English word.

    Counts vowel groups, drops a silent trailing 'e', and adds one for a
    consonant + 'le' ending. Words with letters have at least one syllable.
    """
    clean = _NON_ALPHA.sub("", word.lower())
    if not clean:
        return 0
    if len(clean) <= 3:
        return 1

    count = 0
    previous_vowel = False
    for char in clean:
        is_vowel = char in _VOWELS
        if is_vowel and not previous_vowel:
            count += 1
        previous_vowel = is_vowel

    if clean.endswith("e"):
        count -= 1
    if clean.endswith("le") and clean[-3] not in _VOWELS:
        count += 1

    return max(1, count)


@dataclass
class QualityMetrics:
    """
    Attributes:
        flesch_reading_ease: In [0, 100], or None below MIN_WORDS_FOR_FLESCH
        quality_score: Heuristic in [0, 100]
        reading_time_minutes: Rounded up, None for empty text
    """

    word_count: int
    sentence_count: int
    paragraph_count: int
    syllable_count: int
    avg_words_per_sentence: float | None
    flesch_reading_ease: int | None
    quality_score: int
    reading_time_minutes: int | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "word_count": self.word_count,
            "sentence_count": self.sentence_count,
            "paragraph_count": self.paragraph_count,
            "syllable_count": self.syllable_count,
            "avg_words_per_sentence": self.avg_words_per_sentence,
            "flesch_reading_ease": self.flesch_reading_ease,
            "quality_score": self.quality_score,
            "reading_time_minutes": self.reading_time_minutes,
        }


def analyze_quality(text: str, paragraph_count: int = 0, words_per_minute: int = 200) -> QualityMetrics:
    """
    Compute quality metrics for a block of text.

    Args:
        text: Plain text of the main content
        paragraph_count: Number of <p> elements in the block
        words_per_minute: Reading speed for reading time

    Returns:
        QualityMetrics
    """
    words = text.split()
    sentences = [s for s in _SENTENCE_SPLIT.split(text) if s.strip()]
    word_count = len(words)
    sentence_count = len(sentences)
    syllables = sum(count_syllables(w) for w in words)

    avg_words = word_count / sentence_count if sentence_count else None

    flesch = None
    if word_count >= MIN_WORDS_FOR_FLESCH and sentence_count >= 1:
        raw = (
            FLESCH_BASE
            - FLESCH_SENTENCE_FACTOR * (word_count / sentence_count)
            - FLESCH_SYLLABLE_FACTOR * (syllables / word_count)
        )
        flesch = round(max(0.0, min(100.0, raw)))

    score = 50
    if word_count > 300:
        score += 10
    if word_count > 700:
        score += 10
    if word_count > 1500:
        score += 5
    if paragraph_count >= 3:
        score += 10
    if paragraph_count >= 7:
        score += 5
    if avg_words is not None and 10 <= avg_words <= 25:
        score += 10
    if flesch is not None and flesch >= 50:
        score += 5

    return QualityMetrics(
        word_count=word_count,
        sentence_count=sentence_count,
        paragraph_count=paragraph_count,
        syllable_count=syllables,
        avg_words_per_sentence=round(avg_words, 1) if avg_words is not None else None,
        flesch_reading_ease=flesch,
        quality_score=max(0, min(100, score)),
        reading_time_minutes=math.ceil(word_count / words_per_minute) if word_count else None,
    )
