from __future__ import annotations

import re
from collections import Counter
from typing import Sequence

from .config_schema import ClassifierConfig
from .models import MusicClassification

_MUSIC_PATTERNS = (
    re.compile(
        r"\b(la la|na na|oh oh|yeah yeah|hey hey|baby|love|heart|dance|party|night|girl|boy"
        r"|sexy|body|feel|groove)\b",
        re.I,
    ),
    re.compile(r"\b(ooh|ahh|mmm|uh|huh|whoa|yo|yow|ayy)\b", re.I),
    re.compile(r"\b(step in|pull up|rock with|vibe with|hit the|on the floor)\b", re.I),
    re.compile(r"\b(baddie|baller|flexin|drippin|slay|fire|lit|vibes)\b", re.I),
)

_NARRATION_PATTERNS = (
    re.compile(
        r"\b(today|first|second|third|step|tip|here's|let me|i'm going|welcome|hello"
        r"|hi everyone)\b",
        re.I,
    ),
    re.compile(r"\b(you should|you can|try this|recommend|suggest|best way|how to)\b", re.I),
    re.compile(r"\b(location|address|price|cost|budget|book|reserve|call)\b", re.I),
    re.compile(r"\b(number one|number two|activity|experience|place|venue)\b", re.I),
)

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_LINE_SPLIT_RE = re.compile(r"[,\n]")


def count_repetitions(words: Sequence[str]) -> int:
    """Occurrences beyond the first of every token longer than 2 chars seen more than twice."""
    counts = Counter(w for w in words if len(w) > 2)
    return sum(n - 1 for n in counts.values() if n > 2)


def rhyme_score(text: str, *, suffix_chars: int = 3) -> int:
    lines = [line.strip() for line in _LINE_SPLIT_RE.split(text or "") if line.strip()]
    score = 0
    for prev, cur in zip(lines, lines[1:]):
        end1 = prev.split()[-1].casefold()[-suffix_chars:]
        end2 = cur.split()[-1].casefold()[-suffix_chars:]
        if end1 == end2 and len(end1) >= 2:
            score += 1
    return score


def classify_transcript(
    transcript: str, cfg: ClassifierConfig | None = None
) -> MusicClassification:
    """
    Score a transcript as song lyrics versus spoken narration.

    Vocabulary hits, long run-on sentences, heavy token repetition and line-end
    rhymes all count toward music; instructional vocabulary counts toward narration.
    """
    c = cfg or ClassifierConfig()
    text = (transcript or "").casefold()
    words = text.split()

    music = sum(len(p.findall(text)) for p in _MUSIC_PATTERNS) * c.music_match_weight
    narration = sum(len(p.findall(text)) for p in _NARRATION_PATTERNS) * c.narration_match_weight

    sentences = [s for s in _SENTENCE_SPLIT_RE.split(transcript or "") if s.strip()]
    if len(words) / max(len(sentences), 1) > c.long_sentence_words:
        music += c.long_sentence_bonus

    if count_repetitions(words) > len(words) * c.repetition_ratio:
        music += c.repetition_bonus

    music += rhyme_score(transcript, suffix_chars=c.rhyme_suffix_chars)

    total = music + narration
    confidence = music / total if total > 0 else 0.5

    return MusicClassification(
        is_likely_music=music > narration and music >= c.min_music_score,
        confidence=confidence,
        music_score=music,
        narration_score=narration,
    )
