"""
Help chatbot FAQ matcher.

Questions, answers and keywords live in per-language JSON files under
nyayasetu/locales/. Matching is a word-overlap score, no model involved.
"""

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).resolve().parent.parent / "locales"
DEFAULT_LANGUAGE = "en"

KEYWORD_WEIGHT = 3
INPUT_WORD_WEIGHT = 2
QUESTION_WORD_WEIGHT = 1
MIN_MATCH_SCORE = 3

# Checked in order; anything else is reported as latin
SCRIPT_RANGES: tuple[tuple[str, int, int], ...] = (
    ("devanagari", 0x0900, 0x097F),
    ("bengali", 0x0980, 0x09FF),
    ("tamil", 0x0B80, 0x0BFF),
    ("telugu", 0x0C00, 0x0C7F),
    ("kannada", 0x0C80, 0x0CFF),
    ("malayalam", 0x0D00, 0x0D7F),
    ("gujarati", 0x0A80, 0x0AFF),
    ("punjabi", 0x0A00, 0x0A7F),
    ("odia", 0x0B00, 0x0B7F),
)


@dataclass
class FAQEntry:
    id: int
    question: str
    answer: str
    keywords: list[str] = field(default_factory=list)


@dataclass
class FAQCatalog:
    language: str
    entries: list[FAQEntry]
    fallback: str
    quick_actions: list[str]


@dataclass
class FAQAnswer:
    answer: str
    matched: bool
    language: str
    faq_id: Optional[int] = None
    score: int = 0

    def to_dict(self) -> dict:
        return {
            "answer": self.answer,
            "matched": self.matched,
            "language": self.language,
            "faqId": self.faq_id,
            "score": self.score,
        }


@lru_cache(maxsize=1)
def _locale_codes() -> frozenset[str]:
    return frozenset(p.stem for p in LOCALES_DIR.glob("*.json"))


def available_languages() -> list[str]:
    return sorted(_locale_codes())


def resolve_language(language: Optional[str]) -> str:
    """A shipped locale code, or English for anything else."""
    if language in _locale_codes():
        return language
    if language:
        logger.info("No FAQ locale for %r, using %s", language[:20], DEFAULT_LANGUAGE)
    return DEFAULT_LANGUAGE


def load_catalog(language: str = DEFAULT_LANGUAGE) -> FAQCatalog:
    """Load a language's FAQ file, falling back to English when it is not shipped."""
    return _read_catalog(resolve_language(language))


@lru_cache(maxsize=None)
def _read_catalog(language: str) -> FAQCatalog:
    path = LOCALES_DIR / f"{language}.json"
    data = json.loads(path.read_text(encoding="utf-8"))["chatbot"]
    entries = [
        FAQEntry(
            id=int(key),
            question=item["question"],
            answer=item["answer"],
            keywords=item.get("keywords", []),
        )
        for key, item in data.get("faq", {}).items()
    ]
    return FAQCatalog(
        language=language,
        entries=entries,
        fallback=data["fallback"],
        quick_actions=list(data.get("quickActions", {}).values()),
    )


def detect_script(text: str) -> str:
    codepoints = {ord(ch) for ch in text}
    for script, low, high in SCRIPT_RANGES:
        if any(low <= cp <= high for cp in codepoints):
            return script
    return "latin"


def score_entry(user_input: str, entry: FAQEntry) -> int:
    """Overlap score of lowercase input against one FAQ entry."""
    score = 0
    for keyword in entry.keywords:
        if keyword.lower() in user_input:
            score += KEYWORD_WEIGHT

    question = entry.question.lower()
    for word in user_input.split():
        if len(word) > 2 and word in question:
            score += INPUT_WORD_WEIGHT
    for word in question.split():
        if len(word) > 3 and word in user_input:
            score += QUESTION_WORD_WEIGHT
    return score


def find_best_answer(message: str, language: str = DEFAULT_LANGUAGE) -> FAQAnswer:
    catalog = load_catalog(language)
    user_input = message.lower().strip()

    if len(user_input) < 2 or not catalog.entries:
        return FAQAnswer(answer=catalog.fallback, matched=False, language=catalog.language)

    best: Optional[FAQEntry] = None
    best_score = 0
    for entry in catalog.entries:
        score = score_entry(user_input, entry)
        if score > best_score:
            best, best_score = entry, score

    if best is None or best_score < MIN_MATCH_SCORE:
        return FAQAnswer(answer=catalog.fallback, matched=False, language=catalog.language, score=best_score)

    logger.debug("FAQ %d matched with score %d", best.id, best_score)
    return FAQAnswer(
        answer=best.answer,
        matched=True,
        language=catalog.language,
        faq_id=best.id,
        score=best_score,
    )


def get_quick_actions(language: str = DEFAULT_LANGUAGE) -> list[str]:
    return load_catalog(language).quick_actions
