import re
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import ConfigurationError
from .models import Status

ACCEPTANCE_KEYWORDS = [
    "pleased to offer",
    "offer of employment",
    "job offer",
    "extend an offer",
    "extend you an offer",
    "offer letter",
    "welcome to the team",
]
INTERVIEW_KEYWORDS = [
    "schedule an interview",
    "invite you to interview",
    "invitation to interview",
    "interview invitation",
    "like to interview you",
    "phone screen",
    "book a time",
    "schedule a call",
    "next round",
    "speak with you further",
]
ASSESSMENT_KEYWORDS = [
    "online assessment",
    "coding challenge",
    "technical assessment",
    "skills assessment",
    "take home assignment",
    "hackerrank",
    "codility",
    "codesignal",
]
REJECTION_KEYWORDS = [
    "not moving forward",
    "not be moving forward",
    "decided not to proceed",
    "will not be proceeding",
    "pursue other candidates",
    "move forward with other candidates",
    "position has been filled",
    "we regret to inform",
    "unfortunately",
    "not selected",
]

# Fixed precedence: acceptance first, rejection last.
DEFAULT_STATUS_KEYWORDS: List[Tuple[Status, List[str]]] = [
    (Status.OFFER, ACCEPTANCE_KEYWORDS),
    (Status.INTERVIEW, INTERVIEW_KEYWORDS),
    (Status.ASSESSMENT, ASSESSMENT_KEYWORDS),
    (Status.REJECTED, REJECTION_KEYWORDS),
]

_KEYWORD_GROUPS = {
    "acceptance": Status.OFFER,
    "interview": Status.INTERVIEW,
    "assessment": Status.ASSESSMENT,
    "rejection": Status.REJECTED,
}

_PUNCT = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Lowercase, turn punctuation into spaces, collapse whitespace."""
    text = _PUNCT.sub(" ", (text or "").lower())
    return _SPACES.sub(" ", text).strip()


def _phrase_pattern(phrases: Iterable[str]) -> re.Pattern:
    alternatives = sorted({normalize_text(p) for p in phrases if normalize_text(p)}, key=len, reverse=True)
    if not alternatives:
        return re.compile(r"(?!x)x")
    return re.compile(r"\b(?:" + "|".join(re.escape(a) for a in alternatives) + r")\b")


class StatusNormalizer:
    def __init__(self, rules: Optional[List[Tuple[Status, List[str]]]] = None):
        self.rules = [(status, _phrase_pattern(words)) for status, words in (rules or DEFAULT_STATUS_KEYWORDS)]

    @classmethod
    def from_config(cls, keywords: Optional[Dict[str, List[str]]]) -> "StatusNormalizer":
        """Keyword lists from the ``tracker.status_keywords`` block; missing groups keep the defaults."""
        keywords = keywords or {}
        unknown = set(keywords) - set(_KEYWORD_GROUPS)
        if unknown:
            raise ConfigurationError(f"Unknown status keyword groups: {sorted(unknown)}")
        rules = []
        for name, status in _KEYWORD_GROUPS.items():
            default = dict(DEFAULT_STATUS_KEYWORDS)[status]
            rules.append((status, list(keywords.get(name) or default)))
        return cls(rules)

    def detect_status(self, body_text: str) -> Optional[Status]:
        """None when nothing matches, so callers keep whatever status they already know."""
        text = normalize_text(body_text)
        if not text:
            return None
        for status, pattern in self.rules:
            if pattern.search(text):
                return status
        return None


_DEFAULT = StatusNormalizer()


def detect_status(body_text: str) -> Optional[Status]:
    return _DEFAULT.detect_status(body_text)
