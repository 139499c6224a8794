import re
from typing import List, Optional, Tuple

from .models import SENTINEL

TITLE_HINT = re.compile(
    r"\b(?:engineer(?:ing)?|developer|manager|analyst|scientist|designer|intern(?:ship)?|architect|"
    r"specialist|consultant|administrator|coordinator|director|technician|officer|representative|"
    r"programmer|researcher|devops|sre|associate|recruiter|accountant|assistant|lead)\b",
    re.I,
)
STATUS_HINT = re.compile(
    r"\b(?:application|applying|applied|interview(?:ing)?|assessment|offer|rejected|rejection|update|"
    r"confirmation|received|submitted|thank(?:s| you)|status|your|next steps|invitation)\b",
    re.I,
)

ACRONYMS = {
    "AI", "ML", "QA", "UX", "UI", "IT", "HR", "SRE", "AWS", "GCP", "SQL", "API", "CEO", "CTO", "CFO",
    "VP", "US", "USA", "UK", "NYC", "SAP", "ERP", "CRM", "IBM", "NLP", "BI", "ETL", "SDK", "SDET",
    "iOS", "II", "III", "IV", "DevOps", "PhD", "R&D",
}
_ACRONYM_LOOKUP = {a.upper(): a for a in ACRONYMS}
_SMALL_WORDS = {"of", "and", "the", "for", "in", "at", "to", "on", "&"}

LEGAL_SUFFIX = re.compile(r"[,\s]+(?:inc\.?|incorporated|llc\.?|l\.l\.c\.?|ltd\.?|limited|gmbh|plc\.?|co\.)$", re.I)
PARENTHETICAL = re.compile(r"\s*[(\[][^)\]]*[)\]]")
REQ_CODE = re.compile(
    r"\s*(?:[-–—|:,]\s*)?(?:\b(?:req(?:uisition)?|job\s*id|ref)\b\s*[#:.]?\s*[\w-]+|#\s*\w*\d\w*|\bJR-?\d{3,}\b|\bR-?\d{4,}\b)",
    re.I,
)
TRAILING_QUALIFIER = re.compile(
    r"[\s,\-–—/|]+(?:remote|hybrid|on-?site|in-?office|contract(?:or)?|full[- ]?time|part[- ]?time|temporary|temp)\.?\s*$",
    re.I,
)
TRAILING_ROLE_WORD = re.compile(r"\s+(?:position|role|opening|opportunity|job)$", re.I)

MIN_COMPANY_LEN = 2
MIN_TITLE_LEN = 3


def looks_like_title(value: str) -> bool:
    return bool(TITLE_HINT.search(value or ""))


def looks_like_status(value: str) -> bool:
    return bool(STATUS_HINT.search(value or ""))


def smart_title_case(value: str) -> str:
    words = []
    for i, word in enumerate(value.split(" ")):
        bare = word.strip(".,")
        if bare.upper() in _ACRONYM_LOOKUP:
            words.append(word.replace(bare, _ACRONYM_LOOKUP[bare.upper()]))
        elif i > 0 and word.lower() in _SMALL_WORDS:
            words.append(word.lower())
        elif word.islower() or (word.isupper() and len(bare) > 4):
            words.append(word[:1].upper() + word[1:].lower())
        else:
            words.append(word)
    return " ".join(words)


def _collapse(value: str) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def _strip_noise(value: str) -> str:
    value = _collapse(value)
    value = PARENTHETICAL.sub("", value)
    value = REQ_CODE.sub("", value)
    prev = None
    while prev != value:
        prev = value
        value = TRAILING_QUALIFIER.sub("", value)
    return _collapse(value).strip(" -–—|:,;.!\"'")


def _is_placeholder(value: str) -> bool:
    return value.strip().lower() in {"", "n/a", "na", "none", "null", "unknown", SENTINEL.lower()}


def clean_company(value: Optional[str]) -> Optional[str]:
    """Normalized company name, or None when nothing usable is left."""
    if value is None or _is_placeholder(value):
        return None
    value = _strip_noise(value)
    prev = None
    while prev != value:
        prev = value
        value = LEGAL_SUFFIX.sub("", value).strip(" ,")
    value = smart_title_case(_collapse(value))
    if len(value) < MIN_COMPANY_LEN or _is_placeholder(value):
        return None
    return value


def clean_title(value: Optional[str]) -> Optional[str]:
    if value is None or _is_placeholder(value):
        return None
    value = _strip_noise(value)
    value = re.sub(r"^(?:the|a|an)\s+", "", value, flags=re.I)
    value = TRAILING_ROLE_WORD.sub("", value)
    value = smart_title_case(_collapse(value))
    if len(value) < MIN_TITLE_LEN or _is_placeholder(value):
        return None
    return value


def accept_company(value: Optional[str]) -> Optional[str]:
    """Reject captures that look like a title or a status phrase (field swap)."""
    if not value or looks_like_title(value) or looks_like_status(value):
        return None
    return value


def accept_title(value: Optional[str]) -> Optional[str]:
    if not value or (looks_like_status(value) and not looks_like_title(value)):
        return None
    return value


# --- subject line -----------------------------------------------------------

_SEP = r"\s*[-–—:|]\s*"

# (pattern, {field: group})
SUBJECT_PATTERNS: List[Tuple[re.Pattern, dict]] = [
    (re.compile(r"^(?:your )?application for (?:the )?(.+?) (?:position |role )?at (.+)$", re.I), {"title": 1, "company": 2}),
    (re.compile(r"^interview (?:invitation|request)" + _SEP + r"(.+?) at (.+)$", re.I), {"title": 1, "company": 2}),
    (re.compile(r"^(?:your )?application (?:to|with) (.+?) for (?:the )?(.+)$", re.I), {"company": 1, "title": 2}),
    (re.compile(r"^(?:your )?application (?:to|with) (.+?)" + _SEP + r"(.+)$", re.I), {"company": 1, "title": 2}),
    (re.compile(r"^thank you for applying (?:to|at|with) (.+?)(?:" + _SEP + r"| for (?:the )?)(.+)$", re.I), {"company": 1, "title": 2}),
    (re.compile(r"^thank you for (?:applying|your application|your interest) (?:to|at|with|in) (.+?)[!.]?$", re.I), {"company": 1}),
    (re.compile(r"^your application (?:was sent|has been (?:sent|submitted|received)) to (.+?)[!.]?$", re.I), {"company": 1}),
    (re.compile(r"^(.+?) position at (.+)$", re.I), {"title": 1, "company": 2}),
    (re.compile(r"^([^|]+?)\s*\|\s*(?:job )?application\b.*$", re.I), {"company": 1}),
    (re.compile(r"^application (?:received|confirmation|submitted|update)" + _SEP + r"(.+)$", re.I), {"title": 1}),
    (re.compile(r"^(.+?)" + _SEP + r"application (?:received|confirmation|submitted|update)$", re.I), {"company": 1}),
    (re.compile(r"^(.+?) at (.+)$", re.I), {"title": 1, "company": 2}),
]

_REPLY_PREFIX = re.compile(r"^(?:(?:re|fw|fwd)\s*:\s*)+", re.I)


def extract_from_subject(subject: str) -> Tuple[Optional[str], Optional[str]]:
    """First structural pattern that yields at least one acceptable field wins."""
    subject = _REPLY_PREFIX.sub("", _collapse(subject))
    if not subject:
        return None, None
    for pattern, fields in SUBJECT_PATTERNS:
        m = pattern.match(subject)
        if not m:
            continue
        company = accept_company(m.group(fields["company"])) if "company" in fields else None
        title = accept_title(m.group(fields["title"])) if "title" in fields else None
        if company or title:
            return clean_company(company), clean_title(title)
    return None, None


# --- body scan --------------------------------------------------------------

BODY_SCAN_CHARS = 750
MAX_SPAN_WORDS = 8

BODY_PHRASES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\bapplying for (?:the )?(.+?) (?:position|role)\b", re.I), "title"),
    (re.compile(r"\b(?:interest in|application for) (?:the )?(.+?) (?:position|role)\b", re.I), "title"),
    (re.compile(r"\bposition of\s+(.+)", re.I), "title"),
    (re.compile(r"\brole of\s+(.+)", re.I), "title"),
    (re.compile(r"\bapplying (?:to|at|with)\s+(?:the\s+)?(.+)", re.I), "company"),
]

_SPAN_END = re.compile(r"[.,;:!?\n\r]|\s+(?:and|we|our|is|has|in order)\s")
_SPAN_COMPANY = re.compile(r"\s+(?:at|with)\s+")


def _bounded_span(text: str) -> Optional[str]:
    text = text.lstrip()
    m = _SPAN_END.search(text)
    span = text[: m.start()] if m else text
    words = span.split()
    if not words or len(words) > MAX_SPAN_WORDS:
        return None
    span = " ".join(words)
    if not span[:1].isupper() and not span[:1].isdigit():
        return None
    return _strip_noise(span)


def extract_from_body(body: str) -> Tuple[Optional[str], Optional[str]]:
    head = (body or "")[:BODY_SCAN_CHARS]
    company = title = None
    for pattern, field_name in BODY_PHRASES:
        if company and title:
            break
        m = pattern.search(head)
        if not m:
            continue
        span = _bounded_span(m.group(1))
        if not span:
            continue
        if field_name == "title" and not title:
            parts = _SPAN_COMPANY.split(span, maxsplit=1)
            title = clean_title(accept_title(parts[0]))
            if len(parts) > 1 and not company:
                company = clean_company(accept_company(parts[1]))
        elif field_name == "company" and not company:
            if looks_like_title(span):
                continue
            company = clean_company(accept_company(span))
    return company, title


# --- platform-specific ------------------------------------------------------

PLATFORM_SCAN_LINES = 15
_URL = re.compile(r"https?://|www\.", re.I)
_LOCATION_SPLIT = re.compile(r"\s+[·•\-–—|]\s+")


def _top_lines(body: str) -> List[str]:
    lines = [_collapse(line) for line in (body or "").splitlines()]
    return [line for line in lines if line and not _URL.search(line)][:PLATFORM_SCAN_LINES]


def _short_capitalized(line: str, max_words: int) -> bool:
    words = line.split()
    return 0 < len(words) <= max_words and line[:1].isupper()


_GREETING = re.compile(r"^(?:hi|hello|hey|dear|greetings|good\s+(?:morning|afternoon|evening))\b", re.I)
_SENT_TO = re.compile(r"\b(?:sent|submitted)\s+to\s+(.+?)\s*[.!]?$", re.I)


def _is_greeting(line: str) -> bool:
    return bool(_GREETING.match(line)) or line.endswith(",")


def _sent_to_company(subject: str, lines: List[str]) -> Optional[str]:
    for text in [_collapse(subject)] + lines:
        m = _SENT_TO.search(text)
        if m:
            return clean_company(m.group(1))
    return None


def _title_after(lines: List[str], i: int) -> Optional[str]:
    for follower in lines[i + 1: i + 4]:
        candidate = _LOCATION_SPLIT.split(follower)[0]
        if _short_capitalized(candidate, MAX_SPAN_WORDS) and looks_like_title(candidate):
            return clean_title(candidate)
    return None


def extract_linkedin(subject: str, body: str) -> Tuple[Optional[str], Optional[str]]:
    """LinkedIn confirmation: company on a short line near the top, title right below it.

    When the subject or body says "sent to <Company>", the line repeating that
    name anchors the scan.
    """
    lines = _top_lines(body)
    sent_to = _sent_to_company(subject, lines)
    if sent_to:
        for i, line in enumerate(lines):
            if clean_company(_LOCATION_SPLIT.split(line)[0]) == sent_to:
                return sent_to, _title_after(lines, i)
    for i, line in enumerate(lines):
        head = _LOCATION_SPLIT.split(line)[0]
        if _is_greeting(head) or not _short_capitalized(head, 5):
            continue
        if looks_like_title(head) or looks_like_status(head) or "linkedin" in head.lower():
            continue
        company = clean_company(head)
        if not company:
            continue
        return company, _title_after(lines, i)
    return None, None


_INDEED_SUBJECT = re.compile(r"^indeed application:\s*(.+)$", re.I)
_INDEED_COMPANY_LINE = re.compile(r"^(.+?)\s+[-–—]\s+.+$")


def extract_indeed(subject: str, body: str) -> Tuple[Optional[str], Optional[str]]:
    title = None
    m = _INDEED_SUBJECT.match(_REPLY_PREFIX.sub("", _collapse(subject)))
    if m:
        title = clean_title(m.group(1))
    company = None
    lines = _top_lines(body)
    for i, line in enumerate(lines):
        if title and line.lower() == title.lower() and i + 1 < len(lines):
            cm = _INDEED_COMPANY_LINE.match(lines[i + 1])
            company = clean_company(accept_company(cm.group(1) if cm else lines[i + 1]))
            break
    return company, title


PLATFORM_RULES = {
    "LinkedIn": extract_linkedin,
    "Indeed": extract_indeed,
}


def extract_for_platform(platform: str, subject: str, body: str) -> Tuple[Optional[str], Optional[str]]:
    rule = PLATFORM_RULES.get(platform)
    if rule is None:
        return None, None
    return rule(subject, body)
