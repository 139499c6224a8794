"""Company and platform hints taken from the From header."""
import re
from typing import Optional, Tuple

from .models import DEFAULT_PLATFORM

PLATFORM_DOMAINS = {
    "linkedin.com": "LinkedIn",
    "indeed.com": "Indeed",
    "indeedemail.com": "Indeed",
    "glassdoor.com": "Glassdoor",
    "ziprecruiter.com": "ZipRecruiter",
    "wellfound.com": "Wellfound",
    "angel.co": "Wellfound",
    "greenhouse.io": "Greenhouse",
    "greenhouse-mail.io": "Greenhouse",
    "lever.co": "Lever",
    "hire.lever.co": "Lever",
    "myworkday.com": "Workday",
    "myworkdayjobs.com": "Workday",
    "workday.com": "Workday",
    "icims.com": "iCIMS",
    "smartrecruiters.com": "SmartRecruiters",
    "jobvite.com": "Jobvite",
    "ashbyhq.com": "Ashby",
    "workablemail.com": "Workable",
    "workable.com": "Workable",
}

# Job boards; unlike ATS senders, their display names never name the employer.
JOB_BOARD_DOMAINS = {
    "linkedin.com", "indeed.com", "indeedemail.com", "glassdoor.com", "ziprecruiter.com",
    "wellfound.com", "angel.co", "dice.com", "monster.com", "careerbuilder.com", "handshake.com",
    "joinhandshake.com", "otta.com", "hired.com", "simplyhired.com",
}
JOB_BOARD_NAMES = re.compile(
    r"\b(?:linkedin|indeed|glassdoor|ziprecruiter|wellfound|angellist|dice|monster|careerbuilder|"
    r"handshake|otta|hired|simplyhired)\b",
    re.I,
)

# Never a hiring company: ATSes, job boards, mail providers.
IGNORED_DOMAINS = set(PLATFORM_DOMAINS) | JOB_BOARD_DOMAINS | {
    "gmail.com", "googlemail.com", "yahoo.com", "outlook.com", "hotmail.com", "live.com",
    "icloud.com", "me.com", "aol.com", "protonmail.com", "proton.me", "mail.com",
    "successfactors.com", "taleo.net", "bamboohr.com", "jazzhr.com", "applytojob.com",
    "recruitee.com", "breezy.hr", "paylocity.com", "ultipro.com",
}

SUBDOMAIN_PREFIXES = (
    "mail", "email", "e", "careers", "career", "jobs", "job", "talent", "recruiting",
    "recruitment", "hr", "notifications", "notification", "no-reply", "noreply", "reply",
    "hello", "info", "news", "us", "www",
)

# Two-part public suffixes that must be dropped as a unit.
COMPOUND_TLDS = ("co.uk", "com.au", "co.in", "co.jp", "com.br", "co.nz", "com.sg")

SENDER_NOISE = re.compile(
    r"\b(?:careers?|recruit(?:ing|ment|er)?s?|talent(?:\s+acquisition)?|hiring(?:\s+team)?|"
    r"hr|human\s+resources|jobs?|team|people|notifications?|no-?reply|do\s*not\s*reply|"
    r"applications?|workday|greenhouse|lever|icims|via|at)\b",
    re.I,
)

IGNORED_SENDER_NAMES = {name.lower() for name in PLATFORM_DOMAINS.values()} | {"linkedin jobs", "indeed apply"}

_ADDRESS = re.compile(r"<\s*([^<>\s]+@[^<>\s]+)\s*>")
_BARE_ADDRESS = re.compile(r"([\w.+-]+@[\w-]+(?:\.[\w-]+)*)")


def split_sender(sender: str) -> Tuple[str, str]:
    """'"Acme Careers" <jobs@acme.com>' -> ('Acme Careers', 'jobs@acme.com')"""
    sender = (sender or "").strip()
    m = _ADDRESS.search(sender)
    if m:
        name = sender[: m.start()].strip().strip('"').strip("'").strip()
        return name, m.group(1).lower()
    m = _BARE_ADDRESS.search(sender)
    if m:
        return "", m.group(1).lower()
    return "", ""


def sender_domain(sender: str) -> str:
    _, address = split_sender(sender)
    if "@" not in address:
        return ""
    return address.rsplit("@", 1)[1].strip(".")


def _matches(domain: str, root: str) -> bool:
    return domain == root or domain.endswith("." + root)


def detect_platform(sender: str) -> str:
    domain = sender_domain(sender)
    for root, platform in PLATFORM_DOMAINS.items():
        if domain and _matches(domain, root):
            return platform
    return DEFAULT_PLATFORM


def is_ignored_domain(domain: str) -> bool:
    return any(_matches(domain, root) for root in IGNORED_DOMAINS)


def parse_company_from_sender_name(sender: str) -> Optional[str]:
    name, address = split_sender(sender)
    if not name:
        return None
    domain = address.rsplit("@", 1)[-1]
    if any(_matches(domain, root) for root in JOB_BOARD_DOMAINS) or JOB_BOARD_NAMES.search(name):
        return None
    name = re.split(r"\s+[|\-–—:]\s+", name)[0]
    cleaned = SENDER_NOISE.sub(" ", name)
    cleaned = re.sub(r"[^\w&.' -]", " ", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip(" .-'")
    if len(cleaned) < 2 or cleaned.lower() in IGNORED_SENDER_NAMES:
        return None
    return cleaned


def parse_company_from_domain(sender: str) -> Optional[str]:
    domain = sender_domain(sender)
    if "." not in domain or is_ignored_domain(domain):
        return None
    for suffix in COMPOUND_TLDS:
        if domain.endswith("." + suffix):
            domain = domain[: -len(suffix) - 1]
            break
    else:
        domain = domain.rsplit(".", 1)[0] if "." in domain else domain
    labels = [label for label in domain.split(".") if label]
    while len(labels) > 1 and labels[0] in SUBDOMAIN_PREFIXES:
        labels.pop(0)
    if not labels:
        return None
    # the registrable label is the last one left
    tokens = [t for t in re.split(r"[^a-z0-9]+", labels[-1]) if t]
    if not tokens:
        return None
    company = " ".join(t.capitalize() for t in tokens)
    return company if len(company) >= 2 else None
