"""Gemini-backed extraction of application details and job leads.

Every public call returns a tagged outcome instead of raising:

* ``Resolved``       - the model answered with JSON of the expected shape
* ``SchemaMismatch`` - the model answered, but not with usable JSON
* ``TransportError`` - network failure, HTTP error, or rate limiting past the retry budget
"""
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union

import requests

from .errors import ClassificationFailure, RateLimited
from .models import SENTINEL, JobLead, PartialRecord, Status
from .retry import RetryPolicy, resilient_call

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash-latest:generateContent"
APPLICATION_BODY_CHARS = 12000
LEADS_BODY_CHARS = 30000
APPLICATION_KEYS = ("company_name", "job_title", "status")


@dataclass
class Resolved:
    value: Any


@dataclass
class SchemaMismatch:
    detail: str


@dataclass
class TransportError:
    detail: str


Outcome = Union[Resolved, SchemaMismatch, TransportError]


APPLICATION_PROMPT = """You extract structured data from job application emails for a tracking spreadsheet.
Read the email below and return ONLY a single JSON object with exactly these keys:
{{"company_name": "...", "job_title": "...", "status": "..."}}

Rules:
- "company_name": the hiring company. Never an applicant tracking system (Greenhouse, Lever, Workday) or a job board (LinkedIn, Indeed). If unclear use "{sentinel}".
- "job_title": the specific role this email is about. If unclear use "{sentinel}".
- "status": exactly one of: {statuses}.
  {applied}: application submitted or received. {viewed}: recruiter viewed the application.
  {assessment}: online assessment, coding challenge, skills test. {interview}: interview invitation or scheduling.
  {offer}: offer of employment. {rejected}: not moving forward, position filled.
  {other}: any other update or unclear.
- If the email is not about a job application, return {{"company_name": "{sentinel}", "job_title": "{sentinel}", "status": "{other}"}}.
- No markdown, no commentary, nothing outside the JSON object.

--- EMAIL START ---
Subject: {subject}
Body:
{body}
--- EMAIL END ---
"""

LEADS_PROMPT = """You extract job postings from job alert and recruiter emails.
Return ONLY a JSON array. Each element is an object with exactly these keys:
"jobTitle", "company", "location", "source", "jobUrl", "notes".
- "source": the job board or origin if stated, else "N/A".
- "jobUrl": a direct link for that specific posting, else "N/A".
- "notes": two or three key requirements, at most 150 characters, else "N/A".
Any value that is missing must be the string "N/A". If there are no postings return [].
No markdown, no commentary, nothing outside the JSON array.

--- EMAIL START ---
{body}
--- EMAIL END ---
"""

_PROMPT_STATUSES = [
    Status.APPLIED, Status.APPLICATION_VIEWED, Status.ASSESSMENT, Status.INTERVIEW,
    Status.OFFER, Status.REJECTED, Status.UPDATE_OTHER,
]


def build_application_prompt(subject: str, body: str, body_chars: int = APPLICATION_BODY_CHARS) -> str:
    return APPLICATION_PROMPT.format(
        sentinel=SENTINEL,
        statuses=", ".join(f'"{s.value}"' for s in _PROMPT_STATUSES),
        applied=f'"{Status.APPLIED.value}"',
        viewed=f'"{Status.APPLICATION_VIEWED.value}"',
        assessment=f'"{Status.ASSESSMENT.value}"',
        interview=f'"{Status.INTERVIEW.value}"',
        offer=f'"{Status.OFFER.value}"',
        rejected=f'"{Status.REJECTED.value}"',
        other=Status.UPDATE_OTHER.value,
        subject=subject or "",
        body=(body or "")[:body_chars],
    )


def build_leads_prompt(body: str, body_chars: int = LEADS_BODY_CHARS) -> str:
    return LEADS_PROMPT.format(body=(body or "")[:body_chars])


def unfence(text: str) -> str:
    """Strip optional ```json ... ``` fences around a model answer."""
    text = (text or "").strip()
    if text.startswith("```json"):
        text = text[7:].strip()
    elif text.startswith("```"):
        text = text[3:].strip()
    if text.endswith("```"):
        text = text[:-3].strip()
    return text


def parse_application(text: str) -> Outcome:
    cleaned = unfence(text)
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        return SchemaMismatch(f"invalid JSON: {e}")
    if not isinstance(data, dict):
        return SchemaMismatch(f"expected object, got {type(data).__name__}")
    missing = [k for k in APPLICATION_KEYS if k not in data]
    if missing:
        return SchemaMismatch(f"missing keys: {', '.join(missing)}")
    return Resolved(PartialRecord(
        company=_as_text(data["company_name"]),
        title=_as_text(data["job_title"]),
        status=_as_text(data["status"]),
        source="ai",
    ))


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _lead_from(item: dict) -> JobLead:
    return JobLead(
        job_title=_as_text(item.get("jobTitle")) or "N/A",
        company=_as_text(item.get("company")) or "N/A",
        location=_as_text(item.get("location")) or "N/A",
        source=_as_text(item.get("source")) or "N/A",
        job_url=_as_text(item.get("jobUrl")) or "N/A",
        notes=_as_text(item.get("notes")) or "N/A",
    )


def parse_job_leads(text: str) -> Outcome:
    cleaned = unfence(text)
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        return SchemaMismatch(f"invalid JSON: {e}")
    if isinstance(data, dict):
        # a lone object is accepted as a single posting
        data = [data]
    if not isinstance(data, list):
        return SchemaMismatch(f"expected array, got {type(data).__name__}")
    leads: List[JobLead] = []
    for item in data:
        if isinstance(item, dict) and (item.get("jobTitle") or item.get("company")):
            leads.append(_lead_from(item))
        else:
            logger.warning("Skipping malformed job lead item: %r", item)
    return Resolved(leads)


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout_sec: float = 30,
        retry: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        application_body_chars: int = APPLICATION_BODY_CHARS,
        leads_body_chars: int = LEADS_BODY_CHARS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout_sec = timeout_sec
        self.retry = retry or RetryPolicy()
        self.session = session or requests.Session()
        self.application_body_chars = application_body_chars
        self.leads_body_chars = leads_body_chars
        self.sleep = sleep

    def _post_once(self, prompt: str, max_output_tokens: int) -> str:
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.2, "maxOutputTokens": max_output_tokens},
        }
        resp = self.session.post(
            self.endpoint,
            params={"key": self.api_key},
            json=payload,
            timeout=self.timeout_sec,
        )
        if resp.status_code == 429:
            raise RateLimited("Gemini rate limit (429)")
        if resp.status_code != 200:
            raise ClassificationFailure(f"Gemini HTTP {resp.status_code}: {resp.text[:500]}")
        try:
            data = resp.json()
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ClassificationFailure(f"Unexpected Gemini response structure: {resp.text[:500]}") from e

    def generate(self, prompt: str, max_output_tokens: int = 2048) -> str:
        """Raw model text. Raises ClassificationFailure once retries are spent."""
        try:
            return resilient_call(
                self._post_once,
                prompt,
                max_output_tokens,
                policy=self.retry,
                retry_on=(RateLimited, requests.RequestException),
                sleep=self.sleep,
            )
        except requests.RequestException as e:
            raise ClassificationFailure(f"Gemini request failed: {e}") from e

    def extract_application(self, subject: str, body: str) -> Outcome:
        if not (subject or "").strip() and not (body or "").strip():
            return SchemaMismatch("empty subject and body")
        prompt = build_application_prompt(subject, body, self.application_body_chars)
        try:
            text = self.generate(prompt)
        except ClassificationFailure as e:
            logger.error("Gemini application extraction failed: %s", e)
            return TransportError(str(e))
        outcome = parse_application(text)
        if isinstance(outcome, SchemaMismatch):
            logger.warning("Gemini answer unusable (%s): %.300s", outcome.detail, text)
        return outcome

    def extract_job_leads(self, body: str) -> Outcome:
        prompt = build_leads_prompt(body, self.leads_body_chars)
        try:
            text = self.generate(prompt, max_output_tokens=8192)
        except ClassificationFailure as e:
            logger.error("Gemini lead extraction failed: %s", e)
            return TransportError(str(e))
        return parse_job_leads(text)
