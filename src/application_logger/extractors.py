"""Ordered strategies that try to resolve {company, title} for one message.

Each strategy implements ``try_extract(message) -> PartialRecord | None`` and
can be tested on its own. ``ExtractorChain`` combines them: for every field
the first strategy whose value survives cleaning wins.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .ai_client import Resolved, SchemaMismatch, TransportError
from .models import PartialRecord, RawMessage
from .nlp_rules import clean_company, clean_title, extract_for_platform, extract_from_body, extract_from_subject
from .sender import detect_platform, parse_company_from_domain, parse_company_from_sender_name

logger = logging.getLogger(__name__)


class Extractor(ABC):
    name = "extractor"

    @abstractmethod
    def try_extract(self, message: RawMessage) -> Optional[PartialRecord]:
        ...


class AIExtractor(Extractor):
    name = "ai"

    def __init__(self, client):
        self.client = client

    def try_extract(self, message: RawMessage) -> Optional[PartialRecord]:
        outcome = self.client.extract_application(message.subject, message.body_text)
        if isinstance(outcome, Resolved):
            return outcome.value
        if isinstance(outcome, TransportError):
            return PartialRecord(source=self.name, failure=outcome.detail)
        if isinstance(outcome, SchemaMismatch):
            return None
        raise TypeError(f"Unexpected classification outcome: {outcome!r}")


class PlatformExtractor(Extractor):
    name = "platform"

    def try_extract(self, message: RawMessage) -> Optional[PartialRecord]:
        platform = detect_platform(message.sender)
        company, title = extract_for_platform(platform, message.subject, message.body_text)
        if not (company or title):
            return None
        return PartialRecord(company=company, title=title, source=self.name)


class SubjectPatternExtractor(Extractor):
    name = "subject"

    def try_extract(self, message: RawMessage) -> Optional[PartialRecord]:
        company, title = extract_from_subject(message.subject)
        if not (company or title):
            return None
        return PartialRecord(company=company, title=title, source=self.name)


class BodyScanExtractor(Extractor):
    name = "body"

    def try_extract(self, message: RawMessage) -> Optional[PartialRecord]:
        company, title = extract_from_body(message.body_text)
        if not (company or title):
            return None
        return PartialRecord(company=company, title=title, source=self.name)


class SenderExtractor(Extractor):
    name = "sender"

    def try_extract(self, message: RawMessage) -> Optional[PartialRecord]:
        company = parse_company_from_sender_name(message.sender) or parse_company_from_domain(message.sender)
        if not company:
            return None
        return PartialRecord(company=company, source=self.name)


@dataclass
class ChainResult:
    company: Optional[str] = None
    title: Optional[str] = None
    status_hint: Optional[str] = None     # raw status text from the AI stage
    ai_resolved: bool = False
    sources: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return bool(self.company and self.title)


class ExtractorChain:
    def __init__(self, strategies: Sequence[Extractor]):
        self.strategies = list(strategies)

    def run(self, message: RawMessage) -> ChainResult:
        result = ChainResult()
        for strategy in self.strategies:
            if result.complete:
                break
            try:
                partial = strategy.try_extract(message)
            except Exception:
                logger.exception("Extractor %s crashed on message %s", strategy.name, message.id)
                continue
            if partial is None:
                continue
            if partial.failure:
                result.failures.append(f"{strategy.name}: {partial.failure}")
                continue
            if isinstance(strategy, AIExtractor):
                result.ai_resolved = True
                result.status_hint = partial.status
            used = False
            if not result.company:
                result.company = clean_company(partial.company)
                used = used or bool(result.company)
            if not result.title:
                result.title = clean_title(partial.title)
                used = used or bool(result.title)
            if used:
                result.sources.append(strategy.name)
        return result


def default_chain(ai_client=None) -> ExtractorChain:
    strategies: List[Extractor] = []
    if ai_client is not None:
        strategies.append(AIExtractor(ai_client))
    strategies.extend([
        PlatformExtractor(),
        SubjectPatternExtractor(),
        BodyScanExtractor(),
        SenderExtractor(),
    ])
    return ExtractorChain(strategies)
