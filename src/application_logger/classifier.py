import logging
from typing import Optional

from .extractors import ChainResult, ExtractorChain
from .models import SENTINEL, ExtractedRecord, RawMessage, Status
from .sender import detect_platform
from .status_rules import StatusNormalizer

logger = logging.getLogger(__name__)

# AI statuses the keyword scan is allowed to overwrite
_AMBIGUOUS = (Status.UPDATE_OTHER, Status.MANUAL_REVIEW)


class Classifier:
    def __init__(self, chain: ExtractorChain, normalizer: Optional[StatusNormalizer] = None):
        self.chain = chain
        self.normalizer = normalizer or StatusNormalizer()

    def classify(self, message: RawMessage) -> ExtractedRecord:
        result = self.chain.run(message)
        record = ExtractedRecord(
            company=result.company or SENTINEL,
            title=result.title or SENTINEL,
            status=self.resolve_status(result, message.body_text),
            platform=detect_platform(message.sender),
            source="+".join(result.sources),
            failure="; ".join(result.failures) or None,
        )
        logger.info(
            "Classified %s: company=%r title=%r status=%s via [%s]",
            message.id, record.company, record.title,
            record.status.value if record.status else None, record.source or "-",
        )
        return record

    def resolve_status(self, result: ChainResult, body_text: str) -> Optional[Status]:
        """Body keywords decide unless the AI gave a definite in-enum status."""
        if not result.ai_resolved:
            return self.normalizer.detect_status(body_text)
        ai_status = Status.parse(result.status_hint)
        if ai_status is not None and ai_status not in _AMBIGUOUS:
            return ai_status
        keyword_status = self.normalizer.detect_status(body_text)
        if keyword_status is not None:
            logger.debug("AI status %r enhanced by keywords to %s", result.status_hint, keyword_status.value)
            return keyword_status
        return ai_status or Status.UPDATE_OTHER
