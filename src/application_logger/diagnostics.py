import logging
from datetime import datetime
from typing import Any, List, Optional

from .models import RawMessage, format_cell

logger = logging.getLogger(__name__)

DETAIL_CHARS = 500


class DiagnosticLog:
    """Buffers audit rows describing per-message failures; flushed once per run.

    Without a store the rows are only logged.
    """

    def __init__(self, module_name: str, store=None):
        self.module_name = module_name
        self.store = store
        self.rows: List[List[Any]] = []

    def record(self, error_type: str, detail: str, message: Optional[RawMessage], now: datetime) -> None:
        detail = (detail or "")[:DETAIL_CHARS]
        logger.warning("[%s] %s on message %s: %s", self.module_name, error_type, message.id if message else "-", detail)
        self.rows.append([
            format_cell(now),
            self.module_name,
            error_type,
            detail,
            (message.subject if message else "")[:DETAIL_CHARS],
            message.id if message else "",
        ])

    def flush(self) -> int:
        if not self.rows or self.store is None:
            return 0
        count = len(self.rows)
        try:
            self.store.append_rows(self.rows)
        except Exception:
            logger.exception("Could not write %d diagnostic row(s)", count)
            return 0
        self.rows = []
        return count
