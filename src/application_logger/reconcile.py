"""Match extracted records against tracked applications and merge state.

``CompanyIndex`` is built once per run from a full read of the sheet. Every
decision is applied back into it straight away, so later messages in the same
run see earlier ones, and the accumulated changes are flushed as one batch of
updates plus one batch of appends.
"""
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .models import (
    OVERRIDE_TERMINAL,
    ColumnMap,
    ExtractedRecord,
    RawMessage,
    Status,
    TrackedApplication,
    higher_status,
    is_sentinel,
    rank,
)

logger = logging.getLogger(__name__)

EMAIL_LINK_TEMPLATE = "https://mail.google.com/mail/u/0/#inbox/{message_id}"

UPDATE = "update"
APPEND = "append"


def normalize_key(company: str) -> str:
    return (company or "").strip().lower()


class CompanyIndex:
    def __init__(self, columns: ColumnMap, first_free_row: int = 2):
        self.columns = columns
        self._rows: Dict[int, TrackedApplication] = {}
        self._buckets: Dict[str, List[TrackedApplication]] = {}
        self._dirty: set = set()
        self._appended: List[int] = []
        self._contributors: Dict[int, List[str]] = {}
        self._next_row_id = first_free_row

    @classmethod
    def from_rows(cls, rows: List[List], columns: ColumnMap, header_rows: int = 1) -> "CompanyIndex":
        """``rows`` is the whole sheet including header rows; row ids are 1-based sheet rows."""
        index = cls(columns, first_free_row=len(rows) + 1)
        for offset, values in enumerate(rows[header_rows:]):
            if not any(str(v).strip() for v in values):
                continue
            app = TrackedApplication.from_row(header_rows + offset + 1, values, columns)
            index._rows[app.row_id] = app
            index._add_to_bucket(app)
        return index

    def __len__(self) -> int:
        return len(self._rows)

    def _add_to_bucket(self, app: TrackedApplication) -> None:
        key = normalize_key(app.company)
        if not key or is_sentinel(app.company):
            return
        bucket = self._buckets.setdefault(key, [])
        bucket.append(app)
        bucket.sort(key=lambda a: a.row_id, reverse=True)

    def _remove_from_bucket(self, app: TrackedApplication) -> None:
        key = normalize_key(app.company)
        bucket = self._buckets.get(key, [])
        self._buckets[key] = [a for a in bucket if a.row_id != app.row_id]
        if not self._buckets[key]:
            del self._buckets[key]

    def find_by_normalized_key(self, key: str) -> List[TrackedApplication]:
        """Rows for this company key, most recent (highest row) first."""
        return list(self._buckets.get(key, []))

    def find_match(self, company: str, title: Optional[str]) -> Optional[TrackedApplication]:
        candidates = self.find_by_normalized_key(normalize_key(company))
        if not candidates:
            return None
        if title and not is_sentinel(title):
            wanted = title.strip().lower()
            for app in candidates:
                if app.title and app.title.strip().lower() == wanted:
                    return app
        return candidates[0]

    def get(self, row_id: int) -> Optional[TrackedApplication]:
        return self._rows.get(row_id)

    def apply(self, mutation: "RowMutation", message_id: Optional[str] = None) -> TrackedApplication:
        app = mutation.application
        if mutation.kind == APPEND:
            app = replace(app, row_id=self._next_row_id)
            self._next_row_id += 1
            self._appended.append(app.row_id)
        else:
            previous = self._rows.get(app.row_id)
            if previous is None:
                raise KeyError(f"Row {app.row_id} is not in the index")
            self._remove_from_bucket(previous)
            if app.row_id not in self._appended:
                self._dirty.add(app.row_id)
        self._rows[app.row_id] = app
        self._add_to_bucket(app)
        if message_id:
            self._contributors.setdefault(app.row_id, []).append(message_id)
        return app

    def pending_updates(self) -> List[Tuple[int, List]]:
        return [(row_id, self._rows[row_id].to_row(self.columns)) for row_id in sorted(self._dirty)]

    def pending_appends(self) -> List[List]:
        return [self._rows[row_id].to_row(self.columns) for row_id in self._appended]

    def update_message_ids(self) -> List[str]:
        return self._message_ids(sorted(self._dirty))

    def append_message_ids(self) -> List[str]:
        return self._message_ids(self._appended)

    def _message_ids(self, row_ids: Iterable[int]) -> List[str]:
        out: List[str] = []
        for row_id in row_ids:
            out.extend(self._contributors.get(row_id, []))
        return out


@dataclass
class RowMutation:
    kind: str
    application: TrackedApplication


def _text(status: Union[Status, str, None]) -> str:
    if isinstance(status, Status):
        return status.value
    return status or ""


def new_application(
    record: ExtractedRecord,
    message: RawMessage,
    now: datetime,
    default_status: Status = Status.APPLIED,
) -> TrackedApplication:
    status = _text(record.status or default_status)
    return TrackedApplication(
        row_id=0,
        company=record.company,
        title=record.title,
        status=status,
        peak_status=status,
        last_update_date=message.received_date,
        processed_timestamp=now,
        platform=record.platform,
        source_subject=message.subject,
        source_link=EMAIL_LINK_TEMPLATE.format(message_id=message.id),
        source_message_id=message.id,
        email_date=message.received_date,
    )


def merge(
    app: TrackedApplication,
    record: ExtractedRecord,
    message: RawMessage,
    now: datetime,
    default_status: Status = Status.APPLIED,
) -> TrackedApplication:
    """Fold one newer message into an existing row.

    Resolved fields overwrite, sentinels never do. Status only moves up the
    ranking unless the new status is override-terminal. Peak status never
    goes down. Timeline fields always follow the newest message.
    """
    updated = replace(app, raw=list(app.raw))
    if not is_sentinel(record.company):
        updated.company = record.company
    if not is_sentinel(record.title):
        updated.title = record.title

    current = app.status or default_status.value
    updated.status = current
    if record.status is not None:
        if rank(record.status) >= rank(current) or record.status in OVERRIDE_TERMINAL:
            updated.status = record.status.value
        else:
            logger.info(
                "Row %s: keeping status %r, incoming %r ranks lower",
                app.row_id, current, record.status.value,
            )

    updated.peak_status = _text(higher_status(app.peak_status or current, updated.status))

    updated.processed_timestamp = now
    updated.last_update_date = message.received_date
    updated.source_subject = message.subject
    updated.source_link = EMAIL_LINK_TEMPLATE.format(message_id=message.id)
    updated.source_message_id = message.id
    return updated


def reconcile(
    record: ExtractedRecord,
    message: RawMessage,
    index: CompanyIndex,
    now: datetime,
    default_status: Status = Status.APPLIED,
) -> RowMutation:
    match = None
    if not is_sentinel(record.company):
        match = index.find_match(record.company, record.title)
    if match is None:
        return RowMutation(APPEND, new_application(record, message, now, default_status))
    return RowMutation(UPDATE, merge(match, record, message, now, default_status))
