import copy
from datetime import datetime, timedelta, timezone

from src.application_logger.ai_client import SchemaMismatch
from src.application_logger.errors import ConfigurationError, StoreWriteFailure
from src.application_logger.labels import LabelNames
from src.application_logger.models import ColumnMap, MailThread, RawMessage
from src.application_logger.settings import TrackerConfig

TO_PROCESS = "Job Tracker/To Process"
PROCESSED = "Job Tracker/Processed"
MANUAL = "Job Tracker/Manual Review"

HEADER = [
    "Processed", "Email Date", "Platform", "Company", "Job Title", "Status",
    "Last Update", "Subject", "Link", "Email ID", "Peak Status",
]

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


def at(hours: float) -> datetime:
    return T0 + timedelta(hours=hours)


def message(id, thread_id="t1", subject="", body="", sender="Acme Careers <careers@acme.com>", received=None):
    return RawMessage(
        id=id,
        thread_id=thread_id,
        subject=subject,
        body_text=body,
        sender=sender,
        received_date=received or T0,
    )


def thread(id, *messages, labels=(TO_PROCESS,)):
    return MailThread(id=id, label_names=set(labels), messages=list(messages))


def tracker_config(**overrides):
    params = dict(
        labels=LabelNames(TO_PROCESS, PROCESSED, MANUAL),
        columns=ColumnMap(),
    )
    params.update(overrides)
    return TrackerConfig(**params)


class FakeMailbox:
    """In-memory mailbox; fetches hand out copies like a real API would."""

    def __init__(self, threads, labels=(TO_PROCESS, PROCESSED, MANUAL), fail_on=()):
        self.threads = {t.id: t for t in threads}
        self.labels = set(labels)
        self.fail_on = set(fail_on)
        self.calls = []

    def require_labels(self, names):
        missing = [n for n in names if n not in self.labels]
        if missing:
            raise ConfigurationError(f"Gmail labels not found: {', '.join(missing)}")

    def get_labeled_threads(self, label_name, offset=0, limit=20):
        matching = [t for t in self.threads.values() if label_name in t.label_names]
        return [copy.deepcopy(t) for t in matching[offset:offset + limit]]

    def add_label(self, thread, label_name):
        if thread.id in self.fail_on:
            raise RuntimeError("label service unavailable")
        self.calls.append(("add", thread.id, label_name))
        self.threads[thread.id].label_names.add(label_name)

    def remove_label(self, thread, label_name):
        self.calls.append(("remove", thread.id, label_name))
        self.threads[thread.id].label_names.discard(label_name)

    def labels_of(self, thread_id):
        return self.threads[thread_id].label_names


class FakeRowStore:
    def __init__(self, rows=None, fail_updates=False, fail_appends=False):
        self.rows = [list(r) for r in (rows if rows is not None else [HEADER])]
        self.fail_updates = fail_updates
        self.fail_appends = fail_appends
        self.reads = 0
        self.update_calls = []
        self.append_calls = []

    def get_all_rows(self):
        self.reads += 1
        return [list(r) for r in self.rows]

    def update_rows(self, updates):
        if self.fail_updates:
            raise StoreWriteFailure("Updating rows failed: quota exceeded")
        self.update_calls.append(updates)
        for row_id, values in updates:
            self.rows[row_id - 1] = list(values)

    def append_rows(self, rows):
        if self.fail_appends:
            raise StoreWriteFailure("Appending rows failed: quota exceeded")
        self.append_calls.append(rows)
        self.rows.extend(list(r) for r in rows)


class FakeAIClient:
    """Outcomes keyed by subject (applications) or body (leads)."""

    def __init__(self, outcomes=None, default=None):
        self.outcomes = outcomes or {}
        self.default = default or SchemaMismatch("no canned answer")
        self.calls = []

    def extract_application(self, subject, body):
        self.calls.append(subject)
        return self.outcomes.get(subject, self.default)

    def extract_job_leads(self, body):
        self.calls.append(body)
        return self.outcomes.get(body, self.default)


class FakeClock:
    def __init__(self, *ticks):
        self.ticks = list(ticks)

    def __call__(self):
        if len(self.ticks) > 1:
            return self.ticks.pop(0)
        return self.ticks[0]
