"""One bounded processing run over the to-process label.

fetch threads -> sort messages by date -> classify -> reconcile into the
in-memory index -> batch write -> record processed ids -> relabel threads.

Nothing here locks. Overlapping or interrupted runs are made safe by the
processed-id set, the label checks and the status merge rules.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from .classifier import Classifier
from .diagnostics import DiagnosticLog
from .labels import LabelStateMachine
from .models import MailThread, RawMessage
from .reconcile import CompanyIndex, reconcile
from .settings import TrackerConfig

logger = logging.getLogger(__name__)

MODULE_NAME = "Application Tracker"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunSummary:
    threads: int = 0
    processed: int = 0
    manual: int = 0
    skipped: int = 0
    errored: int = 0
    updated_rows: int = 0
    appended_rows: int = 0
    out_of_time: bool = False
    labels: Dict[str, int] = field(default_factory=dict)


class RunClock:
    """Wall-clock budget for one run."""

    def __init__(self, budget_sec: float, monotonic: Callable[[], float] = time.monotonic):
        self.budget_sec = budget_sec
        self.monotonic = monotonic
        self.started = monotonic()

    def elapsed(self) -> float:
        return self.monotonic() - self.started

    def expired(self) -> bool:
        return self.elapsed() > self.budget_sec


def sorted_messages(threads: Iterable[MailThread]) -> List[RawMessage]:
    messages = [m for t in threads for m in t.messages]
    return sorted(messages, key=lambda m: m.received_date)


def _flush(index: CompanyIndex, store, diagnostics: DiagnosticLog, now: datetime, summary: RunSummary) -> Set[str]:
    """One multi-row update and one multi-row append. Returns ids of messages whose rows landed."""
    written: Set[str] = set()
    updates = index.pending_updates()
    if updates:
        try:
            store.update_rows(updates)
        except Exception as e:
            logger.exception("Batched update of %d row(s) failed", len(updates))
            diagnostics.record("Store Write Error", f"update: {e}", None, now)
        else:
            written.update(index.update_message_ids())
            summary.updated_rows = len(updates)
    appends = index.pending_appends()
    if appends:
        try:
            store.append_rows(appends)
        except Exception as e:
            logger.exception("Batched append of %d row(s) failed", len(appends))
            diagnostics.record("Store Write Error", f"append: {e}", None, now)
        else:
            written.update(index.append_message_ids())
            summary.appended_rows = len(appends)
    return written


def process_applications(
    config: TrackerConfig,
    mailbox,
    store,
    classifier: Classifier,
    state: dict,
    diagnostics: Optional[DiagnosticLog] = None,
    now: Callable[[], datetime] = utc_now,
    monotonic: Callable[[], float] = time.monotonic,
    dry_run: bool = False,
) -> RunSummary:
    clock = RunClock(config.max_runtime_sec, monotonic)
    diagnostics = diagnostics or DiagnosticLog(MODULE_NAME)
    summary = RunSummary()
    logger.info("==== %s run starting (%s) ====", MODULE_NAME, now().isoformat(timespec="seconds"))

    # configuration problems abort here, before any message is touched
    mailbox.require_labels(config.labels.all())
    rows = store.get_all_rows()

    threads = mailbox.get_labeled_threads(config.labels.to_process, 0, config.batch_size)
    summary.threads = len(threads)
    if not threads:
        logger.info("No threads under %r", config.labels.to_process)
        return summary

    index = CompanyIndex.from_rows(rows, config.columns, config.header_rows)
    machine = LabelStateMachine(config.labels)
    machine.track(threads)
    processed_ids = set(state.get("processed_ids", []))
    review_ids = set(state.get("review_ids", []))
    pending: Dict[str, Tuple[str, bool]] = {}

    for message in sorted_messages(threads):
        if clock.expired():
            logger.warning("Execution budget of %ss reached; leaving the rest for the next run", config.max_runtime_sec)
            summary.out_of_time = True
            break
        if message.id in processed_ids:
            machine.record(message, manual=message.id in review_ids)
            summary.skipped += 1
            continue
        try:
            record = classifier.classify(message)
            if record.failure:
                diagnostics.record("Gemini API Error", record.failure, message, now())
            mutation = reconcile(record, message, index, now(), config.default_status)
            app = index.apply(mutation, message.id)
        except Exception as e:
            logger.exception("Message %s failed", message.id)
            diagnostics.record("Processing Error", repr(e), message, now())
            machine.record(message, manual=True)
            summary.errored += 1
            continue
        logger.info(
            "[%s] row %s | %s | %s | %s",
            mutation.kind.upper(), app.row_id, app.company, app.title, app.status,
        )
        pending[message.id] = (message.thread_id, record.needs_review)
        machine.record(message, manual=record.needs_review)

    if dry_run:
        logger.info(
            "[DRY-RUN] Would update %d row(s), append %d row(s), relabel %d thread(s)",
            len(index.pending_updates()), len(index.pending_appends()), len(machine.ready_threads()),
        )
        return summary

    written = _flush(index, store, diagnostics, now(), summary)
    for message_id, (thread_id, manual) in pending.items():
        if message_id not in written:
            # stays out of the processed set so the next run retries it
            machine.retry_later(thread_id)
            summary.errored += 1
            continue
        processed_ids.add(message_id)
        summary.processed += 1
        if manual:
            review_ids.add(message_id)
            summary.manual += 1

    state["processed_ids"] = sorted(processed_ids)
    state["review_ids"] = sorted(review_ids)
    state["last_run"] = now().isoformat(timespec="seconds")
    diagnostics.flush()
    summary.labels = machine.finalize(mailbox)
    logger.info(
        "==== %s run finished in %.1fs: %d processed (%d manual), %d skipped, %d errored ====",
        MODULE_NAME, clock.elapsed(), summary.processed, summary.manual, summary.skipped, summary.errored,
    )
    return summary
