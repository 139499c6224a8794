"""Job-lead run: alert and recruiter emails become rows on the leads worksheet.

Same label lifecycle as the tracker, but with a single terminal label and
no reconciliation: every posting the model finds is appended as a new row.
"""
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .ai_client import Resolved, SchemaMismatch, TransportError
from .diagnostics import DiagnosticLog
from .engine import RunClock, RunSummary, sorted_messages, utc_now
from .labels import LabelStateMachine
from .models import JobLead, LeadColumnMap, RawMessage, format_cell
from .settings import LeadsConfig

logger = logging.getLogger(__name__)

MODULE_NAME = "Job Leads Tracker"
SUBJECT_CHARS = 500


def is_real_lead(lead: JobLead) -> bool:
    title = (lead.job_title or "").strip().lower()
    return bool(title) and title not in ("n/a", "error")


def lead_row(lead: JobLead, message: RawMessage, columns: LeadColumnMap, status: str, now: datetime) -> List[Any]:
    values: List[Any] = [""] * columns.width
    values[columns.date_added - 1] = format_cell(message.received_date)
    values[columns.company - 1] = lead.company
    values[columns.title - 1] = lead.job_title
    values[columns.location - 1] = lead.location
    values[columns.source - 1] = lead.source
    values[columns.job_url - 1] = lead.job_url
    values[columns.notes - 1] = "" if lead.notes == "N/A" else lead.notes
    values[columns.status - 1] = status
    values[columns.email_subject - 1] = (message.subject or "")[:SUBJECT_CHARS]
    values[columns.email_id - 1] = message.id
    values[columns.processed_timestamp - 1] = format_cell(now)
    return values


def process_leads(
    config: LeadsConfig,
    mailbox,
    store,
    ai_client,
    state: dict,
    diagnostics: Optional[DiagnosticLog] = None,
    now: Callable[[], datetime] = utc_now,
    monotonic: Callable[[], float] = time.monotonic,
    dry_run: bool = False,
) -> RunSummary:
    clock = RunClock(config.max_runtime_sec, monotonic)
    diagnostics = diagnostics or DiagnosticLog(MODULE_NAME)
    summary = RunSummary()
    logger.info("==== %s run starting ====", MODULE_NAME)

    mailbox.require_labels(config.labels.all())
    threads = mailbox.get_labeled_threads(config.labels.to_process, 0, config.batch_size)
    summary.threads = len(threads)
    if not threads:
        logger.info("No threads under %r", config.labels.to_process)
        return summary

    machine = LabelStateMachine(config.labels)
    machine.track(threads)
    processed_ids = set(state.get("leads_processed_ids", []))
    rows: List[List[Any]] = []
    contributors: Dict[str, Tuple[str, int]] = {}

    for message in sorted_messages(threads):
        if clock.expired():
            logger.warning("Execution budget of %ss reached; leaving the rest for the next run", config.max_runtime_sec)
            summary.out_of_time = True
            break
        if message.id in processed_ids:
            machine.record(message)
            summary.skipped += 1
            continue
        outcome = ai_client.extract_job_leads(message.body_text)
        if isinstance(outcome, TransportError):
            # left unrecorded so the thread keeps its to-process label
            diagnostics.record("Gemini API Error", outcome.detail, message, now())
            summary.errored += 1
            continue
        leads: List[JobLead] = []
        if isinstance(outcome, Resolved):
            leads = [lead for lead in outcome.value if is_real_lead(lead)]
        elif isinstance(outcome, SchemaMismatch):
            logger.warning("Message %s: lead answer unusable (%s)", message.id, outcome.detail)
        logger.info("Message %s: %d job lead(s)", message.id, len(leads))
        rows.extend(lead_row(lead, message, config.columns, config.lead_status, now()) for lead in leads)
        contributors[message.id] = (message.thread_id, len(leads))
        machine.record(message)

    if dry_run:
        logger.info("[DRY-RUN] Would append %d lead row(s)", len(rows))
        return summary

    written = True
    if rows:
        try:
            store.append_rows(rows)
        except Exception as e:
            logger.exception("Batched append of %d lead row(s) failed", len(rows))
            diagnostics.record("Store Write Error", f"append: {e}", None, now())
            written = False
        else:
            summary.appended_rows = len(rows)

    for message_id, (thread_id, count) in contributors.items():
        if not written and count:
            machine.hold(thread_id)
            summary.errored += 1
            continue
        processed_ids.add(message_id)
        summary.processed += 1

    state["leads_processed_ids"] = sorted(processed_ids)
    diagnostics.flush()
    summary.labels = machine.finalize(mailbox)
    logger.info(
        "==== %s run finished in %.1fs: %d processed, %d lead row(s), %d errored ====",
        MODULE_NAME, clock.elapsed(), summary.processed, summary.appended_rows, summary.errored,
    )
    return summary
