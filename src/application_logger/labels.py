import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from .models import MailThread, RawMessage

logger = logging.getLogger(__name__)

DONE = "done"
MANUAL = "manual"


@dataclass
class LabelNames:
    to_process: str
    processed: str
    manual_review: Optional[str] = None

    def terminal(self, outcome: str) -> str:
        if outcome == MANUAL and self.manual_review:
            return self.manual_review
        return self.processed

    def all(self) -> List[str]:
        return [n for n in (self.to_process, self.processed, self.manual_review) if n]


class LabelStateMachine:
    """Per-thread outcome bookkeeping and the to-process -> terminal label move.

    A thread starts as ``done`` and drops to ``manual`` as soon as one of its
    messages needs review. Only threads whose fetched messages were all
    attempted are relabeled; a thread with an unwritten row gets the review
    label but keeps to-process until a later run writes it.
    """

    def __init__(self, labels: LabelNames):
        self.labels = labels
        self._threads: Dict[str, MailThread] = {}
        self._pending: Dict[str, Set[str]] = {}
        self._outcomes: Dict[str, str] = {}
        self._held: Set[str] = set()
        self._flagged: Set[str] = set()

    def track(self, threads: Iterable[MailThread]) -> None:
        for thread in threads:
            self._threads[thread.id] = thread
            self._pending[thread.id] = {m.id for m in thread.messages}
            self._outcomes.setdefault(thread.id, DONE)

    def record(self, message: RawMessage, manual: bool = False) -> None:
        self._pending.setdefault(message.thread_id, set()).discard(message.id)
        if manual:
            self.mark_manual(message.thread_id)
        else:
            self._outcomes.setdefault(message.thread_id, DONE)

    def mark_manual(self, thread_id: str) -> None:
        self._outcomes[thread_id] = MANUAL

    def hold(self, thread_id: str) -> None:
        """Keep the thread under to-process this run."""
        self._held.add(thread_id)

    def retry_later(self, thread_id: str) -> None:
        """Flag the thread for review but leave it under to-process so it is fetched again."""
        self._held.add(thread_id)
        self._flagged.add(thread_id)

    def outcome(self, thread_id: str) -> str:
        return self._outcomes.get(thread_id, DONE)

    def is_complete(self, thread_id: str) -> bool:
        return thread_id not in self._held and not self._pending.get(thread_id)

    def ready_threads(self) -> List[MailThread]:
        return [t for tid, t in self._threads.items() if self.is_complete(tid)]

    def finalize(self, mailbox) -> Dict[str, int]:
        """Apply terminal labels; a thread already carrying the right labels is left alone."""
        counts = {DONE: 0, MANUAL: 0, "skipped": 0, "retry": 0, "failed": 0}
        for thread in self._threads.values():
            if thread.id in self._flagged:
                try:
                    self._flag(mailbox, thread)
                except Exception:
                    logger.exception("Flagging thread %s for review failed", thread.id)
                    counts["failed"] += 1
                    continue
                counts["retry"] += 1
                continue
            if not self.is_complete(thread.id):
                counts["skipped"] += 1
                continue
            outcome = self.outcome(thread.id)
            try:
                self._transition(mailbox, thread, outcome)
            except Exception:
                logger.exception("Relabeling thread %s failed; it stays eligible for the next run", thread.id)
                counts["failed"] += 1
                continue
            counts[outcome] += 1
        return counts

    def _flag(self, mailbox, thread: MailThread) -> None:
        review = self.labels.manual_review
        if review and review not in thread.label_names:
            mailbox.add_label(thread, review)
            thread.label_names.add(review)
        logger.info("Thread %s kept under %r for retry", thread.id, self.labels.to_process)

    def _transition(self, mailbox, thread: MailThread, outcome: str) -> None:
        target = self.labels.terminal(outcome)
        other = self.labels.terminal(DONE if outcome == MANUAL else MANUAL)
        # add before remove so a failure never leaves the thread unlabeled
        if target not in thread.label_names:
            mailbox.add_label(thread, target)
            thread.label_names.add(target)
        if other != target and other in thread.label_names:
            mailbox.remove_label(thread, other)
            thread.label_names.discard(other)
        if self.labels.to_process in thread.label_names:
            mailbox.remove_label(thread, self.labels.to_process)
            thread.label_names.discard(self.labels.to_process)
        logger.info("Thread %s -> %s", thread.id, target)
