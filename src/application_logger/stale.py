import logging
from datetime import datetime, timedelta
from typing import Any, List, Optional, Tuple

import dateparser

from .models import Status, format_cell
from .settings import SweepConfig

logger = logging.getLogger(__name__)


def parse_sheet_date(value: Any) -> Optional[datetime]:
    """Sheet cells come back as display strings; returns a naive datetime or None."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    text = str(value or "").strip()
    if not text:
        return None
    parsed = dateparser.parse(text, settings={"RETURN_AS_TIMEZONE_AWARE": False})
    if parsed is None:
        return None
    return parsed.replace(tzinfo=None)


def find_stale_updates(rows: List[List[Any]], config: SweepConfig, now: datetime) -> List[Tuple[int, List[Any]]]:
    """Rows to rewrite as Rejected. Only status and last-update date change; peak status is left as is."""
    local_now = now.replace(tzinfo=None)
    cutoff = local_now - timedelta(weeks=config.threshold_weeks)
    cols = config.columns
    updates = []
    for offset, values in enumerate(rows[config.header_rows:]):
        row_id = config.header_rows + offset + 1
        padded = list(values) + [""] * max(0, cols.width - len(values))
        status = str(padded[cols.status - 1] or "").strip()
        if not status or status in config.protected_statuses:
            continue
        last_update = parse_sheet_date(padded[cols.last_update_date - 1])
        if last_update is None:
            logger.debug("Row %d: unreadable last update date %r", row_id, padded[cols.last_update_date - 1])
            continue
        if last_update >= cutoff:
            continue
        padded[cols.status - 1] = Status.REJECTED.value
        padded[cols.last_update_date - 1] = format_cell(local_now)
        updates.append((row_id, padded))
    return updates


def sweep(store, config: SweepConfig, now: datetime, dry_run: bool = False) -> int:
    logger.info("==== Stale sweep starting: threshold %s week(s) ====", config.threshold_weeks)
    updates = find_stale_updates(store.get_all_rows(), config, now)
    if not updates:
        logger.info("No stale applications found")
        return 0
    if dry_run:
        logger.info("[DRY-RUN] Would mark %d stale application(s) as Rejected", len(updates))
        return len(updates)
    store.update_rows(updates)
    logger.info("Marked %d stale application(s) as Rejected", len(updates))
    return len(updates)
