import argparse
import logging
import sys
from datetime import datetime

from .ai_client import DEFAULT_ENDPOINT, GeminiClient
from .classifier import Classifier
from .diagnostics import DiagnosticLog
from .email_client import GmailMailbox
from .engine import MODULE_NAME as TRACKER_MODULE, process_applications
from .errors import ConfigurationError
from .extractors import default_chain
from .leads import MODULE_NAME as LEADS_MODULE, process_leads
from .settings import (
    get_timezone,
    leads_config,
    load_settings,
    load_state,
    retry_policy,
    save_state,
    sweep_config,
    tracker_config,
)
from .sheets_writer import SheetRowStore, open_spreadsheet, open_worksheet
from .stale import sweep
from .status_rules import StatusNormalizer

logger = logging.getLogger(__name__)

DIAGNOSTIC_WIDTH = 6


def _setup_logging(cfg) -> None:
    level = str(cfg.app.get("log_level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _ai_client(cfg):
    if not cfg.ai.get("enabled", True):
        logger.info("AI extraction disabled; using rules only")
        return None
    if not cfg.gemini_api_key:
        logger.warning("GEMINI_API_KEY is not set; using rules only")
        return None
    return GeminiClient(
        api_key=cfg.gemini_api_key,
        endpoint=cfg.ai.get("endpoint", DEFAULT_ENDPOINT),
        timeout_sec=float(cfg.ai.get("timeout_sec", 30)),
        retry=retry_policy(cfg),
        application_body_chars=int(cfg.ai.get("application_body_chars", 12000)),
        leads_body_chars=int(cfg.ai.get("leads_body_chars", 30000)),
    )


def _diagnostics(cfg, spreadsheet, module_name: str) -> DiagnosticLog:
    name = cfg.sheets.get("diagnostics_worksheet_name")
    if not name:
        return DiagnosticLog(module_name)
    return DiagnosticLog(module_name, SheetRowStore(open_worksheet(spreadsheet, name), DIAGNOSTIC_WIDTH))


def _spreadsheet(cfg):
    return open_spreadsheet(cfg.sheets.get("spreadsheet_id"), cfg.sheets.get("spreadsheet_name"))


def run_process(cfg, dry_run: bool = False):
    config = tracker_config(cfg)
    tz = get_timezone(cfg)
    spreadsheet = _spreadsheet(cfg)
    ws = open_worksheet(spreadsheet, cfg.sheets.get("worksheet_name", "Applications"))
    classifier = Classifier(default_chain(_ai_client(cfg)), StatusNormalizer.from_config(config.status_keywords))
    state = load_state()
    summary = process_applications(
        config,
        GmailMailbox(tz=tz),
        SheetRowStore(ws, config.columns.width),
        classifier,
        state,
        diagnostics=_diagnostics(cfg, spreadsheet, TRACKER_MODULE),
        now=lambda: datetime.now(tz),
        dry_run=dry_run,
    )
    if not dry_run:
        save_state(state)
    return summary


def run_leads(cfg, dry_run: bool = False):
    config = leads_config(cfg)
    ai = _ai_client(cfg)
    if ai is None:
        raise ConfigurationError("The leads run needs AI extraction (ai.enabled and GEMINI_API_KEY)")
    tz = get_timezone(cfg)
    spreadsheet = _spreadsheet(cfg)
    ws = open_worksheet(spreadsheet, cfg.sheets.get("leads_worksheet_name", "Potential Job Leads"))
    state = load_state()
    summary = process_leads(
        config,
        GmailMailbox(tz=tz),
        SheetRowStore(ws, config.columns.width),
        ai,
        state,
        diagnostics=_diagnostics(cfg, spreadsheet, LEADS_MODULE),
        now=lambda: datetime.now(tz),
        dry_run=dry_run,
    )
    if not dry_run:
        save_state(state)
    return summary


def run_sweep(cfg, dry_run: bool = False) -> int:
    config = sweep_config(cfg)
    tz = get_timezone(cfg)
    ws = open_worksheet(_spreadsheet(cfg), cfg.sheets.get("worksheet_name", "Applications"))
    return sweep(SheetRowStore(ws, config.columns.width), config, datetime.now(tz), dry_run=dry_run)


COMMANDS = {
    "process": run_process,
    "leads": run_leads,
    "sweep": run_sweep,
}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Job application email logger")
    parser.add_argument("command", choices=sorted(COMMANDS), help="process: tracker run, leads: job-lead run, sweep: mark stale applications")
    parser.add_argument("--dry-run", action="store_true", help="Classify and reconcile but write nothing (no rows, labels or state)")
    args = parser.parse_args(argv)

    try:
        cfg = load_settings()
        _setup_logging(cfg)
        COMMANDS[args.command](cfg, dry_run=args.dry_run or bool(cfg.app.get("dry_run", False)))
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
