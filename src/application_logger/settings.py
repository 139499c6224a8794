import os, json, yaml
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

import pytz
from dotenv import load_dotenv

from .errors import ConfigurationError
from .labels import LabelNames
from .models import ColumnMap, LeadColumnMap, Status
from .retry import RetryPolicy

CONFIG_PATH = os.environ.get(
    "IAL_CONFIG",
    os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", "config.yaml")
)
STATE_PATH = os.environ.get(
    "IAL_STATE",
    os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", "data", "state.json")
)

load_dotenv()

DEFAULT_PROTECTED_STATUSES = (Status.REJECTED.value, Status.OFFER.value, Status.ACCEPTED.value)


@dataclass
class Settings:
    app: Dict[str, Any]
    gmail: Dict[str, Any]
    sheets: Dict[str, Any]
    ai: Dict[str, Any]
    tracker: Dict[str, Any]
    leads: Dict[str, Any]
    gemini_api_key: Optional[str] = field(default_factory=lambda: os.environ.get("GEMINI_API_KEY"))


@dataclass
class TrackerConfig:
    labels: LabelNames
    columns: ColumnMap
    status_keywords: Dict[str, List[str]] = field(default_factory=dict)
    header_rows: int = 1
    batch_size: int = 20
    max_runtime_sec: float = 320.0
    default_status: Status = Status.APPLIED


@dataclass
class LeadsConfig:
    labels: LabelNames
    columns: LeadColumnMap
    batch_size: int = 20
    max_runtime_sec: float = 320.0
    lead_status: str = "New"


@dataclass
class SweepConfig:
    columns: ColumnMap
    threshold_weeks: float = 7
    protected_statuses: FrozenSet[str] = frozenset(DEFAULT_PROTECTED_STATUSES)
    header_rows: int = 1


def load_settings(path: Optional[str] = None) -> Settings:
    path = path or CONFIG_PATH
    if not os.path.exists(path):
        raise ConfigurationError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    # we have to ensure optional blocks exist
    for block in ("app", "gmail", "sheets", "ai", "tracker", "leads"):
        cfg.setdefault(block, {})
        if cfg[block] is None:
            cfg[block] = {}
    unknown = set(cfg) - {"app", "gmail", "sheets", "ai", "tracker", "leads"}
    if unknown:
        raise ConfigurationError(f"Unknown config blocks: {sorted(unknown)}")
    return Settings(**cfg)


def _labels(block: Dict[str, Any], where: str, manual_required: bool) -> LabelNames:
    labels = block.get("labels") or {}
    required = ["to_process", "processed"] + (["manual_review"] if manual_required else [])
    missing = [k for k in required if not labels.get(k)]
    if missing:
        raise ConfigurationError(f"{where}.labels is missing: {', '.join(missing)}")
    return LabelNames(
        to_process=labels["to_process"],
        processed=labels["processed"],
        manual_review=labels.get("manual_review"),
    )


def _columns(factory, data, where: str):
    try:
        return factory.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{where}: {e}") from e


def tracker_config(settings: Settings) -> TrackerConfig:
    block = settings.tracker
    default_status = Status.parse(block.get("default_status", Status.APPLIED.value))
    if default_status is None:
        raise ConfigurationError(f"tracker.default_status is not a known status: {block.get('default_status')!r}")
    return TrackerConfig(
        labels=_labels(block, "tracker", manual_required=True),
        columns=_columns(ColumnMap, settings.sheets.get("columns"), "sheets.columns"),
        status_keywords=block.get("status_keywords") or {},
        header_rows=int(settings.sheets.get("header_rows", 1)),
        batch_size=int(block.get("batch_size", settings.gmail.get("batch_size", 20))),
        max_runtime_sec=float(block.get("max_runtime_sec", 320)),
        default_status=default_status,
    )


def leads_config(settings: Settings) -> LeadsConfig:
    block = settings.leads
    return LeadsConfig(
        labels=_labels(block, "leads", manual_required=False),
        columns=_columns(LeadColumnMap, settings.sheets.get("leads_columns"), "sheets.leads_columns"),
        batch_size=int(block.get("batch_size", settings.gmail.get("batch_size", 20))),
        max_runtime_sec=float(block.get("max_runtime_sec", 320)),
        lead_status=str(block.get("lead_status", "New")),
    )


def sweep_config(settings: Settings) -> SweepConfig:
    stale = settings.tracker.get("stale") or {}
    protected = stale.get("protected_statuses") or list(DEFAULT_PROTECTED_STATUSES)
    return SweepConfig(
        columns=_columns(ColumnMap, settings.sheets.get("columns"), "sheets.columns"),
        threshold_weeks=float(stale.get("threshold_weeks", 7)),
        protected_statuses=frozenset(str(s) for s in protected),
        header_rows=int(settings.sheets.get("header_rows", 1)),
    )


def retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy.from_dict(settings.ai.get("retry") or {})


def get_timezone(settings: Settings):
    name = settings.app.get("timezone", "UTC")
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError as e:
        raise ConfigurationError(f"Unknown timezone in app.timezone: {name}") from e


def load_state(path: Optional[str] = None) -> dict:
    path = path or STATE_PATH
    state = {"processed_ids": [], "review_ids": [], "leads_processed_ids": [], "last_run": None}
    if not os.path.exists(path):
        return state
    with open(path, "r", encoding="utf-8") as f:
        state.update(json.load(f))
    return state


def save_state(state: dict, path: Optional[str] = None) -> None:
    path = path or STATE_PATH
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(state, f, indent=2)
