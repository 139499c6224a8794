from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

SENTINEL = "N/A - Manual Review"
DEFAULT_PLATFORM = "Other"


class Status(str, Enum):
    MANUAL_REVIEW = SENTINEL
    UPDATE_OTHER = "Update/Other"
    APPLIED = "Applied"
    REJECTED = "Rejected"
    APPLICATION_VIEWED = "Application Viewed"
    ASSESSMENT = "Assessment"
    INTERVIEW = "Interview"
    OFFER = "Offer"
    ACCEPTED = "Offer Accepted"

    @classmethod
    def parse(cls, value: Any) -> Optional["Status"]:
        """Case-insensitive lookup by value; None for anything outside the enum."""
        if isinstance(value, Status):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        return None


STATUS_RANK: Dict[Status, int] = {
    Status.MANUAL_REVIEW: -1,
    Status.UPDATE_OTHER: 0,
    Status.APPLIED: 1,
    Status.REJECTED: 1,
    Status.APPLICATION_VIEWED: 2,
    Status.ASSESSMENT: 3,
    Status.INTERVIEW: 4,
    Status.OFFER: 5,
    Status.ACCEPTED: 6,
}

# Applied regardless of rank when newly detected.
OVERRIDE_TERMINAL = frozenset({Status.REJECTED, Status.OFFER})


def rank(status: Union[Status, str, None]) -> int:
    parsed = Status.parse(status)
    if parsed is None:
        return 0
    return STATUS_RANK[parsed]


def higher_status(a: Union[Status, str, None], b: Union[Status, str, None]) -> Union[Status, str, None]:
    """Return whichever of the two ranks higher; ties keep ``a``."""
    return b if rank(b) > rank(a) else a


def is_sentinel(value: Optional[str]) -> bool:
    return value == SENTINEL


@dataclass(frozen=True)
class RawMessage:
    id: str
    thread_id: str
    subject: str
    body_text: str
    sender: str                 # raw From header: 'Name <user@domain>'
    received_date: datetime


@dataclass
class MailThread:
    id: str
    label_names: set = field(default_factory=set)
    messages: List[RawMessage] = field(default_factory=list)


@dataclass
class PartialRecord:
    company: Optional[str] = None
    title: Optional[str] = None
    status: Optional[str] = None    # raw status text, normalized by the classifier
    source: str = ""
    failure: Optional[str] = None


@dataclass
class ExtractedRecord:
    company: str = SENTINEL
    title: str = SENTINEL
    status: Optional[Status] = None
    platform: str = DEFAULT_PLATFORM
    source: str = ""                # strategies that resolved company/title
    failure: Optional[str] = None   # AI stage failure detail, for diagnostics

    @property
    def needs_review(self) -> bool:
        return is_sentinel(self.company) or is_sentinel(self.title)


class _PositionMap:
    """Named 1-based column positions read from config."""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, int]]):
        data = dict(data or {})
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown column names: {sorted(unknown)}")
        cmap = cls(**{k: int(v) for k, v in data.items()})
        positions = [getattr(cmap, name) for name in cls.__dataclass_fields__]
        if min(positions) < 1 or len(set(positions)) != len(positions):
            raise ValueError("Column positions must be unique and 1-based")
        return cmap

    @property
    def width(self) -> int:
        return max(getattr(self, name) for name in self.__dataclass_fields__)


@dataclass
class ColumnMap(_PositionMap):
    processed_timestamp: int = 1
    email_date: int = 2
    platform: int = 3
    company: int = 4
    title: int = 5
    status: int = 6
    last_update_date: int = 7
    email_subject: int = 8
    email_link: int = 9
    email_id: int = 10
    peak_status: int = 11


@dataclass
class LeadColumnMap(_PositionMap):
    date_added: int = 1
    company: int = 2
    title: int = 3
    location: int = 4
    source: int = 5
    job_url: int = 6
    notes: int = 7
    status: int = 8
    email_subject: int = 9
    email_id: int = 10
    processed_timestamp: int = 11


@dataclass
class TrackedApplication:
    row_id: int
    company: str
    title: str
    status: str
    peak_status: str
    last_update_date: Any
    processed_timestamp: Any
    platform: str = DEFAULT_PLATFORM
    source_subject: str = ""
    source_link: str = ""
    source_message_id: str = ""
    email_date: Any = ""
    raw: List[Any] = field(default_factory=list)

    @classmethod
    def from_row(cls, row_id: int, values: List[Any], columns: ColumnMap) -> "TrackedApplication":
        padded = list(values) + [""] * max(0, columns.width - len(values))

        def cell(pos: int) -> Any:
            return padded[pos - 1]

        status = str(cell(columns.status) or "").strip()
        return cls(
            row_id=row_id,
            company=str(cell(columns.company) or "").strip(),
            title=str(cell(columns.title) or "").strip(),
            status=status,
            peak_status=str(cell(columns.peak_status) or "").strip() or status,
            last_update_date=cell(columns.last_update_date),
            processed_timestamp=cell(columns.processed_timestamp),
            platform=str(cell(columns.platform) or "").strip() or DEFAULT_PLATFORM,
            source_subject=str(cell(columns.email_subject) or ""),
            source_link=str(cell(columns.email_link) or ""),
            source_message_id=str(cell(columns.email_id) or ""),
            email_date=cell(columns.email_date),
            raw=padded,
        )

    def to_row(self, columns: ColumnMap) -> List[Any]:
        values = list(self.raw) + [""] * max(0, columns.width - len(self.raw))
        values[columns.processed_timestamp - 1] = format_cell(self.processed_timestamp)
        values[columns.email_date - 1] = format_cell(self.email_date)
        values[columns.platform - 1] = self.platform
        values[columns.company - 1] = self.company
        values[columns.title - 1] = self.title
        values[columns.status - 1] = _status_text(self.status)
        values[columns.peak_status - 1] = _status_text(self.peak_status)
        values[columns.last_update_date - 1] = format_cell(self.last_update_date)
        values[columns.email_subject - 1] = self.source_subject
        values[columns.email_link - 1] = self.source_link
        values[columns.email_id - 1] = self.source_message_id
        return values


@dataclass
class JobLead:
    job_title: str = "N/A"
    company: str = "N/A"
    location: str = "N/A"
    source: str = "N/A"
    job_url: str = "N/A"
    notes: str = "N/A"


def _status_text(value: Union[Status, str, None]) -> str:
    if isinstance(value, Status):
        return value.value
    return value or ""


def format_cell(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return "" if value is None else value
