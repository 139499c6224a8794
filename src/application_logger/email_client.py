import os, base64, re, logging
from datetime import datetime, timezone
from typing import List, Dict, Any, Iterable, Optional, Tuple
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from google.auth.transport.requests import Request
from googleapiclient.discovery import build

from .errors import ConfigurationError
from .models import MailThread, RawMessage

logger = logging.getLogger(__name__)

CREDENTIALS_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", "credentials")
CLIENT_SECRET_FILE = os.path.join(CREDENTIALS_DIR, "client_secret.json")
TOKEN_FILE = os.path.join(CREDENTIALS_DIR, "token.json")

# Request ALL scopes once so token.json works everywhere
SCOPES = [
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

def _ensure_creds(scopes: List[str]) -> Credentials:
    os.makedirs(CREDENTIALS_DIR, exist_ok=True)
    creds: Optional[Credentials] = None
    if os.path.exists(TOKEN_FILE):
        creds = Credentials.from_authorized_user_file(TOKEN_FILE, scopes)
    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            creds.refresh(Request())
        else:
            flow = InstalledAppFlow.from_client_secrets_file(CLIENT_SECRET_FILE, scopes)
            creds = flow.run_local_server(port=0)
        with open(TOKEN_FILE, "w", encoding="utf-8") as token:
            token.write(creds.to_json())
    return creds

def get_gmail_service():
    creds = _ensure_creds(SCOPES)
    return build("gmail", "v1", credentials=creds)

def _get_header(headers: List[Dict[str, str]], name: str) -> str:
    for h in headers:
        if h.get("name", "").lower() == name.lower():
            return h.get("value", "")
    return ""

def _decode_payload(data: str) -> str:
    # Gmail returns base64url-encoded data
    missing_padding = len(data) % 4
    if missing_padding:
        data += "=" * (4 - missing_padding)
    return base64.urlsafe_b64decode(data).decode("utf-8", errors="replace")

def _clean_text(s: str) -> str:
    s = re.sub(r"[\u200B-\u200D\uFEFF]", "", s or "")
    s = re.sub(r"[ \t]+", " ", s)
    s = re.sub(r"\s+\n", "\n", s)
    return s.strip()

def extract_plain_text(message: Dict[str, Any]) -> Tuple[str, str, str]:
    """Returns: (subject, from_header, text). text/plain parts win over text/html."""
    payload = message.get("payload", {})
    headers = payload.get("headers", [])
    subject = _get_header(headers, "Subject")
    from_header = _get_header(headers, "From")

    plain: List[str] = []
    html: List[str] = []
    def traverse(parts):
        for p in parts:
            mime = p.get("mimeType", "")
            if "parts" in p:
                traverse(p["parts"])
            elif mime == "text/plain" and "data" in p.get("body", {}):
                plain.append(_decode_payload(p["body"]["data"]))
            elif mime == "text/html" and "data" in p.get("body", {}):
                markup = _decode_payload(p["body"]["data"])
                html.append(re.sub("<[^<]+?>", " ", markup))

    if "parts" in payload:
        traverse(payload["parts"])
    else:
        body = payload.get("body", {})
        if "data" in body:
            text = _decode_payload(body["data"])
            if payload.get("mimeType") == "text/html":
                html.append(re.sub("<[^<]+?>", " ", text))
            else:
                plain.append(text)

    body_text = "\n".join(plain) if plain else "\n".join(html)
    return _clean_text(subject), _clean_text(from_header), _clean_text(body_text)

def to_raw_message(message: Dict[str, Any], tz=None) -> RawMessage:
    subject, from_header, body = extract_plain_text(message)
    internal_date_ms = int(message.get("internalDate", "0"))
    received = datetime.fromtimestamp(internal_date_ms / 1000, tz=timezone.utc)
    return RawMessage(
        id=message["id"],
        thread_id=message.get("threadId", ""),
        subject=subject,
        body_text=body,
        sender=from_header,
        received_date=received.astimezone(tz) if tz else received,
    )


class GmailMailbox:
    """Label-driven view of the mailbox: list threads under a label, move labels."""

    def __init__(self, service=None, user_id: str = "me", num_retries: int = 2, tz=None):
        self.tz = tz
        self.service = service or get_gmail_service()
        self.user_id = user_id
        self.num_retries = num_retries
        self._ids_by_name: Optional[Dict[str, str]] = None

    def _label_map(self) -> Dict[str, str]:
        if self._ids_by_name is None:
            resp = self.service.users().labels().list(userId=self.user_id).execute(num_retries=self.num_retries)
            self._ids_by_name = {l["name"]: l["id"] for l in resp.get("labels", [])}
        return self._ids_by_name

    def require_labels(self, names: Iterable[str]) -> None:
        labels = self._label_map()
        missing = [n for n in names if n not in labels]
        if missing:
            raise ConfigurationError(f"Gmail labels not found: {', '.join(missing)}")

    def _label_id(self, name: str) -> str:
        self.require_labels([name])
        return self._label_map()[name]

    def get_labeled_threads(self, label_name: str, offset: int = 0, limit: int = 20) -> List[MailThread]:
        label_id = self._label_id(label_name)
        refs: List[Dict[str, Any]] = []
        page_token = None
        while len(refs) < offset + limit:
            resp = self.service.users().threads().list(
                userId=self.user_id,
                labelIds=[label_id],
                maxResults=min(100, offset + limit),
                pageToken=page_token,
            ).execute(num_retries=self.num_retries)
            refs.extend(resp.get("threads", []))
            page_token = resp.get("nextPageToken")
            if not page_token:
                break
        threads = []
        for ref in refs[offset:offset + limit]:
            full = self.service.users().threads().get(
                userId=self.user_id, id=ref["id"], format="full"
            ).execute(num_retries=self.num_retries)
            threads.append(self._to_thread(full))
        logger.info("Fetched %d thread(s) under %r", len(threads), label_name)
        return threads

    def _to_thread(self, full: Dict[str, Any]) -> MailThread:
        names_by_id = {v: k for k, v in self._label_map().items()}
        label_names = set()
        messages = []
        for msg in full.get("messages", []):
            label_names.update(names_by_id.get(i, i) for i in msg.get("labelIds", []))
            messages.append(to_raw_message(msg, self.tz))
        return MailThread(id=full["id"], label_names=label_names, messages=messages)

    def _modify(self, thread: MailThread, body: Dict[str, List[str]]) -> None:
        self.service.users().threads().modify(
            userId=self.user_id, id=thread.id, body=body
        ).execute(num_retries=self.num_retries)

    def add_label(self, thread: MailThread, label_name: str) -> None:
        self._modify(thread, {"addLabelIds": [self._label_id(label_name)]})

    def remove_label(self, thread: MailThread, label_name: str) -> None:
        self._modify(thread, {"removeLabelIds": [self._label_id(label_name)]})
