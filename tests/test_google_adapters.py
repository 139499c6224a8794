import base64

import gspread
import pytest
from gspread.utils import ValueInputOption

from src.application_logger.diagnostics import DiagnosticLog
from src.application_logger.email_client import GmailMailbox, extract_plain_text, to_raw_message
from src.application_logger.errors import ConfigurationError, StoreWriteFailure
from src.application_logger.sheets_writer import SheetRowStore, open_worksheet

from tests.fakes import FakeRowStore, message


def b64(text):
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def gmail_message(id, thread_id="t1", subject="Application for Backend Engineer at Acme Corp",
                  plain="Thanks for applying", html=None, labels=("L1",)):
    parts = [{"mimeType": "text/plain", "body": {"data": b64(plain)}}] if plain is not None else []
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": b64(html)}})
    return {
        "id": id,
        "threadId": thread_id,
        "internalDate": "1714554000000",
        "labelIds": list(labels),
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [{"name": "Subject", "value": subject}, {"name": "From", "value": "Acme <jobs@acme.com>"}],
            "parts": parts,
        },
    }


class Request:
    def __init__(self, result, log, call):
        self.result = result
        self.log = log
        self.call = call

    def execute(self, num_retries=0):
        self.log.append(self.call)
        return self.result


class FakeGmail:
    """Mimics the chained users().labels()/threads() resource calls."""

    def __init__(self, labels, threads):
        self._labels = labels
        self._threads = threads
        self.log = []

    def users(self):
        return self

    def labels(self):
        service = self

        class Labels:
            def list(self, userId):
                return Request({"labels": [{"name": n, "id": i} for n, i in service._labels.items()]}, service.log, ("labels.list",))
        return Labels()

    def threads(self):
        service = self

        class Threads:
            def list(self, userId, labelIds, maxResults, pageToken=None):
                refs = [{"id": t} for t, full in service._threads.items()
                        if any(labelIds[0] in m["labelIds"] for m in full["messages"])]
                return Request({"threads": refs}, service.log, ("threads.list", labelIds[0]))

            def get(self, userId, id, format):
                return Request(service._threads[id], service.log, ("threads.get", id))

            def modify(self, userId, id, body):
                return Request({}, service.log, ("threads.modify", id, body))
        return Threads()


def test_plain_text_wins_over_html():
    subject, sender, body = extract_plain_text(gmail_message("m1", plain="Plain\u200b body", html="<p>Html body</p>"))
    assert subject == "Application for Backend Engineer at Acme Corp"
    assert sender == "Acme <jobs@acme.com>"
    assert body == "Plain body"


def test_html_only_is_stripped_of_tags():
    _, _, body = extract_plain_text(gmail_message("m1", plain=None, html="<p>We would like to <b>interview</b></p>"))
    assert "interview" in body
    assert "<" not in body


def test_raw_message_date():
    raw = to_raw_message(gmail_message("m1"))
    assert raw.received_date.isoformat() == "2024-05-01T09:00:00+00:00"
    assert raw.thread_id == "t1"


def test_mailbox_fetch_and_relabel():
    service = FakeGmail(
        {"To Process": "L1", "Processed": "L2"},
        {"t1": {"id": "t1", "messages": [gmail_message("m1"), gmail_message("m2")]}},
    )
    mailbox = GmailMailbox(service=service)
    [thread] = mailbox.get_labeled_threads("To Process", 0, 20)
    assert [m.id for m in thread.messages] == ["m1", "m2"]
    assert thread.label_names == {"To Process"}

    mailbox.add_label(thread, "Processed")
    mailbox.remove_label(thread, "To Process")
    modifies = [c for c in service.log if c[0] == "threads.modify"]
    assert modifies == [
        ("threads.modify", "t1", {"addLabelIds": ["L2"]}),
        ("threads.modify", "t1", {"removeLabelIds": ["L1"]}),
    ]
    assert service.log.count(("labels.list",)) == 1


def test_missing_label_is_a_configuration_error():
    mailbox = GmailMailbox(service=FakeGmail({"To Process": "L1"}, {}))
    with pytest.raises(ConfigurationError):
        mailbox.require_labels(["To Process", "Processed"])


class FakeWorksheet:
    title = "Applications"

    def __init__(self, fail=False):
        self.fail = fail
        self.batches = []
        self.appended = []
        self.input_options = []

    def get_all_values(self):
        return [["Header"], ["row"]]

    def batch_update(self, data, value_input_option=None):
        if self.fail:
            raise gspread.exceptions.GSpreadException("quota")
        self.input_options.append(value_input_option)
        self.batches.append(data)

    def append_rows(self, rows, value_input_option=None, table_range=None):
        if self.fail:
            raise gspread.exceptions.GSpreadException("quota")
        self.input_options.append(value_input_option)
        self.appended.extend(rows)


def test_row_store_batches_updates():
    ws = FakeWorksheet()
    store = SheetRowStore(ws, width=3)
    store.update_rows([(2, ["a", "b", "c", "extra"]), (5, ["d", "e", "f"])])
    assert ws.batches == [[
        {"range": "A2:C2", "values": [["a", "b", "c"]]},
        {"range": "A5:C5", "values": [["d", "e", "f"]]},
    ]]
    store.append_rows([["x", "y", "z"]])
    assert ws.appended == [["x", "y", "z"]]


def test_row_store_writes_cells_as_literal_text():
    ws = FakeWorksheet()
    store = SheetRowStore(ws, width=2)
    subject = '=HYPERLINK("http://evil.example","click")'
    store.append_rows([["Acme", subject]])
    store.update_rows([(2, ["+1 555 0100", "-Offer"])])
    assert ws.appended == [["Acme", subject]]
    assert ws.input_options == [ValueInputOption.raw, ValueInputOption.raw]


def test_row_store_write_failure():
    store = SheetRowStore(FakeWorksheet(fail=True), width=3)
    with pytest.raises(StoreWriteFailure):
        store.update_rows([(2, ["a", "b", "c"])])
    with pytest.raises(StoreWriteFailure):
        store.append_rows([["a", "b", "c"]])


def test_missing_worksheet():
    class Spreadsheet:
        title = "Tracker"

        def worksheet(self, name):
            raise gspread.WorksheetNotFound(name)

    with pytest.raises(ConfigurationError):
        open_worksheet(Spreadsheet(), "Applications")


def test_diagnostic_rows_are_truncated_and_flushed():
    store = FakeRowStore(rows=[])
    log = DiagnosticLog("Application Tracker", store)
    log.record("Gemini API Error", "x" * 900, message("m1", subject="Subject"), message("m1").received_date)
    assert log.flush() == 1
    [[stamp, module, error_type, detail, subject, message_id]] = store.rows
    assert stamp == "2024-05-01 09:00:00"
    assert len(detail) == 500
    assert (module, error_type, subject, message_id) == ("Application Tracker", "Gemini API Error", "Subject", "m1")
    assert log.flush() == 0
