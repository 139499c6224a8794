from src.application_logger.models import SENTINEL, ColumnMap, ExtractedRecord, Status
from src.application_logger.reconcile import (
    APPEND,
    UPDATE,
    CompanyIndex,
    merge,
    new_application,
    reconcile,
)

from tests.fakes import HEADER, T0, at, message


def row(company, title, status, peak="", last_update="2024-04-01 10:00:00", email_id="old"):
    return ["2024-04-01 10:00:00", "2024-04-01 10:00:00", "Other", company, title, status,
            last_update, "Earlier subject", "link", email_id, peak]


def index_of(*rows):
    return CompanyIndex.from_rows([HEADER, *rows], ColumnMap())


def record(company="Acme Corp", title="Backend Engineer", status=None):
    return ExtractedRecord(company=company, title=title, status=status)


def test_index_skips_header_blank_and_sentinel_rows():
    index = index_of(
        row("Acme Corp", "Backend Engineer", "Applied"),
        [""] * 11,
        row(SENTINEL, SENTINEL, "Applied"),
    )
    assert len(index) == 2
    assert [a.row_id for a in index.find_by_normalized_key("acme corp")] == [2]
    assert index.find_by_normalized_key(SENTINEL.lower()) == []


def test_match_prefers_same_title_then_most_recent():
    index = index_of(
        row("Acme Corp", "Backend Engineer", "Applied"),
        row("Acme Corp", "Data Engineer", "Applied"),
    )
    assert index.find_match("ACME corp ", "backend engineer").row_id == 2
    assert index.find_match("Acme Corp", "Designer").row_id == 3
    assert index.find_match("Acme Corp", SENTINEL).row_id == 3


def test_company_key_is_plain_lowercase():
    index = index_of(row("Acme Corp", "Backend Engineer", "Applied"))
    assert index.find_match("Acme", "Backend Engineer") is None


def test_new_row():
    mutation = reconcile(record(status=Status.APPLIED), message("m1", subject="S"), index_of(), at(1))
    assert mutation.kind == APPEND
    app = mutation.application
    assert (app.company, app.title, app.status, app.peak_status) == ("Acme Corp", "Backend Engineer", "Applied", "Applied")
    assert app.source_message_id == "m1"
    assert app.source_link.endswith("#inbox/m1")
    assert app.last_update_date == T0


def test_new_row_without_status_uses_default():
    app = new_application(record(), message("m1"), at(1))
    assert app.status == "Applied"


def test_sentinel_company_never_matches():
    index = index_of(row(SENTINEL, SENTINEL, "Applied"))
    mutation = reconcile(record(company=SENTINEL, title=SENTINEL), message("m1"), index, at(1))
    assert mutation.kind == APPEND
    assert mutation.application.company == SENTINEL


def test_status_advances_with_rank():
    index = index_of(row("Acme Corp", "Backend Engineer", "Applied"))
    mutation = reconcile(record(status=Status.INTERVIEW), message("m2", received=at(5)), index, at(6))
    assert mutation.kind == UPDATE
    app = mutation.application
    assert app.row_id == 2
    assert (app.status, app.peak_status) == ("Interview", "Interview")
    assert app.last_update_date == at(5)
    assert app.processed_timestamp == at(6)
    assert app.source_message_id == "m2"


def test_lower_rank_is_dropped():
    app = index_of(row("Acme Corp", "Backend Engineer", "Interview")).get(2)
    merged = merge(app, record(status=Status.APPLIED), message("m2", received=at(5)), at(6))
    assert merged.status == "Interview"
    assert merged.peak_status == "Interview"
    assert merged.last_update_date == at(5)


def test_rejection_overrides_but_peak_stays():
    app = index_of(row("Acme Corp", "Backend Engineer", "Interview", peak="Interview")).get(2)
    merged = merge(app, record(status=Status.REJECTED), message("m2"), at(6))
    assert merged.status == "Rejected"
    assert merged.peak_status == "Interview"


def test_offer_overrides_accepted():
    app = index_of(row("Acme Corp", "Backend Engineer", "Offer Accepted")).get(2)
    merged = merge(app, record(status=Status.OFFER), message("m2"), at(6))
    assert merged.status == "Offer"
    assert merged.peak_status == "Offer Accepted"


def test_peak_never_decreases():
    app = index_of(row("Acme Corp", "Backend Engineer", "Rejected", peak="Assessment")).get(2)
    merged = merge(app, record(status=Status.APPLICATION_VIEWED), message("m2"), at(6))
    assert merged.status == "Application Viewed"
    assert merged.peak_status == "Assessment"


def test_null_status_keeps_current():
    app = index_of(row("Acme Corp", "Backend Engineer", "Assessment")).get(2)
    merged = merge(app, record(status=None), message("m2"), at(6))
    assert merged.status == "Assessment"


def test_sentinels_never_overwrite():
    app = index_of(row("Acme Corp", "Backend Engineer", "Applied")).get(2)
    merged = merge(app, record(company="ACME CORP", title=SENTINEL, status=Status.ASSESSMENT), message("m2"), at(6))
    assert merged.company == "ACME CORP"
    assert merged.title == "Backend Engineer"


def test_appends_get_provisional_rows_and_absorb_later_updates():
    index = index_of(row("Globex", "Analyst", "Applied"))
    first = reconcile(record(status=Status.APPLIED), message("m1", received=at(1)), index, at(2))
    appended = index.apply(first, "m1")
    assert appended.row_id == 3

    second = reconcile(record(status=Status.INTERVIEW), message("m2", received=at(3)), index, at(4))
    assert second.kind == UPDATE
    index.apply(second, "m2")

    assert index.pending_updates() == []
    [values] = index.pending_appends()
    assert values[5] == "Interview"
    assert values[10] == "Interview"
    assert index.append_message_ids() == ["m1", "m2"]


def test_updates_are_batched_per_row():
    index = index_of(row("Globex", "Analyst", "Applied"), row("Acme Corp", "Backend Engineer", "Applied"))
    for i, status in enumerate([Status.ASSESSMENT, Status.INTERVIEW]):
        mutation = reconcile(record(status=status), message(f"m{i}", received=at(i)), index, at(10))
        index.apply(mutation, f"m{i}")
    updates = index.pending_updates()
    assert [row_id for row_id, _ in updates] == [3]
    assert updates[0][1][5] == "Interview"
    assert index.update_message_ids() == ["m0", "m1"]
