"""Tests for the library-wide quality scan."""

from conftest import author

from reconciler.models.schemas import IssueSeverity
from reconciler.services.issue_scanner import find_issues, scan_record


def _complete_article(make_record, key="GOOD0001", **overrides):
    fields = dict(
        title="Deep residual learning for image recognition",
        creators=[author("He", "Kaiming")],
        date="2016",
        publicationTitle="CVPR",
        volume="1",
        issue="1",
        pages="770-778",
        DOI="10.1109/CVPR.2016.90",
        abstractNote="Deeper neural networks are more difficult to train.",
    )
    fields.update(overrides)
    return make_record(key, **fields)


def test_complete_record_is_not_flagged(make_record) -> None:
    assert find_issues([_complete_article(make_record)]) == []


def test_missing_fields_carry_severity(make_record) -> None:
    record = make_record("THIN0001", title="Only a title here")
    issues = {issue.field: issue for issue in scan_record(record)}

    assert issues["Authors"].message == "Missing authors"
    assert issues["Authors"].severity == IssueSeverity.HIGH
    assert issues["date"].severity == IssueSeverity.HIGH
    assert issues["publicationTitle"].severity == IssueSeverity.MEDIUM
    assert issues["DOI or URL"].severity == IssueSeverity.MEDIUM
    assert issues["volume"].severity == IssueSeverity.LOW
    assert "title" not in issues


def test_broken_creator_names_are_flagged(make_record) -> None:
    record = _complete_article(make_record, creators=[author("Smith; Jones", "A"), author("Last1", "F")])
    messages = [issue.message for issue in scan_record(record)]

    assert "Malformed author names detected (1 creator(s) need fixing)" in messages
    assert "Placeholder author names detected: last1 f" in messages


def test_book_chapter_needs_editors(make_record) -> None:
    chapter = make_record("CHAP0001", item_type="bookChapter", title="A chapter", creators=[author("Doe", "Jane")],
                          date="2020", bookTitle="Handbook", pages="1-10", publisher="Press", ISBN="9780000000002")

    issues = scan_record(chapter)
    assert [(i.field, i.message) for i in issues] == [("Editors", "Missing editors (book editors)")]


def test_unreadable_date_is_flagged(make_record) -> None:
    record = _complete_article(make_record, date="sometime")
    issues = scan_record(record)
    assert [(i.field, i.severity) for i in issues] == [("Date", IssueSeverity.MEDIUM)]


def test_scan_skips_notes_and_orders_by_high_severity(make_record) -> None:
    note = make_record("NOTE0001", item_type="note")
    mild = _complete_article(make_record, "MILD0001", volume="")
    severe = make_record("BAD00001", title="", creators=[])

    flagged = find_issues([note, mild, severe])

    assert [entry.record.key for entry in flagged] == ["BAD00001", "MILD0001"]
    assert flagged[0].high_count >= 3
    assert flagged[1].high_count == 0
