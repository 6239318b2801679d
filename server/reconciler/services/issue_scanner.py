"""
Library-wide quality scan: missing citation fields and broken creator names per record
"""
from typing import List
from loguru import logger

from ..models.schemas import Record, RecordIssue, RecordIssues, IssueSeverity
from ..utils.creator_checks import find_placeholder_creators, is_malformed_creator
from ..utils.field_schema import missing_citation_fields
from ..utils.text_normalizer import text_normalizer

HIGH_SEVERITY_FIELDS = {"title", "date", "creators"}
MEDIUM_SEVERITY_FIELDS = {"DOI", "ISBN", "abstractNote", "DOI or URL"}


def _missing_field_issue(field: str, required: bool) -> RecordIssue:
    if field == "creators":
        return RecordIssue(field="Authors", severity=IssueSeverity.HIGH, message="Missing authors")
    if field in HIGH_SEVERITY_FIELDS:
        severity = IssueSeverity.HIGH
    elif field in MEDIUM_SEVERITY_FIELDS or required:
        severity = IssueSeverity.MEDIUM
    else:
        severity = IssueSeverity.LOW
    return RecordIssue(field=field, severity=severity, message=f"Missing {field}")


def _creator_issues(record: Record) -> List[RecordIssue]:
    creators = [c for c in record.creators if c.has_name]
    if not creators:
        return []

    issues = []
    malformed = [c for c in creators if is_malformed_creator(c)]
    if malformed:
        issues.append(RecordIssue(
            field="Authors", severity=IssueSeverity.HIGH,
            message=f"Malformed author names detected ({len(malformed)} creator(s) need fixing)"
        ))

    placeholders = find_placeholder_creators(creators)
    if placeholders:
        issues.append(RecordIssue(
            field="Authors", severity=IssueSeverity.HIGH,
            message=f"Placeholder author names detected: {', '.join(placeholders)}"
        ))

    if record.item_type == "bookChapter" and not any(c.role == "editor" for c in record.creators):
        issues.append(RecordIssue(field="Editors", severity=IssueSeverity.HIGH, message="Missing editors (book editors)"))
    return issues


def scan_record(record: Record) -> List[RecordIssue]:
    missing = missing_citation_fields(record.fields, record.item_type)
    issues = [_missing_field_issue(field, required=True) for field in missing.required]
    issues += [_missing_field_issue(field, required=False) for field in missing.recommended]
    issues += _creator_issues(record)

    date = record.get("date")
    if date and not text_normalizer.extract_year(date):
        issues.append(RecordIssue(field="Date", severity=IssueSeverity.MEDIUM, message="Invalid year format"))
    return issues


def find_issues(records: List[Record]) -> List[RecordIssues]:
    """Records with at least one issue, those with the most high-severity issues first"""
    flagged = []
    for record in records:
        if not record.is_bibliographic:
            continue
        issues = scan_record(record)
        if issues:
            flagged.append(RecordIssues(record=record, issues=issues))

    flagged.sort(key=lambda entry: entry.high_count, reverse=True)
    logger.info(f"🔍 Quality scan: {len(flagged)} of {len(records)} records have issues")
    return flagged
