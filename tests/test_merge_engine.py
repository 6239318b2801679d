"""Tests for merge drafts and merge finalization."""

import asyncio

import pytest
from conftest import FakeStore, author

from reconciler.models.schemas import DuplicateGroup, EnrichmentPatch, MatchReason, SourceName, parse_creators
from reconciler.services.merge_engine import (
    auto_merge,
    build_auto_merge_draft,
    build_manual_draft,
    finalize_merge,
    manual_merge,
)
from reconciler.utils.errors import VersionConflictError
from reconciler.utils.text_normalizer import text_normalizer

DOI = "10.1109/SP.2017.41"


def _group(*members) -> DuplicateGroup:
    return DuplicateGroup(
        id=",".join(sorted(m.key for m in members)),
        match_reason=MatchReason.DOI,
        members=list(members),
    )


@pytest.fixture
def shared_doi_group(make_record) -> DuplicateGroup:
    return _group(
        make_record("A", version=5, DOI=DOI, title="Membership inference attacks",
                    creators=[author("Shokri", "Reza")], tags=[{"tag": "privacy"}], dateAdded="2020-01-01"),
        make_record("B", version=2, DOI=DOI, title="Membership inference attacks against machine learning models",
                    creators=[author("shokri", "reza"), author("Stronati", "Marco")], tags=[{"tag": "ml"}]),
        make_record("C", version=9, DOI=DOI, title="Membership inference",
                    creators=[author("Shmatikov", "Vitaly")], pages="3-18", tags=[{"tag": "privacy"}]),
    )


class RecordingCascade:
    def __init__(self, patch=None):
        self.patch = patch
        self.records = []

    async def enrich(self, record):
        self.records.append(record)
        return self.patch


def test_auto_merge_draft_three_records_sharing_doi(shared_doi_group) -> None:
    draft = build_auto_merge_draft(shared_doi_group)

    assert draft.source == SourceName.MERGE
    assert draft.fields["title"] == "Membership inference attacks against machine learning models"
    assert draft.field_sources["title"] == "B"
    assert [c["lastName"] for c in draft.fields["creators"]] == ["Shokri", "Stronati", "Shmatikov"]
    assert draft.fields["pages"] == "3-18"
    assert draft.field_sources["pages"] == "C"
    assert [t["tag"] for t in draft.fields["tags"]] == ["privacy", "ml"]
    assert "dateAdded" not in draft.fields


def test_auto_merge_creators_are_unique(shared_doi_group) -> None:
    draft = build_auto_merge_draft(shared_doi_group)
    merged = parse_creators(draft.fields["creators"])
    identities = [text_normalizer.creator_identity(c) for c in merged]
    assert len(identities) == len(set(identities))
    assert merged[0].last_name == "Shokri"


def test_longest_tie_keeps_earlier_member(make_record) -> None:
    group = _group(
        make_record("A", DOI=DOI, publicationTitle="Journal One"),
        make_record("B", DOI=DOI, publicationTitle="Journal Two"),
    )
    draft = build_auto_merge_draft(group)
    assert draft.fields["publicationTitle"] == "Journal One"
    assert draft.field_sources["publicationTitle"] == "A"


def test_doi_takes_first_non_empty(make_record) -> None:
    group = _group(
        make_record("A", ISBN="9780262033848", title="A much longer title for this record"),
        make_record("B", ISBN="9780262033848", DOI="https://doi.org/10.1000/a-much-longer-doi-value"),
    )
    draft = build_auto_merge_draft(group)
    assert draft.fields["DOI"] == "https://doi.org/10.1000/a-much-longer-doi-value"
    assert draft.field_sources["DOI"] == "B"


def test_manual_draft_applies_selections(shared_doi_group) -> None:
    draft = build_manual_draft(shared_doi_group, {"title": 2, "pages": 2})
    assert draft.fields["title"] == "Membership inference"
    assert draft.fields["pages"] == "3-18"
    assert draft.field_sources["title"] == "C"
    assert draft.fields["creators"] == shared_doi_group.members[0].get("creators")


def test_manual_draft_is_rebuilt_from_scratch(shared_doi_group) -> None:
    build_manual_draft(shared_doi_group, {"title": 1})
    draft = build_manual_draft(shared_doi_group, {})
    assert draft.fields["title"] == "Membership inference attacks"


def test_manual_draft_rejects_out_of_range_index(shared_doi_group) -> None:
    with pytest.raises(ValueError):
        build_manual_draft(shared_doi_group, {"title": 3})


def test_auto_merge_fills_only_missing_fields_from_cascade(shared_doi_group) -> None:
    cascade = RecordingCascade(EnrichmentPatch(
        source=SourceName.CROSSREF,
        strategy="crossref_doi",
        fields={"title": "Replaced title", "publicationTitle": "2017 IEEE Symposium on Security and Privacy", "volume": "1"},
        field_sources={"title": "crossref", "publicationTitle": "crossref", "volume": "crossref"},
    ))
    patch = asyncio.run(auto_merge(shared_doi_group, cascade))

    assert patch.source == SourceName.MERGE
    assert patch.fields["title"] == "Membership inference attacks against machine learning models"
    assert patch.fields["publicationTitle"] == "2017 IEEE Symposium on Security and Privacy"
    assert patch.field_sources["publicationTitle"] == "crossref"
    assert patch.field_sources["title"] == "B"
    assert len(cascade.records) == 1


def test_manual_merge_does_not_overwrite_selected_fields(shared_doi_group) -> None:
    cascade = RecordingCascade(EnrichmentPatch(
        source=SourceName.OPENALEX,
        fields={"pages": "1-2", "volume": "12"},
        field_sources={"pages": "openalex", "volume": "openalex"},
    ))
    # member A has no pages; selecting it keeps pages empty on purpose
    patch = asyncio.run(manual_merge(shared_doi_group, {"pages": 0}, cascade))

    assert "pages" not in patch.fields
    assert patch.fields["volume"] == "12"


def test_merge_draft_is_filtered_to_item_type(make_record) -> None:
    group = _group(
        make_record("A", DOI=DOI, title="A title long enough to count"),
        make_record("B", DOI=DOI, university="Somewhere University"),
    )
    patch = asyncio.run(auto_merge(group))
    assert "university" not in patch.fields


def test_finalize_deletes_non_masters_and_updates_master(shared_doi_group) -> None:
    store = FakeStore(shared_doi_group.members)
    patch = build_auto_merge_draft(shared_doi_group)

    outcome = asyncio.run(finalize_merge(store, shared_doi_group, patch))

    assert outcome.deleted == ["B", "C"]
    assert outcome.already_gone == []
    assert outcome.master.key == "A"
    assert outcome.master.version == 6
    assert outcome.master.get("pages") == "3-18"


def test_finalize_treats_missing_member_as_success(shared_doi_group) -> None:
    store = FakeStore([m for m in shared_doi_group.members if m.key != "C"])
    patch = build_auto_merge_draft(shared_doi_group)

    outcome = asyncio.run(finalize_merge(store, shared_doi_group, patch))
    assert outcome.already_gone == ["C"]


def test_finalize_retries_master_update_once_on_conflict(shared_doi_group) -> None:
    store = FakeStore(shared_doi_group.members, conflicts=1)
    patch = build_auto_merge_draft(shared_doi_group)

    outcome = asyncio.run(finalize_merge(store, shared_doi_group, patch))
    assert store.update_calls == ["A", "A"]
    assert outcome.master.version == 7


def test_finalize_surfaces_second_conflict(shared_doi_group) -> None:
    store = FakeStore(shared_doi_group.members, conflicts=2)
    patch = build_auto_merge_draft(shared_doi_group)

    with pytest.raises(VersionConflictError):
        asyncio.run(finalize_merge(store, shared_doi_group, patch))


def test_finalize_drops_fields_invalid_for_master_type(make_record) -> None:
    article = make_record("A", DOI=DOI, title="Membership inference attacks", publicationTitle="IEEE S&P")
    book = make_record("B", item_type="book", title="Membership inference", ISBN="9780000000002")
    group = _group(article, book)
    store = FakeStore(group.members)
    patch = asyncio.run(auto_merge(group))

    outcome = asyncio.run(finalize_merge(store, group, patch, master_index=1))

    assert outcome.master.key == "B"
    assert outcome.master.item_type == "book"
    assert outcome.deleted == ["A"]
    assert "publicationTitle" not in outcome.master.fields
    assert "DOI" not in outcome.master.fields
    assert outcome.master.get("ISBN") == "9780000000002"


def test_failed_master_update_deletes_nothing(make_record) -> None:
    group = _group(
        make_record("A", DOI=DOI, title="Short"),
        make_record("B", DOI=DOI, title="The much longer correct title"),
    )
    store = FakeStore(group.members, conflicts=2)
    patch = build_auto_merge_draft(group)

    with pytest.raises(VersionConflictError):
        asyncio.run(finalize_merge(store, group, patch))

    assert store.deleted == []
    assert set(store.records) == {"A", "B"}
