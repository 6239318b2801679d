"""
Field-level merging of duplicate groups and the final write-back of a merge
"""
from typing import List, Dict, Any, Optional, Set, Tuple
from loguru import logger

from ..models.schemas import DuplicateGroup, EnrichmentPatch, MergeOutcome, SourceName, parse_creators
from ..utils.field_schema import filter_valid_fields, is_empty_value, missing_citation_fields
from ..utils.text_normalizer import text_normalizer
from .write_back import update_with_conflict_retry, delete_tolerant

# Store-managed fields that are never copied between records
BOOKKEEPING_FIELDS = {"key", "version", "dateAdded", "dateModified", "relations", "collections", "parentItem"}

# Fields taken from the base record as-is
BASE_ONLY_FIELDS = {"itemType"}

FIRST_NON_EMPTY_FIELDS = {"DOI", "ISBN"}


def _base_fields(group: DuplicateGroup) -> Tuple[Dict[str, Any], Dict[str, str]]:
    base = group.members[0]
    fields = {k: v for k, v in base.fields.items() if k not in BOOKKEEPING_FIELDS}
    sources = {k: base.key for k in fields}
    return fields, sources


def _merge_creators(group: DuplicateGroup) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Union by identity, first occurrence wins, discovery order kept"""
    seen: Set[str] = set()
    merged = []
    contributors = []
    for member in group.members:
        for creator in member.creators:
            identity = text_normalizer.creator_identity(creator)
            if identity is None or identity in seen:
                continue
            seen.add(identity)
            merged.append(creator.to_zotero())
            if member.key not in contributors:
                contributors.append(member.key)
    return merged, contributors


def _tag_name(tag: Any) -> str:
    if isinstance(tag, dict):
        return str(tag.get("tag", "")).strip()
    return str(tag).strip()


def _merge_tags(group: DuplicateGroup) -> List[Any]:
    seen = set()
    merged = []
    for member in group.members:
        for tag in member.get("tags") or []:
            name = _tag_name(tag)
            if name and name not in seen:
                seen.add(name)
                merged.append(tag)
    return merged


def build_auto_merge_draft(group: DuplicateGroup) -> EnrichmentPatch:
    """Combine every member into one field set without touching any record"""
    fields, sources = _base_fields(group)

    creators, contributors = _merge_creators(group)
    if creators:
        fields["creators"] = creators
        sources["creators"] = ",".join(contributors)

    tags = _merge_tags(group)
    if tags:
        fields["tags"] = tags

    handled = BOOKKEEPING_FIELDS | BASE_ONLY_FIELDS | {"creators", "tags"}
    for member in group.members[1:]:
        for field, value in member.fields.items():
            if field in handled or is_empty_value(value):
                continue
            current = fields.get(field)

            if field in FIRST_NON_EMPTY_FIELDS:
                if is_empty_value(current):
                    fields[field] = value
                    sources[field] = member.key
                continue

            if not isinstance(value, str):
                if is_empty_value(current):
                    fields[field] = value
                    sources[field] = member.key
                continue

            # strictly longer only, so ties keep the earlier member
            if is_empty_value(current) or (isinstance(current, str) and len(value.strip()) > len(current.strip())):
                fields[field] = value
                sources[field] = member.key

    return EnrichmentPatch(source=SourceName.MERGE, strategy="auto", fields=fields, field_sources=sources)


def build_manual_draft(group: DuplicateGroup, selections: Dict[str, int]) -> EnrichmentPatch:
    """Base record plus the user's per-field member choices, rebuilt from scratch each call"""
    fields, sources = _base_fields(group)

    for field, index in selections.items():
        if index < 0 or index >= len(group.members):
            raise ValueError(f"Selection for '{field}' points at member {index}, group has {len(group.members)}")
        if field in BOOKKEEPING_FIELDS:
            continue
        member = group.members[index]
        value = member.get(field)
        if is_empty_value(value):
            fields.pop(field, None)
        else:
            fields[field] = value
        sources[field] = member.key

    return EnrichmentPatch(source=SourceName.MERGE, strategy="manual", fields=fields, field_sources=sources)


async def _complete_draft(group: DuplicateGroup, draft: EnrichmentPatch, cascade=None,
                          locked: Optional[Set[str]] = None) -> EnrichmentPatch:
    base = group.members[0]
    locked = locked or set()

    fields = filter_valid_fields(base.item_type, draft.fields)
    sources = {field: source for field, source in draft.field_sources.items() if field in fields}

    if cascade is not None:
        missing = missing_citation_fields(fields, base.item_type)
        if missing.all:
            logger.info(f"📋 Merge draft for {group.id} is missing {missing.all}, running enrichment")
            enrichment = await cascade.enrich(base.with_fields(fields))
            if enrichment:
                for field, value in enrichment.fields.items():
                    if field in locked or not is_empty_value(fields.get(field)):
                        continue
                    fields[field] = value
                    sources[field] = enrichment.source.value

    return EnrichmentPatch(source=SourceName.MERGE, strategy=draft.strategy, fields=fields, field_sources=sources)


async def auto_merge(group: DuplicateGroup, cascade=None) -> EnrichmentPatch:
    draft = build_auto_merge_draft(group)
    logger.info(f"🔀 Auto-merge draft for {group.id} ({group.match_reason.value})")
    return await _complete_draft(group, draft, cascade)


async def manual_merge(group: DuplicateGroup, selections: Dict[str, int], cascade=None) -> EnrichmentPatch:
    draft = build_manual_draft(group, selections)
    logger.info(f"🔀 Manual merge draft for {group.id} with {len(selections)} selection(s)")
    return await _complete_draft(group, draft, cascade, locked=set(selections))


async def finalize_merge(store, group: DuplicateGroup, patch: EnrichmentPatch, master_index: int = 0) -> MergeOutcome:
    """Write the merged fields to the master, then delete every non-master member

    A failed master write leaves every duplicate in place.
    """
    if master_index < 0 or master_index >= len(group.members):
        raise ValueError(f"Master index {master_index} out of range for group of {len(group.members)}")

    master = group.members[master_index]
    # the master keeps its own item type
    proposed = {field: value for field, value in patch.fields.items() if field not in BASE_ONLY_FIELDS}
    fields = filter_valid_fields(master.item_type, proposed)

    updated = await update_with_conflict_retry(store, master, fields)

    deleted = []
    already_gone = []
    for index, member in enumerate(group.members):
        if index == master_index:
            continue
        if await delete_tolerant(store, member):
            deleted.append(member.key)
        else:
            already_gone.append(member.key)

    logger.info(f"✅ Merged {group.id} into {master.key} (deleted {len(deleted)}, already gone {len(already_gone)})")
    return MergeOutcome(master=updated, deleted=deleted, already_gone=already_gone)
