"""
Duplicate detection over a snapshot of records
"""
from typing import List, Dict, Optional, Tuple
from loguru import logger

from ..models.schemas import Record, DuplicateGroup, MatchReason
from ..utils.text_normalizer import text_normalizer, NormalizedKey, TITLE_KEY_PREFIX


def bucket_key(keys: NormalizedKey) -> Optional[Tuple[MatchReason, str]]:
    """The single bucket a record belongs to, in priority DOI > ISBN > title+creators"""
    if keys.doi_key:
        return MatchReason.DOI, f"doi:{keys.doi_key}"
    if keys.isbn_key:
        return MatchReason.ISBN, f"isbn:{keys.isbn_key}"
    if keys.title_key:
        return MatchReason.TITLE, f"title:{keys.title_key[:TITLE_KEY_PREFIX]}|{keys.creator_key}"
    return None


def detect_duplicates(records: List[Record]) -> List[DuplicateGroup]:
    """Group records sharing a normalized key; single pass, first-seen order"""
    buckets: Dict[str, List[Record]] = {}
    reasons: Dict[str, MatchReason] = {}
    skipped = 0

    for record in records:
        if not record.is_bibliographic:
            continue

        bucket = bucket_key(text_normalizer.compute_keys(record))
        if bucket is None:
            skipped += 1
            continue

        reason, key = bucket
        if key not in buckets:
            buckets[key] = []
            reasons[key] = reason
        buckets[key].append(record)

    groups: List[DuplicateGroup] = []
    seen_ids = set()
    for key, members in buckets.items():
        if len(members) < 2:
            continue
        group_id = ",".join(sorted(member.key for member in members))
        if group_id in seen_ids:
            continue
        seen_ids.add(group_id)
        groups.append(DuplicateGroup(id=group_id, match_reason=reasons[key], members=members))

    logger.info(f"🔍 Duplicate detection: {len(records)} records, {len(groups)} groups, {skipped} without usable keys")
    return groups
