"""
Name checks for creators left behind by bad imports or synthetic test data
"""
import re
from typing import List

from ..models.schemas import Creator
from ..quality_config import PLACEHOLDER_AUTHOR_PATTERNS


def creator_text(creator: Creator) -> str:
    return " ".join(part for part in [creator.last_name, creator.first_name, creator.full_name] if part).strip()


def is_placeholder_name(name: str) -> bool:
    name = (name or "").lower()
    return bool(name) and any(re.search(pattern, name) for pattern in PLACEHOLDER_AUTHOR_PATTERNS)


def find_placeholder_creators(creators: List[Creator]) -> List[str]:
    """Names matching a placeholder pattern such as Last1 or Test"""
    hits = []
    for creator in creators:
        name = creator_text(creator)
        if is_placeholder_name(name):
            hits.append(name.lower())
    return hits


def is_malformed_name(name: str) -> bool:
    """Concatenated or separator-littered names left behind by bad imports"""
    if not name:
        return False
    if re.search(r'[;:]', re.sub(r'[;:]\s*$', '', name)):
        return True
    if re.search(r'[a-zA-Z0-9]+\s*,\s*[A-Z]\s*;\s*:', name):
        return True
    if re.search(r'[;:]\s*[;:]', name):
        return True
    if re.match(r'^[\d\s,;:]+$', name) and len(name) > 2:
        return True
    return bool(re.match(r'^\s*:', name))


def is_malformed_creator(creator: Creator) -> bool:
    # each name part alone and all of them joined
    parts = [creator.last_name, creator.first_name, creator.full_name, creator_text(creator)]
    return any(is_malformed_name((part or "").strip()) for part in parts)
