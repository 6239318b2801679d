"""
Recovery of usable fields from truncated or malformed AI responses
"""
import re
from enum import Enum
from typing import List, Dict, Any
from loguru import logger

from ..models.schemas import RecoveryResult


class ExpectedShape(str, Enum):
    AUTHOR_VALIDATION = "author-validation"
    PUBLICATION_EXISTENCE = "publication-existence"
    METADATA_ENRICHMENT = "metadata-enrichment"
    GENERAL = "general"


# Array names that hold creator objects, per response shape
CREATOR_ARRAYS = {
    ExpectedShape.AUTHOR_VALIDATION: ["correctAuthors"],
    ExpectedShape.METADATA_ENRICHMENT: ["creators"],
    ExpectedShape.GENERAL: ["correctAuthors", "creators"],
    ExpectedShape.PUBLICATION_EXISTENCE: [],
}

BOOLEAN_FIELDS = ["exists", "valid", "authorsMatch", "hasPlaceholders"]
STRING_FIELDS = ["confidence", "DOI", "title", "source", "notes"]

# One creator object per chunk, the last one possibly cut off
CREATOR_CHUNK_PATTERN = re.compile(r'\{[^{}]*\}?')


def _chunk_value(chunk: str, key: str) -> str:
    match = re.search(rf'"{key}"\s*:\s*"([^"]*)', chunk)
    return match.group(1) if match else ""


def _extract_creators(raw_text: str, array_name: str) -> List[Dict[str, str]]:
    array_match = re.search(rf'"{array_name}"\s*:\s*\[([\s\S]*?)(?:\]|$)', raw_text)
    if not array_match:
        return []

    creators = []
    seen = set()
    for chunk in CREATOR_CHUNK_PATTERN.findall(array_match.group(1)):
        last_name = _chunk_value(chunk, "lastName")
        first_name = _chunk_value(chunk, "firstName")
        creator_type = _chunk_value(chunk, "creatorType") or "author"
        if not last_name:
            continue
        identity = (last_name.lower(), first_name.lower())
        if identity in seen:
            continue
        seen.add(identity)
        creators.append({"creatorType": creator_type, "firstName": first_name, "lastName": last_name})
    return creators


def recover(raw_text: str, expected_shape: ExpectedShape = ExpectedShape.GENERAL) -> RecoveryResult:
    """Salvage known fields from ``raw_text``; ``success=False`` when nothing is recognisable"""
    if not raw_text:
        return RecoveryResult(success=False, error="Empty response, nothing to recover")

    recovered: Dict[str, Any] = {}

    for array_name in CREATOR_ARRAYS.get(expected_shape, []):
        creators = _extract_creators(raw_text, array_name)
        if creators:
            recovered[array_name] = creators
            recovered["partialRecovery"] = True

    for name in BOOLEAN_FIELDS:
        match = re.search(rf'"{name}"\s*:\s*(true|false)', raw_text)
        if match:
            recovered[name] = match.group(1) == "true"

    for name in STRING_FIELDS:
        match = re.search(rf'"{name}"\s*:\s*"([^"]+)"', raw_text)
        if match:
            recovered[name] = match.group(1)

    if not recovered:
        logger.warning(f"🩹 Could not recover any data ({expected_shape.value})")
        return RecoveryResult(success=False, error="Could not recover any data from truncated JSON")

    recovered["recovered"] = True
    logger.info(f"🩹 Recovered {len(recovered) - 1} field(s) from truncated {expected_shape.value} response")
    return RecoveryResult(success=True, fields=recovered)
