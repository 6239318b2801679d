"""
Per item type field schema, used to keep proposed patches writable
"""
from typing import Dict, Any, List
from loguru import logger
from pydantic import BaseModel

from ..quality_config import REQUIRED_CITATION_FIELDS, RECOMMENDED_CITATION_FIELDS

_COMMON_TAIL = ['shortTitle', 'url', 'accessDate', 'archive', 'archiveLocation', 'libraryCatalog',
                'callNumber', 'rights', 'extra']

# Zotero field lists for common types; unknown fields cause 400 errors on write-back
VALID_FIELDS: Dict[str, List[str]] = {
    'book': ['title', 'creators', 'abstractNote', 'series', 'seriesNumber', 'volume', 'numberOfVolumes',
             'edition', 'place', 'publisher', 'date', 'numPages', 'language', 'ISBN'] + _COMMON_TAIL,
    'journalArticle': ['title', 'creators', 'abstractNote', 'publicationTitle', 'volume', 'issue', 'pages',
                       'date', 'series', 'seriesTitle', 'seriesText', 'journalAbbreviation', 'language',
                       'DOI', 'ISSN'] + _COMMON_TAIL,
    'bookSection': ['title', 'creators', 'abstractNote', 'bookTitle', 'series', 'seriesNumber', 'volume',
                    'numberOfVolumes', 'edition', 'place', 'publisher', 'date', 'pages', 'language',
                    'ISBN'] + _COMMON_TAIL,
    'conferencePaper': ['title', 'creators', 'abstractNote', 'conferenceName', 'proceedingsTitle', 'volume',
                        'pages', 'place', 'publisher', 'date', 'language', 'DOI', 'ISBN'] + _COMMON_TAIL,
    'thesis': ['title', 'creators', 'abstractNote', 'thesisType', 'university', 'place', 'date', 'numPages',
               'language'] + _COMMON_TAIL,
    'webpage': ['title', 'creators', 'abstractNote', 'websiteTitle', 'websiteType', 'date',
                'language'] + _COMMON_TAIL,
    'report': ['title', 'creators', 'abstractNote', 'reportNumber', 'reportType', 'institution', 'place',
               'date', 'pages', 'language'] + _COMMON_TAIL,
}
VALID_FIELDS['bookChapter'] = VALID_FIELDS['bookSection']

DEFAULT_FIELDS = ['title', 'creators', 'abstractNote', 'date', 'language'] + _COMMON_TAIL

# Accepted on every item type
UNIVERSAL_FIELDS = ['itemType', 'tags', 'collections', 'relations']

# Where a container title lives for each item type
CONTAINER_FIELD = {
    'journalArticle': 'publicationTitle',
    'bookSection': 'bookTitle',
    'bookChapter': 'bookTitle',
    'conferencePaper': 'proceedingsTitle',
    'webpage': 'websiteTitle',
}


class MissingFields(BaseModel):
    required: List[str] = []
    recommended: List[str] = []

    @property
    def all(self) -> List[str]:
        return self.required + self.recommended


def valid_fields_for(item_type: str) -> List[str]:
    return VALID_FIELDS.get(item_type, DEFAULT_FIELDS) + UNIVERSAL_FIELDS


def filter_valid_fields(item_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop every field the item type does not accept"""
    allowed = set(valid_fields_for(item_type))
    dropped = [key for key in data if key not in allowed]
    if dropped:
        logger.debug(f"Dropping fields not valid for {item_type or 'unknown type'}: {dropped}")
    return {key: value for key, value in data.items() if key in allowed}


def adapt_container_field(item_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Move a source's generic ``publicationTitle`` to the item type's container field"""
    target = CONTAINER_FIELD.get(item_type)
    if not target or target == 'publicationTitle' or 'publicationTitle' not in data:
        return data
    adapted = dict(data)
    container = adapted.pop('publicationTitle')
    adapted.setdefault(target, container)
    return adapted


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def missing_citation_fields(data: Dict[str, Any], item_type: str) -> MissingFields:
    """Required and recommended citation fields that are still empty"""
    required_fields = REQUIRED_CITATION_FIELDS.get(item_type, REQUIRED_CITATION_FIELDS["default"])
    recommended_fields = RECOMMENDED_CITATION_FIELDS.get(item_type, RECOMMENDED_CITATION_FIELDS["default"])

    missing = MissingFields()
    missing.required = [field for field in required_fields if is_empty_value(data.get(field))]

    # Journal articles only need one of DOI / URL
    doi_or_url = item_type == "journalArticle" and "DOI" in recommended_fields and "url" in recommended_fields
    if doi_or_url and is_empty_value(data.get("DOI")) and is_empty_value(data.get("url")):
        missing.recommended.append("DOI or URL")

    for field in recommended_fields:
        if doi_or_url and field in ("DOI", "url"):
            continue
        if is_empty_value(data.get(field)):
            missing.recommended.append(field)
    return missing
