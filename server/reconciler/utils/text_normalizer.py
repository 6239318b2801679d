"""
Text normalization for duplicate detection and title matching
"""
import re
import unicodedata
from dataclasses import dataclass
from typing import List, Optional
from loguru import logger

from ..models.schemas import Creator, Record
from ..quality_config import CASCADE_CONFIG


# Inputs shorter than these are excluded from matching to avoid false positives
MIN_TITLE_KEY_LENGTH = 15
MIN_DOI_LENGTH = 6
MIN_ISBN_DIGITS = 9
TITLE_KEY_PREFIX = 60

DOI_RESOLVER_PATTERN = re.compile(r'^(?:https?://)?(?:dx\.)?doi\.org/', re.IGNORECASE)
DOI_SCHEME_PATTERN = re.compile(r'^doi:\s*', re.IGNORECASE)
YEAR_PATTERN = re.compile(r'\b(\d{4})\b')


@dataclass(frozen=True)
class NormalizedKey:
    """Comparable keys derived from a record; empty string means unusable"""
    title_key: str = ""
    creator_key: str = ""
    doi_key: str = ""
    isbn_key: str = ""


class TextNormalizer:
    """Pure functions turning raw record fields into comparable keys"""

    def normalize_text(self, text: str) -> str:
        if not text:
            return ""
        try:
            normalized = unicodedata.normalize('NFKC', str(text))
        except Exception as e:
            logger.warning(f"Unicode normalization failed for '{text}': {e}")
            normalized = str(text)
        return re.sub(r'\s+', ' ', normalized).strip().lower()

    def normalize_title(self, title: str) -> str:
        """Lowercase, punctuation-stripped, whitespace-collapsed title"""
        basic = self.normalize_text(title)
        basic = re.sub(r'[^\w\s]', '', basic)
        return re.sub(r'\s+', ' ', basic).strip()

    def normalize_doi(self, doi: str) -> str:
        """Strip resolver prefixes and lowercase; no length check"""
        if not doi:
            return ""
        cleaned = str(doi).strip()
        cleaned = DOI_RESOLVER_PATTERN.sub('', cleaned)
        cleaned = DOI_SCHEME_PATTERN.sub('', cleaned)
        return cleaned.strip().lower()

    def doi_key(self, doi: str) -> str:
        cleaned = self.normalize_doi(doi)
        return cleaned if len(cleaned) >= MIN_DOI_LENGTH else ""

    def normalize_isbn(self, isbn: str) -> str:
        """First ISBN in the field, reduced to digits and check character"""
        if not isbn:
            return ""
        first = re.split(r'[\s,;]+', str(isbn).replace('-', '').strip())[0]
        return re.sub(r'[^0-9x]', '', first.lower())

    def isbn_key(self, isbn: str) -> str:
        cleaned = self.normalize_isbn(isbn)
        digits = sum(ch.isdigit() for ch in cleaned)
        return cleaned if digits >= MIN_ISBN_DIGITS else ""

    def title_key(self, title: str) -> str:
        normalized = self.normalize_title(title)
        return normalized if len(normalized) >= MIN_TITLE_KEY_LENGTH else ""

    def creator_key(self, creators: List[Creator]) -> str:
        """Order-independent signature of a creator list"""
        names = []
        for creator in creators:
            name = (creator.last_name or creator.full_name or "").strip().lower()
            if name:
                names.append(name)
        return ",".join(sorted(names))

    def creator_identity(self, creator: Creator) -> Optional[str]:
        """Case-insensitive identity used to de-duplicate creators"""
        last = (creator.last_name or "").strip().lower()
        first = (creator.first_name or "").strip().lower()
        if last or first:
            return f"n:{last}|{first}"
        full = (creator.full_name or "").strip().lower()
        if full:
            return f"f:{full}"
        return None

    def compute_keys(self, record: Record) -> NormalizedKey:
        return NormalizedKey(
            title_key=self.title_key(record.get("title", "")),
            creator_key=self.creator_key(record.creators),
            doi_key=self.doi_key(record.get("DOI", "")),
            isbn_key=self.isbn_key(record.get("ISBN", "")),
        )

    def extract_year(self, date: str) -> Optional[str]:
        if not date:
            return None
        match = YEAR_PATTERN.search(str(date))
        return match.group(1) if match else None

    def first_author_last_name(self, creators: List[Creator]) -> Optional[str]:
        """Last name of the first author-role creator, falling back to a full name's last token"""
        ordered = [c for c in creators if c.role == "author"] or list(creators)
        for creator in ordered:
            if creator.last_name and creator.last_name.strip():
                return creator.last_name.strip()
            if creator.full_name and creator.full_name.strip():
                return creator.full_name.strip().split()[-1]
        return None

    def titles_match(self, query_title: str, candidate_title: str) -> bool:
        """Exact normalized match, or one contains the other's first `best_match_prefix` chars"""
        query = self.normalize_title(query_title)
        candidate = self.normalize_title(candidate_title)
        if not query or not candidate:
            return False
        if query == candidate:
            return True
        prefix = CASCADE_CONFIG["best_match_prefix"]
        return query[:prefix] in candidate or candidate[:prefix] in query


text_normalizer = TextNormalizer()
