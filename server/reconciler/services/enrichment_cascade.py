"""
Enrichment cascade: authoritative sources first, AI fallback last
"""
import re
from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Callable, Awaitable
from loguru import logger

from ..config import settings
from ..models.schemas import Record, EnrichmentPatch, SourceName
from ..quality_config import (
    CASCADE_CONFIG, HALLUCINATION_EXACT_VALUES, HALLUCINATION_SUBSTRINGS, HALLUCINATION_PREFIX_PATTERN
)
from ..utils.api_clients import CrossRefClient, OpenAlexClient, SearchQuery
from ..utils.field_schema import adapt_container_field, filter_valid_fields, is_empty_value
from ..utils.llm_client import LLMClient, build_lookup_prompt
from ..utils.text_normalizer import text_normalizer


@dataclass
class Strategy:
    name: str
    source: SourceName
    run: Callable[[Record], Awaitable[Optional[Dict[str, Any]]]]


def select_best_match(query_title: str, candidates: Optional[List[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    """First candidate whose title matches the query, else the highest ranked one"""
    if not candidates:
        return None
    for candidate in candidates:
        if text_normalizer.titles_match(query_title, candidate.get("title", "")):
            return candidate
    return candidates[0]


def sanitize_ai_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop creators and anything that looks like a placeholder or a guess"""
    clean = {}
    for field, value in data.items():
        if field in ("creators", "itemType", "tags", "collections", "relations"):
            continue
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, str):
            continue

        lowered = value.strip().lower()
        if not lowered or lowered in HALLUCINATION_EXACT_VALUES:
            continue
        if any(marker in lowered for marker in HALLUCINATION_SUBSTRINGS):
            continue
        if re.match(HALLUCINATION_PREFIX_PATTERN, lowered):
            continue
        clean[field] = value.strip()

    if "creators" in data:
        logger.warning(f"🤖 Rejected {len(data.get('creators') or [])} AI-proposed creator(s)")
    return clean


class EnrichmentCascade:
    """Ordered strategy list folded with a short-circuit; the first usable result wins"""

    def __init__(self, crossref: Optional[CrossRefClient] = None, openalex: Optional[OpenAlexClient] = None,
                 llm_client: Optional[LLMClient] = None, search_limit: Optional[int] = None):
        self.crossref = crossref or CrossRefClient()
        self.openalex = openalex or OpenAlexClient()
        self.llm_client = llm_client
        self.search_limit = search_limit or settings.search_limit
        self.strategies = self._build_strategies()

    def source_status(self) -> Dict[str, Any]:
        """Circuit breaker state of each authoritative source"""
        return {
            "crossref": self.crossref.breaker.get_status(),
            "openalex": self.openalex.breaker.get_status(),
        }

    def _build_strategies(self) -> List[Strategy]:
        strategies = [Strategy("crossref_doi", SourceName.CROSSREF, self._crossref_doi)]
        for variant in ("title_author_year", "title_year", "title"):
            strategies.append(Strategy(f"crossref_{variant}", SourceName.CROSSREF, self._crossref_search(variant)))
        for variant in ("title_author_year", "title_year", "title"):
            strategies.append(Strategy(f"openalex_{variant}", SourceName.OPENALEX, self._openalex_search(variant)))
        if self.llm_client is not None:
            strategies.append(Strategy("ai_fallback", SourceName.AI_FALLBACK, self._ai_fallback))
        return strategies

    async def enrich(self, record: Record) -> Optional[EnrichmentPatch]:
        logger.info(f"🔎 Enriching {record.key}: '{record.title[:80]}'")

        for strategy in self.strategies:
            try:
                work = await strategy.run(record)
            except Exception as e:
                logger.warning(f"❌ {strategy.name} failed for {record.key}: {str(e)}")
                continue

            if not work:
                logger.debug(f"{strategy.name}: no result for {record.key}")
                continue

            if strategy.source == SourceName.AI_FALLBACK:
                work = sanitize_ai_fields(work)

            fields = self._adapt_to_record(record, work)
            if not fields:
                logger.debug(f"{strategy.name}: nothing valid for {record.item_type or 'unknown type'}")
                continue

            logger.info(f"✅ {strategy.name} matched {record.key} ({len(fields)} fields)")
            return EnrichmentPatch(
                source=strategy.source,
                strategy=strategy.name,
                fields=fields,
                field_sources={field: strategy.source.value for field in fields},
            )

        logger.info(f"⚠️ No source returned metadata for {record.key}")
        return None

    def _adapt_to_record(self, record: Record, work: Dict[str, Any]) -> Dict[str, Any]:
        work = {field: value for field, value in work.items() if not is_empty_value(value)}
        adapted = adapt_container_field(record.item_type, work)
        return filter_valid_fields(record.item_type, adapted)

    def _build_query(self, record: Record, variant: str) -> Optional[SearchQuery]:
        title = record.title
        if len(title) < CASCADE_CONFIG["min_title_search_length"]:
            return None

        year = text_normalizer.extract_year(record.get("date", ""))
        if variant == "title_author_year":
            author = text_normalizer.first_author_last_name(record.creators)
            if not author:
                return None
            return SearchQuery(title=title, author=author, year=year)
        if variant == "title_year":
            if not year:
                return None
            return SearchQuery(title=title, year=year)
        return SearchQuery(title=title)

    async def _crossref_doi(self, record: Record) -> Optional[Dict[str, Any]]:
        doi_key = text_normalizer.doi_key(record.get("DOI", ""))
        if not doi_key:
            return None
        return await self.crossref.lookup_by_doi(doi_key)

    def _crossref_search(self, variant: str):
        async def run(record: Record) -> Optional[Dict[str, Any]]:
            query = self._build_query(record, variant)
            if query is None:
                return None
            logger.debug(f"Crossref search ({query.describe()})")
            best = select_best_match(query.title, await self.crossref.search(query, self.search_limit))
            if best and best.get("DOI"):
                # search hits are abridged, the DOI record is complete
                full = await self.crossref.lookup_by_doi(best["DOI"])
                if full:
                    return full
            return best
        return run

    def _openalex_search(self, variant: str):
        async def run(record: Record) -> Optional[Dict[str, Any]]:
            query = self._build_query(record, variant)
            if query is None:
                return None
            logger.debug(f"OpenAlex search ({query.describe()})")
            return select_best_match(query.title, await self.openalex.search(query, self.search_limit))
        return run

    async def _ai_fallback(self, record: Record) -> Optional[Dict[str, Any]]:
        if not record.title:
            return None
        authors = ", ".join(c.display_name for c in record.creators if c.has_name) or None
        year = text_normalizer.extract_year(record.get("date", ""))
        prompt = build_lookup_prompt(record.title, authors, year)
        logger.info(f"🤖 AI fallback for {record.key}")
        return await self.llm_client.complete(prompt, expect_structured=True)
