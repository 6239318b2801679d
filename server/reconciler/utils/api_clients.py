import re
import httpx
from dataclasses import dataclass
from typing import List, Dict, Any, Optional
from datetime import datetime, timedelta
from urllib.parse import quote
from loguru import logger

from ..config import settings
from ..models.schemas import SourceName
from .errors import redact_secrets
from .text_normalizer import text_normalizer
from ..quality_config import CASCADE_CONFIG


class CircuitBreaker:
    """Circuit breaker to temporarily disable failing APIs"""

    def __init__(self, failure_threshold: int = 3, timeout_duration: int = 300):
        self.failure_threshold = failure_threshold
        self.timeout_duration = timeout_duration  # seconds to wait before retrying
        self.failures = {}  # API name -> failure count
        self.disabled_until = {}  # API name -> datetime when to re-enable

    def record_failure(self, api_name: str):
        self.failures[api_name] = self.failures.get(api_name, 0) + 1

        if self.failures[api_name] >= self.failure_threshold:
            self.disabled_until[api_name] = datetime.now() + timedelta(seconds=self.timeout_duration)
            logger.warning(f"🚫 Circuit breaker: {api_name} disabled for {self.timeout_duration}s after {self.failures[api_name]} failures")

    def record_success(self, api_name: str):
        """Record a success for an API (resets failure count)"""
        self.failures.pop(api_name, None)
        self.disabled_until.pop(api_name, None)

    def is_available(self, api_name: str) -> bool:
        if api_name not in self.disabled_until:
            return True

        if datetime.now() > self.disabled_until[api_name]:
            # Cool-down expired, re-enable the API
            del self.disabled_until[api_name]
            self.failures[api_name] = 0
            logger.info(f"✅ Circuit breaker: {api_name} re-enabled")
            return True

        return False

    def get_status(self) -> Dict[str, Any]:
        return {
            "failures": self.failures.copy(),
            "disabled_apis": {
                api: (disabled_until - datetime.now()).total_seconds()
                for api, disabled_until in self.disabled_until.items()
            }
        }


@dataclass(frozen=True)
class SearchQuery:
    """Free-text search request for an authoritative source"""
    title: str
    author: Optional[str] = None
    year: Optional[str] = None

    def describe(self) -> str:
        parts = [f"title='{self.title[:60]}'"]
        if self.author:
            parts.append(f"author='{self.author}'")
        if self.year:
            parts.append(f"year={self.year}")
        return ", ".join(parts)


def strip_doi_resolver(doi: str) -> str:
    return re.sub(r'^(?:https?://)?(?:dx\.)?doi\.org/', '', (doi or "").strip(), flags=re.IGNORECASE)


class BibliographicClient:
    """Best-effort JSON client; every failure becomes ``None``, nothing is raised"""

    name = "base"
    source: SourceName

    def __init__(self, base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None,
                 breaker: Optional[CircuitBreaker] = None):
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=settings.circuit_breaker_threshold,
            timeout_duration=settings.circuit_breaker_timeout,
        )
        self.headers = {
            "User-Agent": settings.user_agent,
            "Accept": "application/json"
        }

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        if not self.breaker.is_available(self.name):
            logger.debug(f"{self.name}: Skipped (circuit breaker open)")
            return None

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=settings.api_timeout) as client:
                response = await client.get(f"{self.base_url}{path}", headers=self.headers, params=params)
        except httpx.HTTPError as e:
            logger.warning(f"{self.name}: Network error - {str(e)}")
            self.breaker.record_failure(self.name)
            return None

        if response.status_code == 404:
            logger.debug(f"{self.name}: Not found ({path})")
            return None
        if response.status_code == 429:
            logger.warning(f"{self.name}: Rate limited (retry-after: {response.headers.get('Retry-After', 'n/a')})")
            self.breaker.record_failure(self.name)
            return None
        if response.status_code != 200:
            logger.warning(f"{self.name}: HTTP {response.status_code} - {redact_secrets(response.text[:200])}")
            self.breaker.record_failure(self.name)
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"{self.name}: Failed to parse response: {str(e)}")
            return None

        self.breaker.record_success(self.name)
        return data if isinstance(data, dict) else None


class CrossRefClient(BibliographicClient):
    """Client for the Crossref REST API"""

    name = "Crossref"
    source = SourceName.CROSSREF

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None,
                 breaker: Optional[CircuitBreaker] = None):
        super().__init__(settings.crossref_base_url, transport, breaker)

    async def lookup_by_doi(self, doi: str) -> Optional[Dict[str, Any]]:
        clean_doi = strip_doi_resolver(doi)
        if not clean_doi:
            return None

        data = await self._get_json(f"/works/{quote(clean_doi, safe='/')}")
        message = (data or {}).get("message")
        # The DOI endpoint returns the work itself in "message", not an items array
        if not isinstance(message, dict) or "title" not in message:
            return None

        work = self._parse_work(message)
        return work or None

    async def search(self, query: SearchQuery, limit: int = 3) -> Optional[List[Dict[str, Any]]]:
        params = {
            "query.bibliographic": query.title,
            "rows": limit,
            "sort": "relevance",
            "order": "desc",
        }
        if query.author:
            params["query.author"] = query.author
        if query.year:
            params["filter"] = f"from-pub-date:{query.year},until-pub-date:{query.year}"

        data = await self._get_json("/works", params)
        if data is None:
            return None

        message = data.get("message") or {}
        works = []
        for item in message.get("items") or []:
            try:
                work = self._parse_work(item)
            except Exception as e:
                logger.warning(f"Error parsing Crossref item: {str(e)}")
                continue
            if work:
                works.append(work)
        return works

    def _parse_work(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Map a Crossref work onto record field names"""
        work: Dict[str, Any] = {}

        if item.get("title"):
            work["title"] = item["title"][0] if isinstance(item["title"], list) else item["title"]

        creators = []
        for author in item.get("author") or []:
            given = (author.get("given") or "").strip()
            family = (author.get("family") or "").strip()
            if given or family:
                creators.append({"creatorType": "author", "firstName": given, "lastName": family})
            elif author.get("name"):
                creators.append({"creatorType": "author", "name": author["name"]})
        if creators:
            work["creators"] = creators

        year = None
        for date_key in ("published", "published-print", "published-online", "issued"):
            parts = (item.get(date_key) or {}).get("date-parts") or []
            if parts and parts[0] and parts[0][0]:
                year = parts[0][0]
                break
        if year:
            work["date"] = str(year)

        if item.get("DOI"):
            work["DOI"] = item["DOI"]

        container = item.get("container-title")
        if container:
            work["publicationTitle"] = container[0] if isinstance(container, list) else container

        for source_key, field in (("volume", "volume"), ("issue", "issue"), ("page", "pages"), ("publisher", "publisher")):
            if item.get(source_key):
                work[field] = item[source_key]

        if item.get("ISBN"):
            work["ISBN"] = item["ISBN"][0] if isinstance(item["ISBN"], list) else item["ISBN"]

        if item.get("abstract"):
            # Crossref abstracts are JATS/HTML
            abstract = re.sub(r'<[^>]*>', '', item["abstract"]).strip()
            if abstract:
                work["abstractNote"] = re.sub(r'\s+', ' ', abstract)

        if item.get("URL"):
            work["url"] = item["URL"]
        elif item.get("DOI"):
            work["url"] = f"https://doi.org/{item['DOI']}"

        return work


class OpenAlexClient(BibliographicClient):
    """Client for OpenAlex API"""

    name = "OpenAlex"
    source = SourceName.OPENALEX

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None,
                 breaker: Optional[CircuitBreaker] = None):
        super().__init__(settings.openalex_base_url, transport, breaker)

    async def lookup_by_doi(self, doi: str) -> Optional[Dict[str, Any]]:
        clean_doi = text_normalizer.normalize_doi(doi)
        if not clean_doi:
            return None

        data = await self._get_json(f"/works/doi:{clean_doi}", {"mailto": settings.contact_email})
        if not data or not data.get("id"):
            return None
        return self._parse_work(data) or None

    async def search(self, query: SearchQuery, limit: int = 3) -> Optional[List[Dict[str, Any]]]:
        search_text = query.title if not query.author else f"{query.title} {query.author}"
        params = {
            "search": search_text,
            "per_page": limit,
            "sort": "relevance_score:desc",
            "mailto": settings.contact_email,
        }
        if query.year:
            params["filter"] = f"publication_year:{query.year}"

        data = await self._get_json("/works", params)
        if data is None:
            return None

        works = []
        for item in data.get("results") or []:
            try:
                work = self._parse_work(item)
            except Exception as e:
                logger.warning(f"Error parsing OpenAlex item: {str(e)}")
                continue
            if work:
                works.append(work)
        return works

    def _parse_work(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Map an OpenAlex work onto record field names"""
        work: Dict[str, Any] = {}

        title = item.get("title") or item.get("display_name")
        if title:
            work["title"] = title

        creators = []
        for authorship in item.get("authorships") or []:
            display_name = ((authorship.get("author") or {}).get("display_name") or "").strip()
            if not display_name:
                continue
            parts = display_name.split()
            if len(parts) >= 2:
                creators.append({"creatorType": "author", "firstName": " ".join(parts[:-1]), "lastName": parts[-1]})
            else:
                creators.append({"creatorType": "author", "name": display_name})
        if creators:
            work["creators"] = creators

        if item.get("publication_year"):
            work["date"] = str(item["publication_year"])
        elif item.get("publication_date"):
            work["date"] = str(item["publication_date"])[:4]

        doi = item.get("doi") or (item.get("ids") or {}).get("doi")
        if doi:
            work["DOI"] = strip_doi_resolver(doi)
            work["url"] = f"https://doi.org/{work['DOI']}"

        primary_location = item.get("primary_location") or {}
        source = primary_location.get("source") or {}
        if source.get("display_name"):
            work["publicationTitle"] = source["display_name"]
        if "url" not in work and primary_location.get("landing_page_url"):
            work["url"] = primary_location["landing_page_url"]

        biblio = item.get("biblio") or {}
        if biblio.get("volume"):
            work["volume"] = biblio["volume"]
        if biblio.get("issue"):
            work["issue"] = biblio["issue"]
        if biblio.get("first_page") and biblio.get("last_page"):
            work["pages"] = f"{biblio['first_page']}-{biblio['last_page']}"
        elif biblio.get("first_page"):
            work["pages"] = biblio["first_page"]

        if item.get("abstract_inverted_index"):
            abstract = self._convert_abstract_index_to_text(item["abstract_inverted_index"])
            if len(abstract) > CASCADE_CONFIG["min_abstract_length"]:
                work["abstractNote"] = abstract

        return work

    def _convert_abstract_index_to_text(self, abstract_index: Dict[str, List[int]]) -> str:
        """Convert OpenAlex abstract_inverted_index to readable text"""
        if not abstract_index:
            return ""

        word_positions = []
        for word, positions in abstract_index.items():
            for pos in positions:
                word_positions.append((pos, word))

        word_positions.sort(key=lambda x: x[0])

        return " ".join([word for _, word in word_positions]).strip()
