"""Pytest configuration and fixtures for test suite."""

from typing import Any, Callable, Dict, List, Optional

import pytest

from reconciler.models.schemas import Record
from reconciler.utils.errors import NotFoundError, VersionConflictError


@pytest.fixture
def make_record() -> Callable[..., Record]:
    """Factory for test records; keyword arguments become record fields."""

    def _factory(key: str = "ITEM0001", *, version: int = 1, item_type: str = "journalArticle",
                 creators: Optional[List[Dict[str, Any]]] = None, **fields: Any) -> Record:
        data: Dict[str, Any] = {"itemType": item_type}
        if creators is not None:
            data["creators"] = creators
        data.update(fields)
        return Record(key=key, version=version, fields=data)

    return _factory


def author(last: str, first: str = "") -> Dict[str, str]:
    return {"creatorType": "author", "firstName": first, "lastName": last}


class FakeSource:
    """Scripted authoritative source recording every call."""

    def __init__(self, by_doi: Optional[Dict[str, Dict[str, Any]]] = None,
                 search_results: Optional[List[Optional[List[Dict[str, Any]]]]] = None,
                 raise_on_search: bool = False):
        self.by_doi = {k.lower(): v for k, v in (by_doi or {}).items()}
        self.search_results = list(search_results or [])
        self.raise_on_search = raise_on_search
        self.doi_calls: List[str] = []
        self.search_calls: List[Any] = []

    async def lookup_by_doi(self, doi: str):
        self.doi_calls.append(doi)
        return self.by_doi.get(doi.lower())

    async def search(self, query, limit: int = 3):
        self.search_calls.append(query)
        if self.raise_on_search:
            raise RuntimeError("search exploded")
        if self.search_results:
            return self.search_results.pop(0)
        return None


class FakeLLM:
    """Stands in for the LangChain Ollama LLM: ``ainvoke`` returns canned text."""

    def __init__(self, responses: Optional[List[str]] = None, default: str = "{}"):
        self.responses = list(responses or [])
        self.default = default
        self.prompts: List[str] = []

    async def ainvoke(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.responses:
            return self.responses.pop(0)
        return self.default


class FakeStore:
    """In-memory record store with injectable version conflicts."""

    def __init__(self, records: List[Record], conflicts: int = 0):
        self.records = {record.key: record for record in records}
        self.conflicts = conflicts
        self.update_calls: List[str] = []
        self.deleted: List[str] = []

    async def fetch_one(self, key: str) -> Record:
        if key not in self.records:
            raise NotFoundError(f"{key} not found", key=key)
        return self.records[key]

    async def update(self, record: Record, patch: Dict[str, Any]) -> Record:
        self.update_calls.append(record.key)
        if self.conflicts > 0:
            self.conflicts -= 1
            # someone else wrote in the meantime
            current = self.records[record.key]
            self.records[record.key] = current.with_fields({}, version=current.version + 1)
            raise VersionConflictError(record.key, record.version)
        updated = record.with_fields(patch, version=record.version + 1)
        self.records[record.key] = updated
        return updated

    async def delete(self, key: str, version: int):
        if key not in self.records:
            raise NotFoundError(f"{key} not found", key=key)
        del self.records[key]
        self.deleted.append(key)

